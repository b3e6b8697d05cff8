"""
Realtime change feed.

Clients open a WebSocket on /realtime and receive one JSON message per
committed row change on the tables they subscribed to.
"""

import logging
import uuid
from typing import Any, Dict, Iterable, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)

EVENTS_TABLE = "events"
REGISTRATIONS_TABLE = "event_registrations"
CERTIFICATES_TABLE = "certificates"

ALL_TABLES = frozenset({EVENTS_TABLE, REGISTRATIONS_TABLE, CERTIFICATES_TABLE})

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


def parse_tables(raw: Optional[str]) -> Set[str]:
    """Turn the ?tables=a,b query value into a subscription set (all tables when empty)."""
    if not raw:
        return set(ALL_TABLES)
    requested = {t.strip() for t in raw.split(",") if t.strip()}
    return requested & ALL_TABLES


def change_message(table: str, change: str, record: Optional[Dict[str, Any]] = None,
                   old: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "type": "change",
        "table": table,
        "event": change,
        "record": record,
        "old": old,
    }


class ChangeFeed:
    """Tracks open WebSocket subscribers and fans change messages out to them."""

    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}
        self.subscriptions: Dict[str, Set[str]] = {}

    async def connect(self, websocket: WebSocket, tables: Iterable[str]) -> str:
        await websocket.accept()
        client_id = str(uuid.uuid4())
        self.active_connections[client_id] = websocket
        self.subscriptions[client_id] = set(tables)

        logger.info(f"Realtime client {client_id} connected. Total: {len(self.active_connections)}")

        await websocket.send_json({
            "type": "connected",
            "client_id": client_id,
            "tables": sorted(self.subscriptions[client_id]),
        })
        return client_id

    def disconnect(self, client_id: str):
        self.active_connections.pop(client_id, None)
        self.subscriptions.pop(client_id, None)
        logger.info(f"Realtime client {client_id} disconnected. Total: {len(self.active_connections)}")

    async def broadcast(self, message: Dict[str, Any]):
        table = message.get("table")
        dead = []

        for client_id, websocket in list(self.active_connections.items()):
            if table not in self.subscriptions.get(client_id, set()):
                continue
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.error(f"Failed to push change to {client_id}: {e}")
                dead.append(client_id)

        for client_id in dead:
            self.disconnect(client_id)

    async def publish(self, table: str, change: str, record: Optional[Dict[str, Any]] = None,
                      old: Optional[Dict[str, Any]] = None):
        await self.broadcast(change_message(table, change, record, old))


feed = ChangeFeed()
