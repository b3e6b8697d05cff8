"""
Synchronous Eventify API client and the local events/registrations cache
that a UI renders from.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Union
from urllib.parse import urlencode

import requests
from websockets.sync.client import connect

import realtime
import schemas

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-2xx response from the API."""

    def __init__(self, status_code: int, detail: Any):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code}: {detail}")


class RegistrationRejected(Exception):
    """Local admission check refused a registration before any request was sent."""


class EventifyClient:
    """
    Thin wrapper over the HTTP API.

    ``session`` is anything with the requests.Session call interface
    (``get``/``post``/``patch``/``delete`` returning objects with
    ``status_code`` and ``json()``).
    """

    def __init__(self, base_url: str, api_key: Optional[str] = None, session=None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.session = session if session is not None else requests.Session()
        self.token: Optional[str] = None
        self.user: Optional[schemas.UserOut] = None

    def _headers(self) -> Dict[str, str]:
        headers = {}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, **kwargs) -> Any:
        response = getattr(self.session, method)(f"{self.base_url}{path}", headers=self._headers(), **kwargs)

        if response.status_code >= 400:
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = response.text
            logger.info(f"{method.upper()} {path} failed with {response.status_code}: {detail}")
            raise ApiError(response.status_code, detail)

        return response.json()

    # --- auth ---

    def sign_up(self, name: str, email: str, password: str, role: str = "student",
                admin_code: Optional[str] = None) -> schemas.UserOut:
        body = {"name": name, "email": email, "password": password, "role": role}
        if admin_code:
            body["admin_code"] = admin_code
        payload = self._request("post", "/signup", json=body)
        return schemas.UserOut.model_validate(payload["data"])

    def sign_in(self, email: str, password: str) -> schemas.UserOut:
        payload = self._request("post", "/login", data={"username": email, "password": password})
        self.token = payload["access_token"]
        return self.get_session_user()

    def sign_out(self):
        if self.token:
            self._request("post", "/logout")
        self.token = None
        self.user = None

    def get_session_user(self) -> schemas.UserOut:
        payload = self._request("get", "/users/me")
        self.user = schemas.UserOut.model_validate(payload["data"])
        return self.user

    # --- events ---

    def list_events(self, search: Optional[str] = None, department: Optional[str] = None) -> List[schemas.EventOut]:
        params = {}
        if search:
            params["search"] = search
        if department:
            params["department"] = department
        payload = self._request("get", "/events", params=params)
        return [schemas.EventOut.model_validate(e) for e in payload["data"]]

    def get_event(self, event_id: str) -> schemas.EventOut:
        payload = self._request("get", f"/events/{event_id}")
        return schemas.EventOut.model_validate(payload["data"])

    def create_event(self, event: Dict[str, Any]) -> schemas.EventOut:
        payload = self._request("post", "/events", json=event)
        return schemas.EventOut.model_validate(payload["data"])

    def update_event(self, event_id: str, changes: Dict[str, Any]) -> schemas.EventOut:
        payload = self._request("patch", f"/events/{event_id}", json=changes)
        return schemas.EventOut.model_validate(payload["data"])

    def add_slots(self, event_id: str, additional_slots: int) -> schemas.EventOut:
        payload = self._request("post", f"/events/{event_id}/slots", json={"additional_slots": additional_slots})
        return schemas.EventOut.model_validate(payload["data"])

    def delete_event(self, event_id: str):
        self._request("delete", f"/events/{event_id}")

    # --- registrations ---

    def register(self, event_id: str, team_name: str, team_members: List[Dict[str, Any]]) -> schemas.RegistrationResponse:
        payload = self._request(
            "post",
            f"/events/{event_id}/registrations",
            json={"team_name": team_name, "team_members": team_members},
        )
        return schemas.RegistrationResponse.model_validate(payload)

    def cancel_registration(self, registration_id: str) -> schemas.CancelRegistrationResponse:
        payload = self._request("delete", f"/registrations/{registration_id}")
        return schemas.CancelRegistrationResponse.model_validate(payload)

    def my_registrations(self) -> List[schemas.RegistrationOut]:
        payload = self._request("get", "/users/me/registrations")
        return [schemas.RegistrationOut.model_validate(r) for r in payload["data"]]

    def event_registrations(self, event_id: str) -> List[schemas.RegistrationDetail]:
        payload = self._request("get", f"/events/{event_id}/registrations")
        return [schemas.RegistrationDetail.model_validate(r) for r in payload["data"]]

    # --- certificates ---

    def request_certificate(self, event_id: str, cert_type: str = "certificate") -> schemas.CertificateResponse:
        payload = self._request("post", f"/events/{event_id}/certificates", json={"type": cert_type})
        return schemas.CertificateResponse.model_validate(payload)

    # --- realtime ---

    def realtime_url(self, tables: Optional[Iterable[str]] = None) -> str:
        if self.base_url.startswith("https://"):
            url = "wss://" + self.base_url[len("https://"):]
        elif self.base_url.startswith("http://"):
            url = "ws://" + self.base_url[len("http://"):]
        else:
            url = self.base_url
        url += "/realtime"
        if tables:
            url += "?" + urlencode({"tables": ",".join(sorted(tables))})
        return url

    def connect_realtime(self, tables: Optional[Iterable[str]] = None):
        """Open the change feed; the API key and bearer token travel as handshake headers."""
        return connect(self.realtime_url(tables), additional_headers=self._headers())


class EventsStore:
    """
    In-memory copy of the events list and the signed-in user's registrations.

    Mutations patch the cache with the row the server returns; pushes from
    the realtime channel go through apply_change. Both paths keep the copy
    with the highest version, so a late push never undoes a newer patch,
    and an event once deleted is never brought back by one.
    """

    def __init__(self, client: EventifyClient):
        self.client = client
        self.events: Dict[str, schemas.EventOut] = {}
        self.registrations: List[schemas.RegistrationOut] = []
        # ids of events known to be deleted, so late pushes cannot bring them back
        self.deleted_event_ids: Set[str] = set()

    # --- loading ---

    def refresh(self):
        self.refresh_events()
        self.refresh_registrations()

    def refresh_events(self):
        self.events = {event.id: event for event in self.client.list_events()}
        logger.info(f"Loaded {len(self.events)} events")

    def refresh_registrations(self):
        if self.client.token is None:
            self.registrations = []
            return
        self.registrations = self.client.my_registrations()

    # --- reads ---

    def list_events(self) -> List[schemas.EventOut]:
        return sorted(self.events.values(), key=lambda e: e.date)

    def get_event_by_id(self, event_id: str) -> Optional[schemas.EventOut]:
        return self.events.get(event_id)

    def is_user_registered_for_event(self, event_id: str) -> bool:
        return any(reg.event_id == event_id for reg in self.registrations)

    def can_register(self, event_id: str) -> bool:
        event = self.events.get(event_id)
        return event is not None and event.available_slots > 0 and not self.is_user_registered_for_event(event_id)

    # --- writes ---

    def _patch_event(self, event: schemas.EventOut) -> bool:
        if event.id in self.deleted_event_ids:
            logger.info(f"Ignoring update for deleted event {event.id}")
            return False
        cached = self.events.get(event.id)
        if cached is not None and cached.version > event.version:
            logger.info(f"Ignoring stale copy of event {event.id} (v{event.version} < v{cached.version})")
            return False
        self.events[event.id] = event
        return True

    def _drop_event(self, event_id: str):
        self.deleted_event_ids.add(event_id)
        self.events.pop(event_id, None)
        self.registrations = [reg for reg in self.registrations if reg.event_id != event_id]

    def add_event(self, event: Dict[str, Any]) -> schemas.EventOut:
        created = self.client.create_event(event)
        self._patch_event(created)
        return created

    def update_event(self, event_id: str, changes: Dict[str, Any]) -> schemas.EventOut:
        updated = self.client.update_event(event_id, changes)
        self._patch_event(updated)
        return updated

    def increase_event_slots(self, event_id: str, additional_slots: int) -> schemas.EventOut:
        updated = self.client.add_slots(event_id, additional_slots)
        self._patch_event(updated)
        return updated

    def delete_event(self, event_id: str):
        self.client.delete_event(event_id)
        self._drop_event(event_id)

    def register_for_event(self, event_id: str, team_name: str, team_members: List[Dict[str, Any]]) -> schemas.RegistrationOut:
        if self.is_user_registered_for_event(event_id):
            raise RegistrationRejected("Already registered for this event")
        event = self.events.get(event_id)
        if event is not None and event.available_slots <= 0:
            raise RegistrationRejected("No slots available")

        try:
            result = self.client.register(event_id, team_name, team_members)
        except ApiError as e:
            # the cached slot count or registration list was out of date, pull the real ones
            if e.status_code == 409:
                self.refresh_registrations()
                self._patch_event(self.client.get_event(event_id))
            elif e.status_code == 404:
                self._drop_event(event_id)
            raise

        if result.event is not None:
            self._patch_event(result.event)
        self.refresh_registrations()
        return result.data

    def cancel_registration(self, registration_id: str):
        result = self.client.cancel_registration(registration_id)
        if result.event is not None:
            self._patch_event(result.event)
        self.refresh_registrations()

    # --- realtime ---

    def apply_change(self, message: Dict[str, Any]):
        """Fold one realtime change message into the cache."""
        if message.get("type") != "change":
            return

        table = message.get("table")
        change = message.get("event")

        if table == realtime.EVENTS_TABLE:
            if change == realtime.DELETE:
                old = message.get("old") or {}
                if old.get("id"):
                    self._drop_event(old["id"])
            elif message.get("record"):
                self._patch_event(schemas.EventOut.model_validate(message["record"]))

        elif table == realtime.REGISTRATIONS_TABLE:
            row = message.get("record") or message.get("old") or {}
            user = self.client.user
            if user is not None and row.get("user_id") == user.id:
                self.refresh_registrations()

    def listen(self, messages: Iterable[Union[str, bytes]]) -> int:
        """Apply each raw JSON frame from the change feed; returns how many were read."""
        count = 0
        for raw in messages:
            self.apply_change(json.loads(raw))
            count += 1
        return count

    def subscribe(self, tables: Optional[Iterable[str]] = None) -> int:
        """
        Follow the change feed until the server closes it.

        Blocks, so a UI runs it on its own thread. The cache is reloaded
        first so nothing committed before the socket opened is missed.
        """
        tables = list(tables) if tables else [realtime.EVENTS_TABLE, realtime.REGISTRATIONS_TABLE]
        with self.client.connect_realtime(tables) as connection:
            self.refresh()
            count = self.listen(connection)
        logger.info(f"Change feed closed after {count} messages")
        return count
