import os
import io
import secrets
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
import uvicorn
from fastapi import (
    HTTPException, FastAPI, File, UploadFile, status, Depends, Header, Request, Response,
    BackgroundTasks, WebSocket,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.security import OAuth2PasswordRequestForm
from fastapi.staticfiles import StaticFiles
from sqlalchemy import select, update, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

import certificates, database, models, realtime, schemas, utils

load_dotenv()

database.init_db()

VALID_API_KEY = os.getenv("API_SECRET_KEY")
ADMIN_REGISTRATION_CODE = os.getenv("ADMIN_REGISTRATION_CODE")
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(os.getenv("LOG_FILE", "app.log")),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)

# request limiter
limiter = Limiter(
    key_func=get_remote_address,
    enabled=os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true",
)

api = FastAPI(title="Eventify")

api.state.limiter = limiter
api.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler) # type: ignore

# middlewares
origins = [
    os.getenv("FRONTEND_URL", "http://localhost:3000"),
]

api.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)

os.makedirs(UPLOAD_DIR, exist_ok=True)

api.mount("/static", StaticFiles(directory=UPLOAD_DIR), name="static")

MAX_FILE_SIZE = 5 * 1024 * 1024  # 5 MB
ALLOWED_CONTENT_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp"
}

# helper
async def verify_api_key(x_api_key: str = Header(None)):
    if x_api_key != VALID_API_KEY:
        raise HTTPException(status_code=403, detail="Invalid API Key")

# helper
def map_event_to_response(event: models.Event) -> schemas.EventOut:
    return schemas.EventOut.model_validate(event)

# helper
def event_record(event: models.Event) -> dict:
    """Event row as pushed on the realtime channel."""
    return map_event_to_response(event).model_dump(mode="json")

# helper
def registration_record(registration: models.Registration) -> dict:
    return {
        "id": registration.id,
        "event_id": registration.event_id,
        "user_id": registration.user_id,
        "team_name": registration.team_name,
    }

# helper
def map_registration_to_response(registration: models.Registration) -> schemas.RegistrationOut:
    return schemas.RegistrationOut.model_validate(registration)

# helper
def map_registration_to_detail(registration: models.Registration) -> schemas.RegistrationDetail:
    base = map_registration_to_response(registration)
    owner = registration.user
    return schemas.RegistrationDetail(
        **base.model_dump(),
        user_name=owner.name if owner and owner.name else "Unknown User",
        user_email=owner.email if owner else None,
    )

# helper
def map_certificate_to_response(cert: models.Certificate) -> schemas.CertificateOut:
    return schemas.CertificateOut(
        id=cert.id,
        user_id=cert.user_id,
        event_id=cert.event_id,
        type=cert.type,
        file_path=cert.file_path,
        generated_at=cert.generated_at,
        download_url=f"/certificates/{cert.id}/download",
    )

# helper
def push_change(bg_tasks: BackgroundTasks, table: str, change: str, record: Optional[dict] = None, old: Optional[dict] = None):
    """Broadcast a committed change to realtime subscribers once the response is sent."""
    bg_tasks.add_task(realtime.feed.publish, table, change, record, old)


@api.get("/health")
async def health_check():
    return {"status": "healthy"}


# --- AUTH ---

@api.post("/signup", response_model=schemas.UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def create_user(
    request: Request,
    user: schemas.UserCreate,
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        if user.role == models.UserRole.ADMIN:
            if not ADMIN_REGISTRATION_CODE or user.admin_code != ADMIN_REGISTRATION_CODE:
                raise HTTPException(status_code=403, detail="Invalid admin registration code")

        email = user.email.lower()
        existing_user = db.query(models.User).filter_by(email=email).first()
        if existing_user:
            raise HTTPException(status_code=400, detail="Email already registered")

        new_user = models.User(
            email=email,
            hashed_password=utils.hash_password(user.password),
            name=user.name.strip(),
            role=user.role,
        )

        db.add(new_user)
        db.commit()
        db.refresh(new_user)

        logger.info(f"Registered {new_user.role.value} account {new_user.id}")

        return schemas.UserResponse(success=True, data=schemas.UserOut.model_validate(new_user))

    except HTTPException as he:
        raise he
    except Exception as e:
        logger.info("Exception occured in signup: %s", e)
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to create user")

@api.post("/login", response_model=schemas.Token)
@limiter.limit("10/minute")
async def login_for_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        # OAuth2PasswordRequestForm calls it 'username', we treat it as the email
        user = db.query(models.User).filter_by(email=form_data.username.lower()).first()

        authenticated = user is not None and utils.verify_password(form_data.password, user.hashed_password)

        if user is not None:
            db.add(models.UserLogin(
                user_id=user.id,
                success=authenticated,
                user_agent=request.headers.get("user-agent"),
            ))
            db.commit()

        if not authenticated:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect credentials",
                headers={"WWW-Authenticate": "Bearer"},
            )

        access_token = utils.create_access_token(data={"sub": user.id, "role": user.role.value})

        return {"access_token": access_token, "token_type": "bearer"}

    except HTTPException as he:
        raise he
    except Exception as e:
        logger.info("Exception occured in login: %s", e)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal Server Error, failed to log in")

@api.post("/logout")
async def logout(
    payload: dict = Depends(utils.get_token_payload),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        db.add(models.RevokedToken(jti=payload["jti"]))
        db.commit()
        logger.info(f"User {payload['sub']} signed out")
        return {"success": True}

    except Exception as e:
        logger.info("Exception occured in logout: %s", e)
        db.rollback()
        raise HTTPException(status_code=500, detail="Logout failed")

@api.get("/users/me", response_model=schemas.UserResponse)
async def read_users_me(
    current_user: models.User = Depends(utils.get_current_user),
    token: str = Depends(verify_api_key),
):
    """
    Returns the currently logged-in user, resolved from the bearer token.
    """
    return schemas.UserResponse(success=True, data=schemas.UserOut.model_validate(current_user))

@api.get("/users/me/logins", response_model=schemas.LoginHistoryResponse)
async def read_login_history(
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    query = (
        select(models.UserLogin)
        .where(models.UserLogin.user_id == current_user.id)
        .order_by(models.UserLogin.login_at.desc())
        .limit(10)
    )
    logins = db.execute(query).scalars().all()

    return schemas.LoginHistoryResponse(
        success=True,
        data=[schemas.LoginRecord.model_validate(login) for login in logins]
    )


# --- EVENTS ---

@api.get("/events", response_model=schemas.MultiEventResponse)
async def list_events(
    search: Optional[str] = None,
    department: Optional[str] = None,
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        query = select(models.Event)

        if search:
            search_fmt = f"%{search}%"
            query = query.where(
                or_(
                    models.Event.title.ilike(search_fmt),
                    models.Event.description.ilike(search_fmt)
                )
            )

        if department and department != "all":
            query = query.where(models.Event.department == department)

        query = query.order_by(models.Event.date.asc())

        db_events = db.execute(query).scalars().all()

        return schemas.MultiEventResponse(
            success=True,
            data=[map_event_to_response(event) for event in db_events]
        )

    except Exception as e:
        logger.info(f"Exception occured in list_events: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal Server Error. Please contact support.")

@api.get("/events/departments", response_model=schemas.DepartmentsResponse)
async def list_departments(db: Session = Depends(database.get_db), token: str = Depends(verify_api_key)):
    query = select(models.Event.department).distinct().order_by(models.Event.department.asc())
    departments = [d for d in db.execute(query).scalars().all() if d]
    return schemas.DepartmentsResponse(success=True, data=departments)

@api.get("/events/{event_id}", response_model=schemas.SingleEventResponse)
async def get_event(event_id: str, db: Session = Depends(database.get_db), token: str = Depends(verify_api_key)):
    event = db.get(models.Event, event_id)

    if not event:
        raise HTTPException(404, detail="Event not found")

    return schemas.SingleEventResponse(success=True, data=map_event_to_response(event))

@api.post("/events", response_model=schemas.SingleEventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    event_in: schemas.EventCreate,
    bg_tasks: BackgroundTasks,
    current_user: models.User = Depends(utils.get_current_admin),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    db_event = models.Event(
        title=event_in.title,
        description=event_in.description,
        date=event_in.date,
        location=event_in.location,
        department=event_in.department or "General",
        image=event_in.image,
        total_slots=event_in.total_slots,
        # Initially all slots are available
        available_slots=event_in.total_slots,
        version=1,
    )

    try:
        db.add(db_event)
        db.commit()
        db.refresh(db_event)

        logger.info(f"Admin {current_user.id} created event {db_event.id} with {db_event.total_slots} slots")

        push_change(bg_tasks, realtime.EVENTS_TABLE, realtime.INSERT, event_record(db_event))

        return schemas.SingleEventResponse(success=True, data=map_event_to_response(db_event))

    except Exception as e:
        db.rollback()
        logger.info(f"Error creating event: {e}")
        raise HTTPException(status_code=500, detail="Could not create event")

@api.patch("/events/{event_id}", response_model=schemas.SingleEventResponse)
async def update_event(
    event_id: str,
    event_update: schemas.EventUpdate,
    bg_tasks: BackgroundTasks,
    current_user: models.User = Depends(utils.get_current_admin),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    db_event = db.get(models.Event, event_id)
    if not db_event:
        raise HTTPException(status_code=404, detail="Event not found")

    # Only update what is sent
    if event_update.title is not None: db_event.title = event_update.title
    if event_update.description is not None: db_event.description = event_update.description
    if event_update.date is not None: db_event.date = event_update.date
    if event_update.location is not None: db_event.location = event_update.location
    if event_update.department is not None: db_event.department = event_update.department
    if event_update.image is not None: db_event.image = event_update.image

    db_event.version = db_event.version + 1

    try:
        db.commit()
        db.refresh(db_event)
    except Exception as e:
        db.rollback()
        logger.info(f"Error updating event {event_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update event")

    push_change(bg_tasks, realtime.EVENTS_TABLE, realtime.UPDATE, event_record(db_event))

    return schemas.SingleEventResponse(success=True, data=map_event_to_response(db_event))

@api.post("/events/{event_id}/slots", response_model=schemas.SingleEventResponse)
async def increase_event_slots(
    event_id: str,
    slots_in: schemas.EventSlotsIncrease,
    bg_tasks: BackgroundTasks,
    current_user: models.User = Depends(utils.get_current_admin),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    """
    Adds slots to an event: total and remaining capacity both grow by the same amount.
    """
    try:
        stmt = (
            update(models.Event)
            .where(models.Event.id == event_id)
            .values(
                total_slots=models.Event.total_slots + slots_in.additional_slots,
                available_slots=models.Event.available_slots + slots_in.additional_slots,
                version=models.Event.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = db.execute(stmt)

        if result.rowcount == 0:
            db.rollback()
            raise HTTPException(status_code=404, detail="Event not found")

        db.commit()

    except HTTPException as he:
        raise he
    except Exception as e:
        logger.info(f"Error increasing slots for event {event_id}: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to increase event slots")

    db_event = db.get(models.Event, event_id)
    if db_event is None:
        # deleted right after the slots were added
        raise HTTPException(status_code=404, detail="Event not found")
    db.refresh(db_event)

    logger.info(f"Added {slots_in.additional_slots} slots to event {event_id}")

    push_change(bg_tasks, realtime.EVENTS_TABLE, realtime.UPDATE, event_record(db_event))

    return schemas.SingleEventResponse(success=True, data=map_event_to_response(db_event))

@api.delete("/events/{event_id}")
async def delete_event(
    event_id: str,
    bg_tasks: BackgroundTasks,
    current_user: models.User = Depends(utils.get_current_admin),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    db_event = db.get(models.Event, event_id)
    if not db_event:
        raise HTTPException(status_code=404, detail="Event not found")

    stored_files = [cert.file_path for cert in db_event.certificates]
    removed_registrations = len(db_event.registrations)

    try:
        # registrations, team members and certificate rows go with it
        db.delete(db_event)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.info(f"Error deleting event {event_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete event")

    for file_path in stored_files:
        certificates.delete_file(file_path)

    logger.info(f"Deleted event {event_id} with {removed_registrations} registrations")

    push_change(bg_tasks, realtime.EVENTS_TABLE, realtime.DELETE, None, {"id": event_id})

    return {"success": True, "removed_registrations": removed_registrations}

# image uploading for event covers, admins only
@api.post("/upload")
async def upload_image(
    file: UploadFile = File(...),
    current_user: models.User = Depends(utils.get_current_admin),
    token: str = Depends(verify_api_key),
):
    try:
        if file.content_type not in ALLOWED_CONTENT_TYPES:
            raise HTTPException(400, detail=f"Invalid content type. Allowed: {list(ALLOWED_CONTENT_TYPES.keys())}")

        extension = ALLOWED_CONTENT_TYPES[file.content_type]
        safe_filename = f"{secrets.token_urlsafe(16)}.{extension}"
        file_path = Path(UPLOAD_DIR) / safe_filename

        content = await file.read()
        if len(content) > MAX_FILE_SIZE:
            raise HTTPException(413, detail=f"File too large. Maximum: {MAX_FILE_SIZE / 1024 / 1024}MB")

        try:
            from PIL import Image
            Image.open(io.BytesIO(content)).verify()
        except Exception:
            raise HTTPException(400, detail="Invalid image file")

        with open(file_path, "wb") as f:
            f.write(content)

        return {"success": True, "url": f"/static/{safe_filename}"}

    except HTTPException as he:
        raise he
    except Exception as e:
        logger.info(f"Upload Error: {e}")
        raise HTTPException(status_code=500, detail="Image upload failed server-side")


# --- REGISTRATIONS ---

@api.post("/events/{event_id}/registrations", response_model=schemas.RegistrationResponse, status_code=status.HTTP_201_CREATED)
async def register_for_event(
    event_id: str,
    registration_in: schemas.RegistrationCreate,
    bg_tasks: BackgroundTasks,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    """
    Claims one slot of the event for the caller's team.

    The slot is taken with a single conditional UPDATE (only while
    available_slots > 0) in the same transaction as the registration and its
    team members, so a failure anywhere releases the slot again.
    """
    event = db.get(models.Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")

    existing = db.query(models.Registration).filter_by(user_id=current_user.id, event_id=event_id).first()
    if existing:
        raise HTTPException(status_code=409, detail="Already registered for this event")

    try:
        claim = (
            update(models.Event)
            .where(models.Event.id == event_id)
            .where(models.Event.available_slots > 0)
            .values(
                available_slots=models.Event.available_slots - 1,
                version=models.Event.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = db.execute(claim)

        if result.rowcount == 0:
            db.rollback()
            raise HTTPException(status_code=409, detail="No slots available")

        registration = models.Registration(
            event_id=event_id,
            user_id=current_user.id,
            team_name=registration_in.team_name,
        )
        registration.team_members = [
            models.TeamMember(position=i, name=m.name, department=m.department, email=m.email)
            for i, m in enumerate(registration_in.team_members)
        ]
        db.add(registration)
        db.commit()

    except HTTPException as he:
        raise he
    except IntegrityError as e:
        # a concurrent request registered the same user first
        db.rollback()
        logger.info(f"Duplicate registration for user {current_user.id} on event {event_id}: {e}")
        raise HTTPException(status_code=409, detail="Already registered for this event")
    except Exception as e:
        db.rollback()
        logger.info(f"Error registering user {current_user.id} for event {event_id}: {e}")
        raise HTTPException(status_code=500, detail="Registration failed")

    db.refresh(registration)
    db.refresh(event)

    logger.info(f"User {current_user.id} registered team '{registration.team_name}' for event {event_id}, {event.available_slots} slots left")

    push_change(bg_tasks, realtime.REGISTRATIONS_TABLE, realtime.INSERT, registration_record(registration))
    push_change(bg_tasks, realtime.EVENTS_TABLE, realtime.UPDATE, event_record(event))

    return schemas.RegistrationResponse(
        success=True,
        data=map_registration_to_response(registration),
        event=map_event_to_response(event),
    )

@api.get("/events/{event_id}/registration-status", response_model=schemas.RegistrationStatusResponse)
async def registration_status(
    event_id: str,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    existing = db.query(models.Registration).filter_by(user_id=current_user.id, event_id=event_id).first()
    return schemas.RegistrationStatusResponse(
        success=True,
        data=schemas.RegistrationStatus(
            event_id=event_id,
            registered=existing is not None,
            registration_id=existing.id if existing else None,
        )
    )

@api.get("/events/{event_id}/registrations", response_model=schemas.RegistrationDetailsResponse)
async def get_event_registrations(
    event_id: str,
    current_user: models.User = Depends(utils.get_current_admin),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    """
    Participants of one event for the admin dashboard, joined with each registering user's profile.
    """
    if not db.get(models.Event, event_id):
        raise HTTPException(status_code=404, detail="Event not found")

    query = (
        select(models.Registration)
        .options(joinedload(models.Registration.user), selectinload(models.Registration.team_members))
        .where(models.Registration.event_id == event_id)
        .order_by(models.Registration.registration_date.asc())
    )
    registrations = db.execute(query).scalars().unique().all()

    return schemas.RegistrationDetailsResponse(
        success=True,
        data=[map_registration_to_detail(reg) for reg in registrations]
    )

@api.get("/users/me/registrations", response_model=schemas.MultiRegistrationResponse)
async def get_my_registrations(
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    query = (
        select(models.Registration)
        .options(selectinload(models.Registration.team_members))
        .where(models.Registration.user_id == current_user.id)
        .order_by(models.Registration.registration_date.asc())
    )
    registrations = db.execute(query).scalars().all()

    return schemas.MultiRegistrationResponse(
        success=True,
        data=[map_registration_to_response(reg) for reg in registrations]
    )

@api.delete("/registrations/{registration_id}", response_model=schemas.CancelRegistrationResponse)
async def cancel_registration(
    registration_id: str,
    bg_tasks: BackgroundTasks,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    registration = db.get(models.Registration, registration_id)
    if not registration:
        raise HTTPException(status_code=404, detail="Registration not found")

    if registration.user_id != current_user.id and current_user.role != models.UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="You cannot cancel another user's registration")

    record = registration_record(registration)
    event_id = registration.event_id

    try:
        db.delete(registration)
        release = (
            update(models.Event)
            .where(models.Event.id == event_id)
            .where(models.Event.available_slots < models.Event.total_slots)
            .values(
                available_slots=models.Event.available_slots + 1,
                version=models.Event.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = db.execute(release)
        if result.rowcount == 0:
            logger.warning(f"Event {event_id} already at full capacity, slot not returned for registration {registration_id}")
        db.commit()
    except Exception as e:
        db.rollback()
        logger.info(f"Error cancelling registration {registration_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to cancel registration")

    event = db.get(models.Event, event_id)
    if event is not None:
        db.refresh(event)

    push_change(bg_tasks, realtime.REGISTRATIONS_TABLE, realtime.DELETE, None, record)
    if event is not None:
        push_change(bg_tasks, realtime.EVENTS_TABLE, realtime.UPDATE, event_record(event))

    return schemas.CancelRegistrationResponse(
        success=True,
        event=map_event_to_response(event) if event is not None else None,
    )


# --- CERTIFICATES ---

@api.post("/events/{event_id}/certificates", response_model=schemas.CertificateResponse)
async def request_certificate(
    event_id: str,
    cert_in: schemas.CertificateRequest,
    response: Response,
    bg_tasks: BackgroundTasks,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    """
    Returns the caller's certificate or on-duty letter for an event, generating it on first request.
    """
    event = db.get(models.Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")

    registered = db.query(models.Registration).filter_by(user_id=current_user.id, event_id=event_id).first()
    if not registered:
        raise HTTPException(status_code=403, detail="Only registered participants can request certificates")

    def find_existing():
        return db.query(models.Certificate).filter_by(
            user_id=current_user.id, event_id=event_id, type=cert_in.type
        ).first()

    existing = find_existing()
    if existing:
        logger.info(f"Returning existing {cert_in.type.value} {existing.id} for user {current_user.id}")
        return schemas.CertificateResponse(success=True, created=False, data=map_certificate_to_response(existing))

    data = certificates.CertificateData(
        event_id=event.id,
        user_id=current_user.id,
        user_name=current_user.name,
        event_title=event.title,
        event_date=certificates.format_event_date(event.date),
        event_location=event.location or "Event Location",
        type=cert_in.type,
    )
    file_path = certificates.storage_path(current_user.id, event.id, cert_in.type)

    try:
        certificates.save_file(file_path, certificates.render_pdf(data))

        cert = models.Certificate(
            user_id=current_user.id,
            event_id=event.id,
            type=cert_in.type,
            file_path=file_path,
        )
        db.add(cert)
        db.commit()
        db.refresh(cert)

    except IntegrityError:
        # generated concurrently, the first record wins
        db.rollback()
        existing = find_existing()
        if existing is None:
            raise HTTPException(status_code=500, detail="Failed to generate document")
        return schemas.CertificateResponse(success=True, created=False, data=map_certificate_to_response(existing))
    except Exception as e:
        db.rollback()
        logger.info(f"Error generating {cert_in.type.value} for user {current_user.id} on event {event_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate document")

    logger.info(f"Generated {cert_in.type.value} {cert.id} for user {current_user.id} on event {event_id}")

    push_change(bg_tasks, realtime.CERTIFICATES_TABLE, realtime.INSERT, {
        "id": cert.id, "user_id": cert.user_id, "event_id": cert.event_id, "type": cert.type.value,
    })

    response.status_code = status.HTTP_201_CREATED
    return schemas.CertificateResponse(success=True, created=True, data=map_certificate_to_response(cert))

@api.get("/users/me/certificates", response_model=schemas.MultiCertificateResponse)
async def get_my_certificates(
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    query = (
        select(models.Certificate)
        .where(models.Certificate.user_id == current_user.id)
        .order_by(models.Certificate.generated_at.desc())
    )
    certs = db.execute(query).scalars().all()
    return schemas.MultiCertificateResponse(success=True, data=[map_certificate_to_response(c) for c in certs])

@api.get("/certificates/{certificate_id}/download")
async def download_certificate(
    certificate_id: str,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    cert = db.get(models.Certificate, certificate_id)
    if not cert:
        raise HTTPException(status_code=404, detail="Certificate not found")

    if cert.user_id != current_user.id and current_user.role != models.UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="You cannot download another user's documents")

    try:
        path = certificates.resolve_file(cert.file_path or "")
    except ValueError:
        raise HTTPException(status_code=404, detail="Certificate file not found")

    if not path.is_file():
        raise HTTPException(status_code=404, detail="Certificate file not found")

    event_name = "_".join(cert.event.title.split()) if cert.event else cert.event_id
    return FileResponse(path, media_type="application/pdf", filename=f"{event_name}_{cert.type.value}.pdf")


# --- REALTIME ---

@api.websocket("/realtime")
async def realtime_changes(websocket: WebSocket, tables: Optional[str] = None, api_key: Optional[str] = None):
    # browsers cannot set headers on a socket, so the key may also come as ?api_key=
    supplied_key = websocket.headers.get("x-api-key") or api_key
    if not VALID_API_KEY or supplied_key != VALID_API_KEY:
        logger.info("Realtime connection refused: invalid API key")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    client_id = await realtime.feed.connect(websocket, realtime.parse_tables(tables))
    try:
        while True:
            # clients only listen, incoming frames of any kind are ignored
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        realtime.feed.disconnect(client_id)


if __name__ == "__main__":

    port = int(os.getenv("BACKEND_PORT", 4444))
    environment = os.getenv("ENVIRONMENT", "development")

    uvicorn.run(
        "main:api",
        host="0.0.0.0",
        port=port,
        reload=(environment == "development")  # Only reload in dev mode
    )
