from sqlalchemy import String, Boolean, ForeignKey, Text, DateTime, Integer, CheckConstraint, UniqueConstraint
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship, Mapped, mapped_column
from database import Base
from typing import Optional, List
import datetime
import uuid
from enum import Enum

class UserRole(str, Enum):
    STUDENT = "student"
    ADMIN = "admin"

class CertificateType(str, Enum):
    CERTIFICATE = "certificate"
    DUTY = "duty"

def generate_uuid():
    return str(uuid.uuid4())

def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)

class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_uuid)
    email: Mapped[str] = mapped_column(String, unique=True, index=True)
    hashed_password: Mapped[str] = mapped_column(String)

    # Profile
    name: Mapped[str] = mapped_column(String, index=True)
    role: Mapped[str] = mapped_column(
        SQLEnum(UserRole),
        nullable=False,
        default=UserRole.STUDENT
    )

    # Relationships
    registrations = relationship("Registration", back_populates="user")
    logins = relationship("UserLogin", back_populates="user", cascade="all, delete-orphan")

class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("available_slots >= 0", name="ck_events_available_non_negative"),
        CheckConstraint("available_slots <= total_slots", name="ck_events_available_le_total"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_uuid)

    # Content
    title: Mapped[str] = mapped_column(String, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    department: Mapped[str] = mapped_column(String, index=True, default="General")

    # Time and place
    date: Mapped[datetime.datetime] = mapped_column(DateTime, index=True)
    location: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # Capacity
    total_slots: Mapped[int] = mapped_column(Integer, default=0)
    available_slots: Mapped[int] = mapped_column(Integer, default=0)

    # Bumped on every update so clients can discard stale copies
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=utc_now)

    # Relationships
    registrations = relationship("Registration", back_populates="event", cascade="all, delete-orphan")
    certificates = relationship("Certificate", back_populates="event", cascade="all, delete-orphan")

class Registration(Base):
    __tablename__ = "event_registrations"
    __table_args__ = (
        UniqueConstraint("user_id", "event_id", name="uq_registration_user_event"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_uuid)
    event_id: Mapped[str] = mapped_column(String, ForeignKey("events.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), index=True)
    team_name: Mapped[str] = mapped_column(String)
    registration_date: Mapped[datetime.datetime] = mapped_column(DateTime, default=utc_now)

    # Relationships
    event = relationship("Event", back_populates="registrations")
    user = relationship("User", back_populates="registrations")
    team_members: Mapped[List["TeamMember"]] = relationship(
        "TeamMember",
        back_populates="registration",
        cascade="all, delete-orphan",
        order_by="TeamMember.position"
    )

class TeamMember(Base):
    __tablename__ = "team_members"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_uuid)
    registration_id: Mapped[str] = mapped_column(String, ForeignKey("event_registrations.id", ondelete="CASCADE"), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    name: Mapped[str] = mapped_column(String)
    department: Mapped[str] = mapped_column(String)
    email: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    registration = relationship("Registration", back_populates="team_members")

class Certificate(Base):
    __tablename__ = "certificates"
    __table_args__ = (
        UniqueConstraint("user_id", "event_id", "type", name="uq_certificate_user_event_type"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), index=True)
    event_id: Mapped[str] = mapped_column(String, ForeignKey("events.id", ondelete="CASCADE"), index=True)
    type: Mapped[str] = mapped_column(SQLEnum(CertificateType), nullable=False)
    file_path: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    generated_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=utc_now)

    event = relationship("Event", back_populates="certificates")

class UserLogin(Base):
    __tablename__ = "user_logins"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), index=True)
    login_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=utc_now, index=True)
    success: Mapped[bool] = mapped_column(Boolean, default=False)
    user_agent: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    user = relationship("User", back_populates="logins")

class RevokedToken(Base):
    __tablename__ = "revoked_tokens"

    jti: Mapped[str] = mapped_column(String, primary_key=True)
    revoked_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=utc_now)
