from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List
from datetime import datetime

from models import UserRole, CertificateType

# --- USER SCHEMAS ---

# What the client sends to US
class UserCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: UserRole = UserRole.STUDENT
    admin_code: Optional[str] = None

# What WE send back (No password!)
class UserOut(BaseModel):
    id: str
    email: EmailStr
    name: str
    role: UserRole

    class Config:
        # Read data from ORM objects, not just dicts
        from_attributes = True

class UserResponse(BaseModel):
    success: bool
    data: UserOut

class Token(BaseModel):
    access_token: str
    token_type: str

class LoginRecord(BaseModel):
    id: str
    login_at: datetime
    success: bool
    user_agent: Optional[str] = None

    class Config:
        from_attributes = True

class LoginHistoryResponse(BaseModel):
    success: bool
    data: List[LoginRecord] = []


# --- EVENT SCHEMAS ---

class EventOut(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    date: datetime
    location: Optional[str] = None
    department: str = "General"
    image: Optional[str] = None
    total_slots: int
    available_slots: int
    version: int = 1

    class Config:
        from_attributes = True

class SingleEventResponse(BaseModel):
    success: bool
    data: Optional[EventOut] = None
    error_msg: Optional[str] = None

class MultiEventResponse(BaseModel):
    success: bool
    data: List[EventOut] = []
    error_msg: Optional[str] = None

class DepartmentsResponse(BaseModel):
    success: bool
    data: List[str] = []

class EventCreate(BaseModel):
    # Required Fields
    title: str = Field(..., min_length=1)
    date: datetime
    location: str = Field(..., min_length=1)

    # Optional Fields
    description: str = ""
    department: str = "General"
    image: Optional[str] = None
    total_slots: int = Field(20, ge=1)

# event update by admin, slot counts only move through EventSlotsIncrease
class EventUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    date: Optional[datetime] = None
    location: Optional[str] = None
    department: Optional[str] = None
    image: Optional[str] = None

class EventSlotsIncrease(BaseModel):
    additional_slots: int = Field(..., gt=0)


# --- REGISTRATION SCHEMAS ---

MAX_TEAM_MEMBERS = 5

class TeamMemberIn(BaseModel):
    name: str
    department: str
    email: Optional[EmailStr] = None

    @field_validator("name", "department")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("All team members must have a name and department")
        return value

    @field_validator("email", mode="before")
    @classmethod
    def empty_email_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

class TeamMemberOut(BaseModel):
    name: str
    department: str
    email: Optional[str] = None

    class Config:
        from_attributes = True

class RegistrationCreate(BaseModel):
    team_name: str
    team_members: List[TeamMemberIn] = Field(..., min_length=1, max_length=MAX_TEAM_MEMBERS)

    @field_validator("team_name")
    @classmethod
    def team_name_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Please enter a team name")
        return value

class RegistrationOut(BaseModel):
    id: str
    event_id: str
    user_id: str
    team_name: str
    registration_date: datetime
    team_members: List[TeamMemberOut] = []

    class Config:
        from_attributes = True

# admin view, joined with the registering user's profile
class RegistrationDetail(RegistrationOut):
    user_name: str = "Unknown User"
    user_email: Optional[str] = None

class RegistrationResponse(BaseModel):
    success: bool
    data: RegistrationOut
    event: Optional[EventOut] = None

class MultiRegistrationResponse(BaseModel):
    success: bool
    data: List[RegistrationOut] = []

class RegistrationDetailsResponse(BaseModel):
    success: bool
    data: List[RegistrationDetail] = []

class RegistrationStatus(BaseModel):
    event_id: str
    registered: bool
    registration_id: Optional[str] = None

class RegistrationStatusResponse(BaseModel):
    success: bool
    data: RegistrationStatus

class CancelRegistrationResponse(BaseModel):
    success: bool
    event: Optional[EventOut] = None


# --- CERTIFICATE SCHEMAS ---

class CertificateRequest(BaseModel):
    type: CertificateType = CertificateType.CERTIFICATE

class CertificateOut(BaseModel):
    id: str
    user_id: str
    event_id: str
    type: CertificateType
    file_path: Optional[str] = None
    generated_at: datetime
    download_url: Optional[str] = None

    class Config:
        from_attributes = True

class CertificateResponse(BaseModel):
    success: bool
    created: bool
    data: CertificateOut

class MultiCertificateResponse(BaseModel):
    success: bool
    data: List[CertificateOut] = []
