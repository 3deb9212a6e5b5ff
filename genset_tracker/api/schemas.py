"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from genset_tracker.models.enums import (
    GeneratorStatus,
    CapacityUnit,
    FuelType,
    DetachReason,
    UserRole,
    LogAction
)


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Auth schemas
class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class VenueSummary(ORMModel):
    id: int
    name: str
    location: Optional[str] = None


class UserSummary(ORMModel):
    id: int
    username: str


class UserResponse(ORMModel):
    """Never carries the password hash."""
    id: int
    username: str
    email: str
    role: UserRole
    assigned_venue_id: Optional[int]
    assigned_venue: Optional[VenueSummary] = None
    is_active: bool
    created_at: datetime


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class PasswordChange(BaseModel):
    """Length and match rules are enforced by the identity service."""
    current_password: str
    new_password: str


# Venue schemas
class VenueCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    location: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=500)
    contact_person: Optional[str] = Field(None, max_length=100)


class VenueUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    location: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=500)
    contact_person: Optional[str] = Field(None, max_length=100)


class VenueResponse(ORMModel):
    id: int
    name: str
    location: Optional[str]
    description: Optional[str]
    contact_person: Optional[str]
    is_active: bool
    created_at: datetime


class VenueDeleteResponse(BaseModel):
    message: str
    untagged_generators: int
    failed_generators: List[int] = []


# Generator schemas
class GeneratorCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    model: Optional[str] = Field(None, max_length=100)
    capacity: float = Field(..., gt=0)
    capacity_unit: CapacityUnit = CapacityUnit.KW
    fuel_type: Optional[FuelType] = None
    venue_id: Optional[int] = None


class GeneratorUpdate(BaseModel):
    """Only fields present in the request body are applied; venue_id=null detaches."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    model: Optional[str] = Field(None, max_length=100)
    capacity: Optional[float] = Field(None, gt=0)
    capacity_unit: Optional[CapacityUnit] = None
    fuel_type: Optional[FuelType] = None
    venue_id: Optional[int] = None


class VenueAttachmentResponse(ORMModel):
    id: int
    venue_id: Optional[int]
    venue_name: str
    attached_at: datetime
    detached_at: Optional[datetime]
    detached_reason: Optional[DetachReason]


class GeneratorResponse(ORMModel):
    id: int
    name: str
    model: Optional[str]
    capacity: float
    capacity_unit: CapacityUnit
    fuel_type: Optional[FuelType]
    status: GeneratorStatus
    venue_id: Optional[int]
    venue: Optional[VenueSummary] = None
    last_status_change: datetime
    last_status_changed_by: Optional[UserSummary] = None
    is_active: bool
    venue_history: List[VenueAttachmentResponse] = []
    created_at: datetime


class ToggleResponse(BaseModel):
    message: str
    genset: GeneratorResponse
    previous_status: GeneratorStatus
    new_status: GeneratorStatus
    audit_error: Optional[str] = None


# User admin schemas
class UserCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: UserRole = UserRole.USER
    assigned_venue_id: Optional[int] = None


class UserUpdate(BaseModel):
    username: Optional[str] = Field(None, min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    role: Optional[UserRole] = None
    assigned_venue_id: Optional[int] = None


# Log schemas
class ManualLogCreate(BaseModel):
    genset_id: int
    action: LogAction
    notes: str = Field(..., min_length=1, max_length=500)
    custom_timestamp: Optional[datetime] = None


class LogEntryResponse(ORMModel):
    id: int
    genset_id: Optional[int]
    venue_id: Optional[int]
    user_id: int
    action: LogAction
    previous_status: Optional[GeneratorStatus]
    new_status: Optional[GeneratorStatus]
    timestamp: datetime
    notes: Optional[str]
    affected_generators: Optional[int]


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class LogPageResponse(BaseModel):
    logs: List[LogEntryResponse]
    pagination: Pagination


# Error response
class ErrorResponse(BaseModel):
    """Body returned for every typed service failure."""
    error: str
    code: Optional[str] = None
