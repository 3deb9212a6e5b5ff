"""API routes - thin callers of the core services."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from genset_tracker.database import get_db
from genset_tracker.models.domain import User
from genset_tracker.models.enums import LogAction
from genset_tracker.services import access_policy
from genset_tracker.services.audit_logger import AuditLogger, LogFilter
from genset_tracker.services.identity import IdentityProvider, TokenIdentityProvider
from genset_tracker.services.inventory import InventoryService
from genset_tracker.services.reporting import ReportingService
from genset_tracker.services.state_machine import PowerStateMachine
from genset_tracker.services.venue_tracker import VenueAttachmentTracker
from genset_tracker.api.schemas import (
    ErrorResponse,
    GeneratorCreate,
    GeneratorResponse,
    GeneratorUpdate,
    LoginRequest,
    LogEntryResponse,
    LogPageResponse,
    ManualLogCreate,
    PasswordChange,
    Pagination,
    ToggleResponse,
    TokenResponse,
    UserCreate,
    UserResponse,
    UserUpdate,
    VenueAttachmentResponse,
    VenueCreate,
    VenueDeleteResponse,
    VenueResponse,
    VenueUpdate
)

router = APIRouter()

bearer_scheme = HTTPBearer(auto_error=False)


def get_identity_provider(db: Session = Depends(get_db)) -> IdentityProvider:
    """Overridable in tests and alternative deployments."""
    return TokenIdentityProvider(db)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    identity: IdentityProvider = Depends(get_identity_provider)
) -> User:
    user = identity.current_user(credentials.credentials if credentials else None)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user


# Auth endpoints
@router.post("/auth/login", response_model=TokenResponse)
def login(login_data: LoginRequest, db: Session = Depends(get_db)):
    identity = TokenIdentityProvider(db)
    user = identity.authenticate(login_data.username, login_data.password)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return TokenResponse(access_token=identity.issue_token(user), user=UserResponse.model_validate(user))


@router.get("/auth/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return user


# Operator endpoints
@router.get("/user/gensets", response_model=List[GeneratorResponse])
def list_my_generators(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """Active generators in the caller's venue scope (all of them for admins)."""
    return access_policy.visible_generators(db, user)


@router.get("/user/profile", response_model=UserResponse)
def get_profile(user: User = Depends(get_current_user)):
    return user


@router.patch("/user/profile")
def change_own_password(
    data: PasswordChange,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user)
):
    """Any signed-in user may change their own password."""
    TokenIdentityProvider(db).change_password(user, data.current_password, data.new_password)
    return {"message": "Password updated successfully"}


@router.post("/gensets/{generator_id}/toggle", response_model=ToggleResponse, responses={
    400: {"model": ErrorResponse, "description": "Refused - no venue or venue inactive"},
    403: {"model": ErrorResponse, "description": "Generator outside the caller's venue"}
})
def toggle_generator(generator_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """
    Turn a generator ON or OFF.

    WILL REFUSE turning ON if the generator has no venue or its venue is inactive.
    Turning OFF is always allowed.
    """
    result = PowerStateMachine(db).toggle(generator_id, user)
    verb = "turned on" if result.new_status.value == "ON" else "turned off"
    return ToggleResponse(
        message=f"Generator {verb} successfully",
        genset=GeneratorResponse.model_validate(result.generator),
        previous_status=result.previous_status,
        new_status=result.new_status,
        audit_error=result.audit_error
    )


@router.get("/gensets/{generator_id}/venue-history", response_model=List[VenueAttachmentResponse])
def generator_venue_history(generator_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return VenueAttachmentTracker(db).history(generator_id, user)


# Admin generator endpoints
@router.get("/admin/gensets", response_model=List[GeneratorResponse])
def admin_list_generators(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return InventoryService(db).list_generators(user)


@router.post("/admin/gensets", response_model=GeneratorResponse, status_code=status.HTTP_201_CREATED)
def admin_create_generator(data: GeneratorCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return InventoryService(db).create_generator(user, **data.model_dump())


@router.patch("/admin/gensets/{generator_id}", response_model=GeneratorResponse)
def admin_update_generator(
    generator_id: int,
    data: GeneratorUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user)
):
    return InventoryService(db).update_generator(user, generator_id, **data.model_dump(exclude_unset=True))


@router.delete("/admin/gensets/{generator_id}", response_model=GeneratorResponse)
def admin_delete_generator(generator_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return InventoryService(db).delete_generator(user, generator_id)


# Admin venue endpoints
@router.get("/admin/venues", response_model=List[VenueResponse])
def admin_list_venues(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return InventoryService(db).list_venues(user)


@router.post("/admin/venues", response_model=VenueResponse, status_code=status.HTTP_201_CREATED)
def admin_create_venue(data: VenueCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return InventoryService(db).create_venue(user, **data.model_dump())


@router.patch("/admin/venues/{venue_id}", response_model=VenueResponse)
def admin_update_venue(
    venue_id: int,
    data: VenueUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user)
):
    return InventoryService(db).update_venue(user, venue_id, **data.model_dump(exclude_unset=True))


@router.delete("/admin/venues/{venue_id}", response_model=VenueDeleteResponse)
def admin_delete_venue(venue_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """Soft-delete a venue. Every generator attached to it is untagged."""
    result = InventoryService(db).delete_venue(user, venue_id)
    return VenueDeleteResponse(
        message="Venue deleted successfully",
        untagged_generators=len(result.detached_ids),
        failed_generators=result.failed_ids
    )


# Admin user endpoints
@router.get("/admin/users", response_model=List[UserResponse])
def admin_list_users(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return InventoryService(db).list_users(user)


@router.post("/admin/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def admin_create_user(data: UserCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return InventoryService(db).create_user(user, **data.model_dump())


@router.patch("/admin/users/{user_id}", response_model=UserResponse)
def admin_update_user(
    user_id: int,
    data: UserUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user)
):
    return InventoryService(db).update_user(user, user_id, **data.model_dump(exclude_unset=True))


@router.delete("/admin/users/{user_id}", response_model=UserResponse)
def admin_delete_user(user_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return InventoryService(db).delete_user(user, user_id)


# Log endpoints
@router.get("/logs", response_model=LogPageResponse)
def list_logs(
    genset: Optional[int] = None,
    venue: Optional[int] = None,
    user_id: Optional[int] = Query(None, alias="user"),
    action: Optional[LogAction] = None,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user)
):
    """Audit entries in the caller's scope, newest first."""
    filters = LogFilter(genset_id=genset, venue_id=venue, user_id=user_id, action=action)
    result = AuditLogger(db).query(user, filters, page=page, limit=limit)
    return LogPageResponse(
        logs=[LogEntryResponse.model_validate(entry) for entry in result.entries],
        pagination=Pagination(page=result.page, limit=result.limit, total=result.total, pages=result.pages)
    )


@router.post("/logs", response_model=LogEntryResponse, status_code=status.HTTP_201_CREATED)
def create_manual_log(data: ManualLogCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return AuditLogger(db).record_manual(user, data.genset_id, data.action, data.notes, data.custom_timestamp)


@router.put("/logs/{log_id}", response_model=LogEntryResponse)
def edit_log(log_id: int, data: ManualLogCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return AuditLogger(db).edit(user, log_id, data.genset_id, data.action, data.notes, data.custom_timestamp)


@router.delete("/logs/{log_id}")
def delete_log(log_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    AuditLogger(db).delete(user, log_id)
    return {"message": "Log entry deleted successfully"}


@router.get("/logs/filters")
def log_filter_options(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return ReportingService(db).filter_options(user)


# Reporting endpoints
@router.get("/stats")
def fleet_stats(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return ReportingService(db).fleet_stats(user)
