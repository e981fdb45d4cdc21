"""
User Management Endpoints

CRUD operations for users within the current organization. The session
is bound to the caller's organization, so users of other organizations
are simply not found.

RBAC:
- List/get users: all authenticated users
- Create/delete user: admin roles
- Update user: admin roles, or the user themselves (no role or active changes)
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import Optional

from ethicsdesk.database import get_db
from ethicsdesk.models.audit_log import AuditEntityType
from ethicsdesk.models.organization import Organization
from ethicsdesk.models.user import User, UserRole
from ethicsdesk.schemas.user import (
    UserResponse,
    UserCreate,
    UserUpdate,
    UserListResponse
)
from ethicsdesk.api.deps import (
    get_current_user,
    get_current_organization,
    require_admin
)
from ethicsdesk.core.security import get_password_hash
from ethicsdesk.core.permissions import PermissionDenied, can_modify_user
from ethicsdesk.core.exceptions import UserNotFoundError
from ethicsdesk.services.activity import ActivityService
from ethicsdesk.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


def _get_user_or_404(db: Session, organization: Organization, user_id: str) -> User:
    user = db.query(User).filter(
        User.id == user_id,
        User.organization_id == organization.id
    ).first()
    if not user:
        raise UserNotFoundError(user_id)
    return user


def _email_taken(db: Session, organization: Organization, email: str, exclude_id: Optional[str] = None) -> bool:
    """Case-insensitive, matching how login looks users up."""
    query = db.query(User).filter(
        User.organization_id == organization.id,
        func.lower(User.email) == email.lower()
    )
    if exclude_id:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


@router.get("", response_model=UserListResponse)
async def list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    role: Optional[UserRole] = Query(None),
    is_active: Optional[bool] = Query(None),
    current_user: User = Depends(get_current_user),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    """List users in the current organization."""
    query = db.query(User).filter(User.organization_id == organization.id)

    if role:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active == is_active)

    total = query.count()
    users = (
        query.order_by(User.last_name, User.first_name)
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    return UserListResponse(
        users=users,
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    current_user: User = Depends(get_current_user),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    return _get_user_or_404(db, organization, user_id)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    current_user: User = Depends(require_admin),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    """
    Create a user in the current organization.

    Omitting the password creates an SSO-only account.
    """
    if _email_taken(db, organization, user_data.email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User with this email already exists"
        )

    new_user = User(
        organization_id=organization.id,
        email=user_data.email,
        password_hash=get_password_hash(user_data.password) if user_data.password else None,
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        role=user_data.role,
        is_active=True
    )
    db.add(new_user)
    db.flush()

    ActivityService(db).log(
        entity_type=AuditEntityType.USER,
        entity_id=new_user.id,
        action="created",
        organization_id=organization.id,
        actor_user_id=current_user.id,
        context={"email": new_user.email, "role": new_user.role.value},
    )
    db.commit()

    logger.info(
        f"User created: {new_user.id} by {current_user.id}",
        extra={"organization_id": organization.id, "user_id": current_user.id}
    )
    return new_user


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    user_data: UserUpdate,
    current_user: User = Depends(get_current_user),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    user = _get_user_or_404(db, organization, user_id)

    if not can_modify_user(current_user, user):
        raise PermissionDenied("Not authorized to modify this user")

    update_data = user_data.model_dump(exclude_unset=True)

    if not current_user.is_admin:
        if "role" in update_data and update_data["role"] != user.role:
            raise PermissionDenied("Only administrators can change user roles")
        if "is_active" in update_data and update_data["is_active"] != user.is_active:
            raise PermissionDenied("Only administrators can activate or deactivate users")

    if "email" in update_data and update_data["email"] != user.email:
        if _email_taken(db, organization, update_data["email"], exclude_id=user.id):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="User with this email already exists"
            )

    changed = {}
    for field, value in update_data.items():
        if getattr(user, field) != value:
            changed[field] = value
            setattr(user, field, value)

    if changed:
        ActivityService(db).log(
            entity_type=AuditEntityType.USER,
            entity_id=user.id,
            action="updated",
            organization_id=organization.id,
            actor_user_id=current_user.id,
            action_description=f"{current_user.full_name} updated {', '.join(sorted(changed))} on user",
            changes={"new_value": {k: getattr(v, "value", v) for k, v in changed.items()}},
        )
    db.commit()

    logger.info(f"User updated: {user.id} by {current_user.id}")
    return user


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: str,
    current_user: User = Depends(require_admin),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    """
    Hard-delete a user.

    Cases, audit entries and attachments that reference the user keep
    existing; their actor columns are set to NULL by the database.
    """
    user = _get_user_or_404(db, organization, user_id)

    if user.id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete your own account"
        )

    db.delete(user)
    db.flush()
    ActivityService(db).log(
        entity_type=AuditEntityType.USER,
        entity_id=user_id,
        action="deleted",
        organization_id=organization.id,
        actor_user_id=current_user.id,
        context={"email": user.email},
    )
    db.commit()

    logger.info(f"User deleted: {user_id} by {current_user.id}")
    return None
