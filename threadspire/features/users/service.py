"""
User domain service.
- get_or_create_user(user_id)
- get_user(user_id)
- get_user_profile(user_id)
- update_profile(caller_id, request)
"""

from datetime import datetime, timezone
from typing import Optional

from threadspire.core.errors import NotFoundError, PermissionError, ValidationError
from threadspire.core.logging import log_event
from threadspire.features.store import get_store
from threadspire.features.store.retry import retry_on_conflict
from threadspire.models.user import UpdateProfileRequest, User, UserProfile

MIN_NAME_LENGTH = 2


def require_caller(caller_id: Optional[str], action: str = "perform this action") -> str:
    """Mutations need an identity; anonymous callers are forbidden."""
    if not caller_id:
        raise PermissionError(f"You must be signed in to {action}")
    return caller_id


def normalize_display_name(user_id: str, display_name: Optional[str]) -> str:
    return User.normalized_display_name(user_id, display_name)


def get_user(user_id: str) -> Optional[User]:
    return get_store().users.find_by_id(user_id)


def get_or_create_user(user_id: str, name: Optional[str] = None, email: Optional[str] = None) -> User:
    """Idempotent upsert; an existing user is returned untouched."""
    existing = get_user(user_id)
    if existing:
        return existing

    now = datetime.now(timezone.utc)
    user = User(
        user_id=user_id,
        name=normalize_display_name(user_id, name),
        email=email,
        created_at=now,
        updated_at=now,
    )
    try:
        created = get_store().users.insert(user)
    except ValueError:
        # Lost a concurrent first-request race; the other insert wins
        return get_user(user_id)

    log_event("info", "user.created", user_id=user_id, event_type="user.created")
    return created


def get_user_profile(user_id: str) -> UserProfile:
    user = get_user(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return UserProfile(
        user_id=user.user_id,
        name=user.display_name,
        bio=user.bio,
        avatar=user.avatar,
        created_at=user.created_at,
    )


def update_profile(caller_id: Optional[str], request: UpdateProfileRequest) -> UserProfile:
    """Update name/bio/avatar. Blank fields are left unchanged."""
    caller_id = require_caller(caller_id, "update your profile")

    name = (request.name or "").strip()
    if name and len(name) < MIN_NAME_LENGTH:
        raise ValidationError(f"Name must be at least {MIN_NAME_LENGTH} characters")

    changes = {}
    if name:
        changes["name"] = name
    if request.bio is not None and request.bio.strip():
        changes["bio"] = request.bio.strip()
    if request.avatar is not None and request.avatar.strip():
        changes["avatar"] = request.avatar.strip()

    get_or_create_user(caller_id)
    users = get_store().users

    def _apply() -> User:
        current = users.find_by_id(caller_id)
        if current is None:
            raise NotFoundError("User not found")
        if not changes:
            return current
        return users.save(current.model_copy(update={**changes, "updated_at": datetime.now(timezone.utc)}))

    retry_on_conflict(_apply, collection=users.name)
    log_event(
        "info",
        "user.profile_updated",
        user_id=caller_id,
        event_type="user.profile_updated",
        extra={"fields": ",".join(sorted(changes))},
    )
    return get_user_profile(caller_id)
