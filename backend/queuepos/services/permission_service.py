# Overview: Role-based permission checks and the security audit trail.

"""
Permission Checking and Security Event Logging

- Fail closed: a permission must be granted by the user's role
- Denials are logged to security_events; grants are not
- Superusers hold every permission
"""

from ..errors import AuthorizationError, NotFoundError
from ..extensions import db
from ..models import SecurityEvent, User
from ..permissions import DEFAULT_ROLE_PERMISSIONS, get_all_permission_codes
from queuepos.time_utils import utcnow


class PermissionDeniedError(AuthorizationError):
    """Raised when user lacks required permission."""
    pass


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    shop_id: int | None = None,
) -> SecurityEvent:
    """
    Append to the security audit trail.

    event_type examples: PERMISSION_DENIED, LOGIN_FAILED, LOGIN, LOGOUT,
    CROSS_SHOP_ACCESS_DENIED.
    """
    event = SecurityEvent(
        user_id=user_id,
        shop_id=shop_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
        occurred_at=utcnow(),
    )
    db.session.add(event)
    db.session.commit()
    return event


def get_user_permissions(user: User) -> set[str]:
    if user.is_superuser:
        return set(get_all_permission_codes())
    return set(DEFAULT_ROLE_PERMISSIONS.get(user.role, ()))


def user_has_permission(user: User, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user)


def require_permission(
    user: User,
    permission_code: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """Raise PermissionDeniedError (after logging the denial) unless granted."""
    if user_has_permission(user, permission_code):
        return

    log_security_event(
        user_id=user.id,
        shop_id=user.shop_id,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=resource,
        action=permission_code,
        reason=f"Role {user.role!r} lacks {permission_code}",
        ip_address=ip_address,
        user_agent=user_agent,
    )
    raise PermissionDeniedError(
        f"Permission denied: {permission_code}",
        details={"permission": permission_code},
    )


def assert_shop_access(user: User, shop_id: int) -> None:
    """Shops outside the user's scope look exactly like missing shops."""
    if user.is_superuser or user.shop_id == shop_id:
        return
    log_security_event(
        user_id=user.id,
        shop_id=user.shop_id,
        event_type="CROSS_SHOP_ACCESS_DENIED",
        success=False,
        resource=f"shop:{shop_id}",
        reason="Shop outside user scope",
    )
    raise NotFoundError("Shop not found", details={"shop_id": shop_id})
