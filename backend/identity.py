from typing import Optional

from backend.errors import AuthorizationError, IdentityRequiredError

GUEST_PREFIX = "guest-"


def is_guest_id(user_id: Optional[str]) -> bool:
    return bool(user_id) and user_id.startswith(GUEST_PREFIX)


def resolve_user_id(auth_user: Optional[str], guest_id: Optional[str]) -> Optional[str]:
    """
    Identity of a request: the authenticated user if present, else a
    well-formed guest id. Anything else is anonymous (None).
    """
    if auth_user:
        return auth_user
    if is_guest_id(guest_id):
        return guest_id
    return None


def require_identity(auth_user: Optional[str], guest_id: Optional[str]) -> str:
    user_id = resolve_user_id(auth_user, guest_id)
    if user_id is None:
        raise IdentityRequiredError("No authenticated user or guest id on request")
    return user_id


def require_same_identity(requested_user_id: str, auth_user: Optional[str], guest_id: Optional[str]) -> str:
    """Only the owner of a progress/stats record may read it"""
    current = require_identity(auth_user, guest_id)
    if current != requested_user_id:
        raise AuthorizationError(f"{current} may not access data of {requested_user_id}")
    return current
