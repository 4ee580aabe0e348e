"""FastAPI dependencies for the caller's identity.

Authentication is owned by the surrounding application, which forwards the
authenticated user id in the ``X-User-Id`` header.
"""

from fastapi import Header

from questlog.errors import UnauthorizedError, ValidationError
from questlog.validation import require_uuid


def get_current_user_id(x_user_id: str = Header(default="", alias="X-User-Id")) -> str:
    """Return the caller's user id.

    Raises:
        UnauthorizedError: If the header is missing or not a UUID
    """
    if not x_user_id:
        raise UnauthorizedError("Not authenticated")
    try:
        return require_uuid(x_user_id, "user_id")
    except ValidationError:
        raise UnauthorizedError("Invalid user id")
