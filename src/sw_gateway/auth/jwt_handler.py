"""JWT bearer token verification.

Tokens are issued by the external auth service; this core only verifies them.
HS256 with the shared JWT_SECRET. Claims used here:
  sub   - account id of the caller
  type  - must be "access"
  role  - optional; "system" marks the scheduler's service token
"""

from typing import Any

from jose import JWTError, jwt

from config.settings import settings
from src.sw_common.errors import InvalidCredentialsError

_ALGORITHM = settings.JWT_ALGORITHM  # "HS256"

SYSTEM_ROLE = "system"


def decode_token(token: str, expected_type: str = "access") -> dict[str, Any]:
    """Decode and validate a JWT token.

    Raises:
        InvalidCredentialsError: signature invalid, token expired, or the
            `type` claim is not `expected_type`.
    """
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[_ALGORITHM],  # Explicit list prevents algorithm confusion
        )
    except JWTError:
        raise InvalidCredentialsError() from None

    if payload.get("type") != expected_type:
        raise InvalidCredentialsError()
    if not payload.get("sub"):
        raise InvalidCredentialsError()
    return payload


def is_system_token(payload: dict[str, Any]) -> bool:
    return payload.get("role") == SYSTEM_ROLE
