"""FastAPI dependencies: get_current_user_id, require_system_caller.

Usage in any protected router:
    from src.sw_gateway.auth.dependencies import get_current_user_id

    @router.get("/protected")
    async def protected(user_id: Annotated[str, Depends(get_current_user_id)]):
        ...
"""

from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.sw_common.errors import InvalidCredentialsError, SystemCallerRequiredError
from src.sw_gateway.auth.jwt_handler import decode_token, is_system_token

# auto_error=False so a missing header produces the same 401 as a bad token
bearer_scheme = HTTPBearer(auto_error=False)

# Reusable 401 exception with WWW-Authenticate header (OAuth2 standard)
_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


async def get_token_payload(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict[str, Any]:
    """Validate the Bearer token and return its claims.

    Raises HTTP 401 if the token is missing, invalid, or expired.
    """
    if credentials is None:
        raise _CREDENTIALS_EXCEPTION
    try:
        return decode_token(credentials.credentials, expected_type="access")
    except InvalidCredentialsError:
        raise _CREDENTIALS_EXCEPTION from None


async def get_current_user_id(
    payload: dict[str, Any] = Depends(get_token_payload),
) -> str:
    return str(payload["sub"])


async def require_system_caller(
    payload: dict[str, Any] = Depends(get_token_payload),
) -> str:
    """Only the scheduler's service token may trigger maintenance endpoints."""
    if not is_system_token(payload):
        raise SystemCallerRequiredError()
    return str(payload["sub"])
