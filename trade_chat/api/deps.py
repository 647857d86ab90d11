"""FastAPI dependencies."""
from typing import Optional
from fastapi import Depends, HTTPException, status, Header, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from trade_chat.core.security import decode_access_token
from trade_chat.core.config import get_settings

security = HTTPBearer(auto_error=False)

DEV_SECRET_KEY = "dev-secret-key-change-in-production"


async def get_current_user(
    x_dev_user: Optional[str] = Header(None, alias="X-Dev-User"),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    request: Request = None
) -> dict:
    """
    Get current user from JWT or dev header.

    The JWT subject is authoritative. X-Dev-User is only honoured while the
    default dev secret is in use, and ?user=... is accepted for SSE
    (EventSource cannot set custom headers) under the same condition.
    """
    settings = get_settings()

    # Test auth bypass (pytest only)
    if settings.test_auth_bypass:
        return {"user_id": x_dev_user or "test-user", "email": "test@test.com"}

    dev_mode = settings.api_secret_key == DEV_SECRET_KEY
    if dev_mode and x_dev_user:
        return {"user_id": x_dev_user, "email": "dev@local"}
    if dev_mode and request is not None:
        qs_user = request.query_params.get("user")
        if qs_user:
            return {"user_id": qs_user, "email": "dev@local"}

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token"
        )

    user_id = payload.get("user_id") or payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing required claim (user_id)"
        )

    if request is not None:
        request.state.user_id = user_id

    return {"user_id": user_id, "email": payload.get("email")}
