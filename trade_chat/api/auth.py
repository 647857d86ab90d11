"""Authentication endpoints."""
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field
from trade_chat.core.security import create_access_token
from trade_chat.core.config import get_settings
from trade_chat.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


class DevTokenRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=100)
    email: str = Field(default="dev@local", min_length=1, max_length=255)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int = 3600  # seconds


@router.post("/dev-token", response_model=TokenResponse)
async def dev_token(req: DevTokenRequest):
    """Issue a JWT for any user id. Only available with ENABLE_DEV_AUTH=true."""
    settings = get_settings()
    if not settings.enable_dev_auth:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Not found"
        )

    token = create_access_token({"sub": req.user_id, "user_id": req.user_id, "email": req.email})
    logger.info("Issued dev token for %s", req.user_id)
    return TokenResponse(access_token=token, expires_in=settings.jwt_exp_minutes * 60)
