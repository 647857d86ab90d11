"""User settings routes (trading PIN)."""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from trade_chat.api.deps import get_current_user
from trade_chat.db.repo.users_repo import UsersRepo
from trade_chat.core.config import get_settings
from trade_chat.core.security import hash_pin, is_pin_format, verify_pin
from trade_chat.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


class SetPinRequest(BaseModel):
    pin: str = Field(..., min_length=1, max_length=16)
    current_pin: Optional[str] = Field(default=None, max_length=16)


@router.put("/me/pin")
def set_pin(body: SetPinRequest, user: dict = Depends(get_current_user)):
    """Set the trading PIN, or rotate it by supplying the current one."""
    if not is_pin_format(body.pin):
        settings = get_settings()
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"PIN must be {settings.pin_min_length}-{settings.pin_max_length} digits"
        )

    repo = UsersRepo()
    existing = repo.get_pin_hash(user["user_id"])
    if existing and not (body.current_pin and verify_pin(body.current_pin, existing)):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Current PIN is incorrect"
        )

    repo.set_pin_hash(user["user_id"], hash_pin(body.pin))
    logger.info("Trading PIN %s for %s", "rotated" if existing else "set", user["user_id"])
    return {"status": "ok", "rotated": bool(existing)}
