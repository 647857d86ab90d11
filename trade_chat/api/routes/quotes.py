"""Quote lookup routes."""
from fastapi import APIRouter, Depends, HTTPException, status
from trade_chat.agents.schemas import Quote
from trade_chat.agents.trade_parser import resolve_symbol
from trade_chat.api.deps import get_current_user
from trade_chat.services.quotes import get_quote_service

router = APIRouter()


@router.get("/{symbol}", response_model=Quote)
def get_quote(symbol: str, user: dict = Depends(get_current_user)):
    """Current quote for a ticker or company name ("AAPL", "apple").

    Provider failures surface as QUOTE_UNAVAILABLE (503).
    """
    resolved = resolve_symbol(symbol)
    if resolved is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unrecognised stock symbol: {symbol[:20]}"
        )
    return get_quote_service().fetch_quote(resolved)
