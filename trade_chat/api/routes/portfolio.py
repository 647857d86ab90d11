"""Portfolio API routes."""
import asyncio
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from trade_chat.api.deps import get_current_user
from trade_chat.db.repo.transactions_repo import TransactionsRepo
from trade_chat.services.notifications.pubsub import event_pubsub
from trade_chat.services.trade_chat import get_trade_chat_service
from trade_chat.core.utils import json_dumps

router = APIRouter()

HEARTBEAT_SECONDS = 15.0


def _portfolio_id_for(user: dict) -> str:
    service = get_trade_chat_service()
    return service.portfolios_repo.get_or_create(user["user_id"])["portfolio_id"]


@router.get("")
def get_portfolio(user: dict = Depends(get_current_user)):
    """Aggregate totals plus current holdings."""
    service = get_trade_chat_service()
    portfolio_id = _portfolio_id_for(user)
    aggregate = service.aggregate_store.current_aggregate(portfolio_id)
    holdings = service.aggregate_store.holdings(portfolio_id)
    return {
        "portfolio_id": portfolio_id,
        "aggregate": aggregate.model_dump(mode="json"),
        "holdings": [
            {**h.model_dump(mode="json"), "market_value": str(h.market_value)}
            for h in holdings
        ],
    }


@router.get("/transactions")
def get_transactions(
    limit: int = Query(100, ge=1, le=500),
    user: dict = Depends(get_current_user)
):
    """Ledger entries, newest first."""
    portfolio_id = _portfolio_id_for(user)
    return {
        "portfolio_id": portfolio_id,
        "transactions": TransactionsRepo().list_for_portfolio(portfolio_id, limit=limit),
    }


@router.get("/stream")
async def stream_portfolio(request: Request, user: dict = Depends(get_current_user)):
    """Server-Sent Events of trade_executed / portfolio_changed for this user's portfolio."""
    portfolio_id = await asyncio.to_thread(_portfolio_id_for, user)

    async def event_generator():
        queue = await event_pubsub.subscribe(portfolio_id)
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_SECONDS)
                    yield f"event: {event.get('type', 'message')}\ndata: {json_dumps(event)}\n\n"
                except asyncio.TimeoutError:
                    yield ": heartbeat\n\n"
        finally:
            await event_pubsub.unsubscribe(portfolio_id, queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"}
    )
