"""Trade statistics endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from trade_spine.domains.trades.service import TradeService
from trade_spine.errors import InvalidInputError, NotFoundError, TradeSpineError
from trade_spine.logging import get_logger

router = APIRouter()

logger = get_logger(__name__)


# -------------------------------------------------------------------------
# Schemas
# -------------------------------------------------------------------------


class AggregatedResponse(BaseModel):
    """Highest price and busiest day for one ticker."""

    ticker: str = Field(..., description="Instrument code, e.g. PETR4")
    max_range_value: float = Field(..., description="Highest single trade price in the window")
    max_daily_volume: int = Field(..., description="Largest per-day traded quantity in the window")


# -------------------------------------------------------------------------
# Dependencies
# -------------------------------------------------------------------------


def get_trade_service(request: Request) -> TradeService:
    gateway = request.app.state.gateway
    if gateway is None:
        raise HTTPException(status_code=503, detail="Database not available")
    return TradeService(gateway)


# -------------------------------------------------------------------------
# Endpoints
# -------------------------------------------------------------------------


@router.get("/aggregated", response_model=AggregatedResponse)
def get_aggregated(
    ticker: str | None = Query(None, description="Instrument code (required)"),
    data_inicio: str | None = Query(
        None, description="Start date YYYY-MM-DD; defaults to the last 7 business days"
    ),
    service: TradeService = Depends(get_trade_service),
):
    """
    Aggregated statistics for a ticker since ``data_inicio``.

    - 400 when ``ticker`` is missing or the date is malformed
    - 404 when no trades match
    """
    if not ticker or not ticker.strip():
        raise HTTPException(status_code=400, detail="Parameter 'ticker' is required.")

    try:
        result = service.retrieve_aggregated(ticker, data_inicio)
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except NotFoundError:
        raise HTTPException(
            status_code=404,
            detail="No data found for the given ticker and period.",
        )
    except TradeSpineError as e:
        logger.error("aggregate_failed", ticker=ticker, **e.to_dict())
        raise HTTPException(status_code=500, detail=f"Internal error querying data: {e.message}")

    return AggregatedResponse(**result.to_dict())
