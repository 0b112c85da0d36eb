"""GET /v1/performance - gain/loss of open positions over a period"""

from fastapi import APIRouter, Depends, Query

from bourso_desk.api.dependencies import DeskContext, get_desk_context, to_http_error
from bourso_desk.api.v1.schemas import AssetPerformanceSchema, PerformanceResponse
from bourso_desk.domain.exceptions import DomainException
from bourso_desk.domain.market import DEFAULT_PERIOD, PERIOD_LABELS

router = APIRouter()


@router.get("/performance", response_model=PerformanceResponse)
async def get_performance(
    period: str = Query(DEFAULT_PERIOD, description="1d, 1m, 6m or 1y"),
    ctx: DeskContext = Depends(get_desk_context),
):
    try:
        summary = await ctx.board.performance(period)
    except DomainException as e:
        raise to_http_error(e) from e

    return PerformanceResponse(
        period=period,
        label=PERIOD_LABELS[period],
        total_gain_loss=summary.total_gain_loss,
        total_gain_loss_percent=summary.total_gain_loss_percent,
        start_balance=summary.start_balance,
        end_balance=summary.end_balance,
        by_asset=[
            AssetPerformanceSchema(
                symbol=a.symbol,
                name=a.name,
                quantity=a.quantity,
                buying_price=a.buying_price,
                start_price=a.start_price,
                end_price=a.end_price,
                gain_loss=a.gain_loss,
                gain_loss_percent=a.gain_loss_percent,
            )
            for a in summary.by_asset
        ],
    )
