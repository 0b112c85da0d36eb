"""DCA job and order endpoints"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Request

from bourso_desk.api.dependencies import DeskContext, get_desk_context, get_request_id, to_http_error
from bourso_desk.api.v1.schemas import JobCreateRequest, JobSchema, OrderRequest, OrderSchema
from bourso_desk.domain.exceptions import DomainException, ValidationFailure
from bourso_desk.domain.jobs import JobAnnotation
from bourso_desk.domain.models import Amount, Order, OrderSize, Quantity

router = APIRouter()


def job_schema(annotation: JobAnnotation) -> JobSchema:
    return JobSchema(
        id=annotation.job.id,
        schedule=annotation.schedule,
        command=annotation.command,
        next_run=annotation.next_run,
        last_run=annotation.job.last_run,
        estimated_cost=annotation.balance.estimated_cost,
        cash_balance=annotation.balance.cash_balance,
        balance_status=annotation.balance.status.value,
        need_cash=annotation.need_cash,
    )


def order_schema(order: Order) -> OrderSchema:
    size = order.args.size
    return OrderSchema(
        id=order.id,
        price=order.price,
        account_id=order.args.account_id,
        symbol=order.args.symbol,
        side=order.args.side,
        quantity=size.value if isinstance(size, Quantity) else None,
        amount=size.value if isinstance(size, Amount) else None,
        timestamp=order.timestamp,
    )


@router.get("/jobs", response_model=List[JobSchema])
async def list_jobs(ctx: DeskContext = Depends(get_desk_context)):
    """Listed jobs with description, next run, estimated cost and cash sufficiency"""
    await ctx.board.load_jobs()
    return [job_schema(a) for a in ctx.board.annotations()]


@router.post("/jobs", response_model=JobSchema, status_code=201)
async def create_job(body: JobCreateRequest, request: Request, ctx: DeskContext = Depends(get_desk_context)):
    try:
        job = await ctx.board.add_job(
            account_id=body.account_id,
            symbol=body.symbol,
            value=body.value,
            use_amount=body.use_amount,
            schedule_type=body.schedule_type,
            day=body.day,
            side=body.side,
        )
    except DomainException as e:
        logging.warning(f"Job not created: {e}", extra={"request_id": get_request_id(request)})
        raise to_http_error(e) from e
    annotation = next(a for a in ctx.board.annotations() if a.job.id == job.id)
    return job_schema(annotation)


@router.delete("/jobs/{job_id}", status_code=204)
async def delete_job(job_id: str, ctx: DeskContext = Depends(get_desk_context)):
    try:
        await ctx.board.delete_job(job_id)
    except DomainException as e:
        raise to_http_error(e) from e


@router.post("/jobs/{job_id}/run", response_model=OrderSchema)
async def run_job(job_id: str, ctx: DeskContext = Depends(get_desk_context)):
    """Run a job now; this also confirms a due-job prompt with the same id"""
    try:
        order = await ctx.board.run_job(job_id)
    except DomainException as e:
        raise to_http_error(e) from e
    return order_schema(order)


@router.post("/jobs/due/{job_id}/skip", status_code=204)
async def skip_due_job(job_id: str, ctx: DeskContext = Depends(get_desk_context)):
    try:
        ctx.board.skip_due_job(job_id)
    except DomainException as e:
        raise to_http_error(e) from e


@router.get("/orders", response_model=List[OrderSchema])
async def list_orders(ctx: DeskContext = Depends(get_desk_context)):
    return [order_schema(o) for o in ctx.board.orders()]


@router.post("/orders", response_model=OrderSchema, status_code=201)
async def place_order(body: OrderRequest, ctx: DeskContext = Depends(get_desk_context)):
    try:
        if (body.amount is None) == (body.quantity is None):
            raise ValidationFailure("Either quantity or amount should be set", field="amount")
        size: OrderSize = Amount(body.amount) if body.amount is not None else Quantity(body.quantity)
        order = await ctx.board.place_order(body.side, body.symbol, body.account_id, size)
    except DomainException as e:
        raise to_http_error(e) from e
    return order_schema(order)
