"""Transfer endpoints - submit, inspect and close the open transfer"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from bourso_desk.api.dependencies import DeskContext, get_desk_context, get_request_id, to_http_error
from bourso_desk.api.v1.schemas import TransferResultResponse, TransferSchema, TransferSubmitRequest
from bourso_desk.domain.exceptions import DomainException
from bourso_desk.domain.transfers import step_label
from bourso_desk.services.transfer import TransferExecutor

router = APIRouter()


def transfer_schema(executor: TransferExecutor) -> Optional[TransferSchema]:
    request = executor.request
    if request is None:
        return None
    return TransferSchema(
        source_account_id=request.source_account_id,
        target_account_id=request.target_account_id,
        amount=request.amount,
        reason=request.reason,
        progress_step=request.progress_step,
        progress_percent=executor.progress_percent,
        step_label=step_label(request.progress_step),
        in_flight=executor.in_flight,
        error=executor.error,
    )


@router.get("/transfers/current", response_model=TransferSchema)
async def get_current_transfer(ctx: DeskContext = Depends(get_desk_context)):
    transfer = transfer_schema(ctx.executor)
    if transfer is None:
        raise HTTPException(status_code=404, detail="No transfer is open")
    return transfer


@router.post("/transfers", response_model=TransferResultResponse)
async def submit_transfer(
    body: TransferSubmitRequest,
    request: Request,
    ctx: DeskContext = Depends(get_desk_context),
):
    """
    Submit the open transfer.

    Validation errors are 422 and leave the request untouched. An adapter
    failure is reported in the body with the request kept for a retry.
    """
    try:
        succeeded = await ctx.executor.submit(body.amount, body.reason)
    except DomainException as e:
        logging.warning(f"Transfer not submitted: {e}", extra={"request_id": get_request_id(request)})
        raise to_http_error(e) from e

    if succeeded:
        return TransferResultResponse(succeeded=True, message=ctx.executor.confirmation or "Transfer completed")
    return TransferResultResponse(
        succeeded=False,
        message=ctx.executor.error or "Transfer failed",
        transfer=transfer_schema(ctx.executor),
    )


@router.delete("/transfers/current", status_code=204)
async def close_transfer(ctx: DeskContext = Depends(get_desk_context)):
    try:
        ctx.executor.close()
    except DomainException as e:
        raise to_http_error(e) from e
