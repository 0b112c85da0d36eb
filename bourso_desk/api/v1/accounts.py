"""Account endpoints - list, refresh and two-click transfer selection"""

from fastapi import APIRouter, Depends

from bourso_desk.api.dependencies import DeskContext, get_desk_context
from bourso_desk.api.v1.schemas import AccountSchema, AccountsResponse, SelectResponse
from bourso_desk.api.v1.transfers import transfer_schema
from bourso_desk.domain.accounts import total_balance_cents

router = APIRouter()


def accounts_response(ctx: DeskContext) -> AccountsResponse:
    accounts = ctx.session.accounts
    selection = ctx.selection
    return AccountsResponse(
        accounts=[
            AccountSchema(
                id=a.id,
                name=a.name,
                display_name=ctx.session.display_name(a),
                kind=a.kind.value,
                balance_cents=a.balance_cents,
                bank_name=a.bank_name,
                external=a.is_external,
                cash_balance=a.cash_balance,
                clickable=selection.is_clickable(a, accounts),
                armed=a.id == selection.armed_id,
            )
            for a in accounts
        ],
        total_balance_cents=total_balance_cents(accounts),
        armed_id=selection.armed_id,
    )


@router.get("/accounts", response_model=AccountsResponse)
async def list_accounts(ctx: DeskContext = Depends(get_desk_context)):
    return accounts_response(ctx)


@router.post("/accounts/refresh", response_model=AccountsResponse)
async def refresh_accounts(ctx: DeskContext = Depends(get_desk_context)):
    """Re-fetch accounts and cash; failures show up as notifications"""
    await ctx.session.refresh()
    return accounts_response(ctx)


@router.post("/accounts/{account_id}/select", response_model=SelectResponse)
async def select_account(account_id: str, ctx: DeskContext = Depends(get_desk_context)):
    """Arm, disarm, or pick the target; a picked target opens a transfer"""
    ctx.selection.click(account_id, ctx.session.accounts)
    return SelectResponse(armed_id=ctx.selection.armed_id, transfer=transfer_schema(ctx.executor))
