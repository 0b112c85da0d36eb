"""Pydantic schemas for API request/response validation"""

from decimal import Decimal
from typing import List, Optional, Union

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """Request body for POST /v1/session/login"""

    client_id: str = Field(..., description="7 or 8 digit client identifier")
    password: str = Field(..., description="8 digit password")
    remember_password: bool = False


class MfaRequest(BaseModel):
    """Request body for POST /v1/session/mfa"""

    code: str = Field(..., min_length=1)


class ChallengeSchema(BaseModel):
    id: str
    type: str
    resolved: bool


class NotificationSchema(BaseModel):
    level: str
    title: str
    description: str = ""


class DueJobSchema(BaseModel):
    id: str
    description: str


class SessionResponse(BaseModel):
    """Response for GET /v1/session and the session actions"""

    state: str
    progress: Optional[int] = None
    description: str
    error: Optional[str] = None
    prefill_client_id: Optional[str] = None
    challenge: Optional[ChallengeSchema] = None
    qr_code: Optional[str] = None
    dca_without_password: bool = False
    due_jobs: List[DueJobSchema] = []
    notifications: List[NotificationSchema] = []


class AccountSchema(BaseModel):
    """Account as shown in the account list"""

    id: str
    name: str
    display_name: str
    kind: str
    balance_cents: int
    bank_name: str
    external: bool
    cash_balance: Optional[Decimal] = None
    clickable: bool
    armed: bool


class AccountsResponse(BaseModel):
    """Response for GET /v1/accounts"""

    accounts: List[AccountSchema]
    total_balance_cents: int
    armed_id: Optional[str] = None


class TransferSchema(BaseModel):
    """Open transfer request and its progress"""

    source_account_id: str
    target_account_id: str
    amount: Optional[Decimal] = None
    reason: str = ""
    progress_step: int
    progress_percent: float
    step_label: str
    in_flight: bool
    error: Optional[str] = None


class SelectResponse(BaseModel):
    """Response for POST /v1/accounts/{id}/select"""

    armed_id: Optional[str] = None
    transfer: Optional[TransferSchema] = None


class TransferSubmitRequest(BaseModel):
    """Request body for POST /v1/transfers"""

    amount: str
    reason: Optional[str] = None


class TransferResultResponse(BaseModel):
    succeeded: bool
    message: str
    transfer: Optional[TransferSchema] = None


class JobCreateRequest(BaseModel):
    """Request body for POST /v1/jobs"""

    account_id: str
    symbol: str
    value: Union[int, str]
    use_amount: bool = True
    schedule_type: str = "monthly"
    day: int = Field(1, ge=1)
    side: str = "buy"


class JobSchema(BaseModel):
    """Scheduled job with its cost and cash annotations"""

    id: str
    schedule: str
    command: str
    next_run: str
    last_run: int
    estimated_cost: Optional[Decimal] = None
    cash_balance: Optional[Decimal] = None
    balance_status: str
    need_cash: Decimal


class OrderRequest(BaseModel):
    """Request body for POST /v1/orders; exactly one of amount or quantity"""

    account_id: str
    symbol: str
    side: str = "buy"
    amount: Optional[Decimal] = None
    quantity: Optional[int] = None


class OrderSchema(BaseModel):
    id: str
    price: Decimal
    account_id: str
    symbol: str
    side: str
    quantity: Optional[int] = None
    amount: Optional[Decimal] = None
    timestamp: Optional[int] = None


class AssetPerformanceSchema(BaseModel):
    symbol: str
    name: str
    quantity: Decimal
    buying_price: Decimal
    start_price: Decimal
    end_price: Decimal
    gain_loss: Decimal
    gain_loss_percent: Decimal


class PerformanceResponse(BaseModel):
    """Response for GET /v1/performance"""

    period: str
    label: str
    total_gain_loss: Decimal
    total_gain_loss_percent: Decimal
    start_balance: Decimal
    end_balance: Decimal
    by_asset: List[AssetPerformanceSchema]
