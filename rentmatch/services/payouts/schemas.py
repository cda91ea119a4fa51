"""API schemas for merchant payout endpoints."""

from datetime import datetime

from pydantic import BaseModel

from rentmatch.repository.records import Payment, PaymentTotals


class SettlementResult(BaseModel):
    settled_count: int
    payout_date: datetime | None = None
    total_merchant_amount_cents: int = 0


class PendingPayouts(BaseModel):
    business_id: str
    pending_payouts: list[Payment]
    summary: PaymentTotals


class EarningsSummary(BaseModel):
    """Merchant earnings; `has_data` is false when the business has no payments yet."""

    business_id: str
    has_data: bool
    payment_count: int = 0
    total_merchant_amount_cents: int = 0
    available_balance_cents: int = 0
    paid_out_cents: int = 0
