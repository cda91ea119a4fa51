"""Merchant payout settlement and earnings views.

Settlement sweeps every completed, unpaid payment into `paid` with one
transactional batch write, moving the linked requests to `completed` in the
same transaction. The sweep's own predicate excludes settled rows, so a rerun
with nothing new settles zero.
"""

from collections.abc import Callable
from datetime import datetime, timezone

from rentmatch.common.config import EngineSettings
from rentmatch.common.errors import EngineError, Forbidden
from rentmatch.common.identity import Caller, require_operator
from rentmatch.common.logging import logger
from rentmatch.common.metrics import payout_runs_total, payouts_settled_total
from rentmatch.common.state_machine import COMPLETED, PAID, PAYMENT_COMPLETED, PAYMENT_PAID
from rentmatch.repository.port import RepositoryPort
from rentmatch.services.payouts.schemas import EarningsSummary, PendingPayouts, SettlementResult

ELIGIBLE = {"status": PAYMENT_COMPLETED, "merchant_paid": False}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PayoutService:
    """Operator-triggered payout sweep plus merchant-facing payout views."""

    def __init__(
        self,
        repository: RepositoryPort,
        settings: EngineSettings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self.clock = clock
        self.timeout = settings.repository_timeout_seconds
        self.service_name = settings.service_name

    def settle_pending_payouts(self, caller: Caller) -> SettlementResult:
        """Settle every eligible payment atomically; report the committed count.

        The eligibility predicate is evaluated inside the write itself, so the
        size of the backlog never turns into an id list.
        """

        require_operator(caller)
        payout_date = self.clock()
        try:
            settled = self.repository.settle_payments(
                ELIGIBLE,
                {"merchant_paid": True, "status": PAYMENT_PAID, "merchant_payout_date": payout_date},
                advance_requests=(PAID, COMPLETED),
                timeout=self.timeout,
            )
        except EngineError as exc:
            payout_runs_total.labels(service=self.service_name, outcome=exc.code).inc()
            logger.error("payout sweep failed error=%s", exc.code)
            raise

        if settled.count == 0:
            payout_runs_total.labels(service=self.service_name, outcome="empty").inc()
            logger.info("payout sweep found nothing to settle")
            return SettlementResult(settled_count=0)

        payouts_settled_total.labels(service=self.service_name).inc(settled.count)
        payout_runs_total.labels(service=self.service_name, outcome="settled").inc()
        logger.info("payout sweep settled=%s", settled.count)
        return SettlementResult(
            settled_count=settled.count,
            payout_date=payout_date,
            total_merchant_amount_cents=settled.total_merchant_amount_cents,
        )

    def _business_scope(self, caller: Caller, business_id: str | None) -> str:
        target = business_id or caller.user_id
        if target != caller.user_id and not caller.is_operator:
            raise Forbidden("access denied")
        return target

    def pending_payouts(self, caller: Caller, business_id: str | None = None) -> PendingPayouts:
        """Payments awaiting payout for one business, with totals."""

        target = self._business_scope(caller, business_id)
        filters = {**ELIGIBLE, "business_id": target}
        payments = self.repository.query_payments(filters, timeout=self.timeout)
        summary = self.repository.summarize_payments(filters, timeout=self.timeout)
        return PendingPayouts(business_id=target, pending_payouts=list(payments), summary=summary)

    def earnings(self, caller: Caller, business_id: str | None = None) -> EarningsSummary:
        """Merchant earnings over completed and paid-out payments.

        Storage failures propagate; only a business with no payments at all
        reports `has_data=False`.
        """

        target = self._business_scope(caller, business_id)
        available = self.repository.summarize_payments(
            {"business_id": target, "status": PAYMENT_COMPLETED}, timeout=self.timeout
        )
        paid_out = self.repository.summarize_payments(
            {"business_id": target, "status": PAYMENT_PAID}, timeout=self.timeout
        )
        count = available.count + paid_out.count
        return EarningsSummary(
            business_id=target,
            has_data=count > 0,
            payment_count=count,
            total_merchant_amount_cents=available.total_merchant_amount_cents
            + paid_out.total_merchant_amount_cents,
            available_balance_cents=available.total_merchant_amount_cents,
            paid_out_cents=paid_out.total_merchant_amount_cents,
        )
