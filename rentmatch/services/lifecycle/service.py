"""Rental request lifecycle.

Owns the request state machine: who may move a request, from which state, and
the payment-completion event that moves it to `paid`. Every write is
conditioned on the status that was read; a lost race is retried from a fresh
read with the guard re-checked.
"""

from rentmatch.common.config import EngineSettings
from rentmatch.common.errors import (
    BadRequest,
    ConflictError,
    EngineError,
    Forbidden,
    InvalidTransition,
    ValidationError,
)
from rentmatch.common.identity import PAYMENT_PROVIDER, Caller
from rentmatch.common.logging import logger
from rentmatch.common.metrics import (
    duplicate_events_skipped_total,
    request_transitions_total,
    retries_total,
    transition_conflicts_total,
)
from rentmatch.common.state_machine import (
    ACCEPTED,
    ACTION_TARGETS,
    PAID,
    PAYMENT_COMPLETED,
    validate_payment_transition,
    validate_transition,
)
from rentmatch.repository.port import RepositoryPort
from rentmatch.repository.records import Message, Payment, RentalRequest
from rentmatch.services.lifecycle.schemas import Order

CLIENT = "client"
ITEM_AVAILABLE = "available"

# Actions only the item owner may take; `cancel` is open to both parties.
OWNER_ACTIONS = frozenset({"accept", "decline"})


def commission_split(amount_cents: int, rate_bps: int) -> tuple[int, int]:
    """Return `(commission, merchant_amount)`; commission rounds half up to the cent."""

    commission = (amount_cents * rate_bps + 5_000) // 10_000
    return commission, amount_cents - commission


class LifecycleService:
    """Creates rental requests and drives them through their states."""

    def __init__(self, repository: RepositoryPort, settings: EngineSettings) -> None:
        self.repository = repository
        self.commission_rate_bps = settings.commission_rate_bps
        self.retry_limit = settings.transition_retry_limit
        self.timeout = settings.repository_timeout_seconds
        self.service_name = settings.service_name

    def _count(self, action: str, outcome: str) -> None:
        request_transitions_total.labels(service=self.service_name, action=action, outcome=outcome).inc()

    def _retrying(self, action: str, attempt_fn):
        """Run one read-validate-write attempt, retrying only on `ConflictError`."""

        attempt = 0
        while True:
            attempt += 1
            try:
                result = attempt_fn()
            except ConflictError:
                transition_conflicts_total.labels(service=self.service_name, action=action).inc()
                if attempt > self.retry_limit:
                    self._count(action, ConflictError.code)
                    raise
                retries_total.labels(service=self.service_name, dependency="repository").inc()
                logger.warning("transition conflict action=%s attempt=%s, re-reading", action, attempt)
                continue
            except EngineError as exc:
                self._count(action, exc.code)
                raise
            self._count(action, "applied")
            return result

    @staticmethod
    def _is_party(request: RentalRequest, caller: Caller) -> bool:
        return caller.user_id in (request.requester_id, request.owner_id)

    def _readable(self, request_id: str, caller: Caller) -> RentalRequest:
        request = self.repository.get_request(request_id, timeout=self.timeout)
        if not self._is_party(request, caller) and not caller.is_operator:
            raise Forbidden("access denied")
        return request

    def create_request(self, caller: Caller, item_id: str, message: str | None) -> RentalRequest:
        """Open a `pending` request against an available item with its first message."""

        content = (message or "").strip()
        if not item_id:
            raise BadRequest("item_id is required")
        if not content:
            raise ValidationError("message must not be empty")

        profile = self.repository.get_profile(caller.user_id, timeout=self.timeout)
        if profile.role != CLIENT or not profile.active:
            raise Forbidden("a client profile is required to request items")
        item = self.repository.get_item(item_id, timeout=self.timeout)
        if item.status != ITEM_AVAILABLE:
            raise InvalidTransition(f"item {item_id} is not available")
        if item.owner_id == caller.user_id:
            raise ValidationError("cannot request your own item")

        request = self.repository.create_request(
            {"item_id": item.id, "requester_id": caller.user_id, "owner_id": item.owner_id},
            content,
            timeout=self.timeout,
        )
        self._count("create", "applied")
        logger.info("request created request_id=%s item_id=%s", request.id, item.id)
        return request

    def get_order(self, request_id: str, caller: Caller) -> Order:
        request = self._readable(request_id, caller)
        payment = self.repository.get_payment_for_request(request_id, timeout=self.timeout)
        return Order.from_records(request, payment)

    def transition_request(self, request_id: str, caller: Caller, action: str) -> RentalRequest:
        """Apply a party action (`accept`, `decline`, `cancel`)."""

        target = ACTION_TARGETS.get(action)
        if target is None:
            raise BadRequest(f"unknown action: {action}")

        def attempt() -> RentalRequest:
            current = self.repository.get_request(request_id, timeout=self.timeout)
            if not self._is_party(current, caller):
                raise Forbidden("access denied")
            if action in OWNER_ACTIONS and caller.user_id != current.owner_id:
                raise Forbidden(f"only the item owner may {action}")
            validate_transition(current.status, target)
            return self.repository.update_request_status(
                request_id, current.status, target, timeout=self.timeout
            )

        updated = self._retrying(action, attempt)
        logger.info("request transitioned request_id=%s action=%s status=%s", request_id, action, updated.status)
        return updated

    def open_payment(self, request_id: str, caller: Caller, amount_cents: int) -> Payment:
        """Record a `pending` payment when the requester starts checkout."""

        if amount_cents <= 0:
            raise ValidationError("amount_cents must be positive")
        request = self.repository.get_request(request_id, timeout=self.timeout)
        if caller.user_id != request.requester_id:
            raise Forbidden("only the requester may pay for a request")
        if request.status != ACCEPTED:
            raise InvalidTransition(f"cannot open payment for a {request.status} request")
        if self.repository.get_payment_for_request(request_id, timeout=self.timeout) is not None:
            raise InvalidTransition(f"payment already opened for request {request_id}")

        commission, merchant_amount = commission_split(amount_cents, self.commission_rate_bps)
        payment = self.repository.create_payment(
            {
                "request_id": request_id,
                "payer_id": request.requester_id,
                "business_id": request.owner_id,
                "amount_cents": amount_cents,
                "commission_cents": commission,
                "merchant_amount_cents": merchant_amount,
            },
            timeout=self.timeout,
        )
        logger.info("payment opened request_id=%s payment_id=%s", request_id, payment.id)
        return payment

    def record_payment_completed(
        self, caller: Caller, request_id: str, amount_cents: int, provider_transaction_id: str
    ) -> RentalRequest:
        """Handle the payment collaborator's completion notice.

        A notice whose transaction id is already recorded is skipped and the
        current request returned.
        """

        if PAYMENT_PROVIDER not in caller.capabilities:
            raise Forbidden("payment provider capability required")
        if amount_cents <= 0:
            raise ValidationError("amount_cents must be positive")

        def attempt() -> RentalRequest:
            seen = self.repository.find_payment_by_transaction(provider_transaction_id, timeout=self.timeout)
            if seen is not None:
                if seen.request_id != request_id:
                    raise ValidationError("transaction belongs to a different request")
                logger.info(
                    "duplicate event skipped topic=payments.completed transaction_id=%s",
                    provider_transaction_id,
                )
                duplicate_events_skipped_total.labels(service=self.service_name, topic="payments.completed").inc()
                return self.repository.get_request(request_id, timeout=self.timeout)

            current = self.repository.get_request(request_id, timeout=self.timeout)
            validate_transition(current.status, PAID)
            existing = self.repository.get_payment_for_request(request_id, timeout=self.timeout)
            if existing is not None:
                validate_payment_transition(existing.status, PAYMENT_COMPLETED)

            commission, merchant_amount = commission_split(amount_cents, self.commission_rate_bps)
            self.repository.complete_payment(
                request_id,
                {
                    "payer_id": current.requester_id,
                    "business_id": current.owner_id,
                    "amount_cents": amount_cents,
                    "commission_cents": commission,
                    "merchant_amount_cents": merchant_amount,
                    "provider_transaction_id": provider_transaction_id,
                },
                timeout=self.timeout,
            )
            logger.info("payment completed request_id=%s transaction_id=%s", request_id, provider_transaction_id)
            return self.repository.get_request(request_id, timeout=self.timeout)

        return self._retrying("payment_completed", attempt)

    def post_message(self, request_id: str, caller: Caller, content: str | None) -> Message:
        text = (content or "").strip()
        if not text:
            raise ValidationError("message must not be empty")
        request = self.repository.get_request(request_id, timeout=self.timeout)
        if not self._is_party(request, caller):
            raise Forbidden("access denied")
        return self.repository.append_message(request_id, caller.user_id, text, timeout=self.timeout)

    def list_messages(self, request_id: str, caller: Caller) -> list[Message]:
        self._readable(request_id, caller)
        return list(self.repository.list_messages(request_id, timeout=self.timeout))
