"""SQLAlchemy implementation of the repository port.

Each call runs in its own session/transaction. Storage errors are translated
at this boundary so callers only ever see engine errors.
"""

from collections.abc import Sequence
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from rentmatch.common.errors import ConflictError, EngineError, InternalError, NotFound, ValidationError
from rentmatch.common.logging import logger
from rentmatch.common.state_machine import ACCEPTED, PAID, PAYMENT_COMPLETED, PAYMENT_PENDING, PENDING
from rentmatch.repository.models import ItemRow, MessageRow, PaymentRow, ProfileRow, RequestRow
from rentmatch.repository.port import RepositoryPort
from rentmatch.repository.records import (
    Item,
    Message,
    Payment,
    PaymentTotals,
    Profile,
    RentalRequest,
)


def _conditions(model, filters: dict | None) -> list:
    """Translate `{column: value, column__in: [...]}` into SQL conditions."""

    conditions = []
    for key, value in (filters or {}).items():
        name, _, op = key.partition("__")
        if name not in model.__table__.c:
            raise ValidationError(f"unknown filter field: {name}")
        column = getattr(model, name)
        if op == "in":
            conditions.append(column.in_(list(value)))
        elif op:
            raise ValidationError(f"unsupported filter operator: {op}")
        else:
            conditions.append(column == value)
    return conditions


class SqlRepository(RepositoryPort):
    """Repository backed by a SQLAlchemy session factory."""

    def __init__(self, session_factory, default_timeout: float | None = None) -> None:
        self.session_factory = session_factory
        self.default_timeout = default_timeout

    @contextmanager
    def _session(self, timeout: float | None):
        db = self.session_factory()
        try:
            effective = timeout if timeout is not None else self.default_timeout
            if effective and db.get_bind().dialect.name == "postgresql":
                # Transaction-local, so a timed-out statement rolls back with it.
                db.execute(
                    select(func.set_config("statement_timeout", str(int(effective * 1000)), True))
                )
            yield db
        except EngineError:
            db.rollback()
            raise
        except IntegrityError as exc:
            db.rollback()
            logger.warning("repository integrity conflict: %s", exc.orig)
            raise ConflictError("conflicting write") from exc
        except OperationalError as exc:
            db.rollback()
            logger.error("repository operational error: %s", exc.orig)
            raise InternalError("storage unavailable", retryable=True) from exc
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("repository failure")
            raise InternalError("storage failure") from exc
        finally:
            db.close()

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def get_profile(self, profile_id: str, *, timeout: float | None = None) -> Profile:
        with self._session(timeout) as db:
            row = db.get(ProfileRow, profile_id)
            if row is None:
                raise NotFound(f"profile {profile_id} not found")
            return Profile.model_validate(row)

    def query_profiles(
        self, role: str, filters: dict | None = None, limit: int = 100, *, timeout: float | None = None
    ) -> Sequence[Profile]:
        with self._session(timeout) as db:
            rows = db.execute(
                select(ProfileRow)
                .where(ProfileRow.role == role, ProfileRow.active.is_(True), *_conditions(ProfileRow, filters))
                .order_by(ProfileRow.last_active_at.desc().nulls_last(), ProfileRow.id)
                .limit(limit)
            ).scalars().all()
            return [Profile.model_validate(row) for row in rows]

    def get_item(self, item_id: str, *, timeout: float | None = None) -> Item:
        with self._session(timeout) as db:
            row = db.get(ItemRow, item_id)
            if row is None:
                raise NotFound(f"item {item_id} not found")
            return Item.model_validate(row)

    def create_request(
        self, data: dict, first_message: str, *, timeout: float | None = None
    ) -> RentalRequest:
        now = self._now()
        with self._session(timeout) as db:
            row = RequestRow(status=PENDING, version=0, created_at=now, updated_at=now, **data)
            db.add(row)
            db.flush()
            db.add(
                MessageRow(
                    request_id=row.id,
                    sender_id=row.requester_id,
                    content=first_message,
                    created_at=now,
                )
            )
            record = RentalRequest.model_validate(row)
            db.commit()
            return record

    def get_request(self, request_id: str, *, timeout: float | None = None) -> RentalRequest:
        with self._session(timeout) as db:
            row = db.get(RequestRow, request_id)
            if row is None:
                raise NotFound(f"request {request_id} not found")
            return RentalRequest.model_validate(row)

    def update_request_status(
        self, request_id: str, expected_current: str, next_status: str, *, timeout: float | None = None
    ) -> RentalRequest:
        """Write guarded by `(id, status)` so a stale read can never win."""

        with self._session(timeout) as db:
            result = db.execute(
                update(RequestRow)
                .where(RequestRow.id == request_id, RequestRow.status == expected_current)
                .values(status=next_status, version=RequestRow.version + 1, updated_at=self._now())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                if db.get(RequestRow, request_id) is None:
                    raise NotFound(f"request {request_id} not found")
                raise ConflictError(f"request {request_id} is no longer {expected_current}")
            row = db.execute(
                select(RequestRow).where(RequestRow.id == request_id).execution_options(populate_existing=True)
            ).scalar_one()
            record = RentalRequest.model_validate(row)
            db.commit()
            return record

    def append_message(
        self, request_id: str, sender_id: str, content: str, *, timeout: float | None = None
    ) -> Message:
        with self._session(timeout) as db:
            if db.get(RequestRow, request_id) is None:
                raise NotFound(f"request {request_id} not found")
            row = MessageRow(request_id=request_id, sender_id=sender_id, content=content, created_at=self._now())
            db.add(row)
            db.flush()
            record = Message.model_validate(row)
            db.commit()
            return record

    def list_messages(self, request_id: str, *, timeout: float | None = None) -> Sequence[Message]:
        with self._session(timeout) as db:
            rows = db.execute(
                select(MessageRow)
                .where(MessageRow.request_id == request_id)
                .order_by(MessageRow.created_at, MessageRow.id)
            ).scalars().all()
            return [Message.model_validate(row) for row in rows]

    def get_payment_for_request(self, request_id: str, *, timeout: float | None = None) -> Payment | None:
        with self._session(timeout) as db:
            row = db.execute(select(PaymentRow).where(PaymentRow.request_id == request_id)).scalar_one_or_none()
            return Payment.model_validate(row) if row is not None else None

    def find_payment_by_transaction(
        self, provider_transaction_id: str, *, timeout: float | None = None
    ) -> Payment | None:
        with self._session(timeout) as db:
            row = db.execute(
                select(PaymentRow).where(PaymentRow.provider_transaction_id == provider_transaction_id)
            ).scalar_one_or_none()
            return Payment.model_validate(row) if row is not None else None

    def create_payment(self, data: dict, *, timeout: float | None = None) -> Payment:
        now = self._now()
        with self._session(timeout) as db:
            row = PaymentRow(
                status=PAYMENT_PENDING,
                merchant_paid=False,
                created_at=now,
                updated_at=now,
                **data,
            )
            db.add(row)
            db.flush()
            record = Payment.model_validate(row)
            db.commit()
            return record

    def complete_payment(self, request_id: str, data: dict, *, timeout: float | None = None) -> Payment:
        now = self._now()
        with self._session(timeout) as db:
            moved = db.execute(
                update(RequestRow)
                .where(RequestRow.id == request_id, RequestRow.status == ACCEPTED)
                .values(status=PAID, version=RequestRow.version + 1, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if moved.rowcount != 1:
                raise ConflictError(f"request {request_id} is no longer {ACCEPTED}")

            payment = db.execute(
                select(PaymentRow).where(PaymentRow.request_id == request_id).with_for_update()
            ).scalar_one_or_none()
            if payment is None:
                payment = PaymentRow(request_id=request_id, merchant_paid=False, created_at=now, **data)
                db.add(payment)
            elif payment.status != PAYMENT_PENDING:
                raise ConflictError(f"payment for request {request_id} is already {payment.status}")
            else:
                for key, value in data.items():
                    setattr(payment, key, value)
            payment.status = PAYMENT_COMPLETED
            payment.updated_at = now
            db.flush()
            record = Payment.model_validate(payment)
            db.commit()
            return record

    def query_payments(self, filters: dict, *, timeout: float | None = None) -> Sequence[Payment]:
        with self._session(timeout) as db:
            rows = db.execute(
                select(PaymentRow)
                .where(*_conditions(PaymentRow, filters))
                .order_by(PaymentRow.created_at, PaymentRow.id)
            ).scalars().all()
            return [Payment.model_validate(row) for row in rows]

    def batch_update_payments(
        self,
        ids: Sequence[str],
        patch: dict,
        *,
        expected: dict | None = None,
        advance_requests: tuple[str, str] | None = None,
        timeout: float | None = None,
    ) -> int:
        """Single-transaction batch write; all rows or none."""

        payment_ids = list(dict.fromkeys(ids))
        if not payment_ids:
            return 0
        now = self._now()
        with self._session(timeout) as db:
            result = db.execute(
                update(PaymentRow)
                .where(PaymentRow.id.in_(payment_ids), *_conditions(PaymentRow, expected))
                .values(**patch, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != len(payment_ids):
                raise ConflictError(
                    f"payment batch changed concurrently (expected {len(payment_ids)}, matched {result.rowcount})"
                )
            if advance_requests is not None:
                from_status, to_status = advance_requests
                linked = select(PaymentRow.request_id).where(PaymentRow.id.in_(payment_ids))
                moved = db.execute(
                    update(RequestRow)
                    .where(RequestRow.id.in_(linked), RequestRow.status == from_status)
                    .values(status=to_status, version=RequestRow.version + 1, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if moved.rowcount != len(payment_ids):
                    raise ConflictError(
                        f"linked requests not all {from_status} (expected {len(payment_ids)}, matched {moved.rowcount})"
                    )
            db.commit()
            return len(payment_ids)

    def settle_payments(
        self,
        eligible: dict,
        patch: dict,
        *,
        advance_requests: tuple[str, str],
        timeout: float | None = None,
    ) -> PaymentTotals:
        """Predicate-driven batch write; backlog size never reaches the bind list."""

        from_status, to_status = advance_requests
        now = self._now()
        with self._session(timeout) as db:
            rows = db.execute(
                update(PaymentRow)
                .where(*_conditions(PaymentRow, eligible))
                .values(**patch, updated_at=now)
                .returning(PaymentRow.amount_cents, PaymentRow.commission_cents, PaymentRow.merchant_amount_cents)
                .execution_options(synchronize_session=False)
            ).all()
            if not rows:
                return PaymentTotals()

            # Previously settled rows already have `completed` requests, so the
            # `from` guard limits this to the rows written above.
            settled = select(PaymentRow.request_id).where(*_conditions(PaymentRow, patch))
            moved = db.execute(
                update(RequestRow)
                .where(RequestRow.id.in_(settled), RequestRow.status == from_status)
                .values(status=to_status, version=RequestRow.version + 1, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if moved.rowcount != len(rows):
                raise ConflictError(
                    f"linked requests not all {from_status} (expected {len(rows)}, matched {moved.rowcount})"
                )
            db.commit()
            return PaymentTotals(
                count=len(rows),
                total_amount_cents=sum(row.amount_cents for row in rows),
                total_commission_cents=sum(row.commission_cents for row in rows),
                total_merchant_amount_cents=sum(row.merchant_amount_cents for row in rows),
            )

    def summarize_payments(self, filters: dict, *, timeout: float | None = None) -> PaymentTotals:
        with self._session(timeout) as db:
            row = db.execute(
                select(
                    func.count(PaymentRow.id).label("count"),
                    func.coalesce(func.sum(PaymentRow.amount_cents), 0).label("total_amount_cents"),
                    func.coalesce(func.sum(PaymentRow.commission_cents), 0).label("total_commission_cents"),
                    func.coalesce(func.sum(PaymentRow.merchant_amount_cents), 0).label(
                        "total_merchant_amount_cents"
                    ),
                ).where(*_conditions(PaymentRow, filters))
            ).one()
            return PaymentTotals(
                count=int(row.count or 0),
                total_amount_cents=int(row.total_amount_cents or 0),
                total_commission_cents=int(row.total_commission_cents or 0),
                total_merchant_amount_cents=int(row.total_merchant_amount_cents or 0),
            )
