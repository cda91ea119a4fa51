"""Repository port consumed by the engine.

Implementations own all persistent state. Every method accepts an optional
`timeout` in seconds; a call that exceeds it must leave stored state unchanged
and raise a retryable `InternalError`.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from rentmatch.repository.records import (
    Item,
    Message,
    Payment,
    PaymentTotals,
    Profile,
    RentalRequest,
)


class RepositoryPort(ABC):
    """Read/query/write access to profiles, items, requests, messages, payments."""

    @abstractmethod
    def get_profile(self, profile_id: str, *, timeout: float | None = None) -> Profile:
        """Return one profile or raise `NotFound`."""

    @abstractmethod
    def query_profiles(
        self, role: str, filters: dict | None = None, limit: int = 100, *, timeout: float | None = None
    ) -> Sequence[Profile]:
        """Active profiles of `role`, most recently active first."""

    @abstractmethod
    def get_item(self, item_id: str, *, timeout: float | None = None) -> Item:
        """Return one item or raise `NotFound`."""

    @abstractmethod
    def create_request(
        self, data: dict, first_message: str, *, timeout: float | None = None
    ) -> RentalRequest:
        """Insert a `pending` request and its first message in one transaction."""

    @abstractmethod
    def get_request(self, request_id: str, *, timeout: float | None = None) -> RentalRequest:
        """Return one request or raise `NotFound`."""

    @abstractmethod
    def update_request_status(
        self, request_id: str, expected_current: str, next_status: str, *, timeout: float | None = None
    ) -> RentalRequest:
        """Conditionally move a request; raise `ConflictError` if its status changed."""

    @abstractmethod
    def append_message(
        self, request_id: str, sender_id: str, content: str, *, timeout: float | None = None
    ) -> Message:
        """Append one message to a request thread."""

    @abstractmethod
    def list_messages(self, request_id: str, *, timeout: float | None = None) -> Sequence[Message]:
        """Messages of a request, oldest first."""

    @abstractmethod
    def get_payment_for_request(self, request_id: str, *, timeout: float | None = None) -> Payment | None:
        """The payment linked to a request, if any."""

    @abstractmethod
    def find_payment_by_transaction(
        self, provider_transaction_id: str, *, timeout: float | None = None
    ) -> Payment | None:
        """The payment already recorded for a provider transaction, if any."""

    @abstractmethod
    def create_payment(self, data: dict, *, timeout: float | None = None) -> Payment:
        """Insert a `pending` payment for an `accepted` request."""

    @abstractmethod
    def complete_payment(self, request_id: str, data: dict, *, timeout: float | None = None) -> Payment:
        """Mark the request's payment `completed` and move the request `accepted -> paid`.

        Both writes share one transaction; if the request is no longer
        `accepted` nothing is written and `ConflictError` is raised.
        """

    @abstractmethod
    def query_payments(self, filters: dict, *, timeout: float | None = None) -> Sequence[Payment]:
        """Payments matching equality filters on payment columns."""

    @abstractmethod
    def batch_update_payments(
        self,
        ids: Sequence[str],
        patch: dict,
        *,
        expected: dict | None = None,
        advance_requests: tuple[str, str] | None = None,
        timeout: float | None = None,
    ) -> int:
        """Apply `patch` to every payment in `ids` in one transaction.

        Rows must still match `expected`; linked requests move along
        `advance_requests` (from, to). Either every row is written and the
        committed count is returned, or nothing is written and `ConflictError`
        is raised.
        """

    @abstractmethod
    def settle_payments(
        self,
        eligible: dict,
        patch: dict,
        *,
        advance_requests: tuple[str, str],
        timeout: float | None = None,
    ) -> PaymentTotals:
        """Apply `patch` to every payment matching `eligible` in one transaction.

        Rows are selected by the predicate inside the write, never by an id
        list. Linked requests move along `advance_requests`; if any of them is
        not in the `from` state nothing is written and `ConflictError` is
        raised. Returns totals over the rows actually committed.
        """

    @abstractmethod
    def summarize_payments(self, filters: dict, *, timeout: float | None = None) -> PaymentTotals:
        """Count and amount sums over a filtered payment set in one aggregate query."""
