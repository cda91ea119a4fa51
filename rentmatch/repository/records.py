"""Store-agnostic records returned by the repository port."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, field_serializer, field_validator


def _aware(value: datetime | None) -> datetime | None:
    # Some stores hand back naive timestamps; everything here is UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Record(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)


class Profile(Record):
    id: str
    role: str
    display_name: str = ""
    categories: frozenset[str] = frozenset()
    location: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    price_min_cents: int | None = None
    price_max_cents: int | None = None
    active: bool = True
    last_active_at: datetime | None = None

    @field_validator("last_active_at")
    @classmethod
    def normalize_utc(cls, value):
        return _aware(value)

    @field_serializer("categories")
    def sorted_categories(self, categories: frozenset[str]) -> list[str]:
        return sorted(categories)


class Item(Record):
    id: str
    owner_id: str
    title: str = ""
    category_id: str
    price_per_day_cents: int
    location: str | None = None
    status: str


class RentalRequest(Record):
    id: str
    item_id: str
    requester_id: str
    owner_id: str
    status: str
    version: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_utc(cls, value):
        return _aware(value)


class Message(Record):
    id: str
    request_id: str
    sender_id: str
    content: str
    created_at: datetime | None = None

    @field_validator("created_at")
    @classmethod
    def normalize_utc(cls, value):
        return _aware(value)


class Payment(Record):
    id: str
    request_id: str
    payer_id: str
    business_id: str
    amount_cents: int
    commission_cents: int
    merchant_amount_cents: int
    status: str
    merchant_paid: bool = False
    merchant_payout_date: datetime | None = None
    provider_transaction_id: str | None = None
    created_at: datetime | None = None

    @field_validator("merchant_payout_date", "created_at")
    @classmethod
    def normalize_utc(cls, value):
        return _aware(value)


class PaymentTotals(Record):
    """Aggregate over a filtered payment set."""

    count: int = 0
    total_amount_cents: int = 0
    total_commission_cents: int = 0
    total_merchant_amount_cents: int = 0
