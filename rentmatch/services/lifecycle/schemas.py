"""API request/response schemas for rental request lifecycle endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

from rentmatch.repository.records import Payment, RentalRequest


class RequestCreate(BaseModel):
    """Body accepted by `POST /requests`; the message is checked by the service."""

    item_id: str = Field(min_length=1)
    message: str = ""


class RequestCreated(BaseModel):
    id: str


class TransitionCommand(BaseModel):
    action: str = Field(min_length=1)


class MessageCreate(BaseModel):
    content: str = ""


class PaymentOpen(BaseModel):
    amount_cents: int = Field(gt=0)


class PaymentCompletedEvent(BaseModel):
    """Completion notice forwarded by the payment collaborator."""

    request_id: str = Field(min_length=1)
    amount_cents: int = Field(gt=0)
    provider_transaction_id: str = Field(min_length=1)


class Order(BaseModel):
    """Request plus current payment, as seen by its two parties."""

    request_id: str
    item_id: str
    user_id: str
    vendor_id: str
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    payment: Payment | None = None

    @classmethod
    def from_records(cls, request: RentalRequest, payment: Payment | None) -> "Order":
        return cls(
            request_id=request.id,
            item_id=request.item_id,
            user_id=request.requester_id,
            vendor_id=request.owner_id,
            status=request.status,
            created_at=request.created_at,
            updated_at=request.updated_at,
            payment=payment,
        )
