"""Verified caller identity supplied by the authentication gateway.

The engine never checks credentials. The gateway in front of it authenticates
the user, then forwards the user id and granted capabilities as headers along
with the shared API key.
"""

from pydantic import BaseModel, Field

from rentmatch.common.errors import Forbidden, Unauthorized

OPERATOR = "operator"
PAYMENT_PROVIDER = "payment_provider"


class Caller(BaseModel):
    """Identity claims resolved once at the authentication boundary."""

    user_id: str = Field(min_length=1)
    capabilities: frozenset[str] = frozenset()

    @property
    def is_operator(self) -> bool:
        return OPERATOR in self.capabilities


def parse_capabilities(raw: str | None) -> frozenset[str]:
    if not raw:
        return frozenset()
    return frozenset(part.strip().lower() for part in raw.split(",") if part.strip())


def resolve_caller(
    x_api_key: str | None,
    x_caller_id: str | None,
    x_caller_capabilities: str | None,
    api_key: str,
) -> Caller:
    """Build a `Caller` from gateway headers, rejecting untrusted requests."""

    if x_api_key != api_key:
        raise Unauthorized("invalid API key")
    if not x_caller_id or not x_caller_id.strip():
        raise Unauthorized("missing caller identity")
    return Caller(user_id=x_caller_id.strip(), capabilities=parse_capabilities(x_caller_capabilities))


def require_operator(caller: Caller) -> None:
    if not caller.is_operator:
        raise Forbidden("operator capability required")
