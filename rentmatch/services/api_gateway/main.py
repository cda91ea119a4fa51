"""HTTP surface for the matching and rental lifecycle engine.

The authentication gateway in front of this app verifies users and forwards
their identity; this app checks the shared API key, resolves the caller, and
hands off to the services. Run with
`uvicorn --factory rentmatch.services.api_gateway.main:create_app`.
"""

from contextlib import asynccontextmanager
from time import perf_counter
from uuid import uuid4

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from rentmatch.common.config import EngineSettings
from rentmatch.common.db import make_engine, make_session_factory
from rentmatch.common.errors import EngineError
from rentmatch.common.identity import Caller, resolve_caller
from rentmatch.common.logging import caller_id_ctx, configure_logging, logger, request_id_ctx, trace_id_ctx
from rentmatch.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from rentmatch.common.startup import log_startup_config
from rentmatch.common.tracing import instrument_app, setup_tracing
from rentmatch.repository.port import RepositoryPort
from rentmatch.repository.records import Message, Payment, RentalRequest
from rentmatch.repository.sql import SqlRepository
from rentmatch.services.lifecycle.schemas import (
    MessageCreate,
    Order,
    PaymentCompletedEvent,
    PaymentOpen,
    RequestCreate,
    RequestCreated,
    TransitionCommand,
)
from rentmatch.services.lifecycle.service import LifecycleService
from rentmatch.services.matching.schemas import MatchListResponse
from rentmatch.services.matching.service import MatchingService
from rentmatch.services.payouts.schemas import EarningsSummary, PendingPayouts, SettlementResult
from rentmatch.services.payouts.service import PayoutService

router = APIRouter()


async def current_caller(
    request: Request,
    x_api_key: str | None = Header(default=None),
    x_caller_id: str | None = Header(default=None),
    x_caller_capabilities: str | None = Header(default=None),
) -> Caller:
    """Resolve the verified caller forwarded by the authentication gateway."""

    caller = resolve_caller(x_api_key, x_caller_id, x_caller_capabilities, request.app.state.settings.api_key)
    caller_id_ctx.set(caller.user_id)
    return caller


@router.get("/matches", response_model=MatchListResponse)
def find_matches(
    request: Request,
    subject_type: str | None = Query(default=None, alias="type"),
    subject_id: str | None = None,
    caller: Caller = Depends(current_caller),
):
    """Rank businesses for a client (`type=client`) or clients for a business."""

    matches = request.app.state.matching.find_matches(subject_type, subject_id)
    return MatchListResponse(subject_type=subject_type, subject_id=subject_id, matches=matches, count=len(matches))


@router.post("/requests", response_model=RequestCreated, status_code=201)
def create_request(req: RequestCreate, request: Request, caller: Caller = Depends(current_caller)):
    created = request.app.state.lifecycle.create_request(caller, req.item_id, req.message)
    return RequestCreated(id=created.id)


@router.get("/orders/{request_id}", response_model=Order)
def get_order(request_id: str, request: Request, caller: Caller = Depends(current_caller)):
    """Request plus payment state; only its two parties (or an operator) may read it."""

    request_id_ctx.set(request_id)
    return request.app.state.lifecycle.get_order(request_id, caller)


@router.post("/requests/{request_id}/transitions", response_model=RentalRequest)
def transition_request(
    request_id: str, cmd: TransitionCommand, request: Request, caller: Caller = Depends(current_caller)
):
    request_id_ctx.set(request_id)
    return request.app.state.lifecycle.transition_request(request_id, caller, cmd.action)


@router.get("/requests/{request_id}/messages", response_model=list[Message])
def list_messages(request_id: str, request: Request, caller: Caller = Depends(current_caller)):
    request_id_ctx.set(request_id)
    return request.app.state.lifecycle.list_messages(request_id, caller)


@router.post("/requests/{request_id}/messages", response_model=Message, status_code=201)
def post_message(
    request_id: str, body: MessageCreate, request: Request, caller: Caller = Depends(current_caller)
):
    request_id_ctx.set(request_id)
    return request.app.state.lifecycle.post_message(request_id, caller, body.content)


@router.post("/requests/{request_id}/payment", response_model=Payment, status_code=201)
def open_payment(request_id: str, body: PaymentOpen, request: Request, caller: Caller = Depends(current_caller)):
    request_id_ctx.set(request_id)
    return request.app.state.lifecycle.open_payment(request_id, caller, body.amount_cents)


@router.post("/internal/payments/completed", response_model=RentalRequest)
def payment_completed(event: PaymentCompletedEvent, request: Request, caller: Caller = Depends(current_caller)):
    """Completion notice from the payment collaborator; moves the request to `paid`."""

    request_id_ctx.set(event.request_id)
    return request.app.state.lifecycle.record_payment_completed(
        caller, event.request_id, event.amount_cents, event.provider_transaction_id
    )


@router.post("/payouts/settle", response_model=SettlementResult)
def settle_payouts(request: Request, caller: Caller = Depends(current_caller)):
    """Operator-only sweep of completed payments into merchant payouts."""

    return request.app.state.payouts.settle_pending_payouts(caller)


@router.get("/payouts/pending", response_model=PendingPayouts)
def pending_payouts(request: Request, business_id: str | None = None, caller: Caller = Depends(current_caller)):
    return request.app.state.payouts.pending_payouts(caller, business_id)


@router.get("/earnings", response_model=EarningsSummary)
def earnings(request: Request, business_id: str | None = None, caller: Caller = Depends(current_caller)):
    return request.app.state.payouts.earnings(caller, business_id)


@router.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@router.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}


async def engine_error_handler(_: Request, exc: EngineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("engine_error code=%s message=%s", exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


async def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({".".join(str(part) for part in err.get("loc", ())[1:]) for err in exc.errors()})
    message = f"invalid request: {', '.join(f for f in fields if f) or 'body'}"
    return JSONResponse(status_code=422, content={"error": {"code": "validation_error", "message": message}})


async def unhandled_error_handler(_: Request, exc: Exception) -> JSONResponse:
    # Details stay in the server log; callers only get the stable code.
    logger.exception("unhandled_error: %s", exc)
    return JSONResponse(status_code=500, content={"error": {"code": "internal_error", "message": "internal error"}})


def create_app(settings: EngineSettings | None = None, repository: RepositoryPort | None = None) -> FastAPI:
    """Compose settings, repository and services into one FastAPI app."""

    settings = settings or EngineSettings()
    configure_logging(settings.service_name, settings.log_level)
    if settings.otel_enabled:
        setup_tracing(settings.service_name, settings.otel_exporter_otlp_endpoint)
    log_startup_config(
        settings,
        [
            "postgres_dsn",
            "api_key",
            "category_weight",
            "location_weight",
            "price_weight",
            "candidate_page_size",
            "max_matches",
            "commission_rate_bps",
            "transition_retry_limit",
            "repository_timeout_seconds",
        ],
    )

    db_engine = None
    if repository is None:
        db_engine = make_engine(settings.postgres_dsn)
        repository = SqlRepository(make_session_factory(db_engine), settings.repository_timeout_seconds)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        if db_engine is not None:
            db_engine.dispose()

    app = FastAPI(title="rentmatch engine", lifespan=lifespan)
    app.state.settings = settings
    app.state.matching = MatchingService(repository, settings)
    app.state.lifecycle = LifecycleService(repository, settings)
    app.state.payouts = PayoutService(repository, settings)
    if settings.otel_enabled:
        instrument_app(app)

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Record request count and latency, and bind a trace id, for every HTTP call."""

        trace_id_ctx.set(request.headers.get("x-trace-id") or str(uuid4()))
        start = perf_counter()
        route = request.url.path
        method = request.method
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=settings.service_name,
                route=route,
                method=method,
            ).observe(elapsed)
            http_requests_total.labels(
                service=settings.service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()

    app.add_exception_handler(EngineError, engine_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    app.include_router(router)
    return app
