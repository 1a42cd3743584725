"""
RPC Routes - tRPC-compatible HTTP endpoint for the web client.

Queries are GET with a JSON `input` query parameter, mutations are POST
with a JSON body. `?batch=1` joins procedure names with commas and keys
inputs by position ("0", "1", ...). Responses are
{"result": {"data": ...}} or {"error": {"message", "code", "data"}}.

NO DICTIONARIES - Procedure inputs and outputs are Pydantic models.
"""

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from structlog import get_logger

from app.api.dependencies import get_container
from app.container import ServiceContainer
from app.exceptions import InvalidReportRequestError, PaymentProviderError
from app.models.api import (
    CancelSubscriptionInput,
    CreateSubscriptionInput,
    CustomerInput,
    FinancialReportInput,
    StripeConfigOutput,
    SubscriptionStatusInput,
    SuccessOutput,
    TrackEventInput,
    UpdateSubscriptionInput,
)
from app.observability.metrics import metrics

logger = get_logger(__name__)
router = APIRouter(tags=["rpc"])

RPC_PREFIX = "/api/trpc"


class ProcedureType(str, Enum):
    QUERY = "query"
    MUTATION = "mutation"


class RPCErrorCode(Enum):
    """tRPC error codes: (JSON-RPC code, HTTP status)."""

    PARSE_ERROR = (-32700, 400)
    BAD_REQUEST = (-32600, 400)
    NOT_FOUND = (-32004, 404)
    METHOD_NOT_SUPPORTED = (-32005, 405)
    INTERNAL_SERVER_ERROR = (-32603, 500)

    @property
    def json_rpc_code(self) -> int:
        return self.value[0]

    @property
    def http_status(self) -> int:
        return self.value[1]


class RPCError(Exception):
    """A procedure failure reported to the client."""

    def __init__(self, code: RPCErrorCode, message: str, **data: Any) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(message)


Handler = Callable[[ServiceContainer, Any], Awaitable[BaseModel]]


@dataclass(frozen=True)
class Procedure:
    """One callable RPC procedure."""

    type: ProcedureType
    handler: Handler
    input_model: type[BaseModel] | None = None


# ============================================================================
# Procedures
# ============================================================================


async def _create_subscription(c: ServiceContainer, data: CreateSubscriptionInput) -> BaseModel:
    return await c.subscriptions.create_subscription(data.plan_id, data.customer_id)


async def _get_subscription_status(
    c: ServiceContainer, data: SubscriptionStatusInput
) -> BaseModel:
    return await c.subscriptions.get_subscription_status(data.session_id, data.customer_id)


async def _get_invoices(c: ServiceContainer, data: CustomerInput) -> BaseModel:
    return await c.subscriptions.get_invoices(data.customer_id)


async def _get_financial_report(c: ServiceContainer, data: FinancialReportInput) -> BaseModel:
    return await c.subscriptions.get_financial_report(
        data.customer_id, data.start_date, data.end_date
    )


async def _cancel_subscription(c: ServiceContainer, data: CancelSubscriptionInput) -> BaseModel:
    return await c.subscriptions.cancel_subscription(data.subscription_id)


async def _update_subscription(c: ServiceContainer, data: UpdateSubscriptionInput) -> BaseModel:
    return await c.subscriptions.update_subscription(data.subscription_id, data.new_price_id)


async def _track_event(c: ServiceContainer, data: TrackEventInput) -> BaseModel:
    c.analytics.track_client_event(data.event_name, data.properties)
    return SuccessOutput()


async def _list_plans(c: ServiceContainer, _: None) -> BaseModel:
    return c.plans.to_output()


async def _get_stripe_config(c: ServiceContainer, _: None) -> BaseModel:
    return StripeConfigOutput(
        publishable_key=c.settings.resolved_publishable_key,
        test_mode=c.settings.is_test_mode,
    )


PROCEDURES: dict[str, Procedure] = {
    "createSubscription": Procedure(
        ProcedureType.MUTATION, _create_subscription, CreateSubscriptionInput
    ),
    "getSubscriptionStatus": Procedure(
        ProcedureType.QUERY, _get_subscription_status, SubscriptionStatusInput
    ),
    "getInvoices": Procedure(ProcedureType.QUERY, _get_invoices, CustomerInput),
    "getFinancialReport": Procedure(
        ProcedureType.QUERY, _get_financial_report, FinancialReportInput
    ),
    "cancelSubscription": Procedure(
        ProcedureType.MUTATION, _cancel_subscription, CancelSubscriptionInput
    ),
    "updateSubscription": Procedure(
        ProcedureType.MUTATION, _update_subscription, UpdateSubscriptionInput
    ),
    "trackEvent": Procedure(ProcedureType.MUTATION, _track_event, TrackEventInput),
    "listPlans": Procedure(ProcedureType.QUERY, _list_plans),
    "getStripeConfig": Procedure(ProcedureType.QUERY, _get_stripe_config),
}


# ============================================================================
# Protocol
# ============================================================================


def _error_body(error: RPCError, path: str) -> dict[str, Any]:
    return {
        "error": {
            "message": error.message,
            "code": error.code.json_rpc_code,
            "data": {
                "code": error.code.name,
                "httpStatus": error.code.http_status,
                "path": path,
                **error.data,
            },
        }
    }


async def _call(
    container: ServiceContainer, name: str, method: ProcedureType, raw_input: Any
) -> BaseModel:
    procedure = PROCEDURES.get(name)
    if procedure is None:
        raise RPCError(RPCErrorCode.NOT_FOUND, f'No "{method.value}"-procedure on path "{name}"')
    if procedure.type is not method:
        raise RPCError(
            RPCErrorCode.METHOD_NOT_SUPPORTED,
            f"Unsupported {method.value} on {procedure.type.value} procedure",
        )

    data: BaseModel | None = None
    if procedure.input_model is not None:
        try:
            data = procedure.input_model.model_validate(raw_input if raw_input is not None else {})
        except ValidationError as exc:
            raise RPCError(
                RPCErrorCode.BAD_REQUEST,
                "Invalid input",
                validationErrors=[
                    {"path": list(e["loc"]), "message": e["msg"]} for e in exc.errors()
                ],
            ) from exc

    try:
        return await procedure.handler(container, data)
    except InvalidReportRequestError as exc:
        raise RPCError(RPCErrorCode.BAD_REQUEST, exc.message) from exc
    except PaymentProviderError as exc:
        raise RPCError(RPCErrorCode.INTERNAL_SERVER_ERROR, exc.message) from exc
    except Exception as exc:
        logger.error(
            "rpc_procedure_failed",
            procedure=name,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=True,
        )
        metrics.record_error(type(exc).__name__, f"rpc_{name}")
        raise RPCError(RPCErrorCode.INTERNAL_SERVER_ERROR, "Internal server error") from exc


async def _read_inputs(
    request: Request, method: ProcedureType, batch: bool, count: int
) -> list[Any]:
    if method is ProcedureType.QUERY:
        raw = request.query_params.get("input")
        payload = json.loads(raw) if raw else None
    else:
        body = await request.body()
        payload = json.loads(body) if body else None

    if not batch:
        return [payload]
    if payload is not None and not isinstance(payload, dict):
        raise ValueError("Batch input must be an object keyed by index")
    payload = payload or {}
    return [payload.get(str(i)) for i in range(count)]


@router.api_route(f"{RPC_PREFIX}/{{procedures}}", methods=["GET", "POST"])
async def rpc_endpoint(
    procedures: str,
    request: Request,
    container: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    """Execute one procedure, or a batch of them with ?batch=1."""
    method = ProcedureType.QUERY if request.method == "GET" else ProcedureType.MUTATION
    batch = request.query_params.get("batch") in ("1", "true")
    names = procedures.split(",") if batch else [procedures]

    try:
        inputs = await _read_inputs(request, method, batch, len(names))
    except ValueError as exc:  # JSONDecodeError is a ValueError
        error = RPCError(RPCErrorCode.PARSE_ERROR, f"Unable to parse input: {exc}")
        errors = [_error_body(error, name) for name in names]
        return JSONResponse(
            status_code=error.code.http_status, content=errors if batch else errors[0]
        )

    bodies: list[dict[str, Any]] = []
    statuses: list[int] = []
    for name, raw_input in zip(names, inputs, strict=True):
        try:
            output = await _call(container, name, method, raw_input)
        except RPCError as error:
            logger.warning(
                "rpc_procedure_error",
                procedure=name,
                code=error.code.name,
                message=error.message,
            )
            bodies.append(_error_body(error, name))
            statuses.append(error.code.http_status)
            continue
        bodies.append({"result": {"data": output.model_dump(mode="json", by_alias=True)}})
        statuses.append(200)

    if not batch:
        return JSONResponse(status_code=statuses[0], content=bodies[0])

    # Mixed batch results answer 207, as tRPC does
    distinct = set(statuses)
    status_code = distinct.pop() if len(distinct) == 1 else 207
    return JSONResponse(status_code=status_code, content=bodies)
