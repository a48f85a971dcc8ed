"""FastAPI routes for the courier domain.

A thin layer: each route calls one service and maps the result's error
kind to an HTTP status.
"""

from typing import Any

from fastapi import APIRouter, Body, HTTPException
from fastapi.responses import JSONResponse

from courier.api.schemas import CancelParcelRequest, QueuedResponse
from courier.messaging import channels
from courier.parcel.ingestion import ParcelIngestion
from courier.parcel.lifecycle import ParcelLifecycle
from courier.routing.router import InboundEventRouter
from courier.shared.results import ErrorKind, OperationResult
from courier.transport import get_transport
from courier.transport.port import TransportError

_ERROR_STATUS = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.PRECONDITION: 409,
    ErrorKind.INFRASTRUCTURE: 503,
}


def _respond(result: OperationResult, success_status: int = 200) -> JSONResponse:
    if result.success:
        status_code = 202 if result.degraded else success_status
    else:
        status_code = _ERROR_STATUS[result.error_kind]
    return JSONResponse(status_code=status_code, content=result.to_dict())


# ---------------------------------------------------------------------------
# Parcel Router
# ---------------------------------------------------------------------------
parcel_router = APIRouter(prefix="/parcels", tags=["parcels"])


@parcel_router.post("", status_code=201)
async def register_parcel(order: dict[str, Any] = Body(...)) -> JSONResponse:
    """Register a parcel from an order, synchronously."""
    result = ParcelIngestion().ingest(order)
    return _respond(result, success_status=200 if result.duplicate else 201)


@parcel_router.get("/{parcel_id}/tracking")
async def track_parcel(parcel_id: str, requested_by: str | None = None) -> JSONResponse:
    """Parcel status and history, newest entry first."""
    return _respond(ParcelLifecycle().track(parcel_id, requested_by=requested_by))


@parcel_router.put("/{parcel_id}/cancel")
async def cancel_parcel(parcel_id: str, body: CancelParcelRequest) -> JSONResponse:
    """Cancel a parcel that has not yet gone into transit."""
    result = ParcelLifecycle().cancel(parcel_id, body.reason, requested_by=body.requested_by)
    return _respond(result)


# ---------------------------------------------------------------------------
# Inbound Router
# ---------------------------------------------------------------------------
inbound_router = APIRouter(tags=["inbound"])


@inbound_router.post("/orders/submit", status_code=202, response_model=QueuedResponse)
async def submit_order(order: dict[str, Any] = Body(...)) -> QueuedResponse:
    """Queue an order for asynchronous ingestion."""
    channel = channels.incoming_orders()
    headers = {"eventType": "PARCEL_ORDER"}
    if order.get("edi_reference"):
        headers["partitionKey"] = str(order["edi_reference"])
    try:
        delivery_id = get_transport().send(channel, order, headers)
    except TransportError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return QueuedResponse(queued=True, channel=channel, delivery_id=delivery_id)


@inbound_router.post("/carrier/messages")
async def carrier_message(message: dict[str, Any] = Body(...)) -> JSONResponse:
    """Carrier status webhook. 503 asks the carrier to retry later."""
    outcome = InboundEventRouter().on_carrier_status(message)
    status_code = 200 if outcome.acked else 503
    return JSONResponse(status_code=status_code, content=outcome.result.to_dict())
