"""FastAPI routes for the delivery context.

Thin adapters between HTTP triggers (store write hooks, scheduler ticks,
pub/sub push deliveries, operator calls) and the delivery services.
Errors are mapped to status codes by ``delivery.api.errors``.
"""

from fastapi import APIRouter, Depends, HTTPException, Request

from delivery.api.schemas import (
    DispatchResponse,
    OrderCreatedRequest,
    PendingTransitionResponse,
    PushEnvelope,
    RepublishRequest,
    RepublishResponse,
    ScheduleResponse,
    SubOrderResponse,
    SubOrderWrittenRequest,
    SweepRequest,
    SweepResponse,
    TransitionListResponse,
    TransitionResultResponse,
    WriteSubOrderRequest,
)
from delivery.identifiers import canonical_id
from delivery.schedule.pending_transition import TransitionState
from delivery.services import Services

router = APIRouter(tags=["delivery"])


def get_services(request: Request) -> Services:
    return request.app.state.services


def _result_response(result) -> TransitionResultResponse:
    if result is None:
        return TransitionResultResponse()
    return TransitionResultResponse(
        order_id=result.order_id,
        target=result.target.value,
        applied=result.applied,
        published=result.published,
        publish_error=result.publish_error,
    )


def _transition_response(transition) -> PendingTransitionResponse:
    return PendingTransitionResponse(
        transition_id=str(transition.id),
        order_id=str(transition.order_id),
        kind=transition.kind,
        state=transition.state,
        due_at=transition.due_at,
        attempts=transition.attempts or 0,
        max_attempts=transition.max_attempts or 0,
        last_error=transition.last_error,
    )


# ---------------------------------------------------------------------------
# Store write triggers
# ---------------------------------------------------------------------------
@router.post("/triggers/sub-order-written", response_model=TransitionResultResponse)
async def sub_order_written(
    body: SubOrderWrittenRequest, services: Services = Depends(get_services)
) -> TransitionResultResponse:
    """Re-evaluate a parent order after a write.

    Fired for every sub-order write, and with ``parent_order_id`` alone when
    an order moves Created -> Preparing, so vendors that finished early
    still advance it.
    """
    if body.sub_order_id is None and body.parent_order_id is None:
        raise HTTPException(status_code=422, detail="sub_order_id or parent_order_id is required")

    result = await services.aggregator.on_sub_order_written(
        sub_order_id=body.sub_order_id,
        parent_order_id=body.parent_order_id,
    )
    return _result_response(result)


@router.post("/triggers/order-created", response_model=ScheduleResponse)
async def order_created(body: OrderCreatedRequest, services: Services = Depends(get_services)) -> ScheduleResponse:
    transition = await services.order_created(body.order_id, due_at=body.due_at)
    if transition is None:
        return ScheduleResponse(scheduled=False)
    return ScheduleResponse(scheduled=True, transition=_transition_response(transition))


@router.post("/triggers/sweep", response_model=SweepResponse)
async def sweep(body: SweepRequest | None = None, services: Services = Depends(get_services)) -> SweepResponse:
    report = await services.scheduler.sweep(as_of=body.as_of if body else None)
    return SweepResponse(
        as_of=report.as_of,
        processed=report.processed,
        completed=report.completed,
        retrying=report.retrying,
        failed=report.failed,
    )


# ---------------------------------------------------------------------------
# Pub/sub push delivery
# ---------------------------------------------------------------------------
@router.post("/events/push", response_model=DispatchResponse)
async def push_delivery(body: PushEnvelope, services: Services = Depends(get_services)) -> DispatchResponse:
    """Consume an ``orderReady`` push delivery.

    Undecodable messages are logged and acknowledged, so the transport does
    not redeliver them forever.
    """
    dispatched = await services.dispatcher.handle_message(body.message.data)
    if dispatched is None:
        return DispatchResponse(dispatched=False)
    return DispatchResponse(
        dispatched=True,
        order_id=dispatched.order_id,
        worker_id=dispatched.worker_id,
        distance_km=dispatched.distance_km,
        notified=dispatched.notified,
    )


# ---------------------------------------------------------------------------
# Vendor writes
# ---------------------------------------------------------------------------
@router.put("/sub-orders/{sub_order_id}", response_model=SubOrderResponse)
async def write_sub_order(
    sub_order_id: str, body: WriteSubOrderRequest, services: Services = Depends(get_services)
) -> SubOrderResponse:
    sub_order, result = await services.write_sub_order(
        sub_order_id,
        body.status,
        parent_order_id=body.parent_order_id,
        vendor_id=body.vendor_id,
    )
    return SubOrderResponse(
        sub_order_id=str(sub_order.id),
        parent_order_id=str(sub_order.parent_order_id),
        status=sub_order.status,
        transition=_result_response(result),
    )


# ---------------------------------------------------------------------------
# Operator endpoints
# ---------------------------------------------------------------------------
@router.get("/transitions", response_model=TransitionListResponse)
async def list_transitions(
    state: str = TransitionState.FAILED.value, services: Services = Depends(get_services)
) -> TransitionListResponse:
    try:
        state = TransitionState(state).value
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Unknown transition state: {state}")

    transitions = await services.store.list_transitions(state)
    items = [_transition_response(t) for t in transitions]
    return TransitionListResponse(items=items, total=len(items))


@router.post("/transitions/{transition_id}/retry", response_model=PendingTransitionResponse)
async def retry_transition(
    transition_id: str, services: Services = Depends(get_services)
) -> PendingTransitionResponse:
    transition = await services.scheduler.retry(transition_id)
    return _transition_response(transition)


@router.post("/orders/{order_id}/republish", response_model=RepublishResponse)
async def republish_order(
    order_id: str, body: RepublishRequest | None = None, services: Services = Depends(get_services)
) -> RepublishResponse:
    message_id = await services.republish(order_id, reset_assignment=body.reset_assignment if body else False)
    return RepublishResponse(order_id=canonical_id(order_id), message_id=message_id)
