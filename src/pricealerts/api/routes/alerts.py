"""Alert endpoints: the evaluation trigger, owner CRUD, templates and contacts."""

from __future__ import annotations

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse, Response

from pricealerts.alerts.models import AlertStatus
from pricealerts.api.errors import error_response
from pricealerts.api.schemas import (
    AlertBulk,
    AlertCreate,
    AlertUpdate,
    RecipientUpdate,
    TemplateApply,
    alert_to_dict,
    stats_to_dict,
    template_to_dict,
)
from pricealerts.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


@router.post("/alerts/check")
async def check_alerts(request: Request) -> JSONResponse:
    """Run one evaluation cycle now. Store failures surface as 500."""
    engine = request.app.state.engine
    summary = await engine.evaluate_all()
    logger.info("alert_check_requested", checked=summary.checked, triggered=summary.triggered)
    return JSONResponse(content=summary.to_payload())


# ---------------------------------------------------------------------------
# Owner CRUD
# ---------------------------------------------------------------------------


@router.get("/alerts")
async def list_alerts(
    request: Request,
    owner_id: str,
    status: AlertStatus | None = None,
    symbol: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> JSONResponse:
    service = request.app.state.alert_service
    alerts = await service.list_alerts(
        owner_id, status=status, symbol=symbol, limit=limit, offset=offset
    )
    return JSONResponse(content={
        "data": [alert_to_dict(a) for a in alerts],
        "limit": limit,
        "offset": offset,
    })


@router.post("/alerts", status_code=201)
async def create_alert(request: Request, body: AlertCreate) -> JSONResponse:
    service = request.app.state.alert_service
    options = body.model_dump(
        exclude={"owner_id", "symbol", "operator", "threshold"}, exclude_none=True
    )
    alert = await service.create_alert(
        body.owner_id, body.symbol, body.operator, body.threshold, **options
    )
    return JSONResponse(status_code=201, content=alert_to_dict(alert))


@router.post("/alerts/bulk")
async def bulk_action(request: Request, body: AlertBulk) -> JSONResponse:
    """Update or delete several alerts; per-alert failures are counted, not raised."""
    service = request.app.state.alert_service
    if body.action == "delete":
        result = await service.bulk_delete(body.owner_id, body.alert_ids)
        return JSONResponse(content=result)

    changes = body.changes.model_dump(exclude_unset=True) if body.changes else {}
    if not changes:
        return error_response(400, "No changes given for bulk update")
    alerts = await service.bulk_update(body.owner_id, body.alert_ids, changes)
    return JSONResponse(content={
        "data": [alert_to_dict(a) for a in alerts],
        "failed": len(body.alert_ids) - len(alerts),
    })


@router.get("/alerts/stats")
async def get_alert_stats(request: Request, owner_id: str) -> JSONResponse:
    service = request.app.state.alert_service
    stats = await service.get_stats(owner_id)
    return JSONResponse(content=stats_to_dict(stats))


@router.get("/alerts/{alert_id}")
async def get_alert(request: Request, alert_id: str, owner_id: str) -> JSONResponse:
    service = request.app.state.alert_service
    alert = await service.get_alert(owner_id, alert_id)
    return JSONResponse(content=alert_to_dict(alert))


@router.patch("/alerts/{alert_id}")
async def update_alert(
    request: Request, alert_id: str, owner_id: str, body: AlertUpdate
) -> JSONResponse:
    service = request.app.state.alert_service
    alert = await service.update_alert(
        owner_id, alert_id, body.model_dump(exclude_unset=True)
    )
    return JSONResponse(content=alert_to_dict(alert))


@router.delete("/alerts/{alert_id}", status_code=204)
async def delete_alert(request: Request, alert_id: str, owner_id: str) -> Response:
    service = request.app.state.alert_service
    await service.delete_alert(owner_id, alert_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Templates and contacts
# ---------------------------------------------------------------------------


@router.get("/templates")
async def list_templates(request: Request) -> JSONResponse:
    service = request.app.state.alert_service
    return JSONResponse(content=[template_to_dict(t) for t in service.list_templates()])


@router.post("/templates/{template_id}/alerts", status_code=201)
async def create_from_template(
    request: Request, template_id: str, body: TemplateApply
) -> JSONResponse:
    service = request.app.state.alert_service
    alerts = await service.create_from_template(body.owner_id, template_id, body.thresholds)
    return JSONResponse(status_code=201, content=[alert_to_dict(a) for a in alerts])


@router.put("/recipients/{owner_id}")
async def put_recipient(request: Request, owner_id: str, body: RecipientUpdate) -> JSONResponse:
    service = request.app.state.alert_service
    recipient = await service.set_recipient(
        owner_id, email=body.email, phone=body.phone, webhook_url=body.webhook_url
    )
    return JSONResponse(content={
        "owner_id": recipient.owner_id,
        "email": recipient.email,
        "phone": recipient.phone,
        "webhook_url": recipient.webhook_url,
    })
