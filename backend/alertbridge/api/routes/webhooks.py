"""
Webhook API Routes
AlertBridge Trade Automation

Inbound screener alerts. The caller only ever gets an acknowledgement;
per-user pipeline outcomes are recorded on the stored alerts.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from pydantic import BaseModel

from alertbridge.api.deps import get_services
from alertbridge.core.clock import now
from alertbridge.core.exceptions import AlertBridgeError, BrokerError
from alertbridge.db.models import AlertStatus
from alertbridge.db.repositories import AlertRepository, UserRepository
from alertbridge.schemas.alert import AlertPayload
from alertbridge.services.registry import ServiceRegistry

router = APIRouter()


# ============ Schemas ============

class AlertOutcome(BaseModel):
    user_id: int
    alert_id: int
    status: str
    message: Optional[str] = None


class WebhookAck(BaseModel):
    received: bool = True
    alerts_created: int
    results: List[AlertOutcome] = []


class ManualExecutionResponse(BaseModel):
    alert_id: int
    skipped: bool
    reason: Optional[str] = None
    order_id: Optional[int] = None
    broker_order_id: Optional[str] = None


async def _store_alert(services: ServiceRegistry, user_ids: List[int], payload: AlertPayload) -> List[tuple]:
    stored = []
    async with services.session_factory() as session:
        repo = AlertRepository(session)
        for user_id in user_ids:
            alert = await repo.create(
                user_id=user_id,
                symbol=payload.symbol,
                action=payload.action.value,
                price=payload.price,
                quantity=payload.quantity,
                data=payload.model_dump(mode="json", exclude_none=True),
                status=AlertStatus.PENDING.value,
                received_at=now(),
            )
            stored.append((user_id, alert.id))
        await session.commit()
    return stored


# ============ Webhook Endpoints ============

@router.post("/chartlink", response_model=WebhookAck)
async def receive_chartlink_alert(
    payload: AlertPayload,
    services: ServiceRegistry = Depends(get_services),
) -> WebhookAck:
    """Store the alert for every active user and run it through the pipeline."""
    logger.info(f"Webhook alert: {payload.action.value} {payload.symbol} price={payload.price}")

    async with services.session_factory() as session:
        users = await UserRepository(session).get_active_users()
    stored = await _store_alert(services, [u.id for u in users], payload)

    results = []
    for user_id, alert_id in stored:
        try:
            result = await services.orchestrator.process_alert(user_id, alert_id, payload)
            results.append(AlertOutcome(
                user_id=user_id, alert_id=alert_id, status=result.status.value, message=result.message
            ))
        except Exception as e:
            logger.bind(user_id=user_id, alert_id=alert_id).exception(f"Alert processing failed: {e}")
            results.append(AlertOutcome(
                user_id=user_id, alert_id=alert_id, status=AlertStatus.ERROR.value, message=str(e)
            ))

    return WebhookAck(alerts_created=len(stored), results=results)


@router.post("/manual/{user_id}", response_model=ManualExecutionResponse)
async def execute_manual_alert(
    user_id: int,
    payload: AlertPayload,
    services: ServiceRegistry = Depends(get_services),
) -> ManualExecutionResponse:
    """Execute one alert directly for a user, gated by their auto-execute switch."""
    [(_, alert_id)] = await _store_alert(services, [user_id], payload)

    try:
        result = await services.orchestrator.auto_execute(user_id, alert_id, payload)
    except BrokerError as e:
        raise HTTPException(status_code=502, detail=e.message)
    except AlertBridgeError as e:
        raise HTTPException(status_code=400, detail=e.message)

    return ManualExecutionResponse(
        alert_id=alert_id,
        skipped=result.skipped,
        reason=result.reason,
        order_id=result.order_id,
        broker_order_id=result.broker_order_id,
    )
