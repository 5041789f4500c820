"""Main FastAPI application for Duty Alarm Bridge."""

import hmac
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import uvicorn

from dutyalarm.config import settings
from dutyalarm.connectors.telegram import TelegramChatGateway
from dutyalarm.escalation.coordinator import EscalationCoordinator
from dutyalarm.escalation.notifier import NotificationGateway
from dutyalarm.escalation.scheduler import EscalationScheduler
from dutyalarm.exceptions import AlertIdExhaustedError
from dutyalarm.models.alert import AcceptOutcome
from dutyalarm.utils.logging import setup_logging, get_logger, CorrelationContextManager

# Setup logging
setup_logging()
logger = get_logger(__name__)

# Global service instances
chat_gateway: Optional[TelegramChatGateway] = None
coordinator: Optional[EscalationCoordinator] = None
escalation_scheduler: Optional[EscalationScheduler] = None


class RaiseAlertRequest(BaseModel):
    label: str = Field(min_length=1, max_length=200)
    origin_chat_id: Union[int, str]
    origin_message_id: int


class AcceptAlertRequest(BaseModel):
    accepting_user: str = Field(min_length=1, max_length=100)
    label: Optional[str] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global chat_gateway, coordinator, escalation_scheduler

    logger.info("Starting Duty Alarm Bridge")

    chat_gateway = TelegramChatGateway()
    coordinator = EscalationCoordinator(chat_gateway, NotificationGateway())
    escalation_scheduler = EscalationScheduler(coordinator)

    await escalation_scheduler.start()
    logger.info("Duty Alarm Bridge started successfully",
                alarm_channel=settings.ALARM_CHANNEL_ID)

    yield

    # Shutdown
    logger.info("Shutting down Duty Alarm Bridge")

    try:
        await escalation_scheduler.stop()
        await coordinator.shutdown()
        await chat_gateway.close()
        logger.info("Duty Alarm Bridge shutdown completed")

    except Exception as e:
        logger.error("Error during shutdown", error=str(e))


def get_coordinator() -> EscalationCoordinator:
    if coordinator is None:
        raise HTTPException(status_code=503, detail="Escalation coordinator not initialized")
    return coordinator


def get_scheduler() -> EscalationScheduler:
    if escalation_scheduler is None:
        raise HTTPException(status_code=503, detail="Escalation scheduler not initialized")
    return escalation_scheduler


def get_chat_gateway() -> TelegramChatGateway:
    if chat_gateway is None:
        raise HTTPException(status_code=503, detail="Chat gateway not initialized")
    return chat_gateway


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Chat alarm escalation to on-call duty officers",
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None
)


@app.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT
    }


@app.get("/health/detailed")
async def detailed_health_check(
    service: EscalationCoordinator = Depends(get_coordinator),
    scheduler: EscalationScheduler = Depends(get_scheduler)
):
    """Detailed health check with component status."""
    connector = service.notifier.connector
    if not connector.is_configured:
        twilio_status = "unconfigured"
    elif await connector.check_connection():
        twilio_status = "healthy"
    else:
        twilio_status = "critical"

    components = {
        "twilio": twilio_status,
        "scheduler": "healthy" if scheduler.is_running else "stopped",
    }

    if twilio_status == "critical":
        overall = "critical"
    elif all(status == "healthy" for status in components.values()):
        overall = "healthy"
    else:
        overall = "degraded"

    health_status = {
        "overall_status": overall,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": components,
        "active_alerts": len(service.registry),
        "pending_timers": service.deadlines.pending_count,
    }

    if overall == "critical":
        return JSONResponse(status_code=503, content=health_status)
    return health_status


@app.post("/api/v1/alerts", status_code=201)
async def raise_alert(
    request: RaiseAlertRequest,
    service: EscalationCoordinator = Depends(get_coordinator)
):
    """Raise an alarm and start escalation."""
    try:
        alert_id = await service.raise_alert(
            request.label,
            request.origin_chat_id,
            request.origin_message_id
        )
    except AlertIdExhaustedError as e:
        logger.error("Cannot raise alarm", error=str(e))
        raise HTTPException(status_code=503, detail=str(e))

    return {"alert_id": alert_id}


@app.post("/api/v1/alerts/{alert_id}/accept")
async def accept_alert(
    alert_id: str,
    request: AcceptAlertRequest,
    service: EscalationCoordinator = Depends(get_coordinator)
):
    """Accept an alarm; unknown alarms report not_found."""
    outcome = await service.accept_alert(alert_id, request.accepting_user, request.label)
    return {"alert_id": alert_id, "outcome": outcome.value}


@app.get("/api/v1/alerts")
async def list_alerts(service: EscalationCoordinator = Depends(get_coordinator)):
    """List alarms still held in memory."""
    alerts = service.list_active_alerts()
    return {"count": len(alerts), "alerts": alerts}


@app.get("/api/v1/alerts/{alert_id}")
async def get_alert(alert_id: str, service: EscalationCoordinator = Depends(get_coordinator)):
    """Get the status of one alarm."""
    status = service.get_alert_status(alert_id)
    if status is None:
        raise HTTPException(status_code=404, detail=f"Alert {alert_id} not found")
    return status


@app.get("/api/v1/scheduler/jobs")
async def scheduler_jobs(scheduler: EscalationScheduler = Depends(get_scheduler)):
    """Get status of housekeeping jobs."""
    return scheduler.get_job_status()


@app.post("/api/v1/scheduler/sweep")
async def run_sweep(scheduler: EscalationScheduler = Depends(get_scheduler)):
    """Expire unaccepted alarms past retention now."""
    expired = await scheduler.trigger_sweep()
    return {"expired": expired}


def _display_name(user: Dict[str, Any]) -> str:
    if user.get("username"):
        return f"@{user['username']}"
    name = " ".join(filter(None, [user.get("first_name"), user.get("last_name")]))
    return name or str(user.get("id", "unknown"))


@app.post("/telegram/webhook")
async def telegram_webhook(
    update: Dict[str, Any],
    x_telegram_bot_api_secret_token: Optional[str] = Header(default=None),
    service: EscalationCoordinator = Depends(get_coordinator),
    gateway: TelegramChatGateway = Depends(get_chat_gateway)
):
    """Handle accept-button presses from Telegram."""
    if settings.TELEGRAM_WEBHOOK_SECRET and not hmac.compare_digest(
        x_telegram_bot_api_secret_token or "", settings.TELEGRAM_WEBHOOK_SECRET
    ):
        raise HTTPException(status_code=403, detail="Invalid webhook secret")

    callback = update.get("callback_query")
    if not callback or not callback.get("data"):
        return {"ok": True, "handled": False}

    with CorrelationContextManager(str(update.get("update_id", ""))) as correlation_id:
        user = _display_name(callback.get("from", {}))
        outcome = await service.handle_accept_callback(callback["data"], user)

        notice = {
            AcceptOutcome.ACCEPTED: "Alarm accepted",
            AcceptOutcome.NOT_FOUND: "This alarm is no longer active",
            AcceptOutcome.INVALID: "Unknown action",
        }[outcome]
        if callback.get("id"):
            try:
                await gateway.answer_callback(callback["id"], notice)
            except Exception as e:
                logger.warning("Failed to answer callback query",
                               correlation_id=correlation_id, error=str(e))

    return {"ok": True, "handled": True, "outcome": outcome.value}


if __name__ == "__main__":
    uvicorn.run(
        "dutyalarm.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
