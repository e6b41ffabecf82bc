"""
Complaint Escalation Service - Main Application
===============================================

SLA-driven escalation engine for the complaint portal.

Clean Architecture Layers:
- Interfaces: FastAPI controllers (operator surface)
- Application: EscalationEngine, ports, DTOs
- Domain: Complaint, history entries, SLA / escalation policies
- Infrastructure: Database, Slack notifier, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from src.config import Settings, settings
from src.core import ApplicationException

# Infrastructure
from src.infrastructure.database import (
    init_database, close_database, create_tables, get_session_maker
)

# Escalation Module
from src.escalation.application import EscalationEngine
from src.escalation.domain import BreachEvaluator
from src.escalation.infrastructure import (
    SQLAlchemyEscalationStore,
    SlackEscalationNotifier,
    EscalationScheduler,
    YAMLPolicyLoader,
)
from src.escalation.interfaces import escalation_router

# Shared
from src.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from src.shared.infrastructure.logging import setup_logging, get_logger

logger = get_logger(__name__)


def build_escalation_components(app_settings: Settings):
    """
    Wire store, notifier, engine and scheduler from settings.

    Requires init_database() to have been called.
    """
    sla_policy, escalation_policy = YAMLPolicyLoader(app_settings).load()

    store = SQLAlchemyEscalationStore(get_session_maker())
    notifier = SlackEscalationNotifier(app_settings)
    engine = EscalationEngine(
        store=store,
        notifier=notifier,
        evaluator=BreachEvaluator(sla_policy),
        policy=escalation_policy,
        notification_timeout=app_settings.notification_timeout_seconds,
    )
    scheduler = EscalationScheduler(
        engine,
        interval_seconds=app_settings.escalation_sweep_interval,
        initial_delay_seconds=app_settings.escalation_initial_delay,
    )
    return engine, scheduler, notifier


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database (tables created in development only)
    3. Load SLA / escalation policy
    4. Build engine and start the scheduler

    SHUTDOWN:
    1. Stop the scheduler (in-flight sweep finishes)
    2. Close the Slack client
    3. Close database connections
    """
    setup_logging(settings.log_level, settings.environment, settings.app_name)
    logger.info("Starting escalation service", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    init_database()
    if settings.environment == "development":
        try:
            await create_tables()
        except Exception as e:
            logger.warning(f"Database not available - running in degraded mode: {e}")

    engine, scheduler, notifier = build_escalation_components(settings)
    await scheduler.start()

    app.state.settings = settings
    app.state.escalation_engine = engine
    app.state.escalation_scheduler = scheduler

    logger.info("Escalation service started")

    yield  # Application runs here

    logger.info("Shutting down escalation service")
    await scheduler.stop()
    await notifier.close()
    await close_database()
    logger.info("Escalation service shutdown complete")


app = FastAPI(
    title="Complaint Escalation API",
    description="""
    ## SLA-driven complaint escalation

    A background engine re-evaluates every unresolved complaint against a
    priority-based response-time table and escalates breaches.

    **SLA thresholds (hours):** high 24, medium 48, low 72

    **Escalation rules:**
    - Automatic escalation at most once per cooldown window (24h)
    - Level 1: admin tier, moderate urgency
    - Level 2: admin + superadmin tiers, high urgency
    - Level 3+: admin + superadmin tiers, critical urgency

    **Endpoints:**
    - `POST /escalations/sweep` - Run a sweep now (409 while one is running)
    - `GET /escalations/stats` - Aggregate statistics
    - `GET /escalations/complaints` - Escalated complaints
    - `GET /escalations/complaints/{id}/history` - Escalation history
    - `POST /escalations/complaints/{id}/escalate` - Manual escalation
    - `POST /escalations/complaints/{id}/assign` - Assign to an admin
    - `GET /escalations/scheduler` - Scheduler status
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

app.include_router(escalation_router)


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Reports scheduler state and the outcome of the last sweep.
    """
    scheduler = getattr(request.app.state, "escalation_scheduler", None)
    checks = {
        "escalation_scheduler": scheduler.state if scheduler else "not_initialized",
        "last_sweep_at": scheduler.last_sweep_at.isoformat() if scheduler and scheduler.last_sweep_at else None,
        "last_sweep_error": scheduler.last_error if scheduler else None,
    }

    return {
        "status": "degraded" if checks["last_sweep_error"] else "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "escalation": {
                "prefix": "/escalations",
                "endpoints": [
                    "POST /escalations/sweep - Run sweep now",
                    "GET /escalations/stats - Escalation statistics",
                    "GET /escalations/complaints - Escalated complaints",
                    "GET /escalations/complaints/{id}/history - Escalation history",
                    "POST /escalations/complaints/{id}/escalate - Manual escalation",
                    "POST /escalations/complaints/{id}/assign - Assign complaint",
                    "GET /escalations/scheduler - Scheduler status"
                ]
            }
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
