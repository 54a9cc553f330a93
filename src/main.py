"""
Complaint SLA Service - Main Application
=========================================

SLA tracking and escalation for citizen complaints.

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, value objects and the SLA engine
- Infrastructure: Database, scheduler, notifier
"""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Callable, Optional, Tuple

from fastapi import FastAPI, Request

# Configuration and Core
from src.config import Settings, get_settings

# Infrastructure
from src.infrastructure.database import init_database, close_database, create_tables, get_session_maker

# SLA Module
from src.sla.application import (
    ComplaintSLAService,
    EscalationService,
    IComplaintRepository,
    IEscalationNotifier,
    IReportDirectory,
    WorkflowGuard,
)
from src.sla.domain import SLAEngine, SLAPolicy
from src.sla.infrastructure import (
    EscalationScheduler,
    LoggingEscalationNotifier,
    SQLAlchemyComplaintRepository,
    SQLAlchemyReportDirectory,
    YAMLPolicyProvider,
)
from src.sla.interfaces import sla_router

# Middleware and logging
from src.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    global_exception_handler
)
from src.shared.infrastructure.logging import setup_logging, get_logger

logger = get_logger(__name__)


def build_sla_services(
    policy: SLAPolicy,
    repository: IComplaintRepository,
    report_directory: IReportDirectory,
    notifier: Optional[IEscalationNotifier] = None,
    escalation_window: timedelta = timedelta(hours=1),
) -> Tuple[ComplaintSLAService, EscalationService]:
    """Wire the SLA core around one shared engine and repository."""
    engine = SLAEngine(policy, escalation_window=escalation_window)
    escalation_service = EscalationService(repository, engine, notifier)
    sla_service = ComplaintSLAService(
        repository,
        engine,
        WorkflowGuard(report_directory),
        escalation_service,
    )
    return sla_service, escalation_service


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Load SLA policy (invalid policy aborts startup)
    3. Initialize database and create tables
    4. Wire SLA services
    5. Start escalation scheduler

    SHUTDOWN:
    1. Stop escalation scheduler
    2. Close database connections
    """
    settings: Settings = app.state.settings

    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Complaint SLA Service", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Loading SLA policy")
    policy = YAMLPolicyProvider(settings).get_policy()

    logger.info("Initializing database")
    init_database(settings.database_url)
    # Development convenience; production schemas are migrated separately
    await create_tables()

    session_factory = get_session_maker()
    sla_service, escalation_service = build_sla_services(
        policy,
        SQLAlchemyComplaintRepository(session_factory),
        SQLAlchemyReportDirectory(session_factory),
        LoggingEscalationNotifier(),
        escalation_window=timedelta(minutes=settings.escalation_window_minutes),
    )
    app.state.sla_service = sla_service
    app.state.escalation_service = escalation_service

    scheduler = None
    if settings.escalation_enabled:
        scheduler = EscalationScheduler(
            escalation_service,
            sla_service,
            escalation_cron=settings.escalation_cron,
            report_cron=settings.sla_report_cron,
            clock=app.state.clock,
        )
        await scheduler.start()
    else:
        logger.info("Escalation scheduler disabled")
    app.state.scheduler = scheduler

    logger.info("Complaint SLA Service started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Complaint SLA Service")

    if scheduler:
        await scheduler.stop()

    await close_database()

    logger.info("Complaint SLA Service shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
) -> FastAPI:
    """Build the FastAPI application; services are wired in the lifespan."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Complaint SLA API",
        description="""
        ## Complaint SLA Tracking

        **Endpoints:**
        - `POST /sla/complaints` - Submit a complaint (starts the triage clock)
        - `POST /sla/complaints/{id}/assign` - Assign officer and priority (starts the resolution clock)
        - `PATCH /sla/complaints/{id}/priority` - Change priority
        - `PATCH /sla/complaints/{id}/status` - Change workflow status
        - `POST /sla/complaints/{id}/resolve` - Resolve (requires a filed report)
        - `GET /sla/complaints/{id}` - SLA status of one complaint
        - `GET /sla/metrics` - Compliance metrics
        - `POST /sla/escalate` - Run an escalation scan now
        - `GET /sla/config` - Active SLA policy
        - `GET /sla/alerts/triage` - Critical and overdue triage

        **SLA Time Limits (hours, defaults):**

        | Priority | Response | Resolution |
        |----------|----------|------------|
        | High     | 2        | 24         |
        | Medium   | 8        | 72         |
        | Low      | 24       | 168        |

        Triage: 24 hours from submission, critical after 15.
        """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.clock = clock

    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(sla_router)

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Health check endpoint for load balancers and orchestrators."""
        scheduler = getattr(request.app.state, "scheduler", None)
        checks = {
            "sla_service": "ready" if getattr(request.app.state, "sla_service", None) else "not_initialized",
            "escalation_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
        }
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": checks
        }

    return app


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host=_settings.host,
        port=_settings.port,
        reload=_settings.environment == "development",
        log_level=_settings.log_level.lower()
    )
