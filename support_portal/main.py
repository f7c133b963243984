"""
Support Portal - Main Application
=================================

Internal ticketing portal for seller and customer support.

Modules:
- Access: roles, permissions and department rules
- Priority: vendor/issue based priority scoring
- SLA: deadline computation and periodic breach sweep
- Snapshot: write-once ticket snapshots
- Routing: Slack channel routing and in-app notifications

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, policy file, Slack
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from support_portal.config import settings
from support_portal.core import ApplicationException
from support_portal.infrastructure.database import (
    close_database,
    create_tables,
    get_session_context,
    init_database,
)
from support_portal.routing.domain.value_objects import ChannelDirectory, NotificationRouter
from support_portal.routing.infrastructure import SlackClient
from support_portal.routing.services import SlackNotifier
from support_portal.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from support_portal.shared.infrastructure.logging import get_logger, setup_logging
from support_portal.sla.infrastructure import SLAScheduler
from support_portal.sla.services import SLAEvaluator
from support_portal.tickets.application import HealthResponse
from support_portal.tickets.infrastructure import PolicyConfigManager, SQLAlchemyTicketRepository
from support_portal.tickets.interfaces import tickets_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load the policy file and watch it for changes
    4. Build the Slack channel directory, router and client
    5. Start the SLA sweep

    SHUTDOWN:
    1. Stop SLA scheduler
    2. Stop the policy file watcher
    3. Close Slack client
    4. Close database connections
    """
    # === STARTUP ===
    setup_logging(level=settings.log_level, environment=settings.environment)
    logger.info("Starting Support Portal", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    init_database()

    # Create tables (for development - use Alembic in production)
    logger.info("Creating database tables")
    try:
        await create_tables()
    except (OSError, SQLAlchemyError) as e:
        logger.warning("Database not available - running in degraded mode", extra={"error": str(e)})

    logger.info("Loading policy configuration", extra={"path": str(settings.policy_config_path)})
    policy_manager = PolicyConfigManager()
    policy_manager.load(settings.policy_config_path)
    policy_manager.start_watching()

    directory = ChannelDirectory.from_env()
    notification_router = NotificationRouter(directory)
    slack_client = SlackClient()
    slack_notifier = SlackNotifier(notification_router, slack_client)
    if not slack_client.is_configured:
        logger.warning("SLACK_BOT_TOKEN not set - Slack notifications disabled")
    logger.info("Slack channel directory loaded", extra={"channels": sorted(directory.channels)})

    sla_evaluator = SLAEvaluator(
        calculator_factory=lambda: policy_manager.get_config().sla_calculator(),
        notifier=slack_notifier,
    )

    async def sla_evaluation_job():
        """Background SLA evaluation job."""
        async with get_session_context() as session:
            await sla_evaluator.evaluate(SQLAlchemyTicketRepository(session), commit=session.commit)

    sla_scheduler = None
    if settings.sla_evaluation_interval > 0:
        sla_scheduler = SLAScheduler(interval_seconds=settings.sla_evaluation_interval)
        await sla_scheduler.start(sla_evaluation_job)
    else:
        logger.info("SLA sweep disabled")

    # Store services in app state for dependency injection
    app.state.policy_manager = policy_manager
    app.state.notification_router = notification_router
    app.state.slack_notifier = slack_notifier
    app.state.sla_scheduler = sla_scheduler

    logger.info("Support Portal started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Support Portal")

    if sla_scheduler:
        await sla_scheduler.stop()

    policy_manager.stop_watching()

    await slack_client.close()

    await close_database()

    logger.info("Support Portal shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application with middleware, handlers and routers."""
    application = FastAPI(
        title="Support Portal API",
        description="""
    ## Seller & Customer Support Ticketing

    - Role and department based access control
    - Priority scoring from vendor GMV tier, history and issue type
    - SLA targets in wall-clock or business hours, swept for breaches
    - Immutable ticket snapshots of category, SLA, priority and tags
    - Slack channel routing for ticket events

    Every request identifies its caller with the `X-User-Email` header.
    """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_middleware(CorrelationIDMiddleware)
    application.add_middleware(LoggingMiddleware)
    application.add_exception_handler(ApplicationException, application_exception_handler)
    application.add_exception_handler(Exception, global_exception_handler)

    application.include_router(tickets_router)

    @application.get("/health", tags=["Health"], response_model=HealthResponse)
    async def health_check(request: Request):
        """Health check endpoint for load balancers and orchestrators."""
        scheduler = getattr(request.app.state, "sla_scheduler", None)
        checks = {
            "policy_config": "loaded" if getattr(request.app.state, "policy_manager", None) else "not_loaded",
            "sla_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
        }
        if scheduler and scheduler.next_run_time:
            checks["sla_next_sweep"] = scheduler.next_run_time.isoformat()
        notifier = getattr(request.app.state, "slack_notifier", None)
        checks["slack"] = "configured" if notifier and notifier.is_configured else "not_configured"
        return HealthResponse(
            status="healthy",
            version=settings.app_version,
            timestamp=datetime.now(timezone.utc),
            checks=checks,
        )

    @application.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": "Support Portal",
            "version": settings.app_version,
            "architecture": "Clean Architecture / Modular Monolith",
            "docs": "/docs",
            "health": "/health",
        }

    return application


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run(
        "support_portal.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )


if __name__ == "__main__":
    run()
