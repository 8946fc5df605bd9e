import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from splitshare.api.v1.routes.expenses import router as expenses_router
from splitshare.api.v1.routes.groups import router as groups_router
from splitshare.core.config import Settings, get_rabbitmq_settings, get_settings
from splitshare.core.errors import DomainError
from splitshare.core.logging_config import configure_logging
from splitshare.db.database import check_db_connection, create_db_engine, create_session_factory, init_db
from splitshare.services.notification_service import ExpenseNotifier, create_notifier

logger = logging.getLogger(__name__)


async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def _jsonable_errors(errors):
    return [{"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")} for error in errors]


async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0]["msg"] if errors else "Invalid request"
    # Drop the "Value error, " prefix pydantic puts on custom validator messages
    message = message.replace("Value error, ", "", 1)
    return JSONResponse(status_code=400, content={"detail": message, "errors": _jsonable_errors(errors)})


def create_app(
    settings: Optional[Settings] = None,
    notifier: Optional[ExpenseNotifier] = None,
    engine: Optional[Engine] = None
) -> FastAPI:
    """Build the application and its collaborators once"""
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    owns_engine = engine is None
    engine = engine or create_db_engine(settings.database_url)
    notifier = notifier or create_notifier(get_rabbitmq_settings(), settings.notifications_enabled)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(app.state.engine)
        logger.info("Database initialised")
        yield
        app.state.notifier.close()
        if owns_engine:
            app.state.engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        description="Splits expenses between participants and guards who may change them",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.notifier = notifier
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)

    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)

    app.include_router(expenses_router)
    app.include_router(groups_router)

    @app.get("/")
    def read_root():
        return {"message": "Splitshare API", "version": "1.0.0"}

    @app.get("/health")
    def health_check():
        database_ok = check_db_connection(app.state.engine)
        return {"status": "healthy" if database_ok else "degraded", "database": database_ok}

    return app


app = create_app()
