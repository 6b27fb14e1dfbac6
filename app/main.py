import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.attendance.router import router as attendance_router
from app.api.v1.calendar.router import router as calendar_router
from app.api.v1.classes.classes_router import router as classes_router
from app.api.v1.leaves.router import router as leaves_router
from app.api.v1.modules.users.student_router import router as students_router
from app.api.v1.modules.users.teacher_router import router as teachers_router
from app.api.v1.notifications.router import router as notifications_router
from app.api.v1.working_days.router import router as working_days_router
from app.core.config import settings
from app.core.log import configure_logging, request_id_var
from app.core.notifications import DatabaseNotifier
from app.core.validation import request_validation_handler
from app.db.session import build_engine, build_sessionmaker

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine = build_engine(settings.database_url, echo=settings.database_echo)
    app.state.engine = engine
    app.state.sessionmaker = build_sessionmaker(engine)
    app.state.notifier = DatabaseNotifier(app.state.sessionmaker)
    logger.info("Database engine ready")
    yield
    await engine.dispose()
    logger.info("Database engine disposed")


def create_app() -> FastAPI:
    configure_logging(settings.log_level)
    app = FastAPI(title="School Management Backend", lifespan=lifespan)

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
            if response.status_code >= 400:
                logger.warning("%s %s -> %s", request.method, request.url.path, response.status_code)
        except Exception:
            logger.exception("%s %s -> unhandled error", request.method, request.url.path)
            response = JSONResponse(status_code=500, content={"detail": "Internal server error"})
        finally:
            request_id_var.reset(token)
        response.headers["X-Request-ID"] = request_id
        return response

    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Routers
    app.include_router(leaves_router)
    app.include_router(attendance_router)
    app.include_router(working_days_router)
    app.include_router(calendar_router)
    app.include_router(classes_router)
    app.include_router(teachers_router)
    app.include_router(students_router)
    app.include_router(notifications_router)

    return app


app = create_app()
