# achievement_api/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from achievement_api.api.v1 import achievements, advisors, auth, reports, students, users
from achievement_api.config import settings
from achievement_api.core.database import engine, init_models
from achievement_api.core.deadline import request_deadline
from achievement_api.core.errors import AchievementError, ErrorKind, STATUS_CODES
from achievement_api.core.log import configure_logging
from achievement_api.core.mongo import init_mongo
from achievement_api.utils.dates import utcnow

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    configure_logging()
    mongo = await init_mongo()
    if settings.AUTO_CREATE_TABLES:
        await init_models()
    logger.info("%s started env=%s", settings.APP_NAME, settings.ENVIRONMENT)
    yield
    mongo.close()
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def deadline_middleware(request: Request, call_next):
    # every store call made while serving the request shares this deadline
    with request_deadline(settings.REQUEST_TIMEOUT_SECONDS):
        return await call_next(request)


@app.exception_handler(AchievementError)
async def achievement_error_handler(request: Request, exc: AchievementError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %r", request.method, request.url.path, exc, exc_info=exc.__cause__)
    headers = {"WWW-Authenticate": "Bearer"} if exc.kind == ErrorKind.UNAUTHENTICATED else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=STATUS_CODES[ErrorKind.VALIDATION_ERROR],
        content={
            "status": "error",
            "error": ErrorKind.VALIDATION_ERROR.value,
            "message": "request validation failed",
            "errors": errors,
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=STATUS_CODES[ErrorKind.INTERNAL],
        content={"status": "error", "error": ErrorKind.INTERNAL.value, "message": "internal server error"},
    )


# Include all routers
app.include_router(auth.router, prefix=settings.API_V1_PREFIX)
app.include_router(achievements.router, prefix=settings.API_V1_PREFIX)
app.include_router(students.router, prefix=settings.API_V1_PREFIX)
app.include_router(advisors.router, prefix=settings.API_V1_PREFIX)
app.include_router(reports.router, prefix=settings.API_V1_PREFIX)
app.include_router(users.router, prefix=settings.API_V1_PREFIX)

app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")


@app.get("/")
async def root():
    return {
        "status": "success",
        "service": settings.APP_NAME,
        "environment": settings.ENVIRONMENT,
        "time": utcnow().isoformat(),
    }
