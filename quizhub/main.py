import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from quizhub.config import settings
from quizhub.database import init_db
from quizhub.routers import attempts, auth, catalog, cleanup, leaderboard, quizzes
from quizhub.scheduler import scheduler

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Создаём таблицы, если их ещё нет
    init_db()
    if settings.CLEANUP_SCHEDULER_ENABLED:
        scheduler.start()
    yield
    await scheduler.stop()
    logger.info("shutting down")


app = FastAPI(title="QuizHub", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)

app.include_router(auth.router)
app.include_router(catalog.router)
app.include_router(attempts.router)
app.include_router(leaderboard.router)
app.include_router(quizzes.router)
app.include_router(cleanup.router)


@app.get("/health")
def health():
    return {"ok": True}


# ---------- ОШИБКИ ----------


@app.exception_handler(StarletteHTTPException)
async def http_exc_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exc_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "message": "Validation failed",
            "errors": [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg")}
                for err in exc.errors()
            ],
        },
    )


@app.exception_handler(Exception)
async def unhandled_exc_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    content = {"success": False, "message": "Internal server error"}
    if settings.is_development:
        content["message"] = str(exc)
        content["error_type"] = type(exc).__name__
    return JSONResponse(status_code=500, content=content)
