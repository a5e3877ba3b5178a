from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from api_self_healing import router as self_healing_router
from self_healing import SelfHealingSettings, build_services, load_env_files

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger("self_healing.host")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Build and start the self-healing monitors on startup, stop them on shutdown.
    The monitors stay off unless ENABLE_SELF_HEALING=true.
    """
    load_env_files()
    settings = SelfHealingSettings.from_env()
    app.state.self_healing_settings = settings
    app.state.self_healing = None

    if settings.enabled:
        try:
            services = build_services(settings)
            services.start()
            app.state.self_healing = services
            logger.info("Self-healing monitors started (logs in %s)", settings.log_dir)
        except Exception as e:
            # Don't crash the app if the monitors cannot start
            logger.error("Failed to start self-healing monitors: %s", e, exc_info=True)
    else:
        logger.info("Self-healing disabled; set ENABLE_SELF_HEALING=true to enable")

    yield  # App runs here

    services = app.state.self_healing
    if services is not None:
        await services.stop()
        logger.info("Self-healing monitors stopped")


app = FastAPI(
    title="Self-Healing Dependency Monitor",
    description="Network, registry and database-configuration health with automatic repair.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(self_healing_router)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """
    Catch-all handler for unhandled exceptions.
    Logs full stack trace but returns sanitized error message to client.
    """
    logger.exception(
        f"Unhandled exception on {request.method} {request.url.path}",
        extra={
            "method": request.method,
            "path": request.url.path,
            "exception_type": type(exc).__name__,
        },
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


@app.get("/")
def read_root():
    return {"status": "ok", "message": "Self-healing monitor is running"}
