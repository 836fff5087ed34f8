from contextlib import asynccontextmanager
import asyncio, logging
from fastapi import FastAPI

from .db import engine, Base
from .routers.ask import router as ask_router
from .routers.preview import router as preview_router
from crm_nlq.setup_logging import setup_logging
from crm_nlq.settings import ORACLE_BACKEND, ORACLE_PRELOAD, PRELOAD_BLOCKING

# --------------------------------------------------------------------
# App bootstrap
# --------------------------------------------------------------------
setup_logging() # Init Logging
log = logging.getLogger(__name__)

# Create database tables if they don’t exist.
Base.metadata.create_all(bind=engine)

# --------------------------------------------------------------------
# FastAPI application with lifespan hook
# --------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context runs once at startup and once at shutdown.
    With the local oracle backend we optionally warm up the intent model so
    the first question doesn't pay for loading it.
    PRELOAD_BLOCKING=true waits for the model, false loads it in the background.
    """
    app.state.model_ready = ORACLE_BACKEND != "local"
    app.state.model_error = None

    async def _warmup():
        try:
            from crm_nlq.nl.model_loader import load_model
            if PRELOAD_BLOCKING:
                load_model()
            else:
                await asyncio.to_thread(load_model)
            app.state.model_ready = True
        except Exception as e:
            # Store any load error so /healthz can report it
            log.exception("intent model warmup failed")
            app.state.model_error = str(e)
            app.state.model_ready = False

    if ORACLE_BACKEND == "local" and ORACLE_PRELOAD:
        if PRELOAD_BLOCKING:
            await _warmup()
        else:
            asyncio.create_task(_warmup())

    yield

app = FastAPI(title="CRM Natural-Language Query Engine", lifespan=lifespan)

# --------------------------------------------------------------------
# Routes
# --------------------------------------------------------------------
@app.get("/healthz")
def health():
    """
    Liveness check.
    Returns:
      - ok: static True if the app is alive
      - oracle_backend: "local" or "openai"
      - model_ready: True once the local model has loaded (always True for openai)
      - model_error: any load error message (None if healthy)
    """
    return {
        "ok": True,
        "service": "crm-nlq",
        "version": 1,
        "oracle_backend": ORACLE_BACKEND,
        "model_ready": bool(getattr(app.state, "model_ready", False)),
        "model_error": getattr(app.state, "model_error", None),
    }

# Register API routers:
app.include_router(ask_router)
app.include_router(preview_router)
