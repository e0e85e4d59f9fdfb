"""
Document Import — API Server
============================
Version 1.0 — October 2026

FastAPI server exposing the document import pipeline.
"""

import os
import sys
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Disable LangSmith tracing by default to prevent warnings
os.environ.setdefault("LANGCHAIN_TRACING_V2", "false")

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

# Add src to path
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from config import PipelineConfig
from run_persistence import create_store
from services import build_pipeline

# Import API modules
from api.routes import imports_router, observability_router, limiter
import api.state as api_state

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("server")

# Suppress noisy LangChain callback warnings about serialization
logging.getLogger("langchain_core.callbacks.manager").setLevel(logging.ERROR)


# =============================================================================
# APP SETUP
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup - store and pipeline, unless already provided
    config = PipelineConfig(store_mode=os.getenv("IMPORT_STORE_MODE", "sqlite"))

    if api_state.store is None:
        try:
            store = create_store(config)
            await store.init()
            api_state.store = store
        except Exception as e:
            logger.error(f"❌ Failed to initialize store: {e}")
            raise

    if api_state.pipeline is None:
        api_state.pipeline = build_pipeline(api_state.store, config)

    logger.info(f"Starting Document Import Server (store: {config.store_mode})")

    yield

    logger.info("Shutting down Document Import Server")


app = FastAPI(title="Document Import API", lifespan=lifespan)

# Rate limiting setup
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("FRONTEND_URL", "*").split(",") if os.getenv("FRONTEND_URL") != "*" else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(imports_router)
app.include_router(observability_router)


if __name__ == "__main__":
    import uvicorn

    # Allow configuration via environment variables
    host = os.getenv("SERVER_HOST", "0.0.0.0")
    port = int(os.getenv("SERVER_PORT", "8085"))

    logger.info(f"🚀 Starting server on {host}:{port}")
    uvicorn.run(app, host=host, port=port)
