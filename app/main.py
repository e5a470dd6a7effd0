"""
Travel Assistant - Main Entry File

Wires the HTTP boundary to the conversation orchestrator:
- Generation backend client (Ollama / OpenAI / DeepSeek / Claude)
- In-memory conversation store with periodic expiry sweep
- Weather and country lookups
- Conversation and system routes
"""

import asyncio
from contextlib import asynccontextmanager
from dotenv import load_dotenv

# Load environment variables before settings are read
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from app.core.logging_config import get_logger
from app.core.config import get_settings
from app.agents.travel_assistant import get_travel_assistant
from app.api.endpoints import system_router, conversations_router

logger = get_logger(__name__)


async def sweep_expired_conversations(interval_minutes: float, max_age_hours: float):
    """Background task: drop conversations idle longer than max_age_hours"""
    while True:
        await asyncio.sleep(interval_minutes * 60)
        try:
            removed = get_travel_assistant().cleanup_expired(max_age_hours)
            logger.debug(f"Expiry sweep removed {removed} conversations")
        except Exception as e:
            logger.error(f"Expiry sweep failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    settings = get_settings()
    logger.info("🚀 Starting Travel Assistant")
    logger.info(f"LLM provider: {settings.llm_provider} ({settings.llm_model})")
    if not settings.openweather_api_key:
        logger.warning("OPENWEATHER_API_KEY not set, weather lookups are disabled")

    sweeper = asyncio.create_task(
        sweep_expired_conversations(settings.cleanup_interval_minutes, settings.conversation_max_age_hours)
    )

    yield

    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass
    logger.info("🛑 Shutting down Travel Assistant")


app = FastAPI(
    title="Travel Assistant",
    description="Conversational travel assistant grounded with live weather and country data",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"{request.method} {request.url.path}")
    return await call_next(request)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "message": str(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "message": str(exc)},
    )


app.include_router(system_router, tags=["system"])
app.include_router(conversations_router, prefix="/api", tags=["conversations"])


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
