"""
System Endpoints - Health checks and service overview
"""

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from datetime import datetime, timezone

from app.agents.travel_assistant import TravelAssistant, get_travel_assistant
from app.core.llm_service import LLMServiceFactory
from app.core.prompt_manager import prompt_manager

router = APIRouter()


@router.get("/")
async def root():
    """Root path - service overview"""
    return {
        "message": "Travel Assistant API",
        "status": "Running",
        "endpoints": [
            "GET  /api/health",
            "POST /api/conversations",
            "GET  /api/conversations?ownerId=",
            "POST /api/conversations/{id}/messages",
            "GET  /api/conversations/{id}",
            "POST /api/conversations/{id}/reset",
            "PUT  /api/conversations/{id}/preferences",
            "DELETE /api/conversations/{id}",
        ],
        "providers": LLMServiceFactory.get_available_providers(),
        "promptTemplates": prompt_manager.get_available_prompts(),
    }


@router.get("/api/health")
async def health_check(assistant: TravelAssistant = Depends(get_travel_assistant)):
    """200 when the generation backend is reachable and its model is ready, 503 otherwise"""
    try:
        health = await assistant.health_check()
    except Exception as e:
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "error": str(e),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    llm = health["llm"]
    healthy = bool(llm.get("available") and llm.get("modelReady"))
    return JSONResponse(status_code=200 if healthy else 503, content=jsonable_encoder(health))
