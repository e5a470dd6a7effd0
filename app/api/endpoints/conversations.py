"""
Conversation Endpoints - conversation lifecycle and chat turns
"""

from typing import Optional
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.agents.travel_assistant import (
    InvalidInputError,
    TravelAssistant,
    get_travel_assistant,
)
from app.api.schemas import (
    ConversationCreate,
    ConversationCreated,
    ErrorResponse,
    MessageRequest,
    MessageResponse,
    PreferencesUpdate,
)
from app.core.llm_service import GenerationUnavailable
from app.memory.conversation_store import ConversationNotFoundError
from app.core.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


def error_response(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message})


def not_found(conversation_id: str) -> JSONResponse:
    return error_response(
        404, "Conversation not found", f"Conversation {conversation_id} not found. Please start a new conversation first"
    )


@router.post("/conversations", status_code=201, response_model=ConversationCreated)
async def create_conversation(
    body: Optional[ConversationCreate] = None,
    assistant: TravelAssistant = Depends(get_travel_assistant),
):
    """Start a new conversation"""
    try:
        return assistant.start_conversation(body.owner_id if body else None)
    except Exception as e:
        logger.error(f"Failed to start conversation: {e}")
        return error_response(500, "Failed to start conversation", str(e))


@router.get("/conversations")
async def list_conversations(
    ownerId: str = "anonymous",
    assistant: TravelAssistant = Depends(get_travel_assistant),
):
    """List one owner's conversations"""
    conversations = assistant.list_conversations(ownerId)
    return {"ownerId": ownerId, "conversations": conversations, "total": len(conversations)}


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def send_message(
    conversation_id: str,
    body: MessageRequest,
    assistant: TravelAssistant = Depends(get_travel_assistant),
):
    """Run one chat turn"""
    message = body.message
    if not isinstance(message, str) or not message.strip():
        return error_response(400, "Invalid request", "Message is required and must be a non-empty string")

    if assistant.store.get(conversation_id) is None:
        return not_found(conversation_id)

    health = await assistant.llm_service.health_check()
    if not health.get("available"):
        return error_response(503, "LLM service unavailable", health.get("message", "Generation backend unreachable"))

    try:
        result = await assistant.chat(conversation_id, message)
        return result.to_dict()
    except InvalidInputError as e:
        return error_response(400, "Invalid request", str(e))
    except ConversationNotFoundError:
        return not_found(conversation_id)
    except GenerationUnavailable as e:
        logger.error(f"Chat turn failed for {conversation_id}: {e}")
        return error_response(503, "LLM service unavailable", str(e))
    except Exception as e:
        logger.exception(f"Unexpected chat failure for {conversation_id}: {e}")
        return error_response(500, "Failed to process message", str(e))


@router.get("/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    assistant: TravelAssistant = Depends(get_travel_assistant),
):
    """Conversation history without system prompts"""
    try:
        return assistant.get_conversation_history(conversation_id)
    except ConversationNotFoundError:
        return not_found(conversation_id)
    except Exception as e:
        return error_response(500, "Failed to retrieve conversation", str(e))


@router.post("/conversations/{conversation_id}/reset")
async def reset_conversation(
    conversation_id: str,
    assistant: TravelAssistant = Depends(get_travel_assistant),
):
    """Clear non-system messages and context"""
    try:
        await assistant.reset_conversation(conversation_id)
        return {"message": "Conversation reset", "conversationId": conversation_id}
    except ConversationNotFoundError:
        return not_found(conversation_id)
    except Exception as e:
        return error_response(500, "Failed to reset conversation", str(e))


@router.put("/conversations/{conversation_id}/preferences")
async def update_preferences(
    conversation_id: str,
    body: PreferencesUpdate,
    assistant: TravelAssistant = Depends(get_travel_assistant),
):
    """Merge caller preferences into the conversation context"""
    try:
        context = await assistant.update_preferences(conversation_id, body.preferences)
        return {"conversationId": conversation_id, "context": context}
    except ConversationNotFoundError:
        return not_found(conversation_id)
    except Exception as e:
        return error_response(500, "Failed to update preferences", str(e))


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    assistant: TravelAssistant = Depends(get_travel_assistant),
):
    """Delete a conversation"""
    if not await assistant.delete_conversation(conversation_id):
        return not_found(conversation_id)
    return {"message": "Conversation deleted", "conversationId": conversation_id}
