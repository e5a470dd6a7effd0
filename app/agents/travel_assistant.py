"""
Travel Assistant - conversation turn orchestration

A turn runs through these steps, in order:

    received -> context merged -> classified -> data gathered -> prompt built
    -> generated -> validated -> (regenerated once) -> committed

The user's message is recorded before generation starts and stays recorded
even if generation fails; the assistant's reply is only appended once a reply
exists. Enrichment steps (context extraction, location resolution, external
data) are contained: their failures are logged and the turn goes on without
them. Store lookups and generation failures propagate to the caller.

Turns for the same conversation are serialized in arrival order; different
conversations run concurrently.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from app.core.config import Settings, get_settings
from app.core.llm_service import (
    BaseLLMService,
    GenerationUnavailable,
    LLMResponse,
    get_llm_service,
)
from app.core.prompt_manager import PromptManager, prompt_manager, LOCATION_UNKNOWN
from app.core.query_classifier import QueryType, classify_query
from app.memory.conversation_store import (
    Conversation,
    ConversationNotFoundError,
    ConversationStore,
    MessageRole,
)
from app.services.response_validator import validate_response
from app.tools.data_gateway import (
    ExternalDataGateway,
    create_data_gateway,
    extract_location,
    should_fetch_data,
)
from app.core.logging_config import get_logger

logger = get_logger(__name__)

MAX_LOCATION_LENGTH = 60


class InvalidInputError(ValueError):
    """Raised for an empty or malformed user message"""
    pass


class ChatResult(BaseModel):
    """Outcome of one committed turn"""

    response: str
    conversation_id: str
    query_type: QueryType
    external_data_used: List[str] = Field(default_factory=list)
    timestamp: datetime
    validation_issues: List[str] = Field(default_factory=list)
    regenerated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": self.response,
            "conversationId": self.conversation_id,
            "queryType": self.query_type.value,
            "externalDataUsed": self.external_data_used,
            "timestamp": self.timestamp.isoformat(),
        }


def deduplicate_messages(messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
    """Collapse runs of consecutive entries with identical content"""
    deduped = []
    last_content = None
    for message in messages:
        if message["content"] != last_content:
            deduped.append(message)
            last_content = message["content"]
    return deduped


class TravelAssistant:
    """Conversation orchestrator"""

    def __init__(
        self,
        llm_service: BaseLLMService,
        store: ConversationStore,
        data_gateway: ExternalDataGateway,
        prompts: PromptManager = prompt_manager,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        sleep=asyncio.sleep,
    ):
        self.llm_service = llm_service
        self.store = store
        self.data_gateway = data_gateway
        self.prompts = prompts
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.sleep = sleep

    # ----- conversation lifecycle -----

    def start_conversation(self, owner_id: Optional[str] = None) -> Dict[str, str]:
        conversation_id = self.store.create(owner_id)
        self.store.append_message(conversation_id, MessageRole.SYSTEM, self.prompts.get_system_prompt())
        return {"conversationId": conversation_id, "message": "New conversation started"}

    def get_conversation_history(self, conversation_id: str) -> Dict[str, Any]:
        conversation = self._require(conversation_id)
        return {
            "conversationId": conversation.id,
            "messages": [
                m.to_dict() for m in conversation.messages if m.role != MessageRole.SYSTEM
            ],
            "context": conversation.context.to_dict(),
            "createdAt": conversation.created_at.isoformat(),
            "lastActivity": conversation.last_activity.isoformat(),
        }

    # mutations below queue behind any in-flight turn for the same conversation

    async def reset_conversation(self, conversation_id: str):
        async with self.store.lock_for(conversation_id):
            self.store.reset(conversation_id)

    async def delete_conversation(self, conversation_id: str) -> bool:
        async with self.store.lock_for(conversation_id):
            return self.store.delete(conversation_id)

    async def update_preferences(self, conversation_id: str, preferences: Dict[str, Any]) -> Dict[str, Any]:
        async with self.store.lock_for(conversation_id):
            self.store.merge_preferences(conversation_id, preferences)
            return self._require(conversation_id).context.to_dict()

    def list_conversations(self, owner_id: str) -> List[Dict[str, Any]]:
        return self.store.user_conversations(owner_id)

    def cleanup_expired(self, max_age_hours: float) -> int:
        return self.store.sweep_expired(max_age_hours)

    def _require(self, conversation_id: str) -> Conversation:
        conversation = self.store.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    # ----- turn -----

    async def chat(self, conversation_id: str, message: str) -> ChatResult:
        """Process one user utterance and return the committed reply"""
        if not isinstance(message, str) or not message.strip():
            raise InvalidInputError("Message is required and must be a non-empty string")

        self._require(conversation_id)

        async with self.store.lock_for(conversation_id):
            conversation = self._require(conversation_id)

            try:
                self.store.merge_extracted_context(conversation_id, message)
            except Exception as e:
                logger.warning(f"Context extraction failed for {conversation_id}: {e}")

            self.store.append_message(conversation_id, MessageRole.USER, message)

            query_type = classify_query(message)
            logger.info(f"Conversation {conversation_id}: query classified as {query_type.value}")

            external_data = await self.gather_external_data(message, query_type, conversation)

            # history without system messages and without the message just appended
            history = [
                m for m in self.store.formatted_history(conversation_id) if m["role"] != "system"
            ][:-1]
            user_prompt = self.prompts.build_prompt(
                message,
                query_type,
                conversation_history=history,
                external_data=external_data,
                user_preferences=conversation.context.merged_preferences(),
            )

            result = await self.generate_with_retry(conversation_id, user_prompt)
            response_text = result.content

            validation = validate_response(response_text, external_data)
            regenerated = False
            if validation.should_retry:
                logger.info(
                    f"Response validation failed ({', '.join(validation.issues)}), "
                    "regenerating with error recovery prompt"
                )
                recovery_prompt = self.prompts.error_recovery_prompt(
                    message, response_text, validation.issues
                )
                # used as-is; the corrective reply is not validated again
                result = await self.generate_with_retry(conversation_id, recovery_prompt)
                response_text = result.content
                regenerated = True
            elif validation.issues:
                logger.info(f"Advisory response issues: {', '.join(validation.issues)}")

            sources = list(external_data.keys())
            self.store.append_message(
                conversation_id,
                MessageRole.ASSISTANT,
                response_text,
                metadata={
                    "queryType": query_type.value,
                    "externalDataUsed": bool(sources),
                    "validationIssues": validation.issues,
                    "regenerated": regenerated,
                    "model": result.model,
                    "tokenCount": result.token_count,
                },
            )

        return ChatResult(
            response=response_text,
            conversation_id=conversation_id,
            query_type=query_type,
            external_data_used=sources,
            timestamp=datetime.now(timezone.utc),
            validation_issues=validation.issues,
            regenerated=regenerated,
        )

    def build_messages(self, conversation_id: str, user_prompt: str) -> List[Dict[str, str]]:
        """System prompt, non-system history, then the turn prompt; consecutive repeats collapsed"""
        messages = [{"role": "system", "content": self.prompts.get_system_prompt()}]
        messages.extend(
            m for m in self.store.formatted_history(conversation_id) if m["role"] != "system"
        )
        messages.append({"role": "user", "content": user_prompt})
        return deduplicate_messages(messages)

    async def generate_with_retry(self, conversation_id: str, user_prompt: str) -> LLMResponse:
        """Generate with linear backoff; raises GenerationUnavailable once attempts run out"""
        messages = self.build_messages(conversation_id, user_prompt)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_incrementing(start=self.retry_delay, increment=self.retry_delay),
                retry=retry_if_exception_type(GenerationUnavailable),
                before_sleep=self._log_retry,
                sleep=self.sleep,
                reraise=True,
            ):
                with attempt:
                    response = await self.llm_service.chat_completion(
                        messages,
                        temperature=self.temperature,
                        max_tokens=self.max_tokens,
                    )
        except GenerationUnavailable as e:
            logger.error(f"Generation failed after {self.retry_attempts} attempts: {e}")
            raise
        return response

    def _log_retry(self, retry_state: RetryCallState):
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"Generation attempt {retry_state.attempt_number}/{self.retry_attempts} failed: {error}; "
            f"retrying in {retry_state.next_action.sleep if retry_state.next_action else 0:.1f}s"
        )

    # ----- enrichment -----

    async def gather_external_data(
        self, message: str, query_type: QueryType, conversation: Conversation
    ) -> Dict[str, Any]:
        """Fetch weather/country facts when the turn calls for them; never raises"""
        needs = should_fetch_data(message, query_type)
        if not needs.has_any:
            return {}

        try:
            location = await self.resolve_location(message, conversation)
            if not location:
                logger.debug("No location found, skipping external data")
                return {}
            return await self.data_gateway.fetch(location, needs)
        except Exception as e:
            logger.warning(f"External data gathering failed: {e}")
            return {}

    async def resolve_location(self, message: str, conversation: Conversation) -> Optional[str]:
        """Heuristic match, then latest extracted destination, then one generation call"""
        location = extract_location(message)
        if location:
            return location

        destinations = conversation.context.extracted_info.destinations
        if destinations:
            return destinations[-1]

        return await self._resolve_location_with_llm(message, destinations)

    async def _resolve_location_with_llm(self, message: str, known: List[str]) -> Optional[str]:
        prompt = self.prompts.location_resolution_prompt(message, known)
        try:
            result = await self.llm_service.chat_completion(
                [{"role": "user", "content": prompt}],
                temperature=0.0,
                max_tokens=20,
            )
        except GenerationUnavailable as e:
            logger.warning(f"Location resolution call failed: {e}")
            return None

        return parse_location_answer(result.content)

    # ----- health -----

    async def health_check(self) -> Dict[str, Any]:
        return {
            "llm": await self.llm_service.health_check(),
            "conversations": self.store.stats(),
            "dataSources": self.data_gateway.get_status(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


def parse_location_answer(answer: str) -> Optional[str]:
    """Clean a location-resolution reply; the unknown sentinel and junk map to None"""
    lines = [line.strip() for line in (answer or "").strip().splitlines() if line.strip()]
    if not lines:
        return None
    location = lines[0].strip(" \"'`.*:")
    if not location or location.lower() == LOCATION_UNKNOWN or len(location) > MAX_LOCATION_LENGTH:
        return None
    return location


# Global assistant instance
travel_assistant: Optional[TravelAssistant] = None


def create_travel_assistant(settings: Optional[Settings] = None) -> TravelAssistant:
    settings = settings or get_settings()
    return TravelAssistant(
        llm_service=get_llm_service(),
        store=ConversationStore(max_history_length=settings.max_history_length),
        data_gateway=create_data_gateway(
            openweather_api_key=settings.openweather_api_key,
            timeout=settings.external_api_timeout,
        ),
        retry_attempts=settings.llm_retry_attempts,
        retry_delay=settings.llm_retry_delay,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
    )


def get_travel_assistant() -> TravelAssistant:
    """Get travel assistant instance"""
    global travel_assistant
    if travel_assistant is None:
        travel_assistant = create_travel_assistant()
        logger.info("Initialized travel assistant")
    return travel_assistant
