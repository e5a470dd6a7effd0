"""
Conversation Store - in-memory conversation state

Owns every conversation for its whole lifetime: creation, message history with
a bounded length, accumulated context, explicit deletion and age-based sweeps.
State is volatile and lives only as long as the process.

History cap: once a conversation holds more than `max_history_length`
messages, the oldest non-system messages are dropped. System messages are
never evicted.
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from app.memory.context_extractor import extract_signals
from app.core.logging_config import get_logger

logger = get_logger(__name__)

ANONYMOUS_OWNER = "anonymous"
DEFAULT_MAX_HISTORY_LENGTH = 20


class ConversationNotFoundError(Exception):
    """Raised when a conversation id is unknown"""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class MessageRole(str, Enum):
    """Message author"""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """Single message; frozen once created"""

    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            **self.metadata,
        }


class ExtractedInfo(BaseModel):
    """Heuristically derived travel context; lists grow and keep repeats"""

    model_config = ConfigDict(populate_by_name=True)

    budget: Optional[str] = None
    budget_mentioned: bool = Field(default=False, alias="budgetMentioned")
    duration: Optional[str] = None
    destinations: List[str] = Field(default_factory=list)
    travel_styles: List[str] = Field(default_factory=list, alias="travelStyles")
    interests: List[str] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_defaults=True)


class Context(BaseModel):
    """Caller preferences plus extracted signals"""

    user_preferences: Dict[str, Any] = Field(default_factory=dict)
    extracted_info: ExtractedInfo = Field(default_factory=ExtractedInfo)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userPreferences": dict(self.user_preferences),
            "extractedInfo": self.extracted_info.to_dict(),
        }

    def merged_preferences(self) -> Dict[str, Any]:
        """Extracted signals overlaid on caller preferences, keyed for prompt building"""
        return {**self.user_preferences, **self.extracted_info.to_dict()}


class Conversation(BaseModel):
    """Conversation state"""

    id: str
    owner_id: str = ANONYMOUS_OWNER
    messages: List[Message] = Field(default_factory=list)
    context: Context = Field(default_factory=Context)
    created_at: datetime
    last_activity: datetime


class ConversationStore:
    """In-memory conversation registry"""

    def __init__(self, max_history_length: int = DEFAULT_MAX_HISTORY_LENGTH):
        self.max_history_length = max_history_length
        self.conversations: Dict[str, Conversation] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def create(self, owner_id: Optional[str] = None) -> str:
        """Create an empty conversation and return its id"""
        conversation_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        self.conversations[conversation_id] = Conversation(
            id=conversation_id,
            owner_id=owner_id or ANONYMOUS_OWNER,
            created_at=now,
            last_activity=now,
        )
        logger.info(f"Created conversation {conversation_id} for owner {owner_id or ANONYMOUS_OWNER}")
        return conversation_id

    def get(self, conversation_id: str) -> Optional[Conversation]:
        return self.conversations.get(conversation_id)

    def _require(self, conversation_id: str) -> Conversation:
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    def lock_for(self, conversation_id: str) -> asyncio.Lock:
        """Per-conversation lock; waiters are served in arrival order.

        Unknown ids get a throwaway lock so lookups of missing conversations
        never leave entries behind.
        """
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            if conversation_id in self.conversations:
                self._locks[conversation_id] = lock
        return lock

    def append_message(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Message:
        """Append a message, refresh activity, then enforce the history cap"""
        conversation = self._require(conversation_id)

        message = Message(role=MessageRole(role), content=content, metadata=metadata or {})
        conversation.messages.append(message)
        # never step backwards if the clock does
        conversation.last_activity = max(conversation.last_activity, message.timestamp)

        self._enforce_history_cap(conversation)
        return message

    def _enforce_history_cap(self, conversation: Conversation):
        excess = len(conversation.messages) - self.max_history_length
        if excess <= 0:
            return

        kept = []
        for message in conversation.messages:
            if excess > 0 and message.role != MessageRole.SYSTEM:
                excess -= 1
                continue
            kept.append(message)
        conversation.messages = kept

    def merge_preferences(self, conversation_id: str, preferences: Dict[str, Any]):
        """Shallow-merge caller preferences"""
        conversation = self._require(conversation_id)
        conversation.context.user_preferences.update(preferences)

    def merge_extracted_context(self, conversation_id: str, message: str):
        """Accumulate heuristic signals from a user utterance; unknown ids are ignored"""
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            return

        signals = extract_signals(message)
        info = conversation.context.extracted_info

        if signals.budget is not None:
            info.budget = signals.budget
        if signals.budget_mentioned:
            info.budget_mentioned = True
        if signals.duration is not None:
            info.duration = signals.duration
        if signals.destination:
            info.destinations.append(signals.destination)
        info.travel_styles.extend(signals.travel_styles)
        info.interests.extend(signals.interests)

    def formatted_history(self, conversation_id: str) -> List[Dict[str, str]]:
        """Role/content pairs in order; empty for unknown ids"""
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            return []
        return [{"role": m.role.value, "content": m.content} for m in conversation.messages]

    def reset(self, conversation_id: str):
        """Drop non-system messages and clear context; id and creation time survive"""
        conversation = self._require(conversation_id)
        conversation.messages = [m for m in conversation.messages if m.role == MessageRole.SYSTEM]
        conversation.context = Context()
        logger.info(f"Reset conversation {conversation_id}")

    def delete(self, conversation_id: str) -> bool:
        removed = self.conversations.pop(conversation_id, None)
        self._locks.pop(conversation_id, None)
        if removed is not None:
            logger.info(f"Deleted conversation {conversation_id}")
        return removed is not None

    def sweep_expired(self, max_age_hours: float = 24, now: Optional[datetime] = None) -> int:
        """Remove conversations idle longer than max_age_hours; return how many went"""
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=max_age_hours)
        expired = [cid for cid, conv in self.conversations.items() if conv.last_activity < cutoff]
        for conversation_id in expired:
            self.delete(conversation_id)
        if expired:
            logger.info(f"Swept {len(expired)} expired conversations")
        return len(expired)

    def user_conversations(self, owner_id: str) -> List[Dict[str, Any]]:
        """Summaries of one owner's conversations"""
        summaries = []
        for conversation in self.conversations.values():
            if conversation.owner_id != owner_id:
                continue
            last = conversation.messages[-1].content if conversation.messages else None
            summaries.append({
                "id": conversation.id,
                "createdAt": conversation.created_at,
                "lastActivity": conversation.last_activity,
                "messageCount": len(conversation.messages),
                "preview": last[:100] if last is not None else None,
            })
        return summaries

    def stats(self) -> Dict[str, int]:
        hour_ago = datetime.now(timezone.utc) - timedelta(hours=1)
        return {
            "total": len(self.conversations),
            "activeWithinLastHour": len(
                [c for c in self.conversations.values() if c.last_activity > hour_ago]
            ),
        }
