"""
LLM Service Module - Generation backend clients

One client per provider behind a common interface. Clients perform a single
network call per invocation; retry and backoff belong to the caller.
"""

from typing import Dict, List, Optional, Any
from abc import ABC, abstractmethod
from pydantic import BaseModel
import asyncio
import aiohttp
import openai
import anthropic
from app.core.config import Settings, get_settings
from app.core.logging_config import get_logger

logger = get_logger(__name__)


class GenerationUnavailable(Exception):
    """Raised when the generation backend cannot produce a reply"""
    pass


class LLMResponse(BaseModel):
    """LLM Response Standard Format"""

    content: str
    model: str
    token_count: int = 0
    finish_reason: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class LLMConfig(BaseModel):
    """LLM Configuration"""

    provider: str = "ollama"  # ollama, openai, deepseek, claude
    model: str = "llama3.2"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    max_tokens: Optional[int] = 1000
    temperature: float = 0.7
    top_p: float = 0.9
    timeout: float = 60.0


class BaseLLMService(ABC):
    """Base LLM Service Interface"""

    def __init__(self, config: LLMConfig):
        self.config = config
        self.model = config.model

    @abstractmethod
    async def chat_completion(
        self, messages: List[Dict[str, str]], **kwargs
    ) -> LLMResponse:
        """Send role-tagged messages, return the generated reply.

        Raises GenerationUnavailable on any transport or backend error.
        """
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Report backend reachability and whether the model is ready. Never raises."""
        pass

    def _sampling_options(self, kwargs: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "temperature": kwargs.get("temperature", self.config.temperature),
            "top_p": kwargs.get("top_p", self.config.top_p),
            "max_tokens": kwargs.get("max_tokens", self.config.max_tokens),
        }


class OllamaService(BaseLLMService):
    """Ollama chat API over HTTP"""

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        self.base_url = (config.base_url or "http://localhost:11434").rstrip("/")

    async def chat_completion(
        self, messages: List[Dict[str, str]], **kwargs
    ) -> LLMResponse:
        options = self._sampling_options(kwargs)
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": options["temperature"],
                "top_p": options["top_p"],
                "num_predict": options["max_tokens"],
            },
        }

        logger.debug(f"Making Ollama chat call with model: {self.model}")

        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(f"{self.base_url}/api/chat", json=payload) as response:
                    response.raise_for_status()
                    data = await _read_json_object(response)
        except asyncio.TimeoutError as e:
            logger.warning(f"Ollama request timed out after {self.config.timeout}s")
            raise GenerationUnavailable(f"Ollama request timed out after {self.config.timeout}s") from e
        except aiohttp.ClientError as e:
            logger.warning(f"Ollama request failed: {e}")
            raise GenerationUnavailable(f"Ollama request failed: {e}") from e
        except ValueError as e:
            logger.warning(f"Ollama returned an unreadable payload: {e}")
            raise GenerationUnavailable(f"Ollama returned an unreadable payload: {e}") from e

        message = data.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise GenerationUnavailable("Ollama returned no message content")

        return LLMResponse(
            content=content,
            model=data.get("model", self.model),
            token_count=data.get("eval_count", 0) or 0,
            finish_reason=data.get("done_reason"),
            metadata={"provider": "ollama"},
        )

    async def health_check(self) -> Dict[str, Any]:
        timeout = aiohttp.ClientTimeout(total=5)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(f"{self.base_url}/api/tags") as response:
                    response.raise_for_status()
                    data = await _read_json_object(response)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            return {
                "available": False,
                "model": self.model,
                "modelReady": False,
                "error": str(e) or e.__class__.__name__,
                "message": "Ollama is not running. Start it with: ollama serve",
            }

        models = data.get("models")
        if not isinstance(models, list):
            models = []
        model_ready = any(
            isinstance(m, dict) and self.model in str(m.get("name", "")) for m in models
        )
        return {
            "available": True,
            "model": self.model,
            "modelReady": model_ready,
            "message": (
                f"Ollama is running with {self.model}"
                if model_ready
                else f"Ollama is running but {self.model} is not available. Run: ollama pull {self.model}"
            ),
        }


async def _read_json_object(response: aiohttp.ClientResponse) -> Dict[str, Any]:
    """Decode a JSON object body; anything else raises ValueError"""
    data = await response.json()
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


class OpenAIService(BaseLLMService):
    """OpenAI chat completions (also used for OpenAI-compatible backends)"""

    provider_name = "openai"
    default_base_url: Optional[str] = None

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        self.client = None
        self._initialize_client()

    def _initialize_client(self):
        """Initialize client with proper configuration"""
        if not self.config.api_key:
            raise ValueError(f"{self.provider_name} API key is required")

        self.client = openai.AsyncOpenAI(
            api_key=self.config.api_key,
            base_url=self.config.base_url or self.default_base_url,
            timeout=self.config.timeout,
            max_retries=0,
        )
        logger.info(f"{self.provider_name} client initialized with model: {self.model}")

    async def chat_completion(
        self, messages: List[Dict[str, str]], **kwargs
    ) -> LLMResponse:
        options = self._sampling_options(kwargs)
        params = {
            "model": self.model,
            "messages": messages,
            "temperature": options["temperature"],
            "top_p": options["top_p"],
        }
        if options["max_tokens"]:
            params["max_tokens"] = options["max_tokens"]

        logger.debug(f"Making {self.provider_name} API call with model: {self.model}")

        try:
            response = await self.client.chat.completions.create(**params)
        except openai.AuthenticationError as e:
            logger.error(f"{self.provider_name} authentication failed: {e}")
            raise GenerationUnavailable(f"{self.provider_name} authentication failed") from e
        except openai.APIError as e:
            logger.warning(f"{self.provider_name} API error: {e}")
            raise GenerationUnavailable(f"{self.provider_name} API error: {e}") from e

        choice = response.choices[0]
        usage = response.usage
        return LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            token_count=usage.completion_tokens if usage else 0,
            finish_reason=choice.finish_reason,
            metadata={"provider": self.provider_name},
        )

    async def health_check(self) -> Dict[str, Any]:
        try:
            page = await self.client.models.list()
            model_ids = [m.id for m in page.data]
        except openai.APIError as e:
            return {
                "available": False,
                "model": self.model,
                "modelReady": False,
                "error": str(e),
                "message": f"{self.provider_name} API is not reachable",
            }

        model_ready = self.model in model_ids
        return {
            "available": True,
            "model": self.model,
            "modelReady": model_ready,
            "message": (
                f"{self.provider_name} API is reachable with {self.model}"
                if model_ready
                else f"{self.provider_name} API is reachable but {self.model} is not listed"
            ),
        }


class DeepSeekService(OpenAIService):
    """DeepSeek through its OpenAI-compatible API"""

    provider_name = "deepseek"
    default_base_url = "https://api.deepseek.com"


class ClaudeService(BaseLLMService):
    """Anthropic messages API"""

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        self.client = None
        self._initialize_client()

    def _initialize_client(self):
        if not self.config.api_key:
            raise ValueError("Anthropic API key is required")

        self.client = anthropic.AsyncAnthropic(
            api_key=self.config.api_key,
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            max_retries=0,
        )
        logger.info(f"Claude client initialized with model: {self.model}")

    async def chat_completion(
        self, messages: List[Dict[str, str]], **kwargs
    ) -> LLMResponse:
        options = self._sampling_options(kwargs)
        system_prompt, claude_messages = self._convert_messages_to_claude_format(messages)

        params = {
            "model": self.model,
            "messages": claude_messages,
            "temperature": options["temperature"],
            "max_tokens": options["max_tokens"] or 1000,
        }
        if system_prompt:
            params["system"] = system_prompt

        logger.debug(f"Making Claude API call with model: {self.model}")

        try:
            response = await self.client.messages.create(**params)
        except anthropic.APIError as e:
            logger.warning(f"Claude API error: {e}")
            raise GenerationUnavailable(f"Claude API error: {e}") from e

        content = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        return LLMResponse(
            content=content,
            model=response.model,
            token_count=response.usage.output_tokens if response.usage else 0,
            finish_reason=response.stop_reason,
            metadata={"provider": "claude"},
        )

    async def health_check(self) -> Dict[str, Any]:
        try:
            page = await self.client.models.list()
            model_ids = [m.id for m in page.data]
        except anthropic.APIError as e:
            return {
                "available": False,
                "model": self.model,
                "modelReady": False,
                "error": str(e),
                "message": "Anthropic API is not reachable",
            }

        model_ready = self.model in model_ids
        return {
            "available": True,
            "model": self.model,
            "modelReady": model_ready,
            "message": (
                f"Anthropic API is reachable with {self.model}"
                if model_ready
                else f"Anthropic API is reachable but {self.model} is not listed"
            ),
        }

    def _convert_messages_to_claude_format(self, messages: List[Dict[str, str]]):
        """Split system content out; Claude takes it as a separate parameter"""
        system_parts = []
        claude_messages = []
        for message in messages:
            if message["role"] == "system":
                system_parts.append(message["content"])
            else:
                claude_messages.append({"role": message["role"], "content": message["content"]})
        return "\n\n".join(system_parts), claude_messages


class LLMServiceFactory:
    """LLM Service Factory for creating different LLM services"""

    @staticmethod
    def create_service(config: Optional[LLMConfig] = None) -> BaseLLMService:
        """Create LLM service based on configuration"""
        if config is None:
            config = LLMServiceFactory.get_default_config()

        provider = config.provider.lower()
        if provider == "ollama":
            return OllamaService(config)
        elif provider == "openai":
            return OpenAIService(config)
        elif provider == "deepseek":
            return DeepSeekService(config)
        elif provider == "claude":
            return ClaudeService(config)
        else:
            logger.warning(f"Unknown LLM provider: {config.provider}, defaulting to Ollama")
            config.provider = "ollama"
            return OllamaService(config)

    @staticmethod
    def get_default_config(settings: Optional[Settings] = None) -> LLMConfig:
        """Get default LLM configuration from settings"""
        settings = settings or get_settings()
        base_url = settings.llm_base_url
        if settings.llm_provider == "ollama":
            base_url = base_url or settings.ollama_base_url

        return LLMConfig(
            provider=settings.llm_provider,
            model=settings.llm_model,
            api_key=settings.llm_api_key,
            base_url=base_url,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
            timeout=settings.llm_timeout,
        )

    @staticmethod
    def get_available_providers() -> List[str]:
        """Get list of available LLM providers"""
        return ["ollama", "openai", "deepseek", "claude"]


# Global LLM Service Instance
llm_service: Optional[BaseLLMService] = None


def get_llm_service(config: Optional[LLMConfig] = None) -> BaseLLMService:
    """Get LLM Service Instance"""
    global llm_service
    if llm_service is None:
        llm_service = LLMServiceFactory.create_service(config)
        logger.info(
            f"Initialized LLM service: {llm_service.config.provider} ({llm_service.model})"
        )
    return llm_service
