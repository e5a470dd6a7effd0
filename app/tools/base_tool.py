"""
Base Tool Module - external lookup base class

Every lookup runs under its own timeout and never raises to the caller:
failures become an unsuccessful ToolOutput and are logged. Subclasses
implement `_execute` and raise ExternalDataFailure (or let transport errors
escape) when a lookup cannot be completed.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, List
from pydantic import BaseModel, Field
from enum import Enum
import asyncio
import time
from datetime import datetime, timezone
from app.core.logging_config import get_logger

logger = get_logger(__name__)


class ExternalDataFailure(Exception):
    """Raised inside a lookup when its data cannot be obtained"""
    pass


class ToolStatus(str, Enum):
    """Tool status enumeration"""
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


class ToolMetadata(BaseModel):
    """Tool metadata"""
    name: str
    description: str
    version: str = "1.0.0"
    category: str
    tags: List[str] = []
    requires_auth: bool = False
    timeout: float = 5.0  # seconds


class ToolInput(BaseModel):
    """Tool input base class"""
    pass


class ToolOutput(BaseModel):
    """Tool output base class"""
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    execution_time: float = 0.0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class BaseTool(ABC):
    """Tool base class"""

    def __init__(self, metadata: ToolMetadata):
        self.metadata = metadata
        self.status = ToolStatus.IDLE
        self.last_execution_time = None
        self.execution_count = 0
        self.error_count = 0

    @abstractmethod
    async def _execute(self, input_data: ToolInput) -> ToolOutput:
        """Execute the tool logic (must be implemented by subclasses)"""
        pass

    async def execute(self, input_data: ToolInput) -> ToolOutput:
        """Run the lookup with timeout, turning every failure into a failed output"""
        start_time = time.time()
        self.status = ToolStatus.RUNNING
        self.execution_count += 1

        logger.debug(f"Starting execution of {self.metadata.name} tool")

        try:
            result = await asyncio.wait_for(
                self._execute(input_data),
                timeout=self.metadata.timeout
            )
        except asyncio.TimeoutError:
            self.status = ToolStatus.TIMEOUT
            self.error_count += 1
            logger.warning(f"Tool {self.metadata.name} timed out after {self.metadata.timeout}s")
            return ToolOutput(
                success=False,
                error=f"Timeout after {self.metadata.timeout} seconds",
                execution_time=time.time() - start_time,
            )
        except Exception as e:
            self.status = ToolStatus.FAILED
            self.error_count += 1
            execution_time = time.time() - start_time
            logger.warning(f"Tool {self.metadata.name} failed after {execution_time:.2f}s: {e}")
            return ToolOutput(success=False, error=str(e), execution_time=execution_time)

        result.execution_time = time.time() - start_time
        self.status = ToolStatus.SUCCESS if result.success else ToolStatus.FAILED
        self.last_execution_time = datetime.now(timezone.utc)

        logger.info(f"Tool {self.metadata.name} finished in {result.execution_time:.2f}s (success={result.success})")
        return result

    def get_status(self) -> Dict[str, Any]:
        """Get tool status information"""
        return {
            "name": self.metadata.name,
            "status": self.status,
            "execution_count": self.execution_count,
            "error_count": self.error_count,
            "error_rate": self.error_count / max(self.execution_count, 1),
            "last_execution_time": self.last_execution_time
        }
