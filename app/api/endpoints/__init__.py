"""
API Endpoints Package

This package contains all API endpoint modules organized by functionality:
- system.py: Health check and service overview
- conversations.py: Conversation lifecycle and chat turns
"""

# Import all routers for easy access
from .system import router as system_router
from .conversations import router as conversations_router

__all__ = [
    "system_router",
    "conversations_router",
]
