"""
Escalation Interfaces Layer
===========================

Interface adapters (controllers) for the escalation module.

Contains:
- Controllers: FastAPI route handlers for the operator surface

This is the outermost layer - handles HTTP requests/responses and
delegates to the engine and scheduler.
"""

from src.escalation.interfaces.controllers import escalation_router

__all__ = ["escalation_router"]
