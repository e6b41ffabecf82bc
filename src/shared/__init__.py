"""
Shared Kernel Module
====================

Shared infrastructure used by the escalation bounded context and the
application shell.

Architecture Pattern: Modular Monolith
- Each module (escalation) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add escalation business logic to the shared kernel.
"""

__version__ = "1.0.0"
