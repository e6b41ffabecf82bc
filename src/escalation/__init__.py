"""
Escalation Module
=================

Bounded Context for SLA-driven complaint escalation.

Responsibilities:
- Evaluate open complaints against the priority-based SLA table
- Advance escalation levels with a cooldown between automatic steps
- Keep an append-only escalation history per complaint
- Notify the admin / superadmin tiers with urgency-graded payloads
- Run sweeps on a timer and on operator demand, one at a time
"""

__version__ = "1.0.0"
