"""
Infrastructure Layer
=====================

Low-level technical concerns shared by all modules:
- Logging setup
- Concurrency guards (single-flight gate, per-key locks)
"""
