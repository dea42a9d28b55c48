"""
XAI Light Core Module

Ambient building blocks shared by the data model and the verifier:
- Configuration loaded from the environment
- Structured logging
- Typed exception hierarchy
- Signature and hashing capabilities
- Wire serializers and nanosecond timestamps
"""

__all__ = []
