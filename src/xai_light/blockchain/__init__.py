"""
XAI Light Blockchain Module

Immutable value objects decoded from RPC responses or a trusted store:
- Validators and canonical validator sets
- Votes and commit signatures
- Block headers, commits and signed headers
- Evidence of validator misbehavior
"""

__all__ = []
