"""
XAI Light verification

Trusting-period (skip) verification of a candidate header against a header
the client already trusts.
"""

__all__ = []
