"""ABCI result annotations."""

__all__ = []
