"""
Shared fixtures for xai_light tests.

Chains are built with real Ed25519 keys derived from fixed seeds so commits
carry genuine signatures.
"""

import sys
from pathlib import Path

import pytest

# Make chain_helpers importable from every test subdirectory.
sys.path.insert(0, str(Path(__file__).resolve().parent))

from chain_helpers import CHAIN_ID, ChainFactory  # noqa: E402


@pytest.fixture
def factory():
    return ChainFactory(chain_id=CHAIN_ID)


@pytest.fixture
def keys(factory):
    """Four validators with 10 voting power each."""
    return factory.make_keys([10, 10, 10, 10])


@pytest.fixture
def validator_set(factory, keys):
    return factory.validator_set(keys)


@pytest.fixture
def trusted(factory, keys):
    """Trusted signed header at height 1 whose next set equals its own set."""
    return factory.signed_header(height=1, keys=keys)
