"""
Shared fixtures for the ledger test suite.

Chains here use a one-byte difficulty so mining stays around 256 trials per
block. Tests that exercise the two-byte default are marked slow.
"""

import logging
from datetime import datetime, timezone

import pytest

from ledger_system.core.datashapes import Block, Record
from ledger_system.core.hashchain import BlockChain, new_genesis
from ledger_system.core.providers import Provider, ProviderRegistry


# =============================================================================
# PYTEST MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: long-running tests (two-byte difficulty mining)")


# =============================================================================
# KEY CONSTANTS
# =============================================================================

FAST_DIFFICULTY = b"\x00"
FIXED_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# BUILDERS
# =============================================================================

def make_record(ref_id="1", owner="A", access_policy="public", status="Normal", si="X"):
    return Record(ref_id=ref_id, owner=owner, access_policy=access_policy, status=status, si=si)


def make_chain(owner="A", length=1, difficulty=FAST_DIFFICULTY):
    """Chain with a genesis for `owner` plus length-1 follow-up blocks."""
    chain = BlockChain(difficulty, new_genesis(make_record(ref_id="g", owner=owner)))
    for i in range(1, length):
        chain.append(Block(record=make_record(ref_id=str(i), owner=owner, status=f"S{i}")))
    return chain


def make_registry(names):
    registry = ProviderRegistry()
    for name in names:
        registry.add(Provider(name=name, chain=make_chain(owner=f"seed-{name}")))
    return registry


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def record():
    return make_record()


@pytest.fixture
def fixed_block(record):
    """Unmined block with a fixed timestamp (deterministic hashing)."""
    return Block(record=record, timestamp=FIXED_TIME)


@pytest.fixture
def chain():
    """Three-block chain, all owned by "A"."""
    return make_chain(owner="A", length=3)


@pytest.fixture
def registry3():
    return make_registry(["A", "B", "C"])


@pytest.fixture
def registry4():
    return make_registry(["A", "B", "C", "D"])


@pytest.fixture
def clean_ledger_logger():
    """Remove any handlers configure_logging() installed during a test."""
    yield
    root = logging.getLogger("ledger_system")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.NOTSET)
