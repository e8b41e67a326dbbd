import itertools

import pytest

from blockchain import Ledger
from voting import VoterRegistry, VotingService


@pytest.fixture
def clock():
    """Deterministic millisecond clock advancing by one second per call."""
    ticks = itertools.count(1_700_000_000_000, 1000)
    return lambda: next(ticks)


@pytest.fixture
def ledger(clock) -> Ledger:
    return Ledger(difficulty=1, clock=clock)


@pytest.fixture
def registry() -> VoterRegistry:
    reg = VoterRegistry()
    reg.register("Alice Voter", "v1", 30, "alice@example.com", "pw1")
    reg.register("Bob Voter", "v2", 45, "bob@example.com", "pw2")
    return reg


@pytest.fixture
def service(ledger, registry, clock) -> VotingService:
    return VotingService(ledger, registry, clock=clock)
