import pytest

from charity_chain.core.accounts import AccountRegistry
from charity_chain.core.clock import ManualClock
from charity_chain.programs.charity import CharityProgram
from charity_chain.programs.runtime import CharityRuntime


START = 1_700_000_000

R1 = "a1" * 32
R2 = "a2" * 32
D1 = "d1" * 32
D2 = "d2" * 32


@pytest.fixture
def clock():
    return ManualClock(start=START)


@pytest.fixture
def accounts():
    registry = AccountRegistry()
    registry.airdrop(D1, 100)
    registry.airdrop(D2, 100)
    return registry


@pytest.fixture
def charity(accounts, clock):
    return CharityProgram(accounts=accounts, clock=clock)


@pytest.fixture
def open_program(charity, clock):
    """R1 has an active program that ends in an hour."""
    charity.create_program(R1, "Clean Water", "desc", "water.png", clock.now() + 3600)
    return charity


@pytest.fixture
def runtime(clock):
    return CharityRuntime(clock=clock)
