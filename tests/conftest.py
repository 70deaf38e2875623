"""
Pytest configuration and shared fixtures for the cash clearing engine tests.
"""
import pytest
from hypothesis import settings, Verbosity

from cash_clearing.core import EngineConfig, KeyedLock
from cash_clearing.repository import InMemoryCashClearingRepository
from cash_clearing.services import AlertManager, ApprovalQueue, AuditTrail, WorkflowEngine
from tests.fakes import FixedClock

# Configure Hypothesis settings for all property-based tests
settings.register_profile(
    "default",
    max_examples=100,
    deadline=5000,
    suppress_health_check=[],
    verbosity=Verbosity.normal,
)

settings.register_profile(
    "ci",
    max_examples=200,
    deadline=10000,
    suppress_health_check=[],
    verbosity=Verbosity.quiet,
)

settings.register_profile(
    "debug",
    max_examples=10,
    deadline=None,
    suppress_health_check=[],
    verbosity=Verbosity.verbose,
)

settings.load_profile("default")


@pytest.fixture
def clock():
    """Provide a controllable clock."""
    return FixedClock()


@pytest.fixture
def config():
    """Provide the default engine configuration."""
    return EngineConfig()


@pytest.fixture
def repository():
    """Provide a fresh in-memory repository for each test."""
    return InMemoryCashClearingRepository()


@pytest.fixture
def locks(config):
    return KeyedLock(config.lock_timeout_seconds)


@pytest.fixture
def audit(repository, clock):
    return AuditTrail(repository, clock)


@pytest.fixture
def alerts(repository, config, audit, clock, locks):
    """Provide an alert manager over the shared repository."""
    return AlertManager(repository, config, audit, clock, locks=locks)


@pytest.fixture
def approvals(repository, config, audit, clock, locks):
    """Provide an approval queue over the shared repository."""
    return ApprovalQueue(repository, config, audit, clock, locks)


@pytest.fixture
def engine(repository, config, approvals, alerts, audit, clock, locks):
    """Provide a workflow engine wired to the shared collaborators."""
    return WorkflowEngine(
        repository,
        config,
        approvals=approvals,
        alerts=alerts,
        audit=audit,
        clock=clock,
        locks=locks,
    )
