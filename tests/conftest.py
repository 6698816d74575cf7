import pytest

from onboarding_flow.config import FlowSettings
from onboarding_flow.ruleset import RulesetStore


@pytest.fixture(scope="session")
def store():
    """Load the shipped v1/ ruleset once for the entire test session."""
    s = RulesetStore()
    s.load()
    return s


@pytest.fixture
def lenient_settings():
    return FlowSettings(strict_graph=False)


@pytest.fixture
def strict_settings():
    return FlowSettings(strict_graph=True)
