"""In-memory ProgressSink, used by tests and the simulator."""

from __future__ import annotations

import logging

from onboarding_flow.interfaces import ProgressSink
from onboarding_flow.models.session import OnboardingData

logger = logging.getLogger(__name__)


class InMemoryProgressSink(ProgressSink):
    """Keeps the latest snapshot per user plus a history of every save."""

    def __init__(self) -> None:
        self.latest: dict[str, OnboardingData] = {}
        self.history: list[tuple[str, OnboardingData]] = []

    def save(self, user_id: str, data: OnboardingData) -> None:
        self.latest[user_id] = data
        self.history.append((user_id, data))
        logger.debug(
            "saved progress for %s at step %s", user_id, data.progress.current_step,
        )

    def load(self, user_id: str) -> OnboardingData | None:
        return self.latest.get(user_id)
