"""Abstract interfaces for collaborators of the flow engine.

The engine owns no persistence.  After each successful submit/skip and at
completion it hands a snapshot to a :class:`ProgressSink`.  Sink failures
are logged and never roll back the in-memory transition; retry and backoff
are the sink's business.

Typical integration::

    sink: ProgressSink = MyProfileStoreSink(...)
    flow = OnboardingFlow(store, user_id="u-1", sink=sink)
    flow.start("muscle_building")
"""

from abc import ABC, abstractmethod

from onboarding_flow.models.session import OnboardingData


class ProgressSink(ABC):
    """Receives onboarding snapshots for persistence."""

    @abstractmethod
    def save(self, user_id: str, data: OnboardingData) -> None:
        """Persist a snapshot of *data* for *user_id*.

        Must be idempotent: the engine may call it repeatedly with the same
        snapshot.  The engine passes a copy, so implementations may keep it.
        """
        ...
