"""OnboardingFlow — drives one onboarding session over the step graph.

The flow is synchronous and in-memory: one instance owns one session's
``OnboardingData`` exclusively.  Persistence is a side channel: after each
successful submit/skip (including the one that completes the flow) a
snapshot is handed to the optional :class:`ProgressSink`, whose failures are
logged and never roll back the transition.

Lifecycle::

    flow = OnboardingFlow(store, user_id="u-1")
    flow.start("muscle_building")          # or flow.start(["nutrition", "sleep"])
    while flow.state is FlowState.IN_PROGRESS:
        view = flow.view()                 # hand to the UI
        outcome = flow.submit(answer)      # validation errors come back as values
    flow.progress_percentage()             # 1.0

Advancing from a step resolves its successor and follows the chain through
steps that are not applicable to the session (not in the compiled
sequence, condition false, or no matching module); those are recorded as
skipped.  A chain that runs out of steps completes the flow.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Union

from pydantic import ValidationError

from onboarding_flow.compiler import QuestionSetCompiler
from onboarding_flow.config import FlowSettings, load_settings
from onboarding_flow.constants import CUSTOM_PACK_ID
from onboarding_flow.errors import (
    DanglingStepError,
    InvalidTransitionError,
    UnknownPackError,
)
from onboarding_flow.graph import StepGraph
from onboarding_flow.interfaces import ProgressSink
from onboarding_flow.models.session import (
    FieldError,
    FlowState,
    OnboardingData,
    StepOutcome,
    StepView,
)
from onboarding_flow.models.step import QuestionStep, Step
from onboarding_flow.ruleset import RulesetStore

logger = logging.getLogger(__name__)

# OnboardingData fields owned by the engine; answers may not write them.
_ENGINE_FIELDS = {
    "selected_pack", "selected_modules", "progress",
    "started_at", "last_updated", "completed_at",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OnboardingFlow:
    """One onboarding session.

    Args:
        store: a loaded :class:`RulesetStore`
        user_id: identifier passed to the progress sink
        sink: optional :class:`ProgressSink` notified after each transition
        settings: flow settings (defaults to :func:`load_settings`)
        graph: step graph (defaults to one built from *store*)
    """

    def __init__(
        self,
        store: RulesetStore,
        user_id: str,
        *,
        sink: ProgressSink | None = None,
        settings: FlowSettings | None = None,
        graph: StepGraph | None = None,
    ) -> None:
        self._store = store
        self._user_id = user_id
        self._sink = sink
        self._settings = settings or load_settings()
        self._compiler = QuestionSetCompiler(store.catalog, store.packs)
        self._graph = graph or StepGraph(store)

        self._state = FlowState.NOT_STARTED
        self._data = OnboardingData()
        self._sequence: list[str] = []
        self._modules: list[str] = []
        # Steps left by submit/skip, most recent last (for go_back)
        self._history: list[str] = []

    # ==================================================================
    # Read-only accessors
    # ==================================================================

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def data(self) -> OnboardingData:
        """A deep copy of the session data."""
        return self._data.model_copy(deep=True)

    @property
    def sequence(self) -> list[str]:
        """The compiled question sequence for this session (a copy)."""
        return list(self._sequence)

    @property
    def active_modules(self) -> list[str]:
        return list(self._modules)

    @property
    def current_step_id(self) -> Optional[str]:
        return self._data.progress.current_step

    @property
    def current_step(self) -> Optional[Step]:
        step_id = self._data.progress.current_step
        return self._graph.get(step_id) if step_id else None

    # ==================================================================
    # Session lifecycle
    # ==================================================================

    def start(
        self,
        selection: Union[str, Iterable[str]],
        custom_modules: Optional[Iterable[str]] = None,
    ) -> Optional[StepView]:
        """Start (or restart) the session for a pack id or a bare module list.

        A bare module list means the ``custom`` pack.  Returns the view of
        the first applicable step.

        Raises:
            UnknownPackError: the pack is unknown or compiles to nothing.
        """
        if isinstance(selection, str):
            pack_id = selection
            modules = list(custom_modules) if custom_modules is not None else None
        else:
            pack_id = CUSTOM_PACK_ID
            modules = list(selection)

        sequence = self._compiler.compile_question_set(pack_id, modules)
        if not sequence:
            raise UnknownPackError(pack_id)

        active = self._compiler.active_modules_for(pack_id, modules)
        self._sequence = sequence
        self._modules = self._compiler.modules_in_sequence_order(active, sequence)
        now = _utcnow()
        self._data = OnboardingData(
            selected_pack=pack_id,
            selected_modules=list(self._modules),
            started_at=now,
            last_updated=now,
        )
        self._history = []
        self._state = FlowState.IN_PROGRESS

        first = None
        for qid in sequence:
            if self._is_applicable(qid):
                first = qid
                break
            self._record_skip(qid)

        logger.info(
            "Onboarding started for %s: pack=%s modules=%s (%d questions)",
            self._user_id, pack_id, self._modules, len(sequence),
        )
        if first is None:
            self._complete()
            return None
        self._data.progress.current_step = first
        self._refresh_progress()
        return self.view()

    def abort(self) -> None:
        """Discard the session's data.  Allowed from any state."""
        logger.info(
            "Onboarding aborted for %s at step %s",
            self._user_id, self._data.progress.current_step,
        )
        self._state = FlowState.ABORTED
        self._data = OnboardingData()
        self._sequence = []
        self._modules = []
        self._history = []

    # ==================================================================
    # Transitions
    # ==================================================================

    def submit(self, response: Any = None) -> StepOutcome:
        """Validate and record *response* for the current step, then advance.

        Passive steps (info, summary, confirmation) ignore *response*.  On a
        validation failure nothing changes and the error is returned.
        """
        self._require_in_progress("submit")
        step = self.current_step

        if isinstance(step, QuestionStep):
            error = self._graph.validate_response(step, response, self._data)
            if error is None:
                candidate, error = self._merged(step, response)
            if error is not None:
                logger.debug("Step %s rejected: %s", step.id, error.message)
                return self._outcome(accepted=False, error=error)
        else:
            response = None
            candidate = self._data.model_copy(deep=True)

        progress = candidate.progress
        if step.id not in progress.completed_steps:
            progress.completed_steps.append(step.id)
        if step.id in progress.skipped_steps:
            progress.skipped_steps.remove(step.id)
        self._clear_stale_answers(candidate, step.id)
        candidate.last_updated = _utcnow()

        successor = self._graph.resolve_next(step, response, candidate)
        next_id, passed = self._plan_advance(step.id, successor, candidate)

        self._data = candidate
        return self._commit(step.id, next_id, passed)

    def skip(self, step_id: Optional[str] = None) -> StepOutcome:
        """Skip the current step without an answer.

        Allowed when the step is skippable or not applicable to the session.

        Raises:
            InvalidTransitionError: wrong state, *step_id* is not the current
                step, or the step is applicable and not skippable.
        """
        self._require_in_progress("skip")
        step = self.current_step
        if step_id is not None and step_id != step.id:
            raise InvalidTransitionError(
                f"Cannot skip '{step_id}': current step is '{step.id}'"
            )
        skippable = isinstance(step, QuestionStep) and step.skippable
        if not skippable and self._is_applicable(step.id):
            raise InvalidTransitionError(f"Step '{step.id}' cannot be skipped")

        data = self._data
        if isinstance(step, QuestionStep) and step.id in data.progress.completed_steps:
            # Revisited after go_back: skipping withdraws the earlier answer
            data = data.model_copy(deep=True)
            self._clear_answer(data, step)
            self._clear_stale_answers(data, step.id)

        successor = self._graph.resolve_next(step, None, data)
        next_id, passed = self._plan_advance(step.id, successor, data)

        self._data = data
        self._record_skip(step.id)
        self._data.last_updated = _utcnow()
        return self._commit(step.id, next_id, passed)

    def go_back(self) -> Optional[StepView]:
        """Return to the previous step.

        ``completed_steps`` is left untouched so its size never drops.
        Submitting again overwrites the stored answer and clears the answers
        of steps the new answer makes inapplicable; skipping the revisited
        step clears its answer.  A step id is never both completed and
        skipped.

        Raises:
            InvalidTransitionError: wrong state or nothing to go back to.
        """
        self._require_in_progress("go_back")
        if not self._history:
            raise InvalidTransitionError("No previous step to go back to")
        previous = self._history.pop()
        self._data.progress.current_step = previous
        self._data.last_updated = _utcnow()
        self._refresh_progress()
        logger.debug("User %s went back to %s", self._user_id, previous)
        return self.view()

    # ==================================================================
    # Progress
    # ==================================================================

    def total_steps(self) -> int:
        """Applicable sequence steps not explicitly skipped, never below the completed count."""
        progress = self._data.progress
        skipped = set(progress.skipped_steps)
        count = sum(
            1 for qid in self._sequence
            if qid not in skipped and self._is_applicable(qid, unanswered=True)
        )
        return max(count, len(progress.completed_steps))

    def progress_percentage(self) -> float:
        """Completed / total steps, clamped to [0, 1]."""
        total = self.total_steps()
        if total == 0:
            return 1.0 if self._state is FlowState.COMPLETED else 0.0
        ratio = len(self._data.progress.completed_steps) / total
        return min(1.0, max(0.0, ratio))

    def estimated_time_remaining(self) -> int:
        """Minutes left, from the remaining applicable steps' ``estimated_seconds``."""
        if self._state is not FlowState.IN_PROGRESS:
            return 0
        progress = self._data.progress
        done = set(progress.completed_steps) | set(progress.skipped_steps)
        current = progress.current_step
        seconds = 0
        for qid in self._sequence:
            if qid in done and qid != current:
                continue
            if self._is_applicable(qid, unanswered=True):
                seconds += self._graph.get(qid).estimated_seconds
        return math.ceil(seconds / 60)

    # ==================================================================
    # UI view
    # ==================================================================

    def view(self) -> Optional[StepView]:
        """Flattened view of the current step, or None when not in progress."""
        step = self.current_step
        if step is None or self._state is not FlowState.IN_PROGRESS:
            return None
        return self._to_view(step)

    @staticmethod
    def _to_view(step: Step) -> StepView:
        view = StepView(
            id=step.id,
            type=step.type,
            title=step.title,
            description=step.description,
            estimated_seconds=step.estimated_seconds,
        )
        if isinstance(step, QuestionStep):
            view.question = step.question
            view.input_type = step.input_type
            view.field = step.field
            view.skippable = step.skippable
            view.default_value = step.default_value
            if step.options:
                view.options = [
                    {"id": o.id, "label": o.label, "value": o.value} for o in step.options
                ]
            if step.fields:
                view.fields = [f.model_dump() for f in step.fields]
            constraints = {
                k: v for k, v in (
                    ("min", step.min_value), ("max", step.max_value), ("step", step.step),
                ) if v is not None
            }
            view.constraints = constraints or None
        return view

    # ==================================================================
    # Internal helpers
    # ==================================================================

    def _require_in_progress(self, action: str) -> None:
        if self._state is not FlowState.IN_PROGRESS:
            raise InvalidTransitionError(
                f"{action}() is only valid during in_progress (state: {self._state.value})"
            )

    def _is_applicable(self, step_id: str, *, unanswered: bool = False) -> bool:
        return self._graph.is_applicable(
            step_id, self._sequence, self._modules, self._data, unanswered=unanswered,
        )

    def _merged(
        self, step: QuestionStep, response: Any
    ) -> tuple[Optional[OnboardingData], Optional[FieldError]]:
        """Candidate data with *response* merged, or a FieldError.

        The whole aggregate is re-validated so a badly typed answer never
        leaves the data half-written.
        """
        if step.field is not None:
            update = {step.field: response}
        elif isinstance(response, dict):
            allowed = {f.id for f in step.fields}
            unknown = sorted(set(response) - allowed)
            if unknown:
                return None, FieldError(
                    step_id=step.id, rule="fields", message=f"Unexpected fields: {unknown}",
                )
            update = dict(response)
        else:
            return None, FieldError(
                step_id=step.id, rule="type", message="Expected a set of answers",
            )

        if set(update) & _ENGINE_FIELDS:
            return None, FieldError(
                step_id=step.id, field=step.field, rule="fields",
                message="Answer targets a reserved field",
            )

        payload = {**self._data.model_dump(), **update}
        try:
            return OnboardingData.model_validate(payload), None
        except ValidationError as exc:
            first = exc.errors()[0]
            loc = ".".join(str(p) for p in first.get("loc", ()))
            return None, FieldError(
                step_id=step.id,
                field=loc or step.field,
                rule="type",
                message=first.get("msg", "Invalid value"),
            )

    def _plan_advance(
        self, source_id: str, target: Optional[str], data: OnboardingData
    ) -> tuple[Optional[str], list[str]]:
        """Follow the successor chain to the next applicable step.

        Returns ``(next_id, passed_over)``; ``next_id`` None means the flow
        completes, in which case nothing is reported as passed over.

        Raises:
            DanglingStepError: a target is not in the graph and the graph is strict.
        """
        passed: list[str] = []
        seen = {source_id}
        previous = source_id
        while target is not None:
            if target not in self._graph:
                if self._settings.strict_graph:
                    raise DanglingStepError(previous, target)
                logger.error(
                    "Step '%s' resolved to unknown step '%s'; completing flow for %s",
                    previous, target, self._user_id,
                )
                return None, []
            if target in seen:
                logger.error(
                    "Cycle through '%s' while advancing from '%s'; completing flow",
                    target, source_id,
                )
                return None, []
            if self._graph.is_applicable(target, self._sequence, self._modules, data):
                return target, passed

            passed.append(target)
            seen.add(target)
            previous = target
            target = self._graph.resolve_next(self._graph.get(target), None, data)
        return None, []

    def _commit(self, left: str, next_id: Optional[str], passed: list[str]) -> StepOutcome:
        for qid in passed:
            self._record_skip(qid)
        self._history.append(left)

        if next_id is None:
            self._complete()
        else:
            self._data.progress.current_step = next_id
            self._refresh_progress()
        self._notify()
        return self._outcome(accepted=True, auto_skipped=passed)

    def _record_skip(self, step_id: str) -> None:
        """Record *step_id* as skipped once; a completed step is never also skipped."""
        progress = self._data.progress
        if step_id in progress.completed_steps or step_id in progress.skipped_steps:
            return
        progress.skip_count += 1
        progress.skipped_steps.append(step_id)

    @staticmethod
    def _clear_answer(data: OnboardingData, step: QuestionStep) -> None:
        names = [step.field] if step.field else [f.id for f in step.fields]
        for name in names:
            default = OnboardingData.model_fields[name].get_default(call_default_factory=True)
            setattr(data, name, default)

    def _clear_stale_answers(self, data: OnboardingData, current_id: str) -> list[str]:
        """Clear answers of completed steps that are no longer applicable.

        Changing an answer after go_back can switch off a step answered
        earlier (another branch, a condition that now fails).  Its answer is
        cleared so the profile holds no hidden values; its id stays in
        ``completed_steps``.  Repeats until stable because a cleared answer
        can switch off further steps.
        """
        cleared: list[str] = []
        changed = True
        while changed:
            changed = False
            for qid in data.progress.completed_steps:
                if qid == current_id or qid in cleared:
                    continue
                step = self._graph.get(qid)
                if not isinstance(step, QuestionStep):
                    continue
                if self._graph.is_applicable(qid, self._sequence, self._modules, data):
                    continue
                self._clear_answer(data, step)
                cleared.append(qid)
                changed = True
        if cleared:
            logger.debug("Cleared answers of steps no longer applicable: %s", cleared)
        return cleared

    def _complete(self) -> None:
        self._state = FlowState.COMPLETED
        now = _utcnow()
        self._data.progress.current_step = None
        self._data.completed_at = now
        self._data.last_updated = now
        self._refresh_progress()
        logger.info(
            "Onboarding completed for %s: %d completed, %d skipped",
            self._user_id,
            len(self._data.progress.completed_steps),
            self._data.progress.skip_count,
        )

    def _refresh_progress(self) -> None:
        progress = self._data.progress
        progress.total_steps = self.total_steps()
        progress.estimated_time_left = self.estimated_time_remaining()

    def _notify(self) -> None:
        if self._sink is None:
            return
        try:
            self._sink.save(self._user_id, self._data.model_copy(deep=True))
        except Exception:
            # Persistence is best-effort; the in-memory transition stands
            logger.exception("ProgressSink.save failed for %s", self._user_id)

    def _outcome(
        self,
        *,
        accepted: bool,
        error: FieldError | None = None,
        auto_skipped: list[str] | None = None,
    ) -> StepOutcome:
        return StepOutcome(
            accepted=accepted,
            state=self._state,
            current_step=self._data.progress.current_step,
            error=error,
            auto_skipped=list(auto_skipped or []),
        )
