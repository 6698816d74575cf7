"""StepGraph — typed steps plus visibility, validation and next-step resolution.

The graph itself is static (loaded once from ``v1/steps.yaml``) but is
evaluated against a live session: a step is *applicable* when its id is in
the compiled question sequence, its condition holds against the collected
answers and, if it names ``required_modules``, at least one is active.

Next-step resolution, after the answer has been merged, in precedence order:

    1. a registered resolver for the step id
    2. the chosen option's ``next_step`` (single-select)
    3. declarative rules (first match, else default)
    4. the literal ``next_step``

``None`` means there is no successor and the flow is complete.

:meth:`StepGraph.validate_graph` is the build-time check for dangling
references::

    graph = StepGraph(store)
    for issue in graph.validate_graph():
        print(issue.kind, issue.step_id, issue.message)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from onboarding_flow.compiler import QuestionSetCompiler
from onboarding_flow.constants import CUSTOM_PACK_ID
from onboarding_flow.evaluator import PredicateEvaluator
from onboarding_flow.models.session import FieldError, OnboardingData
from onboarding_flow.models.step import (
    CustomRule,
    NextStepRules,
    QuestionStep,
    Step,
)
from onboarding_flow.resolvers import Resolver, build_resolvers
from onboarding_flow.ruleset import RulesetStore
from onboarding_flow.validation import ResponseValidator

logger = logging.getLogger(__name__)

# Answer fields a predicate or question may reference
_DATA_FIELDS = set(OnboardingData.model_fields) - {"progress"}


@dataclass(frozen=True)
class GraphIssue:
    """One problem found by :meth:`StepGraph.validate_graph`."""

    kind: str
    step_id: str
    message: str
    target: str | None = None
    pack_id: str | None = None


class StepGraph:
    """Step lookup, applicability, validation and successor resolution.

    Args:
        store: a loaded :class:`RulesetStore`
        resolvers: resolver table keyed by step id (defaults to
            :func:`build_resolvers` over the store's catalog)
        validator: response validator (defaults to the built-in registry)
    """

    def __init__(
        self,
        store: RulesetStore,
        resolvers: dict[str, Resolver] | None = None,
        validator: ResponseValidator | None = None,
    ) -> None:
        self._store = store
        self._steps = store.steps
        self._resolvers = build_resolvers(store.catalog) if resolvers is None else dict(resolvers)
        self._validator = validator or ResponseValidator()
        self._evaluator = PredicateEvaluator()

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._steps

    def get(self, step_id: str) -> Optional[Step]:
        return self._steps.get(step_id)

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    def is_applicable(
        self,
        step_id: str,
        sequence: list[str],
        modules: Iterable[str],
        data: OnboardingData,
        *,
        unanswered: bool = False,
    ) -> bool:
        """True when the step is in the sequence, its condition holds and a module matches.

        ``unanswered`` is the value of predicates over fields not answered
        yet (see :class:`PredicateEvaluator`).
        """
        step = self._steps.get(step_id)
        if step is None or step_id not in sequence:
            return False
        if step.required_modules and not set(step.required_modules) & set(modules):
            return False
        return self._evaluator.conditions_hold(
            step.condition, data.answers(), unanswered=unanswered,
        )

    # ------------------------------------------------------------------
    # Validation & resolution
    # ------------------------------------------------------------------

    def validate_response(
        self, step: Step, response: Any, data: OnboardingData
    ) -> Optional[FieldError]:
        """Validate *response* for a question step; other step types always pass."""
        if not isinstance(step, QuestionStep):
            return None
        return self._validator.validate(step, response, data)

    def resolve_next(self, step: Step, response: Any, data: OnboardingData) -> Optional[str]:
        """Successor id for *step* given the (already merged) response."""
        resolver = self._resolvers.get(step.id)
        if resolver is not None:
            return resolver(response, data)

        if isinstance(step, QuestionStep) and step.input_type == "single-select":
            opt = step.option_for(response) if response is not None else None
            if opt is not None and opt.next_step:
                return opt.next_step

        if isinstance(step.next_step, NextStepRules):
            return self._evaluator.resolve_rules(step.next_step, data.answers())

        return step.next_step

    # ------------------------------------------------------------------
    # Graph validation
    # ------------------------------------------------------------------

    def static_targets(self, step: Step) -> list[tuple[str, str]]:
        """Declared successors of *step* as (target, label) pairs."""
        targets: list[tuple[str, str]] = []
        if isinstance(step, QuestionStep):
            for opt in step.options:
                if opt.next_step:
                    targets.append((opt.next_step, f"option:{opt.id}"))
        if isinstance(step.next_step, NextStepRules):
            for i, rule in enumerate(step.next_step.rules):
                targets.append((rule.then, f"rule:{i}"))
            if step.next_step.default:
                targets.append((step.next_step.default, "default"))
        elif step.next_step:
            targets.append((step.next_step, "next_step"))
        return targets

    def module_combinations(self) -> list[tuple[str, list[str] | None]]:
        """(pack_id, custom_modules or None) pairs whose resolvers are exercised."""
        combos: list[tuple[str, list[str] | None]] = []
        for pack in self._store.packs.list_packs():
            if pack.id == CUSTOM_PACK_ID:
                modules = self._store.catalog.module_ids()
                combos.extend((pack.id, [m]) for m in modules)
                combos.append((pack.id, modules))
            else:
                combos.append((pack.id, None))
        return combos

    def validate_graph(self) -> list[GraphIssue]:
        """Report dangling references and unreachable steps.

        Checks, in order:

          - catalog ids with no step definition
          - resolvers registered for unknown steps
          - literal / option / rule targets that are not steps
          - unknown custom validators and unknown data fields
          - per pack (and custom module combination): resolver targets that
            are not steps, and sequence ids not reachable from the first one
        """
        issues: list[GraphIssue] = []
        catalog = self._store.catalog

        for qid in catalog.questions:
            if qid not in self._steps:
                issues.append(GraphIssue("missing_step", qid, f"Catalog question '{qid}' has no step"))

        for step_id in self._resolvers:
            if step_id not in self._steps:
                issues.append(GraphIssue(
                    "orphan_resolver", step_id, f"Resolver registered for unknown step '{step_id}'",
                ))

        for step in self._steps.values():
            issues.extend(self._check_step(step))

        compiler = QuestionSetCompiler(catalog, self._store.packs)
        for pack_id, custom in self.module_combinations():
            sequence = compiler.compile_question_set(pack_id, custom)
            if not sequence:
                continue
            active = compiler.active_modules_for(pack_id, custom)
            data = OnboardingData(
                selected_pack=pack_id,
                selected_modules=compiler.modules_in_sequence_order(active, sequence),
            )
            issues.extend(self._check_pack(pack_id, sequence, data))

        for issue in issues:
            logger.debug("graph issue: %s", issue)
        return issues

    def _check_step(self, step: Step) -> list[GraphIssue]:
        issues: list[GraphIssue] = []
        for target, label in self.static_targets(step):
            if target not in self._steps:
                issues.append(GraphIssue(
                    "dangling_target", step.id,
                    f"{label} points at unknown step '{target}'", target=target,
                ))

        predicates = list(step.condition)
        if isinstance(step.next_step, NextStepRules):
            for rule in step.next_step.rules:
                predicates.extend(rule.when)
        for pred in predicates:
            if pred.field not in _DATA_FIELDS:
                issues.append(GraphIssue(
                    "unknown_field", step.id, f"Predicate references unknown field '{pred.field}'",
                ))

        if isinstance(step, QuestionStep):
            written = [step.field] if step.field else [f.id for f in step.fields]
            for name in written:
                if name not in _DATA_FIELDS:
                    issues.append(GraphIssue(
                        "unknown_field", step.id, f"Answer targets unknown field '{name}'",
                    ))
            for rule in step.validation:
                if isinstance(rule, CustomRule) and not self._validator.has_validator(rule.validator):
                    issues.append(GraphIssue(
                        "unknown_validator", step.id, f"Unknown custom validator '{rule.validator}'",
                    ))

        for module in step.required_modules:
            if module not in self._store.catalog.modules:
                issues.append(GraphIssue(
                    "unknown_module", step.id, f"required_modules names unknown module '{module}'",
                ))
        return issues

    def _check_pack(
        self, pack_id: str, sequence: list[str], data: OnboardingData
    ) -> list[GraphIssue]:
        """Walk every edge reachable from the first sequence id."""
        issues: list[GraphIssue] = []
        reached: set[str] = set()
        stack = [sequence[0]]
        while stack:
            step_id = stack.pop()
            if step_id in reached:
                continue
            reached.add(step_id)
            step = self._steps.get(step_id)
            if step is None:
                continue

            targets = [t for t, _ in self.static_targets(step)]
            resolver = self._resolvers.get(step_id)
            if resolver is not None:
                target = resolver(None, data)
                if target not in self._steps:
                    issues.append(GraphIssue(
                        "dangling_resolver", step_id,
                        f"Resolver returned unknown step '{target}'",
                        target=target, pack_id=pack_id,
                    ))
                else:
                    targets.append(target)
            stack.extend(t for t in targets if t in self._steps)

        for qid in sequence:
            if qid not in reached:
                issues.append(GraphIssue(
                    "unreachable", qid,
                    f"Step '{qid}' cannot be reached for pack '{pack_id}'", pack_id=pack_id,
                ))
        return issues
