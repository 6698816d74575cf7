"""PredicateEvaluator — evaluates step conditions and declarative next-step rules.

Predicates reference ``OnboardingData`` attributes by name.  A predicate
whose field has not been answered yet evaluates to ``unanswered``: False
during navigation (the condition does not hold yet), True when estimating
how many steps are still ahead (the step may still be shown).
"""

from __future__ import annotations

import logging
import operator
import re
from typing import Any, Callable, Optional

from onboarding_flow.models.step import NextStepRules, Predicate

logger = logging.getLogger(__name__)

_NUMERIC_OPS: dict[str, Callable[[float, float], bool]] = {
    "lt": operator.lt,
    "le": operator.le,
    "gt": operator.gt,
    "ge": operator.ge,
}


class PredicateEvaluator:
    """Evaluates predicates against a flat answers dict."""

    def conditions_hold(
        self,
        predicates: list[Predicate],
        answers: dict[str, Any],
        *,
        unanswered: bool = False,
    ) -> bool:
        """True when every predicate holds (an empty list always holds)."""
        return all(self.eval_predicate(p, answers, unanswered=unanswered) for p in predicates)

    def resolve_rules(self, rules: NextStepRules, answers: dict[str, Any]) -> Optional[str]:
        """First rule whose ``when`` predicates all hold wins, else ``default``."""
        for rule in rules.rules:
            if self.conditions_hold(rule.when, answers):
                return rule.then
        return rules.default

    # ------------------------------------------------------------------
    # Predicate evaluation
    # ------------------------------------------------------------------

    def eval_predicate(
        self, pred: Predicate, answers: dict[str, Any], *, unanswered: bool = False
    ) -> bool:
        answer = answers.get(pred.field)
        if answer is None:
            return unanswered

        # Drill into dict-valued answers (form steps)
        if pred.key is not None:
            if not isinstance(answer, dict):
                return False
            answer = answer.get(pred.key)
            if answer is None:
                return unanswered

        return self.compare(pred.op, answer, pred.value)

    @staticmethod
    def compare(op: str, answer: Any, value: Any) -> bool:
        """Apply *op* to an answer and an expected value.

        Numeric operators coerce both sides to float; a non-numeric answer
        never matches.
        """
        if op == "eq":
            return answer == value
        if op == "ne":
            return answer != value

        if op in _NUMERIC_OPS or op == "between":
            try:
                num = float(answer)
                if op == "between":
                    lo, hi = float(value[0]), float(value[1])
                    return lo <= num <= hi
                return _NUMERIC_OPS[op](num, float(value))
            except (TypeError, ValueError, IndexError):
                return False

        if op in ("contains", "not_contains"):
            if isinstance(answer, (list, tuple, set)):
                found = value in answer
            else:
                found = str(value) in str(answer)
            return found if op == "contains" else not found

        if op in ("contains_any", "contains_all"):
            check = any if op == "contains_any" else all
            if isinstance(answer, (list, tuple, set)):
                return check(v in answer for v in value)
            text = str(answer)
            return check(str(v) in text for v in value)

        if op == "matches":
            return re.search(str(value), str(answer)) is not None

        logger.warning("Unknown predicate operator: %s", op)
        return False
