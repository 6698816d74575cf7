"""ResponseValidator — runs a question step's validation rules.

Rules are evaluated in declaration order and the first failure is
returned as a :class:`FieldError`; nothing is raised and nothing is
written.  Rule kinds:

    required   None, blank string and empty collections fail (False passes)
    min / max  numbers compare by value, strings and lists by length,
               anything else fails
    range      inclusive numeric range
    pattern    regex search on strings
    one_of     answer (or each element of a list answer) in the allowed set
    custom     named predicate from the validator registry

Before any rule, number and slider answers and numeric form fields must be
real numbers (never bools or numeric strings) so nothing is coerced on
merge.  Select steps also check that the answer is one of the step's options.
Apart from ``required`` and ``custom``, rules do not apply to a missing
answer.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Optional

from onboarding_flow.models.session import FieldError, OnboardingData
from onboarding_flow.models.step import (
    CustomRule,
    MaxRule,
    MinRule,
    OneOfRule,
    PatternRule,
    QuestionStep,
    RangeRule,
    RequiredRule,
)

logger = logging.getLogger(__name__)

_NUMERIC_INPUTS = {"number", "slider"}

# (response, data) -> bool
Validator = Callable[[Any, OnboardingData], bool]


# ---------------------------------------------------------------------------
# Custom validators
# ---------------------------------------------------------------------------

MIN_AGE = 13
MAX_AGE = 100
MIN_DAILY_MINUTES = 15


def _accepted(value: Any, data: OnboardingData) -> bool:
    return value is True


def _age_in_range(value: Any, data: OnboardingData) -> bool:
    age = _as_number(value.get("age") if isinstance(value, dict) else value)
    return age is not None and MIN_AGE <= age <= MAX_AGE


def _enough_daily_time(value: Any, data: OnboardingData) -> bool:
    minutes = value.get("available_time_per_day") if isinstance(value, dict) else value
    if minutes is None:
        return True
    minutes = _as_number(minutes)
    return minutes is not None and minutes >= MIN_DAILY_MINUTES


def _exclusive_none(value: Any, data: OnboardingData) -> bool:
    """A "none" choice cannot be combined with other choices."""
    if not isinstance(value, list):
        return True
    return "none" not in value or len(value) == 1


VALIDATORS: dict[str, Validator] = {
    "accepted": _accepted,
    "age_in_range": _age_in_range,
    "enough_daily_time": _enough_daily_time,
    "exclusive_none": _exclusive_none,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a numeric answer
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_number(value: Any) -> Optional[float]:
    """Numbers and numeric strings as float; anything else → None."""
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def _measure(value: Any) -> Optional[float]:
    """Value used by min/max: the number itself, or the length of a sized answer."""
    if _is_number(value):
        return float(value)
    if isinstance(value, (str, list, tuple, dict)):
        return float(len(value))
    return None


# ---------------------------------------------------------------------------
# ResponseValidator
# ---------------------------------------------------------------------------

class ResponseValidator:
    """Validates candidate responses for question steps.

    Args:
        validators: custom validator registry (defaults to :data:`VALIDATORS`)
    """

    def __init__(self, validators: dict[str, Validator] | None = None) -> None:
        self._validators = dict(VALIDATORS if validators is None else validators)

    def has_validator(self, name: str) -> bool:
        return name in self._validators

    def validate(
        self, step: QuestionStep, response: Any, data: OnboardingData
    ) -> Optional[FieldError]:
        """Return the first failing rule as a FieldError, or None when valid."""
        error = self._check_numeric(step, response)
        if error is not None:
            return error

        for rule in step.validation:
            if not self._check(rule, response, data):
                return FieldError(
                    step_id=step.id, field=step.field, rule=rule.type, message=rule.message,
                )

        if response is not None and step.options and not self._matches_options(step, response):
            return FieldError(
                step_id=step.id,
                field=step.field,
                rule="options",
                message="Please choose one of the listed options",
            )
        return None

    @staticmethod
    def _check_numeric(step: QuestionStep, response: Any) -> Optional[FieldError]:
        """Number and slider answers, and numeric form fields, must be real numbers."""
        if step.input_type in _NUMERIC_INPUTS:
            if response is not None and not _is_number(response):
                return FieldError(
                    step_id=step.id, field=step.field, rule="type", message="Please enter a number",
                )
        elif step.input_type == "form" and isinstance(response, dict):
            for form_field in step.fields:
                value = response.get(form_field.id)
                if form_field.kind == "number" and value is not None and not _is_number(value):
                    return FieldError(
                        step_id=step.id,
                        field=form_field.id,
                        rule="type",
                        message=f"{form_field.label} must be a number",
                    )
        return None

    def _check(self, rule, value: Any, data: OnboardingData) -> bool:
        if isinstance(rule, RequiredRule):
            return not is_empty(value)

        if isinstance(rule, CustomRule):
            fn = self._validators.get(rule.validator)
            if fn is None:
                logger.error("Unknown custom validator '%s', rule ignored", rule.validator)
                return True
            return bool(fn(value, data))

        if value is None:
            return True

        if isinstance(rule, (MinRule, MaxRule)):
            measured = _measure(value)
            if measured is None:
                return False
            if isinstance(rule, MinRule):
                return measured >= rule.value
            return measured <= rule.value

        if isinstance(rule, RangeRule):
            return _is_number(value) and rule.min <= value <= rule.max

        if isinstance(rule, PatternRule):
            return isinstance(value, str) and re.search(rule.regex, value) is not None

        if isinstance(rule, OneOfRule):
            if isinstance(value, list):
                return all(v in rule.values for v in value)
            return value in rule.values

        logger.warning("Unhandled validation rule type: %s", rule.type)
        return True

    @staticmethod
    def _matches_options(step: QuestionStep, response: Any) -> bool:
        if step.input_type == "multi-select":
            if not isinstance(response, list):
                return False
            return all(step.option_for(v) is not None for v in response)
        return step.option_for(response) is not None
