"""Next-step resolvers whose successor depends on the active modules.

A resolver is a pure function ``(response, data) -> step_id``.  Resolvers
are bound to the catalog with :func:`functools.partial` and registered in a
table keyed by step id; a registered resolver takes precedence over every
declarative ``next_step`` of its step.

Routing between modules follows ``data.selected_modules``, which the
engine fills with the active modules in the order the session asks them.
After the last active module the flow goes to the catalog's splice anchor
(``final_questions``).
"""

from __future__ import annotations

from functools import partial
from typing import Any, Callable

from onboarding_flow.models.catalog import QuestionCatalog
from onboarding_flow.models.session import OnboardingData

# (response, data) -> step id
Resolver = Callable[[Any, OnboardingData], str]

# Step that hands over from the identity questions to the first module.
MODULE_GATEWAY_STEP = "personal_info"


def _module_entry(catalog: QuestionCatalog, module: str) -> str | None:
    qids = catalog.questions_for_module(module)
    return qids[0] if qids else None


def first_module_entry(catalog: QuestionCatalog, response: Any, data: OnboardingData) -> str:
    """Entry step of the first active module, or the splice anchor."""
    for module in data.selected_modules:
        entry = _module_entry(catalog, module)
        if entry is not None:
            return entry
    return catalog.splice_anchor


def next_module_entry(
    catalog: QuestionCatalog, after: str, response: Any, data: OnboardingData
) -> str:
    """Entry step of the active module following *after*, or the splice anchor."""
    active = data.selected_modules
    if after in active:
        following = active[active.index(after) + 1:]
    else:
        # Not an active module: continue with active modules that come
        # later in canonical order
        canonical = catalog.module_ids()
        pos = canonical.index(after) if after in canonical else len(canonical)
        following = [m for m in active if m in canonical and canonical.index(m) > pos]

    for module in following:
        entry = _module_entry(catalog, module)
        if entry is not None:
            return entry
    return catalog.splice_anchor


def build_resolvers(catalog: QuestionCatalog) -> dict[str, Resolver]:
    """Resolver table for *catalog*: the gateway step plus each module's last step."""
    resolvers: dict[str, Resolver] = {
        MODULE_GATEWAY_STEP: partial(first_module_entry, catalog),
    }
    for module, qids in catalog.modules.items():
        if qids:
            resolvers[qids[-1]] = partial(next_module_entry, catalog, module)
    return resolvers
