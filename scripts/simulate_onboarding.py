#!/usr/bin/env python3
"""Simulate an onboarding session end-to-end against the v1 ruleset.

Drives one OnboardingFlow from start to completion, printing a rich
transcript of every step shown, the generated answer (or skip), and the
progress after each transition.

Answers are randomised from ``--seed`` so each seed explores a different
path through the step graph.

Usage::

    # Default run (muscle_building, seed 0)
    python scripts/simulate_onboarding.py

    # Choose a pack
    python scripts/simulate_onboarding.py -p performance_athlete

    # Custom module selection (implies the custom pack)
    python scripts/simulate_onboarding.py -m nutrition,sleep

    # List packs with their estimates
    python scripts/simulate_onboarding.py --list-packs

    # Validate the step graph for every pack and exit
    python scripts/simulate_onboarding.py --validate
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Ensure project root is on sys.path so we can import both the SDK and
# the test answer helpers.
# ---------------------------------------------------------------------------
_SCRIPT_DIR = Path(__file__).resolve().parent
_REPO_ROOT = _SCRIPT_DIR.parent
sys.path.insert(0, str(_REPO_ROOT / "tests"))
sys.path.insert(0, str(_REPO_ROOT / "src"))

from rich.console import Console  # noqa: E402
from rich.table import Table  # noqa: E402

from helpers.answers import pick_answer  # noqa: E402

from onboarding_flow.config import configure_logging, load_settings  # noqa: E402
from onboarding_flow.constants import STATE_NAMES  # noqa: E402
from onboarding_flow.engine import OnboardingFlow  # noqa: E402
from onboarding_flow.errors import OnboardingError  # noqa: E402
from onboarding_flow.graph import StepGraph  # noqa: E402
from onboarding_flow.models.session import FlowState  # noqa: E402
from onboarding_flow.models.step import QuestionStep  # noqa: E402
from onboarding_flow.recommendation import Recommender  # noqa: E402
from onboarding_flow.ruleset import RulesetStore  # noqa: E402
from onboarding_flow.sinks import InMemoryProgressSink  # noqa: E402

_DEFAULT_PACK = "muscle_building"
_MAX_TRANSITIONS = 200


def _load_store(ruleset_dir: str | None) -> RulesetStore:
    store = RulesetStore(ruleset_dir)
    store.load()
    return store


# ---------------------------------------------------------------------------
# --list-packs / --validate
# ---------------------------------------------------------------------------

def list_packs(console: Console, store: RulesetStore) -> None:
    """Print every pack with its modules, question count and estimate."""
    recommender = Recommender(store)
    table = Table(title="Smart Packs", show_lines=True)
    table.add_column("#", style="dim", width=3)
    table.add_column("Pack", min_width=22)
    table.add_column("Modules", min_width=24)
    table.add_column("Questions", width=9)
    table.add_column("Minutes", width=7)
    table.add_column("Popular", width=7)

    for pack in store.packs.list_packs():
        count = "all" if pack.asks_all else str(len(pack.questions_to_ask.ids))
        table.add_row(
            str(pack.order),
            f"{pack.icon} {pack.id}",
            ", ".join(pack.modules) or "(chosen by user)",
            count,
            str(recommender.get_estimated_time_for_pack(pack.id)),
            "[green]yes[/]" if pack.popular else "-",
        )
    console.print(table)


def validate(console: Console, store: RulesetStore) -> int:
    """Run graph validation; return the process exit code."""
    issues = StepGraph(store).validate_graph()
    if not issues:
        console.print(f"[green]✓[/] Step graph OK ({len(store.steps)} steps, {len(store.packs)} packs)")
        return 0

    table = Table(title=f"{len(issues)} graph issue(s)", show_lines=True)
    table.add_column("Kind", style="red")
    table.add_column("Step")
    table.add_column("Pack")
    table.add_column("Message", min_width=40)
    for issue in issues:
        table.add_row(issue.kind, issue.step_id, issue.pack_id or "-", issue.message)
    console.print(table)
    return 1


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------

def run_simulation(
    console: Console,
    store: RulesetStore,
    selection: str | list[str],
    *,
    seed: int,
    skip_rate: float,
    quiet: bool,
) -> int:
    rng = random.Random(seed)
    sink = InMemoryProgressSink()
    flow = OnboardingFlow(store, f"sim-{seed}", sink=sink, settings=load_settings())

    try:
        flow.start(selection)
    except OnboardingError as exc:
        console.print(f"[red]✗[/] {exc}")
        return 1

    if not quiet:
        console.rule(f"[bold]Onboarding: {flow.data.selected_pack} (seed {seed})")
        console.print(f"  Modules:  {', '.join(flow.active_modules) or '(none)'}")
        console.print(f"  Sequence: {len(flow.sequence)} questions, ~{flow.estimated_time_remaining()} min")
        console.print()

    for _ in range(_MAX_TRANSITIONS):
        if flow.state is not FlowState.IN_PROGRESS:
            break
        step = flow.current_step
        if isinstance(step, QuestionStep) and step.skippable and rng.random() < skip_rate:
            outcome = flow.skip()
            detail = "[yellow]skipped[/]"
        else:
            answer = pick_answer(step, rng)
            outcome = flow.submit(answer)
            detail = "(continue)" if answer is None else repr(answer)

        if not outcome.accepted:
            console.print(f"  [red]✗[/] {step.id}: {outcome.error.message}")
            return 1
        if not quiet:
            pct = flow.progress_percentage() * 100
            console.print(f"  [green]✓[/] [cyan]{step.id:<22}[/] {detail}  [dim]{pct:5.1f}%[/]")
            for passed in outcome.auto_skipped:
                console.print(f"    [dim]↷ passed over {passed}[/]")

    progress = flow.data.progress
    ok = flow.state is FlowState.COMPLETED
    if not quiet:
        console.print()
        status = "[green]Completed[/]" if ok else f"[red]{STATE_NAMES[flow.state.value]}[/]"
        console.print(f"  → {status}: {len(progress.completed_steps)} answered, "
                      f"{progress.skip_count} skipped, progress {flow.progress_percentage():.0%}, "
                      f"{len(sink.history)} snapshots saved")
    return 0 if ok else 1


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Simulate an onboarding session end-to-end with generated answers.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "-p", "--pack",
        default=_DEFAULT_PACK,
        help=f"Smart Pack to simulate (default: {_DEFAULT_PACK})",
    )
    parser.add_argument(
        "-m", "--modules",
        default=None,
        help="Comma-separated module list; runs the custom pack with these modules",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=0,
        help="Random seed for generated answers (default: 0)",
    )
    parser.add_argument(
        "--skip-rate",
        type=float,
        default=0.3,
        help="Probability of skipping a skippable step (default: 0.3)",
    )
    parser.add_argument(
        "--ruleset-dir",
        default=None,
        help="Ruleset directory (default: ONBOARDING_RULESET_DIR or v1/)",
    )
    parser.add_argument(
        "--list-packs",
        action="store_true",
        help="List all Smart Packs and exit",
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate the step graph for every pack and exit",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress the transcript (exit code still reflects success/failure)",
    )
    args = parser.parse_args()

    settings = load_settings()
    configure_logging(settings.log_level)
    if args.quiet:
        logging.getLogger("onboarding_flow").setLevel(logging.CRITICAL)

    console = Console()
    store = _load_store(args.ruleset_dir or settings.ruleset_dir)

    if args.list_packs:
        list_packs(console, store)
        sys.exit(0)
    if args.validate:
        sys.exit(validate(console, store))

    selection: str | list[str] = args.pack
    if args.modules:
        selection = [m.strip() for m in args.modules.split(",") if m.strip()]

    sys.exit(run_simulation(
        console, store, selection,
        seed=args.seed, skip_rate=args.skip_rate, quiet=args.quiet,
    ))


if __name__ == "__main__":
    main()
