#!/usr/bin/env python3
"""Ad hoc validator for generated meals and 7-day plans.

Validate a candidate JSON file against the configured targets without running
the generator.

Usage:
    python check_meal.py meal.json
    python check_meal.py --plan plan.json
    python check_meal.py --debug meal.json  # Show full JSON result

Features:
- Nutrition, format and (for plans) variety checks using .env configuration
- Table of every failed check with expected and actual values
- Regeneration feedback the controller would send on a retry
- Exit status 1 when any critical check fails, 2 on malformed input
"""

import sys
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from src.engine.evaluate import evaluate
from src.engine.parsing import parse_meal, parse_plan
from src.engine.regeneration import Action, AttemptState, decide
from src.models.models import PlanValidationResult
from src.prompts.feedback import format_regeneration_feedback
from src.utils.config import config
from src.utils.errors import InvalidInputError
from src.utils.logger import logger

console = Console()


def _failure_table(title: str, result) -> Table:
    """Render critical and non-critical failures of one ValidationResult."""
    table = Table(title=title, show_lines=False)
    table.add_column("Severity")
    table.add_column("Check")
    table.add_column("Expected")
    table.add_column("Actual")
    for failure in result.critical_failures:
        table.add_row("[red]critical[/red]", failure.check_name, failure.expected, failure.actual)
    for failure in result.non_critical_failures:
        table.add_row("[yellow]warning[/yellow]", failure.check_name, failure.expected, failure.actual)
    return table


def run_check(path: str, plan: bool = False, debug: bool = False) -> int:
    """Validate one candidate file and print a report.

    Args:
        path: Path to a meal or plan JSON file.
        plan: If True, parse the file as a 7-day plan.
        debug: If True, print the full JSON result.

    Returns:
        Process exit status.
    """
    candidate_file = Path(path)
    if not candidate_file.exists():
        console.print(f"[red]✗ Error: File not found: {path}[/red]")
        return 2

    try:
        raw = candidate_file.read_bytes()
        candidate = parse_plan(raw) if plan else parse_meal(raw)
        result = evaluate(
            candidate,
            config.nutrition_targets(),
            config.method_rules(),
            config.variety_policy(),
        )
    except InvalidInputError as e:
        console.print(f"[red]✗ Invalid candidate: {e}[/red]")
        return 2

    if debug:
        console.print("[bold cyan]Debug Mode: Full Result[/bold cyan]")
        console.print_json(data=result.model_dump(mode="json"))
        console.print()

    if isinstance(result, PlanValidationResult):
        for day, day_result in enumerate(result.per_day_results, start=1):
            if day_result.critical_failures or day_result.non_critical_failures:
                console.print(_failure_table(f"Day {day}: {candidate.days[day - 1].name}", day_result))
        variety = result.variety_result
        console.print(
            f"Variety score: [bold]{variety.variety_score:.2f}[/bold] "
            f"(proteins={variety.unique_protein_count}, cuisines={variety.unique_cuisine_count})"
        )
        if result.variety_check.critical_failures or result.variety_check.non_critical_failures:
            console.print(_failure_table("Variety", result.variety_check))
    elif result.critical_failures or result.non_critical_failures:
        console.print(_failure_table(candidate.name, result))

    if result.passed:
        console.print("[green]✓ Candidate accepted[/green]")
        return 0

    kind = "plan" if plan else "meal"
    decision = decide(candidate, result, AttemptState.start(kind, config.attempt_budgets()))
    if decision.action == Action.RETRY:
        console.print(Markdown(format_regeneration_feedback(decision.retry)))
    console.print("[red]✗ Candidate rejected[/red]")
    return 1


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python check_meal.py [--debug] [--plan] <candidate.json>")
        print("")
        print("Examples:")
        print("  python check_meal.py meal.json")
        print("  python check_meal.py --plan week.json")
        print("  python check_meal.py --debug meal.json")
        sys.exit(1)

    debug_mode = False
    plan_mode = False
    argv_start = 1

    while argv_start < len(sys.argv) and sys.argv[argv_start].startswith("--"):
        if sys.argv[argv_start] == "--debug":
            debug_mode = True
        elif sys.argv[argv_start] == "--plan":
            plan_mode = True
        else:
            print(f"Unknown flag: {sys.argv[argv_start]}")
            sys.exit(1)
        argv_start += 1

    if argv_start >= len(sys.argv):
        print("Error: No candidate file provided")
        sys.exit(1)

    try:
        sys.exit(run_check(sys.argv[argv_start], plan=plan_mode, debug=debug_mode))
    except KeyboardInterrupt:
        logger.info("Check interrupted by user.")
        sys.exit(0)
