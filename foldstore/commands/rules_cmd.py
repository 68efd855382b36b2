"""Rules command - dry-run rule files against a snapshot."""

from __future__ import annotations

import json
from pathlib import Path

from rich.console import Console
from rich.table import Table

from ..errors import RuleDefinitionError
from ..rules import evaluate_rule, load_rules_file


def run_rules_check(rules_file: Path, snapshot_file: Path, *, output_json: bool = False) -> int:
    console = Console(stderr=True)

    try:
        rules = load_rules_file(rules_file)
    except (OSError, ValueError, RuleDefinitionError) as e:
        console.print(f"[red]Invalid rule file {rules_file}:[/red] {e}")
        return 1
    try:
        snapshot = json.loads(snapshot_file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        console.print(f"[red]Cannot read {snapshot_file}:[/red] {e}")
        return 1

    results = [evaluate_rule(rule, snapshot) for rule in rules]

    if output_json:
        payload = [
            {
                "ruleId": r.rule.id,
                "triggered": r.passed,
                "matched": [c.to_dict() for c in r.matched],
                "failed": [c.to_dict() for c in r.failed],
            }
            for r in results
        ]
        print(json.dumps(payload, indent=2))
        return 0

    table = Table(title=f"Rules: {rules_file.name}")
    table.add_column("Rule", style="cyan", no_wrap=True)
    table.add_column("Entity", style="magenta")
    table.add_column("Result")
    table.add_column("Failed conditions", style="dim")
    for r in results:
        result = "[red]TRIGGERED[/red]" if r.passed else "[green]quiet[/green]"
        failed = "; ".join(f"{c.path} {c.op} {c.value!r}" for c in r.failed)
        table.add_row(r.rule.id, r.rule.match_entity, result, failed)
    console.print(table)
    return 0
