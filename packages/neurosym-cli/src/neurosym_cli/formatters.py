"""Rich renderers for opportunities, proposals and apply intents."""
from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

if TYPE_CHECKING:
    from neurosym_learning.types import (
        ApplyResult,
        OptimizationOpportunity,
        PerformanceImpact,
        Proposal,
        Violation,
    )

console = Console()


def opportunities_table(
    agent_name: str, opportunities: list[OptimizationOpportunity]
) -> Table:
    table = Table(
        title=f"Optimization opportunities: {agent_name}",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Task", style="bold")
    table.add_column("Executions", justify="right")
    table.add_column("Consistency", justify="right")
    table.add_column("Ready", justify="center")
    table.add_column("Pattern / Reason")

    for opp in opportunities:
        ready = "[green]yes[/green]" if opp.ready_for_learning else "[yellow]no[/yellow]"
        lines = [opp.common_pattern] if opp.common_pattern else []
        if opp.reason:
            lines.append(f"[dim]{opp.reason}[/dim]")
        detail = "\n".join(lines) or "-"
        table.add_row(
            opp.task_name,
            str(opp.execution_count),
            f"{opp.consistency_score:.1%}",
            ready,
            detail,
        )
    return table


def violations_table(violations: list[Violation]) -> Table:
    table = Table(show_header=True, header_style="bold red", title="Validation violations")
    table.add_column("Type")
    table.add_column("Line", justify="right")
    table.add_column("Message")
    for v in violations:
        table.add_row(str(v.type), str(v.line) if v.line else "-", v.message)
    return table


def impact_table(impact: PerformanceImpact) -> Table:
    table = Table(
        show_header=True,
        header_style="bold cyan",
        title="Estimated impact",
        caption="Heuristic cost model, not a measurement",
    )
    table.add_column("Metric")
    table.add_column("Current", justify="right")
    table.add_column("Optimized", justify="right")
    table.add_column("Reduction", justify="right")
    table.add_row(
        "Avg time",
        f"{impact.current_avg_time}s",
        f"{impact.optimized_avg_time}s",
        f"{impact.time_reduction_pct}%",
    )
    table.add_row(
        "Avg cost",
        f"${impact.current_avg_cost}",
        f"${impact.optimized_avg_cost}",
        f"{impact.cost_reduction_pct}%",
    )
    table.add_row("Monthly savings", "", "", f"${impact.projected_monthly_savings:.2f}")
    return table


def render_proposal(proposal: Proposal) -> None:
    status = (
        "[green]ready to deploy[/green]"
        if proposal.ready_to_deploy
        else "[yellow]needs review[/yellow]"
    )
    meta = [
        f"[bold]Task:[/bold]        {proposal.task_name}",
        f"[bold]Method:[/bold]      {proposal.synthesis_method}",
        f"[bold]Executions:[/bold]  {proposal.execution_count}",
        f"[bold]Consistency:[/bold] {proposal.consistency_score:.1%}",
        f"[bold]Pattern:[/bold]     {proposal.pattern or '-'}",
        f"[bold]Status:[/bold]      {status}",
    ]
    if proposal.synthesis_confidence is not None:
        meta.append(f"[bold]Confidence:[/bold]  {proposal.synthesis_confidence:.0%}")
    if proposal.synthesis_explanation:
        meta.append(f"[bold]Explanation:[/bold] {proposal.synthesis_explanation}")

    console.print(Panel("\n".join(meta), title="Proposal", border_style="cyan"))
    console.print(Panel(
        Syntax(proposal.current_code, "python", theme="monokai", word_wrap=True),
        title="Current",
        border_style="dim",
    ))
    console.print(Panel(
        Syntax(proposal.proposed_code, "python", theme="monokai", word_wrap=True),
        title="Proposed",
        border_style="green" if proposal.ready_to_deploy else "yellow",
    ))
    if proposal.validation_violations:
        console.print(violations_table(proposal.validation_violations))
    console.print(impact_table(proposal.performance_impact))


def render_apply(result: ApplyResult) -> None:
    console.print(Panel(
        f"[bold]Action:[/bold] {result.action}\n{result.message}",
        title=f"Apply: {result.task_name}",
        border_style="green" if result.success else "red",
    ))
