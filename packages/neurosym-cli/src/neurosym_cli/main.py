from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import typer
from neurosym_core import NeurosymConfig, setup_logging
from neurosym_core.errors import (
    AgentDefinitionError,
    ConfigError,
    LearningError,
)
from neurosym_core.logging import get_logger
from neurosym_learning import DSPyChatClient, Optimizer, load_agent_definition

from neurosym_cli.formatters import (
    console,
    opportunities_table,
    render_apply,
    render_proposal,
)

if TYPE_CHECKING:
    from neurosym_learning.types import Proposal

logger = get_logger("cli")

app = typer.Typer(
    name="neurosym",
    help="Neurosym: learn symbolic code for consistent neural tasks",
    no_args_is_help=True,
)


@app.callback()
def _root(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Log as JSON lines"),
) -> None:
    setup_logging("DEBUG" if verbose else "WARNING", json_output=json_logs)


def _build_optimizer(
    agent_file: Path, *, with_llm: bool, synthesize: bool = False
) -> Optimizer:
    """Load the agent and wire the optimizer.

    With ``with_llm`` an LLM client is built when one is configured; a
    missing API key is only reported to the user when ``synthesize``
    asks for the LLM path.
    """
    try:
        agent = load_agent_definition(agent_file)
        config = NeurosymConfig.load()
    except (AgentDefinitionError, ConfigError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from None

    llm_client = None
    if with_llm:
        try:
            llm_client = DSPyChatClient.from_config(config.llm)
        except ConfigError as exc:
            if synthesize:
                console.print(f"[yellow]Warning: LLM synthesis disabled: {exc}[/yellow]")
            else:
                logger.debug("LLM synthesis fallback disabled: %s", exc)

    logger.debug(
        "Loaded agent '%s' with %d task(s) from %s", agent.name, len(agent.tasks), agent_file
    )
    optimizer = Optimizer.from_config(agent, config, llm_client=llm_client)
    if not optimizer.trace_analyzer.available:
        console.print(
            "[yellow]No trace backend available.[/yellow] "
            "Set OTEL_QUERY_ENDPOINT to a SigNoz, Jaeger or Tempo instance."
        )
    return optimizer


@app.command()
def analyze(
    agent_file: Path = typer.Argument(..., help="Agent definition (YAML)"),
    min_consistency: float | None = typer.Option(
        None, help="Consistency threshold (0-1) [default: from config]"
    ),
    min_executions: int | None = typer.Option(
        None, help="Executions required before learning [default: from config]"
    ),
    since: int | None = typer.Option(
        None, help="Look back this many seconds (default: 24h)"
    ),
) -> None:
    """List neural tasks and whether they are ready to become symbolic."""
    optimizer = _build_optimizer(agent_file, with_llm=False)
    try:
        opportunities = optimizer.analyze(
            min_consistency=min_consistency,
            min_executions=min_executions,
            time_range=since,
        )
    finally:
        optimizer.close()
    if not opportunities:
        console.print(f"[dim]No neural tasks in agent '{optimizer.agent_name}'.[/dim]")
        return

    console.print(opportunities_table(optimizer.agent_name, opportunities))
    ready = sum(1 for o in opportunities if o.ready_for_learning)
    console.print(f"\n[dim]{ready}/{len(opportunities)} task(s) ready for learning.[/dim]")


def _propose(optimizer: Optimizer, task: str, *, synthesize: bool) -> Proposal:
    try:
        return optimizer.propose(task, use_synthesis=synthesize)
    except LearningError as exc:
        console.print(f"[red]Cannot propose:[/red] {exc}")
        raise typer.Exit(1) from None
    finally:
        optimizer.close()


@app.command()
def propose(
    agent_file: Path = typer.Argument(..., help="Agent definition (YAML)"),
    task: str = typer.Argument(..., help="Task to optimize"),
    synthesize: bool = typer.Option(
        False, "--synthesize", help="Skip pattern detection and ask the LLM"
    ),
) -> None:
    """Generate and validate a symbolic replacement for one task."""
    optimizer = _build_optimizer(agent_file, with_llm=True, synthesize=synthesize)
    proposal = _propose(optimizer, task, synthesize=synthesize)
    render_proposal(proposal)
    if not proposal.ready_to_deploy:
        raise typer.Exit(2)


@app.command()
def apply(
    agent_file: Path = typer.Argument(..., help="Agent definition (YAML)"),
    task: str = typer.Argument(..., help="Task to optimize"),
    synthesize: bool = typer.Option(False, "--synthesize", help="Use LLM synthesis"),
    force: bool = typer.Option(
        False, "--force", help="Apply even if the proposal has violations"
    ),
) -> None:
    """Propose an optimization and print the change a deployment would make."""
    optimizer = _build_optimizer(agent_file, with_llm=True, synthesize=synthesize)
    proposal = _propose(optimizer, task, synthesize=synthesize)

    render_proposal(proposal)
    if not proposal.ready_to_deploy and not force:
        console.print(
            "[yellow]Proposal is not ready to deploy; "
            "pass --force to apply anyway.[/yellow]"
        )
        raise typer.Exit(2)

    render_apply(optimizer.apply(proposal))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
