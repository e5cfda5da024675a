"""Main CLI entry point for network plugin migration."""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from cni_migration.config import MigrationConfig, write_default_config
from cni_migration.exceptions import MigrationError, MigrationInterrupted
from cni_migration.interrupts import InterruptHandler
from cni_migration.kube import load_client
from cni_migration.logging_config import get_logger, setup_logging
from cni_migration.models.node import NodeState
from cni_migration.models.phase import MigrationPhase
from cni_migration.nodeops import KubectlNodeOperations
from cni_migration.sequencer import StepSequencer, build_steps
from cni_migration.steps import MigrationContext

app = typer.Typer(
    name="cni-migration",
    help="Migrate a live Kubernetes cluster from one network plugin to another, node by node",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)

_STATE_STYLES = {
    NodeState.UNPREPARED: "yellow",
    NodeState.OLD_PLUGIN: "yellow",
    NodeState.DUAL_PLUGIN: "blue",
    NodeState.PRIORITY_FLIPPED: "cyan",
    NodeState.CUTOVER: "magenta",
    NodeState.MIGRATED: "green",
    NodeState.INCONSISTENT: "red",
}


# Global callback to set up logging
@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    log_file: str | None = typer.Option(None, "--log-file", help="Path to log file"),
):
    """Global options for all commands."""
    log_path = Path(log_file) if log_file else None
    setup_logging(verbose=verbose, log_file=log_path)
    logger.debug("Logging initialized")


def _load_config(config_path: str | None) -> MigrationConfig:
    if config_path is None:
        logger.debug("No configuration file given, using defaults")
        return MigrationConfig()
    return MigrationConfig.load(config_path)


def _report(e: MigrationError) -> None:
    logger.error(e.message)
    console.print(f"[red]Error:[/red] {e.message}")
    if e.details:
        console.print(f"\n{e.details}")


def _selected_phases(steps: list[str], migrate_nodes: list[str]) -> set[MigrationPhase]:
    phases = set()
    for value in steps:
        try:
            phases.add(MigrationPhase.parse(value))
        except ValueError as e:
            raise typer.BadParameter(str(e), param_hint="--step")
    if migrate_nodes:
        phases.add(MigrationPhase.MIGRATE)
    return phases


@app.command()
def version() -> None:
    """Show version information."""
    from cni_migration import __version__

    typer.echo(f"cni-migration version {__version__}")


@app.command()
def run(
    config_path: str | None = typer.Option(
        None, "--config", "-c", help="Path to the migration configuration file"
    ),
    no_dry_run: bool = typer.Option(
        False,
        "--no-dry-run",
        help="Run for real. Without this flag nothing in the cluster is changed.",
    ),
    step_all: bool = typer.Option(
        False, "--step-all", help="Run every step. Cannot be combined with other step options."
    ),
    steps: list[str] = typer.Option(
        [],
        "--step",
        "-s",
        help="Step to run, by number or name "
        "(0|preflight, 1|prepare, 2|roll, 3|priority, 4|migrate, 5|cleanup). Repeatable.",
    ),
    migrate_nodes: list[str] = typer.Option(
        [],
        "--migrate-node",
        help="Migrate only this node (implies the migrate step). Repeatable.",
    ),
    kubeconfig: str | None = typer.Option(None, "--kubeconfig", help="Path to kubeconfig"),
    context: str | None = typer.Option(None, "--context", help="Kubeconfig context to use"),
) -> None:
    """
    Run migration steps against the cluster.

    Steps run in order. Any earlier step that was not selected must already
    be complete, otherwise nothing runs.

    Examples:
        # See what preflight and prepare would do
        cni-migration run -s 0 -s 1

        # Migrate a single node
        cni-migration run --migrate-node worker-1 --no-dry-run

        # Run the whole migration
        cni-migration run --step-all --no-dry-run
    """
    dryrun = not no_dry_run

    if step_all and (steps or migrate_nodes):
        console.print("[red]Error:[/red] no other step options may be used with --step-all")
        raise typer.Exit(code=1)

    phases = _selected_phases(steps, migrate_nodes)

    handler = InterruptHandler()
    cancel = handler.install()
    try:
        config = _load_config(config_path)
        client = load_client(kubeconfig, context)
        nodeops = KubectlNodeOperations(
            kubeconfig=kubeconfig, context=context, timeout=config.timeouts.command
        )
        ctx = MigrationContext(config, client, nodeops, cancel)
        sequencer = StepSequencer(build_steps(ctx, migrate_nodes or None))

        if dryrun:
            console.print("[yellow]Dry run: no changes will be made (use --no-dry-run)[/yellow]")

        if step_all:
            sequencer.run_all(dryrun)
        else:
            sequencer.run_selected(phases, dryrun)

        logger.info("Migration steps completed")
        console.print("[green]✓ Done[/green]")

    except (KeyboardInterrupt, MigrationInterrupted):
        console.print("\n[yellow]Migration interrupted by user[/yellow]")
        raise typer.Exit(code=130)
    except MigrationError as e:
        _report(e)
        raise typer.Exit(code=1)
    except Exception as e:
        logger.error(f"Unexpected error during migration: {e}", exc_info=True)
        console.print(f"[red]Unexpected error:[/red] {e}")
        console.print("\nRun with --verbose --log-file debug.log for more details")
        raise typer.Exit(code=1)
    finally:
        handler.restore()


@app.command()
def status(
    config_path: str | None = typer.Option(
        None, "--config", "-c", help="Path to the migration configuration file"
    ),
    show_steps: bool = typer.Option(
        False,
        "--steps",
        help="Also evaluate whether each step is complete (runs the connectivity probe)",
    ),
    kubeconfig: str | None = typer.Option(None, "--kubeconfig", help="Path to kubeconfig"),
    context: str | None = typer.Option(None, "--context", help="Kubeconfig context to use"),
) -> None:
    """
    Show the migration state of every node and watched workload.

    Examples:
        cni-migration status
        cni-migration status --steps
    """
    try:
        config = _load_config(config_path)
        client = load_client(kubeconfig, context)
        nodeops = KubectlNodeOperations(
            kubeconfig=kubeconfig, context=context, timeout=config.timeouts.command
        )
        ctx = MigrationContext(config, client, nodeops)

        nodes = ctx.store.nodes()
        if not nodes:
            console.print("[yellow]No nodes found in the cluster[/yellow]")
            raise typer.Exit(code=0)

        console.print(f"\n[bold cyan]Nodes ({len(nodes)}):[/bold cyan]")
        nodes_table = Table()
        nodes_table.add_column("Name", style="cyan")
        nodes_table.add_column("State")
        nodes_table.add_column("Rolled")
        nodes_table.add_column("Schedulable")
        nodes_table.add_column("Taints", style="yellow")

        counts: dict[NodeState, int] = {}
        for node in sorted(nodes, key=lambda n: n.metadata.name):
            state = ctx.store.state(node)
            counts[state] = counts.get(state, 0) + 1
            style = _STATE_STYLES[state]
            rolled = "Yes" if config.labels.is_rolled(node.metadata.labels) else "No"
            schedulable = "[red]No[/red]" if node.spec.unschedulable else "Yes"
            taints = ", ".join(f"{t.key}:{t.effect}" for t in node.spec.taints or []) or "-"
            nodes_table.add_row(
                node.metadata.name, f"[{style}]{state.value}[/{style}]", rolled, schedulable, taints
            )
        console.print(nodes_table)

        console.print("\n[bold cyan]Watched workloads:[/bold cyan]")
        workloads_table = Table()
        workloads_table.add_column("Kind", style="magenta")
        workloads_table.add_column("Namespace", style="cyan")
        workloads_table.add_column("Name", style="cyan")
        workloads_table.add_column("Ready")
        for ref in config.watched_resources.refs():
            if client.get_workload(ref) is None:
                ready = "[dim]not present[/dim]"
            else:
                readiness = ctx.waiter.status(ref)
                colour = "green" if readiness.complete else "yellow"
                ready = f"[{colour}]{readiness}[/{colour}]"
            workloads_table.add_row(ref.kind.value, ref.namespace, ref.name, ready)
        console.print(workloads_table)

        if show_steps:
            console.print("\n[bold cyan]Steps:[/bold cyan]")
            steps_table = Table()
            steps_table.add_column("Step", style="cyan")
            steps_table.add_column("Ready")
            for phase, ready in StepSequencer(build_steps(ctx)).readiness().items():
                mark = "[green]✓ Yes[/green]" if ready else "[yellow]✗ No[/yellow]"
                steps_table.add_row(phase.tag, mark)
            console.print(steps_table)

        console.print("\n[bold]Summary:[/bold]")
        for state in NodeState:
            if state in counts:
                console.print(f"  {state.value}: {counts[state]}")

        if counts.get(NodeState.INCONSISTENT):
            console.print("\n[red]⚠ Some nodes carry conflicting migration labels[/red]")
        elif counts.get(NodeState.MIGRATED) == len(nodes):
            console.print("\n[green]✓ All nodes are migrated[/green]")

    except KeyboardInterrupt:
        console.print("\n[yellow]Status check interrupted by user[/yellow]")
        raise typer.Exit(code=130)
    except MigrationError as e:
        _report(e)
        raise typer.Exit(code=1)


@app.command("config-init")
def config_init(
    path: str = typer.Argument("config.yaml", help="Where to write the configuration"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
) -> None:
    """Write a commented default configuration file."""
    try:
        written = write_default_config(path, overwrite=force)
    except MigrationError as e:
        _report(e)
        raise typer.Exit(code=1)

    console.print(f"[green]✓ Wrote default configuration to {written}[/green]")


if __name__ == "__main__":
    app()
