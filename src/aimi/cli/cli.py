import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
import typer  # type: ignore
from pydantic import ValidationError
from rich.console import Console  # type: ignore
from rich.markup import escape  # type: ignore
from rich.panel import Panel  # type: ignore
from rich.table import Table  # type: ignore
from typing_extensions import Annotated

import aimi
from aimi.api.types import Decision, GlucoseSample, InsulinState, Profile, TickInput
from aimi.core.config import ControllerConfig
from aimi.core.controller import AimiController
from aimi.core.pkpd import kernel
from aimi.core.pkpd.kernel import ActionModelParams
from aimi.learning.param_store import JsonParamStore
from aimi.validation import format_validation_error, load_controller_config, load_tick_input

app = typer.Typer(help="AIMI decision core CLI - temporary basal and micro-bolus decisions from CGM ticks.")


def _setup_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")


def _load_config(config: Optional[Path], console: Console) -> ControllerConfig:
    if config is None:
        return ControllerConfig()
    if not config.is_file():
        console.print(f"[bold red]Error: Config file '{config}' not found.[/bold red]")
        raise typer.Exit(code=1)
    try:
        return load_controller_config(config)
    except ValidationError as e:
        console.print(f"[bold red]Invalid configuration {config}:[/bold red]")
        for line in format_validation_error(e):
            console.print(f"  - {line}")
        raise typer.Exit(code=1)


def _build_controller(config: ControllerConfig, params: Optional[Path], console: Console) -> AimiController:
    persist = None
    if params is not None:
        store = JsonParamStore(params)
        try:
            loaded = store.load()
        except ValueError as e:
            console.print(f"[bold red]Error: {e}[/bold red]")
            raise typer.Exit(code=1)
        if loaded is not None:
            config.initial_params = loaded
            console.print(f"Loaded learned parameters: DIA={loaded.dia_hours:.2f}h, peak={loaded.peak_minutes:.1f}min")
        persist = store
    return AimiController(config, persist=persist)


def _decision_table(decision: Decision) -> Table:
    table = Table(title="Decision", show_lines=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Temp basal", f"{decision.rate:.2f} U/h")
    table.add_row("Duration", f"{decision.duration} min")
    table.add_row("Micro-bolus", f"{decision.bolus:.2f} U")
    table.add_row("SMB interval", f"{decision.smb_interval_minutes:.1f} min")
    table.add_row("Prefer basal", str(decision.prefer_basal))
    if decision.fused_isf is not None:
        table.add_row("Fused ISF", f"{decision.fused_isf:.1f} mg/dL/U")
    table.add_row("Rule", decision.rule or "-")
    table.add_row("Planner short-circuit", str(decision.short_circuited))
    table.add_row("Fallback", str(decision.fallback))
    return table


@app.command()
def tick(
    input_path: Annotated[Path, typer.Option("--input", help="Path to a tick input JSON file")],
    config: Annotated[Optional[Path], typer.Option(help="Controller configuration YAML")] = None,
    params: Annotated[Optional[Path], typer.Option(help="Learned parameter JSON (loaded and updated)")] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the decision as JSON")] = False,
    verbose: Annotated[bool, typer.Option(help="Enable debug logging")] = False,
):
    """Evaluate a single tick and print the decision with its reason trail."""
    console = Console()
    _setup_logging(verbose)
    if not input_path.is_file():
        console.print(f"[bold red]Error: Input file '{input_path}' not found.[/bold red]")
        raise typer.Exit(code=1)
    try:
        tick_input = load_tick_input(input_path)
    except ValidationError as e:
        console.print(f"[bold red]Invalid tick input {input_path}:[/bold red]")
        for line in format_validation_error(e):
            console.print(f"  - {line}")
        raise typer.Exit(code=1)
    except json.JSONDecodeError as e:
        console.print(f"[bold red]Error: {input_path} is not valid JSON: {e}[/bold red]")
        raise typer.Exit(code=1)

    controller = _build_controller(_load_config(config, console), params, console)
    try:
        decision = controller.tick(tick_input)
    finally:
        controller.shutdown()

    if decision is None:
        console.print("[bold yellow]Tick skipped: controller busy.[/bold yellow]")
        raise typer.Exit(code=1)

    if as_json:
        console.print_json(json.dumps(decision.to_dict(), indent=2))
        return

    console.print(_decision_table(decision))
    trail = "\n".join(str(entry) for entry in decision.reasons) or "No reasons recorded"
    console.print(Panel(escape(trail), title="Reason trail"))
    if decision.advisories:
        console.print(Panel(escape("\n".join(str(w) for w in decision.advisories)), title="Trajectory advisories", style="yellow"))


def _timestamps_to_minutes(column: pd.Series) -> pd.Series:
    if pd.api.types.is_numeric_dtype(column):
        return column.astype(float)
    parsed = pd.to_datetime(column, utc=True)
    return (parsed - pd.Timestamp("1970-01-01", tz="UTC")).dt.total_seconds() / 60.0


def _optional(row: pd.Series, name: str) -> Optional[float]:
    if name not in row or pd.isna(row[name]):
        return None
    return float(row[name])


@app.command()
def replay(
    csv_path: Annotated[Path, typer.Option("--csv", help="CGM CSV with 'timestamp' and 'glucose' columns")],
    basal: Annotated[float, typer.Option(help="Profile basal rate (U/h)")] = 1.0,
    isf: Annotated[float, typer.Option(help="Profile ISF (mg/dL/U)")] = 50.0,
    target: Annotated[float, typer.Option(help="Target glucose (mg/dL)")] = 100.0,
    config: Annotated[Optional[Path], typer.Option(help="Controller configuration YAML")] = None,
    output: Annotated[Optional[Path], typer.Option(help="Write decisions to this CSV")] = None,
    verbose: Annotated[bool, typer.Option(help="Enable debug logging")] = False,
):
    """
    Replay a CGM trace through the controller, one tick per row.

    Optional columns: delta, iob, cob, tdd_24h, predicted_bg, eventual_bg.
    Missing deltas are derived from consecutive readings.
    """
    console = Console()
    _setup_logging(verbose)
    if not csv_path.is_file():
        console.print(f"[bold red]Error: CSV file '{csv_path}' not found.[/bold red]")
        raise typer.Exit(code=1)

    df = pd.read_csv(csv_path)
    missing = [name for name in ("timestamp", "glucose") if name not in df.columns]
    if missing:
        console.print(f"[bold red]Error: CSV is missing required columns: {', '.join(missing)}[/bold red]")
        raise typer.Exit(code=1)

    df = df.sort_values("timestamp").reset_index(drop=True)
    df["minutes"] = _timestamps_to_minutes(df["timestamp"])
    if "delta" not in df.columns:
        step = df["minutes"].diff()
        step = step.where(step > 0)
        df["delta"] = (df["glucose"].diff() / step * 5.0).fillna(0.0)

    controller = AimiController(_load_config(config, console))
    profile = Profile(basal_rate=basal, isf=isf, target_bg=target)
    rows: List[Dict[str, Any]] = []
    try:
        for _, row in df.iterrows():
            tick_input = TickInput(
                glucose=GlucoseSample(timestamp=float(row["minutes"]), value=float(row["glucose"]), delta=float(row["delta"])),
                insulin=InsulinState(iob=_optional(row, "iob") or 0.0),
                profile=profile,
                tdd_24h=_optional(row, "tdd_24h") or 0.0,
                active_carbs=_optional(row, "cob") or 0.0,
                predicted_bg=_optional(row, "predicted_bg"),
                eventual_bg=_optional(row, "eventual_bg"),
            )
            decision = controller.tick(tick_input)
            if decision is None:
                continue
            rows.append({
                "timestamp": row["timestamp"],
                "glucose": float(row["glucose"]),
                "rate": decision.rate,
                "duration": decision.duration,
                "bolus": decision.bolus,
                "smb_interval": decision.smb_interval_minutes,
                "rule": decision.rule,
                "short_circuited": decision.short_circuited,
                "fallback": decision.fallback,
                "reasons": decision.reason_text(),
            })
    finally:
        controller.shutdown()

    results = pd.DataFrame(rows)
    console.print(f"[bold green]Replayed {len(results)} ticks.[/bold green]")
    if not results.empty:
        summary = Table(title="Replay summary")
        summary.add_column("Metric", style="cyan")
        summary.add_column("Value", justify="right")
        summary.add_row("Mean temp basal (U/h)", f"{results['rate'].mean():.2f}")
        summary.add_row("Total micro-bolus (U)", f"{results['bolus'].sum():.2f}")
        summary.add_row("Zero-rate ticks", str(int((results['rate'] == 0).sum())))
        summary.add_row("Planner short-circuits", str(int(results['short_circuited'].sum())))
        summary.add_row("Fallback ticks", str(int(results['fallback'].sum())))
        console.print(summary)
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        results.to_csv(output, index=False)
        console.print(f"Decisions written to {output}")


@app.command("kernel")
def kernel_table(
    dia: Annotated[float, typer.Option(help="Duration of insulin action (hours)")] = 6.0,
    peak: Annotated[float, typer.Option(help="Peak action time (minutes)")] = 75.0,
    step: Annotated[float, typer.Option(help="Table step (minutes)")] = 30.0,
):
    """Print the residual and action curve of the insulin action model."""
    console = Console()
    if dia <= 0 or peak <= 0 or step <= 0:
        console.print("[bold red]Error: dia, peak and step must be positive.[/bold red]")
        raise typer.Exit(code=1)
    params = ActionModelParams(dia_hours=dia, peak_minutes=peak)
    minutes, actions, residuals = kernel.action_curve(params, step)
    window = kernel.activity_window(params)

    table = Table(title=f"Insulin action (DIA {dia:.1f}h, peak {peak:.0f}min)")
    table.add_column("Minutes", justify="right", style="cyan")
    table.add_column("Residual", justify="right")
    table.add_column("Action (/min)", justify="right")
    for t, r, a in zip(minutes, residuals, actions):
        table.add_row(f"{t:.0f}", f"{r:.3f}", f"{a:.5f}")
    console.print(table)
    console.print(
        f"Activity window: onset {window.onset_minutes:.0f}min, peak {window.peak_minutes:.0f}min, "
        f"offset {window.offset_minutes:.0f}min"
    )


@app.command("config")
def show_config(
    config: Annotated[Optional[Path], typer.Option(help="Controller configuration YAML")] = None,
):
    """Print the effective controller configuration."""
    console = Console()
    effective = _load_config(config, console)
    console.print(Panel(f"aimi-core {aimi.__version__}", style="bold blue"))
    console.print_json(json.dumps(effective.to_dict(), indent=2))


if __name__ == "__main__":
    app()
