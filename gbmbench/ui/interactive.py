"""Rich-powered interactive wizard for configuring and repeating benchmark runs."""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table
from rich.theme import Theme

from gbmbench.history import RunHistory
from gbmbench.results import BenchmarkReport

_THEME = Theme(
    {
        "accent": "bright_cyan",
        "muted": "grey70",
        "warning": "gold1",
        "success": "spring_green2",
    }
)

_console = Console(theme=_THEME)


def _prompt_int(message: str, default: int, *, minimum: Optional[int] = None) -> int:
    while True:
        response = Prompt.ask(message, default=str(default), console=_console)
        try:
            value = int(response)
        except ValueError:
            _console.print("[warning]Please enter a whole number.[/warning]")
            continue
        if minimum is not None and value < minimum:
            _console.print(f"[warning]Value must be at least {minimum}.[/warning]")
            continue
        return value


def _prompt_float(message: str, default: float, *, minimum: Optional[float] = None) -> float:
    while True:
        response = Prompt.ask(message, default=f"{default}", console=_console)
        try:
            value = float(response)
        except ValueError:
            _console.print("[warning]Please enter a numeric value.[/warning]")
            continue
        if minimum is not None and value < minimum:
            _console.print(f"[warning]Value must be at least {minimum}.[/warning]")
            continue
        return value


def _prompt_optional_int(message: str, default: Optional[int]) -> Optional[int]:
    default_label = "none" if default is None else str(default)
    response = Prompt.ask(message, default=default_label, console=_console)
    if response.strip().lower() in {"", "none", "null"}:
        return None
    try:
        return int(response)
    except ValueError:
        _console.print("[warning]Invalid integer; falling back to default.[/warning]")
        return default


def _prompt_choice(message: str, choices: Iterable[str], default: str) -> str:
    return Prompt.ask(
        message,
        choices=list(choices),
        default=default,
        console=_console,
        show_choices=True,
    )


def _prompt_sizes(message: str, default: Iterable[int]) -> list[int]:
    default_list = list(default)
    default_str = " ".join(str(value) for value in default_list)
    while True:
        response = Prompt.ask(message, default=default_str, console=_console)
        tokens = [token for token in response.replace(",", " ").split() if token]
        try:
            values = [int(token) for token in tokens] if tokens else default_list
        except ValueError:
            _console.print("[warning]Please provide whole numbers separated by spaces or commas.[/warning]")
            continue
        if any(value < 1 for value in values):
            _console.print("[warning]Every size must be at least 1.[/warning]")
            continue
        return values


def _summarise_configuration(data: dict[str, str]) -> None:
    table = Table(title="Configuration Summary", show_lines=False, expand=True)
    table.add_column("Setting", style="accent", no_wrap=True)
    table.add_column("Value", style="muted")
    for key, value in data.items():
        table.add_row(key, value)
    _console.print(table)


def show_history(history: RunHistory) -> None:
    """Print every recorded run and the best time of each backend."""
    table = Table(title="Run History", expand=True)
    table.add_column("#", style="muted", justify="right")
    table.add_column("Backend", style="accent")
    table.add_column("Paths", justify="right")
    table.add_column("Time (ms)", justify="right")
    for index, entry in enumerate(history.entries, start=1):
        table.add_row(str(index), entry.backend, str(entry.path_count), f"{entry.elapsed_ms:.4f}")
    _console.print(table)
    for backend in ("scalar", "parallel"):
        best = history.best(backend)
        if best is not None:
            _console.print(f"[success]Best {backend} time:[/success] {best.elapsed_ms:.4f} ms ({best.path_count} paths)")


def show_benchmark(report: BenchmarkReport) -> None:
    table = Table(title="Benchmark", expand=True)
    table.add_column("Paths", justify="right", style="accent")
    table.add_column("Scalar (ms)", justify="right")
    table.add_column("Parallel (ms)", justify="right")
    table.add_column("Speedup", justify="right", style="success")
    for record in report.records:
        table.add_row(
            str(record.path_count),
            f"{record.scalar_time_ms:.2f}",
            f"{record.parallel_time_ms:.2f}",
            f"x{record.speedup_ratio:.2f}",
        )
    _console.print(table)
    for failure in report.failures:
        _console.print(
            f"[warning]{failure.path_count} paths failed on {failure.backend}: {failure.error}[/warning]"
        )


def run_interactive_wizard(args: argparse.Namespace) -> argparse.Namespace:
    _console.print(Panel.fit("[accent bold]Monte Carlo Backend Benchmark[/accent bold]", border_style="accent"))
    _console.print(
        "Use the prompts below to tailor the simulation. Press [accent]<enter>[/accent] to accept defaults.",
        style="muted",
    )

    entry_price = _prompt_float("Entry price", args.entry_price, minimum=1e-9)
    average_return = _prompt_float("Average annual return", args.average_return)
    volatility = _prompt_float("Annual volatility", args.volatility, minimum=0.0)
    days = _prompt_int("Trading days", args.days, minimum=1)
    paths = _prompt_int("Monte Carlo paths", args.paths, minimum=1)
    seed = _prompt_optional_int("Random seed (or 'none')", args.seed)

    backend = _prompt_choice("Backend", ["scalar", "parallel", "both"], args.backend)
    device = _prompt_choice("Computation device", ["auto", "cpu", "cuda"], args.device)

    benchmark = Confirm.ask("Run the scalar vs parallel benchmark?", default=args.benchmark, console=_console)
    sizes = list(args.sizes)
    if benchmark:
        sizes = _prompt_sizes("Benchmark path counts", sizes)

    show = Confirm.ask("Show plot windows?", default=args.show, console=_console)
    save_plots = Confirm.ask("Save plots to disk?", default=not args.no_save, console=_console)
    if save_plots:
        save_dir = Path(Prompt.ask("Directory for saved plots", default=str(args.save_dir), console=_console)).expanduser()
        no_save = False
    else:
        save_dir = args.save_dir
        no_save = True

    summary_data = {
        "Entry price": f"{entry_price}",
        "Average return": f"{average_return}",
        "Volatility": f"{volatility}",
        "Days": f"{days}",
        "Paths": f"{paths}",
        "Backend": backend,
        "Device": device,
        "Benchmark": ", ".join(str(size) for size in sizes) if benchmark else "No",
        "Show window": "Yes" if show else "No",
        "Save plots": "Yes" if not no_save else "No",
    }
    _summarise_configuration(summary_data)

    return argparse.Namespace(
        **{
            **vars(args),
            "entry_price": entry_price,
            "average_return": average_return,
            "volatility": volatility,
            "days": days,
            "paths": paths,
            "seed": seed,
            "backend": backend,
            "device": device,
            "benchmark": benchmark,
            "sizes": sizes,
            "show": show,
            "save_dir": save_dir,
            "no_save": no_save,
            "interactive": False,
        }
    )


def run_interactive_session(
    args: argparse.Namespace,
    *,
    runner: Callable[..., dict[str, Any]],
) -> list[dict[str, Any]]:
    """Configure, run, show history; repeat until the user declines."""
    outcomes: list[dict[str, Any]] = []
    history = RunHistory()
    context = None
    settings = None
    while True:
        args = run_interactive_wizard(args)
        # Changed context settings or a fixed seed need a fresh context; the
        # history carries over.
        current = (
            args.device,
            args.seed,
            str(args.save_dir),
            getattr(args, "map_timeout", None),
            getattr(args, "max_buffer_mb", None),
        )
        if current != settings or args.seed is not None:
            context = None
            settings = current
        outcome = runner(args, context=context, history=history)
        context = outcome["context"]
        outcomes.append(outcome)
        show_history(history)
        if outcome["benchmark"] is not None:
            show_benchmark(outcome["benchmark"])
        if not Confirm.ask("Run again?", default=False, console=_console):
            return outcomes
