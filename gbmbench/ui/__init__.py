"""User interface helpers for the benchmark CLI."""

from .interactive import run_interactive_session, run_interactive_wizard, show_benchmark, show_history

__all__ = ["run_interactive_session", "run_interactive_wizard", "show_benchmark", "show_history"]
