"""Derived presentation values for a live project view.

Nothing here holds state of its own: every value is computed from the
latest ViewState.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from rich.console import Group
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from curabot.automation.state import ViewState

logger = logging.getLogger(__name__)

EXPECTED_STEPS = 10
WATCHDOG_SECONDS = 10.0

STATUS_STYLES = {
    "pending": "yellow",
    "running": "cyan",
    "completed": "green",
    "failed": "red",
    "needs_retry": "magenta",
}


def latest_analysis(project: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Analyses are stored newest first, so the latest is the head."""
    if not project:
        return None
    analyses = project.get("analyses") or []
    return analyses[0] if analyses else None


def progress(project: Optional[dict[str, Any]]) -> float:
    analysis = latest_analysis(project)
    if analysis is None:
        return 0.0
    return min(len(analysis.get("steps") or []) / EXPECTED_STEPS, 1.0)


async def diagnostic_watchdog(
    get_state: Callable[[], ViewState], delay: float = WATCHDOG_SECONDS
) -> bool:
    """Log once if no project has loaded and the view is still disconnected.

    Returns True when the diagnostic fired.
    """
    await asyncio.sleep(delay)
    state = get_state()
    if state.project is None and not state.is_connected:
        logger.warning(
            "No project data after %.0fs and not connected to the event stream (error=%s)",
            delay,
            state.error,
        )
        return True
    return False


def render(state: ViewState) -> Group:
    """Rich renderable: header line, progress bar and step table."""
    project = state.project or {}
    status = project.get("status", "unknown")
    link = "[green]live[/green]" if state.is_connected else "[dim]offline[/dim]"
    header = Text.from_markup(
        f"[bold]{project.get('name', project.get('id', '...'))}[/bold] "
        f"[{STATUS_STYLES.get(status, 'white')}]{status}[/] {link}"
    )

    pct = progress(project)
    bar = ProgressBar(total=1.0, completed=pct, width=40)

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right", width=3)
    table.add_column("Action", style="cyan")
    table.add_column("Status")
    table.add_column("Description", style="dim")

    analysis = latest_analysis(project) or {}
    for step in analysis.get("steps") or []:
        step_status = step.get("stepStatus") or ""
        description = (step.get("analysis") or {}).get("stepDescription") or ""
        table.add_row(
            str(step.get("stepNumber", "")),
            step.get("action") or "",
            f"[{STATUS_STYLES.get(step_status, 'white')}]{step_status}[/]",
            description,
        )

    parts = [header, bar, Text(f"{pct:.0%}")]
    if analysis.get("summary"):
        parts.append(Text(f"Summary: {analysis['summary']}", style="green"))
    if state.error:
        parts.append(Text(state.error, style="red"))
    parts.append(table)
    return Group(*parts)
