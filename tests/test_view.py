"""Tests for live view presentation helpers."""

import pytest
from rich.console import Console

from curabot.automation.state import ViewState
from curabot.automation.view import diagnostic_watchdog, latest_analysis, progress, render


def _project(step_count: int, summary=None):
    return {
        "id": "p1",
        "name": "Checkout flow",
        "status": "running",
        "analyses": [
            {
                "id": "a2",
                "summary": summary,
                "steps": [
                    {"stepNumber": i + 1, "action": "click", "stepStatus": "completed",
                     "analysis": {"stepDescription": f"Step {i + 1}"}}
                    for i in range(step_count)
                ],
            },
            {"id": "a1", "steps": []},
        ],
    }


class TestProgress:
    def test_latest_analysis_is_head(self):
        assert latest_analysis(_project(0))["id"] == "a2"

    def test_no_project(self):
        assert latest_analysis(None) is None
        assert progress(None) == 0.0

    def test_no_analyses(self):
        assert progress({"id": "p1", "analyses": []}) == 0.0

    def test_proportional(self):
        assert progress(_project(4)) == pytest.approx(0.4)

    def test_capped_at_one(self):
        assert progress(_project(14)) == 1.0


class TestRender:
    def test_renders_steps_and_summary(self):
        state = ViewState(project=_project(2, summary="Found the hat"), is_connected=True, loading=False)
        console = Console(record=True, width=120)
        console.print(render(state))
        text = console.export_text()

        assert "Checkout flow" in text
        assert "live" in text
        assert "20%" in text
        assert "Step 2" in text
        assert "Summary: Found the hat" in text

    def test_renders_error_before_project_loads(self):
        state = ViewState(error="Failed to update project data")
        console = Console(record=True, width=120)
        console.print(render(state))
        text = console.export_text()

        assert "offline" in text
        assert "Failed to update project data" in text


class TestDiagnosticWatchdog:
    @pytest.mark.asyncio
    async def test_fires_when_nothing_loaded(self, caplog):
        fired = await diagnostic_watchdog(lambda: ViewState(), delay=0)
        assert fired is True
        assert "No project data" in caplog.text

    @pytest.mark.asyncio
    async def test_quiet_once_connected(self):
        fired = await diagnostic_watchdog(lambda: ViewState(is_connected=True), delay=0)
        assert fired is False

    @pytest.mark.asyncio
    async def test_quiet_once_project_loaded(self):
        fired = await diagnostic_watchdog(lambda: ViewState(project={"id": "p1"}), delay=0)
        assert fired is False
