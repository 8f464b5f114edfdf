"""
Tests for utils.console module - dual-mode CLI output utilities.

This module tests console output functions to ensure:
- OutputMode manages format/quiet state and the JSON buffer
- Output functions (success, error, warning, info) work in all modes
- Context managers (spinner, create_progress_bar) degrade to no-ops
- Run display functions adapt to text, json and quiet modes
- No ANSI codes in agent/quiet modes
"""

import json
import re
from unittest.mock import patch

import pytest

from geo_tracker.report.presenter import CompetitorStat, SourceDomainStat
from geo_tracker.utils.console import (
    NoOpProgress,
    OutputMode,
    create_progress_bar,
    error,
    info,
    output_mode,
    print_banner,
    print_competitor_table,
    print_final_summary,
    print_results_table,
    print_run_summary,
    print_source_table,
    spinner,
    success,
    warning,
)

ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")


@pytest.fixture
def competitors():
    return [
        CompetitorStat(name="Zenith", count=3, visibility_pct=30.0),
        CompetitorStat(name="Orbit", count=1, visibility_pct=10.0),
    ]


@pytest.fixture
def sources():
    return [SourceDomainStat(domain="example.com", count=2, sample_urls=("https://example.com/a",))]


# ========================================================================
# OutputMode
# ========================================================================


class TestOutputMode:
    """Test OutputMode state handling."""

    def test_default_initialization(self):
        mode = OutputMode()

        assert mode.format == "text"
        assert mode.quiet is False
        assert mode.is_human() is True

    def test_invalid_format_raises_error(self):
        with pytest.raises(ValueError, match="Invalid format: yaml"):
            OutputMode(format_type="yaml")

    def test_flush_json_outputs_and_clears_buffer(self, capsys):
        mode = OutputMode(format_type="json")
        mode.add_json("status", "success")
        mode.add_json("count", 5)

        mode.flush_json()

        assert json.loads(capsys.readouterr().out) == {"status": "success", "count": 5}
        assert mode._json_buffer == {}

    def test_flush_json_no_op_in_human_mode(self, capsys):
        mode = OutputMode()
        mode.add_json("status", "success")

        mode.flush_json()

        assert capsys.readouterr().out == ""

    def test_flush_json_serializes_unknown_types(self, capsys, tmp_path):
        mode = OutputMode(format_type="json")
        mode.add_json("path", tmp_path)

        mode.flush_json()

        assert json.loads(capsys.readouterr().out)["path"] == str(tmp_path)

    def test_reset_switches_mode_and_clears_buffer(self):
        mode = OutputMode(format_type="json")
        mode.add_json("stale", True)

        mode.reset("text", True)

        assert mode.format == "text"
        assert mode.quiet is True
        assert mode._json_buffer == {}

    def test_reset_rejects_invalid_format(self):
        with pytest.raises(ValueError):
            OutputMode().reset("xml")


# ========================================================================
# Messages
# ========================================================================


class TestMessages:
    """Test success(), error(), warning() and info()."""

    @patch("geo_tracker.utils.console.console")
    def test_success_human_mode(self, mock_console, reset_output_mode):
        success("Backend is healthy")

        printed = mock_console.print.call_args[0][0]
        assert "Backend is healthy" in printed
        assert "✓" in printed

    def test_success_agent_mode_buffers(self, reset_output_mode):
        output_mode.format = "json"

        success("Run started")

        assert output_mode._json_buffer == {"status": "success", "message": "Run started"}

    @patch("geo_tracker.utils.console.console")
    def test_success_quiet_mode_silent(self, mock_console, reset_output_mode):
        output_mode.quiet = True

        success("Run started")

        mock_console.print.assert_not_called()

    @patch("geo_tracker.utils.console.console_err")
    def test_error_quiet_mode_still_printed(self, mock_console_err, reset_output_mode):
        output_mode.quiet = True

        error("Backend unavailable")

        assert "Backend unavailable" in mock_console_err.print.call_args[0][0]

    def test_error_agent_mode_buffers(self, reset_output_mode):
        output_mode.format = "json"

        error("Backend unavailable")

        assert output_mode._json_buffer["status"] == "error"
        assert output_mode._json_buffer["error"] == "Backend unavailable"

    def test_warning_agent_mode_buffers(self, reset_output_mode):
        output_mode.format = "json"

        warning("Results unavailable")

        assert output_mode._json_buffer["warning"] == "Results unavailable"

    @patch("geo_tracker.utils.console.console")
    def test_info_agent_mode_silent(self, mock_console, reset_output_mode):
        output_mode.format = "json"

        info("hello")

        mock_console.print.assert_not_called()
        assert output_mode._json_buffer == {}


# ========================================================================
# Context managers
# ========================================================================


class TestContextManagers:
    """Test spinner() and create_progress_bar()."""

    @patch("geo_tracker.utils.console.console")
    def test_spinner_human_mode_shows_status(self, mock_console, reset_output_mode):
        with spinner("Checking backend..."):
            pass

        mock_console.status.assert_called_once()

    def test_spinner_agent_mode_yields_none(self, reset_output_mode):
        output_mode.format = "json"

        with spinner("Checking backend...") as status:
            assert status is None

    def test_progress_bar_quiet_mode_returns_noop(self, reset_output_mode):
        output_mode.quiet = True

        assert isinstance(create_progress_bar(), NoOpProgress)

    def test_noop_progress_interface(self):
        with NoOpProgress() as progress:
            task = progress.add_task("Running queries", total=10)
            progress.update(task, completed=5, total=10)
            progress.advance(task)

        assert task == 0


# ========================================================================
# Run display functions
# ========================================================================


class TestRunSummary:
    """Test print_run_summary()."""

    def test_agent_mode_buffers_summary(self, run_results, reset_output_mode):
        output_mode.format = "json"

        print_run_summary(run_results.summary)

        summary = output_mode._json_buffer["summary"]
        assert summary["brand_name"] == "Acme Vitamins"
        assert summary["overall_visibility"] == 33.3

    def test_quiet_mode_tab_separated(self, run_results, capsys, reset_output_mode):
        output_mode.quiet = True

        print_run_summary(run_results.summary)

        assert capsys.readouterr().out == "33.3\t0.400\t2\t3\n"

    @patch("geo_tracker.utils.console.console")
    def test_human_mode_prints_panel_and_provider_table(
        self, mock_console, run_results, reset_output_mode
    ):
        print_run_summary(run_results.summary)

        assert mock_console.print.call_count == 2


class TestTables:
    """Test competitor, source and results tables."""

    def test_competitors_agent_mode(self, competitors, reset_output_mode):
        output_mode.format = "json"

        print_competitor_table(competitors)

        assert output_mode._json_buffer["competitors"][0] == {
            "name": "Zenith",
            "count": 3,
            "visibility_pct": 30.0,
        }

    def test_competitors_quiet_mode(self, competitors, capsys, reset_output_mode):
        output_mode.quiet = True

        print_competitor_table(competitors)

        assert capsys.readouterr().out == "Zenith\t3\t30.0\nOrbit\t1\t10.0\n"

    @patch("geo_tracker.utils.console.console")
    def test_competitors_empty_human_mode(self, mock_console, reset_output_mode):
        print_competitor_table([])

        assert "No competitor brands detected" in mock_console.print.call_args[0][0]

    def test_sources_agent_mode(self, sources, reset_output_mode):
        output_mode.format = "json"

        print_source_table(sources)

        assert output_mode._json_buffer["sources"] == [
            {"domain": "example.com", "count": 2, "sample_urls": ["https://example.com/a"]}
        ]

    def test_sources_quiet_mode(self, sources, capsys, reset_output_mode):
        output_mode.quiet = True

        print_source_table(sources)

        assert capsys.readouterr().out == "example.com\t2\n"

    def test_results_agent_mode(self, run_results, reset_output_mode):
        output_mode.format = "json"

        print_results_table(run_results.results)

        buffered = output_mode._json_buffer["results"]
        assert len(buffered) == 3
        assert buffered[0]["other_brands_detected"] == ["Zenith", "Orbit"]

    def test_results_quiet_mode(self, make_result, capsys, reset_output_mode):
        output_mode.quiet = True
        result = make_result(brand_mentioned=True).model_copy(update={"prompt_id": "q_1"})

        print_results_table([result])

        assert capsys.readouterr().out == "q_1\topenai\t1\tWhich vitamin brand is best?\n"

    @patch("geo_tracker.utils.console.console")
    def test_results_human_mode_prints_table(self, mock_console, run_results, reset_output_mode):
        print_results_table(run_results.results)

        table = mock_console.print.call_args[0][0]
        assert table.title == "Detailed Results (3)"
        assert table.row_count == 3


class TestBanner:
    @patch("geo_tracker.utils.console.console")
    def test_banner_human_mode(self, mock_console, reset_output_mode):
        print_banner("0.1.0")

        assert "GEO Tracker v0.1.0" in mock_console.print.call_args[0][0]

    @patch("geo_tracker.utils.console.console")
    def test_banner_agent_mode_silent(self, mock_console, reset_output_mode):
        output_mode.format = "json"

        print_banner("0.1.0")

        mock_console.print.assert_not_called()


class TestFinalSummary:
    """Test print_final_summary()."""

    def test_agent_mode_buffers_and_flushes(self, capsys, reset_output_mode):
        output_mode.format = "json"
        output_mode.add_json("competitors", [])

        print_final_summary("job-1", "completed", results_count=3, report_path="r.html")

        data = json.loads(capsys.readouterr().out)
        assert data == {
            "competitors": [],
            "job_id": "job-1",
            "state": "completed",
            "results_count": 3,
            "report_path": "r.html",
        }
        assert output_mode._json_buffer == {}

    def test_agent_mode_no_ansi_codes(self, capsys, reset_output_mode):
        output_mode.format = "json"

        print_final_summary("job-1", "failed", message="Run failed: quota")

        assert not ANSI_ESCAPE.search(capsys.readouterr().out)

    def test_quiet_mode_tab_separated(self, capsys, reset_output_mode):
        output_mode.quiet = True

        print_final_summary("job-1", "completed", results_count=12)
        print_final_summary("job-2", "completed")

        assert capsys.readouterr().out == "job-1\tcompleted\t12\njob-2\tcompleted\t\n"

    @pytest.mark.parametrize(
        "state,results_count,border",
        [
            ("completed", 3, "green"),
            ("completed", None, "yellow"),
            ("failed", None, "red"),
            ("cancelled", None, "red"),
        ],
    )
    @patch("geo_tracker.utils.console.console")
    def test_human_mode_border_colors(
        self, mock_console, state, results_count, border, reset_output_mode
    ):
        print_final_summary("job-1", state, results_count=results_count)

        panel = mock_console.print.call_args[0][0]
        assert panel.border_style == border
