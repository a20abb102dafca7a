"""
Tests for the CLI interface.
"""
import sqlite3
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from narratoflow.cli.main import EXIT_CODE_FAIL, EXIT_CODE_PASS, app, build_governor
from narratoflow.config.loader import load_config
from narratoflow.core.errors import QuotaExceededError, RateLimitedError, StoryGenerationError
from narratoflow.sdk.story_client import StoryResult
from narratoflow.storage.models import TokenUsageResult

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path):
    """Write a config pointing the database into tmp_path."""
    def _write(**monitoring):
        monitoring.setdefault("storage", {"db_path": str(tmp_path / "usage.db")})
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"monitoring": monitoring}))
        return str(path)
    return _write


@pytest.fixture
def csv_file(tmp_path):
    path = tmp_path / "sales.csv"
    path.write_text("region,revenue\nNorth,1200\nSouth,950\n")
    return str(path)


@pytest.fixture
def mock_generator():
    """Mock the StoryGenerator used by the generate command."""
    with patch('narratoflow.cli.main.StoryGenerator') as mock:
        yield mock.return_value


def story(text="The North led the way.", warning=False, percentage=10.0):
    return StoryResult(
        text=text,
        total_tokens=100,
        usage=TokenUsageResult(warning_triggered=warning, usage_percentage=percentage),
    )


class TestCLI:
    """Test CLI commands."""

    def test_no_command(self):
        result = runner.invoke(app, [])

        assert result.exit_code == EXIT_CODE_PASS
        assert "NarratoFlow" in result.output

    def test_init(self, config_file, tmp_path):
        result = runner.invoke(app, ["init", "--config", config_file()])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Database initialized successfully" in result.output
        assert (tmp_path / "usage.db").exists()

    def test_invalid_config(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.dump({"monitoring": {"quota_limit": -1}}))

        result = runner.invoke(app, ["usage", "--config", str(path)])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid configuration" in result.output

    def test_generate_prints_story(self, config_file, csv_file, mock_generator):
        mock_generator.generate.return_value = story()

        result = runner.invoke(app, ["generate", csv_file, "--config", config_file()])

        assert result.exit_code == EXIT_CODE_PASS
        assert "The North led the way." in result.output
        args, _ = mock_generator.generate.call_args
        assert args[0].row_count == 2
        assert args[1] == "Professional Theme"

    def test_generate_with_theme_and_output(self, config_file, csv_file, mock_generator, tmp_path):
        mock_generator.generate.return_value = story()
        output = tmp_path / "story.txt"

        result = runner.invoke(app, [
            "generate", csv_file,
            "--theme", "Playful Theme",
            "--output", str(output),
            "--config", config_file(),
        ])

        assert result.exit_code == EXIT_CODE_PASS
        assert output.read_text(encoding="utf-8") == "The North led the way."
        args, _ = mock_generator.generate.call_args
        assert args[1] == "Playful Theme"

    def test_generate_pdf_output(self, config_file, csv_file, mock_generator, tmp_path):
        mock_generator.generate.return_value = story()
        output = tmp_path / "story.pdf"

        result = runner.invoke(app, [
            "generate", csv_file, "--output", str(output), "--config", config_file(),
        ])

        assert result.exit_code == EXIT_CODE_PASS
        assert output.read_bytes().startswith(b"%PDF")
        assert "Story written to" in result.output

    def test_generate_output_write_failure(self, config_file, csv_file, mock_generator, tmp_path):
        mock_generator.generate.return_value = story()
        output = tmp_path / "missing" / "story.txt"

        result = runner.invoke(app, [
            "generate", csv_file, "--output", str(output), "--config", config_file(),
        ])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Failed to write story" in result.output

    def test_generate_storage_failure(self, config_file, csv_file):
        with patch("narratoflow.cli.main.build_governor",
                   side_effect=sqlite3.OperationalError("unable to open database file")):
            result = runner.invoke(app, ["generate", csv_file, "--config", config_file()])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Failed to generate story" in result.output
        assert "unable to open database file" in result.output

    def test_generate_quota_warning(self, config_file, csv_file, mock_generator):
        mock_generator.generate.return_value = story(warning=True, percentage=85.0)

        result = runner.invoke(app, ["generate", csv_file, "--config", config_file()])

        assert result.exit_code == EXIT_CODE_PASS
        assert "API usage is at 85.0% of monthly quota" in result.output

    @pytest.mark.parametrize("error,expected", [
        (RateLimitedError("Rate limit exceeded. Please wait 12 seconds.", 12000),
         "Please wait 12 seconds"),
        (QuotaExceededError("Monthly quota exceeded. Please upgrade your plan."),
         "Please upgrade your plan"),
        (StoryGenerationError("Story generation failed: boom"),
         "Story generation failed: boom"),
    ])
    def test_generate_failures(self, config_file, csv_file, mock_generator, error, expected):
        mock_generator.generate.side_effect = error

        result = runner.invoke(app, ["generate", csv_file, "--config", config_file()])

        assert result.exit_code == EXIT_CODE_FAIL
        assert expected in result.output

    def test_generate_bad_csv(self, config_file, tmp_path, mock_generator):
        path = tmp_path / "notes.txt"
        path.write_text("hello")

        result = runner.invoke(app, ["generate", str(path), "--config", config_file()])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Please upload a valid CSV file" in result.output
        mock_generator.generate.assert_not_called()

    def test_usage_shows_statistics(self, config_file):
        path = config_file(quota_limit=1000)
        build_governor(load_config(path)).usage_store.record_token_usage(250)

        result = runner.invoke(app, ["usage", "--config", path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "API Usage Statistics" in result.output
        assert "25.0%" in result.output
        assert "750" in result.output

    def test_usage_shows_errors(self, config_file):
        path = config_file()
        store = build_governor(load_config(path)).usage_store
        store.record_outcome(False, Exception("Network Error"))
        store.log_error(Exception("Network Error"))

        result = runner.invoke(app, ["usage", "--config", path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Errors by Category" in result.output
        assert "Recent Errors" in result.output
        assert "Network Error" in result.output

    def test_usage_disabled(self, config_file):
        result = runner.invoke(app, ["usage", "--config", config_file(enabled=False)])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Usage monitoring is disabled" in result.output

    def test_reset(self, config_file):
        path = config_file()
        store = build_governor(load_config(path)).usage_store
        store.record_token_usage(500)

        result = runner.invoke(app, ["reset", "--config", path])

        assert result.exit_code == EXIT_CODE_PASS
        assert store.load().token_usage == 0
