"""
Tests for the SynapseIndex CLI.

These tests drive the command-line interface through subprocess calls.
"""

import json
import os
import sys
import shutil
import tempfile
import subprocess
from pathlib import Path

import pytest

from synapse_index.cli import _parse_metadata, build_parser, format_result

REPO_ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture
def temp_project():
    """Create a temporary storage directory for testing."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def cli_env(temp_project):
    """Environment for CLI commands pointing to temp storage."""
    env = os.environ.copy()
    env['SYNAPSE_STORAGE_PATH'] = temp_project
    env['SYNAPSE_LOG_LEVEL'] = 'WARNING'
    return env


def run_cli(*args, env=None):
    """Run CLI command and return result."""
    cmd = [sys.executable, "-m", "synapse_index"]
    cmd.extend(args)
    return subprocess.run(cmd, capture_output=True, text=True, env=env, cwd=str(REPO_ROOT))


class TestCLIHelp:
    """Tests for CLI help and basic functionality."""

    def test_help_displays(self):
        result = run_cli("--help")
        assert result.returncode == 0
        assert "SynapseIndex CLI" in result.stdout

    def test_no_command_shows_help(self, cli_env):
        result = run_cli(env=cli_env)
        assert result.returncode == 1
        assert "usage:" in result.stdout.lower()


class TestIndexAndSearch:

    def test_index_then_search_json(self, cli_env):
        result = run_cli("--json", "index", "--source", "chat", "--type", "conversation",
                         "The quick brown fox jumps over the lazy dog", env=cli_env)
        assert result.returncode == 0
        indexed = json.loads(result.stdout)
        assert indexed["status"] == "indexed"
        chunk_id = indexed["chunks"][0]["id"]
        assert chunk_id.startswith("chat_conversation_")

        result = run_cli("--json", "search", "quick fox", env=cli_env)
        assert result.returncode == 0
        results = json.loads(result.stdout)
        assert [r["id"] for r in results] == [chunk_id]
        assert 0 < results[0]["relevance"] <= 100

    def test_index_file_records_filename(self, cli_env, temp_project):
        note = Path(temp_project) / "notes.md"
        note.write_text("Release checklist covers packaging, signing and upload steps.", encoding="utf-8")

        result = run_cli("--json", "index", "--file", str(note), "--meta", "author=sam", env=cli_env)
        assert result.returncode == 0
        chunk = json.loads(result.stdout)["chunks"][0]
        assert chunk["metadata"]["filename"] == "notes.md"
        assert chunk["metadata"]["author"] == "sam"
        assert chunk["source"] == "zenith"

    def test_text_output(self, cli_env):
        run_cli("index", "Deployment runbook for the staging cluster", env=cli_env)
        result = run_cli("search", "staging cluster", env=cli_env)

        assert result.returncode == 0
        assert "1. [" in result.stdout
        assert "Deployment runbook" in result.stdout

    def test_empty_content_skipped(self, cli_env):
        result = run_cli("index", "   ", env=cli_env)
        assert result.returncode == 0
        assert "Nothing to index" in result.stdout

    def test_invalid_limit_exits_with_error(self, cli_env):
        result = run_cli("search", "fox", "--limit", "0", env=cli_env)
        assert result.returncode == 2
        assert "Error" in result.stderr


class TestMaintenanceCommands:

    def test_stats_json(self, cli_env):
        run_cli("index", "The quick brown fox jumps over the lazy dog", env=cli_env)
        result = run_cli("--json", "stats", env=cli_env)

        assert result.returncode == 0
        stats = json.loads(result.stdout)
        assert stats["total_chunks"] == 1
        assert stats["sources"] == {"zenith": 1}

    def test_click_and_delete(self, cli_env):
        indexed = json.loads(run_cli("--json", "index", "Quarterly budget review notes", env=cli_env).stdout)
        chunk_id = indexed["chunks"][0]["id"]

        click = json.loads(run_cli("--json", "click", chunk_id, env=cli_env).stdout)
        assert click == {"chunk_id": chunk_id, "recorded": True}

        deleted = json.loads(run_cli("--json", "delete", chunk_id, env=cli_env).stdout)
        assert deleted["status"] == "deleted"

        stats = json.loads(run_cli("--json", "stats", env=cli_env).stdout)
        assert stats["total_chunks"] == 0

    def test_clear(self, cli_env):
        run_cli("index", "Quarterly budget review notes", env=cli_env)
        result = run_cli("clear", env=cli_env)
        assert result.returncode == 0
        assert "cleared" in result.stdout

        stats = json.loads(run_cli("--json", "stats", env=cli_env).stdout)
        assert stats["total_chunks"] == 0

    def test_sqlite_backend(self, cli_env):
        result = run_cli("--backend", "sqlite", "--json", "index", "Sqlite backed note", env=cli_env)
        assert result.returncode == 0
        assert json.loads(result.stdout)["persisted"] is True


class TestHelpers:

    def test_parse_metadata(self):
        assert _parse_metadata(["a=1", "b=x=y"]) == {"a": "1", "b": "x=y"}
        assert _parse_metadata(None) == {}

    def test_parse_metadata_rejects_bare_key(self):
        with pytest.raises(ValueError):
            _parse_metadata(["oops"])

    def test_parser_defaults(self):
        args = build_parser().parse_args(["index", "hello"])
        assert args.source == "zenith"
        assert args.type == "markdown"
        assert args.json is False

    def test_format_not_found_delete(self):
        text = format_result("delete", {"status": "not_found", "chunk_id": "x", "removed_links": 0})
        assert text == "No chunk with id x"

    def test_format_empty_search(self):
        assert format_result("search", []) == "No results"
