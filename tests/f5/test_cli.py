"""Tests for CLI commands (F5)."""

import json

from typer.testing import CliRunner

from speaking.cli import commands
from speaking.cli.commands import app
from speaking.core.identity import external_to_uuid
from speaking.db import feedback_repository
from speaking.db.seed import sample_test_id
from speaking.db.users_repository import ensure_user
from speaking.llm.client import LLMError

runner = CliRunner()

TEST_ID = sample_test_id(17, 1)


class TestInitDbCommand:
    def test_creates_database(self, workspace):
        db_path = workspace / "other" / "speaking.db"
        result = runner.invoke(app, ["init-db", "--db", str(db_path)])

        assert result.exit_code == 0
        assert db_path.exists()
        assert "Database ready" in result.output


class TestTestsCommand:
    def test_lists_tests(self, workspace):
        result = runner.invoke(app, ["tests"])
        assert result.exit_code == 0
        assert TEST_ID in result.output


class TestScoreCommand:
    """Tests for speak score."""

    def test_prints_bands(self, workspace, monkeypatch, mock_llm_client):
        monkeypatch.setattr(commands, "get_scoring_client", lambda: mock_llm_client)

        result = runner.invoke(
            app, ["score", "-q", "Where is your hometown?", "-p", "1", "-t", "A small town."]
        )

        assert result.exit_code == 0
        assert "Introduction and Interview" in result.output
        assert "7.0" in result.output

    def test_json_output(self, workspace, monkeypatch, mock_llm_client):
        monkeypatch.setattr(commands, "get_scoring_client", lambda: mock_llm_client)

        result = runner.invoke(app, ["score", "-q", "Q?", "-t", "Answer.", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output)["overall_band_score"] == 7.0

    def test_transcript_file(self, workspace, monkeypatch, mock_llm_client):
        monkeypatch.setattr(commands, "get_scoring_client", lambda: mock_llm_client)
        path = workspace / "answer.txt"
        path.write_text("From a file.", encoding="utf-8")

        result = runner.invoke(app, ["score", "-q", "Q?", "--transcript-file", str(path)])

        assert result.exit_code == 0
        assert "From a file." in mock_llm_client.simple_json.call_args.kwargs["user_message"]

    def test_requires_transcript(self, workspace):
        result = runner.invoke(app, ["score", "-q", "Q?"])
        assert result.exit_code == 1

    def test_scoring_failure(self, workspace, monkeypatch, mock_llm_client):
        mock_llm_client.simple_json.side_effect = LLMError("Connection refused")
        monkeypatch.setattr(commands, "get_scoring_client", lambda: mock_llm_client)

        result = runner.invoke(app, ["score", "-q", "Q?", "-t", "Answer."])

        assert result.exit_code == 1


class TestTranscribeCommand:
    def test_transcribes_file(self, workspace, monkeypatch, mock_llm_client):
        monkeypatch.setattr(commands, "get_transcription_client", lambda: mock_llm_client)
        audio = workspace / "answer.webm"
        audio.write_bytes(b"fake-audio")

        result = runner.invoke(app, ["transcribe", str(audio)])

        assert result.exit_code == 0
        assert "I grew up in a small town by the sea." in result.output


class TestResultsCommand:
    def test_shows_latest_feedback(self, workspace):
        user_id = external_to_uuid("user_2abc")
        ensure_user(user_id)
        feedback_repository.insert_test_feedback(
            user_id,
            TEST_ID,
            {"band_scores": {"overall": 6.5}, "strengths": "- Clear answers"},
        )

        result = runner.invoke(app, ["results", "user_2abc", TEST_ID])

        assert result.exit_code == 0
        assert "6.5" in result.output
        assert "Clear answers" in result.output

    def test_no_feedback(self, workspace):
        result = runner.invoke(app, ["results", "user_2abc", TEST_ID])
        assert result.exit_code == 1

    def test_unknown_test(self, workspace):
        result = runner.invoke(app, ["results", "user_2abc", "missing-test"])
        assert result.exit_code == 1
