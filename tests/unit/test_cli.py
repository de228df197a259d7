"""Unit tests for the command-line interface."""

from datetime import datetime, timezone

import pytest
import structlog

from mailsift.cli import build_runtime, main
from mailsift.config import get_settings
from mailsift.extraction import reprocess
from mailsift.models import Message


@pytest.fixture(autouse=True)
def _isolated_cli(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.setenv("MAILSIFT_DB_PATH", str(tmp_path / "cli.sqlite3"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    structlog.reset_defaults()


@pytest.fixture
def db_args(tmp_path) -> list[str]:
    return ["--db", str(tmp_path / "cli.sqlite3")]


class TestCli:
    """Test suite for the mailsift CLI."""

    def test_auth_add_and_list(self, db_args, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["auth", "add", "--client-id", "cid-1", "--client-secret", "s", *db_args]) == 0
        assert main(["auth", "list", *db_args]) == 0

        out = capsys.readouterr().out
        assert "Stored credential 1 (active)" in out
        assert "cid-1" in out
        assert "unauthorized" in out

    def test_activate_unknown_credential(self, db_args) -> None:
        assert main(["auth", "activate", "42", *db_args]) == 1

    def test_auth_url_requires_active_credential(self, db_args) -> None:
        assert main(["auth", "url", *db_args]) == 1

    def test_search_and_show(self, db_args, settings, forwarded_body, capsys: pytest.CaptureFixture[str]) -> None:
        runtime = build_runtime(settings, settings.db_path.parent / "cli.sqlite3")
        runtime.corpus.save_all(
            [
                reprocess(
                    Message(
                        id="msg-fwd",
                        from_="Carol <carol@example.com>",
                        to="team@mailbox.test",
                        subject="Fwd: Contract draft",
                        date=datetime(2024, 5, 6, 10, 0, tzinfo=timezone.utc),
                        body=forwarded_body,
                    )
                )
            ]
        )

        assert main(["search", "alice@example.com", *db_args]) == 0
        assert main(["show", "msg-fwd", *db_args]) == 0

        out = capsys.readouterr().out
        assert "msg-fwd\tUNREAD\tFWD" in out
        assert "Forwarded #1 (header_block)" in out
        assert "Forwarded #2" not in out
        assert runtime.corpus.get("msg-fwd").is_read is True

    def test_show_unknown_message(self, db_args) -> None:
        assert main(["show", "missing", *db_args]) == 1

    def test_stats_on_empty_corpus(self, db_args, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["stats", *db_args]) == 0

        assert "Total messages: 0" in capsys.readouterr().out

    def test_clear_requires_confirmation(self, db_args) -> None:
        assert main(["clear", *db_args]) == 1
        assert main(["clear", "--yes", *db_args]) == 0

    def test_sync_once_without_credential(self, db_args, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["sync", "once", *db_args]) == 1

        assert "no_credential" in capsys.readouterr().out
