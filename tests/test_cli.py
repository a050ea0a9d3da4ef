"""
Command line interface (sessguard/cli)
"""

import os
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from sessguard.cli.__main__ import cli
from sessguard.crypto import RecordEncryptor
from sessguard.faults import SessionStoreUnavailableFault
from sessguard.store import FileStore

from conftest import OTHER_SESSION_ID, SESSION_ID, make_record


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def store_dir(tmp_path, monkeypatch):
    for key in list(os.environ):
        if key.startswith("SESSGUARD_"):
            monkeypatch.delenv(key)
    return tmp_path / "sessions"


@pytest.fixture
def populated(store_dir):
    store = FileStore(store_dir)
    now = datetime.now(timezone.utc)
    store.store(SESSION_ID, make_record(values={"user": "ada"}, requests_counter=7, last_trace=now))
    store.store(OTHER_SESSION_ID, make_record(last_trace=now - timedelta(days=3)))
    return store


class TestList:

    def test_lists_sessions(self, runner, store_dir, populated):
        result = runner.invoke(cli, ["--dir", str(store_dir), "list"])
        assert result.exit_code == 0, result.output
        assert SESSION_ID[:20] in result.output
        assert OTHER_SESSION_ID[:20] in result.output
        assert "7" in result.output

    def test_empty_store(self, runner, store_dir):
        result = runner.invoke(cli, ["--dir", str(store_dir), "list"])
        assert result.exit_code == 0
        assert "No sessions stored" in result.output

    def test_reports_unreadable_files(self, runner, store_dir, populated):
        (store_dir / f"{'sess_' + 'C' * 43}.sess").write_bytes(b"garbage")
        result = runner.invoke(cli, ["--dir", str(store_dir), "list"])
        assert result.exit_code == 0
        assert "1 session file(s) could not be read" in result.output


class TestInspect:

    def test_shows_metadata_and_values(self, runner, store_dir, populated):
        result = runner.invoke(cli, ["--dir", str(store_dir), "inspect", SESSION_ID])
        assert result.exit_code == 0, result.output
        assert "requests" in result.output
        assert '"user": "ada"' in result.output

    def test_missing_session(self, runner, store_dir):
        result = runner.invoke(cli, ["--dir", str(store_dir), "inspect", SESSION_ID])
        assert result.exit_code == 1
        assert "Session not found" in result.output

    def test_invalid_id(self, runner, store_dir):
        result = runner.invoke(cli, ["--dir", str(store_dir), "inspect", "../etc/passwd"])
        assert result.exit_code == 1
        assert "SESSION_INVALID" in result.output


class TestDelete:

    def test_deletes(self, runner, store_dir, populated):
        result = runner.invoke(cli, ["--dir", str(store_dir), "delete", SESSION_ID])
        assert result.exit_code == 0
        assert populated.fetch(SESSION_ID) is None


class TestPurge:

    def test_removes_idle_sessions(self, runner, store_dir, populated):
        result = runner.invoke(cli, ["--dir", str(store_dir), "purge", "--idle-ttl", "3600"])
        assert result.exit_code == 0, result.output
        assert "Removed 1 idle session(s)" in result.output
        assert list(populated.ids()) == [SESSION_ID]

    def test_ignores_foreign_files(self, runner, store_dir, populated):
        (store_dir / "notes.sess").write_text("not a session")

        result = runner.invoke(cli, ["--dir", str(store_dir), "purge", "--idle-ttl", "60"])

        assert result.exit_code == 0, result.output
        assert "Removed 1 idle session(s)" in result.output
        assert (store_dir / "notes.sess").exists()

    def test_store_failure_exits_cleanly(self, runner, store_dir, populated):
        with patch.object(
            FileStore, "cleanup_expired", side_effect=SessionStoreUnavailableFault("file", "denied"),
        ):
            result = runner.invoke(cli, ["--dir", str(store_dir), "purge", "--idle-ttl", "60"])

        assert result.exit_code == 1
        assert not isinstance(result.exception, SessionStoreUnavailableFault)
        assert "SESSION_STORE_UNAVAILABLE" in result.output

    def test_requires_positive_ttl(self, runner, store_dir):
        result = runner.invoke(cli, ["--dir", str(store_dir), "purge", "--idle-ttl", "0"])
        assert result.exit_code == 2


class TestEncryptedStore:

    def test_key_option(self, runner, store_dir):
        key = RecordEncryptor.generate_key()
        FileStore(store_dir, encryptor=RecordEncryptor(key)).store(SESSION_ID, make_record(values={"x": 1}))

        result = runner.invoke(cli, ["--dir", str(store_dir), "--key", key, "inspect", SESSION_ID])
        assert result.exit_code == 0, result.output
        assert '"x": 1' in result.output

        result = runner.invoke(cli, ["--dir", str(store_dir), "inspect", SESSION_ID])
        assert result.exit_code == 1

    def test_invalid_key(self, runner, store_dir):
        result = runner.invoke(cli, ["--dir", str(store_dir), "--key", "nope", "list"])
        assert result.exit_code == 2
        assert "Invalid encryption key" in result.output


class TestConfigOptions:

    def test_config_file_sets_directory(self, runner, store_dir, populated, tmp_path):
        config = tmp_path / "sessguard.yaml"
        config.write_text(f"session:\n  store_dir: {store_dir}\n")

        result = runner.invoke(cli, ["--config", str(config), "list"])

        assert result.exit_code == 0, result.output
        assert SESSION_ID[:20] in result.output

    def test_invalid_config(self, runner, tmp_path):
        config = tmp_path / "sessguard.yaml"
        config.write_text("idle_tll: 5\n")

        result = runner.invoke(cli, ["--config", str(config), "list"])

        assert result.exit_code == 2
        assert "Invalid configuration" in result.output


class TestKeygen:

    def test_generates_usable_key(self, runner):
        result = runner.invoke(cli, ["keygen"])
        assert result.exit_code == 0
        RecordEncryptor(result.output.strip())

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output
