"""Tests for the admin CLI."""

import logging

import pytest

from togglekit.cli import main
from togglekit.core.context import Context
from togglekit.core.feature_store.database import DatabaseFeatureStore
from togglekit.core.snapshots import DatabaseSnapshotRepository
from togglekit.core.database import SQLiteDatabase


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    """Keep log lines out of captured stdout and restore root handlers."""
    monkeypatch.setenv("TOGGLEKIT_LOG_LEVEL", "WARNING")
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    try:
        yield
    finally:
        root.handlers = handlers
        root.setLevel(level)


@pytest.fixture
def durable_env(monkeypatch, db_path):
    monkeypatch.setenv("TOGGLEKIT_STORE_DRIVER", "database")
    monkeypatch.setenv("TOGGLEKIT_SNAPSHOT_DRIVER", "database")
    monkeypatch.setenv("TOGGLEKIT_DATABASE_PATH", str(db_path))
    return db_path


class TestCli:
    """Tests for togglekit CLI commands."""

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "prune-snapshots" in capsys.readouterr().out

    def test_list_stored(self, durable_env, capsys):
        store = DatabaseFeatureStore.from_path(str(durable_env))
        store.set("beta", Context("user", 1), True)
        store.set("alpha", Context("user", 2), False)

        assert main(["list-stored"]) == 0
        assert capsys.readouterr().out.split() == ["alpha", "beta"]

    def test_purge_named(self, durable_env, capsys):
        store = DatabaseFeatureStore.from_path(str(durable_env))
        store.set("a", Context("user", 1), True)
        store.set("b", Context("user", 1), True)

        assert main(["purge", "a"]) == 0
        assert store.list_stored() == ["b"]
        assert "Purged a" in capsys.readouterr().out

    def test_purge_all(self, durable_env):
        store = DatabaseFeatureStore.from_path(str(durable_env))
        store.set("a", Context("user", 1), True)
        assert main(["purge"]) == 0
        assert store.list_stored() == []

    def test_prune_expired(self, durable_env, capsys):
        store = DatabaseFeatureStore.from_path(str(durable_env))
        store.set("a", Context("user", 1), True, expires_at=1.0)
        store.set("b", Context("user", 1), True)

        assert main(["prune-expired"]) == 0
        assert store.list_stored() == ["b"]
        assert "Pruned 1 expired" in capsys.readouterr().out

    def test_prune_expired_needs_database(self, monkeypatch, capsys):
        monkeypatch.setenv("TOGGLEKIT_STORE_DRIVER", "memory")
        assert main(["prune-expired"]) == 2
        assert "database store" in capsys.readouterr().err

    def test_prune_snapshots(self, durable_env, capsys):
        store = DatabaseFeatureStore.from_path(str(durable_env))
        repo = DatabaseSnapshotRepository(store, SQLiteDatabase(durable_env))
        repo.create(Context("user", 1), {"a": True})

        assert main(["prune-snapshots", "--days", "30"]) == 0
        assert "Pruned 0 snapshots older than 30 days" in capsys.readouterr().out

    def test_unknown_driver_exit_code(self, monkeypatch, capsys):
        monkeypatch.setenv("TOGGLEKIT_STORE_DRIVER", "etcd")
        assert main(["list-stored"]) == 2
        assert "Unsupported store driver" in capsys.readouterr().err
