"""Tests for the release and startup scripts."""
import pytest
from sqlalchemy import create_engine, inspect

from app.crm.models import User
from scripts._db_utils import script_session
from scripts.release import release_database_url, run_release
from scripts.start import DEFAULT_PORT, gunicorn_argv, resolve_port


@pytest.mark.parametrize("raw,expected", [(None, DEFAULT_PORT), ("", DEFAULT_PORT), (" 5000 ", 5000), ("65535", 65535)])
def test_resolve_port(raw, expected):
    assert resolve_port(raw) == expected


@pytest.mark.parametrize("raw", ["0", "65536", "-1", "http"])
def test_resolve_port_rejects_bad_values(raw):
    with pytest.raises(ValueError):
        resolve_port(raw)


def test_gunicorn_argv():
    argv = gunicorn_argv(9000, workers=4, timeout=30)
    assert argv[:2] == ["gunicorn", "app.wsgi:app"]
    assert argv[argv.index("--bind") + 1] == "0.0.0.0:9000"
    assert argv[argv.index("--workers") + 1] == "4"
    assert argv[argv.index("--timeout") + 1] == "30"


def test_release_requires_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        release_database_url()


def test_release_refuses_sqlite_in_production(tmp_path, monkeypatch):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'prod.db'}")
    with pytest.raises(RuntimeError, match="sqlite"):
        run_release()
    assert not (tmp_path / "prod.db").exists()


def test_release_migrates_and_seeds_idempotently(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path/'release.db'}"
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("DEMO_USER_EMAIL", "Demo@Example.com")
    monkeypatch.setenv("DEMO_USER_PASSWORD", "demo-pass")

    run_release()
    run_release()

    engine = create_engine(db_url)
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert {"users", "customers", "audit_events", "alembic_version"} <= tables

    with script_session(db_url) as s:
        assert [u.email for u in s.query(User)] == ["demo@example.com"]


def test_release_can_skip_seed(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path/'noseed.db'}"
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("DEMO_USER_EMAIL", "demo@example.com")
    monkeypatch.setenv("DEMO_USER_PASSWORD", "demo-pass")

    run_release(seed=False)

    with script_session(db_url) as s:
        assert s.query(User).count() == 0
