import os


def test_get_engine_kwargs_sqlite_has_check_same_thread(monkeypatch):
    # Import lazily so monkeypatch can affect env usage deterministically.
    from questlog.database import database as db

    kwargs = db.get_engine_kwargs("sqlite:///./questlog.db")
    assert "connect_args" in kwargs
    assert kwargs["connect_args"]["check_same_thread"] is False
    # SQLite should not require pool sizing knobs.
    assert "pool_size" not in kwargs
    assert "max_overflow" not in kwargs
    assert kwargs["pool_pre_ping"] is True


def test_get_engine_kwargs_postgres_has_conservative_pooling(monkeypatch):
    from questlog.database import database as db

    monkeypatch.setenv("DB_POOL_SIZE", "7")
    monkeypatch.setenv("DB_MAX_OVERFLOW", "3")
    monkeypatch.setenv("DB_POOL_TIMEOUT_SEC", "15")

    kwargs = db.get_engine_kwargs("postgresql+psycopg://u:p@localhost:5432/db")
    assert "connect_args" not in kwargs
    assert kwargs["pool_pre_ping"] is True
    assert kwargs["pool_size"] == 7
    assert kwargs["max_overflow"] == 3
    assert kwargs["pool_timeout"] == 15


def test_debug_enables_sql_echo(monkeypatch):
    from questlog.database import database as db

    monkeypatch.setenv("DEBUG", "true")
    assert db.get_engine_kwargs("sqlite:///./questlog.db")["echo"] is True
    monkeypatch.setenv("DEBUG", "false")
    assert db.get_engine_kwargs("sqlite:///./questlog.db")["echo"] is False


def test_sqlite_pragmas_listener_is_guarded():
    # Verify the helper used by the connect event guard behaves as expected.
    from questlog.database import database as db

    assert db._is_sqlite_url("sqlite:///./questlog.db") is True
    assert db._is_sqlite_url("postgresql+psycopg://u:p@localhost/db") is False


def test_build_engine_creates_all_tables(tmp_path):
    """create_all on a fresh SQLite file yields every questlog table."""
    from sqlalchemy import inspect
    from questlog.database import database as db
    from questlog.database import models  # noqa: F401

    url = f"sqlite:///{os.path.join(str(tmp_path), 'questlog-test.db')}"
    engine = db.build_engine(url)
    try:
        db.Base.metadata.create_all(bind=engine)
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()

    assert tables == {
        "users",
        "characters",
        "character_stats",
        "tasks",
        "task_completions",
        "quests",
        "experiments",
        "external_task_sources",
        "external_task_integrations",
    }
