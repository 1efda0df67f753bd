import os

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import declarative_base, sessionmaker

DATABASE_URL = os.getenv("SIGNAGE_DATABASE_URL", "sqlite:///./signage.db")

Base = declarative_base()


def make_engine(url: str = DATABASE_URL):
    if not url.startswith("sqlite"):
        return create_engine(url)

    sqlite_engine = create_engine(url, connect_args={"check_same_thread": False})

    @event.listens_for(sqlite_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return sqlite_engine


def make_session_factory(bind):
    return sessionmaker(bind=bind, autocommit=False, autoflush=False, expire_on_commit=False)


engine = make_engine()
SessionLocal = make_session_factory(engine)


def init_schema(bind=None) -> None:
    # Model modules register their tables on Base.metadata when imported.
    from signage.models import display, preset, scenario, screen, screen_state  # noqa: F401

    target = bind if bind is not None else engine
    Base.metadata.create_all(bind=target)
    ensure_sqlite_schema(target)


def ensure_sqlite_schema(bind=None) -> None:
    """
    Lightweight runtime schema patching for SQLite.

    `Base.metadata.create_all()` won't add new columns to existing tables.
    This keeps local/dev installs working without requiring Alembic.
    """
    target = bind if bind is not None else engine
    if not str(target.url).startswith("sqlite"):
        return

    with target.begin() as conn:
        state_cols = conn.execute(text("PRAGMA table_info(screen_state)")).fetchall()
        state_col_names = {row[1] for row in state_cols}  # (cid, name, type, notnull, dflt_value, pk)
        if "scenario" not in state_col_names:
            conn.execute(text("ALTER TABLE screen_state ADD COLUMN scenario VARCHAR"))

        assignment_cols = conn.execute(text("PRAGMA table_info(scenario_assignment)")).fetchall()
        assignment_col_names = {row[1] for row in assignment_cols}
        if "interval_ms" not in assignment_col_names:
            conn.execute(text("ALTER TABLE scenario_assignment ADD COLUMN interval_ms INTEGER"))
        conn.execute(
            text(
                "UPDATE scenario_assignment SET interval_ms=NULL "
                "WHERE interval_ms IS NOT NULL AND interval_ms <= 0"
            )
        )

        screen_cols = conn.execute(text("PRAGMA table_info(screen)")).fetchall()
        screen_col_names = {row[1] for row in screen_cols}
        for column in ("lat", "lng"):
            if column not in screen_col_names:
                conn.execute(text(f"ALTER TABLE screen ADD COLUMN {column} FLOAT"))
        if "address" not in screen_col_names:
            conn.execute(text("ALTER TABLE screen ADD COLUMN address VARCHAR"))
