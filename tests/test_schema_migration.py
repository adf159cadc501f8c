"""Tests for the alembic revision that creates the store schema."""
import importlib.util
from pathlib import Path

import pytest
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

from notesync.models.db_models import Base

REVISION_FILE = (
    Path(__file__).resolve().parent.parent
    / "alembic"
    / "versions"
    / "5c2d8e41b7a0_initial_notes_schema.py"
)


@pytest.fixture
def revision():
    spec = importlib.util.spec_from_file_location("initial_notes_schema", REVISION_FILE)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def engine():
    engine = create_engine("sqlite:///:memory:")
    yield engine
    engine.dispose()


def _run(engine, step):
    with engine.begin() as conn:
        with Operations.context(MigrationContext.configure(conn)):
            step()


def test_revision_is_the_root(revision):
    assert revision.revision == "5c2d8e41b7a0"
    assert revision.down_revision is None


def test_upgrade_matches_models(engine, revision):
    _run(engine, revision.upgrade)

    inspector = inspect(engine)
    assert set(inspector.get_table_names()) == set(Base.metadata.tables)
    for name, table in Base.metadata.tables.items():
        columns = {c["name"] for c in inspector.get_columns(name)}
        assert columns == set(table.columns.keys()), name

    note_indexes = {i["name"] for i in inspector.get_indexes("notes")}
    assert {"ix_notes_user_id", "ix_notes_user_updated"} <= note_indexes
    fks = inspector.get_foreign_keys("attachments")
    assert fks[0]["referred_table"] == "notes"


def test_downgrade_drops_everything(engine, revision):
    _run(engine, revision.upgrade)
    _run(engine, revision.downgrade)
    assert inspect(engine).get_table_names() == []
