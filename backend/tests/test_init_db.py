"""
数据库初始化与示例内容测试
"""
from sqlalchemy import inspect

from nrghax.crud import hack, level, prerequisite, routine
from nrghax.db.init_db import init_db, seed_content
from nrghax.schemas.prerequisite import PrerequisiteKind


def test_init_db_creates_tables(engine):
    init_db(bind=engine)
    tables = set(inspect(engine).get_table_names())
    assert {
        "levels", "hacks", "routines", "routine_hacks",
        "user_progress", "user_hack_checks", "prerequisite_edges", "migration_receipts", "user_roles",
    } <= tables


def test_seed_content_is_idempotent(db):
    seed_content(db)
    seed_content(db)

    assert [l.id for l in level.get_ordered(db)] == ["foundation", "direction"]
    assert hack.get_required_by_level(db) == {
        "foundation": ["breathing", "cold-shower"],
        "direction": ["journaling"],
    }
    assert routine.get(db, "morning").hack_ids == ["sunlight", "breathing", "cold-shower"]
    assert len(prerequisite.get_by_kind(db, content_kind=PrerequisiteKind.HACK)) == 1
    assert len(prerequisite.get_by_kind(db, content_kind=PrerequisiteKind.LEVEL)) == 1
