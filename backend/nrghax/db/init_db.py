#!/usr/bin/env python3
"""
数据库初始化脚本

这个脚本用于创建所有数据库表，并可选地写入示例内容（--seed）。
"""

import argparse
import logging
import os

# 确保在导入任何其他模块之前加载环境变量
from dotenv import load_dotenv

backend_dir = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
env_path = os.path.join(backend_dir, ".env")
if os.path.exists(env_path):
    load_dotenv(env_path)

from sqlalchemy.orm import Session

from nrghax.core.config import settings
from nrghax.crud.crud_content import hack as crud_hack, level as crud_level, routine as crud_routine
from nrghax.crud.crud_prerequisite import prerequisite as crud_prerequisite
from nrghax.db.base_class import Base
from nrghax.db.database import SessionLocal, engine
from nrghax.schemas.content import HackCreate, LevelCreate, RoutineCreate
from nrghax.schemas.prerequisite import PrerequisiteEdgeCreate, PrerequisiteKind

# 导入所有模型，确保它们被正确注册
import nrghax.models  # noqa: F401

logger = logging.getLogger(__name__)


def init_db(bind=engine):
    """初始化数据库，创建所有表"""
    logger.info(f"Using database URL: {settings.DATABASE_URL}")
    Base.metadata.create_all(bind=bind)
    logger.info("数据库表创建成功！")


def seed_content(db: Session):
    """写入一组示例等级、hack 和 routine"""
    if crud_level.get(db, "foundation"):
        logger.info("示例内容已存在，跳过")
        return

    crud_level.create(db, obj_in=LevelCreate(id="foundation", name="Foundation", slug="foundation", position=0))
    crud_level.create(db, obj_in=LevelCreate(id="direction", name="Direction", slug="direction", position=1))

    hacks = [
        HackCreate(id="breathing", name="Box Breathing", slug="box-breathing", level_id="foundation", position=0),
        HackCreate(id="cold-shower", name="Cold Shower", slug="cold-shower", level_id="foundation", position=1),
        HackCreate(id="sunlight", name="Morning Sunlight", slug="morning-sunlight", level_id="foundation",
                   is_required=False, position=2),
        HackCreate(id="journaling", name="Journaling", slug="journaling", level_id="direction", position=0),
    ]
    for hack_in in hacks:
        crud_hack.create(db, obj_in=hack_in)

    crud_prerequisite.create_edge(db, obj_in=PrerequisiteEdgeCreate(
        content_id="cold-shower", prerequisite_content_id="breathing", content_kind=PrerequisiteKind.HACK
    ))
    crud_prerequisite.create_edge(db, obj_in=PrerequisiteEdgeCreate(
        content_id="direction", prerequisite_content_id="foundation", content_kind=PrerequisiteKind.LEVEL
    ))
    crud_routine.create(db, obj_in=RoutineCreate(
        id="morning", name="Morning Routine", slug="morning-routine",
        hack_ids=["sunlight", "breathing", "cold-shower"]
    ))
    logger.info("示例内容写入成功")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description="Create database tables")
    parser.add_argument("--seed", action="store_true", help="写入示例内容")
    args = parser.parse_args()

    init_db()
    if args.seed:
        db = SessionLocal()
        try:
            seed_content(db)
        finally:
            db.close()
