"""
从数据库取出进度和依赖数据，交给 unlock_evaluator / progression 计算。
"""
from typing import Dict, List, Optional, Sequence, Set

from sqlalchemy.orm import Session

from nrghax.crud.crud_content import hack as crud_hack, level as crud_level, routine as crud_routine
from nrghax.crud.crud_prerequisite import prerequisite as crud_prerequisite
from nrghax.crud.crud_progress import progress as crud_progress
from nrghax.schemas.prerequisite import LevelTreeNode, PrerequisiteKind, UnlockStatus
from nrghax.schemas.progress import ContentKind, ProgressionEntry
from nrghax.services import unlock_evaluator
from nrghax.services.progression import progression_tier, routine_progression_tier


class UnlockService:
    def _completed_levels(self, db: Session, completed_hacks: Set[str]) -> Set[str]:
        return unlock_evaluator.completed_levels(crud_hack.get_required_by_level(db), completed_hacks)

    def level_statuses(
        self,
        db: Session,
        user_id: str,
        content_ids: Optional[Sequence[str]] = None
    ) -> List[UnlockStatus]:
        """等级解锁状态：前置等级必须全部完成"""
        completed_hacks = crud_progress.get_completed_content_ids(db, user_id=user_id)
        level_edges = crud_prerequisite.get_edges(db, content_kind=PrerequisiteKind.LEVEL)
        ids = list(content_ids) if content_ids else [level.id for level in crud_level.get_ordered(db)]
        return unlock_evaluator.evaluate(ids, self._completed_levels(db, completed_hacks), level_edges)

    def hack_statuses(
        self,
        db: Session,
        user_id: str,
        content_ids: Optional[Sequence[str]] = None
    ) -> List[UnlockStatus]:
        """hack 解锁状态：自身前置 hack 全部完成，且所属等级已解锁"""
        completed_hacks = crud_progress.get_completed_content_ids(db, user_id=user_id)
        unlocked_levels = {
            status.content_id
            for status in self.level_statuses(db, user_id)
            if not status.is_locked
        }
        hack_levels: Dict[str, Optional[str]] = {hack.id: hack.level_id for hack in crud_hack.get_all(db)}
        if content_ids:
            hack_levels = {content_id: hack_levels.get(content_id) for content_id in content_ids}
        return unlock_evaluator.evaluate_hacks(
            hack_levels,
            completed_hacks,
            crud_prerequisite.get_edges(db, content_kind=PrerequisiteKind.HACK),
            unlocked_levels=unlocked_levels
        )

    def level_tree(self, db: Session, user_id: str) -> List[LevelTreeNode]:
        return unlock_evaluator.build_level_tree(
            crud_level.get_ordered(db),
            crud_hack.get_required_by_level(db),
            crud_progress.get_completed_content_ids(db, user_id=user_id),
            crud_prerequisite.get_edges(db, content_kind=PrerequisiteKind.LEVEL)
        )

    def progression(self, db: Session, user_id: str) -> List[ProgressionEntry]:
        """
        每个 hack 和 routine 的完成次数与进度等级。

        routine 取其中完成次数最少的 hack 的等级，任一 hack 被锁定时 routine 也是锁定的。
        """
        counts = {
            record.content_id: record.completion_count
            for record in crud_progress.get_records_by_user(db, user_id=user_id)
        }
        locked = {status.content_id: status.is_locked for status in self.hack_statuses(db, user_id)}

        entries = [
            ProgressionEntry(
                content_id=hack_id,
                content_kind=ContentKind.HACK,
                completion_count=counts.get(hack_id, 0),
                is_locked=is_locked,
                tier=progression_tier(counts.get(hack_id, 0), is_locked=is_locked).value
            )
            for hack_id, is_locked in locked.items()
        ]
        for routine in crud_routine.get_multi(db, sort_by="id", limit=None):
            hack_ids = routine.hack_ids
            all_available = not any(locked.get(hack_id, False) for hack_id in hack_ids)
            entries.append(ProgressionEntry(
                content_id=routine.id,
                content_kind=ContentKind.ROUTINE,
                completion_count=counts.get(routine.id, 0),
                is_locked=not all_available,
                tier=routine_progression_tier(
                    [counts.get(hack_id, 0) for hack_id in hack_ids],
                    all_available=all_available
                ).value
            ))
        return entries

unlock_service = UnlockService()
