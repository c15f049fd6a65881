"""
完成次数对应的进度等级（前端用来给 hack / routine 着色）

- locked: 前置条件未满足
- white: 可用但从未完成
- green: 完成 1 次
- blue: 完成 2-9 次
- purple: 完成 10-49 次
- orange: 完成 50 次及以上
"""
from enum import Enum
from typing import Optional, Sequence


class ProgressionTier(str, Enum):
    LOCKED = "locked"
    WHITE = "white"
    GREEN = "green"
    BLUE = "blue"
    PURPLE = "purple"
    ORANGE = "orange"


def progression_tier(completion_count: Optional[int], is_locked: bool = False) -> ProgressionTier:
    if is_locked:
        return ProgressionTier.LOCKED
    if not completion_count:
        return ProgressionTier.WHITE
    if completion_count == 1:
        return ProgressionTier.GREEN
    if completion_count <= 9:
        return ProgressionTier.BLUE
    if completion_count <= 49:
        return ProgressionTier.PURPLE
    return ProgressionTier.ORANGE


def routine_progression_tier(hack_completion_counts: Sequence[Optional[int]], all_available: bool = True) -> ProgressionTier:
    """Routine 取完成次数最少的 hack 的等级"""
    if not all_available:
        return ProgressionTier.LOCKED
    if not hack_completion_counts:
        return ProgressionTier.WHITE
    return progression_tier(min(count or 0 for count in hack_completion_counts))


def progress_percentage(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    # 四舍五入（.5 向上取整）
    return int(completed * 100 / total + 0.5)
