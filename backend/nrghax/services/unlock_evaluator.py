"""
前置依赖解锁计算

纯函数模块：根据用户已完成内容集合和前置依赖边计算锁定状态，
不做任何数据库或网络访问，数据由调用方预先取出。
"""
import logging
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Set

from nrghax.schemas.prerequisite import LevelTreeNode, UnlockStatus
from nrghax.services.progression import progress_percentage

logger = logging.getLogger(__name__)


class Edge(NamedTuple):
    """content_id 依赖 prerequisite_content_id"""
    content_id: str
    prerequisite_content_id: str


def to_edges(rows: Iterable) -> List[Edge]:
    """将ORM行或schema对象转换为 Edge，自环直接丢弃"""
    edges = []
    for row in rows:
        edge = Edge(str(row.content_id), str(row.prerequisite_content_id))
        if edge.content_id == edge.prerequisite_content_id:
            logger.warning(f"忽略自环前置依赖: {edge.content_id}")
            continue
        edges.append(edge)
    return edges


def prerequisites_of(content_id: str, edges: Iterable[Edge]) -> Set[str]:
    return {edge.prerequisite_content_id for edge in edges if edge.content_id == content_id}


def compute_unlocked(content_id: str, completed_set: Set[str], edges: Iterable[Edge]) -> bool:
    """
    判断内容是否已解锁。

    当且仅当以 content_id 为源的每一条边，其前置内容都在 completed_set 中时解锁；
    没有前置依赖的内容总是解锁。

    Args:
        content_id: 要判断的内容ID
        completed_set: 用户已完成（completed_at 非空）的内容ID集合
        edges: 前置依赖边

    Returns:
        bool: 是否解锁
    """
    return prerequisites_of(content_id, edges) <= set(completed_set)


def compute_unlock_status(content_id: str, completed_set: Set[str], edges: Iterable[Edge]) -> UnlockStatus:
    missing = prerequisites_of(content_id, edges) - set(completed_set)
    return UnlockStatus(
        content_id=content_id,
        is_locked=bool(missing),
        missing_prerequisite_ids=missing,
    )


def evaluate(content_ids: Iterable[str], completed_set: Set[str], edges: Iterable[Edge]) -> List[UnlockStatus]:
    """批量计算解锁状态，顺序与 content_ids 一致"""
    edges = list(edges)
    return [compute_unlock_status(content_id, completed_set, edges) for content_id in content_ids]


# --- 依赖图校验 ---

def _adjacency(edges: Iterable[Edge]) -> Dict[str, List[str]]:
    graph: Dict[str, List[str]] = {}
    for edge in edges:
        graph.setdefault(edge.content_id, []).append(edge.prerequisite_content_id)
    return graph


def find_cycle(edges: Iterable[Edge]) -> Optional[List[str]]:
    """
    在依赖图中查找一个环。

    Returns:
        Optional[List[str]]: 环上的节点路径（首尾相同），无环时返回None
    """
    graph = _adjacency(edges)
    visiting: Set[str] = set()
    done: Set[str] = set()
    path: List[str] = []

    def visit(node: str) -> Optional[List[str]]:
        visiting.add(node)
        path.append(node)
        for nxt in graph.get(node, []):
            if nxt in visiting:
                return path[path.index(nxt):] + [nxt]
            if nxt not in done:
                found = visit(nxt)
                if found:
                    return found
        visiting.discard(node)
        done.add(node)
        path.pop()
        return None

    for start in list(graph):
        if start not in done:
            found = visit(start)
            if found:
                return found
    return None


def would_create_cycle(edges: Iterable[Edge], new_edge: Edge) -> Optional[List[str]]:
    """判断加入 new_edge 后是否成环，成环时返回环路径"""
    if new_edge.content_id == new_edge.prerequisite_content_id:
        return [new_edge.content_id, new_edge.content_id]
    return find_cycle(list(edges) + [new_edge])


# --- 等级 ---

def completed_levels(required_hacks_by_level: Mapping[str, Sequence[str]], completed_hacks: Set[str]) -> Set[str]:
    """
    计算已完成的等级。

    一个等级在其所有必修 hack 都完成时视为完成；没有必修 hack 的等级永远不算完成。
    """
    done = set()
    for level_id, hack_ids in required_hacks_by_level.items():
        if hack_ids and all(hack_id in completed_hacks for hack_id in hack_ids):
            done.add(level_id)
    return done


def evaluate_hacks(
    hack_levels: Mapping[str, Optional[str]],
    completed_hacks: Set[str],
    hack_edges: Iterable[Edge],
    unlocked_levels: Optional[Set[str]] = None,
) -> List[UnlockStatus]:
    """
    计算 hack 的解锁状态。

    hack 所属等级未解锁时，hack 也保持锁定（缺失项为该等级ID）。

    Args:
        hack_levels: hack_id -> level_id（可为空）
        completed_hacks: 已完成的 hack 集合
        hack_edges: hack 之间的前置依赖
        unlocked_levels: 已解锁的等级集合，None 表示不考虑等级
    """
    statuses = evaluate(hack_levels.keys(), completed_hacks, hack_edges)
    if unlocked_levels is None:
        return statuses
    for status in statuses:
        level_id = hack_levels.get(status.content_id)
        if level_id and level_id not in unlocked_levels:
            status.is_locked = True
            status.missing_prerequisite_ids.add(level_id)
    return statuses


def build_level_tree(
    levels: Sequence,
    required_hacks_by_level: Mapping[str, Sequence[str]],
    completed_hacks: Set[str],
    level_edges: Iterable[Edge],
) -> List[LevelTreeNode]:
    """
    构建用户视角下的等级树。

    Args:
        levels: 等级对象列表（需要 id、name、slug 属性），按展示顺序排列
        required_hacks_by_level: level_id -> 必修 hack ID 列表
        completed_hacks: 用户已完成的 hack 集合
        level_edges: 等级之间的前置依赖

    Returns:
        List[LevelTreeNode]: 与 levels 顺序一致的节点列表
    """
    level_edges = list(level_edges)
    done_levels = completed_levels(required_hacks_by_level, completed_hacks)

    nodes = []
    for level in levels:
        required = list(required_hacks_by_level.get(level.id, []))
        hacks_completed = sum(1 for hack_id in required if hack_id in completed_hacks)
        children = sorted({edge.content_id for edge in level_edges if edge.prerequisite_content_id == level.id})
        nodes.append(LevelTreeNode(
            level_id=level.id,
            name=level.name,
            slug=level.slug,
            prerequisites=sorted(prerequisites_of(level.id, level_edges)),
            children=children,
            hacks_completed=hacks_completed,
            total_required_hacks=len(required),
            progress_percentage=progress_percentage(hacks_completed, len(required)),
            is_locked=not compute_unlocked(level.id, done_levels, level_edges),
            is_completed=level.id in done_levels,
        ))
    return nodes
