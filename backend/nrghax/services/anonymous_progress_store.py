"""
匿名进度存储

未登录访客的完成记录保存在 Redis 中，每个 (访客, 内容类型) 对应一个哈希：

    anon_progress:{visitor_id}:{kind}  ->  {content_id: JSON}

JSON 内容为 {"completion_count": int, "last_updated": ISO时间}。

hack 的浏览次数和已勾选的检查项分别保存在

    anon_progress:{visitor_id}:views   ->  {hack_id: {"view_count": int, "last_viewed_at": ISO时间}}
    anon_progress:{visitor_id}:checks  ->  {hack_id: [check_id, ...]}

所有写操作都是尽力而为：Redis 不可用时记录日志并吞掉异常，本次进度不记录。
"""
import json
import logging
import math
from datetime import datetime, timedelta, UTC
from typing import Dict, Iterator, List, Optional

import redis
from pydantic import ValidationError

from nrghax.schemas.progress import (
    AnonymousCheckRecord,
    AnonymousProgressRecord,
    AnonymousSnapshot,
    AnonymousViewRecord,
    ContentKind,
)

logger = logging.getLogger(__name__)


class AnonymousRecordView:
    """
    某类匿名记录的惰性视图。

    每次迭代都会重新扫描 Redis 哈希，因此可以多次遍历，并且总能看到最新数据。
    """

    def __init__(self, store: "AnonymousProgressStore", kind: ContentKind):
        self._store = store
        self._kind = kind

    def __iter__(self) -> Iterator[AnonymousProgressRecord]:
        return self._store._scan(self._kind)


class AnonymousProgressStore:
    KEY_PREFIX = "anon_progress"

    def __init__(
        self,
        redis_client: redis.Redis,
        visitor_id: str,
        cooldown: timedelta = timedelta(minutes=30),
        ttl: Optional[timedelta] = timedelta(days=90)
    ):
        self.redis_client = redis_client
        self.visitor_id = visitor_id
        self.cooldown = cooldown
        self.ttl = ttl

    def _key(self, kind: ContentKind) -> str:
        return f"{self.KEY_PREFIX}:{self.visitor_id}:{ContentKind(kind).value}"

    @staticmethod
    def _decode(value) -> str:
        return value.decode("utf-8") if isinstance(value, bytes) else value

    def _parse(self, content_id, raw, kind: ContentKind) -> Optional[AnonymousProgressRecord]:
        try:
            data = json.loads(self._decode(raw))
            return AnonymousProgressRecord(
                content_id=self._decode(content_id),
                content_kind=kind,
                completion_count=data.get("completion_count", 0),
                last_updated=data["last_updated"],
            )
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            # 损坏的条目直接跳过
            logger.warning(f"AnonymousProgressStore: 跳过无法解析的记录 {content_id!r}: {e}")
            return None

    def _scan(self, kind: ContentKind, strict: bool = False) -> Iterator[AnonymousProgressRecord]:
        try:
            for content_id, raw in self.redis_client.hscan_iter(self._key(kind)):
                record = self._parse(content_id, raw, kind)
                if record is not None:
                    yield record
        except redis.RedisError as e:
            logger.error(f"AnonymousProgressStore: 读取访客 {self.visitor_id} 的 {kind} 进度失败: {e}")
            if strict:
                raise

    def get_record(self, content_id: str, kind: ContentKind) -> Optional[AnonymousProgressRecord]:
        try:
            raw = self.redis_client.hget(self._key(kind), content_id)
        except redis.RedisError as e:
            logger.error(f"AnonymousProgressStore: 读取 {content_id} 失败: {e}")
            return None
        if raw is None:
            return None
        return self._parse(content_id, raw, kind)

    def record_completion(self, content_id: str, kind: ContentKind) -> int:
        """
        记录一次匿名完成。

        不存在时以 count=1 创建，否则在原值上加一。

        Args:
            content_id: 内容ID
            kind: 内容类型

        Returns:
            int: 新的完成次数；存储失败时返回 0
        """
        key = self._key(kind)
        try:
            raw = self.redis_client.hget(key, content_id)
            existing = self._parse(content_id, raw, kind) if raw is not None else None
            new_count = (existing.completion_count if existing else 0) + 1
            payload = json.dumps({
                "completion_count": new_count,
                "last_updated": datetime.now(UTC).isoformat()
            })
            self.redis_client.hset(key, content_id, payload)
            if self.ttl:
                self.redis_client.expire(key, int(self.ttl.total_seconds()))
            return new_count
        except redis.RedisError as e:
            logger.error(f"AnonymousProgressStore: 保存访客 {self.visitor_id} 的完成记录 {content_id} 失败: {e}")
            return 0

    def read_all(self, kind: ContentKind) -> AnonymousRecordView:
        """返回某类记录的惰性、可重复遍历的视图"""
        return AnonymousRecordView(self, ContentKind(kind))

    def snapshot(self, strict: bool = False) -> List[AnonymousProgressRecord]:
        """
        所有类型记录的一次性快照，用于迁移。

        strict=True 时 Redis 异常会向上抛出，避免把读取失败误判为没有进度。
        """
        records = []
        for kind in ContentKind:
            records.extend(self._scan(kind, strict=strict))
        return records

    def get_completion_count(self, content_id: str, kind: ContentKind) -> int:
        record = self.get_record(content_id, kind)
        return record.completion_count if record else 0

    def has_progress(self) -> bool:
        return not self.export().without_empty().is_empty

    def summary(self) -> Dict[str, int]:
        """每类内容的记录数与总完成次数，以及浏览和检查项的数量"""
        result = {}
        for kind in ContentKind:
            records = list(self.read_all(kind))
            result[f"{kind.value}_items"] = len(records)
            result[f"{kind.value}_completions"] = sum(record.completion_count for record in records)
        result["viewed_hacks"] = len(self.read_views())
        result["completed_checks"] = sum(len(check.completed_check_ids) for check in self.read_checks())
        return result

    def clear(self) -> bool:
        """
        删除该访客的全部匿名记录。只应在迁移成功后调用，操作不可逆。

        Returns:
            bool: 删除请求是否成功送达 Redis
        """
        try:
            keys = [self._key(kind) for kind in ContentKind] + [self._views_key(), self._checks_key()]
            self.redis_client.delete(*keys)
            logger.info(f"AnonymousProgressStore: 已清除访客 {self.visitor_id} 的匿名进度")
            return True
        except redis.RedisError as e:
            logger.error(f"AnonymousProgressStore: 清除访客 {self.visitor_id} 的匿名进度失败: {e}")
            return False

    # --- 浏览记录与检查项 ---

    def _views_key(self) -> str:
        return f"{self.KEY_PREFIX}:{self.visitor_id}:views"

    def _checks_key(self) -> str:
        return f"{self.KEY_PREFIX}:{self.visitor_id}:checks"

    def _touch(self, key: str):
        if self.ttl:
            self.redis_client.expire(key, int(self.ttl.total_seconds()))

    def record_view(self, hack_id: str) -> int:
        """
        记录一次 hack 浏览。

        Returns:
            int: 新的浏览次数；存储失败时返回 0
        """
        key = self._views_key()
        try:
            raw = self.redis_client.hget(key, hack_id)
            view_count = 1
            if raw is not None:
                try:
                    view_count = int(json.loads(self._decode(raw)).get("view_count", 0)) + 1
                except (ValueError, TypeError, AttributeError) as e:
                    logger.warning(f"AnonymousProgressStore: 浏览记录 {hack_id!r} 无法解析，重新计数: {e}")
            self.redis_client.hset(key, hack_id, json.dumps({
                "view_count": view_count,
                "last_viewed_at": datetime.now(UTC).isoformat()
            }))
            self._touch(key)
            return view_count
        except redis.RedisError as e:
            logger.error(f"AnonymousProgressStore: 保存访客 {self.visitor_id} 对 {hack_id} 的浏览记录失败: {e}")
            return 0

    def read_views(self, strict: bool = False) -> List[AnonymousViewRecord]:
        views = []
        try:
            for hack_id, raw in self.redis_client.hscan_iter(self._views_key()):
                try:
                    data = json.loads(self._decode(raw))
                    views.append(AnonymousViewRecord(
                        hack_id=self._decode(hack_id),
                        view_count=data.get("view_count", 0),
                        last_viewed_at=data["last_viewed_at"]
                    ))
                except (ValueError, KeyError, TypeError, AttributeError, ValidationError) as e:
                    logger.warning(f"AnonymousProgressStore: 跳过无法解析的浏览记录 {hack_id!r}: {e}")
        except redis.RedisError as e:
            logger.error(f"AnonymousProgressStore: 读取访客 {self.visitor_id} 的浏览记录失败: {e}")
            if strict:
                raise
        return views

    def get_check_ids(self, hack_id: str) -> List[str]:
        try:
            raw = self.redis_client.hget(self._checks_key(), hack_id)
        except redis.RedisError as e:
            logger.error(f"AnonymousProgressStore: 读取 {hack_id} 的检查项失败: {e}")
            return []
        if raw is None:
            return []
        try:
            return [str(check_id) for check_id in json.loads(self._decode(raw))]
        except (ValueError, TypeError) as e:
            logger.warning(f"AnonymousProgressStore: 跳过无法解析的检查项 {hack_id!r}: {e}")
            return []

    def set_check(self, hack_id: str, check_id: str, completed: bool = True) -> List[str]:
        """
        勾选或取消某个 hack 的检查项。

        Returns:
            List[str]: 更新后该 hack 已完成的检查项ID；存储失败时返回空列表
        """
        check_ids = self.get_check_ids(hack_id)
        if completed and check_id not in check_ids:
            check_ids.append(check_id)
        elif not completed and check_id in check_ids:
            check_ids.remove(check_id)

        key = self._checks_key()
        try:
            if check_ids:
                self.redis_client.hset(key, hack_id, json.dumps(check_ids))
                self._touch(key)
            else:
                self.redis_client.hdel(key, hack_id)
            return check_ids
        except redis.RedisError as e:
            logger.error(f"AnonymousProgressStore: 保存访客 {self.visitor_id} 在 {hack_id} 上的检查项失败: {e}")
            return []

    def read_checks(self, strict: bool = False) -> List[AnonymousCheckRecord]:
        checks = []
        try:
            for hack_id, raw in self.redis_client.hscan_iter(self._checks_key()):
                try:
                    check_ids = [str(check_id) for check_id in json.loads(self._decode(raw))]
                    checks.append(AnonymousCheckRecord(hack_id=self._decode(hack_id), completed_check_ids=check_ids))
                except (ValueError, TypeError, ValidationError) as e:
                    logger.warning(f"AnonymousProgressStore: 跳过无法解析的检查项 {hack_id!r}: {e}")
        except redis.RedisError as e:
            logger.error(f"AnonymousProgressStore: 读取访客 {self.visitor_id} 的检查项失败: {e}")
            if strict:
                raise
        return checks

    def export(self, strict: bool = False) -> AnonymousSnapshot:
        """完成记录、浏览记录和检查项的完整快照，用于迁移"""
        return AnonymousSnapshot(
            records=self.snapshot(strict=strict),
            views=self.read_views(strict=strict),
            checks=self.read_checks(strict=strict),
        )

    # --- 冷却时间 ---

    def cooldown_minutes(self, content_id: str, kind: ContentKind, now: Optional[datetime] = None) -> int:
        """距离可以再次完成还需等待的分钟数（向上取整），可以完成时为 0"""
        record = self.get_record(content_id, kind)
        if record is None or self.cooldown <= timedelta(0):
            return 0
        now = now or datetime.now(UTC)
        last_updated = record.last_updated
        if last_updated.tzinfo is None:
            last_updated = last_updated.replace(tzinfo=UTC)
        remaining = self.cooldown - (now - last_updated)
        if remaining <= timedelta(0):
            return 0
        return math.ceil(remaining.total_seconds() / 60)

    def can_complete(self, content_id: str, kind: ContentKind, now: Optional[datetime] = None) -> bool:
        return self.cooldown_minutes(content_id, kind, now=now) == 0

    def merge_for_display(self, items: List[dict], kind: ContentKind) -> List[dict]:
        """
        将匿名完成次数叠加到内容列表上，供未登录访客展示。

        items 中每一项需要包含 id 字段；匿名记录存在时覆盖 completion_count。
        """
        counts = {record.content_id: record.completion_count for record in self.read_all(kind)}
        merged = []
        for item in items:
            merged.append({
                **item,
                "completion_count": counts.get(item["id"]) or item.get("completion_count") or 0
            })
        return merged
