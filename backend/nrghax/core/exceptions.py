"""
backend/nrghax/core/exceptions.py

进度服务的领域异常。每个异常携带对应的 HTTP 状态码，
由 main.py 中注册的异常处理器统一转换为 StandardResponse。
"""
from typing import List, Optional


class ProgressServiceError(Exception):
    """进度服务异常基类"""
    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code:
            self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(ProgressServiceError):
    """请求的资源不存在"""
    status_code = 404

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, self.status_code)


class DuplicatePrerequisiteError(ProgressServiceError):
    """相同的前置依赖边已存在"""
    status_code = 409

    def __init__(self, content_id: str, prerequisite_content_id: str):
        super().__init__(
            f"Prerequisite {prerequisite_content_id} already registered for {content_id}",
            self.status_code,
        )


class PrerequisiteCycleError(ProgressServiceError):
    """
    新增的前置依赖边会在依赖图中形成环。

    环中的内容将永远无法解锁，因此在写入时拒绝。
    """
    status_code = 409

    def __init__(self, cycle: List[str]):
        self.cycle = cycle
        super().__init__(
            "Prerequisite cycle detected: " + " -> ".join(cycle),
            self.status_code,
        )
