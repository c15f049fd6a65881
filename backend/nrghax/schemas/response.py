# backend/nrghax/schemas/response.py
from pydantic import BaseModel
from typing import Generic, TypeVar, Optional

T = TypeVar('T')


class StandardResponse(BaseModel, Generic[T]):
    """统一的API响应信封

    Attributes:
        code: 业务状态码，成功时为200，出错时与 HTTP 状态码一致
        message: 'success' 或错误描述
        data: 数据载荷，出错时为空
    """
    code: int = 200
    message: str = 'success'
    data: Optional[T] = None

    @classmethod
    def error(cls, code: int, message: str) -> "StandardResponse[None]":
        return cls(code=code, message=message, data=None)
