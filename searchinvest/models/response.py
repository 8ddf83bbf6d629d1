"""统一 API 响应模型"""

from typing import Any, Optional
from pydantic import BaseModel


class ApiResponse(BaseModel):
    """标准 API 响应封装；meta 携带 stale / stored_at / source 等数据状态"""
    success: bool = True
    data: Optional[Any] = None
    meta: Optional[dict] = None
    message: str = ""
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None, message: str = "success", meta: Optional[dict] = None) -> "ApiResponse":
        return cls(success=True, data=data, message=message, meta=meta)

    @classmethod
    def fail(cls, error: str, message: str = "failed") -> "ApiResponse":
        return cls(success=False, error=error, message=message)
