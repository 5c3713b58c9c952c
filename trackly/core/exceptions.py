"""
Core exceptions
核心异常定义
"""

from typing import List, Optional


class TracklyException(Exception):
    """Trackly 客户端基础异常"""
    pass


class TracklyApiException(TracklyException):
    """
    Trackly API 异常
    携带服务端返回的错误信息和 HTTP 状态码（网络错误时为 None）。
    """

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class UnauthorizedException(TracklyApiException):
    """认证失败 (HTTP 401)，调用方应引导用户重新登录"""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, 401)


class ValidationException(TracklyException):
    """本地校验失败，在任何远程调用之前抛出"""

    def __init__(self, errors: List[str]):
        super().__init__(", ".join(errors))
        self.errors = list(errors)


class NotFoundException(TracklyException):
    """本地缓存中找不到对象"""
    pass


class CommandException(TracklyException):
    """命令处理异常"""
    pass
