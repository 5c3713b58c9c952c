"""
Trackly API Service Layer - Trackly API 服务层
本模块采用仓储模式（Repository Pattern）封装了对 Trackly 后端 REST API 的所有网络请求。
- ITracklyRepository: 定义了与标签/条目/认证数据交互的统一接口。
- TracklyApiClient: 实现了该接口，负责具体的 HTTP 请求和响应处理。
这种设计将数据访问逻辑与状态管理解耦，Store 只依赖接口，测试时可以替换为内存实现。
客户端本身不持有业务状态，也不做任何重试，失败直接抛给调用方。
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional, Set

import aiohttp

from ..core.exceptions import TracklyApiException, UnauthorizedException
from ..core.models import AuthResponse, Entry, EntryPage, SortField, SortOrder, Tag

logger = logging.getLogger(__name__)

ENTRY_FIELD_NAMES = {
    "tag_ids": "tagIds",
    "title": "title",
    "timestamp": "timestamp",
    "notes": "notes",
    "is_archived": "isArchived",
}

TAG_FIELD_NAMES = {
    "name": "name",
    "type": "type",
    "categories": "categories",
    "value_type": "valueType",
    "options": "options",
    "properties": "properties",
}


def _to_wire(value: Any) -> Any:
    """把枚举/值对象转换成 JSON 可序列化的值"""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_to_wire(v) for v in value]
    if hasattr(value, "to_payload"):
        return value.to_payload()
    return value


def _rename(updates: Dict[str, Any], names: Dict[str, str]) -> Dict[str, Any]:
    return {names.get(k, k): _to_wire(v) for k, v in updates.items()}


class ITracklyRepository(ABC):
    """
    Trackly 仓储接口
    定义了所有与 Trackly 后端交互的标准操作。
    """

    # 认证
    @abstractmethod
    async def register(self, email: str, password: str, name: Optional[str] = None) -> AuthResponse:
        """注册新用户并保存返回的令牌"""
        pass

    @abstractmethod
    async def login(self, email: str, password: str) -> AuthResponse:
        """登录并保存返回的令牌"""
        pass

    # 标签
    @abstractmethod
    async def list_tags(self) -> List[Tag]:
        """获取当前用户的全部标签"""
        pass

    @abstractmethod
    async def get_tag(self, tag_id: str) -> Tag:
        pass

    @abstractmethod
    async def create_tag(self, tag: Tag) -> Tag:
        pass

    @abstractmethod
    async def update_tag(self, tag_id: str, updates: Dict[str, Any]) -> Tag:
        pass

    @abstractmethod
    async def delete_tag(self, tag_id: str) -> None:
        pass

    # 条目
    @abstractmethod
    async def list_entries(self, tag_ids: Optional[List[str]] = None,
                           sort_by: Optional[SortField] = None,
                           sort_order: Optional[SortOrder] = None,
                           include_archived: bool = False,
                           limit: Optional[int] = None,
                           after: Optional[str] = None,
                           after_id: Optional[str] = None,
                           hashtags: Optional[List[str]] = None) -> EntryPage:
        """
        获取一页条目。

        :param tag_ids: 标签过滤（条目至少包含其中一个）。
        :param sort_by: 排序字段。
        :param sort_order: 排序方向。
        :param include_archived: 是否包含已归档条目。
        :param limit: 每页数量。
        :param after: 游标：上一页最后一条的排序值。
        :param after_id: 游标：上一页最后一条的 ID，用于打破平局。
        :param hashtags: 话题标签过滤。
        :return: 一页条目和分页信息。
        """
        pass

    @abstractmethod
    async def get_entry(self, entry_id: str) -> Entry:
        pass

    @abstractmethod
    async def create_entry(self, tag_ids: List[str], title: str, timestamp: str, notes: str = "") -> Entry:
        pass

    @abstractmethod
    async def update_entry(self, entry_id: str, updates: Dict[str, Any], keepalive: bool = False) -> Entry:
        """
        更新条目，支持部分更新。

        :param entry_id: 条目 ID。
        :param updates: snake_case 字段的更新字典（title/timestamp/notes/tag_ids）。
        :param keepalive: 即使调用方被取消，请求也要完成（例如退出前的自动保存）。
        """
        pass

    @abstractmethod
    async def delete_entry(self, entry_id: str) -> None:
        pass

    @abstractmethod
    async def archive_entry(self, entry_id: str, is_archived: bool = True) -> Entry:
        pass

    @abstractmethod
    async def search_entries(self, query: str, limit: int = 20) -> List[Entry]:
        pass

    @abstractmethod
    async def list_hashtags(self) -> List[str]:
        pass


class TracklyApiClient(ITracklyRepository):
    """
    Trackly API 客户端实现
    负责与 Trackly 后端进行实际的 HTTP 通信。
    """

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 30):
        """
        初始化 API 客户端。

        :param base_url: Trackly API 的基础 URL。
        :param token: 用于认证的 Bearer Token，可以稍后通过 login 获取。
        :param timeout: 单个请求的总超时时间（秒）。
        """
        self.base_url = base_url.rstrip('/')
        self.token = token or None
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None
        # 调用方已取消、仍在发送中的 keepalive 请求
        self._keepalive: Set[asyncio.Task] = set()

    async def _get_session(self) -> aiohttp.ClientSession:
        """
        获取 aiohttp.ClientSession 实例。
        采用延迟初始化，确保只在需要时创建一个共享的会话。
        """
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                headers={'Content-Type': 'application/json'},
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self.session

    def _auth_headers(self) -> Dict[str, str]:
        if self.token:
            return {'Authorization': f'Bearer {self.token}'}
        return {}

    @staticmethod
    async def _error_message(response: aiohttp.ClientResponse) -> str:
        """优先使用服务端返回的 error 字段"""
        try:
            data = await response.json(content_type=None)
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("error"):
            return str(data["error"])
        return f"HTTP {response.status}"

    async def _send(self, method: str, endpoint: str, **kwargs) -> Any:
        session = await self._get_session()
        url = f"{self.base_url}{endpoint}"

        try:
            async with session.request(method, url, headers=self._auth_headers(), **kwargs) as response:
                if response.status == 401:
                    # 令牌无效，清除后由调用方引导重新登录
                    self.token = None
                    raise UnauthorizedException(await self._error_message(response))
                if response.status >= 400:
                    message = await self._error_message(response)
                    raise TracklyApiException(message, response.status)
                if response.status == 204:
                    return None
                return await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise TracklyApiException(f"Network error: {e}")
        except asyncio.TimeoutError:
            raise TracklyApiException(f"Request timed out: {method} {endpoint}")

    async def _request(self, method: str, endpoint: str, keepalive: bool = False, **kwargs) -> Any:
        """
        统一的请求方法，封装了请求的发送、错误处理和响应解析。

        :param method: HTTP 请求方法 (e.g., "GET", "POST").
        :param endpoint: API 的端点路径 (e.g., "/api/entries").
        :param keepalive: 为 True 时请求不随调用方取消而中断。
        :param kwargs: 传递给 aiohttp.ClientSession.request 的其他参数。
        :return: 解析后的 JSON，204 时为 None。
        :raises TracklyApiException: 当网络错误或 API 返回错误状态码时抛出。
        """
        if keepalive:
            task = asyncio.ensure_future(self._send(method, endpoint, **kwargs))
            self._keepalive.add(task)
            task.add_done_callback(self._keepalive_done)
            return await asyncio.shield(task)
        return await self._send(method, endpoint, **kwargs)

    def _keepalive_done(self, task: asyncio.Task):
        self._keepalive.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Keepalive request failed: {task.exception()}")

    # 认证

    async def register(self, email: str, password: str, name: Optional[str] = None) -> AuthResponse:
        data = {"email": email, "password": password}
        if name:
            data["name"] = name
        response = AuthResponse.from_dict(await self._request("POST", "/api/auth/register", json=data))
        self.token = response.token
        logger.info(f"Registered {response.user.email}")
        return response

    async def login(self, email: str, password: str) -> AuthResponse:
        data = {"email": email, "password": password}
        response = AuthResponse.from_dict(await self._request("POST", "/api/auth/login", json=data))
        self.token = response.token
        logger.info(f"Logged in as {response.user.email}")
        return response

    def logout(self):
        self.token = None

    def is_authenticated(self) -> bool:
        return self.token is not None

    # 标签

    async def list_tags(self) -> List[Tag]:
        result = await self._request("GET", "/api/tags")
        return [Tag.from_dict(t) for t in result or []]

    async def get_tag(self, tag_id: str) -> Tag:
        return Tag.from_dict(await self._request("GET", f"/api/tags/{tag_id}"))

    async def create_tag(self, tag: Tag) -> Tag:
        return Tag.from_dict(await self._request("POST", "/api/tags", json=tag.to_payload()))

    async def update_tag(self, tag_id: str, updates: Dict[str, Any]) -> Tag:
        data = _rename(updates, TAG_FIELD_NAMES)
        return Tag.from_dict(await self._request("PUT", f"/api/tags/{tag_id}", json=data))

    async def delete_tag(self, tag_id: str) -> None:
        await self._request("DELETE", f"/api/tags/{tag_id}")

    # 条目

    async def list_entries(self, tag_ids: Optional[List[str]] = None,
                           sort_by: Optional[SortField] = None,
                           sort_order: Optional[SortOrder] = None,
                           include_archived: bool = False,
                           limit: Optional[int] = None,
                           after: Optional[str] = None,
                           after_id: Optional[str] = None,
                           hashtags: Optional[List[str]] = None) -> EntryPage:
        """获取条目列表（游标分页）"""
        params = {}
        if tag_ids:
            params["tagIds"] = ",".join(tag_ids)
        if sort_by:
            params["sortBy"] = sort_by.value
        if sort_order:
            params["sortOrder"] = sort_order.value
        if include_archived:
            params["includeArchived"] = "true"
        if limit:
            params["limit"] = str(limit)
        if after:
            params["after"] = after
        if after_id:
            params["afterId"] = after_id
        if hashtags:
            params["hashtags"] = ",".join(hashtags)

        result = await self._request("GET", "/api/entries", params=params)
        return EntryPage.from_dict(result)

    async def get_entry(self, entry_id: str) -> Entry:
        return Entry.from_dict(await self._request("GET", f"/api/entries/{entry_id}"))

    async def create_entry(self, tag_ids: List[str], title: str, timestamp: str, notes: str = "") -> Entry:
        data = {
            "tagIds": list(tag_ids),
            "title": title,
            "timestamp": timestamp,
            "notes": notes,
        }
        return Entry.from_dict(await self._request("POST", "/api/entries", json=data))

    async def update_entry(self, entry_id: str, updates: Dict[str, Any], keepalive: bool = False) -> Entry:
        data = _rename(updates, ENTRY_FIELD_NAMES)
        result = await self._request("PUT", f"/api/entries/{entry_id}", keepalive=keepalive, json=data)
        return Entry.from_dict(result)

    async def delete_entry(self, entry_id: str) -> None:
        await self._request("DELETE", f"/api/entries/{entry_id}")

    async def archive_entry(self, entry_id: str, is_archived: bool = True) -> Entry:
        data = {"isArchived": is_archived}
        return Entry.from_dict(await self._request("PATCH", f"/api/entries/{entry_id}/archive", json=data))

    async def search_entries(self, query: str, limit: int = 20) -> List[Entry]:
        params = {"q": query, "limit": str(limit)}
        result = await self._request("GET", "/api/entries/search", params=params)
        return [Entry.from_dict(e) for e in (result or {}).get("entries", [])]

    async def list_hashtags(self) -> List[str]:
        result = await self._request("GET", "/api/entries/hashtags")
        return list((result or {}).get("hashtags", []))

    async def close(self):
        """关闭连接"""
        if self._keepalive:
            await asyncio.gather(*self._keepalive, return_exceptions=True)
        if self.session and not self.session.closed:
            await self.session.close()
