"""
URL State Manager - URL 状态管理
本模块把地址栏的查询参数作为"当前视图"的唯一数据源（选中的标签、排序、打开的面板、话题过滤）。
这样视图状态可以在重新加载后保留，也可以通过链接分享。
- IHistoryBackend: 历史记录后端接口（读取当前地址、push/replace、前进/后退）。
- InMemoryHistory: 内存实现，用于控制台和测试。
- UrlStateManager: 基于 yarl 的查询参数读写，以及订阅接口。
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Union

from yarl import URL

from ..core.models import SortField, SortOrder, parse_enum

logger = logging.getLogger(__name__)

StateChangeCallback = Callable[[], None]

ENTRIES_PATH = "/entries"
ACTIONS = ("log-entry", "edit-entry")


class IHistoryBackend(ABC):
    """
    历史记录后端接口
    浏览器中对应 window.location + window.history；这里保持接口尽量小，方便替换。
    """

    @abstractmethod
    def current_url(self) -> URL:
        pass

    @abstractmethod
    def push(self, url: URL):
        pass

    @abstractmethod
    def replace(self, url: URL):
        pass

    @abstractmethod
    def back(self):
        pass

    @abstractmethod
    def forward(self):
        pass

    @abstractmethod
    def on_pop(self, callback: StateChangeCallback):
        """注册前进/后退导航的回调"""
        pass


class InMemoryHistory(IHistoryBackend):
    """内存中的历史记录栈"""

    def __init__(self, initial: Union[str, URL] = ENTRIES_PATH):
        self._stack: List[URL] = [URL(str(initial))]
        self._index = 0
        self._pop_callbacks: List[StateChangeCallback] = []

    def current_url(self) -> URL:
        return self._stack[self._index]

    def push(self, url: URL):
        # 新的导航会丢弃"前进"部分
        del self._stack[self._index + 1:]
        self._stack.append(url)
        self._index += 1

    def replace(self, url: URL):
        self._stack[self._index] = url

    def back(self):
        if self._index > 0:
            self._index -= 1
            self._fire_pop()

    def forward(self):
        if self._index < len(self._stack) - 1:
            self._index += 1
            self._fire_pop()

    def on_pop(self, callback: StateChangeCallback):
        self._pop_callbacks.append(callback)

    def _fire_pop(self):
        for callback in list(self._pop_callbacks):
            callback()

    def __len__(self) -> int:
        return len(self._stack)


def encode_tag_name(name: str) -> str:
    """标签名转换为 URL slug（小写，空白替换为连字符）"""
    return re.sub(r'\s+', '-', name.strip().lower())


def _split_list(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


class UrlStateManager:
    """
    URL 状态管理器
    getter 解析当前查询参数；setter 构造新的参数集并 push 一条历史记录，然后通知订阅者。
    """

    def __init__(self, history: Optional[IHistoryBackend] = None):
        self.history = history or InMemoryHistory()
        self._listeners: List[StateChangeCallback] = []
        self._initialized = False

    def init(self):
        """监听前进/后退导航"""
        if not self._initialized:
            self.history.on_pop(self._notify_listeners)
            self._initialized = True

    # 内部工具

    def _url(self) -> URL:
        return self.history.current_url()

    def _params(self) -> Dict[str, str]:
        return dict(self._url().query)

    def _build_url(self, path: str, params: Dict[str, str]) -> URL:
        return URL(path).with_query(params or None)

    def _update_url(self, params: Dict[str, str], replace: bool = False):
        url = self._build_url(self._url().path or ENTRIES_PATH, params)
        if replace:
            self.history.replace(url)
        else:
            self.history.push(url)
        self._notify_listeners()

    def _push_path(self, path: str, params: Optional[Dict[str, str]] = None):
        self.history.push(self._build_url(path, params or {}))
        self._notify_listeners()

    def _notify_listeners(self):
        for callback in list(self._listeners):
            try:
                callback()
            except Exception as e:
                logger.error(f"URL state listener failed: {e}")

    def subscribe(self, callback: StateChangeCallback) -> Callable[[], None]:
        """订阅 URL 状态变化，返回取消订阅函数"""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    # 视图与标签

    def get_view(self) -> str:
        return "entries" if self._url().path == ENTRIES_PATH else "home"

    def get_selected_tag_name(self) -> Optional[str]:
        """选中标签的 slug (?tag=)"""
        return self._params().get("tag")

    def get_tag_param(self) -> Optional[str]:
        # slug 到真实标签名的映射需要标签缓存，由 Store.get_tag_by_slug 负责
        return self.get_selected_tag_name()

    def set_selected_tag_name(self, tag_name: Optional[str]):
        params = self._params()
        if tag_name:
            params["tag"] = encode_tag_name(tag_name)
        else:
            params.pop("tag", None)
        self._push_path(ENTRIES_PATH, params)

    def show_entry_list(self, tag_name: str):
        params = self._params()
        params["tag"] = encode_tag_name(tag_name)
        self._push_path(ENTRIES_PATH, params)

    def show_home(self):
        """回到没有任何查询参数的 /entries"""
        self._push_path(ENTRIES_PATH)

    # 条目详情与面板

    def get_action(self) -> Optional[str]:
        action = self._params().get("action")
        return action if action in ACTIONS else None

    def get_entry_id(self) -> Optional[str]:
        """编辑面板对应的条目 (?entryId=)"""
        return self._params().get("entryId")

    def get_detail_entry_id(self) -> Optional[str]:
        """详情页对应的条目 (?id=)"""
        return self._params().get("id")

    def show_entry_detail(self, entry_id: str):
        """打开条目详情；已经在详情页时替换当前记录而不是新增"""
        on_detail = "id" in self._params()
        params = self._params()
        params["id"] = entry_id
        self._update_url(params, replace=on_detail)

    def navigate_to_origin(self):
        params = self._params()
        params.pop("id", None)
        self._update_url(params)

    def open_log_entry_panel(self, tag_name: Optional[str] = None):
        params = self._params()
        params["action"] = "log-entry"
        if tag_name:
            params["tag"] = encode_tag_name(tag_name)
        self._update_url(params)

    def open_edit_entry_panel(self, entry_id: str, replace: bool = False):
        params = self._params()
        params["action"] = "edit-entry"
        params["entryId"] = entry_id
        self._update_url(params, replace=replace)

    def close_panel(self, replace: bool = False):
        params = self._params()
        for key in ("action", "edit", "entryId"):
            params.pop(key, None)
        self._update_url(params, replace=replace)

    # 话题过滤

    def get_hashtag_filters(self) -> List[str]:
        return _split_list(self._params().get("hashtags"))

    def set_hashtag_filters(self, hashtags: List[str]):
        params = self._params()
        if hashtags:
            params["hashtags"] = ",".join(hashtags)
        else:
            params.pop("hashtags", None)
        self._update_url(params)

    def add_hashtag_filter(self, hashtag: str):
        current = self.get_hashtag_filters()
        if hashtag not in current:
            self.set_hashtag_filters(current + [hashtag])

    def remove_hashtag_filter(self, hashtag: str):
        self.set_hashtag_filters([t for t in self.get_hashtag_filters() if t != hashtag])

    def clear_hashtag_filters(self):
        self.set_hashtag_filters([])

    # 多标签过滤

    def get_tag_filters(self) -> List[str]:
        return _split_list(self._params().get("tags"))

    def set_tag_filters(self, tags: List[str]):
        params = self._params()
        if tags:
            params["tags"] = ",".join(tags)
        else:
            params.pop("tags", None)
        self._update_url(params)

    def add_tag_filter(self, tag: str):
        current = self.get_tag_filters()
        if tag not in current:
            self.set_tag_filters(current + [tag])

    def remove_tag_filter(self, tag: str):
        self.set_tag_filters([t for t in self.get_tag_filters() if t != tag])

    def clear_tag_filters(self):
        self.set_tag_filters([])

    # 排序

    def get_sort_by(self) -> Optional[SortField]:
        return parse_enum(SortField, self._params().get("sortBy"))

    def get_sort_order(self) -> Optional[SortOrder]:
        return parse_enum(SortOrder, self._params().get("sortOrder"))

    def set_sort(self, sort_by: Optional[SortField], sort_order: Optional[SortOrder]):
        params = self._params()
        if sort_by:
            params["sortBy"] = sort_by.value
        else:
            params.pop("sortBy", None)
        if sort_order:
            params["sortOrder"] = sort_order.value
        else:
            params.pop("sortOrder", None)
        self._update_url(params)

    # 搜索

    def is_search_open(self) -> bool:
        return self._params().get("search") == "true"

    def open_search(self):
        params = self._params()
        params["search"] = "true"
        self._update_url(params)

    def close_search(self, replace: bool = False):
        """关闭搜索；replace=True 时不新增历史记录"""
        params = self._params()
        params.pop("search", None)
        self._update_url(params, replace=replace)

    def go_back(self):
        self.history.back()

    def current_url(self) -> str:
        return str(self._url())
