"""
Client Data Store - 客户端数据仓库
本模块是客户端状态的核心：在内存中缓存当前会话的标签和条目，并对外提供一致、可订阅的视图。
- 乐观更新：先修改本地缓存并通知订阅者，再在后台调用远程接口；失败时完整回滚后重新抛出异常。
- 游标分页：reset_pagination 替换整个列表，load_more_entries 追加下一页。
- 观察者模式：subscribe 注册监听器，每次状态变化调用 notify。
读取接口一律返回副本，外部代码无法绕过 notify 直接修改缓存。

并发说明：所有方法运行在同一个事件循环中，同步部分不会交错执行，但异步的后续部分可能交错。
对同一个条目连续发起的两个操作各自基于自己开始时的状态做快照，较晚失败的回滚可能覆盖另一个操作的结果。
这里有意不按条目串行化，以保持每个操作的延迟特征。
"""

import asyncio
import itertools
import logging
import time
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..core.exceptions import NotFoundException, TracklyException, ValidationException
from ..core.models import (
    Entry, EntryPage, PaginationCursor, PaginationState, SortField, SortOrder, Tag, parse_timestamp,
)
from ..services.trackly_api import ITracklyRepository
from .url_state import UrlStateManager, encode_tag_name

logger = logging.getLogger(__name__)

StoreListener = Callable[[], None]
Unsubscribe = Callable[[], None]

DEFAULT_PAGE_SIZE = 30
TEMP_ID_PREFIX = "temp-"


def is_temporary_id(entry_id: str) -> bool:
    """乐观创建阶段使用的临时 ID"""
    return entry_id.startswith(TEMP_ID_PREFIX)


class Store:
    """
    客户端数据仓库
    通过构造函数注入仓储和 URL 状态管理器，测试时可以替换为内存实现。
    """

    def __init__(self, repository: ITracklyRepository, url_state: UrlStateManager,
                 config: Optional[Dict[str, Any]] = None):
        """
        初始化仓库。构造后为空状态，需要调用 load_data 完成首次加载。

        :param repository: 实现了 ITracklyRepository 接口的远程数据网关。
        :param url_state: URL 状态管理器，提供排序和过滤条件。
        :param config: 配置字典，读取 store.page_size。
        """
        self.repository = repository
        self.url_state = url_state
        self.config = config or {}
        self.page_size = self.config.get("store", {}).get("page_size", DEFAULT_PAGE_SIZE)

        self._tags: List[Tag] = []
        self._entries: List[Entry] = []
        self._listeners: List[StoreListener] = []
        self._selected_tag_id: Optional[str] = None
        self._is_loaded = False
        self._entry_version = 0
        self._pagination = PaginationState()
        self._page_generation = 0
        self._temp_seq = itertools.count(1)
        self._url_view: Optional[Tuple] = None
        self._background_tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # 订阅与通知
    # ------------------------------------------------------------------

    def subscribe(self, listener: StoreListener) -> Unsubscribe:
        """注册监听器，返回取消订阅函数（只移除这个监听器）"""
        self._listeners.append(listener)

        def unsubscribe():
            self._listeners = [l for l in self._listeners if l is not listener]

        return unsubscribe

    def _notify(self):
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.error(f"Store listener failed: {e}")

    def _bump(self):
        self._entry_version += 1

    # ------------------------------------------------------------------
    # 状态读取
    # ------------------------------------------------------------------

    @property
    def is_loaded(self) -> bool:
        return self._is_loaded

    @property
    def entry_version(self) -> int:
        """条目结构每变化一次加一，用于廉价地判断"条目是否变化" """
        return self._entry_version

    def get_pagination_state(self) -> PaginationState:
        return replace(self._pagination)

    def get_selected_tag_id(self) -> Optional[str]:
        return self._selected_tag_id

    # ------------------------------------------------------------------
    # 加载
    # ------------------------------------------------------------------

    def _current_sort(self) -> Tuple[SortField, SortOrder]:
        sort_by = self.url_state.get_sort_by() or SortField.TIMESTAMP
        sort_order = self.url_state.get_sort_order() or SortOrder.DESC
        return sort_by, sort_order

    async def _fetch_page(self, cursor: Optional[PaginationCursor] = None,
                          sort_by: Optional[SortField] = None,
                          sort_order: Optional[SortOrder] = None) -> EntryPage:
        """按当前标签选择、话题过滤和排序获取一页条目"""
        return await self.repository.list_entries(
            tag_ids=[self._selected_tag_id] if self._selected_tag_id else None,
            sort_by=sort_by or self.url_state.get_sort_by(),
            sort_order=sort_order or self.url_state.get_sort_order(),
            include_archived=True,
            limit=self.page_size,
            after=cursor.after if cursor else None,
            after_id=cursor.after_id if cursor else None,
            hashtags=self.url_state.get_hashtag_filters() or None,
        )

    async def load_data(self, sort_by: Optional[SortField] = None, sort_order: Optional[SortOrder] = None):
        """
        首次加载：先获取全部标签，再获取第一页条目。
        失败时只记录日志，is_loaded 保持 False，由调用方决定是否重试。
        """
        try:
            tags = await self.repository.list_tags()
            if self._selected_tag_id is None:
                # 链接中带了 ?tag=slug 时，用刚取到的标签解析出 ID 作为过滤条件
                slug = self.url_state.get_selected_tag_name()
                tag = next((t for t in tags if encode_tag_name(t.name) == slug), None) if slug else None
                self._selected_tag_id = tag.id if tag else None
            self._page_generation += 1
            generation = self._page_generation
            page = await self._fetch_page(sort_by=sort_by, sort_order=sort_order)
        except TracklyException as e:
            logger.error(f"Error loading data: {e}")
            return

        self._tags = tags
        if generation == self._page_generation:
            self._entries = list(page.entries)
            self._pagination = PaginationState(has_more=page.has_more, next_cursor=page.next_cursor)
        else:
            # 加载期间已经有一次更新的重置完成，保留它的结果
            logger.info("Discarding initial page superseded by a reload")
        self._is_loaded = True
        self._bump()
        logger.info(f"Loaded {len(self._tags)} tags and {len(self._entries)} entries")
        self._notify()

    async def reset_pagination(self):
        """
        清空游标并重新获取第一页，替换（而不是追加）整个条目列表。
        过滤或排序条件变化时调用。
        """
        self._page_generation += 1
        generation = self._page_generation
        previous = self._pagination
        self._pagination = PaginationState(has_more=True, next_cursor=None)

        try:
            page = await self._fetch_page()
        except TracklyException as e:
            logger.error(f"Error reloading entries: {e}")
            if generation == self._page_generation:
                # 旧列表仍在缓存中，游标也必须对应旧列表；进行中的 load_more 已被作废
                self._pagination = replace(previous, is_loading_more=False)
                self._notify()
            return

        if generation != self._page_generation:
            # 期间又发生了一次重置，以较新的为准
            return

        self._entries = list(page.entries)
        self._pagination = PaginationState(has_more=page.has_more, next_cursor=page.next_cursor)
        self._bump()
        self._notify()

    async def load_more_entries(self):
        """
        加载下一页并追加到现有列表末尾。
        没有更多数据或正在加载时什么都不做；失败时静默，可以再次调用重试。
        """
        state = self._pagination
        if not state.has_more or state.is_loading_more:
            return

        state.is_loading_more = True
        self._notify()
        generation = self._page_generation

        try:
            page = await self._fetch_page(cursor=state.next_cursor)
        except TracklyException as e:
            logger.error(f"Error loading more entries: {e}")
            if generation == self._page_generation:
                state.is_loading_more = False
                self._notify()
            return

        if generation != self._page_generation:
            logger.info("Discarding page fetched before the last reset")
            return

        known_ids = {e.id for e in self._entries}
        self._entries.extend(e for e in page.entries if e.id not in known_ids)
        state.has_more = page.has_more
        state.next_cursor = page.next_cursor
        state.is_loading_more = False
        self._bump()
        self._notify()

    # ------------------------------------------------------------------
    # 排序
    # ------------------------------------------------------------------

    def _sort_local(self):
        sort_by, sort_order = self._current_sort()
        # list.sort 是稳定排序，reverse=True 同样保持相等元素的相对顺序
        self._entries.sort(key=lambda e: e.sort_value(sort_by), reverse=sort_order is SortOrder.DESC)

    def sort_entries_locally(self):
        """按 URL 中的排序条件对已加载的条目重新排序，不发起远程请求"""
        self._sort_local()
        self._bump()
        self._notify()

    sort_entries = sort_entries_locally

    # ------------------------------------------------------------------
    # 标签
    # ------------------------------------------------------------------

    def get_tags(self) -> List[Tag]:
        return list(self._tags)

    def get_tag_by_id(self, tag_id: str) -> Optional[Tag]:
        return next((t for t in self._tags if t.id == tag_id), None)

    def get_tag_by_name(self, name: str) -> Optional[Tag]:
        return next((t for t in self._tags if t.name == name), None)

    def get_tag_by_slug(self, slug: str) -> Optional[Tag]:
        return next((t for t in self._tags if encode_tag_name(t.name) == slug), None)

    async def add_tag(self, tag: Tag) -> Tag:
        """创建标签；名称在本地缓存中已存在时直接拒绝"""
        errors = tag.validate()
        if errors:
            raise ValidationException(errors)
        if self.get_tag_by_name(tag.name) is not None:
            raise ValidationException(["A tag with this name already exists"])

        created = await self.repository.create_tag(tag)
        self._tags.append(created)
        self._notify()
        return created

    async def update_tag(self, tag_id: str, updates: Dict[str, Any]) -> Tag:
        index = next((i for i, t in enumerate(self._tags) if t.id == tag_id), -1)
        if index == -1:
            raise NotFoundException("Tag not found")

        updated = await self.repository.update_tag(tag_id, updates)
        self._tags[index] = updated

        # 条目上冗余保存的标签名一起更新
        renamed = False
        for i, entry in enumerate(self._entries):
            if any(t.tag_id == tag_id and t.tag_name != updated.name for t in entry.tags):
                tags = [replace(t, tag_name=updated.name) if t.tag_id == tag_id else t for t in entry.tags]
                self._entries[i] = replace(entry, tags=tags)
                renamed = True
        if renamed:
            self._bump()
        self._notify()
        return updated

    async def delete_tag(self, tag_id: str):
        """删除标签，并从缓存的条目上移除该标签的关联"""
        await self.repository.delete_tag(tag_id)

        self._tags = [t for t in self._tags if t.id != tag_id]
        self._entries = [e.without_tag(tag_id) if e.has_tag(tag_id) else e for e in self._entries]
        if self._selected_tag_id == tag_id:
            self._selected_tag_id = None
        self._bump()
        self._notify()

    async def set_selected_tag_id(self, tag_id: Optional[str]):
        """切换选中的标签；值变化时重新加载第一页，因为服务端过滤条件变了"""
        if tag_id == self._selected_tag_id:
            return
        self._selected_tag_id = tag_id
        await self.reset_pagination()

    # ------------------------------------------------------------------
    # 条目读取
    # ------------------------------------------------------------------

    def get_entries(self) -> List[Entry]:
        """已缓存的未归档条目"""
        return [e for e in self._entries if not e.is_archived]

    def get_all_entries(self) -> List[Entry]:
        return list(self._entries)

    def get_entries_by_tag_id(self, tag_id: str, include_archived: bool = False) -> List[Entry]:
        return [e for e in self._entries if e.has_tag(tag_id) and (include_archived or not e.is_archived)]

    def get_entry_by_id(self, entry_id: str) -> Optional[Entry]:
        return next((e for e in self._entries if e.id == entry_id), None)

    def _index_of(self, entry_id: str) -> int:
        return next((i for i, e in enumerate(self._entries) if e.id == entry_id), -1)

    async def fetch_entry(self, entry_id: str) -> Entry:
        """获取单个条目：优先使用缓存，否则单独请求（例如从链接直接打开），结果不写入缓存"""
        cached = self.get_entry_by_id(entry_id)
        if cached is not None:
            return cached
        return await self.repository.get_entry(entry_id)

    async def search_entries(self, query: str, limit: int = 20) -> List[Entry]:
        return await self.repository.search_entries(query, limit)

    async def get_hashtags(self) -> List[str]:
        return await self.repository.list_hashtags()

    # ------------------------------------------------------------------
    # 条目修改（乐观更新）
    # ------------------------------------------------------------------

    def _next_temp_id(self) -> str:
        return f"{TEMP_ID_PREFIX}{int(time.time() * 1000)}-{next(self._temp_seq)}"

    async def add_entry(self, entry: Entry) -> Entry:
        """
        乐观创建条目。

        :param entry: 待创建的条目。
        :return: 服务端返回的条目（真实 ID、解析后的标签）。
        :raises ValidationException: 本地校验失败，不会发起远程调用。
        :raises TracklyApiException: 远程创建失败，本地占位条目已移除。
        """
        errors = entry.validate()
        if errors:
            raise ValidationException(errors)

        temp_id = self._next_temp_id()
        self._entries.insert(0, replace(entry, id=temp_id))
        self._bump()
        self._notify()

        try:
            created = await self.repository.create_entry(entry.tag_ids, entry.title, entry.timestamp, entry.notes)
        except Exception:
            index = self._index_of(temp_id)
            if index != -1:
                del self._entries[index]
                self._bump()
            self._notify()
            raise

        index = self._index_of(temp_id)
        if index != -1:
            self._entries[index] = created
        self._sort_local()
        self._bump()
        self._notify()
        return created

    async def update_entry(self, entry_id: str, updates: Dict[str, Any], keepalive: bool = False) -> Entry:
        """
        乐观更新条目。

        :param entry_id: 条目 ID。
        :param updates: 要更新的字段；tag_ids 只发送给服务端，本地等待服务端解析出标签名后再替换。
        :param keepalive: 传输层提示：调用方即将退出时也要完成请求。
        :return: 服务端返回的条目。
        """
        if "timestamp" in updates and parse_timestamp(updates["timestamp"]) is None:
            raise ValidationException(["Invalid timestamp"])

        index = self._index_of(entry_id)
        if index == -1:
            # 不在缓存中（例如单独获取的条目），直接调用远程接口
            return await self.repository.update_entry(entry_id, updates, keepalive=keepalive)

        original = self._entries[index]
        self._entries[index] = original.with_updates(updates)
        self._bump()
        self._notify()

        try:
            updated = await self.repository.update_entry(entry_id, updates, keepalive=keepalive)
        except Exception:
            index = self._index_of(entry_id)
            if index != -1:
                self._entries[index] = original
                self._bump()
            self._notify()
            raise

        index = self._index_of(entry_id)
        if index != -1:
            self._entries[index] = updated
        if "timestamp" in updates:
            self._sort_local()
        self._bump()
        self._notify()
        return updated

    async def delete_entry(self, entry_id: str):
        """乐观删除条目；失败时放回原来的位置"""
        index = self._index_of(entry_id)
        if index == -1:
            await self.repository.delete_entry(entry_id)
            return

        original = self._entries.pop(index)
        self._bump()
        self._notify()

        try:
            await self.repository.delete_entry(entry_id)
        except Exception:
            self._entries.insert(min(index, len(self._entries)), original)
            self._bump()
            self._notify()
            raise

    async def archive_entry(self, entry_id: str, is_archived: bool = True) -> Optional[Entry]:
        """
        乐观归档（或取消归档）条目。
        归档后的条目留在缓存中但被 get_entries 过滤掉，所以可见效果与删除相同，但服务端可以恢复。
        """
        index = self._index_of(entry_id)
        if index == -1:
            return await self.repository.archive_entry(entry_id, is_archived)

        original = self._entries[index]
        self._entries[index] = replace(original, is_archived=is_archived)
        self._bump()
        self._notify()

        try:
            archived = await self.repository.archive_entry(entry_id, is_archived)
        except Exception:
            index = self._index_of(entry_id)
            if index != -1:
                self._entries[index] = original
                self._bump()
            self._notify()
            raise

        index = self._index_of(entry_id)
        if index != -1:
            self._entries[index] = archived
        self._bump()
        self._notify()
        return archived

    # ------------------------------------------------------------------
    # URL 状态联动
    # ------------------------------------------------------------------

    def _snapshot_url_view(self) -> Tuple:
        return (
            self.url_state.get_selected_tag_name(),
            tuple(self.url_state.get_hashtag_filters()),
            self.url_state.get_sort_by(),
            self.url_state.get_sort_order(),
        )

    def watch_url_state(self) -> Unsubscribe:
        """
        订阅 URL 状态变化：
        - 标签 slug 变化 -> set_selected_tag_id（重新加载）
        - 话题过滤变化 -> reset_pagination
        - 仅排序变化 -> 全部数据已加载时本地排序，否则重新加载
        """
        self._url_view = self._snapshot_url_view()
        return self.url_state.subscribe(self._on_url_change)

    def _on_url_change(self):
        previous, current = self._url_view, self._snapshot_url_view()
        self._url_view = current
        if previous == current:
            return

        tag_slug, hashtags, sort_by, sort_order = current
        sort_changed = (sort_by, sort_order) != previous[2:]
        reload = hashtags != previous[1] or (sort_changed and self._pagination.has_more)

        if tag_slug != previous[0]:
            # 选中的标签在任务真正运行时才从 URL 解析，同一轮中连续的多次切换以最后一次为准
            self._schedule(self._apply_url_tag(reload, resort=sort_changed))
        elif reload:
            self._schedule(self.reset_pagination())
        elif sort_changed:
            self.sort_entries_locally()

    async def _apply_url_tag(self, reload: bool, resort: bool = False):
        slug = self.url_state.get_selected_tag_name()
        tag = self.get_tag_by_slug(slug) if slug else None
        tag_id = tag.id if tag else None
        if tag_id != self._selected_tag_id:
            await self.set_selected_tag_id(tag_id)
        elif reload:
            await self.reset_pagination()
        elif resort:
            self.sort_entries_locally()

    def _schedule(self, coro):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop, skipping store refresh")
            return
        task = loop.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def wait_for_background_tasks(self):
        """等待 URL 变化触发的后台刷新完成"""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks))
