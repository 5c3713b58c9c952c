"""
Draft Autosave - 草稿自动保存
编辑条目时不必每次按键都请求服务端：DraftSaver 为每个条目维护一份待保存的修改和一个计时器。
- schedule: 合并新的修改并重新开始计时（防抖）。
- 计时结束后通过 Store.update_entry 保存，失败只记录日志，草稿不会阻塞后续编辑。
- flush: 退出前等待已经发出的保存，再以 keepalive 方式立即保存剩余草稿。
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_DELAY_SECONDS = 2.0


class DraftSaver:
    """
    条目草稿的防抖保存器
    每个条目最多只有一个计时器，新的修改会取消旧计时器。
    """

    def __init__(self, store, delay_seconds: float = DEFAULT_DELAY_SECONDS):
        """
        :param store: 提供 update_entry 的数据仓库。
        :param delay_seconds: 最后一次修改之后等待多久再保存。
        """
        self.store = store
        self.delay_seconds = delay_seconds
        self.drafts: Dict[str, Dict[str, Any]] = {}
        self._timers: Dict[str, asyncio.Task] = {}
        self._in_flight: Dict[asyncio.Task, str] = {}

    def has_pending(self, entry_id: Optional[str] = None) -> bool:
        if entry_id is None:
            return bool(self.drafts)
        return entry_id in self.drafts

    async def schedule(self, entry_id: str, updates: Dict[str, Any]):
        """
        记录一次修改并重置该条目的计时器。

        :param entry_id: 条目 ID。
        :param updates: 要保存的字段，与尚未保存的修改合并（后写覆盖先写）。
        """
        self.drafts.setdefault(entry_id, {}).update(updates)

        timer = self._timers.get(entry_id)
        if timer and not timer.done():
            timer.cancel()
        self._timers[entry_id] = asyncio.create_task(self._save_later(entry_id))

    async def _save_later(self, entry_id: str) -> bool:
        try:
            await asyncio.sleep(self.delay_seconds)
        except asyncio.CancelledError:
            # 被新的修改重置，或者被 flush/cancel 接管
            return False

        # 从这里开始保存请求已经发出，不能再被 schedule 取消，改由 flush 等待
        self._timers.pop(entry_id, None)
        updates = self.drafts.pop(entry_id, None)
        if not updates:
            return False

        task = asyncio.current_task()
        self._in_flight[task] = entry_id
        try:
            return await self._save(entry_id, updates)
        finally:
            self._in_flight.pop(task, None)

    async def _save(self, entry_id: str, updates: Dict[str, Any], keepalive: bool = False) -> bool:
        try:
            await self.store.update_entry(entry_id, updates, keepalive=keepalive)
            logger.info(f"Saved draft for entry {entry_id}")
            return True
        except Exception as e:
            logger.error(f"Error saving draft for entry {entry_id}: {e}")
            return False

    async def flush(self) -> List[str]:
        """
        取消所有计时器，等待已经发出的保存完成，然后立即保存剩余草稿。
        已发出的保存先完成，同一条目较新的草稿随后写入。

        :return: 保存成功的条目 ID 列表（包括等待到的已发出保存）。
        """
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

        saved = []
        in_flight = list(self._in_flight.items())
        if in_flight:
            results = await asyncio.gather(*(task for task, _ in in_flight), return_exceptions=True)
            saved.extend(entry_id for (_, entry_id), ok in zip(in_flight, results) if ok is True)

        drafts, self.drafts = self.drafts, {}
        for entry_id, updates in drafts.items():
            if await self._save(entry_id, updates, keepalive=True):
                saved.append(entry_id)
        return saved

    def cancel(self, entry_id: Optional[str] = None):
        """丢弃草稿；不传 entry_id 时丢弃全部"""
        entry_ids = [entry_id] if entry_id is not None else list(self.drafts)
        for key in entry_ids:
            self.drafts.pop(key, None)
            timer = self._timers.pop(key, None)
            if timer:
                timer.cancel()
