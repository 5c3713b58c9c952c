"""
Command Handlers - 命令处理器
本模块采用命令模式（Command Pattern）和工厂模式（Factory Pattern）。
- ICommandHandler: 定义了所有命令处理器的统一接口（命令接口）。
- 每个具体命令处理器（如 LogCommandHandler, ListCommandHandler）封装了执行特定命令（如 /log, /list）所需的所有逻辑。
- CommandFactory（在 command_factory.py 中）负责根据命令名称返回相应的处理器实例。

处理器只通过 app 上的组件工作：视图状态写入 UrlStateManager，数据读写走 Store。
TracklyException 由 TracklyApp 统一捕获并转换为 error_general 响应；这里只处理需要特别提示的情况。
"""

from abc import ABC, abstractmethod
from collections import Counter
from typing import List, Optional, Tuple

from ..core.exceptions import CommandException, TracklyApiException
from ..core.models import Entry, SortField, SortOrder, Tag, TagType, parse_enum

EDITABLE_FIELDS = ("title", "notes", "timestamp")
NOTES_SEPARATOR = "--"


class ICommandHandler(ABC):
    """
    命令处理器接口（Command Interface）
    定义了所有具体命令处理器必须实现的 `handle` 方法。
    """

    def __init__(self, app):
        self.app = app

    @abstractmethod
    async def handle(self, args: List[str]) -> Optional[str]:
        """
        处理命令的抽象方法。

        :param args: 解析后的命令参数列表。
        :return: 回复给用户的文本；为 None 时不回复。
        """
        pass

    def _resolve_tag(self, name: str) -> Optional[Tag]:
        """按名称（不区分大小写）或 slug 查找已缓存的标签"""
        name = name.lstrip("#")
        store = self.app.store
        tag = store.get_tag_by_name(name) or store.get_tag_by_slug(name.lower())
        if tag is None:
            tag = next((t for t in store.get_tags() if t.name.lower() == name.lower()), None)
        return tag

    async def _render_entry_list(self) -> str:
        store = self.app.store
        selected = store.get_selected_tag_id()
        entries = store.get_entries_by_tag_id(selected) if selected else store.get_entries()
        return await self.app.template_renderer.render('entry_list', {
            'entries': entries,
            'tag': store.get_tag_by_id(selected) if selected else None,
            'filters': [f"#{h}" for h in self.app.url_state.get_hashtag_filters()],
            'has_more': store.get_pagination_state().has_more,
        })


def _require_id(args: List[str], usage: str) -> str:
    if not args:
        raise CommandException(f"Usage: {usage}")
    return args[0]


class LoginCommandHandler(ICommandHandler):
    """'/login' 命令：登录后重新加载数据"""

    async def handle(self, args: List[str]) -> Optional[str]:
        if len(args) < 2:
            raise CommandException("Usage: /login <email> <password>")

        response = await self.app.api_client.login(args[0], args[1])
        await self.app.store.load_data()
        return f"Logged in as {response.user.name or response.user.email}"


class LogCommandHandler(ICommandHandler):
    """
    '/log' 命令：记录一个条目
    格式: /log 标题 #标签 -- 笔记
    以 # 开头的词先按标签名匹配；匹配不到的保留在标题中（可能是话题标签）。
    没有指定标签时使用当前选中的标签。
    """

    def _parse(self, text: str) -> Tuple[str, str, List[Tag]]:
        head, _, notes = text.partition(NOTES_SEPARATOR)
        words, tags = [], []
        for word in head.split():
            tag = self._resolve_tag(word) if word.startswith("#") and len(word) > 1 else None
            if tag is not None:
                if tag not in tags:
                    tags.append(tag)
            else:
                words.append(word)
        return " ".join(words), notes.strip(), tags

    async def handle(self, args: List[str]) -> Optional[str]:
        if not args:
            raise CommandException("Usage: /log <title> [#Tag ...] [-- notes]")

        title, notes, tags = self._parse(" ".join(args))
        if not tags:
            selected = self.app.store.get_selected_tag_id()
            tag = self.app.store.get_tag_by_id(selected) if selected else None
            if tag:
                tags = [tag]

        created = await self.app.store.add_entry(Entry.new(title, notes=notes, tags=tags))
        return self.app.response_manager.entry_created(created.title)


class ListCommandHandler(ICommandHandler):
    """'/list' 命令：显示条目列表，可选切换标签"""

    async def handle(self, args: List[str]) -> Optional[str]:
        if args:
            tag = self._resolve_tag(" ".join(args))
            if tag is None:
                return self.app.response_manager.error_not_found(" ".join(args), "tag")
            self.app.url_state.show_entry_list(tag.name)
            await self.app.store.wait_for_background_tasks()
        return await self._render_entry_list()


class MoreCommandHandler(ICommandHandler):
    """'/more' 命令：加载下一页"""

    async def handle(self, args: List[str]) -> Optional[str]:
        if not self.app.store.get_pagination_state().has_more:
            return self.app.response_manager.no_more_entries()
        await self.app.store.load_more_entries()
        return await self._render_entry_list()


class ShowCommandHandler(ICommandHandler):
    """'/show' 命令：显示条目详情"""

    async def handle(self, args: List[str]) -> Optional[str]:
        entry_id = _require_id(args, "/show <id>")
        try:
            entry = await self.app.store.fetch_entry(entry_id)
        except TracklyApiException as e:
            if e.status == 404:
                return self.app.response_manager.error_not_found(entry_id)
            raise

        self.app.url_state.show_entry_detail(entry.id)
        return await self.app.template_renderer.render('entry_detail', {'entry': entry})


class EditCommandHandler(ICommandHandler):
    """'/edit' 命令：立即修改条目的一个字段"""

    usage = "/edit <id> <title|notes|timestamp> <value>"

    def _parse(self, args: List[str]) -> Tuple[str, str, str]:
        if len(args) < 2 or args[1] not in EDITABLE_FIELDS:
            raise CommandException(f"Usage: {self.usage}")
        return args[0], args[1], " ".join(args[2:])

    async def handle(self, args: List[str]) -> Optional[str]:
        entry_id, field_name, value = self._parse(args)

        url_state = self.app.url_state
        # 编辑面板只是临时状态，不留下历史记录
        url_state.open_edit_entry_panel(entry_id, replace=True)
        try:
            updated = await self.app.store.update_entry(entry_id, {field_name: value})
        finally:
            url_state.close_panel(replace=True)
        return self.app.response_manager.entry_updated(updated.title)


class DraftCommandHandler(EditCommandHandler):
    """'/draft' 命令：暂存修改，由 DraftSaver 延迟自动保存"""

    usage = "/draft <id> <title|notes|timestamp> <value>"

    async def handle(self, args: List[str]) -> Optional[str]:
        entry_id, field_name, value = self._parse(args)
        saver = self.app.draft_saver
        await saver.schedule(entry_id, {field_name: value})
        return self.app.response_manager.draft_scheduled(entry_id, saver.delay_seconds)


class ArchiveCommandHandler(ICommandHandler):
    """'/archive' 与 '/unarchive' 命令"""

    def __init__(self, app, is_archived: bool = True):
        super().__init__(app)
        self.is_archived = is_archived

    async def handle(self, args: List[str]) -> Optional[str]:
        command = "/archive" if self.is_archived else "/unarchive"
        entry_id = _require_id(args, f"{command} <id>")
        await self.app.store.archive_entry(entry_id, self.is_archived)
        return self.app.response_manager.entry_archived(entry_id, self.is_archived)


class DeleteCommandHandler(ICommandHandler):
    """'/del' 命令：删除条目"""

    async def handle(self, args: List[str]) -> Optional[str]:
        entry_id = _require_id(args, "/del <id>")
        await self.app.store.delete_entry(entry_id)
        return self.app.response_manager.entry_deleted(entry_id)


class TagsCommandHandler(ICommandHandler):
    """'/tags' 命令：列出标签和已加载条目的数量"""

    async def handle(self, args: List[str]) -> Optional[str]:
        store = self.app.store
        counts = Counter(tag_id for entry in store.get_entries() for tag_id in entry.tag_ids)
        return await self.app.template_renderer.render('tag_list', {
            'tags': store.get_tags(),
            'counts': counts,
            'selected_tag_id': store.get_selected_tag_id(),
        })


class TagCommandHandler(ICommandHandler):
    """'/tag' 命令：选中一个标签作为过滤条件，不带参数时清除"""

    async def handle(self, args: List[str]) -> Optional[str]:
        url_state = self.app.url_state
        if args:
            tag = self._resolve_tag(" ".join(args))
            if tag is None:
                return self.app.response_manager.error_not_found(" ".join(args), "tag")
            url_state.set_selected_tag_name(tag.name)
        else:
            url_state.set_selected_tag_name(None)
        await self.app.store.wait_for_background_tasks()
        return await self._render_entry_list()


class NewTagCommandHandler(ICommandHandler):
    """
    '/newtag' 命令：创建标签
    格式: /newtag 名称 类型 [分类1,分类2]
    名称中的下划线会替换为空格，例如 Morning_Run -> "Morning Run"。
    """

    async def handle(self, args: List[str]) -> Optional[str]:
        if len(args) < 2:
            types = ", ".join(t.value for t in TagType)
            raise CommandException(f"Usage: /newtag <name> <type> [categories]. Types: {types}")

        tag_type = parse_enum(TagType, args[1]) or next(
            (t for t in TagType if t.value.lower() == args[1].lower()), None)
        if tag_type is None:
            raise CommandException(f"Unknown tag type: {args[1]}")

        categories = args[2].split(",") if len(args) > 2 else []
        tag = Tag.new(args[0].replace("_", " "), tag_type, categories)
        created = await self.app.store.add_tag(tag)
        return self.app.response_manager.tag_created(created.name, created.type.value if created.type else "")


class FilterCommandHandler(ICommandHandler):
    """'/filter' 命令：设置话题标签过滤，不带参数时清除"""

    async def handle(self, args: List[str]) -> Optional[str]:
        hashtags = []
        for arg in args:
            hashtag = arg.lstrip("#").lower()
            if hashtag and hashtag not in hashtags:
                hashtags.append(hashtag)

        self.app.url_state.set_hashtag_filters(hashtags)
        await self.app.store.wait_for_background_tasks()
        return self.app.response_manager.filter_changed([f"#{h}" for h in hashtags])


class SortCommandHandler(ICommandHandler):
    """'/sort' 命令：切换排序字段和方向"""

    async def handle(self, args: List[str]) -> Optional[str]:
        if not args:
            raise CommandException("Usage: /sort <timestamp|createdAt> [asc|desc]")

        sort_by = parse_enum(SortField, args[0]) or next(
            (f for f in SortField if f.value.lower() == args[0].lower()), None)
        sort_order = parse_enum(SortOrder, args[1].lower()) if len(args) > 1 else SortOrder.DESC
        if sort_by is None or sort_order is None:
            raise CommandException("Usage: /sort <timestamp|createdAt> [asc|desc]")

        self.app.url_state.set_sort(sort_by, sort_order)
        await self.app.store.wait_for_background_tasks()
        return self.app.response_manager.sort_changed(sort_by.value, sort_order.value)


class FindCommandHandler(ICommandHandler):
    """'/find' 命令：全文搜索"""

    async def handle(self, args: List[str]) -> Optional[str]:
        if not args:
            raise CommandException("Usage: /find <query>")

        query = " ".join(args)
        entries = await self.app.store.search_entries(query)
        return await self.app.template_renderer.render('search_results', {'query': query, 'entries': entries})


class BackCommandHandler(ICommandHandler):
    """'/back' 命令：回到上一个视图"""

    async def handle(self, args: List[str]) -> Optional[str]:
        self.app.url_state.go_back()
        await self.app.store.wait_for_background_tasks()
        return await self._render_entry_list()


class HelpCommandHandler(ICommandHandler):
    """'/help' 命令"""

    async def handle(self, args: List[str]) -> Optional[str]:
        return await self.app.template_renderer.render('help', {'types': [t.value for t in TagType]})
