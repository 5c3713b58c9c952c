"""
Template rendering utilities
模板渲染工具，采用模板方法模式
控制台输出全部是纯文本模板，可以通过 ui_preferences.custom_templates 按名称覆盖。
"""

from abc import ABC, abstractmethod
from typing import Dict, Any

from jinja2 import Environment, DictLoader

from ..core.models import parse_timestamp

TEMPLATE_NAMES = ('entry_list', 'entry_detail', 'tag_list', 'search_results', 'help')


def short_time(value: str) -> str:
    """ISO 时间显示为 YYYY-MM-DD HH:MM，无法解析时原样返回"""
    parsed = parse_timestamp(value)
    return parsed.strftime("%Y-%m-%d %H:%M") if parsed else (value or "")


def preview(text: str, length: int = 80) -> str:
    """单行预览"""
    flat = " ".join((text or "").split())
    return flat if len(flat) <= length else flat[:length].rstrip() + "..."


def tag_names(tags) -> str:
    """条目关联的标签名，形如 #Health #Run"""
    return " ".join(f"#{t.tag_name}" for t in tags)


class ITemplateRenderer(ABC):
    """模板渲染器接口"""

    @abstractmethod
    async def render(self, template_name: str, data: Dict[str, Any]) -> str:
        """渲染模板"""
        pass


class Jinja2TemplateRenderer(ITemplateRenderer):
    """Jinja2 模板渲染器实现"""

    def __init__(self, config: Dict[str, Any] = None):
        self.config = config or {}
        self.templates = {
            'entry_list': self._get_entry_list_template(),
            'entry_detail': self._get_entry_detail_template(),
            'tag_list': self._get_tag_list_template(),
            'search_results': self._get_search_results_template(),
            'help': self._get_help_template(),
        }
        self._load_custom_templates()
        self.env = Environment(loader=DictLoader(self.templates), trim_blocks=True, lstrip_blocks=True)
        self.env.filters['short_time'] = short_time
        self.env.filters['preview'] = preview
        self.env.filters['tag_names'] = tag_names

    def _load_custom_templates(self):
        """加载自定义模板，只接受已知的模板名"""
        custom_config = self.config.get("ui_preferences", {}).get("custom_templates", {})
        for name in TEMPLATE_NAMES:
            if custom_config.get(name):
                self.templates[name] = custom_config[name]

    def _preferences(self) -> Dict[str, Any]:
        return self.config.get("ui_preferences", {})

    def _get_entry_list_template(self) -> str:
        """条目列表：每条一行，非紧凑模式下附带笔记预览"""
        compact_mode = self._preferences().get("compact_mode", False)
        show_timestamps = self._preferences().get("show_timestamps", True)
        preview_length = self._preferences().get("notes_preview_length", 80)

        time_part = "{{ entry.timestamp|short_time }}  " if show_timestamps else ""
        notes_part = "" if compact_mode else (
            "{% if entry.notes %}\n"
            f"    {{{{ entry.notes|preview({preview_length}) }}}}\n"
            "{% endif %}\n"
        )

        return (
            "Entries{{ ' - #' + tag.name if tag else '' }}"
            "{{ ' (' + filters|join(', ') + ')' if filters else '' }}\n"
            "{% for entry in entries %}\n"
            f"[{{{{ entry.id }}}}] {time_part}{{{{ entry.title or '(untitled)' }}}}"
            "{{ ' ' + entry.tags|tag_names if entry.tags else '' }}\n"
            f"{notes_part}"
            "{% else %}\n"
            "No entries yet.\n"
            "{% endfor %}\n"
            "{% if has_more %}\n"
            "... /more to load older entries\n"
            "{% endif %}"
        )

    def _get_entry_detail_template(self) -> str:
        return (
            "{{ entry.title or '(untitled)' }}{{ ' [archived]' if entry.is_archived else '' }}\n"
            "id: {{ entry.id }}\n"
            "time: {{ entry.timestamp|short_time }}\n"
            "{% if entry.tags %}\n"
            "tags: {{ entry.tags|tag_names }}\n"
            "{% endif %}\n"
            "{% if entry.hashtags %}\n"
            "hashtags: {{ entry.hashtags|join(', ') }}\n"
            "{% endif %}\n"
            "{% if entry.notes %}\n"
            "\n"
            "{{ entry.notes }}\n"
            "{% endif %}"
        )

    def _get_tag_list_template(self) -> str:
        return (
            "Tags\n"
            "{% for tag in tags %}\n"
            "{{ '*' if tag.id == selected_tag_id else '-' }} #{{ tag.name }} "
            "({{ tag.type.value if tag.type else '?' }}) {{ counts.get(tag.id, 0) }}"
            "{{ ' [' + tag.categories|join(', ') + ']' if tag.categories else '' }}\n"
            "{% else %}\n"
            "No tags yet. Create one with /newtag <name> <type>\n"
            "{% endfor %}"
        )

    def _get_search_results_template(self) -> str:
        preview_length = self._preferences().get("notes_preview_length", 80)
        return (
            "Search \"{{ query }}\": {{ entries|length }} result(s)\n"
            "{% for entry in entries %}\n"
            "[{{ entry.id }}] {{ entry.timestamp|short_time }}  {{ entry.title or '(untitled)' }}\n"
            "{% if entry.notes %}\n"
            f"    {{{{ entry.notes|preview({preview_length}) }}}}\n"
            "{% endif %}\n"
            "{% endfor %}"
        )

    def _get_help_template(self) -> str:
        return (
            "Trackly commands\n"
            "  /login <email> <password>            sign in\n"
            "  /log <title> [#Tag ...] [-- notes]   log an entry\n"
            "  /list [tag]                          list entries\n"
            "  /more                                load the next page\n"
            "  /show <id>                           entry details\n"
            "  /edit <id> <field> <value>           title, notes or timestamp\n"
            "  /draft <id> <field> <value>          same as /edit, saved after a pause\n"
            "  /archive <id> | /unarchive <id>      hide or restore an entry\n"
            "  /del <id>                            delete an entry\n"
            "  /tags                                list tags\n"
            "  /tag [name]                          select or clear the tag filter\n"
            "  /newtag <name> <type> [categories]   create a tag\n"
            "  /filter [#hashtag ...]               filter by hashtags\n"
            "  /sort <timestamp|createdAt> [asc|desc]\n"
            "  /find <query>                        search entries\n"
            "  /back                                previous view\n"
            "  /help                                this help\n"
            "{% if types %}\n"
            "Tag types: {{ types|join(', ') }}\n"
            "{% endif %}"
        )

    async def render(self, template_name: str, data: Dict[str, Any]) -> str:
        """渲染模板"""
        template = self.env.get_template(template_name)
        return template.render(**data).rstrip()
