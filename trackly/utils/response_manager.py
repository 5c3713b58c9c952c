"""
Response Manager
响应管理器，支持自定义响应内容和占位符替换
"""

from typing import Dict, Any, List, Optional


class ResponseManager:
    """响应管理器 - 处理自定义响应内容"""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self._response_config = self.config.get("ui_preferences", {}).get("custom_responses", {})

    def get_response(self, response_type: str, **kwargs) -> Optional[str]:
        """
        获取自定义响应内容

        Args:
            response_type: 响应类型
            **kwargs: 用于占位符替换的参数

        Returns:
            格式化后的响应内容，如果配置为空则返回 None
        """
        template = self._response_config.get(response_type)

        # 模板为空或者未配置时不响应
        if not template or not template.strip():
            return None

        try:
            return template.format(**kwargs)
        except (KeyError, IndexError, ValueError):
            # 占位符替换失败时返回原始模板
            return template

    def entry_created(self, title: str) -> Optional[str]:
        return self.get_response("entry_created", title=title or "(untitled)")

    def entry_updated(self, title: str) -> Optional[str]:
        return self.get_response("entry_updated", title=title or "(untitled)")

    def entry_deleted(self, entry_id: str) -> Optional[str]:
        return self.get_response("entry_deleted", id=entry_id)

    def entry_archived(self, entry_id: str, is_archived: bool = True) -> Optional[str]:
        """归档/取消归档响应"""
        response_type = "entry_archived" if is_archived else "entry_unarchived"
        return self.get_response(response_type, id=entry_id)

    def draft_scheduled(self, entry_id: str, delay: float) -> Optional[str]:
        return self.get_response("draft_scheduled", id=entry_id, delay=f"{delay:g}")

    def tag_created(self, name: str, tag_type: str) -> Optional[str]:
        return self.get_response("tag_created", name=name, type=tag_type)

    def filter_changed(self, filters: List[str]) -> Optional[str]:
        return self.get_response("filter_changed", filters=", ".join(filters) if filters else "none")

    def sort_changed(self, sort_by: str, sort_order: str) -> Optional[str]:
        return self.get_response("sort_changed", sort_by=sort_by, sort_order=sort_order)

    def no_more_entries(self) -> Optional[str]:
        return self.get_response("no_more_entries")

    def error_general(self, error: str) -> Optional[str]:
        """一般错误响应"""
        return self.get_response("error_general", error=error)

    def error_not_found(self, item_id: str, item_type: str = "entry") -> Optional[str]:
        """未找到项目错误响应"""
        return self.get_response("error_not_found", id=item_id, type=item_type)

    def command_unknown(self, command: str) -> Optional[str]:
        """未知命令响应"""
        return self.get_response("command_unknown", command=command)

    def should_respond(self, response_type: str) -> bool:
        """检查是否应该响应（配置不为空）"""
        template = self._response_config.get(response_type)
        return bool(template and template.strip())
