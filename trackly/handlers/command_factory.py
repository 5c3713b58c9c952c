"""
Command factory using Factory pattern
命令工厂，采用工厂模式
"""

from typing import Optional
from .command_handlers import (
    ICommandHandler, LoginCommandHandler, LogCommandHandler, ListCommandHandler,
    MoreCommandHandler, ShowCommandHandler, EditCommandHandler, DraftCommandHandler,
    ArchiveCommandHandler, DeleteCommandHandler, TagsCommandHandler, TagCommandHandler,
    NewTagCommandHandler, FilterCommandHandler, SortCommandHandler, FindCommandHandler,
    BackCommandHandler, HelpCommandHandler
)


class CommandFactory:
    """命令处理器工厂"""

    def __init__(self, app):
        self.app = app
        self._handlers = {}
        self._register_handlers()

    def _register_handlers(self):
        """注册所有命令处理器"""
        self._handlers.update({
            'login': LoginCommandHandler(self.app),
            'log': LogCommandHandler(self.app),
            'list': ListCommandHandler(self.app),
            'more': MoreCommandHandler(self.app),
            'show': ShowCommandHandler(self.app),
            'edit': EditCommandHandler(self.app),
            'draft': DraftCommandHandler(self.app),
            'archive': ArchiveCommandHandler(self.app, is_archived=True),
            'unarchive': ArchiveCommandHandler(self.app, is_archived=False),
            'del': DeleteCommandHandler(self.app),
            'rm': DeleteCommandHandler(self.app),
            'tags': TagsCommandHandler(self.app),
            'tag': TagCommandHandler(self.app),
            'newtag': NewTagCommandHandler(self.app),
            'filter': FilterCommandHandler(self.app),
            'sort': SortCommandHandler(self.app),
            'find': FindCommandHandler(self.app),
            'search': FindCommandHandler(self.app),
            'back': BackCommandHandler(self.app),
            'help': HelpCommandHandler(self.app)
        })

    def get_handler(self, command: str) -> Optional[ICommandHandler]:
        """获取命令处理器"""
        return self._handlers.get(command.lower())

    def register_handler(self, command: str, handler: ICommandHandler):
        """注册新的命令处理器"""
        self._handlers[command.lower()] = handler

    def unregister_handler(self, command: str):
        """注销命令处理器"""
        if command.lower() in self._handlers:
            del self._handlers[command.lower()]

    def list_commands(self) -> list:
        """获取所有已注册的命令"""
        return list(self._handlers.keys())
