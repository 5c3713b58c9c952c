"""
Trackly App - 应用主入口
本文件负责：
1. 初始化并装配所有核心组件（API 客户端、URL 状态、数据仓库、渲染器、命令处理器等）。
2. 把用户输入分发到相应的命令处理器；不以 / 开头的输入直接记录为条目。
3. 管理生命周期：启动时加载数据并监听 URL 变化，退出时保存草稿并关闭连接。
"""

import asyncio
import logging
import sys
from typing import Any, Dict, Optional

from .config import load_config
from .core.exceptions import TracklyException
from .services.trackly_api import TracklyApiClient
from .state.store import Store
from .state.url_state import InMemoryHistory, UrlStateManager
from .utils.autosave import DraftSaver
from .utils.response_manager import ResponseManager
from .utils.template_renderer import Jinja2TemplateRenderer
from .handlers.command_factory import CommandFactory

logger = logging.getLogger(__name__)

COMMAND_PREFIX = "/"
EXIT_COMMANDS = ("/quit", "/exit")


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the console."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


class TracklyApp:
    """
    Trackly 应用
    作为协调中心，采用依赖注入的方式将各个模块组合在一起。
    - 仓储模式（ITracklyRepository/TracklyApiClient）封装远程接口。
    - 观察者模式（Store/UrlStateManager 的 subscribe）同步视图状态。
    - 工厂模式（CommandFactory）创建命令处理器。
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, api_client=None, history=None):
        """
        :param config: 配置字典，默认由 load_config 读取。
        :param api_client: 可替换的仓储实现（测试时传入内存实现）。
        :param history: 可替换的历史记录后端。
        """
        self.config = config if config is not None else load_config()
        self._init_components(api_client, history)
        self._unwatch = None

    def _init_components(self, api_client, history):
        """初始化并装配所有核心组件"""
        self.api_client = api_client or TracklyApiClient(
            base_url=self.config.get("api_base_url", "http://localhost:3000"),
            token=self.config.get("api_token", ""),
            timeout=self.config.get("request_timeout", 30),
        )

        self.url_state = UrlStateManager(history or InMemoryHistory())
        self.store = Store(self.api_client, self.url_state, self.config)

        self.template_renderer = Jinja2TemplateRenderer(self.config)
        self.response_manager = ResponseManager(self.config)

        self.draft_saver = DraftSaver(
            self.store,
            delay_seconds=self.config.get("autosave", {}).get("delay_seconds", 2.0),
        )

        self.command_factory = CommandFactory(self)

    async def start(self):
        """开始监听 URL 变化并加载首屏数据"""
        self.url_state.init()
        self._unwatch = self.store.watch_url_state()
        await self.store.load_data()
        if not self.store.is_loaded:
            logger.warning("Initial load failed, use /login or /list to retry")

    async def handle_message(self, text: str) -> Optional[str]:
        """
        处理一行用户输入。

        :param text: 原始输入，"/命令 参数..." 或者一条直接记录的条目标题。
        :return: 回复文本；为 None 时不回复。
        """
        text = text.strip()
        if not text:
            return None

        if text.startswith(COMMAND_PREFIX):
            parts = text[len(COMMAND_PREFIX):].split()
            if not parts:
                return None
            command, args = parts[0].lower(), parts[1:]
        else:
            command, args = "log", text.split()

        handler = self.command_factory.get_handler(command)
        if handler is None:
            return self.response_manager.command_unknown(command)

        try:
            return await handler.handle(args)
        except TracklyException as e:
            logger.error(f"Command {command} failed: {e}")
            return self.response_manager.error_general(str(e))

    async def terminate(self):
        """
        退出时的清理工作
        保存所有未完成的草稿，等待后台刷新结束，然后关闭 API 客户端。
        """
        try:
            if self._unwatch:
                self._unwatch()
                self._unwatch = None

            saved = await self.draft_saver.flush()
            if saved:
                logger.info(f"Saved {len(saved)} pending draft(s)")

            await self.store.wait_for_background_tasks()
            await self.api_client.close()

            logger.info("Trackly terminated")
        except Exception as e:
            logger.error(f"Error during termination: {e}")

    async def run(self):
        """交互式命令行循环，输入 /quit 退出"""
        loop = asyncio.get_running_loop()
        await self.start()
        listing = await self.handle_message("/list")
        if listing:
            print(listing)

        try:
            while True:
                try:
                    line = await loop.run_in_executor(None, input, "> ")
                except EOFError:
                    break
                if line.strip().lower() in EXIT_COMMANDS:
                    break

                reply = await self.handle_message(line)
                if reply:
                    print(reply)
        finally:
            await self.terminate()
