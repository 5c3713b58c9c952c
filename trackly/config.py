"""
Configuration - 配置加载
配置是一个嵌套字典，组件通过 config.get(...) 链式读取各自关心的部分。
加载顺序：DEFAULT_CONFIG -> JSON 配置文件 -> 环境变量。
"""

import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

DEFAULT_CONFIG: Dict[str, Any] = {
    "api_base_url": "http://localhost:3000",
    "api_token": "",
    "request_timeout": 30,
    "store": {
        "page_size": 30,
    },
    "autosave": {
        "delay_seconds": 2.0,
    },
    "ui_preferences": {
        "show_timestamps": True,
        "compact_mode": False,
        "notes_preview_length": 80,
        "custom_templates": {},
        "custom_responses": {
            "entry_created": "Logged \"{title}\"",
            "entry_updated": "Updated \"{title}\"",
            "entry_deleted": "Deleted entry [{id}]",
            "entry_archived": "Archived entry [{id}]",
            "entry_unarchived": "Restored entry [{id}]",
            "draft_scheduled": "Draft for [{id}] will be saved in {delay}s",
            "tag_created": "Created tag #{name} ({type})",
            "filter_changed": "Filters: {filters}",
            "sort_changed": "Sorted by {sort_by} {sort_order}",
            "no_more_entries": "No more entries",
            "error_general": "Error: {error}",
            "error_not_found": "No {type} [{id}]",
            "command_unknown": "Unknown command: {command}",
        },
    },
}

ENV_OVERRIDES = {
    "TRACKLY_API_URL": ("api_base_url", str),
    "TRACKLY_TOKEN": ("api_token", str),
    "TRACKLY_TIMEOUT": ("request_timeout", float),
    "TRACKLY_PAGE_SIZE": ("store.page_size", int),
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _set_path(config: Dict[str, Any], dotted: str, value: Any):
    *parents, leaf = dotted.split(".")
    node = config
    for key in parents:
        node = node.setdefault(key, {})
    node[leaf] = value


def load_config(path: Optional[Union[str, Path]] = None, environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    加载配置。

    :param path: 可选的 JSON 配置文件路径。
    :param environ: 环境变量映射，默认使用 os.environ。
    :return: 合并后的配置字典。
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if path:
        with open(path, "r", encoding="utf-8") as f:
            _deep_merge(config, json.load(f))

    environ = os.environ if environ is None else environ
    for var, (dotted, cast) in ENV_OVERRIDES.items():
        raw = environ.get(var)
        if raw:
            _set_path(config, dotted, cast(raw))

    return config
