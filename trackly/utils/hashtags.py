"""
Hashtag utilities - 话题标签工具
从 Markdown 笔记中提取 #hashtag 和链接。
"""

import re
from typing import List, Tuple

MARKDOWN_LINK_PATTERN = re.compile(r'\[([^\]]+?)\]\((.+?)\)')
HASHTAG_PATTERN = re.compile(r'(?<![a-zA-Z0-9_])#([a-zA-Z0-9_]+)(?![a-zA-Z0-9_])')


def extract_hashtags(text: str) -> List[str]:
    """
    提取文本中的话题标签（小写，去重，保持首次出现的顺序）。
    先移除 Markdown 链接，避免匹配到 URL 中的 #fragment。
    """
    if not text:
        return []

    text_without_links = MARKDOWN_LINK_PATTERN.sub('', text)

    hashtags = []
    for match in HASHTAG_PATTERN.finditer(text_without_links):
        tag = match.group(1).lower()
        if tag not in hashtags:
            hashtags.append(tag)
    return hashtags


def remove_hashtags(text: str) -> str:
    """移除话题标签并压缩多余空白"""
    stripped = HASHTAG_PATTERN.sub('', text or '')
    return re.sub(r'[ \t]{2,}', ' ', stripped).strip()


def extract_markdown_links(text: str) -> List[Tuple[str, str]]:
    """提取 Markdown 链接，返回 (标题, URL) 列表"""
    return [(m.group(1), m.group(2)) for m in MARKDOWN_LINK_PATTERN.finditer(text or '')]
