"""
Utils package
"""

from .hashtags import extract_hashtags, extract_markdown_links, remove_hashtags

__all__ = ['extract_hashtags', 'extract_markdown_links', 'remove_hashtags']
