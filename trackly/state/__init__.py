"""
State package
"""

from .store import Store, is_temporary_id
from .url_state import IHistoryBackend, InMemoryHistory, UrlStateManager, encode_tag_name

__all__ = ['Store', 'is_temporary_id', 'IHistoryBackend', 'InMemoryHistory', 'UrlStateManager', 'encode_tag_name']
