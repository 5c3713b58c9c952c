"""
Core package
"""

from .models import (
    TagType, ValueType, SortField, SortOrder, Tag, TagProperty, SelectOption,
    Entry, EntryTag, PaginationCursor, PaginationState, EntryPage, AuthUser, AuthResponse,
)
from .exceptions import (
    TracklyException, TracklyApiException, UnauthorizedException,
    ValidationException, NotFoundException, CommandException,
)

__all__ = [
    'TagType', 'ValueType', 'SortField', 'SortOrder', 'Tag', 'TagProperty', 'SelectOption',
    'Entry', 'EntryTag', 'PaginationCursor', 'PaginationState', 'EntryPage', 'AuthUser', 'AuthResponse',
    'TracklyException', 'TracklyApiException', 'UnauthorizedException',
    'ValidationException', 'NotFoundException', 'CommandException',
]
