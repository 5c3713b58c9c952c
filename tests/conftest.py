"""Pytest fixtures for Trackly tests."""

from dataclasses import replace
from typing import Any, Dict, List, Optional

import pytest

from trackly.core.exceptions import TracklyApiException
from trackly.core.models import (
    AuthResponse, AuthUser, Entry, EntryPage, EntryTag, PaginationCursor, SortField, SortOrder, Tag, TagType,
)
from trackly.services.trackly_api import ITracklyRepository
from trackly.state.store import Store
from trackly.state.url_state import InMemoryHistory, UrlStateManager


class FakeRepository(ITracklyRepository):
    """In-memory repository with call recording and failure injection."""

    def __init__(self, tags: Optional[List[Tag]] = None, entries: Optional[List[Entry]] = None):
        self.tags: List[Tag] = list(tags or [])
        self.entries: List[Entry] = list(entries or [])
        self.calls: List[tuple] = []
        self.failures: Dict[str, Exception] = {}
        self.pages: List[EntryPage] = []
        self.closed = False
        self._seq = 100

    def fail(self, method: str, error: Optional[Exception] = None):
        self.failures[method] = error or TracklyApiException("Server error", 500)

    def _record(self, method: str, **kwargs):
        self.calls.append((method, kwargs))
        error = self.failures.get(method)
        if error is not None:
            raise error

    def calls_to(self, method: str) -> List[Dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == method]

    def _next_id(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}{self._seq}"

    def _find_entry(self, entry_id: str) -> int:
        for index, entry in enumerate(self.entries):
            if entry.id == entry_id:
                return index
        raise TracklyApiException("Entry not found", 404)

    async def register(self, email: str, password: str, name: Optional[str] = None) -> AuthResponse:
        self._record("register", email=email)
        return AuthResponse(user=AuthUser(id="u1", email=email, name=name), token="token-1")

    async def login(self, email: str, password: str) -> AuthResponse:
        self._record("login", email=email)
        return AuthResponse(user=AuthUser(id="u1", email=email), token="token-1")

    async def list_tags(self) -> List[Tag]:
        self._record("list_tags")
        return list(self.tags)

    async def get_tag(self, tag_id: str) -> Tag:
        self._record("get_tag", tag_id=tag_id)
        return next(t for t in self.tags if t.id == tag_id)

    async def create_tag(self, tag: Tag) -> Tag:
        self._record("create_tag", name=tag.name)
        created = replace(tag, id=self._next_id("t"))
        self.tags.append(created)
        return created

    async def update_tag(self, tag_id: str, updates: Dict[str, Any]) -> Tag:
        self._record("update_tag", tag_id=tag_id, updates=updates)
        index = next(i for i, t in enumerate(self.tags) if t.id == tag_id)
        self.tags[index] = replace(self.tags[index], **updates)
        return self.tags[index]

    async def delete_tag(self, tag_id: str) -> None:
        self._record("delete_tag", tag_id=tag_id)
        self.tags = [t for t in self.tags if t.id != tag_id]

    async def list_entries(self, tag_ids=None, sort_by=None, sort_order=None, include_archived=False,
                           limit=None, after=None, after_id=None, hashtags=None) -> EntryPage:
        self._record("list_entries", tag_ids=tag_ids, sort_by=sort_by, sort_order=sort_order,
                     include_archived=include_archived, limit=limit, after=after, after_id=after_id,
                     hashtags=hashtags)
        if self.pages:
            return self.pages.pop(0)

        entries = [e for e in self.entries if include_archived or not e.is_archived]
        if tag_ids:
            entries = [e for e in entries if any(e.has_tag(t) for t in tag_ids)]
        if hashtags:
            entries = [e for e in entries if set(hashtags) & set(e.hashtags)]
        entries.sort(key=lambda e: (e.sort_value(sort_by or SortField.TIMESTAMP), e.id),
                     reverse=(sort_order or SortOrder.DESC) is SortOrder.DESC)

        if after_id:
            index = next((i for i, e in enumerate(entries) if e.id == after_id), -1)
            entries = entries[index + 1:]
        page = entries[:limit] if limit else entries
        has_more = len(entries) > len(page)
        cursor = PaginationCursor(after=page[-1].timestamp, after_id=page[-1].id) if has_more else None
        return EntryPage(entries=page, has_more=has_more, next_cursor=cursor)

    async def get_entry(self, entry_id: str) -> Entry:
        self._record("get_entry", entry_id=entry_id)
        return self.entries[self._find_entry(entry_id)]

    async def create_entry(self, tag_ids: List[str], title: str, timestamp: str, notes: str = "") -> Entry:
        self._record("create_entry", tag_ids=tag_ids, title=title, timestamp=timestamp, notes=notes)
        names = {t.id: t.name for t in self.tags}
        created = Entry(
            id=self._next_id("e"),
            title=title,
            timestamp=timestamp,
            notes=notes,
            tags=[EntryTag(tag_id, names.get(tag_id, "")) for tag_id in tag_ids],
            created_at="2024-02-01T00:00:00.000Z",
        )
        self.entries.append(created)
        return created

    async def update_entry(self, entry_id: str, updates: Dict[str, Any], keepalive: bool = False) -> Entry:
        self._record("update_entry", entry_id=entry_id, updates=updates, keepalive=keepalive)
        index = self._find_entry(entry_id)
        self.entries[index] = replace(self.entries[index].with_updates(updates),
                                      updated_at="2024-02-02T00:00:00.000Z")
        return self.entries[index]

    async def delete_entry(self, entry_id: str) -> None:
        self._record("delete_entry", entry_id=entry_id)
        del self.entries[self._find_entry(entry_id)]

    async def archive_entry(self, entry_id: str, is_archived: bool = True) -> Entry:
        self._record("archive_entry", entry_id=entry_id, is_archived=is_archived)
        index = self._find_entry(entry_id)
        self.entries[index] = replace(self.entries[index], is_archived=is_archived)
        return self.entries[index]

    async def search_entries(self, query: str, limit: int = 20) -> List[Entry]:
        self._record("search_entries", query=query, limit=limit)
        needle = query.lower()
        return [e for e in self.entries if needle in e.title.lower() or needle in e.notes.lower()][:limit]

    async def list_hashtags(self) -> List[str]:
        self._record("list_hashtags")
        return sorted({h for e in self.entries for h in e.hashtags})

    async def close(self):
        self.closed = True


HEALTH = Tag(id="t1", name="Health", type=TagType.HABIT)
DEEP_WORK = Tag(id="t2", name="Deep Work", type=TagType.PROJECT, categories=["work"])


def make_entry(entry_id: str, timestamp: str, title: str = "", tags: Optional[List[Tag]] = None,
               notes: str = "", is_archived: bool = False, created_at: str = "") -> Entry:
    return Entry(
        id=entry_id,
        title=title or entry_id,
        timestamp=timestamp,
        notes=notes,
        tags=[EntryTag(t.id, t.name) for t in tags or []],
        is_archived=is_archived,
        created_at=created_at or timestamp,
    )


@pytest.fixture
def sample_tags() -> List[Tag]:
    return [HEALTH, DEEP_WORK]


@pytest.fixture
def sample_entries() -> List[Entry]:
    return [
        make_entry("e1", "2024-01-03T08:00:00.000Z", "Run", [HEALTH], notes="5k easy #cardio"),
        make_entry("e2", "2024-01-02T09:00:00.000Z", "Standup", [DEEP_WORK], notes="#meeting with team"),
        make_entry("e3", "2024-01-01T18:00:00.000Z", "Walk", [HEALTH], is_archived=True),
    ]


@pytest.fixture
def repo(sample_tags, sample_entries) -> FakeRepository:
    return FakeRepository(sample_tags, sample_entries)


@pytest.fixture
def url_state() -> UrlStateManager:
    manager = UrlStateManager(InMemoryHistory())
    manager.init()
    return manager


@pytest.fixture
def store(repo, url_state) -> Store:
    return Store(repo, url_state, {"store": {"page_size": 30}})


@pytest.fixture
def notifications(store) -> List[int]:
    """Record the entry_version seen by each store notification."""
    seen: List[int] = []
    store.subscribe(lambda: seen.append(store.entry_version))
    return seen


@pytest.fixture
def entry_factory():
    return make_entry


@pytest.fixture
def health_tag() -> Tag:
    return HEALTH


@pytest.fixture
def repository_factory():
    return FakeRepository
