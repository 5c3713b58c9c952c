"""
Core Domain Models and Enums - 核心领域模型与枚举
本模块定义了 Trackly 客户端使用的核心数据结构。
- Tag / Entry: 由服务端原始 JSON 构造的值对象，各自提供 validate() 返回约束违规列表。
- PropertyValue: 自定义属性值的标签联合类型，每种输入类型一个变体。
- PaginationCursor / PaginationState / EntryPage: 游标分页相关结构。
使用 dataclasses 来创建简洁、类型安全的数据类；线上字段为 camelCase，Python 属性为 snake_case。
"""

import math
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Union

from yarl import URL

from ..utils.hashtags import extract_hashtags


class TagType(Enum):
    """标签类型枚举，与服务端保持一致"""
    HABIT = "Habit"
    TASK = "Task"
    MOOD = "Mood"
    NODE = "Node"
    EVENT = "Event"
    IDEA = "Idea"
    BOOK = "Book"
    ARTICLE = "Article"
    PAPER = "Paper"
    PROJECT = "Project"
    CONCEPT = "Concept"
    DECISION = "Decision"
    COMMUNICATION = "Communication"
    EXERCISE = "Exercise"
    METRIC = "Metric"
    ACTIVITY = "Activity"
    GOAL = "Goal"
    PLAN = "Plan"


class ValueType(Enum):
    """标签/属性的输入类型"""
    # 文本
    TEXT = "text"
    EMAIL = "email"
    TEL = "tel"
    URL = "url"
    # 数字
    NUMBER = "number"
    RANGE = "range"
    # 日期/时间
    DATE = "date"
    TIME = "time"
    DATETIME_LOCAL = "datetime-local"
    MONTH = "month"
    WEEK = "week"
    # 布尔/选择
    CHECKBOX = "checkbox"
    SELECT = "select"
    # 媒体 (URL)
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    COLOR = "color"
    DURATION = "duration"
    RATING = "rating"
    # 旧别名
    HYPERLINK = "hyperlink"


class SortField(Enum):
    TIMESTAMP = "timestamp"
    CREATED_AT = "createdAt"


class SortOrder(Enum):
    ASC = "asc"
    DESC = "desc"


def parse_enum(enum_cls, raw):
    if raw is None or isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(raw)
    except ValueError:
        return None


def utc_now_iso() -> str:
    """当前 UTC 时间的 ISO-8601 字符串（毫秒精度，Z 结尾）"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    解析 ISO-8601 时间字符串，无法解析时返回 None。
    不带时区的时间按 UTC 处理。
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def timestamp_value(value: Optional[str]) -> float:
    """排序用的数值，无法解析的时间排在最早"""
    parsed = parse_timestamp(value)
    return parsed.timestamp() if parsed else float("-inf")


# ---------------------------------------------------------------------------
# 自定义属性值（标签联合）
# ---------------------------------------------------------------------------

class PropertyKind(Enum):
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    URL = "url"
    DATE = "date"
    SELECT = "select"
    RATING = "rating"
    DURATION = "duration"
    COLOR = "color"


VALUE_TYPE_KINDS: Dict[ValueType, PropertyKind] = {
    ValueType.TEXT: PropertyKind.TEXT,
    ValueType.EMAIL: PropertyKind.TEXT,
    ValueType.TEL: PropertyKind.TEXT,
    ValueType.URL: PropertyKind.URL,
    ValueType.HYPERLINK: PropertyKind.URL,
    ValueType.IMAGE: PropertyKind.URL,
    ValueType.AUDIO: PropertyKind.URL,
    ValueType.VIDEO: PropertyKind.URL,
    ValueType.NUMBER: PropertyKind.NUMBER,
    ValueType.RANGE: PropertyKind.NUMBER,
    ValueType.DATE: PropertyKind.DATE,
    ValueType.TIME: PropertyKind.DATE,
    ValueType.DATETIME_LOCAL: PropertyKind.DATE,
    ValueType.MONTH: PropertyKind.DATE,
    ValueType.WEEK: PropertyKind.DATE,
    ValueType.CHECKBOX: PropertyKind.BOOLEAN,
    ValueType.SELECT: PropertyKind.SELECT,
    ValueType.RATING: PropertyKind.RATING,
    ValueType.DURATION: PropertyKind.DURATION,
    ValueType.COLOR: PropertyKind.COLOR,
}

DATE_FORMATS: Dict[ValueType, "re.Pattern"] = {
    ValueType.DATE: re.compile(r'^\d{4}-\d{2}-\d{2}$'),
    ValueType.TIME: re.compile(r'^\d{2}:\d{2}(:\d{2})?$'),
    ValueType.DATETIME_LOCAL: re.compile(r'^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(:\d{2})?$'),
    ValueType.MONTH: re.compile(r'^\d{4}-\d{2}$'),
    ValueType.WEEK: re.compile(r'^\d{4}-W\d{2}$'),
}

COLOR_PATTERN = re.compile(r'^#[0-9a-fA-F]{6}$')


@dataclass(frozen=True)
class TextValue:
    value: str
    kind: ClassVar[PropertyKind] = PropertyKind.TEXT

    def validate(self) -> List[str]:
        return []

    def to_raw(self) -> Any:
        return self.value


@dataclass(frozen=True)
class NumberValue:
    value: float
    kind: ClassVar[PropertyKind] = PropertyKind.NUMBER

    def validate(self) -> List[str]:
        if not math.isfinite(self.value):
            return ["Number must be finite"]
        return []

    def to_raw(self) -> Any:
        return self.value


@dataclass(frozen=True)
class BooleanValue:
    value: bool
    kind: ClassVar[PropertyKind] = PropertyKind.BOOLEAN

    def validate(self) -> List[str]:
        return []

    def to_raw(self) -> Any:
        return self.value


@dataclass(frozen=True)
class UrlValue:
    value: str
    kind: ClassVar[PropertyKind] = PropertyKind.URL

    def validate(self) -> List[str]:
        # 图片等媒体允许直接存 data URL
        if self.value.startswith("data:"):
            return []
        url = URL(self.value)
        if url.scheme not in ("http", "https") or not url.host:
            return [f"Invalid URL: {self.value}"]
        return []

    def to_raw(self) -> Any:
        return self.value


@dataclass(frozen=True)
class DateValue:
    value: str
    value_type: ValueType = ValueType.DATE
    kind: ClassVar[PropertyKind] = PropertyKind.DATE

    def validate(self) -> List[str]:
        pattern = DATE_FORMATS.get(self.value_type)
        if pattern and not pattern.match(self.value):
            return [f"Invalid {self.value_type.value} value: {self.value}"]
        return []

    def to_raw(self) -> Any:
        return self.value


@dataclass(frozen=True)
class SelectValue:
    value: str
    kind: ClassVar[PropertyKind] = PropertyKind.SELECT

    def validate(self) -> List[str]:
        if not self.value:
            return ["Select value is required"]
        return []

    def to_raw(self) -> Any:
        return self.value


@dataclass(frozen=True)
class RatingValue:
    value: int
    kind: ClassVar[PropertyKind] = PropertyKind.RATING

    def validate(self) -> List[str]:
        if not 1 <= self.value <= 5:
            return ["Rating must be between 1 and 5"]
        return []

    def to_raw(self) -> Any:
        return self.value


@dataclass(frozen=True)
class DurationValue:
    minutes: float
    kind: ClassVar[PropertyKind] = PropertyKind.DURATION

    def validate(self) -> List[str]:
        if not math.isfinite(self.minutes) or self.minutes < 0:
            return ["Duration must be a non-negative number of minutes"]
        return []

    def to_raw(self) -> Any:
        return self.minutes


@dataclass(frozen=True)
class ColorValue:
    value: str
    kind: ClassVar[PropertyKind] = PropertyKind.COLOR

    def validate(self) -> List[str]:
        if not COLOR_PATTERN.match(self.value):
            return [f"Invalid color: {self.value}"]
        return []

    def to_raw(self) -> Any:
        return self.value


PropertyValue = Union[
    TextValue, NumberValue, BooleanValue, UrlValue, DateValue,
    SelectValue, RatingValue, DurationValue, ColorValue,
]


def parse_property_value(value_type: ValueType, raw: Any) -> PropertyValue:
    """
    按声明的输入类型构造属性值变体。

    :param value_type: 属性声明的 ValueType。
    :param raw: 原始 JSON 值。
    :return: 对应的 PropertyValue 变体。
    :raises ValueError: 原始值无法转换为该类型时抛出。
    """
    kind = VALUE_TYPE_KINDS[value_type]
    if kind is PropertyKind.NUMBER:
        return NumberValue(float(raw))
    if kind is PropertyKind.BOOLEAN:
        if isinstance(raw, str):
            return BooleanValue(raw.strip().lower() in ("true", "1", "yes", "on"))
        return BooleanValue(bool(raw))
    if kind is PropertyKind.RATING:
        return RatingValue(int(raw))
    if kind is PropertyKind.DURATION:
        return DurationValue(float(raw))
    if kind is PropertyKind.URL:
        return UrlValue(str(raw))
    if kind is PropertyKind.DATE:
        return DateValue(str(raw), value_type)
    if kind is PropertyKind.SELECT:
        return SelectValue(str(raw))
    if kind is PropertyKind.COLOR:
        return ColorValue(str(raw))
    return TextValue(str(raw))


def infer_property_value(raw: Any) -> PropertyValue:
    """没有属性声明时，按 JSON 类型推断变体"""
    if isinstance(raw, bool):
        return BooleanValue(raw)
    if isinstance(raw, (int, float)):
        return NumberValue(float(raw))
    return TextValue("" if raw is None else str(raw))


# ---------------------------------------------------------------------------
# 标签
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SelectOption:
    value: str
    label: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SelectOption":
        value = str(data.get("value", ""))
        return cls(value=value, label=str(data.get("label", value)))

    def to_payload(self) -> Dict[str, Any]:
        return {"value": self.value, "label": self.label}


@dataclass(frozen=True)
class TagProperty:
    """标签上声明的自定义属性"""
    id: str
    name: str
    value_type: ValueType = ValueType.TEXT
    required: bool = False
    options: List[SelectOption] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TagProperty":
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            value_type=parse_enum(ValueType, data.get("valueType")) or ValueType.TEXT,
            required=bool(data.get("required", False)),
            options=[SelectOption.from_dict(o) for o in data.get("options") or []],
        )

    def to_payload(self) -> Dict[str, Any]:
        payload = {"id": self.id, "name": self.name, "valueType": self.value_type.value}
        if self.required:
            payload["required"] = True
        if self.options:
            payload["options"] = [o.to_payload() for o in self.options]
        return payload

    def parse_value(self, raw: Any) -> PropertyValue:
        """按本属性声明的类型解析原始值"""
        return parse_property_value(self.value_type, raw)

    def validate_value(self, value: PropertyValue) -> List[str]:
        errors = value.validate()
        if isinstance(value, SelectValue) and self.options:
            if value.value not in {o.value for o in self.options}:
                errors.append(f"'{value.value}' is not an option of {self.name}")
        return errors


@dataclass(frozen=True)
class Tag:
    """
    标签
    用户自定义的可追踪分类，条目可以关联零个或多个标签。
    """
    name: str
    type: Optional[TagType]
    id: str = ""
    categories: List[str] = field(default_factory=list)
    value_type: Optional[ValueType] = None
    options: List[SelectOption] = field(default_factory=list)
    properties: List[TagProperty] = field(default_factory=list)
    created_at: str = ""
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tag":
        """从 API 返回的原始字典构造标签"""
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            type=parse_enum(TagType, data.get("type")),
            categories=list(data.get("categories") or []),
            value_type=parse_enum(ValueType, data.get("valueType")),
            options=[SelectOption.from_dict(o) for o in data.get("options") or []],
            properties=[TagProperty.from_dict(p) for p in data.get("properties") or []],
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt"),
        )

    @classmethod
    def new(cls, name: str, tag_type: TagType, categories: Optional[List[str]] = None, **kwargs) -> "Tag":
        """创建一个尚未保存的标签"""
        return cls(
            name=name.strip(),
            type=tag_type,
            categories=[c.strip() for c in categories or [] if c.strip()],
            created_at=utc_now_iso(),
            **kwargs
        )

    def validate(self) -> List[str]:
        errors = []
        if not self.name or not self.name.strip():
            errors.append("Name is required")
        if not isinstance(self.type, TagType):
            errors.append("Valid type is required")
        if self.value_type is ValueType.SELECT and not self.options:
            errors.append("Select tags need at least one option")
        for prop in self.properties:
            if not prop.name.strip():
                errors.append("Property name is required")
            elif prop.value_type is ValueType.SELECT and not prop.options:
                errors.append(f"Property {prop.name} needs at least one option")
        return errors

    def to_payload(self) -> Dict[str, Any]:
        """创建/更新请求体"""
        payload = {
            "name": self.name,
            "type": self.type.value if self.type else None,
            "categories": list(self.categories),
        }
        if self.value_type:
            payload["valueType"] = self.value_type.value
        if self.options:
            payload["options"] = [o.to_payload() for o in self.options]
        if self.properties:
            payload["properties"] = [p.to_payload() for p in self.properties]
        return payload

    def get_property(self, property_id: str) -> Optional[TagProperty]:
        return next((p for p in self.properties if p.id == property_id), None)


# ---------------------------------------------------------------------------
# 条目
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EntryTag:
    """条目与标签的多对多关联"""
    tag_id: str
    tag_name: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EntryTag":
        return cls(
            tag_id=str(data.get("tagId") or data.get("id") or ""),
            tag_name=data.get("tagName") or data.get("name") or "",
        )

    def to_payload(self) -> Dict[str, Any]:
        return {"tagId": self.tag_id, "tagName": self.tag_name}


# 可由 update_entry 本地乐观应用的字段
ENTRY_UPDATE_FIELDS = ("title", "timestamp", "notes", "is_archived")


@dataclass(frozen=True)
class Entry:
    """
    条目
    一条带时间戳、Markdown 笔记与标签关联的记录。
    timestamp 是用户选择的"发生时间"，与 created_at 不同。
    """
    timestamp: str
    id: str = ""
    title: str = ""
    notes: str = ""
    tags: List[EntryTag] = field(default_factory=list)
    is_archived: bool = False
    created_at: str = ""
    updated_at: Optional[str] = None
    property_values: Dict[str, PropertyValue] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Entry":
        """从 API 返回的原始字典构造条目"""
        raw_values = data.get("propertyValues") or {}
        return cls(
            id=str(data.get("id", "")),
            title=data.get("title") or "",
            timestamp=data.get("timestamp", ""),
            notes=data.get("notes") or "",
            tags=[EntryTag.from_dict(t) for t in data.get("tags") or []],
            is_archived=bool(data.get("isArchived", False)),
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt"),
            property_values={k: infer_property_value(v) for k, v in raw_values.items()},
        )

    @classmethod
    def new(cls, title: str, timestamp: Optional[str] = None, notes: str = "",
            tags: Optional[List[Tag]] = None) -> "Entry":
        """创建一个尚未保存的条目，未指定时间时使用当前时间"""
        return cls(
            title=title.strip(),
            timestamp=timestamp or utc_now_iso(),
            notes=notes.strip(),
            tags=[EntryTag(t.id, t.name) for t in tags or []],
            created_at=utc_now_iso(),
        )

    @property
    def tag_ids(self) -> List[str]:
        return [t.tag_id for t in self.tags]

    @property
    def hashtags(self) -> List[str]:
        return extract_hashtags(self.notes)

    def has_tag(self, tag_id: str) -> bool:
        return any(t.tag_id == tag_id for t in self.tags)

    def validate(self) -> List[str]:
        errors = []
        if not self.timestamp:
            errors.append("Timestamp is required")
        elif parse_timestamp(self.timestamp) is None:
            errors.append("Invalid timestamp")
        if any(not t.tag_id for t in self.tags):
            errors.append("Tag ID is required")
        for property_id, value in self.property_values.items():
            errors.extend(f"{property_id}: {e}" for e in value.validate())
        return errors

    def sort_value(self, sort_field: SortField = SortField.TIMESTAMP) -> float:
        if sort_field is SortField.CREATED_AT:
            return timestamp_value(self.created_at)
        return timestamp_value(self.timestamp)

    def with_updates(self, updates: Dict[str, Any]) -> "Entry":
        """返回应用了本地可见字段更新后的副本（tag_ids 需要服务端解析，不在此处理）"""
        changes = {k: v for k, v in updates.items() if k in ENTRY_UPDATE_FIELDS}
        return replace(self, **changes)

    def without_tag(self, tag_id: str) -> "Entry":
        return replace(self, tags=[t for t in self.tags if t.tag_id != tag_id])

    def to_payload(self) -> Dict[str, Any]:
        """创建请求体"""
        payload = {
            "tagIds": self.tag_ids,
            "title": self.title,
            "timestamp": self.timestamp,
            "notes": self.notes,
        }
        if self.property_values:
            payload["propertyValues"] = {k: v.to_raw() for k, v in self.property_values.items()}
        return payload


# ---------------------------------------------------------------------------
# 分页
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PaginationCursor:
    """
    分页游标
    after 是上一页最后一条的排序字段值，after_id 在排序值相同时用于打破平局。
    """
    after: str
    after_id: str

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["PaginationCursor"]:
        if not data:
            return None
        return cls(after=str(data.get("after", "")), after_id=str(data.get("afterId", "")))


@dataclass
class PaginationState:
    has_more: bool = True
    next_cursor: Optional[PaginationCursor] = None
    is_loading_more: bool = False


@dataclass
class EntryPage:
    """GET /api/entries 的一页结果"""
    entries: List[Entry]
    has_more: bool = False
    next_cursor: Optional[PaginationCursor] = None

    @classmethod
    def from_dict(cls, data: Any) -> "EntryPage":
        # 兼容旧接口直接返回数组的情况
        if isinstance(data, list):
            return cls(entries=[Entry.from_dict(e) for e in data])
        pagination = data.get("pagination") or {}
        return cls(
            entries=[Entry.from_dict(e) for e in data.get("entries", [])],
            has_more=bool(pagination.get("hasMore", False)),
            next_cursor=PaginationCursor.from_dict(pagination.get("nextCursor")),
        )


# ---------------------------------------------------------------------------
# 认证
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str
    name: Optional[str] = None


@dataclass(frozen=True)
class AuthResponse:
    user: AuthUser
    token: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthResponse":
        user = data.get("user") or {}
        return cls(
            user=AuthUser(id=str(user.get("id", "")), email=user.get("email", ""), name=user.get("name")),
            token=data.get("token", ""),
        )
