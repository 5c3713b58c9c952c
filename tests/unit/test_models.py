"""Unit tests for domain models."""

import pytest

from trackly.core.exceptions import (
    CommandException, TracklyApiException, TracklyException, UnauthorizedException, ValidationException,
)
from trackly.core.models import (
    AuthResponse, BooleanValue, ColorValue, DateValue, DurationValue, Entry, EntryPage, EntryTag,
    NumberValue, PaginationCursor, RatingValue, SelectOption, SelectValue, SortField, Tag, TagProperty,
    TagType, TextValue, UrlValue, ValueType, infer_property_value, parse_enum, parse_property_value,
    parse_timestamp,
)


class TestTimestamps:
    """Tests for timestamp parsing."""

    def test_parse_zulu(self):
        parsed = parse_timestamp("2024-01-03T08:00:00.000Z")

        assert parsed.year == 2024
        assert parsed.utcoffset().total_seconds() == 0

    def test_naive_is_utc(self):
        assert parse_timestamp("2024-01-03T08:00:00") == parse_timestamp("2024-01-03T08:00:00Z")

    @pytest.mark.parametrize("value", ["", None, "yesterday", "2024-13-01"])
    def test_invalid(self, value):
        assert parse_timestamp(value) is None

    def test_parse_enum(self):
        assert parse_enum(TagType, "Habit") is TagType.HABIT
        assert parse_enum(TagType, "habit") is None
        assert parse_enum(TagType, None) is None


class TestTag:
    """Tests for the Tag value object."""

    def test_from_dict(self):
        tag = Tag.from_dict({
            "id": 7,
            "name": "Sleep",
            "type": "Metric",
            "categories": ["health"],
            "valueType": "select",
            "options": [{"value": "good", "label": "Good"}, {"value": "bad"}],
            "createdAt": "2024-01-01T00:00:00Z",
        })

        assert tag.id == "7"
        assert tag.type is TagType.METRIC
        assert tag.value_type is ValueType.SELECT
        assert tag.options == [SelectOption("good", "Good"), SelectOption("bad", "bad")]

    def test_unknown_type_fails_validation(self):
        tag = Tag.from_dict({"id": "1", "name": "Odd", "type": "Whatever"})

        assert tag.type is None
        assert tag.validate() == ["Valid type is required"]

    def test_new_trims_input(self):
        tag = Tag.new("  Health ", TagType.HABIT, [" body ", ""])

        assert tag.name == "Health"
        assert tag.categories == ["body"]
        assert tag.created_at
        assert tag.validate() == []

    def test_select_needs_options(self):
        tag = Tag.new("Mood", TagType.MOOD, value_type=ValueType.SELECT)

        assert tag.validate() == ["Select tags need at least one option"]

    def test_to_payload(self):
        tag = Tag.new("Sleep", TagType.METRIC, ["health"], value_type=ValueType.NUMBER)

        assert tag.to_payload() == {
            "name": "Sleep",
            "type": "Metric",
            "categories": ["health"],
            "valueType": "number",
        }

    def test_property_lookup(self):
        prop = TagProperty(id="p1", name="Distance", value_type=ValueType.NUMBER)
        tag = Tag.new("Run", TagType.EXERCISE, properties=[prop])

        assert tag.get_property("p1") is prop
        assert tag.get_property("p2") is None


class TestPropertyValues:
    """Tests for typed property values."""

    def test_parse_by_declared_type(self):
        assert parse_property_value(ValueType.RANGE, "3.5") == NumberValue(3.5)
        assert parse_property_value(ValueType.CHECKBOX, "yes") == BooleanValue(True)
        assert parse_property_value(ValueType.RATING, 4) == RatingValue(4)
        assert parse_property_value(ValueType.EMAIL, "a@b.c") == TextValue("a@b.c")
        assert parse_property_value(ValueType.MONTH, "2024-02") == DateValue("2024-02", ValueType.MONTH)

    def test_bad_number_raises(self):
        with pytest.raises(ValueError):
            parse_property_value(ValueType.NUMBER, "lots")

    def test_validation(self):
        assert RatingValue(6).validate() == ["Rating must be between 1 and 5"]
        assert DurationValue(-1).validate()
        assert ColorValue("#00ff00").validate() == []
        assert ColorValue("green").validate()
        assert DateValue("2024-W05", ValueType.WEEK).validate() == []
        assert DateValue("2024-5", ValueType.MONTH).validate()

    def test_url_validation(self):
        assert UrlValue("https://example.com/a").validate() == []
        assert UrlValue("data:image/png;base64,AAAA").validate() == []
        assert UrlValue("example.com").validate()

    def test_select_must_be_an_option(self):
        prop = TagProperty(id="p1", name="Feeling", value_type=ValueType.SELECT,
                           options=[SelectOption("good", "Good")])

        assert prop.validate_value(prop.parse_value("good")) == []
        assert prop.validate_value(SelectValue("meh")) == ["'meh' is not an option of Feeling"]

    def test_infer_from_json(self):
        assert infer_property_value(True) == BooleanValue(True)
        assert infer_property_value(3) == NumberValue(3.0)
        assert infer_property_value(None) == TextValue("")


class TestEntry:
    """Tests for the Entry value object."""

    def test_from_dict(self):
        entry = Entry.from_dict({
            "id": "e1",
            "title": "Run",
            "timestamp": "2024-01-03T08:00:00Z",
            "notes": None,
            "tags": [{"tagId": "t1", "tagName": "Health"}, {"id": "t2", "name": "Work"}],
            "isArchived": True,
            "createdAt": "2024-01-03T08:01:00Z",
            "propertyValues": {"distance": 5},
        })

        assert entry.notes == ""
        assert entry.tags == [EntryTag("t1", "Health"), EntryTag("t2", "Work")]
        assert entry.is_archived
        assert entry.property_values == {"distance": NumberValue(5.0)}

    def test_new_defaults_timestamp(self):
        tag = Tag(id="t1", name="Health", type=TagType.HABIT)

        entry = Entry.new(" Run ", tags=[tag])

        assert entry.title == "Run"
        assert parse_timestamp(entry.timestamp) is not None
        assert entry.tag_ids == ["t1"]
        assert entry.validate() == []

    def test_validate(self):
        assert Entry(timestamp="").validate() == ["Timestamp is required"]
        assert Entry(timestamp="2024-01-01T00:00:00Z", tags=[EntryTag("")]).validate() == ["Tag ID is required"]
        assert Entry(timestamp="2024-01-01T00:00:00Z",
                     property_values={"rating": RatingValue(9)}).validate() == [
            "rating: Rating must be between 1 and 5"]

    def test_hashtags_come_from_notes(self):
        entry = Entry(timestamp="2024-01-01T00:00:00Z", notes="Slept well #Sleep #sleep #rest")

        assert entry.hashtags == ["sleep", "rest"]

    def test_sort_value_by_field(self):
        entry = Entry(timestamp="2024-01-02T00:00:00Z", created_at="2024-01-01T00:00:00Z")

        assert entry.sort_value(SortField.TIMESTAMP) > entry.sort_value(SortField.CREATED_AT)
        assert Entry(timestamp="bad").sort_value() == float("-inf")

    def test_with_updates_ignores_server_only_fields(self):
        entry = Entry(timestamp="2024-01-01T00:00:00Z", title="A", tags=[EntryTag("t1", "Health")])

        updated = entry.with_updates({"title": "B", "tag_ids": ["t2"]})

        assert updated.title == "B"
        assert updated.tags == entry.tags

    def test_without_tag(self):
        entry = Entry(timestamp="2024-01-01T00:00:00Z", tags=[EntryTag("t1"), EntryTag("t2")])

        assert entry.without_tag("t1").tag_ids == ["t2"]
        assert entry.has_tag("t1")

    def test_to_payload(self):
        entry = Entry(timestamp="2024-01-01T00:00:00Z", title="Run", notes="n",
                      tags=[EntryTag("t1", "Health")], property_values={"km": NumberValue(5.0)})

        assert entry.to_payload() == {
            "tagIds": ["t1"],
            "title": "Run",
            "timestamp": "2024-01-01T00:00:00Z",
            "notes": "n",
            "propertyValues": {"km": 5.0},
        }


class TestPages:
    """Tests for pagination structures."""

    def test_entry_page_from_dict(self):
        page = EntryPage.from_dict({
            "entries": [{"id": "e1", "timestamp": "2024-01-01T00:00:00Z"}],
            "pagination": {"hasMore": True, "nextCursor": {"after": "2024-01-01T00:00:00Z", "afterId": "e1"}},
        })

        assert [e.id for e in page.entries] == ["e1"]
        assert page.has_more
        assert page.next_cursor == PaginationCursor("2024-01-01T00:00:00Z", "e1")

    def test_entry_page_from_bare_list(self):
        page = EntryPage.from_dict([{"id": "e1", "timestamp": "2024-01-01T00:00:00Z"}])

        assert len(page.entries) == 1
        assert page.has_more is False
        assert page.next_cursor is None

    def test_auth_response(self):
        response = AuthResponse.from_dict({"user": {"id": 1, "email": "a@b.c", "name": "A"}, "token": "tok"})

        assert response.user.id == "1"
        assert response.token == "tok"


class TestExceptions:
    """Tests for the exception hierarchy."""

    def test_hierarchy(self):
        assert issubclass(TracklyApiException, TracklyException)
        assert issubclass(UnauthorizedException, TracklyApiException)
        assert issubclass(CommandException, TracklyException)

    def test_api_exception_carries_status(self):
        error = TracklyApiException("Entry not found", 404)

        assert error.status == 404
        assert str(error) == "Entry not found"

    def test_unauthorized(self):
        assert UnauthorizedException().status == 401

    def test_validation_joins_errors(self):
        error = ValidationException(["Name is required", "Valid type is required"])

        assert str(error) == "Name is required, Valid type is required"
        assert error.errors == ["Name is required", "Valid type is required"]
