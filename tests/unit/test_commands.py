"""Unit tests for console command dispatch."""

import asyncio

import pytest

from trackly.app import TracklyApp
from trackly.config import load_config


@pytest.fixture
def app(repo) -> TracklyApp:
    return TracklyApp(load_config(environ={}), api_client=repo)


def run_session(app: TracklyApp, *messages: str):
    """Start the app, feed it messages and return the replies."""

    async def scenario():
        await app.start()
        return [await app.handle_message(m) for m in messages]

    return asyncio.run(scenario())


class TestDispatch:
    """Tests for TracklyApp.handle_message."""

    def test_list_after_start(self, app):
        [reply] = run_session(app, "/list")

        assert "[e1]" in reply
        assert "[e2]" in reply
        assert "[e3]" not in reply

    def test_unknown_command(self, app):
        assert run_session(app, "/bogus") == ["Unknown command: bogus"]

    def test_blank_input_is_ignored(self, app):
        assert run_session(app, "", "   ", "/") == [None, None, None]

    def test_command_names_are_case_insensitive(self, app):
        [reply] = run_session(app, "/HELP")

        assert reply.startswith("Trackly commands")

    def test_errors_become_error_responses(self, app):
        """Server errors do not escape the dispatcher."""
        assert run_session(app, "/del e404") == ["Error: Entry not found"]


class TestLogging:
    """Tests for /log and plain text input."""

    def test_plain_text_logs_entry(self, app, repo):
        [reply] = run_session(app, "Read a book")

        assert reply == 'Logged "Read a book"'
        assert repo.calls_to("create_entry")[0]["title"] == "Read a book"

    def test_log_with_tags_and_notes(self, app, repo):
        run_session(app, "/log Run #Health -- felt good #cardio")

        call = repo.calls_to("create_entry")[0]
        assert call["title"] == "Run"
        assert call["tag_ids"] == ["t1"]
        assert call["notes"] == "felt good #cardio"

    def test_unknown_tag_stays_in_title(self, app, repo):
        run_session(app, "/log Run #tired")

        call = repo.calls_to("create_entry")[0]
        assert call["title"] == "Run #tired"
        assert call["tag_ids"] == []

    def test_log_uses_selected_tag(self, app, repo):
        run_session(app, "/tag Deep Work", "/log Planning")

        assert repo.calls_to("create_entry")[0]["tag_ids"] == ["t2"]

    def test_new_entry_shows_first(self, app):
        replies = run_session(app, "/log Stretch", "/list")

        assert replies[1].splitlines()[1].endswith("Stretch")


class TestViews:
    """Tests for commands that change the view."""

    def test_select_tag(self, app, repo):
        [reply] = run_session(app, "/tag Deep Work")

        assert reply.splitlines()[0] == "Entries - #Deep Work"
        assert "[e2]" in reply
        assert "[e1]" not in reply
        assert app.url_state.get_selected_tag_name() == "deep-work"

    def test_select_unknown_tag(self, app):
        assert run_session(app, "/tag Nope") == ["No tag [Nope]"]

    def test_back_restores_previous_view(self, app):
        replies = run_session(app, "/tag Deep Work", "/back")

        assert "[e1]" in replies[1]
        assert app.store.get_selected_tag_id() is None

    def test_filter(self, app, repo):
        [reply] = run_session(app, "/filter #Cardio")

        assert reply == "Filters: #cardio"
        assert repo.calls_to("list_entries")[-1]["hashtags"] == ["cardio"]

    def test_clear_filter(self, app):
        replies = run_session(app, "/filter cardio", "/filter")

        assert replies[1] == "Filters: none"
        assert app.url_state.get_hashtag_filters() == []

    def test_sort(self, app):
        [reply] = run_session(app, "/sort createdAt asc")

        assert reply == "Sorted by createdAt asc"
        assert [e.id for e in app.store.get_all_entries()] == ["e3", "e2", "e1"]

    def test_sort_usage(self, app):
        [reply] = run_session(app, "/sort title")

        assert reply.startswith("Error: Usage: /sort")

    def test_more_when_everything_is_loaded(self, app):
        assert run_session(app, "/more") == ["No more entries"]

    def test_tags(self, app):
        [reply] = run_session(app, "/tags")

        assert "- #Health (Habit) 1" in reply
        assert "- #Deep Work (Project) 1 [work]" in reply

    def test_find(self, app):
        [reply] = run_session(app, "/find stand")

        assert reply.splitlines()[0] == 'Search "stand": 1 result(s)'


class TestEntryCommands:
    """Tests for commands acting on a single entry."""

    def test_show(self, app):
        [reply] = run_session(app, "/show e1")

        assert reply.splitlines()[0] == "Run"
        assert app.url_state.get_detail_entry_id() == "e1"

    def test_show_missing(self, app):
        assert run_session(app, "/show e404") == ["No entry [e404]"]

    def test_edit(self, app, repo):
        [reply] = run_session(app, "/edit e1 notes new notes")

        assert reply == 'Updated "Run"'
        assert app.store.get_entry_by_id("e1").notes == "new notes"
        assert app.url_state.get_action() is None

    def test_edit_leaves_no_history_behind(self, app):
        """/back after /edit returns to the view before it."""
        replies = run_session(app, "/tag Deep Work", "/edit e2 notes x", "/back")

        assert app.url_state.current_url() == "/entries"
        assert app.store.get_selected_tag_id() is None
        assert "[e1]" in replies[2]

    def test_edit_rejects_unknown_field(self, app):
        [reply] = run_session(app, "/edit e1 color red")

        assert reply == "Error: Usage: /edit <id> <title|notes|timestamp> <value>"

    def test_archive_and_unarchive(self, app):
        replies = run_session(app, "/archive e1", "/unarchive e3")

        assert replies == ["Archived entry [e1]", "Restored entry [e3]"]
        assert [e.id for e in app.store.get_entries()] == ["e2", "e3"]

    def test_delete_alias(self, app):
        assert run_session(app, "/rm e2") == ["Deleted entry [e2]"]
        assert app.store.get_entry_by_id("e2") is None

    def test_new_tag(self, app, repo):
        [reply] = run_session(app, "/newtag Morning_Run exercise fitness,outdoor")

        assert reply == "Created tag #Morning Run (Exercise)"
        assert app.store.get_tag_by_name("Morning Run").categories == ["fitness", "outdoor"]

    def test_new_tag_unknown_type(self, app):
        assert run_session(app, "/newtag Odd nonsense") == ["Error: Unknown tag type: nonsense"]

    def test_login(self, app, repo):
        [reply] = run_session(app, "/login a@b.c secret")

        assert reply == "Logged in as a@b.c"
        assert len(repo.calls_to("list_tags")) == 2


class TestLifecycle:
    """Tests for drafts and shutdown."""

    def test_draft_is_flushed_on_terminate(self, app, repo):
        async def scenario():
            await app.start()
            reply = await app.handle_message("/draft e1 notes later")
            await app.terminate()
            return reply

        reply = asyncio.run(scenario())

        assert reply == "Draft for [e1] will be saved in 2s"
        assert repo.calls_to("update_entry") == [
            {"entry_id": "e1", "updates": {"notes": "later"}, "keepalive": True}
        ]
        assert repo.closed

    def test_start_survives_failed_load(self, app, repo):
        repo.fail("list_tags")

        asyncio.run(app.start())

        assert not app.store.is_loaded

    def test_terminate_waits_for_save_in_flight(self, repo):
        """Shutting down while a debounced save is on the wire keeps the edit."""
        config = load_config(environ={})
        config["autosave"]["delay_seconds"] = 0
        app = TracklyApp(config, api_client=repo)
        update_entry = repo.update_entry
        closed_during_save = []

        async def slow_update_entry(entry_id, updates, keepalive=False):
            await asyncio.sleep(0.05)
            closed_during_save.append(repo.closed)
            return await update_entry(entry_id, updates, keepalive=keepalive)

        repo.update_entry = slow_update_entry

        async def scenario():
            await app.start()
            reply = await app.handle_message("/draft e1 notes later")
            await asyncio.sleep(0.01)
            await app.terminate()
            return reply

        reply = asyncio.run(scenario())

        assert reply == "Draft for [e1] will be saved in 0s"
        assert closed_during_save == [False]
        assert repo.calls_to("update_entry") == [
            {"entry_id": "e1", "updates": {"notes": "later"}, "keepalive": False}
        ]
        assert app.store.get_entry_by_id("e1").notes == "later"
        assert repo.closed
