"""
Comprehensive tests for answer_stream.controller (StreamController).

Covers:
  - start() under CREATE / REPLACE / CONTINUE and the history length rules
  - chunk(): buffer, entry text, summary, rendered display, deferred scroll
  - complete(): final text handling, CONTINUE keeping the streamed buffer
  - error(): classification, pre-stream failures, history untouched
  - stale-session events are dropped
  - select_history(): idempotence and out-of-range no-ops
  - listeners, loading flag, render fallback, history clear, thread safety
"""

import threading

from answer_stream.config import DEFAULT_SEPARATOR, EngineSettings
from answer_stream.controller import StreamController, StreamState
from answer_stream.history import PLACEHOLDER_SUMMARY, HistoryEntry, HistoryLog
from answer_stream.policy import ContextAction

SEP = DEFAULT_SEPARATOR


# ========================================================================
# Scenarios
# ========================================================================


class TestScenarios:
    def test_fresh_stream(self, make_controller):
        controller = make_controller()
        sid = controller.start()

        assert sid == 1
        assert len(controller.history) == 1
        entry = controller.history[0]
        assert entry.summary == PLACEHOLDER_SUMMARY
        assert entry.full == ""
        assert entry.time
        assert controller.active_index == 0

        controller.chunk("Hello", session_id=sid)
        assert controller.history[0].full == "Hello"

    def test_continue_stream(self, make_controller, keep_context_settings, display):
        controller = make_controller("Answer1", settings=keep_context_settings)
        sid = controller.start()

        assert controller.buffer == "Answer1" + SEP
        assert controller.history[0].full == "Answer1"
        assert display.content == "<md>Answer1" + SEP + "</md>"

        controller.chunk("more", session_id=sid)
        assert controller.history[0].full == "Answer1" + SEP + "more"
        assert len(controller.history) == 1

    def test_replace_stream(self, make_controller, flags):
        controller = make_controller("Old")
        flags.overwrite_next = True
        controller.start()

        assert controller.history[0].full == ""
        assert controller.history[0].summary == PLACEHOLDER_SUMMARY
        assert len(controller.history) == 1
        assert flags.overwrite_next is False

    def test_auth_error_before_first_chunk(self, make_controller):
        controller = make_controller()
        controller.start()
        controller.error({"code": "401"})

        panel = controller.error_state
        assert panel.visible is True
        assert panel.kind == "AuthError"
        assert len(controller.history) == 1
        assert controller.history[0].full == ""
        assert controller.history[0].summary == PLACEHOLDER_SUMMARY
        assert controller.state is StreamState.SETTLED


# ========================================================================
# start()
# ========================================================================


class TestStart:
    def test_create_grows_history_by_one(self, make_controller):
        controller = make_controller("a", "b")
        controller.start()
        assert len(controller.history) == 3
        assert [e.full for e in controller.history][1:] == ["a", "b"]

    def test_replace_keeps_length(self, make_controller, flags):
        controller = make_controller("a", "b")
        controller.request_overwrite()
        controller.start()
        assert len(controller.history) == 2
        assert controller.history[1].full == "b"

    def test_continue_leaves_entries_untouched_until_first_chunk(
        self, make_controller, keep_context_settings
    ):
        controller = make_controller("a", "b", settings=keep_context_settings)
        controller.history.select(1)
        controller.start()
        assert [e.full for e in controller.history] == ["a", "b"]
        assert controller.active_index == 0

    def test_keep_context_from_flags_without_settings(self, make_controller, flags):
        flags.keep_context = True
        controller = make_controller("a")
        controller.start()
        assert controller.buffer == "a" + SEP

    def test_settings_keep_context_is_read_every_start(self, make_controller):
        settings = EngineSettings(keep_context=False)
        controller = make_controller("a", settings=settings)
        controller.start()
        assert len(controller.history) == 2

        settings.keep_context = True
        controller.start()
        assert len(controller.history) == 2
        assert controller.buffer == SEP

    def test_create_and_replace_reset_display(self, make_controller, display):
        controller = make_controller("a")
        controller.select_history(0)
        controller.start()
        assert display.content == ""
        assert controller.content == ""

    def test_custom_separator(self, make_controller):
        settings = EngineSettings(keep_context=True, separator="\n~~\n")
        controller = make_controller("a", settings=settings)
        controller.start()
        assert controller.buffer == "a\n~~\n"

    def test_session_ids_increase(self, make_controller):
        controller = make_controller()
        ids = [controller.start() for _ in range(3)]
        assert ids == [1, 2, 3]
        assert controller.session_id == 3

    def test_start_does_not_touch_error_state(self, make_controller):
        controller = make_controller()
        controller.error("connection refused")
        controller.start()
        assert controller.error_state.visible is True

    def test_loading_until_first_chunk(self, make_controller):
        controller = make_controller()
        sid = controller.start()
        assert controller.is_loading is True
        controller.chunk("x", session_id=sid)
        assert controller.is_loading is False


# ========================================================================
# chunk()
# ========================================================================


class TestChunk:
    def test_accumulates_tokens(self, make_controller, display):
        controller = make_controller()
        sid = controller.start()
        for token in ["Hel", "lo", "\nworld"]:
            controller.chunk(token, session_id=sid)

        entry = controller.history[0]
        assert entry.full == "Hello\nworld"
        assert entry.summary == "Hello world..."
        assert display.content == "<md>Hello\nworld</md>"

    def test_scroll_is_deferred_until_flush(self, make_controller, display, scheduler):
        controller = make_controller()
        sid = controller.start()
        controller.chunk("Hi", session_id=sid)

        assert ("scroll", "<md>Hi</md>") not in display.calls
        assert scheduler.pending == 1

        scheduler.flush()
        assert display.calls[-1] == ("scroll", "<md>Hi</md>")

    def test_scroll_runs_after_content_applied(self, make_controller, display, scheduler):
        controller = make_controller()
        sid = controller.start()
        controller.chunk("a", session_id=sid)
        controller.chunk("b", session_id=sid)
        scheduler.flush()

        kinds = [kind for kind, _ in display.calls]
        assert kinds == ["set", "set", "set", "scroll"]
        assert display.calls[-1] == ("scroll", "<md>ab</md>")

    def test_pending_scrolls_coalesce(self, make_controller, display, scheduler):
        controller = make_controller()
        sid = controller.start()
        for _ in range(1000):
            controller.chunk("x", session_id=sid)
            assert scheduler.pending <= 1
        controller.complete(session_id=sid)

        assert scheduler.flush() == 1
        controller.chunk("late", session_id=sid)
        sid = controller.start()
        controller.chunk("y", session_id=sid)
        assert scheduler.pending == 1

    def test_no_scroll_queued_without_display(self, echo_renderer):
        controller = StreamController(renderer=echo_renderer)
        sid = controller.start()
        for _ in range(100):
            controller.chunk("x", session_id=sid)
        controller.complete(session_id=sid)
        assert controller.scheduler.pending == 0

    def test_chunk_follows_entry_moved_by_history_edit(self, make_controller):
        controller = make_controller("old")
        sid = controller.start()
        assert controller._session.index == 0
        live = controller.history[0]

        controller.history.insert_front(HistoryEntry(full="inserted", time="12:00:00"))
        controller.chunk("x", session_id=sid)

        assert controller.history[1] is live
        assert live.full == "x"
        assert controller.active_index == 1
        assert controller._session.index == 1

    def test_chunk_without_session_is_dropped(self, make_controller):
        controller = make_controller("a")
        assert controller.chunk("x") is False
        assert controller.history[0].full == "a"

    def test_chunk_after_complete_is_dropped(self, make_controller):
        controller = make_controller()
        sid = controller.start()
        controller.complete("done", session_id=sid)
        assert controller.chunk("late", session_id=sid) is False
        assert controller.history[0].full == "done"

    def test_unstamped_chunk_targets_live_session(self, make_controller):
        controller = make_controller()
        controller.start()
        assert controller.chunk("x") is True
        assert controller.history[0].full == "x"

    def test_render_failure_falls_back_to_raw_text(
        self, make_controller, display, failing_renderer
    ):
        controller = make_controller(renderer=failing_renderer)
        sid = controller.start()
        controller.chunk("**x", session_id=sid)
        assert display.content == "**x"
        assert controller.error_state.visible is False

    def test_chunk_snaps_selection_back_to_live_entry(self, make_controller, display):
        controller = make_controller("old")
        sid = controller.start()
        controller.select_history(1)
        assert display.content == "<md>old</md>"

        controller.chunk("new", session_id=sid)
        assert controller.active_index == 0
        assert display.content == "<md>new</md>"
        assert controller.history[1].full == "old"


# ========================================================================
# complete()
# ========================================================================


class TestComplete:
    def test_final_text_is_authoritative(self, make_controller, display):
        controller = make_controller()
        sid = controller.start()
        controller.chunk("Fin", session_id=sid)
        assert controller.complete("Final", session_id=sid) is True

        assert controller.history[0].full == "Final"
        assert controller.history[0].summary == "Final..."
        assert display.content == "<md>Final</md>"
        assert controller.state is StreamState.SETTLED
        assert controller.session_id is None

    def test_missing_final_text_uses_buffer(self, make_controller):
        controller = make_controller()
        sid = controller.start()
        controller.chunk("streamed", session_id=sid)
        controller.complete(None, session_id=sid)
        assert controller.history[0].full == "streamed"

    def test_continue_ignores_final_text(self, make_controller, keep_context_settings):
        controller = make_controller("A1", settings=keep_context_settings)
        sid = controller.start()
        controller.chunk("x", session_id=sid)
        controller.complete("IGNORED", session_id=sid)
        assert controller.history[0].full == "A1" + SEP + "x"

    def test_continue_without_chunks_keeps_previous_answer(
        self, make_controller, keep_context_settings, display
    ):
        controller = make_controller("A1", settings=keep_context_settings)
        sid = controller.start()
        controller.complete("IGNORED", session_id=sid)
        assert controller.history[0].full == "A1"
        assert display.content == "<md>A1</md>"

    def test_successful_settle_hides_error(self, make_controller):
        controller = make_controller()
        controller.start()
        controller.error("boom")
        assert controller.error_state.visible is True

        sid = controller.start()
        controller.chunk("ok", session_id=sid)
        controller.complete("ok", session_id=sid)
        assert controller.error_state.visible is False

    def test_complete_without_session_is_noop(self, make_controller):
        controller = make_controller("a")
        assert controller.complete("b") is False
        assert controller.history[0].full == "a"


# ========================================================================
# error()
# ========================================================================


class TestError:
    def test_pre_stream_error_from_idle(self, make_controller):
        controller = make_controller()
        assert controller.error(ConnectionError("connection refused")) is True
        assert controller.error_state.kind == "TransportError"
        assert controller.state is StreamState.IDLE
        assert len(controller.history) == 0

    def test_error_keeps_streamed_text(self, make_controller):
        controller = make_controller()
        sid = controller.start()
        controller.chunk("partial", session_id=sid)
        controller.error({"status": 429, "message": "slow down"}, session_id=sid)

        assert controller.history[0].full == "partial"
        assert controller.error_state.kind == "QuotaError"
        assert controller.error_state.raw_detail == "status=429, message=slow down"
        assert controller.error_state.details_expanded is False

    def test_error_settles_session(self, make_controller):
        controller = make_controller()
        sid = controller.start()
        controller.error("boom", session_id=sid)
        assert controller.session_id is None
        assert controller.chunk("late", session_id=sid) is False

    def test_toggle_and_dismiss(self, make_controller):
        controller = make_controller()
        controller.error("boom")
        assert controller.toggle_error_details() is True
        controller.dismiss_error()
        assert controller.error_state.visible is False
        assert controller.error_state.raw_detail == ""


# ========================================================================
# Stale sessions
# ========================================================================


class TestStaleSessions:
    def test_late_chunk_from_superseded_session_is_dropped(self, make_controller):
        controller = make_controller()
        first = controller.start()
        controller.chunk("one", session_id=first)
        second = controller.start()

        assert controller.chunk("stale", session_id=first) is False
        controller.chunk("two", session_id=second)

        assert [e.full for e in controller.history] == ["two", "one"]

    def test_stale_complete_and_error_are_dropped(self, make_controller):
        controller = make_controller()
        first = controller.start()
        second = controller.start()

        assert controller.complete("stale", session_id=first) is False
        assert controller.error("stale failure", session_id=first) is False
        assert controller.error_state.visible is False
        assert controller.session_id == second
        assert controller.state is StreamState.STREAMING

    def test_superseded_continue_session_does_not_leak(
        self, make_controller, keep_context_settings
    ):
        controller = make_controller("base", settings=keep_context_settings)
        first = controller.start()
        second = controller.start()
        controller.chunk("late", session_id=first)
        controller.chunk("x", session_id=second)
        assert controller.history[0].full == "base" + SEP + "x"


# ========================================================================
# select_history()
# ========================================================================


class TestSelectHistory:
    def test_select_renders_entry(self, make_controller, display):
        controller = make_controller("a", "b", "c")
        assert controller.select_history(1) is True
        assert controller.active_index == 1
        assert display.content == "<md>b</md>"

    def test_select_is_idempotent(self, make_controller, display):
        controller = make_controller("a", "b")
        controller.select_history(1)
        first = display.content
        controller.select_history(1)
        assert display.content == first
        assert controller.active_index == 1

    def test_out_of_range_is_noop(self, make_controller, display):
        controller = make_controller("a", "b")
        controller.select_history(1)
        calls_before = list(display.calls)

        assert controller.select_history(2) is False
        assert controller.select_history(-1) is False
        assert controller.active_index == 1
        assert display.calls == calls_before

    def test_select_on_empty_history(self, make_controller):
        controller = make_controller()
        assert controller.select_history(0) is False


# ========================================================================
# Listeners
# ========================================================================


class TestListeners:
    def test_notified_after_each_mutation(self, make_controller):
        controller = make_controller("a")
        changes = []
        controller.add_listener(changes.append)

        sid = controller.start()
        controller.chunk("x", session_id=sid)
        controller.complete("x", session_id=sid)
        controller.select_history(1)

        assert [c.operation for c in changes] == ["start", "chunk", "complete", "select"]
        assert changes[1].content == "<md>x</md>"
        assert changes[1].state is StreamState.STREAMING
        assert changes[2].state is StreamState.SETTLED
        assert changes[3].active_index == 1

    def test_failing_listener_does_not_break_engine(self, make_controller):
        controller = make_controller()
        seen = []

        def broken(change):
            raise RuntimeError("listener bug")

        controller.add_listener(broken)
        controller.add_listener(seen.append)
        sid = controller.start()
        assert controller.chunk("x", session_id=sid) is True
        assert [c.operation for c in seen] == ["start", "chunk"]

    def test_unsubscribe(self, make_controller):
        controller = make_controller()
        changes = []
        remove = controller.add_listener(changes.append)
        remove()
        controller.start()
        assert changes == []

    def test_listener_may_call_back_into_controller(self, make_controller):
        controller = make_controller("a", thread_safe=True)

        def reselect(change):
            if change.operation == "complete":
                controller.select_history(1)

        controller.add_listener(reselect)
        sid = controller.start()
        controller.complete("b", session_id=sid)
        assert controller.active_index == 1


# ========================================================================
# Misc
# ========================================================================


class TestMisc:
    def test_clear_history_abandons_live_session(self, make_controller, display):
        controller = make_controller("a")
        sid = controller.start()
        controller.clear_history()

        assert len(controller.history) == 0
        assert controller.session_id is None
        assert controller.chunk("late", session_id=sid) is False
        assert display.content == ""

    def test_max_history_from_settings(self, echo_renderer):
        controller = StreamController(EngineSettings(max_history=2), renderer=echo_renderer)
        for text in ["one", "two", "three"]:
            sid = controller.start()
            controller.complete(text, session_id=sid)
        assert [e.full for e in controller.history] == ["three", "two"]

    def test_works_without_display(self, echo_renderer):
        controller = StreamController(renderer=echo_renderer, history=HistoryLog())
        sid = controller.start()
        controller.chunk("x", session_id=sid)
        controller.scheduler.flush()
        assert controller.content == "<md>x</md>"

    def test_display_failure_is_contained(self, make_controller):
        class BrokenDisplay:
            def set_content(self, markup):
                raise RuntimeError("view gone")

            def scroll_to_end(self):
                raise RuntimeError("view gone")

        controller = make_controller(display=BrokenDisplay())
        sid = controller.start()
        assert controller.chunk("x", session_id=sid) is True
        controller.scheduler.flush()
        assert controller.history[0].full == "x"

    def test_session_records_policy(self, make_controller, keep_context_settings):
        controller = make_controller("a", settings=keep_context_settings)
        controller.start()
        assert controller._session.action is ContextAction.CONTINUE

    def test_thread_safe_controller_serializes_chunks(self, make_controller):
        controller = make_controller(thread_safe=True)
        sid = controller.start()

        def feed():
            for _ in range(50):
                controller.chunk("x", session_id=sid)

        threads = [threading.Thread(target=feed) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert controller.history[0].full == "x" * 200
