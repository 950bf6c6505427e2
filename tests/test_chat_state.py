"""Tests for the chat escalation tracker."""

from app.services.attendance import ChatStateTracker


def test_request_help_escalates_until_resolved():
    tracker = ChatStateTracker()

    assert tracker.request_help("A", "1@c.us") is True
    assert tracker.is_escalated("A", "1@c.us")

    assert tracker.resolve("A", "1@c.us") is True
    assert not tracker.is_escalated("A", "1@c.us")


def test_first_request_wins():
    tracker = ChatStateTracker()
    tracker.request_help("A", "1@c.us")
    first = tracker.get("A", "1@c.us")

    assert tracker.request_help("A", "1@c.us") is False
    assert tracker.get("A", "1@c.us") == first


def test_request_after_resolve_is_a_fresh_escalation():
    tracker = ChatStateTracker()
    tracker.request_help("A", "1@c.us")
    first = tracker.get("A", "1@c.us")
    tracker.resolve("A", "1@c.us")

    assert tracker.request_help("A", "1@c.us") is True
    second = tracker.get("A", "1@c.us")
    assert second is not first
    assert second.requested_at >= first.requested_at


def test_resolve_without_escalation_is_noop():
    tracker = ChatStateTracker()
    assert tracker.resolve("A", "1@c.us") is False

    tracker.request_help("A", "1@c.us")
    assert tracker.resolve("A", "2@c.us") is False
    assert tracker.is_escalated("A", "1@c.us")


def test_tenants_are_isolated():
    tracker = ChatStateTracker()
    tracker.request_help("A", "1@c.us")

    assert not tracker.is_escalated("B", "1@c.us")
    assert tracker.list("B") == []
    assert tracker.resolve("B", "1@c.us") is False
    assert tracker.is_escalated("A", "1@c.us")


def test_list_is_ordered_by_request_time():
    tracker = ChatStateTracker()
    for chat_id in ("3@c.us", "1@c.us", "2@c.us"):
        tracker.request_help("A", chat_id)

    assert tracker.list("A") == ["3@c.us", "1@c.us", "2@c.us"]
    assert [e.chat_id for e in tracker.records("A")] == tracker.list("A")


def test_clear_forgets_everything():
    tracker = ChatStateTracker()
    tracker.request_help("A", "1@c.us")
    tracker.request_help("B", "2@c.us")

    tracker.clear()

    assert tracker.list("A") == []
    assert tracker.list("B") == []
