"""Tests for notification search parsing."""

from ghdeck.data.filters import (
    PARTICIPATING_REASONS,
    ReadState,
    parse_notification_filters,
    parse_reasons,
)


class TestParseNotificationFilters:
    """Qualifiers in notification section filters."""

    def test_defaults(self):
        filters = parse_notification_filters("")
        assert filters.read_state == ReadState.UNREAD
        assert filters.include_bookmarked is True
        assert filters.repos == []
        assert filters.is_done is False

    def test_repos(self):
        filters = parse_notification_filters("repo:o/a repo:o/b")
        assert filters.repos == ["o/a", "o/b"]

    def test_read(self):
        filters = parse_notification_filters("is:read")
        assert filters.read_state == ReadState.READ
        assert filters.include_bookmarked is False

    def test_all(self):
        assert parse_notification_filters("is:all").read_state == ReadState.ALL
        assert parse_notification_filters("is:read is:unread").read_state == ReadState.ALL

    def test_explicit_unread_hides_bookmarks(self):
        filters = parse_notification_filters("is:unread")
        assert filters.read_state == ReadState.UNREAD
        assert filters.include_bookmarked is False

    def test_done(self):
        assert parse_notification_filters("is:done").is_done is True


class TestReasons:
    """reason: qualifiers."""

    def test_hyphenated_names(self):
        assert parse_reasons("reason:review-requested reason:mention") == ["review_requested", "mention"]

    def test_participating_expands(self):
        assert parse_reasons("reason:participating") == list(PARTICIPATING_REASONS)

    def test_matches_reason(self):
        filters = parse_notification_filters("reason:mention")
        assert filters.matches_reason("mention")
        assert not filters.matches_reason("subscribed")
        assert parse_notification_filters("").matches_reason("anything")


class TestInclude:
    """Read state against bookmarks."""

    def test_unread_view_keeps_read_bookmarks(self):
        filters = parse_notification_filters("")
        assert filters.include(unread=True)
        assert not filters.include(unread=False)
        assert filters.include(unread=False, bookmarked=True)

    def test_read_view(self):
        filters = parse_notification_filters("is:read")
        assert filters.include(unread=False)
        assert not filters.include(unread=True, bookmarked=True)

    def test_all_view(self):
        filters = parse_notification_filters("is:all")
        assert filters.include(unread=True)
        assert filters.include(unread=False)
