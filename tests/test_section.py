"""Tests for sections: the fetch state machine and patch reconciliation."""

import pytest

from ghdeck.config import SectionConfig
from ghdeck.engine.messages import (
    AllNotificationsRead,
    BranchPatch,
    CompletionMessage,
    IssuePatch,
    NotificationPatch,
    PageFetched,
    PullRequestPatch,
    SectionType,
)
from ghdeck.engine.section import (
    BranchSection,
    IssueSection,
    NotificationSection,
    PullRequestSection,
    UpdateOutcome,
    has_repo_qualifier,
)
from ghdeck.exceptions import FetchError
from ghdeck.models import Comment, ItemState, Label, PageInfo, RowIdentity

from conftest import FakeClock, make_branch, make_issue, make_notification, make_pr


def pr_section(fetcher, **kwargs) -> PullRequestSection:
    kwargs.setdefault("clock", FakeClock())
    return PullRequestSection(
        id=kwargs.pop("id", 1),
        config=SectionConfig(title="Mine", filters="is:open author:@me"),
        fetcher=fetcher,
        **kwargs,
    )


def run(command) -> CompletionMessage:
    return command.execute()


def load(section, fetcher, rows, has_next=False, cursor="c1") -> UpdateOutcome:
    fetcher.queue(rows, has_next=has_next, cursor=cursor)
    (command,) = section.fetch_next_page()
    return section.update(run(command))


class TestFetchStateMachine:
    """fetch_next_page and page completions."""

    def test_first_page(self, fetcher):
        """Empty section, one page of 3 rows with more to come."""
        section = pr_section(fetcher)
        commands = section.fetch_next_page()
        assert len(commands) == 1
        assert section.is_loading
        assert section.last_fetch_task_id.startswith("fetching_prs_1_")

        fetcher.queue([make_pr(1), make_pr(2), make_pr(3)], has_next=True)
        outcome = section.update(run(commands[0]))

        assert outcome == UpdateOutcome.APPLIED
        assert len(section.rows) == 3
        assert section.is_loading is False
        assert section.cursor.current_index == 0
        assert section.page_info.has_next_page is True

    def test_no_fetch_when_exhausted(self, fetcher):
        section = pr_section(fetcher)
        load(section, fetcher, [make_pr(1)], has_next=False)
        assert section.fetch_next_page() == []

    def test_next_page_appends(self, fetcher):
        section = pr_section(fetcher)
        load(section, fetcher, [make_pr(1), make_pr(2)], has_next=True, cursor="c1")
        load(section, fetcher, [make_pr(3)], has_next=False, cursor="c2")
        assert [r.number for r in section.rows] == [1, 2, 3]
        _, _, _, page_info = fetcher.calls[-1]
        assert page_info.start_cursor == "c1"

    def test_next_page_task_id_uses_start_cursor(self, fetcher):
        section = pr_section(fetcher)
        load(section, fetcher, [make_pr(1)], has_next=True, cursor="abc")
        (command,) = section.fetch_next_page()
        assert command.task.id == "fetching_prs_1_abc"

    def test_duplicate_request_while_in_flight(self, fetcher):
        """Asking for the same page twice yields one command."""
        section = pr_section(fetcher)
        load(section, fetcher, [make_pr(1)], has_next=True)
        assert len(section.fetch_next_page()) == 1
        assert section.fetch_next_page() == []

    def test_duplicate_completion_does_not_duplicate_rows(self, fetcher):
        section = pr_section(fetcher)
        fetcher.queue([make_pr(1), make_pr(2)], has_next=True)
        (command,) = section.fetch_next_page()
        msg = run(command)
        assert section.update(msg) == UpdateOutcome.APPLIED
        assert section.update(msg) == UpdateOutcome.STALE
        assert len(section.rows) == 2

    def test_stale_result_is_discarded(self, fetcher):
        """A result for an older fetch leaves rows, page_info and is_loading alone."""
        section = pr_section(fetcher)
        load(section, fetcher, [make_pr(1)], has_next=True)

        stale = CompletionMessage(
            section_id=1,
            section_type=SectionType.PRS,
            task_id="fetching_prs_1_old",
            payload=PageFetched(rows=[make_pr(9)], total_count=1, page_info=PageInfo()),
        )
        section.fetch_next_page()
        before = (list(section.rows), section.page_info, section.is_loading)
        assert section.update(stale) == UpdateOutcome.STALE
        assert (section.rows, section.page_info, section.is_loading) == before

    def test_reset_result_replaces_rows(self, fetcher):
        """After reset the first page replaces rows and the old fetch is stale."""
        section = pr_section(fetcher)
        load(section, fetcher, [make_pr(1)], has_next=True)
        fetcher.queue([make_pr(2)], has_next=True)
        (old,) = section.fetch_next_page()
        old_msg = run(old)

        fetcher.queue([make_pr(5), make_pr(6)])
        (fresh,) = section.reset()
        assert section.rows == []
        assert section.update(old_msg) == UpdateOutcome.STALE
        assert section.update(run(fresh)) == UpdateOutcome.APPLIED
        assert [r.number for r in section.rows] == [5, 6]

    def test_fetch_error_keeps_rows(self, fetcher):
        section = pr_section(fetcher)
        load(section, fetcher, [make_pr(1), make_pr(2)], has_next=True)
        fetcher.pages.append(FetchError("network down"))
        (command,) = section.fetch_next_page()
        msg = run(command)
        assert isinstance(msg.error, FetchError)
        assert msg.error.task_id == command.task.id
        assert section.update(msg) == UpdateOutcome.FAILED
        assert len(section.rows) == 2
        assert section.is_loading is False

    def test_rows_never_shrink_between_resets(self, fetcher):
        section = pr_section(fetcher)
        sizes = []
        for page, has_next in (([make_pr(1), make_pr(2)], True), ([make_pr(3)], True), ([], False)):
            load(section, fetcher, page, has_next=has_next, cursor=f"c{len(sizes)}")
            sizes.append(len(section.rows))
            assert 0 <= section.cursor.current_index < max(1, len(section.rows))
        assert sizes == sorted(sizes)

    def test_fetch_passes_filters_and_limit(self, fetcher):
        section = pr_section(fetcher, limit=7)
        load(section, fetcher, [])
        assert fetcher.calls[0][:3] == (SectionType.PRS, "is:open author:@me", 7)


class TestSmartFiltering:
    """repo: prefixing for PR and issue sections."""

    def test_prefixes_repo(self, fetcher):
        section = pr_section(fetcher, repo="o/r", smart_filtering=True)
        assert section.effective_filters == "repo:o/r is:open author:@me"

    def test_explicit_repo_wins(self, fetcher):
        section = pr_section(fetcher, repo="o/r", smart_filtering=True)
        section.filters = "repo:x/y is:open"
        assert section.effective_filters == "repo:x/y is:open"

    def test_toggle_refetches_when_filters_change(self, fetcher):
        section = pr_section(fetcher, repo="o/r", smart_filtering=True)
        commands = section.toggle_smart_filtering()
        assert len(commands) == 1
        assert section.effective_filters == "is:open author:@me"

    def test_toggle_without_repo_does_nothing(self, fetcher):
        section = pr_section(fetcher, smart_filtering=True)
        assert section.toggle_smart_filtering() == []

    def test_notifications_ignore_smart_filtering(self, fetcher):
        section = NotificationSection(
            id=1, config=SectionConfig(title="All"), fetcher=fetcher, repo="o/r", smart_filtering=True
        )
        assert section.effective_filters == ""

    def test_has_repo_qualifier(self):
        assert has_repo_qualifier("is:open repo:o/r")
        assert not has_repo_qualifier("is:open author:@me")


def patch_msg(patch, section_type=SectionType.PRS, task_id="pr_close_2", error=None) -> CompletionMessage:
    return CompletionMessage(section_id=1, section_type=section_type, task_id=task_id, payload=patch, error=error)


class TestReconciliation:
    """Patches applied to loaded rows."""

    @pytest.fixture
    def section(self, fetcher) -> PullRequestSection:
        section = pr_section(fetcher)
        load(section, fetcher, [make_pr(1), make_pr(5), make_pr(7)])
        return section

    def test_close_patch_touches_only_its_row(self, section):
        others = [section.rows[0], section.rows[2]]
        outcome = section.update(patch_msg(PullRequestPatch(identity=RowIdentity("o/r", 5), is_closed=True)))
        assert outcome == UpdateOutcome.APPLIED
        assert section.rows[1].state == ItemState.CLOSED
        assert section.rows[0] is others[0]
        assert section.rows[2] is others[1]

    def test_missing_identity_is_dropped(self, section):
        before = list(section.rows)
        outcome = section.update(patch_msg(PullRequestPatch(identity=RowIdentity("o/r", 99), is_closed=True)))
        assert outcome == UpdateOutcome.NOT_FOUND
        assert section.rows == before

    def test_issue_patch_does_not_match_pr_row(self, section):
        """Identity lookup is scoped to the patch's row kind."""
        outcome = section.update(patch_msg(IssuePatch(identity=RowIdentity("o/r", 5), is_closed=True)))
        assert outcome == UpdateOutcome.NOT_FOUND

    def test_failed_mutation_changes_nothing(self, section):
        from ghdeck.exceptions import MutationError

        before = list(section.rows)
        msg = patch_msg(None, error=MutationError("nope", task_id="pr_close_5"), task_id="pr_close_5")
        assert section.update(msg) == UpdateOutcome.FAILED
        assert section.rows == before

    def test_merge_and_ready(self, fetcher):
        section = pr_section(fetcher)
        load(section, fetcher, [make_pr(3, is_draft=True, mergeable="MERGEABLE")])
        identity = RowIdentity("o/r", 3)
        section.update(patch_msg(PullRequestPatch(identity=identity, ready_for_review=True)))
        assert section.rows[0].is_draft is False
        section.update(patch_msg(PullRequestPatch(identity=identity, is_merged=True)))
        assert section.rows[0].state == ItemState.MERGED
        assert section.rows[0].mergeable == ""

    def test_comment_and_assignees(self, fetcher):
        section = IssueSection(id=1, config=SectionConfig(title="Assigned"), fetcher=fetcher, clock=FakeClock())
        load(section, fetcher, [make_issue(4)])
        identity = RowIdentity("o/r", 4)

        section.update(patch_msg(IssuePatch(identity=identity, new_comment=Comment(author="me", body="hi")), SectionType.ISSUES))
        assert section.rows[0].comment_count == 1
        assert section.rows[0].comments[-1].body == "hi"

        section.update(patch_msg(IssuePatch(identity=identity, added_assignees=("a", "b")), SectionType.ISSUES))
        section.update(patch_msg(IssuePatch(identity=identity, added_assignees=("b",), removed_assignees=("a",)), SectionType.ISSUES))
        assert [a.login for a in section.rows[0].assignees] == ["b"]

    def test_labels_replaced(self, section):
        labels = (Label(name="bug", color="d73a4a"),)
        section.update(patch_msg(PullRequestPatch(identity=RowIdentity("o/r", 1), labels=labels)))
        assert section.rows[0].labels == labels

    def test_display_rows_follow_patches(self, section):
        assert section.display_rows()[1][0] == "open"
        section.update(patch_msg(PullRequestPatch(identity=RowIdentity("o/r", 5), is_closed=True)))
        assert section.display_rows()[1][0] == "closed"

    def test_ignored_payload(self, section):
        assert section.update(patch_msg(None, task_id="notification_unsubscribe_1")) == UpdateOutcome.IGNORED


class TestNotificationAndBranchSections:
    """Kind-specific updates."""

    def test_mark_all_read(self, fetcher):
        section = NotificationSection(id=1, config=SectionConfig(title="All"), fetcher=fetcher, clock=FakeClock())
        load(section, fetcher, [make_notification("1"), make_notification("2", unread=False)])
        msg = patch_msg(AllNotificationsRead(), SectionType.NOTIFICATIONS, "notification_read_all")
        assert section.update(msg) == UpdateOutcome.APPLIED
        assert not any(row.unread for row in section.rows)

    def test_done_patch(self, fetcher):
        section = NotificationSection(id=1, config=SectionConfig(title="All"), fetcher=fetcher, clock=FakeClock())
        load(section, fetcher, [make_notification("1")])
        patch = NotificationPatch(identity=RowIdentity(key="1"), is_done=True, unread=False)
        section.update(patch_msg(patch, SectionType.NOTIFICATIONS, "notification_done_1"))
        assert section.rows[0].is_done
        assert section.render_row(section.rows[0])[0] == "done"

    def test_branch_patches(self, fetcher):
        section = BranchSection(id=1, config=SectionConfig(title="Local Branches"), fetcher=fetcher, clock=FakeClock())
        load(section, fetcher, [make_branch("main", is_current=True), make_branch("feature")])
        identity = RowIdentity(key="feature")
        section.update(patch_msg(BranchPatch(identity=identity, pr_number=12), SectionType.BRANCHES, "branch_create_pr_feature"))
        assert section.rows[1].pr_number == 12
        section.update(patch_msg(BranchPatch(identity=identity, is_deleted=True), SectionType.BRANCHES, "branch_delete_feature"))
        assert section.rows[1].is_deleted
        assert section.render_row(section.rows[1])[0] == "x"

    def test_pager_text(self, fetcher):
        section = pr_section(fetcher)
        assert section.pager_text() == ""
        fetcher.queue([make_pr(1), make_pr(2)], total=10)
        (command,) = section.fetch_next_page()
        section.update(run(command))
        assert section.pager_text() == "PRs 1/10"

    def test_notification_total_counts_every_loaded_page(self, fetcher):
        """Each notification page reports only its own size; the pager counts all loaded rows."""
        section = NotificationSection(id=1, config=SectionConfig(title="All"), fetcher=fetcher, limit=2, clock=FakeClock())
        load(section, fetcher, [make_notification("1"), make_notification("2")], has_next=True, cursor="1")
        load(section, fetcher, [make_notification("3"), make_notification("4")], cursor="2")

        assert len(section.rows) == 4
        assert section.total_count == 4
        section.cursor.last()
        assert section.pager_text() == "Notifications 4/4"

    def test_visible_rows_follow_cursor_window(self, fetcher):
        section = pr_section(fetcher, viewport_height=2)
        load(section, fetcher, [make_pr(1), make_pr(2), make_pr(3)])
        assert section.visible_display_rows() == section.display_rows()[:2]

        section.cursor.next()
        section.cursor.next()
        assert section.visible_display_rows() == section.display_rows()[1:]
