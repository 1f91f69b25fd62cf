"""Tests for roster parsing, reconciliation and access rules."""

from __future__ import annotations

import pytest

from campus_calendar.directory import StaffUser
from campus_calendar.domain.calendar_events.roster import (
    RosterEntry,
    apply_roster,
    diff_roster,
    format_roster_string,
    group_roster,
    involved_user_ids,
    parse_roster_string,
    user_has_write_access,
)
from campus_calendar.exceptions import ValidationError
from campus_calendar.models import StaffActor

pytestmark = pytest.mark.unit


class TestParseRosterString:
    def test_parses_full_and_short_segments(self):
        entries = parse_roster_string("USER-5-true-false|department-2|USER-7-1-yes")

        assert entries == [
            RosterEntry("USER", 5, write_access=True, view_only=False),
            RosterEntry("DEPARTMENT", 2, write_access=False, view_only=False),
            RosterEntry("USER", 7, write_access=True, view_only=True),
        ]

    def test_blank_input_is_empty_roster(self):
        assert parse_roster_string("") == []
        assert parse_roster_string(None) == []
        assert parse_roster_string(" | ") == []

    @pytest.mark.parametrize(
        "value",
        ["USER", "USER-abc", "STUDENT-1-true-false", "USER-1-maybe", "USER-1-true-false-extra"],
    )
    def test_malformed_segments_are_rejected(self, value):
        with pytest.raises(ValidationError):
            parse_roster_string(value)

    def test_format_produces_parseable_string(self):
        entries = [RosterEntry("USER", 5, True, False), RosterEntry("DEPARTMENT", 2, False, True)]

        assert format_roster_string(entries) == "USER-5-true-false|DEPARTMENT-2-false-true"
        assert parse_roster_string(format_roster_string(entries)) == entries


class TestDiffRoster:
    def test_set_algebra_over_identities(self):
        current = [RosterEntry("USER", 1), RosterEntry("USER", 2)]
        desired = [RosterEntry("USER", 2, write_access=True), RosterEntry("DEPARTMENT", 5)]

        diff = diff_roster(current, desired)

        assert diff.to_create == [RosterEntry("DEPARTMENT", 5)]
        assert diff.to_update == [RosterEntry("USER", 2, write_access=True)]
        assert diff.to_delete == [RosterEntry("USER", 1)]

    def test_duplicate_identity_last_one_wins(self):
        desired = [RosterEntry("USER", 2, write_access=True), RosterEntry("USER", 2, view_only=True)]

        diff = diff_roster([], desired)

        assert diff.to_create == [RosterEntry("USER", 2, view_only=True)]

    def test_same_roster_has_no_creates_or_deletes(self):
        roster = [RosterEntry("USER", 1)]
        diff = diff_roster(roster, roster)

        assert diff.to_create == [] and diff.to_delete == []


class TestApplyRoster:
    def test_updates_rows_in_place_and_soft_deletes_removed(self, db_session, make_event):
        event = make_event(roster=(RosterEntry("USER", 2), RosterEntry("USER", 3)))
        sam_row_id = next(r.id for r in event.recipients if r.entity_id == 2)

        apply_roster(
            db_session,
            event,
            [RosterEntry("USER", 2, write_access=True), RosterEntry("DEPARTMENT", 5)],
            StaffActor(1),
        )
        db_session.commit()
        db_session.refresh(event)

        active = {r.identity: r for r in event.active_recipients}
        assert set(active) == {("USER", 2), ("DEPARTMENT", 5)}
        assert active[("USER", 2)].id == sam_row_id
        assert active[("USER", 2)].write_access is True

        removed = next(r for r in event.recipients if r.entity_id == 3)
        assert removed.is_deleted
        assert removed.deleted_by == 1

    def test_re_adding_removed_identity_creates_new_row(self, db_session, make_event):
        event = make_event(roster=(RosterEntry("USER", 3),))
        apply_roster(db_session, event, [], StaffActor(1))
        db_session.commit()

        apply_roster(db_session, event, [RosterEntry("USER", 3)], StaffActor(1))
        db_session.commit()
        db_session.refresh(event)

        rows = [r for r in event.recipients if r.entity_id == 3]
        assert len(rows) == 2
        assert len(event.active_recipients) == 1


class TestGroupRoster:
    def test_creator_first_then_write_access(self):
        entries = [
            RosterEntry("USER", 3),
            RosterEntry("USER", 4, write_access=True),
            RosterEntry("USER", 1, write_access=True),
            RosterEntry("DEPARTMENT", 5, view_only=True),
        ]

        grouped = group_roster(entries, creator_id=1)

        assert [e.entity_id for e in grouped["involved"]] == [1, 4, 3]
        assert [e.entity_id for e in grouped["view_only"]] == [5]


class TestWriteAccess:
    def test_parent_admin_always_writes(self, make_event):
        event = make_event()
        admin = StaffUser(id=9, first_name="A", last_name="B", is_parent_admin=True)

        assert user_has_write_access(event, admin)

    def test_user_and_department_grants(self, make_event):
        event = make_event(roster=(RosterEntry("DEPARTMENT", 5, write_access=True),))
        member = StaffUser(id=2, first_name="Sam", last_name="Rivera", department_ids=(5,))
        outsider = StaffUser(id=4, first_name="Nora", last_name="Pike")

        assert user_has_write_access(event, member)
        assert not user_has_write_access(event, outsider)
        assert not user_has_write_access(event, None)

    def test_view_only_grant_never_writes(self, make_event):
        event = make_event(roster=(RosterEntry("USER", 2, write_access=True, view_only=True),))
        user = StaffUser(id=2, first_name="Sam", last_name="Rivera")

        assert not user_has_write_access(event, user)


class TestInvolvedUserIds:
    def test_departments_expand_and_dedupe(self, directory):
        entries = [
            RosterEntry("USER", 3),
            RosterEntry("DEPARTMENT", 5),
            RosterEntry("USER", 4, view_only=True),
        ]

        assert involved_user_ids(entries, directory, organization_id=10) == [3, 2]

    def test_department_members_filtered_by_campus(self, directory):
        assert involved_user_ids([RosterEntry("DEPARTMENT", 5)], directory, organization_id=11) == []
