from datetime import date

from speddy.domain.scheduling.policies import (
    can_manage_session,
    is_specialist_source_role,
    normalize_role,
    unauthorized_session_ids,
    visibility_filter,
)
from speddy.models import ScheduleSession
from tests.factories import OTHER_PROVIDER_ID, PROVIDER_ID


def _visible_ids(db, viewer_id, role):
    return {row.id for row in db.query(ScheduleSession).filter(visibility_filter(viewer_id, role))}


class TestRoles:
    def test_normalize_trims_and_lowercases(self):
        assert normalize_role("  Speech ") == "speech"
        assert normalize_role(None) == ""

    def test_specialist_source_roles(self):
        for role in ("resource", "speech", "ot", "counseling", "specialist", " OT "):
            assert is_specialist_source_role(role)
        assert not is_specialist_source_role("sea")
        assert not is_specialist_source_role("provider")


class TestVisibility:
    def test_provider_sees_only_owned(self, db, make_template):
        owned = make_template()
        assigned = make_template(provider_id=OTHER_PROVIDER_ID, assigned_to_specialist_id=PROVIDER_ID)

        assert _visible_ids(db, PROVIDER_ID, "provider") == {owned.id}
        assert assigned.id not in _visible_ids(db, PROVIDER_ID, None)

    def test_specialist_sees_assigned(self, db, make_template):
        owned = make_template()
        assigned = make_template(
            provider_id=OTHER_PROVIDER_ID, student_id="student-x", assigned_to_specialist_id=PROVIDER_ID
        )
        make_template(provider_id=OTHER_PROVIDER_ID, student_id="student-y", assigned_to_sea_id=PROVIDER_ID)

        assert _visible_ids(db, PROVIDER_ID, " Speech") == {owned.id, assigned.id}

    def test_sea_sees_sea_assignments_only(self, db, make_template):
        make_template(provider_id=OTHER_PROVIDER_ID, assigned_to_specialist_id=PROVIDER_ID)
        sea_row = make_template(provider_id=OTHER_PROVIDER_ID, student_id="student-x", assigned_to_sea_id=PROVIDER_ID)

        assert _visible_ids(db, PROVIDER_ID, "SEA") == {sea_row.id}


class TestManagementPolicy:
    def test_owner_can_manage(self):
        row = ScheduleSession(provider_id=PROVIDER_ID)
        assert can_manage_session(PROVIDER_ID, row)

    def test_assigned_specialist_can_manage(self):
        row = ScheduleSession(provider_id=OTHER_PROVIDER_ID, assigned_to_specialist_id=PROVIDER_ID)
        assert can_manage_session(PROVIDER_ID, row)

    def test_assigned_sea_can_manage(self):
        row = ScheduleSession(provider_id=OTHER_PROVIDER_ID, assigned_to_sea_id=PROVIDER_ID)
        assert can_manage_session(PROVIDER_ID, row)

    def test_delivered_by_alone_grants_nothing(self):
        row = ScheduleSession(provider_id=OTHER_PROVIDER_ID, delivered_by="specialist")
        assert not can_manage_session(PROVIDER_ID, row)

    def test_empty_requester_rejected(self):
        row = ScheduleSession(provider_id="", session_date=date(2025, 3, 12))
        assert not can_manage_session("", row)
        assert not can_manage_session(None, row)

    def test_unauthorized_ids_lists_rejected(self):
        mine = ScheduleSession(id="a", provider_id=PROVIDER_ID)
        theirs = ScheduleSession(id="b", provider_id=OTHER_PROVIDER_ID)
        assert unauthorized_session_ids(PROVIDER_ID, [mine, theirs]) == ["b"]
