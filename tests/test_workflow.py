import pytest

from sps_dashboard.services.workflow import (
    MissionStatus,
    ReportStatus,
    InvalidTransition,
    can_transition_mission,
    can_transition_report,
    ensure_mission_transition,
    ensure_report_transition,
    is_terminal_mission,
    mission_status_label,
    report_status_label,
)


class TestMissionTransitions:

    @pytest.mark.parametrize("current", ["pending", "assigned", "refused"])
    def test_assign_from_dispatch_statuses(self, current):
        assert can_transition_mission(current, "assigned")

    def test_confirm_and_refuse_only_from_assigned(self):
        assert can_transition_mission("assigned", "in_progress")
        assert can_transition_mission("assigned", "refused")
        assert not can_transition_mission("pending", "in_progress")
        assert not can_transition_mission("pending", "refused")

    def test_complete_only_from_in_progress(self):
        assert can_transition_mission("in_progress", "completed")
        assert not can_transition_mission("assigned", "completed")

    @pytest.mark.parametrize("current", ["pending", "assigned", "refused", "in_progress"])
    def test_cancel_from_any_open_status(self, current):
        assert can_transition_mission(current, "cancelled")

    @pytest.mark.parametrize("current", ["completed", "cancelled"])
    def test_terminal_statuses(self, current):
        assert is_terminal_mission(current)
        for target in MissionStatus:
            assert not can_transition_mission(current, target.value)

    def test_unknown_status_is_rejected(self):
        assert not can_transition_mission("archived", "assigned")
        with pytest.raises(InvalidTransition):
            ensure_mission_transition("pending", "archived")

    def test_ensure_returns_enum(self):
        assert ensure_mission_transition("pending", "assigned") is MissionStatus.ASSIGNED


class TestReportTransitions:

    def test_linear_path(self):
        assert ensure_report_transition("draft", "submitted") is ReportStatus.SUBMITTED
        assert ensure_report_transition("submitted", "validated") is ReportStatus.VALIDATED
        assert ensure_report_transition("validated", "sent_to_client") is ReportStatus.SENT_TO_CLIENT

    @pytest.mark.parametrize("current", ["draft", "submitted", "sent_to_client"])
    def test_sent_to_client_only_from_validated(self, current):
        assert not can_transition_report(current, "sent_to_client")
        with pytest.raises(InvalidTransition) as exc:
            ensure_report_transition(current, "sent_to_client")
        assert exc.value.current == current
        assert exc.value.target == "sent_to_client"

    def test_no_skipping_validation(self):
        assert not can_transition_report("draft", "validated")


def test_labels():
    assert mission_status_label("pending") == "En attente"
    assert mission_status_label("assigned") == "Affectée"
    assert report_status_label("sent_to_client") == "Envoyé au client"
    assert report_status_label("weird") == "weird"
