import pytest

from registration.errors import AuthError, InvalidTransitionError, LedgerError, UploadError
from registration.progress import PhaseTracker
from registration.schemas import WorkflowPhase


def test_phases_only_move_forward():
    tracker = PhaseTracker()
    assert tracker.advance("submit") is WorkflowPhase.ENTITY_CREATED
    with pytest.raises(InvalidTransitionError):
        tracker.advance("submit")
    with pytest.raises(InvalidTransitionError):
        tracker.advance("anchor")
    assert tracker.phase is WorkflowPhase.ENTITY_CREATED


@pytest.mark.parametrize("trigger", ["upload", "anchor"])
def test_check_rejects_out_of_order(trigger):
    with pytest.raises(InvalidTransitionError):
        PhaseTracker().check(trigger)


def test_in_flight_flags():
    tracker = PhaseTracker()
    assert tracker.begin("submit")
    assert not tracker.begin("submit")
    assert tracker.in_flight == "submit"
    assert not tracker.retryable("submit")
    tracker.end("submit")
    assert tracker.in_flight is None
    assert tracker.retryable("submit")


def test_failure_keeps_phase_and_reports_retryable():
    tracker = PhaseTracker(WorkflowPhase.DOCUMENT_UPLOADED)
    tracker.fail(LedgerError("congested", phase="anchor"))
    assert tracker.phase is WorkflowPhase.DOCUMENT_UPLOADED
    assert tracker.retryable("anchor")
    assert not tracker.retryable("upload")

    report = tracker.report(entity_id="PAT_123", confidence_bps=9100)
    assert report.retryable == {"submit": False, "upload": False, "anchor": True}
    assert report.last_error["kind"] == "ledger_error"
    assert "congested" in report.status_text


def test_success_clears_last_error():
    tracker = PhaseTracker(WorkflowPhase.ENTITY_CREATED)
    tracker.fail(UploadError("too big"))
    tracker.advance("upload")
    assert tracker.last_error is None


def test_auth_failure_blocks_until_reauthenticated():
    tracker = PhaseTracker(WorkflowPhase.ENTITY_CREATED)
    tracker.fail(AuthError("expired"))
    assert tracker.auth_required
    assert not tracker.retryable("upload")
    with pytest.raises(AuthError):
        tracker.check("upload")

    tracker.reauthenticated()
    tracker.check("upload")
    assert tracker.retryable("upload")
    assert tracker.last_error is None


def test_status_text_per_phase():
    tracker = PhaseTracker()
    assert "Fill in" in tracker.status_text()
    tracker.advance("submit")
    assert "PAT_123" in tracker.status_text("PAT_123")
    tracker.advance("upload")
    assert "91.00%" in tracker.status_text("PAT_123", 9100)
    tracker.advance("anchor")
    assert tracker.completed
    assert tracker.report("PAT_123").completed


def test_status_text_while_in_flight():
    tracker = PhaseTracker(WorkflowPhase.ENTITY_CREATED)
    tracker.begin("upload")
    assert tracker.status_text().startswith("Uploading")
