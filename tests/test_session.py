import threading

import pytest

from conftest import FakeAcquirer, RecordingStore
from fieldsync.errors import OverrideNotAllowedError, SessionBusyError, ValidationError
from fieldsync.models import AnchorFields, Coordinate
from fieldsync.session import (
    EMPTY_LABEL_MESSAGE,
    SAVE_FAILED_MESSAGE,
    UNRESOLVED_MESSAGE,
    CaptureSessionController,
    reused_note,
)

OWNER = "owner-1"


def controller_for(store, acquirer):
    return CaptureSessionController(OWNER, store, acquirer)


@pytest.mark.parametrize("label", ["", "   "])
def test_empty_label_fails_validation_without_side_effects(store, label):
    acquirer = FakeAcquirer(Coordinate(1.0, 2.0))
    ctrl = controller_for(store, acquirer)
    with pytest.raises(ValidationError):
        ctrl.submit(label)
    assert acquirer.calls == 0
    assert store.appended == []
    assert ctrl.state.status == "error"
    assert ctrl.state.message == EMPTY_LABEL_MESSAGE
    assert not ctrl.can_save_without_location


@pytest.mark.parametrize("label, note", [(123, ""), (["DSC_1"], ""), ("DSC_1", 7)])
def test_non_text_input_is_rejected(store, label, note):
    acquirer = FakeAcquirer(Coordinate(1.0, 2.0))
    ctrl = controller_for(store, acquirer)
    with pytest.raises(ValidationError, match="must be text"):
        ctrl.submit(label, note=note)
    assert acquirer.calls == 0
    assert store.appended == []
    assert ctrl.state.status == "idle"


def test_acquired_coordinate_is_persisted_exactly(store):
    fix = Coordinate(40.7128, -74.006, 6.5)
    ctrl = controller_for(store, FakeAcquirer(fix))

    state = ctrl.submit("DSC_9231", note="  bridge  ", camera_id="cam-a")

    assert state.status == "success"
    (anchor,) = store.list_anchors(OWNER)
    assert state.anchor_id == anchor.id
    assert anchor.coordinate == fix
    assert anchor.label == "DSC_9231"
    assert anchor.note == "bridge"
    assert anchor.camera_id == "cam-a"


def test_label_is_trimmed(store):
    ctrl = controller_for(store, FakeAcquirer(Coordinate(1.0, 2.0)))
    ctrl.submit("  DSC_1 ")
    assert store.appended[0].label == "DSC_1"


@pytest.mark.parametrize("note, expected", [
    ("", "Reused previous location"),
    ("windy", "windy (reused previous location)"),
])
def test_reuses_latest_coordinate_when_acquisition_fails(store, note, expected):
    store.append(OWNER, AnchorFields("DSC_9230", Coordinate(1.0, 2.0), note=""))
    ctrl = controller_for(store, FakeAcquirer(None))

    state = ctrl.submit("9231", note=note)

    assert state.status == "success"
    latest = store.list_anchors(OWNER)[0]
    assert latest.label == "9231"
    assert (latest.coordinate.latitude, latest.coordinate.longitude) == (1.0, 2.0)
    assert latest.note == expected


def test_reuse_keeps_previous_accuracy(store):
    store.append(OWNER, AnchorFields("DSC_1", Coordinate(1.0, 2.0, 14.0)))
    ctrl = controller_for(store, FakeAcquirer(None))
    ctrl.submit("DSC_2")
    assert store.list_anchors(OWNER)[0].coordinate == Coordinate(1.0, 2.0, 14.0)


def test_no_reuse_when_latest_anchor_lacks_coordinate(store):
    store.append(OWNER, AnchorFields("DSC_1", Coordinate(1.0, 2.0)))
    store.append(OWNER, AnchorFields("DSC_2", None))
    store.appended.clear()
    ctrl = controller_for(store, FakeAcquirer(None))

    state = ctrl.submit("DSC_3")

    assert state.status == "error"
    assert state.message == UNRESOLVED_MESSAGE
    assert store.appended == []


def test_unresolved_then_save_without_location(store):
    ctrl = controller_for(store, FakeAcquirer(None))

    state = ctrl.submit("DSC_7", note="tunnel", camera_id="cam-b")
    assert state.status == "error"
    assert store.appended == []
    assert ctrl.can_save_without_location

    state = ctrl.save_without_location()

    assert state.status == "success"
    (anchor,) = store.list_anchors(OWNER)
    assert anchor.coordinate is None
    assert anchor.label == "DSC_7"
    assert anchor.note == "tunnel"
    assert anchor.camera_id == "cam-b"
    assert not ctrl.can_save_without_location


def test_override_not_allowed_outside_error(store):
    ctrl = controller_for(store, FakeAcquirer(Coordinate(1.0, 2.0)))
    with pytest.raises(OverrideNotAllowedError):
        ctrl.save_without_location()
    ctrl.submit("DSC_1")
    with pytest.raises(OverrideNotAllowedError):
        ctrl.save_without_location()
    assert len(store.appended) == 1


def test_override_not_allowed_after_validation_error(store):
    ctrl = controller_for(store, FakeAcquirer(None))
    with pytest.raises(ValidationError):
        ctrl.submit("")
    with pytest.raises(OverrideNotAllowedError):
        ctrl.save_without_location()


def test_retry_after_error_can_succeed(store):
    acquirer = FakeAcquirer(None)
    ctrl = controller_for(store, acquirer)
    assert ctrl.submit("DSC_5").status == "error"
    acquirer.result = Coordinate(5.0, 6.0)
    assert ctrl.submit("DSC_5").status == "success"
    assert acquirer.calls == 2
    assert len(store.appended) == 1


def test_submit_while_locating_is_rejected(store):
    gate = threading.Event()
    acquirer = FakeAcquirer(Coordinate(1.0, 2.0), gate=gate)
    ctrl = controller_for(store, acquirer)
    results = []
    worker = threading.Thread(target=lambda: results.append(ctrl.submit("DSC_1")))
    worker.start()
    try:
        assert acquirer.started.wait(5)
        assert ctrl.state.status == "locating"
        with pytest.raises(SessionBusyError):
            ctrl.submit("DSC_2")
        with pytest.raises(SessionBusyError):
            ctrl.submit("")
        assert acquirer.calls == 1
    finally:
        gate.set()
        worker.join(5)
    assert results[0].status == "success"
    assert [f.label for f in store.appended] == ["DSC_1"]


def test_persistence_failure_surfaces_as_error(clock):
    store = RecordingStore(clock=clock, fail_appends=True)
    ctrl = controller_for(store, FakeAcquirer(Coordinate(1.0, 2.0)))

    state = ctrl.submit("DSC_1")

    assert state.status == "error"
    assert state.message == SAVE_FAILED_MESSAGE
    assert state.reason == "persistence"
    # the frame is still held, so the user may resubmit or save without GPS
    assert ctrl.can_save_without_location


def test_failed_store_read_during_fallback_is_a_persistence_error(clock):
    store = RecordingStore(clock=clock, fail_lists=True)
    ctrl = controller_for(store, FakeAcquirer(None))
    state = ctrl.submit("DSC_1")
    assert state.status == "error"
    assert state.reason == "persistence"
    assert store.appended == []


def test_state_listener_sees_transitions(store):
    ctrl = controller_for(store, FakeAcquirer(Coordinate(1.0, 2.0)))
    seen = []
    ctrl.add_listener(lambda state: seen.append(state.status))
    ctrl.submit("DSC_1")
    assert seen == ["locating", "success"]


def test_reset_returns_to_idle(store):
    ctrl = controller_for(store, FakeAcquirer(None))
    ctrl.submit("DSC_1")
    assert ctrl.reset().status == "idle"
    assert not ctrl.can_save_without_location


def test_clear_all_requires_confirmation(store):
    store.append(OWNER, AnchorFields("DSC_1", Coordinate(1.0, 2.0)))
    store.append("someone-else", AnchorFields("DSC_1", None))
    ctrl = controller_for(store, FakeAcquirer(None))
    with pytest.raises(ValidationError):
        ctrl.clear_all()
    assert len(store.list_anchors(OWNER)) == 1

    assert ctrl.clear_all(confirm=True) == 1
    assert store.list_anchors(OWNER) == []
    assert len(store.list_anchors("someone-else")) == 1


def test_reused_note_helper():
    assert reused_note("") == "Reused previous location"
    assert reused_note("  ") == "Reused previous location"
    assert reused_note(" windy ") == "windy (reused previous location)"
