import pytest

from darkmode.engine.commands import (
    CommandResult,
    GetState,
    Reset,
    SetState,
    Toggle,
    UnknownCommandError,
    UpdateFilters,
    dispatch,
    handle_message,
    parse_command,
)
from darkmode.engine.state import VisualState

from factories import make_engine, run


def test_parse_known_actions():
    assert parse_command({"action": "toggle"}) == Toggle()
    assert parse_command({"action": "getState"}) == GetState()
    assert parse_command({"action": "setState", "data": {"enabled": 1}}) == SetState(enabled=True)
    assert parse_command({"action": "setState"}) == SetState(enabled=False)
    assert parse_command({"action": "reset"}) == Reset()
    cmd = parse_command({"action": "update", "data": {"sepia": 40}})
    assert isinstance(cmd, UpdateFilters)
    assert cmd.values == {"sepia": 40}
    assert parse_command({"action": "updateFilters", "data": "junk"}).values == {}


@pytest.mark.parametrize(
    "payload,message",
    [
        ({"action": "explode"}, "Unknown action: explode"),
        ({}, "Unknown action: empty"),
        ({"action": ""}, "Unknown action: empty"),
        ("not a mapping", "Unknown action: empty"),
    ],
)
def test_parse_rejects_unknown(payload, message):
    with pytest.raises(UnknownCommandError) as exc:
        parse_command(payload)
    assert str(exc.value) == message


def test_result_to_dict_merges_snapshot():
    assert CommandResult(success=False, error="boom").to_dict() == {"success": False, "error": "boom"}


def test_get_state_reports_snapshot():
    engine, _, sched = make_engine()
    run(sched, engine.resolve())
    result = run(sched, dispatch(engine, GetState()))
    assert result.success
    assert result.snapshot.state == "on"
    assert result.snapshot.enabled is True


def test_set_state_and_toggle_drive_engine():
    engine, _, sched = make_engine(enabled=False)
    result = run(sched, dispatch(engine, SetState(enabled=True)))
    assert result.snapshot.state == "on"
    result = run(sched, dispatch(engine, Toggle()))
    assert result.snapshot.state == "off"
    assert engine.get_state() is VisualState.DISABLED


def test_handler_errors_become_failed_results(monkeypatch, caplog):
    engine, _, sched = make_engine()

    def broken(_partial=None):
        raise RuntimeError("storage full")

    monkeypatch.setattr(engine, "update", broken)
    with caplog.at_level("WARNING", logger="darkmode.engine.commands"):
        result = run(sched, dispatch(engine, UpdateFilters(values={"sepia": 10})))
    assert result.success is False
    assert result.error == "storage full"
    assert "UpdateFilters" in caplog.text


def test_handle_message_round_trip():
    engine, _, sched = make_engine()
    run(sched, engine.resolve())
    response = run(sched, handle_message(engine, {"action": "updateFilters", "data": {"contrast": 300}}))
    assert response == {
        "success": True,
        "enabled": True,
        "brightness": 92,
        "contrast": 200,
        "sepia": 12,
        "grayscale": 0,
        "state": "on",
    }
    assert run(sched, handle_message(engine, {"action": "nope"})) == {
        "success": False,
        "error": "Unknown action: nope",
    }
    reset = run(sched, handle_message(engine, {"action": "reset"}))
    assert reset["success"] and reset["state"] == "off" and reset["contrast"] == 95
