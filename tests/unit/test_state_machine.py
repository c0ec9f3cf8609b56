import pytest

from discipline_journal.core.exceptions import InvalidState
from discipline_journal.engine.state_machine import (
    PlanCommand,
    PlanStatus,
    allowed_targets,
    ensure_command_allowed,
    ensure_transition,
)


@pytest.mark.parametrize(
    "status, command, target",
    [
        (PlanStatus.PENDING, PlanCommand.EXECUTE, PlanStatus.OPEN),
        (PlanStatus.PENDING, PlanCommand.CANCEL, PlanStatus.CANCELLED),
        (PlanStatus.OPEN, PlanCommand.ADD_POSITION, PlanStatus.OPEN),
        (PlanStatus.OPEN, PlanCommand.TRIM, PlanStatus.OPEN),
        (PlanStatus.OPEN, PlanCommand.TRIM, PlanStatus.CLOSED),
        (PlanStatus.OPEN, PlanCommand.CLOSE, PlanStatus.CLOSED),
    ],
)
def test_legal_transitions(status, command, target):
    ensure_command_allowed(status, command)
    assert ensure_transition(status, command, target) == target


@pytest.mark.parametrize("status", [PlanStatus.CLOSED, PlanStatus.CANCELLED])
@pytest.mark.parametrize("command", list(PlanCommand))
def test_terminal_states_reject_everything(status, command):
    assert status.is_terminal
    assert allowed_targets(status, command) == frozenset()
    with pytest.raises(InvalidState) as exc:
        ensure_command_allowed(status, command)
    assert "已结束" in exc.value.message


def test_pending_cannot_be_closed_or_trimmed():
    for command in (PlanCommand.CLOSE, PlanCommand.TRIM, PlanCommand.ADD_POSITION):
        with pytest.raises(InvalidState):
            ensure_command_allowed(PlanStatus.PENDING, command)


def test_open_cannot_be_cancelled_or_executed_again():
    for command in (PlanCommand.CANCEL, PlanCommand.EXECUTE):
        with pytest.raises(InvalidState):
            ensure_command_allowed(PlanStatus.OPEN, command)


def test_close_cannot_land_on_open():
    with pytest.raises(InvalidState):
        ensure_transition(PlanStatus.OPEN, PlanCommand.CLOSE, PlanStatus.OPEN)


def test_status_accepts_raw_string():
    assert allowed_targets("PENDING", PlanCommand.EXECUTE) == frozenset({PlanStatus.OPEN})
