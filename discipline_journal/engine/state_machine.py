"""交易计划状态机

PENDING ──execute──▶ OPEN ──close / trim 至 0──▶ CLOSED
   │                  │ ▲
   │                  └─┘ add / trim
   └──cancel──▶ CANCELLED

CLOSED、CANCELLED 为终态，不接受任何命令。
"""
from enum import Enum
from typing import Dict, FrozenSet, Tuple

from discipline_journal.core.exceptions import InvalidState


class PlanStatus(str, Enum):
    """计划状态"""
    PENDING = "PENDING"       # 计划阶段，待成交
    OPEN = "OPEN"             # 持仓中
    CLOSED = "CLOSED"         # 已平仓
    CANCELLED = "CANCELLED"   # 已撤单

    @property
    def is_terminal(self) -> bool:
        return self in (PlanStatus.CLOSED, PlanStatus.CANCELLED)


class PlanCommand(str, Enum):
    EXECUTE = "execute"
    ADD_POSITION = "add_position"
    TRIM = "trim"
    CLOSE = "close"
    CANCEL = "cancel"


TRANSITIONS: Dict[Tuple[PlanStatus, PlanCommand], FrozenSet[PlanStatus]] = {
    (PlanStatus.PENDING, PlanCommand.EXECUTE): frozenset({PlanStatus.OPEN}),
    (PlanStatus.PENDING, PlanCommand.CANCEL): frozenset({PlanStatus.CANCELLED}),
    (PlanStatus.OPEN, PlanCommand.ADD_POSITION): frozenset({PlanStatus.OPEN}),
    (PlanStatus.OPEN, PlanCommand.TRIM): frozenset({PlanStatus.OPEN, PlanStatus.CLOSED}),
    (PlanStatus.OPEN, PlanCommand.CLOSE): frozenset({PlanStatus.CLOSED}),
}

_REJECT_MESSAGES = {
    PlanCommand.EXECUTE: "仅 PENDING 状态的计划可执行建仓",
    PlanCommand.CANCEL: "仅 PENDING 状态的计划可撤单",
    PlanCommand.ADD_POSITION: "仅 OPEN 状态的持仓可加仓",
    PlanCommand.TRIM: "仅 OPEN 状态的持仓可减仓",
    PlanCommand.CLOSE: "当前计划不是 OPEN 状态，无法平仓",
}


def allowed_targets(status: PlanStatus, command: PlanCommand) -> FrozenSet[PlanStatus]:
    return TRANSITIONS.get((PlanStatus(status), command), frozenset())


def ensure_command_allowed(status: PlanStatus, command: PlanCommand) -> None:
    status = PlanStatus(status)
    if status.is_terminal:
        raise InvalidState(f"计划已结束（当前状态 {status.value}），不接受任何操作")
    if not allowed_targets(status, command):
        raise InvalidState(f"{_REJECT_MESSAGES[command]}（当前状态 {status.value}）")


def ensure_transition(status: PlanStatus, command: PlanCommand, target: PlanStatus) -> PlanStatus:
    if target not in allowed_targets(status, command):
        raise InvalidState(
            f"非法状态流转: {PlanStatus(status).value} --{command.value}--> {PlanStatus(target).value}"
        )
    return target
