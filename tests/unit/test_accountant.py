from decimal import Decimal
from types import SimpleNamespace

import pytest

from discipline_journal.core.exceptions import DisciplineViolation, InvalidState
from discipline_journal.engine.accountant import (
    PositionAccountant,
    PositionState,
    TransactionType,
    weighted_average,
)


def test_open_sets_average_and_quantities():
    state = PositionAccountant.open(Decimal("10.00"), 10000)
    assert state.avg_entry_price == Decimal("10.00")
    assert state.total_quantity == state.current_quantity == 10000
    assert state.realized_pnl == Decimal("0")


def test_add_recomputes_weighted_average_half_up():
    state = PositionAccountant.open(Decimal("10.00"), 10000)
    state = PositionAccountant.add(state, Decimal("10.20"), 100)
    # 100000 + 1020 = 101020 / 10100 = 10.001980... → 10.0020
    assert state.avg_entry_price == Decimal("10.0020")
    assert state.total_quantity == state.current_quantity == 10100


def test_add_without_open_position_is_invalid_state():
    with pytest.raises(InvalidState):
        PositionAccountant.add(PositionState(), Decimal("10"), 100)


def test_add_after_trim_weights_all_shares_bought():
    state = PositionAccountant.open(Decimal("10"), 1000)
    state = PositionAccountant.dispose(state, Decimal("12"), 900).state
    state = PositionAccountant.add(state, Decimal("20"), 100)
    # (10 × 1000 + 20 × 100) / 1100 = 10.90909... → 10.9091
    assert state.avg_entry_price == Decimal("10.9091")
    assert state.total_quantity == 1100
    assert state.current_quantity == 200
    assert state.realized_pnl == Decimal("1800.0000")


def test_dispose_books_chunk_pnl_and_keeps_average():
    state = PositionAccountant.open(Decimal("10.0020"), 10100)
    disposal = PositionAccountant.dispose(state, Decimal("11.00"), 5000)
    assert disposal.chunk_pnl == Decimal("4990.0000")
    assert disposal.state.current_quantity == 5100
    assert disposal.state.avg_entry_price == Decimal("10.0020")
    assert disposal.state.realized_pnl == Decimal("4990.0000")


def test_dispose_loss_is_negative():
    state = PositionAccountant.open(Decimal("10"), 100)
    disposal = PositionAccountant.dispose(state, Decimal("9.5"), 100)
    assert disposal.chunk_pnl == Decimal("-50.0000")
    assert disposal.state.is_flat


def test_dispose_more_than_held_is_discipline_violation():
    state = PositionAccountant.open(Decimal("10"), 100)
    with pytest.raises(DisciplineViolation):
        PositionAccountant.dispose(state, Decimal("11"), 200)


def test_dispose_does_not_mutate_input():
    state = PositionAccountant.open(Decimal("10"), 200)
    PositionAccountant.dispose(state, Decimal("11"), 100)
    assert state.current_quantity == 200


def test_weighted_average_identity():
    avg = weighted_average(Decimal("10"), 300, Decimal("11"), 100)
    assert avg == Decimal("10.2500")


def test_replay_rebuilds_state_from_ledger():
    entries = [
        SimpleNamespace(type=TransactionType.INITIAL_ENTRY, price=Decimal("10.00"), quantity=10000),
        SimpleNamespace(type=TransactionType.ADD_POSITION, price=Decimal("10.20"), quantity=100),
        SimpleNamespace(type=TransactionType.PARTIAL_EXIT, price=Decimal("11.00"), quantity=5000),
        SimpleNamespace(type=TransactionType.FULL_EXIT, price=Decimal("11.50"), quantity=5100),
    ]
    state = PositionAccountant.replay(entries)
    assert state.current_quantity == 0
    assert state.total_quantity == 10100
    assert state.realized_pnl == Decimal("12629.8000")


def test_transaction_type_disposal_flag():
    assert TransactionType.PARTIAL_EXIT.is_disposal
    assert TransactionType.FULL_EXIT.is_disposal
    assert not TransactionType.ADD_POSITION.is_disposal
