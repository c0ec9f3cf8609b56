"""
Property-based tests using Hypothesis.

- 盈亏比等于 |TP-EP| / |EP-SL|（4 位小数）
- 仓位计算结果总是一手的正整数倍
- 加权平均恒等式
- 数量守恒：total - Σ卖出 = current
- 同一价格全部卖出时，分段盈亏之和 = (exit - avg) × total
"""
from decimal import Decimal, ROUND_HALF_UP

from hypothesis import assume, given, settings, strategies as st

from discipline_journal.core.exceptions import DisciplineViolation
from discipline_journal.engine.accountant import PositionAccountant, weighted_average
from discipline_journal.engine.discipline import calculate_risk_reward_ratio
from discipline_journal.engine.position_sizer import calculate_position_size

prices = st.decimals(min_value=Decimal("0.01"), max_value=Decimal("5000"), places=2)
lots = st.integers(min_value=1, max_value=500).map(lambda n: n * 100)


@given(prices, prices, prices)
def test_ratio_matches_definition(entry, stop, target):
    assume(entry != stop)
    expected = (abs(target - entry) / abs(entry - stop)).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
    assert calculate_risk_reward_ratio(entry, stop, target) == expected


@given(
    st.decimals(min_value=Decimal("1"), max_value=Decimal("1000000"), places=2),
    prices,
    prices,
)
def test_position_size_is_positive_lot_multiple(risk_amount, entry, stop):
    assume(entry != stop)
    size = calculate_position_size(risk_amount, entry, stop)
    assert size >= 100
    assert size % 100 == 0


@given(prices, lots, prices, lots)
def test_weighted_average_identity(a1, q1, p2, q2):
    new_avg = weighted_average(a1, q1, p2, q2)
    tolerance = Decimal("0.00005") * (q1 + q2)
    assert abs(new_avg * (q1 + q2) - (a1 * q1 + p2 * q2)) <= tolerance


@st.composite
def trade_sequence(draw):
    """建仓后随机加仓 / 卖出（卖出数量可能超量，超量时应被拒绝）"""
    ops = draw(st.lists(
        st.tuples(st.sampled_from(["add", "sell"]), prices, lots),
        max_size=20,
    ))
    return draw(prices), draw(lots), ops


@given(trade_sequence())
@settings(max_examples=200)
def test_quantity_conservation(sequence):
    entry_price, entry_qty, ops = sequence
    state = PositionAccountant.open(entry_price, entry_qty)
    disposed = 0

    for op, price, qty in ops:
        if op == "add":
            if state.current_quantity == 0:
                continue
            state = PositionAccountant.add(state, price, qty)
        else:
            try:
                state = PositionAccountant.dispose(state, price, qty).state
            except DisciplineViolation:
                assert qty > state.current_quantity
                continue
            disposed += qty
        assert state.total_quantity - disposed == state.current_quantity
        assert state.current_quantity >= 0


@given(prices, prices, st.lists(st.integers(min_value=1, max_value=10), min_size=1, max_size=10))
def test_chunk_pnl_reconciles_with_single_exit_price(entry_price, exit_price, chunk_lots):
    total = sum(chunk_lots) * 100
    state = PositionAccountant.open(entry_price, total)
    chunk_sum = Decimal("0")
    for n in chunk_lots:
        disposal = PositionAccountant.dispose(state, exit_price, n * 100)
        chunk_sum += disposal.chunk_pnl
        state = disposal.state
    assert state.current_quantity == 0
    assert chunk_sum == (exit_price - entry_price) * total
    assert state.realized_pnl == chunk_sum
