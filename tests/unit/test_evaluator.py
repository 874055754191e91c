import pytest

from pricewatch.alerts.evaluator import ZERO_REFERENCE, evaluate, pct_change
from tests.helpers.fakes import make_alert


@pytest.mark.parametrize(
    "price,expected",
    [(99.99, False), (100.0, False), (100.01, True), (250.0, True), (0.0, False)],
)
def test_above_is_strict(price, expected):
    a = make_alert(condition="above", target_value=100.0)
    assert evaluate(a, price).triggered is expected


@pytest.mark.parametrize(
    "price,expected",
    [(0.5, True), (0.99, True), (1.0, False), (1.01, False)],
)
def test_below_is_strict(price, expected):
    a = make_alert(condition="below", target_value=1.0, reference_price=1.2)
    assert evaluate(a, price).triggered is expected


def test_above_reports_informational_pct_change():
    a = make_alert(condition="above", target_value=100.0, reference_price=90.0)
    ev = evaluate(a, 108.0)
    assert ev.triggered
    assert ev.pct_change == pytest.approx(20.0)


def test_percent_gain_threshold():
    a = make_alert(condition="percent_change", target_value=10.0, reference_price=50.0)
    assert evaluate(a, 55.5).triggered          # +11%
    assert not evaluate(a, 54.0).triggered      # +8%
    assert not evaluate(a, 40.0).triggered      # a drop never satisfies a gain target


def test_percent_loss_threshold():
    a = make_alert(condition="percent_change", target_value=-10.0, reference_price=50.0)
    ev = evaluate(a, 44.0)                      # -12%
    assert ev.triggered
    assert ev.pct_change == pytest.approx(-12.0)
    assert not evaluate(a, 46.0).triggered      # -8%
    assert not evaluate(a, 60.0).triggered


@pytest.mark.parametrize("price", [0.0, 1e-9, 25.0, 50.0, 75.0, 1e9])
def test_zero_percent_target_never_triggers(price):
    a = make_alert(condition="percent_change", target_value=0.0, reference_price=50.0)
    assert evaluate(a, price).triggered is False


def test_zero_reference_price_is_anomaly_not_trigger():
    a = make_alert(condition="percent_change", target_value=-10.0, reference_price=0.0)
    ev = evaluate(a, 1.0)
    assert ev.triggered is False
    assert ev.anomaly == ZERO_REFERENCE


def test_zero_reference_price_does_not_block_price_conditions():
    a = make_alert(condition="above", target_value=1.0, reference_price=0.0)
    ev = evaluate(a, 2.0)
    assert ev.triggered
    assert ev.pct_change is None
    assert ev.anomaly is None


def test_non_finite_price_is_anomaly():
    a = make_alert(condition="below", target_value=1.0)
    ev = evaluate(a, float("nan"))
    assert not ev.triggered
    assert ev.anomaly is not None


def test_pct_change_helper():
    assert pct_change(50.0, 44.0) == pytest.approx(-12.0)
    assert pct_change(0.0, 44.0) is None
