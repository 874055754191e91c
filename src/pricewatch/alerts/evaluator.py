# src/pricewatch/alerts/evaluator.py
from __future__ import annotations

import math

import structlog

from pricewatch.utils.types import Alert, Evaluation

log = structlog.get_logger("evaluator")

ZERO_REFERENCE = "zero_reference_price"
BAD_PRICE = "non_finite_price"


def pct_change(reference_price: float, current_price: float) -> float | None:
    """Percent move from reference to current, or None if reference is unusable."""
    if not math.isfinite(reference_price) or reference_price == 0.0:
        return None
    return (current_price - reference_price) / reference_price * 100.0


def evaluate(alert: Alert, current_price: float) -> Evaluation:
    """
    Decide whether `alert` fires at `current_price`.

      above          -> current >  target (strict)
      below          -> current <  target (strict)
      percent_change -> pct = (current - ref) / ref * 100
                        target > 0: pct >= target
                        target < 0: pct <= target
                        target == 0: never

    A zero reference price never fires a percent_change alert; it is reported
    as an anomaly and logged. Pure apart from that log line.
    """
    if not math.isfinite(current_price):
        log.warning("evaluator_anomaly", alert_id=alert.id, anomaly=BAD_PRICE, price=current_price)
        return Evaluation(triggered=False, anomaly=BAD_PRICE)

    pct = pct_change(alert.reference_price, current_price)
    target = alert.target_value

    if alert.condition == "above":
        return Evaluation(triggered=current_price > target, pct_change=pct)

    if alert.condition == "below":
        return Evaluation(triggered=current_price < target, pct_change=pct)

    # percent_change
    if pct is None:
        log.warning(
            "evaluator_anomaly",
            alert_id=alert.id,
            anomaly=ZERO_REFERENCE,
            reference_price=alert.reference_price,
        )
        return Evaluation(triggered=False, anomaly=ZERO_REFERENCE)

    if target > 0:
        fire = pct >= target
    elif target < 0:
        fire = pct <= target
    else:
        fire = False
    return Evaluation(triggered=fire, pct_change=pct)
