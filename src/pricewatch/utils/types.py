from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Literal, Optional

# ---- alert domain ----

Condition = Literal["above", "below", "percent_change"]

# spellings accepted on input (the creation tool historically used price_*)
CONDITION_ALIASES: dict[str, str] = {
    "above": "above",
    "price_above": "above",
    "below": "below",
    "price_below": "below",
    "percent_change": "percent_change",
    "percentchange": "percent_change",
    "pct_change": "percent_change",
}


def normalize_condition(raw: str) -> Condition:
    """Map an input spelling onto a Condition; raises ValueError if unknown."""
    key = str(raw or "").strip().lower().replace("-", "_")
    try:
        return CONDITION_ALIASES[key]  # type: ignore[return-value]
    except KeyError:
        raise ValueError(f"unknown condition: {raw!r}") from None


@dataclass(slots=True)
class DisplayMeta:
    """Informational token labels. Never used for evaluation."""
    token_name: str = ""
    token_symbol: str = ""
    chain_id: str = ""
    token_address: str = ""


@dataclass(slots=True)
class Alert:
    id: str
    recipient: str
    lookup_key: str           # pair address; alerts sharing it share one lookup
    condition: Condition
    target_value: float
    reference_price: float    # USD price at creation, immutable
    created_at: float         # epoch seconds
    display: DisplayMeta = field(default_factory=DisplayMeta)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "Alert":
        disp = d.get("display") or {}
        return cls(
            id=str(d["id"]),
            recipient=str(d["recipient"]),
            lookup_key=str(d["lookup_key"]),
            condition=normalize_condition(d["condition"]),
            target_value=float(d["target_value"]),
            reference_price=float(d["reference_price"]),
            created_at=float(d.get("created_at") or 0.0),
            display=DisplayMeta(
                token_name=str(disp.get("token_name", "")),
                token_symbol=str(disp.get("token_symbol", "")),
                chain_id=str(disp.get("chain_id", "")),
                token_address=str(disp.get("token_address", "")),
            ),
        )


# ---- lookup / evaluation ----

@dataclass(slots=True, frozen=True)
class PriceQuote:
    price_usd: float
    change_24h: Optional[float] = None   # percent
    market_cap: Optional[float] = None   # USD


@dataclass(slots=True, frozen=True)
class Evaluation:
    triggered: bool
    pct_change: Optional[float] = None   # vs reference price, percent
    anomaly: Optional[str] = None


# ---- cycle / listing results ----

FailureKind = Literal["lookup", "notification", "anomaly"]


@dataclass(slots=True, frozen=True)
class CycleFailure:
    kind: FailureKind
    lookup_key: str
    alert_id: Optional[str] = None
    detail: str = ""


@dataclass(slots=True)
class CycleReport:
    triggered_count: int = 0
    groups_checked: int = 0
    failures: list[CycleFailure] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "triggered_count": self.triggered_count,
            "groups_checked": self.groups_checked,
            "failures": [asdict(f) for f in self.failures],
        }


@dataclass(slots=True, frozen=True)
class ListedAlert:
    alert: Alert
    current_price: float
    stale: bool = False   # True when current_price is the stored reference price
