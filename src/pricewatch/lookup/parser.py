from __future__ import annotations

import math
from typing import Optional

from pricewatch.utils.types import PriceQuote


def _num(v) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def first_pair(payload) -> Optional[dict]:
    """
    Pick the pair record out of a DexScreener response.

    Search endpoint: {"schemaVersion": "1.0.0", "pairs": [{...}, ...]}
    Pair endpoint:   {"pair": {...}, "pairs": [{...}]}  (either may be null)
    The first search hit is the one the lookup key resolves to.
    """
    if not isinstance(payload, dict):
        return None
    pair = payload.get("pair")
    if isinstance(pair, dict):
        return pair
    pairs = payload.get("pairs")
    if isinstance(pairs, list) and pairs and isinstance(pairs[0], dict):
        return pairs[0]
    return None


def parse_pair(pair: dict) -> Optional[PriceQuote]:
    """
    Return PriceQuote if `pair` carries a usable USD price; else None.

    Typical fields:
      - "priceUsd": "0.00001234"     (string in the API)
      - "priceChange": {"h24": -3.5}  (percent)
      - "marketCap": 1234567.0
    A missing, non-numeric or non-positive price is not a quote: callers
    must treat it as a failed lookup, never as price zero.
    """
    px = _num(pair.get("priceUsd"))
    if px is None or px <= 0.0:
        return None

    change = pair.get("priceChange")
    change_24h = _num(change.get("h24")) if isinstance(change, dict) else None

    mc = _num(pair.get("marketCap"))

    return PriceQuote(price_usd=px, change_24h=change_24h, market_cap=mc)


def parse_lookup_payload(payload) -> Optional[PriceQuote]:
    pair = first_pair(payload)
    if pair is None:
        return None
    return parse_pair(pair)
