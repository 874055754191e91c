from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Optional, Protocol

import aiohttp
import structlog

from pricewatch.errors import LookupFailure
from pricewatch.lookup.parser import parse_lookup_payload
from pricewatch.utils.pacing import RateLimiter, jitter, next_backoff
from pricewatch.utils.types import PriceQuote

log = structlog.get_logger("dexscreener")

DEFAULT_SEARCH_URL = "https://api.dexscreener.com/latest/dex/search"


class PriceLookup(Protocol):
    async def fetch(self, lookup_key: str) -> PriceQuote: ...


@dataclass(slots=True)
class DexScreenerConfig:
    search_url: str = DEFAULT_SEARCH_URL
    timeout_s: float = 10.0
    # DexScreener allows 300 req/min on the search endpoint
    rate_per_sec: float = 5.0
    burst: int = 5
    max_retries: int = 3
    initial_backoff_s: float = 0.5
    max_backoff_s: float = 8.0


def config_from_env() -> DexScreenerConfig:
    return DexScreenerConfig(
        search_url=os.getenv("DEXSCREENER_URL", DEFAULT_SEARCH_URL),
        timeout_s=float(os.getenv("LOOKUP_TIMEOUT_S", "10")),
    )


class DexScreenerClient:
    """
    Price Lookup Client over the DexScreener search API.

    fetch(key) issues GET {search_url}?q={key} and returns the first pair's
    USD price as a PriceQuote. Anything else (HTTP error, timeout, empty
    result, malformed payload) raises LookupFailure; a failed lookup is never
    reported as a zero price.

    429 and 5xx responses and connection errors are retried with jittered
    exponential backoff; other 4xx responses fail immediately.

    Usage:
        client = DexScreenerClient(DexScreenerConfig())
        await client.start()
        quote = await client.fetch("0xpair...")
        await client.stop()
    """
    def __init__(self, cfg: Optional[DexScreenerConfig] = None, session: Optional[aiohttp.ClientSession] = None):
        self.cfg = cfg or DexScreenerConfig()
        self._session = session
        self._owns_session = session is None
        self._rl = RateLimiter(rate_per_sec=self.cfg.rate_per_sec, burst=self.cfg.burst)

    async def start(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout, headers={"Accept": "*/*"})
            self._owns_session = True

    async def stop(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def fetch(self, lookup_key: str) -> PriceQuote:
        if self._session is None:
            await self.start()
        assert self._session is not None

        backoff = self.cfg.initial_backoff_s
        last_err = "no attempt"
        for attempt in range(1, self.cfg.max_retries + 1):
            await self._rl.acquire()
            try:
                async with self._session.get(self.cfg.search_url, params={"q": lookup_key}) as resp:
                    if resp.status == 200:
                        try:
                            payload = await resp.json(content_type=None)
                        except ValueError as e:
                            raise LookupFailure(lookup_key, f"malformed json: {e}") from e
                        quote = parse_lookup_payload(payload)
                        if quote is None:
                            raise LookupFailure(lookup_key, "no usable price in response")
                        return quote

                    last_err = f"http {resp.status}"
                    if resp.status == 429 or 500 <= resp.status < 600:
                        log.warning("lookup_retry", key=lookup_key, status=resp.status, attempt=attempt)
                    else:
                        raise LookupFailure(lookup_key, last_err)
            except aiohttp.ClientConnectionError as e:
                last_err = f"connection error: {e}"
                log.warning("lookup_network_error", key=lookup_key, err=str(e), attempt=attempt)
            except asyncio.TimeoutError as e:
                raise LookupFailure(lookup_key, "timeout") from e
            except aiohttp.ClientError as e:
                raise LookupFailure(lookup_key, f"client error: {e}") from e

            if attempt < self.cfg.max_retries:
                await asyncio.sleep(jitter(backoff))
                backoff = next_backoff(backoff, self.cfg.max_backoff_s)

        raise LookupFailure(lookup_key, f"gave up after {self.cfg.max_retries} attempts ({last_err})")
