from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Optional
from urllib.request import Request, urlopen

from tetherdesk.config import settings

logger = logging.getLogger("tetherdesk.market")


@dataclass(frozen=True)
class AssetPrice:
    id: str
    symbol: str
    name: str
    current_price: float
    price_change_percentage_24h: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PriceSnapshot:
    prices: list[AssetPrice]
    source: str  # "live" | "fallback"
    fetched_at: float


# (id, symbol, name, fallback INR price, fallback 24h change)
TRACKED_ASSETS: tuple[tuple[str, str, str, float, float], ...] = (
    ("tether", "USDT", "Tether", 84.5, 0.0),
    ("bitcoin", "BTC", "Bitcoin", 3500000.0, 2.5),
    ("ethereum", "ETH", "Ethereum", 280000.0, 1.8),
    ("binancecoin", "BNB", "BNB", 50000.0, -0.5),
    ("solana", "SOL", "Solana", 12000.0, 3.2),
)


def fallback_prices() -> list[AssetPrice]:
    return [
        AssetPrice(id=i, symbol=s, name=n, current_price=p, price_change_percentage_24h=c)
        for i, s, n, p, c in TRACKED_ASSETS
    ]


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    return out if out == out else None  # NaN


def parse_price_payload(payload: dict[str, Any]) -> list[AssetPrice]:
    """Map a simple-price response (`{"tether": {"inr": .., "inr_24h_change": ..}, ...}`).

    Assets or fields missing from the payload keep their fallback price and a 0% change.
    """

    out: list[AssetPrice] = []
    for asset_id, symbol, name, fallback_price, _fallback_change in TRACKED_ASSETS:
        row = payload.get(asset_id) if isinstance(payload, dict) else None
        row = row if isinstance(row, dict) else {}
        price = _number(row.get("inr"))
        change = _number(row.get("inr_24h_change"))
        out.append(
            AssetPrice(
                id=asset_id,
                symbol=symbol,
                name=name,
                current_price=price if price else fallback_price,
                price_change_percentage_24h=change if change is not None else 0.0,
            )
        )
    return out


def fetch_live_prices(url: str | None = None, timeout: float | None = None) -> list[AssetPrice]:
    req = Request(
        url or settings.price_feed_url,
        headers={
            "User-Agent": "TetherDesk/1.0 (market prices)",
            "Accept": "application/json",
        },
        method="GET",
    )
    with urlopen(req, timeout=timeout or settings.price_feed_timeout_seconds) as resp:
        payload = json.loads(resp.read().decode("utf-8", "ignore"))
    return parse_price_payload(payload)


class PriceCache:
    """TTL cache in front of the price feed.

    A failed fetch yields the static fallback table, which is itself kept for
    `retry_seconds`: during an outage callers get the fallback at once instead of each
    waiting out another feed timeout.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float | None = None,
        retry_seconds: float | None = None,
        fetcher: Callable[[], list[AssetPrice]] = fetch_live_prices,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = float(
            settings.price_feed_ttl_seconds if ttl_seconds is None else ttl_seconds
        )
        self.retry_seconds = float(
            settings.price_feed_retry_seconds if retry_seconds is None else retry_seconds
        )
        self._fetcher = fetcher
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot: PriceSnapshot | None = None

    def clear(self) -> None:
        with self._lock:
            self._snapshot = None

    def _fresh(self, snap: PriceSnapshot | None, now: float) -> bool:
        if snap is None:
            return False
        ttl = self.ttl_seconds if snap.source == "live" else self.retry_seconds
        return now - snap.fetched_at < ttl

    def get(self) -> PriceSnapshot:
        # Callers queued on the lock see the snapshot stored by the first fetch.
        with self._lock:
            now = self._clock()
            if self._fresh(self._snapshot, now):
                return self._snapshot

            try:
                prices = self._fetcher()
            except Exception as exc:
                logger.warning("price_feed_fallback", extra={"error": str(exc)})
                self._snapshot = PriceSnapshot(
                    prices=fallback_prices(), source="fallback", fetched_at=self._clock()
                )
                return self._snapshot

            self._snapshot = PriceSnapshot(prices=prices, source="live", fetched_at=self._clock())
            return self._snapshot


price_cache = PriceCache()
