"""Pyth Network live price feed (Hermes REST API)."""
from __future__ import annotations

import logging
import ssl
import time
from typing import Callable

import aiohttp
import certifi

from ..config import PythConfig

logger = logging.getLogger(__name__)


class PythPriceFeed:
    """Fetch latest prices from Pyth Hermes for the configured feed ids.

    Quotes whose confidence interval is wider than ``max_confidence_ratio``
    of the price, or published more than ``max_age_seconds`` ago, are
    dropped.
    """

    def __init__(
        self,
        config: PythConfig,
        max_confidence_ratio: float = 0.02,
        max_age_seconds: int = 120,
        timeout: int = 30,
        now: Callable[[], float] = time.time,
    ) -> None:
        self.hermes_url = config.hermes_url
        self.price_feeds = {k.upper(): v for k, v in config.feeds.items()}
        self.max_confidence_ratio = max_confidence_ratio
        self.max_age_seconds = max_age_seconds
        self.timeout = timeout
        self._now = now

    async def fetch_prices(self, symbols: list[str] | None = None) -> dict[str, float]:
        """Fetch current prices keyed by asset symbol.

        Args:
            symbols: Optional list of symbols to fetch. If None, fetches all
                     configured feeds.
        """
        prices: dict[str, float] = {}

        feeds = self.price_feeds
        if symbols is not None:
            wanted = {s.upper() for s in symbols}
            feeds = {k: v for k, v in self.price_feeds.items() if k in wanted}

        feed_ids = sorted(set(feeds.values()))
        if not feed_ids:
            return prices

        # Feed id → asset symbols (several assets may share one feed)
        id_to_assets: dict[str, list[str]] = {}
        for asset, feed_id in feeds.items():
            id_to_assets.setdefault(feed_id.lower().removeprefix("0x"), []).append(asset)

        params = [("ids[]", fid) for fid in feed_ids]
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    self.hermes_url,
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status != 200:
                        logger.error(
                            "Error fetching prices from Pyth: HTTP %s", response.status
                        )
                        return prices

                    data = await response.json()

            for item in data.get("parsed", []):
                feed_id = str(item.get("id", "")).lower().removeprefix("0x")
                price_data = item.get("price", {})
                expo = int(price_data.get("expo", 0))
                price = int(price_data.get("price", 0)) * (10**expo)
                conf = int(price_data.get("conf", 0)) * (10**expo)

                if price <= 0:
                    continue
                if conf / price > self.max_confidence_ratio:
                    logger.warning(
                        "Dropping Pyth feed %s: confidence ±%.4f too wide for %.4f",
                        feed_id, conf, price,
                    )
                    continue
                publish_time = price_data.get("publish_time")
                if publish_time is not None:
                    age = self._now() - int(publish_time)
                    if age > self.max_age_seconds:
                        logger.warning("Dropping stale Pyth feed %s: %ds old", feed_id, age)
                        continue

                for asset in id_to_assets.get(feed_id, []):
                    prices[asset] = price

            for asset, price in sorted(prices.items()):
                logger.info("Pyth %s: $%.4f", asset, price)

        except Exception as e:
            logger.error("Error fetching prices from Pyth: %s", e)

        return prices
