"""Pyth Network price oracle service."""
import logging
import ssl
from decimal import Decimal

import aiohttp
import certifi

from ..config import PythConfig
from ..exceptions import StateError

logger = logging.getLogger(__name__)


class PythOracle:
    """Fetch prices from Pyth Network and serve them to the engine.

    The engine reads prices synchronously, so network access happens in
    :meth:`refresh`; :meth:`get_price` only reads the last fetched prices.
    """

    def __init__(self, config: PythConfig) -> None:
        self.hermes_url = config.hermes_url
        self.price_feeds = dict(config.feeds)
        self._prices: dict[str, Decimal] = {}

    async def fetch_prices(self, symbols: list[str] | None = None) -> dict[str, Decimal]:
        """Fetch current prices from Pyth Network.

        Args:
            symbols: Optional list of symbols to fetch. If None, fetches all
                     configured feeds.
        """
        prices: dict[str, Decimal] = {}

        feeds = self.price_feeds
        if symbols is not None:
            feeds = {k: v for k, v in self.price_feeds.items() if k in symbols}

        feed_ids = list(set(feeds.values()))
        if not feed_ids:
            return prices

        query_params = "&".join([f"ids[]={fid}" for fid in feed_ids])
        url = f"{self.hermes_url}?{query_params}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        logger.error(
                            "Error fetching prices from Pyth: HTTP %s", response.status
                        )
                        return prices

                    data = await response.json()

            id_to_assets: dict[str, list[str]] = {}
            for asset, feed_id in feeds.items():
                id_to_assets.setdefault(feed_id, []).append(asset)

            for item in data.get("parsed", []):
                feed_id = item.get("id")
                if feed_id not in id_to_assets:
                    continue
                price_data = item.get("price", {})
                price = Decimal(int(price_data.get("price", 0))).scaleb(
                    int(price_data.get("expo", 0))
                )
                if price <= 0:
                    logger.warning("Ignoring non-positive Pyth price for feed %s", feed_id)
                    continue
                for asset in id_to_assets[feed_id]:
                    prices[asset] = price

            logger.info("Fetched %d prices from Pyth Network", len(prices))
            for asset, price in sorted(prices.items()):
                logger.debug("  %s: $%s", asset, price)

        except Exception as e:
            logger.error("Error fetching prices from Pyth: %s", e)

        return prices

    async def refresh(self) -> dict[str, Decimal]:
        """Fetch all feeds and replace cached prices that were returned."""
        fetched = await self.fetch_prices()
        self._prices.update(fetched)
        return dict(self._prices)

    def get_price(self, asset: str) -> Decimal:
        try:
            return self._prices[asset]
        except KeyError:
            raise StateError(f"No Pyth price fetched for {asset}") from None
