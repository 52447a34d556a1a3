from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from arena.config import MarketFeedConfig

from .config import PolymarketConfig
from .exceptions import (
    PolymarketAPIError,
    PolymarketNotFoundError,
    PolymarketRateLimitError,
)
from .models import GammaMarket, Resolution

logger = logging.getLogger(__name__)


def select_admissible_markets(
    markets: list[GammaMarket],
    feed_config: MarketFeedConfig,
    now: datetime | None = None,
) -> list[GammaMarket]:
    """Filter raw markets down to the tournament candidate set, by volume."""
    now = now or datetime.now(timezone.utc)
    earliest = now + timedelta(days=feed_config.min_horizon_days)
    latest = now + timedelta(days=feed_config.max_horizon_days)

    candidates = []
    for market in markets:
        if not market.active or market.closed:
            continue
        if market.volume_24h <= feed_config.min_volume_24h:
            continue
        if market.yes_price is None or not (
            feed_config.min_yes_price <= market.yes_price <= feed_config.max_yes_price
        ):
            continue
        if market.end_date is None:
            continue
        end_date = market.end_date
        if end_date.tzinfo is None:
            end_date = end_date.replace(tzinfo=timezone.utc)
        if not earliest <= end_date <= latest:
            continue
        candidates.append(market)

    candidates.sort(key=lambda m: m.volume_24h, reverse=True)
    return candidates[: feed_config.cohort_market_count]


class PolymarketClient:
    """Read-only client for the Polymarket Gamma markets API."""

    def __init__(
        self,
        config: PolymarketConfig | None = None,
        feed_config: MarketFeedConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or PolymarketConfig()
        self.feed_config = feed_config or MarketFeedConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> PolymarketClient:
        limits = httpx.Limits(
            max_connections=self.config.max_connections,
            max_keepalive_connections=self.config.max_keepalive_connections,
        )
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            limits=limits,
            transport=self._transport,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: Any,
    ) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Closed PolymarketClient")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(
                "PolymarketClient must be used as async context manager"
            )
        return self._client

    async def _request(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        retry_count = 0
        last_error: Exception | None = None

        while retry_count < self.config.max_retries:
            try:
                response = await self.client.get(endpoint, params=params)

                if response.status_code == 404:
                    raise PolymarketNotFoundError(
                        f"Resource not found: {endpoint}", status_code=404
                    )
                elif response.status_code == 429:
                    wait_time = 2 ** retry_count
                    logger.warning(f"Rate limited, waiting {wait_time}s...")
                    last_error = PolymarketRateLimitError(
                        "Rate limit exceeded", status_code=429
                    )
                    await asyncio.sleep(wait_time)
                    retry_count += 1
                    continue
                elif response.status_code >= 500:
                    wait_time = 2 ** retry_count
                    logger.warning(
                        f"Server error {response.status_code}, "
                        f"retrying in {wait_time}s..."
                    )
                    last_error = PolymarketAPIError(
                        f"Server error {response.status_code}",
                        status_code=response.status_code,
                    )
                    await asyncio.sleep(wait_time)
                    retry_count += 1
                    continue
                elif response.status_code >= 400:
                    raise PolymarketAPIError(
                        f"Request rejected ({response.status_code}): {response.text[:200]}",
                        status_code=response.status_code,
                    )

                return response.json()

            except httpx.TimeoutException as e:
                last_error = e
                retry_count += 1
                if retry_count < self.config.max_retries:
                    logger.warning(f"Timeout, retrying ({retry_count})...")
                    await asyncio.sleep(2)

            except httpx.RequestError as e:
                last_error = e
                logger.error(f"Network error: {e}")
                break

        raise PolymarketAPIError(
            f"Request failed after {retry_count} retries: {last_error}"
        )

    async def get_markets(
        self,
        limit: int | None = None,
        offset: int = 0,
        closed: bool = False,
    ) -> list[GammaMarket]:
        params = {
            "closed": str(closed).lower(),
            "order": "volume24hr",
            "ascending": "false",
            "limit": limit or self.config.page_size,
            "offset": offset,
        }
        data = await self._request("/markets", params=params)
        items = data if isinstance(data, list) else data.get("markets", [])
        return [GammaMarket.from_api(item) for item in items]

    async def get_all_markets(self, max_pages: int | None = None) -> list[GammaMarket]:
        """Page through open markets until a short page or the page cap."""
        max_pages = max_pages or self.config.max_pages
        page_size = self.config.page_size

        markets: list[GammaMarket] = []
        for page in range(max_pages):
            batch = await self.get_markets(limit=page_size, offset=page * page_size)
            markets.extend(batch)
            if len(batch) < page_size:
                break

        logger.debug(f"Fetched {len(markets)} markets in {page + 1} pages")
        return markets

    async def get_market(self, market_id: str) -> GammaMarket:
        data = await self._request(f"/markets/{market_id}")
        return GammaMarket.from_api(data)

    async def list_admissible_markets(self) -> list[GammaMarket]:
        """Fetch open markets by volume and apply the admission filter."""
        markets = await self.get_all_markets()
        selected = select_admissible_markets(markets, self.feed_config)
        logger.info(
            f"Admitted {len(selected)} of {len(markets)} markets from Polymarket"
        )
        return selected

    async def check_resolution(self, market_id: str) -> Resolution:
        """
        Ask the oracle whether a market has resolved.

        A closed market resolves YES when its YES price has converged to 1,
        NO when it has converged to 0, and is treated as voided otherwise.
        """
        market = await self.get_market(market_id)
        if not market.closed:
            return Resolution(resolved=False)

        yes_price = market.yes_price
        if yes_price is not None and yes_price >= self.config.yes_resolution_price:
            return Resolution(resolved=True, outcome="yes")
        if yes_price is not None and yes_price <= self.config.no_resolution_price:
            return Resolution(resolved=True, outcome="no")
        return Resolution(resolved=True, outcome="voided")
