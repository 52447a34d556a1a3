"""Unit tests for the Polymarket Gamma client and admission filter."""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from arena.config import MarketFeedConfig
from arena.services.polymarket import (
    GammaMarket,
    PolymarketClient,
    PolymarketConfig,
    PolymarketNotFoundError,
    select_admissible_markets,
)

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def gamma_payload(market_id: str, yes: str = "0.55", closed: bool = False, **extra) -> dict:
    payload = {
        "id": market_id,
        "question": f"Will {market_id} happen?",
        "slug": f"will-{market_id}-happen",
        "conditionId": f"0x{market_id}",
        "outcomePrices": json.dumps([yes, f"{1 - float(yes):.2f}"]),
        "volume24hr": 25000,
        "endDate": (NOW + timedelta(days=10)).isoformat().replace("+00:00", "Z"),
        "active": True,
        "closed": closed,
    }
    payload.update(extra)
    return payload


def test_from_api_parses_encoded_prices():
    market = GammaMarket.from_api(gamma_payload("m1", yes="0.62"))

    assert market.yes_price == pytest.approx(0.62)
    assert market.no_price == pytest.approx(0.38)
    assert market.condition_id == "0xm1"
    assert market.end_date == NOW + timedelta(days=10)


def test_from_api_tolerates_missing_prices():
    market = GammaMarket.from_api({"id": "m1", "question": "?", "outcomePrices": "not json"})
    assert market.yes_price is None


class TestAdmission:
    def market(self, market_id: str, **overrides) -> GammaMarket:
        fields = dict(
            id=market_id,
            question="?",
            yes_price=0.5,
            volume_24h=5000.0,
            end_date=NOW + timedelta(days=10),
        )
        fields.update(overrides)
        return GammaMarket(**fields)

    def test_filters_and_orders_by_volume(self):
        markets = [
            self.market("ok-small", volume_24h=2000.0),
            self.market("ok-big", volume_24h=90000.0),
            self.market("thin", volume_24h=1000.0),
            self.market("extreme", yes_price=0.99),
            self.market("closed", closed=True),
            self.market("too-soon", end_date=NOW + timedelta(hours=12)),
            self.market("too-late", end_date=NOW + timedelta(days=90)),
            self.market("no-date", end_date=None),
        ]

        selected = select_admissible_markets(markets, MarketFeedConfig(), now=NOW)

        assert [m.id for m in selected] == ["ok-big", "ok-small"]

    def test_caps_at_cohort_market_count(self):
        markets = [self.market(f"m{i}", volume_24h=2000.0 + i) for i in range(30)]
        selected = select_admissible_markets(markets, MarketFeedConfig(), now=NOW)
        assert len(selected) == 20


class TestResolution:
    async def resolve(self, payload: dict):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == f"/markets/{payload['id']}"
            return httpx.Response(200, json=payload)

        async with PolymarketClient(transport=httpx.MockTransport(handler)) as client:
            return await client.check_resolution(payload["id"])

    @pytest.mark.asyncio
    async def test_open_market_is_unresolved(self):
        resolution = await self.resolve(gamma_payload("m1"))
        assert resolution.resolved is False
        assert resolution.outcome is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "yes_price, outcome",
        [("0.995", "yes"), ("0.005", "no"), ("0.50", "voided")],
    )
    async def test_closed_market_outcomes(self, yes_price, outcome):
        resolution = await self.resolve(gamma_payload("m1", yes=yes_price, closed=True))
        assert resolution.resolved is True
        assert resolution.outcome == outcome

    @pytest.mark.asyncio
    async def test_unknown_market_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"error": "not found"})

        async with PolymarketClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(PolymarketNotFoundError):
                await client.check_resolution("missing")


@pytest.mark.asyncio
async def test_get_markets_sends_volume_ordering():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(dict(request.url.params))
        return httpx.Response(200, json=[gamma_payload("m1"), gamma_payload("m2")])

    async with PolymarketClient(transport=httpx.MockTransport(handler)) as client:
        markets = await client.get_markets()

    assert [m.id for m in markets] == ["m1", "m2"]
    assert seen["order"] == "volume24hr"
    assert seen["ascending"] == "false"
    assert seen["closed"] == "false"
    assert seen["limit"] == "100"


class TestPaging:
    @staticmethod
    def paged_handler(total: int, offsets: list[int]):
        def handler(request: httpx.Request) -> httpx.Response:
            offset = int(request.url.params["offset"])
            limit = int(request.url.params["limit"])
            offsets.append(offset)
            ids = range(offset, min(offset + limit, total))
            return httpx.Response(200, json=[gamma_payload(f"m{i}") for i in ids])

        return handler

    @pytest.mark.asyncio
    async def test_stops_at_short_page(self):
        offsets: list[int] = []
        config = PolymarketConfig(page_size=2)
        transport = httpx.MockTransport(self.paged_handler(5, offsets))

        async with PolymarketClient(config=config, transport=transport) as client:
            markets = await client.get_all_markets()

        assert [m.id for m in markets] == ["m0", "m1", "m2", "m3", "m4"]
        assert offsets == [0, 2, 4]

    @pytest.mark.asyncio
    async def test_respects_page_cap(self):
        offsets: list[int] = []
        config = PolymarketConfig(page_size=2, max_pages=2)
        transport = httpx.MockTransport(self.paged_handler(100, offsets))

        async with PolymarketClient(config=config, transport=transport) as client:
            markets = await client.get_all_markets()

        assert len(markets) == 4
        assert offsets == [0, 2]
