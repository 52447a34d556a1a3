"""Local market cache refreshed from the market feed."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from arena.database import Database
from arena.models import RESOLUTION_OPEN, Market
from arena.models.base import utcnow
from arena.services.polymarket.models import GammaMarket
from arena.tournament.interfaces import MarketFeed

logger = logging.getLogger(__name__)


async def upsert_market(session: AsyncSession, snapshot: GammaMarket) -> Market:
    """Insert a new market or refresh an open one. Terminal markets are never touched."""
    market = await session.get(Market, snapshot.id)
    if market is None:
        market = Market(id=snapshot.id, resolution=RESOLUTION_OPEN)
        session.add(market)
    elif not market.is_open:
        return market

    market.question = snapshot.question
    market.description = snapshot.description
    market.slug = snapshot.slug
    market.condition_id = snapshot.condition_id
    market.yes_price = snapshot.yes_price
    market.no_price = snapshot.no_price
    market.volume_24h = snapshot.volume_24h
    market.end_date = snapshot.end_date
    market.fetched_at = utcnow()
    return market


async def sync_markets(db: Database, feed: MarketFeed) -> int:
    """Pull admissible markets from the feed into the cache. Returns the count synced."""
    snapshots = await feed.list_admissible_markets()

    async with db.session() as session:
        async with session.begin():
            for snapshot in snapshots:
                await upsert_market(session, snapshot)

    logger.info(f"Synced {len(snapshots)} markets into cache")
    return len(snapshots)
