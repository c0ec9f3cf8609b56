from decimal import Decimal
from typing import Dict, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from discipline_journal.core.locks import PlanLockRegistry
from discipline_journal.models.db import init_models
from discipline_journal.providers.market_data_provider import MarketDataProvider, QuoteBackend, StockQuote
from discipline_journal.services.trade_service import TradeService


class RecordingReviewQueue:
    """只记录投递的执行 ID，不启动 worker"""

    def __init__(self):
        self.published = []

    def publish(self, execution_id: int) -> bool:
        self.published.append(execution_id)
        return True


class FakeQuoteBackend(QuoteBackend):
    name = "fake"

    def __init__(self, prices: Optional[Dict[str, str]] = None, names: Optional[Dict[str, str]] = None):
        self.prices = prices or {}
        self.names = names or {}
        self.calls = 0

    async def fetch_quote(self, symbol: str) -> Optional[StockQuote]:
        self.calls += 1
        if symbol not in self.prices and symbol not in self.names:
            return None
        price = self.prices.get(symbol)
        return StockQuote(
            symbol=symbol,
            name=self.names.get(symbol, ""),
            price=Decimal(price) if price is not None else None,
            market="sh",
            source=self.name,
        )


class NullCache:
    async def get(self, key):
        return None

    async def set(self, key, value, expire=None):
        return False


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def review_queue():
    return RecordingReviewQueue()


@pytest.fixture
def trade_service(session, review_queue):
    return TradeService(session, review_queue=review_queue, locks=PlanLockRegistry())


@pytest.fixture
def quote_backend():
    return FakeQuoteBackend(
        prices={"600519": "1700.00", "000001": "10.50"},
        names={"600519": "贵州茅台", "000001": "平安银行"},
    )


@pytest.fixture
def market_data(quote_backend):
    return MarketDataProvider(backends=[quote_backend], price_cache_ttl=60, redis_cache=NullCache())
