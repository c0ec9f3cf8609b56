import time
from decimal import Decimal

import httpx
import pytest

from discipline_journal.providers.market_data_provider import (
    MarketDataProvider,
    SinaQuoteBackend,
    StockQuote,
    YahooQuoteBackend,
    detect_market,
    make_quote_backends,
    parse_decimal,
)
from tests.conftest import FakeQuoteBackend, NullCache

SINA_A_SHARE = 'var hq_str_sh600519="贵州茅台,1700.00,1695.00,1712.50,1720.00,1690.00";\n'
SINA_US = 'var hq_str_gb_aapl="苹果,189.25,1.20,2024-01-02";\n'


class RaisingBackend(FakeQuoteBackend):
    name = "boom"

    async def fetch_quote(self, symbol):
        self.calls += 1
        raise RuntimeError("backend exploded")


@pytest.mark.parametrize(
    "symbol, market",
    [("600519", "sh"), ("000001", "sz"), ("300750", "sz"), ("00700", "hk"), ("AAPL", "us")],
)
def test_detect_market(symbol, market):
    assert detect_market(symbol) == market


def test_parse_decimal_rejects_garbage_and_non_positive():
    assert parse_decimal("12.34") == Decimal("12.34")
    assert parse_decimal("") is None
    assert parse_decimal("abc") is None
    assert parse_decimal("0.00") is None
    assert parse_decimal(None) is None


def test_sina_code_mapping():
    assert SinaQuoteBackend.to_sina_code("600519") == "sh600519"
    assert SinaQuoteBackend.to_sina_code("000001") == "sz000001"
    assert SinaQuoteBackend.to_sina_code("00700") == "rt_hk00700"
    assert SinaQuoteBackend.to_sina_code("AAPL") == "gb_aapl"


def test_yahoo_symbol_mapping():
    assert YahooQuoteBackend.to_yahoo_symbol("600519") == "600519.SS"
    assert YahooQuoteBackend.to_yahoo_symbol("000001") == "000001.SZ"
    assert YahooQuoteBackend.to_yahoo_symbol("00700") == "0700.HK"
    assert YahooQuoteBackend.to_yahoo_symbol("aapl") == "AAPL"


def test_sina_parse_a_share_uses_current_price_field():
    quote = SinaQuoteBackend().parse_response("600519", SINA_A_SHARE)
    assert quote.name == "贵州茅台"
    assert quote.price == Decimal("1712.50")
    assert quote.source == "sina"


def test_sina_parse_us_uses_second_field():
    quote = SinaQuoteBackend().parse_response("AAPL", SINA_US)
    assert quote.price == Decimal("189.25")


def test_sina_parse_empty_payload_returns_none():
    assert SinaQuoteBackend().parse_response("600519", 'var hq_str_sh600519="";') is None
    assert SinaQuoteBackend().parse_response("600519", "garbage") is None


@pytest.mark.asyncio
async def test_sina_fetch_decodes_gbk_over_transport():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("sh600519")
        return httpx.Response(200, content=SINA_A_SHARE.encode("gbk"))

    backend = SinaQuoteBackend(timeout=1, transport=httpx.MockTransport(handler))
    quote = await backend.fetch_quote("600519")
    assert quote.name == "贵州茅台"
    assert quote.price == Decimal("1712.50")


@pytest.mark.asyncio
async def test_sina_fetch_http_error_returns_none():
    backend = SinaQuoteBackend(timeout=1, transport=httpx.MockTransport(lambda r: httpx.Response(403)))
    assert await backend.fetch_quote("600519") is None


def test_make_quote_backends_skips_unknown_names():
    backends = make_quote_backends("sina, nope ,yahoo")
    assert [b.name for b in backends] == ["sina", "yahoo"]


@pytest.mark.asyncio
async def test_provider_falls_through_failing_backends():
    good = FakeQuoteBackend(prices={"600519": "1700.00"}, names={"600519": "贵州茅台"})
    provider = MarketDataProvider(backends=[RaisingBackend(), FakeQuoteBackend(), good], redis_cache=NullCache())

    assert await provider.get_current_price("600519") == Decimal("1700.00")
    assert await provider.get_stock_name("600519") == "贵州茅台"


@pytest.mark.asyncio
async def test_provider_keeps_name_only_quote_when_no_price():
    name_only = FakeQuoteBackend(names={"600519": "贵州茅台"})
    provider = MarketDataProvider(backends=[name_only], redis_cache=NullCache())

    assert await provider.get_current_price("600519") is None
    info = await provider.get_stock_info("600519")
    assert info.name == "贵州茅台"


@pytest.mark.asyncio
async def test_provider_all_backends_fail():
    provider = MarketDataProvider(backends=[RaisingBackend()], redis_cache=NullCache())
    assert await provider.get_current_price("600519") is None
    assert await provider.get_stock_info("600519") is None
    assert await provider.get_stock_name("600519") == ""


@pytest.mark.asyncio
async def test_provider_caches_priced_quotes(quote_backend, market_data):
    await market_data.get_current_price("600519")
    await market_data.get_current_price("600519")
    assert quote_backend.calls == 1


@pytest.mark.asyncio
async def test_provider_evicts_stale_quotes_on_write(market_data):
    stale = StockQuote(symbol="000001", name="平安银行", price=Decimal("10.50"), market="sz", source="fake")
    market_data._quote_cache["000001"] = (stale, time.monotonic() - 3600)

    await market_data.get_current_price("600519")
    assert list(market_data._quote_cache) == ["600519"]
