"""市场数据提供者

只暴露两个能力：get_current_price / get_stock_info。
后端按 settings.QUOTE_PROVIDERS 顺序降级，每个后端独立失败（返回 None，不抛异常）：
- sina：新浪财经 hq.sinajs.cn（A股 / 港股 / 美股）
- yahoo：yfinance

缓存策略：
- 进程内价格缓存 PRICE_CACHE_TTL 秒
- Redis 缓存（REDIS_ENABLED 时）跨进程共享
"""
import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Sequence, Tuple

import httpx
import yfinance as yf

from discipline_journal.core.cache import RedisCache, cache
from discipline_journal.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockQuote:
    symbol: str
    name: str
    price: Optional[Decimal]
    market: str
    source: str


def parse_decimal(value) -> Optional[Decimal]:
    try:
        if value is None or str(value).strip() == "":
            return None
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite() or result <= 0:
        return None
    return result


def detect_market(symbol: str) -> str:
    """根据代码格式判断市场：sh / sz / hk / us"""
    code = symbol.strip().upper()
    if code.isdigit():
        if code.startswith("6"):
            return "sh"
        if len(code) == 5:
            return "hk"
        if code[0] in "0348":
            return "sz"
        return "sh"
    return "us"


class QuoteBackend(ABC):
    name: str = "base"

    @abstractmethod
    async def fetch_quote(self, symbol: str) -> Optional[StockQuote]:
        """获取报价，失败返回 None"""


class SinaQuoteBackend(QuoteBackend):
    """新浪财经实时行情

    返回格式: var hq_str_sh600519="贵州茅台,1700.00,1701.00,1702.00,..."
    A股/港股: [0]名称, [3]当前价；美股: [0]名称, [1]当前价
    """
    name = "sina"

    API_URL = "http://hq.sinajs.cn/list="
    RESPONSE_PATTERN = re.compile(r'var\s+hq_str_[^=]+="([^"]*)"')
    HEADERS = {
        "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                      "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        "Referer": "http://finance.sina.com.cn",
        "Accept": "*/*",
    }

    def __init__(self, timeout: float = None, transport: httpx.AsyncBaseTransport = None):
        self.timeout = timeout or settings.QUOTE_TIMEOUT_SECONDS
        self._transport = transport

    @staticmethod
    def to_sina_code(symbol: str) -> str:
        code = symbol.strip()
        lowered = code.lower()
        if lowered.startswith(("sh", "sz", "rt_hk", "gb_")):
            return lowered
        market = detect_market(code)
        if market == "hk":
            return f"rt_hk{code}"
        if market == "us":
            return f"gb_{lowered}"
        return f"{market}{code}"

    def parse_response(self, symbol: str, body: str) -> Optional[StockQuote]:
        match = self.RESPONSE_PATTERN.search(body or "")
        if not match:
            logger.warning(f"[MarketData] Unrecognized sina response for {symbol}")
            return None

        data = match.group(1)
        if not data.strip() or "FAILED" in data or "不存在" in data:
            logger.warning(f"[MarketData] Sina returned no data for {symbol}")
            return None

        fields = data.split(",")
        sina_code = self.to_sina_code(symbol)
        price_index = 1 if sina_code.startswith("gb_") else 3
        price = parse_decimal(fields[price_index]) if len(fields) > price_index else None
        return StockQuote(
            symbol=symbol,
            name=fields[0].strip(),
            price=price,
            market=detect_market(symbol),
            source=self.name,
        )

    async def fetch_quote(self, symbol: str) -> Optional[StockQuote]:
        url = self.API_URL + self.to_sina_code(symbol)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, headers=self.HEADERS, transport=self._transport) as client:
                resp = await client.get(url)
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(f"[MarketData] Sina HTTP {e.response.status_code} for {symbol}")
            return None
        except httpx.HTTPError as e:
            logger.warning(f"[MarketData] Sina request failed for {symbol}: {e}")
            return None

        # 新浪接口返回 GBK 编码
        body = resp.content.decode("gbk", errors="ignore")
        return self.parse_response(symbol, body)


class YahooQuoteBackend(QuoteBackend):
    """Yahoo Finance（yfinance 为同步库，放到线程池执行）"""
    name = "yahoo"

    @staticmethod
    def to_yahoo_symbol(symbol: str) -> str:
        code = symbol.strip().upper()
        market = detect_market(code)
        if market == "sh":
            return f"{code}.SS"
        if market == "sz":
            return f"{code}.SZ"
        if market == "hk":
            # 港股：移除前导0，例如 00700 -> 0700.HK
            return f"{int(code):04d}.HK"
        return code

    def _fetch_sync(self, symbol: str) -> Optional[StockQuote]:
        ticker = yf.Ticker(self.to_yahoo_symbol(symbol))
        price = parse_decimal(ticker.fast_info.get("lastPrice"))
        name = ""
        try:
            info = ticker.info or {}
            name = info.get("shortName") or info.get("longName") or ""
        except Exception as e:
            logger.debug(f"[MarketData] Yahoo info unavailable for {symbol}: {e}")
        return StockQuote(
            symbol=symbol,
            name=name,
            price=price,
            market=detect_market(symbol),
            source=self.name,
        )

    async def fetch_quote(self, symbol: str) -> Optional[StockQuote]:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._fetch_sync, symbol)
        except Exception as e:
            logger.warning(f"[MarketData] Yahoo Finance failed for {symbol}: {e}")
            return None


BACKENDS = {
    SinaQuoteBackend.name: SinaQuoteBackend,
    YahooQuoteBackend.name: YahooQuoteBackend,
}


def make_quote_backends(names: Optional[str] = None) -> List[QuoteBackend]:
    configured = names if names is not None else settings.QUOTE_PROVIDERS
    backends = []
    for name in [n.strip().lower() for n in configured.split(",") if n.strip()]:
        backend_cls = BACKENDS.get(name)
        if backend_cls is None:
            logger.warning(f"Unknown quote provider in settings: {name}")
            continue
        backends.append(backend_cls())
    return backends


class MarketDataProvider:
    """市场数据提供者"""

    def __init__(
        self,
        backends: Optional[Sequence[QuoteBackend]] = None,
        price_cache_ttl: Optional[int] = None,
        redis_cache: Optional[RedisCache] = None,
    ):
        self.backends = list(backends) if backends is not None else make_quote_backends()
        self._price_cache_ttl = price_cache_ttl if price_cache_ttl is not None else settings.PRICE_CACHE_TTL
        self._redis_cache = redis_cache or cache
        # 报价缓存: {symbol: (quote, timestamp)}
        self._quote_cache: Dict[str, Tuple[StockQuote, float]] = {}

    def _get_cached(self, symbol: str) -> Optional[StockQuote]:
        cached = self._quote_cache.get(symbol)
        if cached is None:
            return None
        quote, ts = cached
        if time.monotonic() - ts > self._price_cache_ttl:
            del self._quote_cache[symbol]
            return None
        return quote

    def _remember(self, quote: StockQuote) -> None:
        """写入进程内缓存，顺带清理已过期的报价"""
        now = time.monotonic()
        stale = [s for s, (_, ts) in self._quote_cache.items() if now - ts > self._price_cache_ttl]
        for s in stale:
            del self._quote_cache[s]
        self._quote_cache[quote.symbol] = (quote, now)

    async def _get_redis_cached(self, symbol: str) -> Optional[StockQuote]:
        try:
            data = await self._redis_cache.get(f"quote:{symbol}")
        except Exception as e:
            logger.warning(f"[MarketData] Redis cache read failed for {symbol}: {e}")
            return None
        if not isinstance(data, dict):
            return None
        return StockQuote(
            symbol=symbol,
            name=data.get("name", ""),
            price=parse_decimal(data.get("price")),
            market=data.get("market", detect_market(symbol)),
            source=data.get("source", "cache"),
        )

    async def _store(self, quote: StockQuote) -> None:
        self._remember(quote)
        payload = {
            "name": quote.name,
            "price": str(quote.price) if quote.price is not None else None,
            "market": quote.market,
            "source": quote.source,
        }
        try:
            await self._redis_cache.set(f"quote:{quote.symbol}", payload, expire=self._price_cache_ttl)
        except Exception as e:
            logger.warning(f"[MarketData] Redis cache write failed for {quote.symbol}: {e}")

    async def get_quote(self, symbol: str) -> Optional[StockQuote]:
        """按后端顺序获取报价，全部失败返回 None"""
        quote = self._get_cached(symbol)
        if quote is not None:
            return quote

        quote = await self._get_redis_cached(symbol)
        if quote is not None and quote.price is not None:
            self._remember(quote)
            return quote

        fallback: Optional[StockQuote] = None
        for backend in self.backends:
            try:
                quote = await backend.fetch_quote(symbol)
            except Exception as e:
                logger.error(f"[MarketData] {backend.name} raised for {symbol}: {e}")
                continue
            if quote is None:
                continue
            if quote.price is not None:
                await self._store(quote)
                return quote
            # 有名称但无价格：保留，继续尝试下一个后端
            fallback = fallback or quote

        if fallback is None:
            logger.warning(f"[MarketData] All quote providers failed for {symbol}")
        return fallback

    async def get_current_price(self, symbol: str) -> Optional[Decimal]:
        quote = await self.get_quote(symbol)
        return quote.price if quote else None

    async def get_stock_info(self, symbol: str) -> Optional[StockQuote]:
        quote = await self.get_quote(symbol)
        if quote is None or not quote.name:
            return None
        return quote

    async def get_stock_name(self, symbol: str) -> str:
        info = await self.get_stock_info(symbol)
        return info.name if info else ""
