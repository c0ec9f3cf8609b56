"""
AI 客户端管理器 - 统一管理复盘使用的 AI 提供商（OpenAI、DeepSeek）

功能：
1. 按 settings.AI_PROVIDERS 顺序降级，AI_PREFERRED_PROVIDER 优先
2. 熔断机制：429 / 401 / 超时后临时屏蔽该提供商
3. 统一的调用接口 call_ai_with_fallback，全部失败返回 (None, None)

降级策略：OpenAI → DeepSeek → 规则复盘（由 ai_review_service 兜底）
"""

import logging
import re
import time
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from openai import AsyncOpenAI

from discipline_journal.core.config import settings

logger = logging.getLogger(__name__)


class AIProvider(str, Enum):
    """AI 提供商枚举"""
    OPENAI = "openai"
    DEEPSEEK = "deepseek"


# 全局客户端缓存
_clients: Dict[AIProvider, Any] = {}

# 提供商熔断器：记录临时不可用的提供商及其恢复时间
_provider_circuit_breaker: Dict[AIProvider, float] = {}


def _init_openai_client() -> Optional[AsyncOpenAI]:
    if not settings.OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY not configured")
        return None
    kwargs = {"api_key": settings.OPENAI_API_KEY, "timeout": settings.OPENAI_TIMEOUT_SECONDS}
    if settings.OPENAI_API_BASE:
        kwargs["base_url"] = settings.OPENAI_API_BASE
    logger.info("OpenAI client initialized")
    return AsyncOpenAI(**kwargs)


def _init_deepseek_client() -> Optional[AsyncOpenAI]:
    """DeepSeek API 兼容 OpenAI 格式，复用 AsyncOpenAI"""
    if not settings.DEEPSEEK_ENABLED:
        logger.info("DeepSeek disabled in config")
        return None
    if not settings.DEEPSEEK_API_KEY:
        logger.warning("DEEPSEEK_API_KEY not configured")
        return None
    logger.info(f"DeepSeek client initialized (base_url: {settings.DEEPSEEK_API_BASE})")
    return AsyncOpenAI(
        api_key=settings.DEEPSEEK_API_KEY,
        base_url=settings.DEEPSEEK_API_BASE,
        timeout=settings.DEEPSEEK_TIMEOUT_SECONDS,
    )


def get_ai_client(provider: AIProvider = AIProvider.OPENAI):
    """
    获取指定 AI 提供商的客户端（懒加载 + 全局单例）

    熔断中或未配置时返回 None
    """
    recovery_time = _provider_circuit_breaker.get(provider)
    if recovery_time is not None:
        if time.time() < recovery_time:
            remaining = int(recovery_time - time.time())
            logger.warning(f"{provider.value} is circuit-broken, recovery in {remaining}s")
            return None
        del _provider_circuit_breaker[provider]
        logger.info(f"{provider.value} circuit breaker recovered")

    if _clients.get(provider):
        return _clients[provider]

    if provider == AIProvider.OPENAI:
        _clients[provider] = _init_openai_client()
    elif provider == AIProvider.DEEPSEEK:
        _clients[provider] = _init_deepseek_client()
    return _clients.get(provider)


def reset_clients() -> None:
    """清空客户端缓存与熔断状态（配置变更后调用）"""
    _clients.clear()
    _provider_circuit_breaker.clear()


def circuit_break_provider(provider: AIProvider, duration_seconds: int = 300):
    _provider_circuit_breaker[provider] = time.time() + duration_seconds
    logger.warning(f"Circuit breaking {provider.value} for {duration_seconds}s")


def get_model_for_provider(provider: AIProvider) -> str:
    if provider == AIProvider.DEEPSEEK:
        return settings.DEEPSEEK_MODEL
    return settings.OPENAI_MODEL


def provider_sequence() -> List[AIProvider]:
    """配置的提供商顺序，首选提供商排在最前"""
    providers: List[AIProvider] = []
    for name in [p.strip().lower() for p in settings.AI_PROVIDERS.split(",") if p.strip()]:
        try:
            provider = AIProvider(name)
        except ValueError:
            logger.warning(f"Unknown AI provider in settings: {name}")
            continue
        if provider not in providers:
            providers.append(provider)

    if settings.AI_PREFERRED_PROVIDER:
        try:
            preferred = AIProvider(settings.AI_PREFERRED_PROVIDER.strip().lower())
        except ValueError:
            preferred = None
        if preferred in providers:
            providers.remove(preferred)
            providers.insert(0, preferred)
    return providers


def strip_code_fence(content: str) -> str:
    """剥离 <think> 块与 Markdown 代码块"""
    content = content.strip()
    if "</think>" in content:
        content = content.split("</think>")[-1].strip()

    if "```json" in content:
        content = content.split("```json", 1)[1].split("```", 1)[0].strip()
    elif "```" in content:
        parts = content.split("```")
        if len(parts) >= 3:
            content = parts[1].strip()
    return content


def clean_json_content(content: str) -> str:
    """剥离 <think> 块与 Markdown 代码块，尽量得到纯 JSON 对象文本"""
    content = strip_code_fence(content)

    # 兜底：取第一个 { 到最后一个 } 之间的内容
    if content and not (content.startswith("{") and content.endswith("}")):
        match = re.search(r"(\{.*\})", content, re.DOTALL)
        if match:
            content = match.group(1).strip()
    return content


async def call_ai_with_fallback(
    messages: List[Dict[str, str]],
    temperature: float = 0.3,
    max_tokens: Optional[int] = None,
    response_format: Optional[Dict[str, Any]] = None,
) -> Tuple[Optional[str], Optional[AIProvider]]:
    """
    调用 AI 生成回复（带自动降级）

    Returns:
        (生成的文本, 使用的提供商) 或 (None, None)
    """
    max_tokens = max_tokens or settings.OPENAI_MAX_TOKENS
    providers = provider_sequence()
    last_error = None

    for provider in providers:
        client = get_ai_client(provider)
        if not client:
            logger.debug(f"{provider.value} client unavailable, skipping")
            continue

        model = get_model_for_provider(provider)
        kwargs = {"model": model, "messages": messages, "max_tokens": max_tokens}
        # reasoner 模式：temperature 无效，不传
        if not (provider == AIProvider.DEEPSEEK and "reasoner" in model.lower()):
            kwargs["temperature"] = temperature
        if response_format:
            kwargs["response_format"] = response_format

        try:
            response = await client.chat.completions.create(**kwargs)
        except Exception as e:
            error_str = str(e)
            logger.error(f"AI Provider ({provider.value}) error | model: {model} | {error_str}")
            last_error = e
            if "429" in error_str or "insufficient_quota" in error_str:
                circuit_break_provider(provider, duration_seconds=600)
            elif "401" in error_str or "authentication" in error_str.lower():
                circuit_break_provider(provider, duration_seconds=1800)
            elif "timeout" in error_str.lower():
                circuit_break_provider(provider, duration_seconds=120)
            continue

        content = response.choices[0].message.content or ""
        if response_format and response_format.get("type") == "json_object":
            content = clean_json_content(content)
        elif "</think>" in content:
            content = content.split("</think>")[-1].strip()

        if not content.strip():
            logger.warning(f"AI Provider ({provider.value}) returned empty content")
            last_error = Exception(f"{provider.value} returned empty content")
            continue

        logger.info(f"AI Provider ({provider.value}) success | model: {model} | length: {len(content)}")
        return content, provider

    if last_error:
        logger.error(f"All AI providers failed. Last error: {last_error}")
    return None, None
