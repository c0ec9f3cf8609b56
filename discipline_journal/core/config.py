from decimal import Decimal
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


# Locate the nearest .env starting from this file's directory
def find_env_file() -> Path | None:
    current = Path(__file__).resolve()
    for parent in current.parents:
        env_file = parent / ".env"
        if env_file.exists():
            return env_file
    return None


ENV_FILE = find_env_file()
BASE_DIR = ENV_FILE.parent if ENV_FILE else Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    APP_NAME: str = "Trade Discipline Journal"

    # 数据库：默认本地 SQLite（aiosqlite），生产可换成任意 SQLAlchemy 异步 URL
    DATABASE_URL: str = "sqlite+aiosqlite:///./trade_journal.db"
    DB_ECHO: bool = False

    LOG_LEVEL: str = "INFO"

    # 交易纪律
    # LOT_SIZE：一手 = 100 股，所有买卖数量必须为其正整数倍
    # MIN_RISK_REWARD：纪律守门员的最低盈亏比
    LOT_SIZE: int = 100
    MIN_RISK_REWARD: Decimal = Decimal("1.5")

    # 仓位计算的默认资金设置（首次启动时写入 app_settings 表）
    DEFAULT_TOTAL_CAPITAL: Decimal = Decimal("1000000")
    DEFAULT_RISK_PERCENT: Decimal = Decimal("0.01")

    # 仪表盘：距离止损小于均价的该比例时标记为 DANGER
    STOP_BUFFER_PCT: Decimal = Decimal("0.02")

    # 行情数据源，按顺序降级
    # 逗号分隔，例如 "sina,yahoo"
    QUOTE_PROVIDERS: str = "sina,yahoo"
    QUOTE_TIMEOUT_SECONDS: float = 5.0
    PRICE_CACHE_TTL: int = 60

    REDIS_ENABLED: bool = False
    REDIS_URL: str = "redis://localhost:6379/0"

    # LLM 配置（平仓后 AI 复盘）
    OPENAI_API_KEY: str | None = None
    OPENAI_API_BASE: str | None = None
    OPENAI_MODEL: str = "gpt-4.1-mini"
    OPENAI_TIMEOUT_SECONDS: int = 30
    OPENAI_MAX_TOKENS: int = 500

    DEEPSEEK_ENABLED: bool = False
    DEEPSEEK_API_KEY: str | None = None
    DEEPSEEK_API_BASE: str = "https://api.deepseek.com"
    DEEPSEEK_MODEL: str = "deepseek-chat"
    DEEPSEEK_TIMEOUT_SECONDS: int = 30

    AI_PROVIDERS: str = "openai,deepseek"
    AI_PREFERRED_PROVIDER: str | None = None

    # 复盘队列
    ENABLE_REVIEW_WORKER: bool = True
    REVIEW_QUEUE_MAXSIZE: int = 1000

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE else ".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()
