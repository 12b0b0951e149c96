"""
行情服务配置
环境变量 / .env 读取；API key 为不透明字符串，可以为空。
在 Docker 容器内运行时，MongoDB / Redis 默认主机名取 compose 服务名。
"""

import os
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _service_host(service: str) -> str:
    """容器内返回服务名，否则 localhost"""
    in_docker = os.path.exists("/.dockerenv") or os.environ.get(
        "DOCKER_CONTAINER", ""
    ).lower() in ("1", "true", "yes")
    return service if in_docker else "localhost"


class ServiceSettings(BaseSettings):
    """行情服务配置"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── 基础配置 ──────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8001)
    DEBUG: bool = Field(default=False)
    ALLOWED_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"]
    )

    # ── MongoDB 配置（支持服务发现） ───────────────────────
    MONGODB_HOST: str = Field(default_factory=lambda: _service_host("mongodb"))
    MONGODB_PORT: int = Field(default=27017)
    MONGODB_USERNAME: str = Field(default="")
    MONGODB_PASSWORD: str = Field(default="")
    MONGODB_DATABASE: str = Field(default="market_service")
    MONGODB_AUTH_SOURCE: str = Field(default="admin")
    MONGODB_ENABLED: bool = Field(default=True)
    MONGO_MAX_CONNECTIONS: int = Field(default=50)
    MONGO_MIN_CONNECTIONS: int = Field(default=5)
    MONGO_CONNECT_TIMEOUT_MS: int = Field(default=30000)
    MONGO_SOCKET_TIMEOUT_MS: int = Field(default=60000)
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = Field(default=5000)

    @property
    def MONGO_URI(self) -> str:
        if self.MONGODB_USERNAME and self.MONGODB_PASSWORD:
            return (
                f"mongodb://{self.MONGODB_USERNAME}:{self.MONGODB_PASSWORD}"
                f"@{self.MONGODB_HOST}:{self.MONGODB_PORT}"
                f"/{self.MONGODB_DATABASE}?authSource={self.MONGODB_AUTH_SOURCE}"
            )
        return f"mongodb://{self.MONGODB_HOST}:{self.MONGODB_PORT}/{self.MONGODB_DATABASE}"

    # ── Redis 配置（支持服务发现） ─────────────────────────
    REDIS_HOST: str = Field(default_factory=lambda: _service_host("redis"))
    REDIS_PORT: int = Field(default=6379)
    REDIS_PASSWORD: str = Field(default="")
    REDIS_DB: int = Field(default=0)
    REDIS_ENABLED: bool = Field(default=True)
    REDIS_MAX_CONNECTIONS: int = Field(default=20)

    @property
    def REDIS_URL(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # ── 数据源凭证（可为空，为空时对应提供商返回 missing_credential） ──
    FINNHUB_API_KEY: str = Field(default="")
    TWELVE_DATA_API_KEY: str = Field(default="")
    POLYGON_API_KEY: str = Field(default="")
    GEMINI_API_KEY: str = Field(default="")
    GEMINI_MODEL: str = Field(default="gemini-2.5-flash")

    # ── 运行模式 ──────────────────────────────────────────
    USE_MOCK_DATA: bool = Field(default=False)          # 使用确定性样例数据，避免触发限流
    ON_DEVICE_AI_ENABLED: bool = Field(default=False)   # 本地分析引擎能力开关

    # ── 缓存配置（秒） ────────────────────────────────────
    QUOTE_CACHE_MAX_AGE: int = Field(default=60)
    HISTORY_CACHE_MAX_AGE: int = Field(default=300)
    ANALYSIS_CACHE_MAX_AGE: int = Field(default=3600)
    PROVIDER_CACHE_TTL: int = Field(default=60)         # 提供商内部请求级缓存
    QUOTE_CACHE_PURGE_AGE: int = Field(default=300)
    HISTORY_CACHE_PURGE_AGE: int = Field(default=3600)

    # ── 网络配置（秒） ────────────────────────────────────
    HTTP_TIMEOUT: float = Field(default=30.0)
    HTTP_CONNECT_TIMEOUT: float = Field(default=10.0)

    # ── 自选股 / 指数 ─────────────────────────────────────
    MARKET_INDICES: List[str] = Field(default_factory=lambda: ["SPY", "QQQ", "DIA"])
    DEFAULT_WATCHLIST: List[str] = Field(default_factory=lambda: ["AAPL"])

    @field_validator("MARKET_INDICES", "DEFAULT_WATCHLIST")
    @classmethod
    def _upper_tickers(cls, value: List[str]) -> List[str]:
        return [t.strip().upper() for t in value if t and t.strip()]

    # ── AI 分析 ───────────────────────────────────────────
    ANALYSIS_HISTORY_DAYS: int = Field(default=365)
    MIN_ANALYSIS_HISTORY_POINTS: int = Field(default=250)

    # ── 日志配置 ──────────────────────────────────────────
    LOG_LEVEL: str = Field(default="INFO")

    @property
    def has_cloud_ai_credentials(self) -> bool:
        return bool(self.GEMINI_API_KEY.strip())


@lru_cache
def get_settings() -> ServiceSettings:
    """获取全局配置（单例）"""
    return ServiceSettings()


settings = get_settings()
