"""
HTTP 请求封装
统一的上游请求入口：超时由 httpx 客户端控制，状态码映射为错误分类。
"""

import logging
from typing import Any, Dict, Optional

import httpx

from market_service.config import ServiceSettings
from market_service.errors import (
    MalformedResponseError,
    MarketServiceError,
    UpstreamAuthRejectedError,
    UpstreamNotFoundError,
    UpstreamRateLimitedError,
    UpstreamServerError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

_DEFAULT_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "market-service/1.0",
}


def create_http_client(settings: ServiceSettings) -> httpx.AsyncClient:
    """创建共享的异步 HTTP 客户端（连接 / 读取超时有上限）"""
    timeout = httpx.Timeout(settings.HTTP_TIMEOUT, connect=settings.HTTP_CONNECT_TIMEOUT)
    return httpx.AsyncClient(timeout=timeout, headers=_DEFAULT_HEADERS)


def _error_message(response: httpx.Response, fallback: str) -> str:
    """尽量从响应体中提取错误信息"""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or fallback
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or fallback)
    return fallback


def error_for_code(code: int, message: str, provider: str) -> MarketServiceError:
    """
    状态码 → 错误分类

    也用于把响应体内的错误码（如 Twelve Data 的 {"status": "error", "code": 429}）
    映射成与 HTTP 状态码一致的错误。
    """
    if code == 401:
        return UpstreamAuthRejectedError("Unauthorized. Please check your API key.", provider)
    if code == 403:
        # 通常是 API key 无效或套餐限流
        return UpstreamServerError(
            403, f"API key invalid or rate limit exceeded: {message}", provider
        )
    if code == 404:
        return UpstreamNotFoundError(message or "Resource not found", provider)
    if code == 429:
        return UpstreamRateLimitedError(message or "Rate limit exceeded", provider)
    return UpstreamServerError(code, message, provider)


def raise_for_status(response: httpx.Response, provider: str) -> None:
    """按状态码抛出对应分类的错误"""
    code = response.status_code
    if 200 <= code < 300:
        return
    fallback = "Client error" if code < 500 else "Server error"
    if code in (404, 429):
        fallback = ""
    raise error_for_code(code, _error_message(response, fallback), provider)


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    provider: str,
    params: Optional[Dict[str, Any]] = None,
    json: Optional[Dict[str, Any]] = None,
) -> Any:
    """
    发起请求并解码 JSON

    Raises:
        UpstreamUnavailableError: 网络 / 超时
        UpstreamXxxError: 非 2xx 状态码
        MalformedResponseError: 响应体无法解码
    """
    try:
        response = await client.request(method, url, params=params, json=json)
    except httpx.TimeoutException as exc:
        raise UpstreamUnavailableError(f"请求超时: {exc!r}", provider) from exc
    except httpx.HTTPError as exc:
        raise UpstreamUnavailableError(f"网络错误: {exc!r}", provider) from exc

    logger.debug(f"[{provider}] {method} {response.url.path} -> {response.status_code}")
    raise_for_status(response, provider)

    try:
        return response.json()
    except ValueError as exc:
        raise MalformedResponseError(f"响应解码失败: {exc}", provider) from exc
