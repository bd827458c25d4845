from __future__ import annotations

from urllib.parse import urlparse


def validate_url(url: str | None) -> str:
    """
    校验待抓取的 URL

    只接受带主机名的 http/https 地址，返回去掉首尾空白后的 URL。
    """
    if url is None:
        raise ValueError("URL is required")
    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ValueError(f"Invalid URL: {url}")
    return url


def url_hostname(url: str) -> str:
    """主机名，用作标题兜底和 domain 元数据"""
    return urlparse(url).hostname or ""
