"""注册表 URL 工具"""

from __future__ import annotations

from urllib.parse import quote, urlparse

from depot.core.exceptions import ValidationError

ALLOWED_SCHEMES = ("http", "https")


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """注册表地址只接受带主机名的 http/https URL

    Raises:
        ValidationError: 协议不在白名单内，或缺少主机名
    """
    parsed = urlparse(url)
    where = f" ({context})" if context else ""
    if parsed.scheme not in ALLOWED_SCHEMES:
        raise ValidationError(
            f"不允许的 URL 协议 '{parsed.scheme}'{where}，仅支持 http/https: {url}",
        )
    if not parsed.netloc:
        raise ValidationError(f"URL 缺少主机名{where}: {url}")


def join_url(base: str, *segments: str) -> str:
    """在 base 后追加路径段，每段单独做百分号编码（段内的 '/' 也会被编码）"""
    parts = [base.rstrip("/")]
    parts.extend(quote(s.strip("/"), safe="~.-_") for s in segments)
    return "/".join(parts)
