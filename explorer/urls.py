"""URL normalization and same-origin gating for autonomous navigation."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional
from urllib.parse import urldefrag, urljoin, urlparse

import tldextract

# Bundled public-suffix snapshot only; never fetch the list at runtime.
_EXTRACT = tldextract.TLDExtract(suffix_list_urls=())


class UnnormalizableURL(ValueError):
    """Raised when a URL cannot be parsed into an absolute address."""


def normalize_url(url: str, base: Optional[str] = None) -> str:
    """Return the canonical form of ``url`` with its fragment removed.

    Relative references are resolved against ``base`` first. The result is
    stable under repeated normalization, so fragment-only variants of one
    page collapse to the same key.

    Raises:
        UnnormalizableURL: If the URL is malformed or not absolute.
    """
    if not isinstance(url, str) or not url.strip():
        raise UnnormalizableURL(f"Empty URL: {url!r}")

    try:
        resolved = urljoin(base, url.strip()) if base else url.strip()
        without_fragment, _ = urldefrag(resolved)
        parsed = urlparse(without_fragment)
        # Accessing .port validates the netloc (raises on garbage ports).
        parsed.port
    except ValueError as exc:
        raise UnnormalizableURL(f"Malformed URL: {url!r}") from exc

    if not parsed.scheme:
        raise UnnormalizableURL(f"URL has no scheme: {url!r}")
    if parsed.scheme in ("http", "https") and not parsed.hostname:
        raise UnnormalizableURL(f"URL has no host: {url!r}")
    if parsed.scheme not in ("file",) and not parsed.netloc:
        raise UnnormalizableURL(f"URL is not hierarchical: {url!r}")

    canonical = parsed._replace(
        scheme=parsed.scheme.lower(),
        netloc=_lower_netloc_host(parsed.netloc),
        path=parsed.path or ("/" if parsed.netloc else ""),
    )
    return canonical.geturl()


def _lower_netloc_host(netloc: str) -> str:
    userinfo, at, hostport = netloc.rpartition("@")
    return f"{userinfo}{at}{hostport.lower()}"


def try_normalize(url: str, base: Optional[str] = None) -> Optional[str]:
    """Normalize ``url`` or return None when it cannot be normalized."""
    try:
        return normalize_url(url, base)
    except UnnormalizableURL:
        return None


def _normalize_host(host: Optional[str]) -> str:
    """Normalize hostname by removing port and lowercasing."""
    if not host:
        return ""
    return host.split(":")[0].lower()


@lru_cache(maxsize=256)
def _registrable_domain(host: str) -> Optional[str]:
    """Extract the registrable domain from a hostname."""
    if not host:
        return None
    extracted = _EXTRACT(host)
    if not extracted.domain or not extracted.suffix:
        return host
    return f"{extracted.domain}.{extracted.suffix}"


def is_same_origin(
    target: str,
    current_base: str,
    *,
    include_subdomains: bool = False,
) -> bool:
    """Decide whether navigating to ``target`` keeps the crawl on-site.

    Path-relative references (``/about``) always pass. Otherwise the
    hostnames must match; with ``include_subdomains`` hosts sharing a
    registrable domain also pass. Malformed input never passes.
    """
    if not isinstance(target, str) or not isinstance(current_base, str):
        return False
    if target.startswith("/") and not target.startswith("//"):
        return True

    try:
        target_host = _normalize_host(urlparse(target).hostname)
        base_host = _normalize_host(urlparse(current_base).hostname)
    except ValueError:
        return False

    if not target_host or not base_host:
        return False
    if target_host == base_host:
        return True
    if include_subdomains:
        return _registrable_domain(target_host) == _registrable_domain(base_host)
    return False
