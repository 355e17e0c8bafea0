from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup


_DEFAULT_DENY_SUBSTRINGS = (
    "/video/",
    "/podcast",
    "/login",
    "/dang-nhap",
    "javascript:",
)


_DEFAULT_TRACKING_PARAMS_PREFIXES = (
    "utm_",
)


_DEFAULT_TRACKING_PARAMS = {
    "fbclid",
    "gclid",
    "vn_source",
    "vn_medium",
    "vn_campaign",
}


# listing pages rather than articles
_HUB_PATH_SUBSTRINGS = (
    "/tag/",
    "/tags/",
    "/category/",
    "/categories/",
    "/chu-de/",
    "/danh-muc/",
    "/tu-khoa/",
    "/topic/",
    "/author/",
    "/tac-gia/",
    "/search",
    "/tim-kiem",
)


def _same_site(base_url: str, url: str) -> bool:
    base = urlparse(base_url).netloc.lower().removeprefix("www.")
    host = urlparse(url).netloc.lower().removeprefix("www.")
    return bool(host) and (host == base or host.endswith("." + base))


def _normalize_url(base_url: str, href: str) -> str | None:
    href = (href or "").strip()
    if not href or href.startswith("#"):
        return None
    if any(href.lower().startswith(x) for x in ("mailto:", "tel:", "javascript:")):
        return None
    try:
        return urljoin(base_url if base_url.endswith("/") else base_url + "/", href)
    except ValueError:
        return None


def strip_fragment_and_tracking_params(url: str) -> str:
    """Remove URL fragments and common tracking params to improve de-duplication."""

    p = urlparse(url)
    if not p.scheme or not p.netloc:
        return url

    keep_params: list[tuple[str, str]] = []
    for k, v in parse_qsl(p.query, keep_blank_values=False):
        kl = k.lower()
        if any(kl.startswith(prefix) for prefix in _DEFAULT_TRACKING_PARAMS_PREFIXES):
            continue
        if kl in _DEFAULT_TRACKING_PARAMS:
            continue
        keep_params.append((k, v))

    return urlunparse(p._replace(query=urlencode(keep_params, doseq=True), fragment=""))


def is_hub_url(url: str) -> bool:
    path = urlparse(url).path.lower()
    return any(s in path for s in _HUB_PATH_SUBSTRINGS)


def extract_article_links(
    html: str,
    base_url: str,
    link_pattern: str | re.Pattern[str] | None = None,
    *,
    scan_limit: int = 1500,
) -> list[str]:
    """Candidate article URLs from a listing page, in page order.

    Links are made absolute, stripped of fragments and tracking params, kept
    to the source's own site, matched against the per-source pattern (when
    given) and de-duplicated. Tag/category/topic pages are dropped.
    """

    soup = BeautifulSoup(html or "", "lxml")
    pattern = re.compile(link_pattern) if isinstance(link_pattern, str) else link_pattern

    links: list[str] = []
    seen: set[str] = set()

    for scanned, a in enumerate(soup.find_all("a", href=True)):
        if scan_limit > 0 and scanned >= scan_limit:
            break

        url = _normalize_url(base_url, str(a.get("href") or ""))
        if not url:
            continue
        url = strip_fragment_and_tracking_params(url)

        url_l = url.lower()
        if any(s in url_l for s in _DEFAULT_DENY_SUBSTRINGS):
            continue
        if not _same_site(base_url, url):
            continue
        if urlparse(url).path in {"/", ""}:
            continue
        if is_hub_url(url):
            continue
        if pattern is not None and not pattern.search(url):
            continue

        if url_l in seen:
            continue
        seen.add(url_l)
        links.append(url)

    return links
