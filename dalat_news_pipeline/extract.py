from __future__ import annotations

import re
from datetime import datetime
from urllib.parse import urljoin

from bs4 import BeautifulSoup


_SCRIPT_RE = re.compile(r"<script[\s\S]*?</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style[\s\S]*?</style>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")

_ENTITIES = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    # last, so "&amp;lt;" stays "&lt;"
    ("&amp;", "&"),
)

_IMAGE_DENY_SUBSTRINGS = ("pixel", "icon", "logo", "avatar", "1x1")

_VN_DATE_RE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})\s*[-,]?\s*(\d{1,2}:\d{2})?")

_DALAT_KEYWORDS = (
    "đà lạt",
    "da lat",
    "dalat",
    "đà-lạt",
    "tp đà lạt",
    "tp. đà lạt",
    "thành phố đà lạt",
    "lâm đồng",
    "lam dong",
    "hồ xuân hương",
    "ho xuan huong",
    "langbiang",
    "lang biang",
    "bảo lộc",
    "bao loc",
    "đức trọng",
    "duc trong",
    "lạc dương",
    "lac duong",
    "đơn dương",
    "don duong",
)

MIN_CONTAINER_CHARS = 100


def strip_html(html: str) -> str:
    """HTML to plain text: drop script/style, tags and common entities, collapse whitespace."""

    text = _SCRIPT_RE.sub("", html or "")
    text = _STYLE_RE.sub("", text)
    text = _TAG_RE.sub(" ", text)
    for entity, ch in _ENTITIES:
        text = text.replace(entity, ch)
    return _WS_RE.sub(" ", text).strip()


def extract_by_pattern(html: str, pattern: re.Pattern[str] | str) -> str | None:
    m = re.search(pattern, html or "")
    if not m:
        return None
    return strip_html(m.group(1) if m.groups() else m.group(0))


def _meta_content(soup: BeautifulSoup, prop: str) -> str | None:
    tag = soup.find("meta", attrs={"property": prop}) or soup.find("meta", attrs={"name": prop})
    if tag and tag.get("content"):
        value = str(tag.get("content") or "").strip()
        if value:
            return value
    return None


def extract_title(html: str) -> str | None:
    """Best-effort title: headline h1, any h1, og:title, then <title>."""

    soup = BeautifulSoup(html or "", "lxml")

    candidates = [
        soup.find("h1", class_=re.compile(r"title|headline", re.IGNORECASE)),
        soup.find("h1"),
    ]
    for tag in candidates:
        if tag:
            t = strip_html(tag.decode_contents())
            if t:
                return t

    og = _meta_content(soup, "og:title")
    if og:
        return strip_html(og)

    if soup.title:
        t = strip_html(soup.title.decode_contents())
        if t:
            return t

    return None


def extract_element_by_class(html: str, class_name: str) -> str | None:
    """Inner HTML of the first div/article/section carrying ``class_name``.

    Nested elements of the same tag are balanced by counting open and close
    tags, so a content div that itself contains divs is bounded correctly.
    Returns None when there is no such element or it never closes.
    """

    class_name = class_name.lstrip(".")
    open_re = re.compile(
        r"<(div|article|section)\b[^>]*class=\"[^\"]*\b" + re.escape(class_name) + r"\b[^\"]*\"[^>]*>",
        re.IGNORECASE,
    )
    m = open_re.search(html or "")
    if not m:
        return None

    tag = m.group(1).lower()
    start = m.end()
    boundary_re = re.compile(rf"<(/?){tag}(?:[\s>])", re.IGNORECASE)

    depth = 1
    for b in boundary_re.finditer(html, start):
        if b.group(1):
            depth -= 1
            if depth == 0:
                return html[start : b.start()]
        else:
            depth += 1

    return None


def extract_content(html: str, selectors: list[str] | tuple[str, ...]) -> str:
    """Article body text from the first matching container, else og:description."""

    for selector in selectors:
        inner = extract_element_by_class(html, selector)
        if inner is None:
            continue
        text = strip_html(inner)
        if len(text) > MIN_CONTAINER_CHARS:
            return text

    soup = BeautifulSoup(html or "", "lxml")
    desc = _meta_content(soup, "og:description")
    if desc:
        return strip_html(desc)
    return ""


def extract_og_image(html: str) -> str | None:
    soup = BeautifulSoup(html or "", "lxml")
    return _meta_content(soup, "og:image")


def _is_content_image(src: str) -> bool:
    s = src.lower()
    if s.startswith("data:"):
        return False
    if s.split("?", 1)[0].endswith(".gif"):
        return False
    return not any(x in s for x in _IMAGE_DENY_SUBSTRINGS)


def extract_images(html: str, base_url: str | None = None) -> list[str]:
    """og:image plus lazy-load aware <img> sources, filtered and de-duplicated in order."""

    soup = BeautifulSoup(html or "", "lxml")
    images: list[str] = []

    og = _meta_content(soup, "og:image")
    if og:
        images.append(og)

    for img in soup.find_all("img"):
        for attr in ("src", "data-src", "data-original"):
            src = str(img.get(attr) or "").strip()
            if not src or not _is_content_image(src):
                continue
            images.append(urljoin(base_url, src) if base_url else src)

    seen: set[str] = set()
    out: list[str] = []
    for src in images:
        if src in seen:
            continue
        seen.add(src)
        out.append(src)
    return out


def extract_published_date(html: str) -> str | None:
    """article:published_time, else the first DD/MM/YYYY[ HH:MM] in the page (UTC+7)."""

    soup = BeautifulSoup(html or "", "lxml")
    meta = _meta_content(soup, "article:published_time")
    if meta:
        return meta

    m = _VN_DATE_RE.search(html or "")
    if not m:
        return None

    day, month, year, time_part = m.groups()
    hour, minute = time_part.split(":") if time_part else ("0", "0")
    try:
        dt = datetime(int(year), int(month), int(day), int(hour), int(minute))
    except ValueError:
        return None
    return dt.strftime("%Y-%m-%dT%H:%M:00+07:00")


def is_dalat_related(title: str, content: str) -> bool:
    text = f"{title} {content}".lower()
    return any(k in text for k in _DALAT_KEYWORDS)


def dalat_keyword_hits(text: str) -> int:
    """Number of distinct locale keywords present in ``text``."""

    text_l = (text or "").lower()
    return sum(1 for k in _DALAT_KEYWORDS if k in text_l)


def extract_text_from_html_fragment(html_fragment: str) -> str:
    """Convert an HTML snippet (e.g., RSS summary) to plain text."""

    soup = BeautifulSoup(html_fragment or "", "lxml")
    return soup.get_text(" ", strip=True)
