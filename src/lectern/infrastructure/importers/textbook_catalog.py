from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from html.parser import HTMLParser
from typing import Callable
from urllib.parse import urlparse
from xml.etree import ElementTree as ET

from lectern.core.errors import CatalogError, FetchError
from lectern.infrastructure.importers.http_fetch import fetch_bytes

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.koutoubi.mr"
LEGACY_HOST = "koutoubi.netlify.app"

LEVEL_PREFIXES = {
    "fondamentals/": "elementary",
    "secondaire1/": "secondary",
    "secondaire2/": "high_school",
}
YEAR_MAP = {
    "1ere": 1,
    "2eme": 2,
    "3eme": 3,
    "4eme": 4,
    "5eme": 5,
    "6eme": 6,
    "7eme": 7,
}
SPECIALIZATIONS = ("TM", "C", "D", "A", "O")
DOWNLOAD_LABELS = {"download", "télécharger"}

_PDF_HREF_RE = re.compile(r"^https?://docs\.bsimr\.com/.*\.pdf$", flags=re.IGNORECASE)
_EDITION_RE = re.compile(r"^(20\d{2})$")


@dataclass(slots=True)
class DiscoveredBook:
    title: str
    pdf_url: str
    education_level: str
    year_number: int
    subject: str
    specialization: str | None
    edition: str | None
    source_page_url: str

    def import_metadata(self) -> dict[str, object]:
        return {
            "title": self.title,
            "subject": self.subject,
            "education_level": self.education_level,
            "specialization": self.specialization,
            "year_number": self.year_number,
            "edition": self.edition,
        }


@dataclass(slots=True)
class _Cell:
    texts: list[str]
    hrefs: list[str]

    @property
    def text(self) -> str:
        return " ".join(self.texts).strip()

    @property
    def first_text(self) -> str | None:
        return self.texts[0] if self.texts else None


class _TableRowExtractor(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.rows: list[list[_Cell]] = []
        self._row: list[_Cell] | None = None
        self._cell: _Cell | None = None

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        normalized = tag.lower()
        if normalized == "tr":
            self._row = []
            return
        if normalized == "td" and self._row is not None:
            self._cell = _Cell(texts=[], hrefs=[])
            return
        if normalized == "a" and self._cell is not None:
            for name, value in attrs:
                if name.lower() == "href" and value:
                    self._cell.hrefs.append(value.strip())

    def handle_data(self, data: str) -> None:
        if self._cell is None:
            return
        text = " ".join(data.split())
        if text:
            self._cell.texts.append(text)

    def handle_endtag(self, tag: str) -> None:
        normalized = tag.lower()
        if normalized == "td" and self._cell is not None and self._row is not None:
            self._row.append(self._cell)
            self._cell = None
            return
        if normalized == "tr" and self._row is not None:
            self.rows.append(self._row)
            self._row = None


def parse_education_level(path: str) -> str | None:
    for prefix, level in LEVEL_PREFIXES.items():
        if prefix in path:
            return level
    return None


def parse_year_number(path: str) -> int | None:
    for key, value in YEAR_MAP.items():
        if f"/{key}" in path:
            return value
    return None


def parse_subject(path: str) -> str | None:
    for prefix in LEVEL_PREFIXES:
        idx = path.find(prefix)
        if idx == -1:
            continue
        parts = [part for part in path[idx + len(prefix) :].split("/") if part]
        if len(parts) >= 2:
            return parts[1]
    return None


def parse_specialization(pdf_url: str, title: str) -> str | None:
    combined = f"{pdf_url} {title}"
    for spec in SPECIALIZATIONS:
        pattern = rf"[_\s-]{spec}[_\s.-]|[_\s-]{spec}$|\b{spec}\b"
        if re.search(pattern, combined, flags=re.IGNORECASE):
            return spec
    return None


def is_textbook_page_url(url: str) -> bool:
    return any(prefix in url for prefix in LEVEL_PREFIXES)


def extract_books(html: str, page_url: str) -> list[DiscoveredBook]:
    """Parse one catalog page's download table into books."""
    education_level = parse_education_level(page_url)
    year_number = parse_year_number(page_url)
    subject = parse_subject(urlparse(page_url).path or page_url)
    if not education_level or not year_number or not subject:
        return []

    extractor = _TableRowExtractor()
    extractor.feed(html)
    extractor.close()

    books: list[DiscoveredBook] = []
    for cells in extractor.rows:
        if len(cells) < 2:
            continue

        pdf_url: str | None = None
        title: str | None = None
        for cell in cells:
            match = next((href for href in cell.hrefs if _PDF_HREF_RE.match(href)), None)
            if match is None:
                continue
            pdf_url = pdf_url or match
            if title is None and cell.first_text:
                title = cell.first_text
        if not pdf_url:
            continue
        if title is None:
            title = cells[0].first_text or "Unknown"
        if title.lower() in DOWNLOAD_LABELS and cells[0].first_text:
            title = cells[0].first_text

        edition = next(
            (m.group(1) for m in (_EDITION_RE.match(cell.text) for cell in cells) if m),
            None,
        )
        books.append(
            DiscoveredBook(
                title=title,
                pdf_url=pdf_url,
                education_level=education_level,
                year_number=year_number,
                subject=subject,
                specialization=parse_specialization(pdf_url, title),
                edition=edition,
                source_page_url=page_url,
            )
        )
    return books


class TextbookCatalog:
    """Discovers downloadable textbooks from the koutoubi.mr sitemap."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        fetch: Callable[[str], bytes] | None = None,
        *,
        page_delay_seconds: float = 0.3,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.fetch = fetch or fetch_bytes
        self.page_delay_seconds = max(0.0, page_delay_seconds)

    @property
    def sitemap_url(self) -> str:
        return f"{self.base_url}/sitemap.xml"

    def sitemap_urls(self) -> list[str]:
        try:
            raw = self.fetch(self.sitemap_url)
        except FetchError as exc:
            raise CatalogError(f"Failed to fetch sitemap from {self.sitemap_url}: {exc}") from exc
        try:
            root = ET.fromstring(raw)
        except ET.ParseError as exc:
            raise CatalogError(f"Sitemap at {self.sitemap_url} is not valid XML: {exc}") from exc

        target_host = urlparse(self.base_url).netloc
        urls: list[str] = []
        for elem in root.iter():
            if not elem.tag.endswith("loc") or not elem.text:
                continue
            urls.append(elem.text.strip().replace(LEGACY_HOST, target_host))
        return urls

    def discover(self, *, limit: int | None = None) -> list[DiscoveredBook]:
        page_urls = [url for url in self.sitemap_urls() if is_textbook_page_url(url)]
        logger.info("Found %d textbook page URLs in sitemap", len(page_urls))

        books: list[DiscoveredBook] = []
        seen: set[str] = set()
        for index, page_url in enumerate(page_urls):
            if index and self.page_delay_seconds:
                time.sleep(self.page_delay_seconds)
            try:
                html = self.fetch(page_url).decode("utf-8", errors="replace")
            except FetchError as exc:
                logger.info("Skipping %s (%s)", page_url, exc)
                continue
            for book in extract_books(html, page_url):
                if book.pdf_url in seen:
                    continue
                seen.add(book.pdf_url)
                books.append(book)
                if limit is not None and len(books) >= limit:
                    return books

        logger.info("Discovered %d unique books", len(books))
        return books
