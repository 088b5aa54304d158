from __future__ import annotations

import pytest

from lectern.core.errors import CatalogError, FetchError
from lectern.infrastructure.importers.textbook_catalog import (
    TextbookCatalog,
    extract_books,
    parse_education_level,
    parse_specialization,
    parse_subject,
    parse_year_number,
)

PAGE_URL = "https://www.koutoubi.mr/secondaire2/7eme/physique/"

PAGE_HTML = """
<html><body>
<table>
  <tr><th>Titre</th><th>Lien</th><th>Edition</th></tr>
  <tr>
    <td>Physique 7eme C</td>
    <td><a href="https://docs.bsimr.com/manuels/physique_7_C.pdf">Télécharger</a></td>
    <td>2021</td>
  </tr>
  <tr>
    <td><a href="https://docs.bsimr.com/manuels/physique_7_D.pdf">Physique 7eme D</a></td>
    <td>2019</td>
  </tr>
  <tr>
    <td>Notice</td>
    <td><a href="https://example.org/notice.pdf">Download</a></td>
  </tr>
</table>
</body></html>
"""

SITEMAP = b"""<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://koutoubi.netlify.app/secondaire2/7eme/physique/</loc></url>
  <url><loc>https://koutoubi.netlify.app/secondaire1/4eme/maths/</loc></url>
  <url><loc>https://koutoubi.netlify.app/about/</loc></url>
</urlset>
"""


def test_path_parsers() -> None:
    assert parse_education_level(PAGE_URL) == "high_school"
    assert parse_education_level("/fondamentals/3eme/arabe/") == "elementary"
    assert parse_education_level("/about/") is None
    assert parse_year_number(PAGE_URL) == 7
    assert parse_year_number("/secondaire1/4eme/maths/") == 4
    assert parse_subject("/secondaire2/7eme/physique/") == "physique"
    assert parse_subject("/secondaire2/7eme/") is None


def test_parse_specialization() -> None:
    assert parse_specialization("https://docs.bsimr.com/m/physique_7_C.pdf", "Physique") == "C"
    assert parse_specialization("https://docs.bsimr.com/m/maths-TM.pdf", "Maths") == "TM"
    assert parse_specialization("https://docs.bsimr.com/m/histoire.pdf", "Histoire") is None


def test_extract_books_reads_download_table() -> None:
    books = extract_books(PAGE_HTML, PAGE_URL)

    assert [book.pdf_url for book in books] == [
        "https://docs.bsimr.com/manuels/physique_7_C.pdf",
        "https://docs.bsimr.com/manuels/physique_7_D.pdf",
    ]
    first, second = books
    assert first.title == "Physique 7eme C"
    assert first.edition == "2021"
    assert first.specialization == "C"
    assert first.education_level == "high_school"
    assert first.year_number == 7
    assert first.subject == "physique"
    assert second.title == "Physique 7eme D"
    assert second.edition == "2019"
    assert second.import_metadata()["specialization"] == "D"


def test_extract_books_ignores_non_textbook_pages() -> None:
    assert extract_books(PAGE_HTML, "https://www.koutoubi.mr/about/") == []


class _FakeSite:
    def __init__(self, pages: dict[str, bytes]) -> None:
        self.pages = pages
        self.requested: list[str] = []

    def __call__(self, url: str) -> bytes:
        self.requested.append(url)
        if url not in self.pages:
            raise FetchError(f"HTTP 404 fetching {url}", status=404)
        return self.pages[url]


def test_discover_rewrites_hosts_skips_missing_pages_and_dedups() -> None:
    site = _FakeSite(
        {
            "https://www.koutoubi.mr/sitemap.xml": SITEMAP,
            PAGE_URL: PAGE_HTML.encode("utf-8"),
        }
    )
    catalog = TextbookCatalog(fetch=site, page_delay_seconds=0)

    books = catalog.discover()

    assert len(books) == 2
    assert "https://www.koutoubi.mr/secondaire1/4eme/maths/" in site.requested
    assert "https://www.koutoubi.mr/about/" not in site.requested


def test_discover_honours_limit() -> None:
    site = _FakeSite(
        {
            "https://www.koutoubi.mr/sitemap.xml": SITEMAP,
            PAGE_URL: PAGE_HTML.encode("utf-8"),
        }
    )

    books = TextbookCatalog(fetch=site, page_delay_seconds=0).discover(limit=1)

    assert [book.title for book in books] == ["Physique 7eme C"]


def test_sitemap_failures_raise_catalog_error() -> None:
    with pytest.raises(CatalogError):
        TextbookCatalog(fetch=_FakeSite({}), page_delay_seconds=0).sitemap_urls()

    broken = _FakeSite({"https://www.koutoubi.mr/sitemap.xml": b"<urlset><url>"})
    with pytest.raises(CatalogError):
        TextbookCatalog(fetch=broken, page_delay_seconds=0).sitemap_urls()
