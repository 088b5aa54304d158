from __future__ import annotations

import re
from urllib.parse import unquote, urlparse

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    flags=re.IGNORECASE,
)


def looks_like_uuid(value: str | None) -> bool:
    return bool(_UUID_RE.match(str(value or "").strip()))


def clean_title_candidate(value: str | None) -> str:
    raw = str(value or "").strip()
    if not raw:
        return ""
    if raw.lower().startswith(("http://", "https://")):
        raw = unquote(urlparse(raw).path)
    cleaned = re.sub(r"^upload:", "", raw, flags=re.IGNORECASE)
    cleaned = re.sub(r"\?.*$", "", cleaned)
    cleaned = re.sub(r"^.*[\\/]", "", cleaned)
    cleaned = re.sub(r"\.[a-z0-9]{2,6}$", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"[_\-]+", " ", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    if not cleaned or looks_like_uuid(cleaned):
        return ""
    return cleaned


def derive_document_title(
    *,
    explicit_title: str | None,
    original_filename: str | None,
    source_url: str | None = None,
    fallback_id: str | None = None,
) -> str:
    title = str(explicit_title or "").strip()
    if title:
        return title
    for candidate in (original_filename, source_url):
        cleaned = clean_title_candidate(candidate)
        if cleaned:
            return cleaned
    if fallback_id:
        short_id = str(fallback_id).strip()[:8]
        if short_id:
            return f"Document {short_id}"
    return "Untitled document"


def format_source_ref(title: str, page_start: int, page_end: int) -> str:
    """Human-readable citation, e.g. ``"Physique 7C p12-14"``."""
    if page_end != page_start:
        return f"{title} p{page_start}-{page_end}"
    return f"{title} p{page_start}"
