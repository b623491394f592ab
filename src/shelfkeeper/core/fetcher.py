"""Fetch book metadata and cover URLs from Open Library."""

from __future__ import annotations

import os

import httpx
import structlog

from .models import BookRecord

log = structlog.get_logger()

# Open Library asks API clients to identify themselves
# (https://openlibrary.org/developers/api).
_OL_CONTACT = os.environ.get("OL_CONTACT_EMAIL", "")
_OL_USER_AGENT = f"Shelfkeeper/0.1.0 ({_OL_CONTACT})" if _OL_CONTACT else "Shelfkeeper/0.1.0"

OPEN_LIBRARY_URL = "https://openlibrary.org"
COVERS_URL = "https://covers.openlibrary.org"


class CatalogClient:
    """Thin wrapper over the Open Library Books API.

    One request per ISBN; no retries, throttling or request coalescing.
    """

    def __init__(
        self,
        base_url: str = OPEN_LIBRARY_URL,
        covers_url: str = COVERS_URL,
        timeout: float = 10,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.covers_url = covers_url.rstrip("/")
        self.timeout = timeout

    def books_api_url(self, isbn: str) -> str:
        return f"{self.base_url}/api/books?bibkeys=ISBN:{isbn}&format=json&jscmd=data"

    async def fetch_metadata(
        self, client: httpx.AsyncClient, isbn: str
    ) -> BookRecord | None:
        """Fetch the record for one ISBN.

        Returns None on any network, HTTP or parse failure. An ISBN the
        catalog does not know yields an empty BookRecord, not None.
        """
        url = self.books_api_url(isbn)
        try:
            resp = await client.get(
                url,
                timeout=self.timeout,
                headers={"User-Agent": _OL_USER_AGENT},
            )
            resp.raise_for_status()
            record = BookRecord.from_response(isbn, resp.json())
        except httpx.HTTPError as e:
            log.warning("catalog_fetch_failed", isbn=isbn, error=str(e))
            return None
        except (ValueError, RecursionError) as e:
            log.warning("catalog_fetch_failed", isbn=isbn, error=f"bad response: {e}")
            return None

        log.debug(
            "catalog_hit" if record.title else "catalog_no_match",
            isbn=isbn,
            title=record.title,
            authors=record.authors,
        )
        return record

    def cover_image_url(self, isbn: str) -> str:
        return f"{self.covers_url}/b/isbn/{isbn}-L.jpg"
