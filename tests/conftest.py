"""Shared fixtures: a fake Open Library Books API behind httpx.MockTransport."""

from __future__ import annotations

import httpx
import pytest

CATALOG = {
    "0306406152": {
        "title": "Signal Processing",
        "authors": [{"name": "Ann Author"}, {"name": "Bob Writer"}],
    },
    "9780306406157": {"title": "Signal Processing, 13", "authors": [{"name": "Ann Author"}]},
    "123456789X": {"title": "No Authors Here"},
}


class FakeCatalog:
    """Answers Books API requests from CATALOG and records what was asked."""

    def __init__(self, failing: set[str] | None = None, broken: set[str] | None = None):
        self.calls: list[str] = []
        self.failing = failing or set()
        self.broken = broken or set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        bibkey = request.url.params["bibkeys"]
        isbn = bibkey.removeprefix("ISBN:")
        self.calls.append(isbn)
        if isbn in self.failing:
            raise httpx.ConnectError("connection refused", request=request)
        if isbn in self.broken:
            return httpx.Response(200, text="<html>not json</html>")
        body = {bibkey: CATALOG[isbn]} if isbn in CATALOG else {}
        return httpx.Response(200, json=body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()
