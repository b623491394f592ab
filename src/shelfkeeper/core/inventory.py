"""Inventory state, user operations and metadata synchronisation."""

from __future__ import annotations

import asyncio
from functools import partial

import httpx
import structlog

from .fetcher import CatalogClient
from .isbn import is_valid_isbn
from .models import (
    AUTHOR_PLACEHOLDER,
    TITLE_PLACEHOLDER,
    BookCard,
    FetchState,
    Inventory,
)
from .store import KeyValueStore

log = structlog.get_logger()

INVALID_ISBN_MESSAGE = "Invalid ISBN number. Please enter a valid ISBN."


class InventoryController:
    """Owns the inventory and keeps its metadata in sync with the catalog.

    add/rate/delete mutate the inventory, flush the whole of it to the
    store, and (for list changes) start a fetch pass. Fetches run as
    asyncio tasks, so the mutating methods must be called from inside a
    running event loop.

    With ``refetch_all`` (the default) every fetch pass refetches every
    listed ISBN; otherwise only ISBNs not yet fetched and not in flight.
    Fetch results are merged into ``inventory.metadata`` as they arrive
    and are persisted by the next flush.
    """

    def __init__(
        self,
        store: KeyValueStore,
        fetcher: CatalogClient,
        client: httpx.AsyncClient,
        refetch_all: bool = True,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.client = client
        self.refetch_all = refetch_all
        self.inventory: Inventory = store.load()
        self.error = ""
        self.fetch_state: dict[str, FetchState] = {}
        self._tasks: dict[str, set[asyncio.Task]] = {}

    @property
    def is_loading(self) -> bool:
        return any(self._tasks.values())

    def start(self) -> None:
        """Fetch metadata for the ISBNs loaded from the store."""
        self._fetch_pass()

    def add(self, raw: str) -> bool:
        """Validate and append an ISBN. Returns True if it was added."""
        isbn = raw.strip()
        if not isbn:
            return False
        if not is_valid_isbn(isbn):
            self.error = INVALID_ISBN_MESSAGE
            log.info("book_rejected", value=isbn)
            return False

        self.inventory.isbns.append(isbn)
        self.inventory.ratings[isbn] = 0
        self.error = ""
        self._flush()
        log.info("book_added", isbn=isbn, books=len(self.inventory.isbns))
        self._fetch_pass()
        return True

    def rate(self, isbn: str, rating: int) -> None:
        # Not clamped: the 1-5 range belongs to the star control, and 0
        # is the "unrated" value set by add.
        self.inventory.ratings[isbn] = rating
        self._flush()
        log.info("book_rated", isbn=isbn, rating=rating)

    def delete(self, isbn: str) -> None:
        """Remove every occurrence of isbn along with its metadata and rating."""
        self.inventory.isbns = [i for i in self.inventory.isbns if i != isbn]
        self.inventory.metadata.pop(isbn, None)
        self.inventory.ratings.pop(isbn, None)
        self.fetch_state.pop(isbn, None)
        for task in self._tasks.pop(isbn, set()):
            task.cancel()
        self._flush()
        log.info("book_deleted", isbn=isbn, books=len(self.inventory.isbns))
        self._fetch_pass()

    def cards(self) -> list[BookCard]:
        cards = []
        for isbn in self.inventory.isbns:
            record = self.inventory.metadata.get(isbn)
            title = record.title if record else None
            authors = record.authors if record else None
            cards.append(
                BookCard(
                    isbn=isbn,
                    title=title or TITLE_PLACEHOLDER,
                    author=", ".join(authors or []) or AUTHOR_PLACEHOLDER,
                    rating=self.inventory.ratings.get(isbn, 0),
                    cover_url=self.fetcher.cover_image_url(isbn),
                    details_loaded=record is not None,
                    status=self.fetch_state.get(isbn),
                )
            )
        return cards

    async def drain(self) -> None:
        """Wait until no fetch is in flight."""
        while True:
            tasks = [t for group in self._tasks.values() for t in group]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel every in-flight fetch."""
        tasks = [t for group in self._tasks.values() for t in group]
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _flush(self) -> None:
        self.store.save(self.inventory)

    def _fetch_pass(self) -> None:
        if self.refetch_all:
            targets = list(self.inventory.isbns)
        else:
            targets = [
                isbn
                for isbn in dict.fromkeys(self.inventory.isbns)
                if self.fetch_state.get(isbn) is not FetchState.FETCHED
                and not self._tasks.get(isbn)
            ]
        for isbn in targets:
            self._schedule(isbn)
        if targets:
            log.debug("fetch_pass", count=len(targets))

    def _schedule(self, isbn: str) -> None:
        task = asyncio.get_running_loop().create_task(self._fetch(isbn))
        self._tasks.setdefault(isbn, set()).add(task)
        self.fetch_state[isbn] = FetchState.PENDING
        task.add_done_callback(partial(self._task_done, isbn))

    def _task_done(self, isbn: str, task: asyncio.Task) -> None:
        group = self._tasks.get(isbn)
        if group is not None:
            group.discard(task)
            if not group:
                del self._tasks[isbn]
        if not task.cancelled() and task.exception() is not None:
            log.error("fetch_task_crashed", isbn=isbn, error=repr(task.exception()))

    async def _fetch(self, isbn: str) -> None:
        try:
            record = await self.fetcher.fetch_metadata(self.client, isbn)
        except Exception as e:
            log.error("fetch_failed_unexpectedly", isbn=isbn, error=repr(e))
            record = None
        if isbn not in self.inventory.isbns:
            log.debug("fetch_result_discarded", isbn=isbn)
            return
        if record is None:
            self.fetch_state[isbn] = FetchState.FAILED
            return
        # Last write wins when several fetches for one ISBN overlap.
        self.inventory.metadata[isbn] = record
        self.fetch_state[isbn] = FetchState.FETCHED
