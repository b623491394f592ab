"""Data models for the book inventory."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

TITLE_PLACEHOLDER = "Title not available"
AUTHOR_PLACEHOLDER = "Author not available"


def bibkey(isbn: str) -> str:
    """Key under which the Books API returns the record for an ISBN."""
    return f"ISBN:{isbn}"


@dataclass
class BookRecord:
    """Metadata for one ISBN as returned by the Open Library Books API.

    Both fields are None when the catalog had no entry for the ISBN.
    """

    title: str | None = None
    authors: list[str] | None = None

    @classmethod
    def from_response(cls, isbn: str, payload: object) -> BookRecord:
        """Parse a ``jscmd=data`` response body.

        Raises ValueError if the body does not have the expected shape.
        """
        if not isinstance(payload, dict):
            raise ValueError(f"expected a JSON object, got {type(payload).__name__}")

        entry = payload.get(bibkey(isbn))
        if entry is None:
            return cls()
        if not isinstance(entry, dict):
            raise ValueError(f"record for {isbn} is not an object")

        title = entry.get("title")
        if title is not None and not isinstance(title, str):
            raise ValueError(f"title for {isbn} is not a string")

        authors = None
        raw_authors = entry.get("authors")
        if raw_authors is not None:
            if not isinstance(raw_authors, list):
                raise ValueError(f"authors for {isbn} is not a list")
            authors = []
            for author in raw_authors:
                name = author.get("name") if isinstance(author, dict) else None
                if not isinstance(name, str):
                    raise ValueError(f"author entry for {isbn} has no name")
                authors.append(name)

        return cls(title=title, authors=authors)

    def to_response(self, isbn: str) -> dict:
        """Inverse of from_response: the Books API body for this record."""
        entry: dict = {}
        if self.title is not None:
            entry["title"] = self.title
        if self.authors is not None:
            entry["authors"] = [{"name": name} for name in self.authors]
        if not entry:
            return {}
        return {bibkey(isbn): entry}


@dataclass
class Inventory:
    isbns: list[str] = field(default_factory=list)
    metadata: dict[str, BookRecord] = field(default_factory=dict)
    ratings: dict[str, int] = field(default_factory=dict)


class FetchState(str, enum.Enum):
    PENDING = "pending"
    FETCHED = "fetched"
    FAILED = "failed"


@dataclass
class BookCard:
    """What the front-end renders for one listed ISBN."""

    isbn: str
    title: str
    author: str
    rating: int
    cover_url: str
    details_loaded: bool = False
    status: FetchState | None = None

    def to_dict(self) -> dict:
        return {
            "isbn": self.isbn,
            "title": self.title,
            "author": self.author,
            "rating": self.rating,
            "cover_url": self.cover_url,
            "details_loaded": self.details_loaded,
            "status": self.status.value if self.status else None,
        }
