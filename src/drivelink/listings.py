"""Summary: Listing lookup collaborators.

Importance: Gives messaging and test drives the seller and vehicle snapshot they need.
Alternatives: Query the listing catalog service directly from each workflow.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path

from drivelink.models import Listing


class ListingDirectory(ABC):
    """Summary: Abstract interface for resolving listings by ID.

    Importance: Keeps the core independent of how listings are stored.
    Alternatives: Pass seller details explicitly on every call.
    """

    @abstractmethod
    def get_listing_by_id(self, listing_id: str) -> Listing | None:
        """Summary: Return the listing snapshot, or None when unknown.

        Importance: Seeds thread participants and request vehicle details.
        Alternatives: Raise when a listing is missing.
        """


class InMemoryListingDirectory(ListingDirectory):
    """Listings held in a dict, for tests and embedded use."""

    def __init__(self, listings: list[Listing] | None = None) -> None:
        self._listings = {listing.id: listing for listing in listings or []}

    def add(self, listing: Listing) -> None:
        self._listings[listing.id] = listing

    def get_listing_by_id(self, listing_id: str) -> Listing | None:
        return self._listings.get(listing_id)


class JsonListingDirectory(ListingDirectory):
    """Summary: Loads listings from a local JSON fixture.

    Importance: Supports offline demos with the marketplace's mock inventory.
    Alternatives: Use SQLite fixtures or generate synthetic listings.
    """

    def __init__(self, fixture_path: Path) -> None:
        """Summary: Initialize the directory with a fixture path.

        Importance: Allows configurable sample data.
        Alternatives: Hardcode sample listings in the class.
        """

        self._fixture_path = fixture_path
        self._cache: dict[str, Listing] | None = None

    def get_listing_by_id(self, listing_id: str) -> Listing | None:
        return self._load().get(listing_id)

    def _load(self) -> dict[str, Listing]:
        if self._cache is None:
            if self._fixture_path.exists():
                data = json.loads(self._fixture_path.read_text(encoding="utf-8"))
            else:
                data = []
            self._cache = {
                item["id"]: Listing(
                    id=item["id"],
                    title=item["title"],
                    price=item["price"],
                    seller_id=item["seller_id"],
                    seller_name=item["seller_name"],
                    seller_email=item["seller_email"],
                )
                for item in data
            }
        return self._cache
