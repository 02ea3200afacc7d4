"""
Trek repository (read-only).

Treks are managed by the content side of the site; the booking flow only
needs the display name and the per-participant price.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from supabase import Client

from repositories.rows import execute, to_decimal

_TREKS_TABLE: str = "treks"


@dataclass(frozen=True, slots=True)
class TrekSummary:
    slug: str
    name: str
    price: Decimal


class TrekRepository:
    def __init__(self, client: Client):
        self._client = client

    def get(self, slug: str) -> Optional[TrekSummary]:
        rows = execute(
            self._client.table(_TREKS_TABLE).select("slug, name, price").eq("slug", slug).limit(1),
            "fetch trek",
        )
        if not rows:
            return None
        row = rows[0]
        return TrekSummary(
            slug=str(row["slug"]),
            name=str(row.get("name") or row["slug"]),
            price=to_decimal(row.get("price"), default=Decimal("0")),
        )


__all__ = ["TrekRepository", "TrekSummary"]
