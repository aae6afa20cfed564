"""
Import of hand-maintained events and promotional listings from a YAML file:

    listings:
      - title: Riverside Bakery
        category: Local
        url: https://bakery.test
        image_url: https://bakery.test/logo.png
    events:
      - external_id: gala-2025
        title: Community gala
        start_date: 2025-10-01T18:00:00
        featured: true
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ValidationError

from core.errors import ConfigurationError
from services.database import Database

logger = logging.getLogger(__name__)


class ListingEntry(BaseModel):
    title: str
    category: str
    url: Optional[str] = None
    image_url: Optional[str] = None
    active: bool = True


class EventEntry(BaseModel):
    external_id: str
    title: str
    start_date: datetime
    end_date: Optional[datetime] = None
    description: str = ""
    venue: Optional[str] = None
    address: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = None
    featured: bool = False
    paid_placement: bool = False
    active: bool = True


@dataclass
class ImportSummary:
    listings: int = 0
    events: int = 0
    skipped: int = 0


def load_catalog(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r") as file:
            data = yaml.safe_load(file) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError("Cannot read catalog file", {"path": path, "error": str(e)}) from e
    if not isinstance(data, dict):
        raise ConfigurationError("Catalog file must be a mapping", {"path": path})
    return data


def _entries(data: Dict[str, Any], key: str) -> List[Any]:
    entries = data.get(key) or []
    if not isinstance(entries, list):
        raise ConfigurationError(f"'{key}' must be a list")
    return entries


async def import_catalog(db: Database, data: Dict[str, Any]) -> ImportSummary:
    """Upsert every valid entry. Invalid entries are logged and counted as skipped."""
    summary = ImportSummary()

    for raw in _entries(data, "listings"):
        try:
            entry = ListingEntry(**raw)
        except (TypeError, ValidationError) as e:
            logger.error(f"Skipping listing {raw!r}: {e}")
            summary.skipped += 1
            continue
        await db.add_listing(**entry.model_dump())
        summary.listings += 1

    for raw in _entries(data, "events"):
        try:
            entry = EventEntry(**raw)
        except (TypeError, ValidationError) as e:
            logger.error(f"Skipping event {raw!r}: {e}")
            summary.skipped += 1
            continue
        await db.upsert_event(**entry.model_dump())
        summary.events += 1

    logger.info(
        f"Imported {summary.listings} listings and {summary.events} events ({summary.skipped} skipped)"
    )
    return summary
