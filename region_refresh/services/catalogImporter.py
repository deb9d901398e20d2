"""
Catalog CSV Importer
====================

Loads curated branch locations for one network from a CSV export.

Headers are matched case-insensitively after trimming.  Each row needs
``lat`` and ``lon``; ``radius`` (or ``radius_meters``) defaults to 100 and
must be positive.  ``name``, ``address`` and ``notes`` are optional; the
first non-empty one becomes the location name.

Invalid rows are reported and skipped, never fatal.  Re-importing a row
whose coordinates already exist for the network updates that location in
place instead of adding a duplicate.
"""

from __future__ import annotations

import csv
import io
import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from region_refresh.models.location import CatalogLocation, Network

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_METERS = 100
_COORDINATE_QUANT = Decimal("0.0000001")


class CatalogImportError(Exception):
    """Raised when a CSV file yields no importable rows."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("No valid locations found in CSV")
        self.errors = errors


@dataclass(frozen=True)
class CatalogRow:
    name: str
    latitude: float
    longitude: float
    radius_meters: int
    address: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class ImportReport:
    rows: list[CatalogRow] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    inserted: int = 0
    updated: int = 0


def _float_or_none(raw: Optional[str]) -> Optional[float]:
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def parse_catalog_csv(content: str) -> ImportReport:
    """Parse CSV text into validated rows plus per-row error messages."""
    report = ImportReport()
    reader = csv.DictReader(io.StringIO(content))
    if reader.fieldnames is None:
        report.errors.append("CSV has no header row")
        return report
    reader.fieldnames = [h.strip().lower() for h in reader.fieldnames]

    for index, raw in enumerate(reader, start=1):
        row = {k: (v or "").strip() for k, v in raw.items() if k is not None}
        if not any(row.values()):
            continue

        missing = [f for f in ("lat", "lon") if not row.get(f)]
        if missing:
            report.errors.append(f"Row {index}: Missing required fields: {', '.join(missing)}")
            continue

        lat = _float_or_none(row["lat"])
        lon = _float_or_none(row["lon"])
        if lat is None or lon is None or not -90 <= lat <= 90 or not -180 <= lon <= 180:
            report.errors.append(
                f"Row {index}: Invalid coordinates (lat: {row['lat']}, lon: {row['lon']})"
            )
            continue

        raw_radius = row.get("radius") or row.get("radius_meters") or ""
        radius = _float_or_none(raw_radius) if raw_radius else float(DEFAULT_RADIUS_METERS)
        if radius is None or radius <= 0:
            report.errors.append(f"Row {index}: Invalid radius: {raw_radius}")
            continue

        name = row.get("name") or row.get("address") or row.get("notes") or ""
        report.rows.append(
            CatalogRow(
                name=name or f"Location {index}",
                latitude=lat,
                longitude=lon,
                radius_meters=int(round(radius)),
                address=row.get("address") or None,
                notes=row.get("notes") or None,
            )
        )

    return report


def _coord_key(latitude, longitude) -> tuple[Decimal, Decimal]:
    return (
        Decimal(str(latitude)).quantize(_COORDINATE_QUANT),
        Decimal(str(longitude)).quantize(_COORDINATE_QUANT),
    )


async def import_catalog(
    session: AsyncSession,
    network_id: str,
    network_name: str,
    content: str,
    *,
    category: Optional[str] = None,
) -> ImportReport:
    """Parse ``content`` and upsert its rows under ``network_id``.

    The caller owns the transaction; this only adds and flushes.

    Raises:
        CatalogImportError: If no row in the file is valid.
    """
    report = parse_catalog_csv(content)
    if not report.rows:
        raise CatalogImportError(report.errors)

    network = await session.get(Network, network_id)
    if network is None:
        network = Network(id=network_id, name=network_name, category=category)
        session.add(network)
        await session.flush()
    else:
        network.name = network_name
        if category is not None:
            network.category = category

    result = await session.execute(
        select(CatalogLocation).where(CatalogLocation.network_id == network_id)
    )
    existing = {_coord_key(loc.latitude, loc.longitude): loc for loc in result.scalars()}

    for row in report.rows:
        key = _coord_key(row.latitude, row.longitude)
        location = existing.get(key)
        if location is not None:
            location.name = row.name
            location.address = row.address
            location.radius_meters = row.radius_meters
            location.notes = row.notes
            location.is_active = True
            report.updated += 1
            continue

        location = CatalogLocation(
            network_id=network_id,
            name=row.name,
            address=row.address,
            latitude=key[0],
            longitude=key[1],
            radius_meters=row.radius_meters,
            notes=row.notes,
            is_active=True,
        )
        session.add(location)
        existing[key] = location
        report.inserted += 1

    await session.flush()

    logger.info(
        "Imported network %s: inserted=%d updated=%d rejected=%d",
        network_id,
        report.inserted,
        report.updated,
        len(report.errors),
    )
    return report
