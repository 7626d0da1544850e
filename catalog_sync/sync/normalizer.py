"""Map raw vendor products to catalog records with fresh snapshots."""
import hashlib
import logging
import re
from datetime import date
from typing import Any, Optional

import orjson

from catalog_sync.errors import MalformedPageError
from catalog_sync.parse.models import (
    PACKAGE_TYPES,
    CatalogRecord,
    InventorySnapshot,
    PriceSnapshot,
)

logger = logging.getLogger(__name__)

# Record field -> vendor parameter label (first match wins)
SCALAR_PARAMETERS: dict[str, str] = {
    "resistance": "Resistance",
    "resistance_tolerance": "Tolerance",
    "power": "Power (Watts)",
    "composition": "Composition",
    "temp_coefficient": "Temperature Coefficient",
    "operating_temperature": "Operating Temperature",
    "digikey_case_size": "Package / Case",
    "case_size": "Supplier Device Package",
    "dimensions": "Size / Dimension",
    "height": "Height - Seated (Max)",
    "fail_rate": "Failure Rate",
}

# Record field -> vendor parameter label (all matches collected)
MULTI_PARAMETERS: dict[str, str] = {
    "features": "Features",
    "ratings": "Ratings",
}

_LEADING_INT = re.compile(r"^\s*([-+]?\d+)")


def content_hash(payload: dict[str, Any]) -> str:
    """MD5 over the payload serialized with sorted keys."""
    return hashlib.md5(orjson.dumps(payload, option=orjson.OPT_SORT_KEYS)).hexdigest()


def index_parameters(parameters: list[dict]) -> tuple[dict[str, str], dict[str, list[str]]]:
    """Build label lookups in a single pass over the parameter list.

    Returns (first value per label, all values per label).
    """
    first: dict[str, str] = {}
    every: dict[str, list[str]] = {}
    for param in parameters:
        if not isinstance(param, dict):
            continue
        label = param.get("ParameterText")
        if not label:
            continue
        value = param.get("ValueText") or ""
        first.setdefault(label, value)
        every.setdefault(label, []).append(value)
    return first, every


def parse_leading_int(text: str) -> int:
    """Leading integer of a string, 0 when there is none."""
    match = _LEADING_INT.match(text or "")
    return int(match.group(1)) if match else 0


def _variations_by_package(variations: list[dict]) -> dict[str, dict]:
    by_package: dict[str, dict] = {}
    for variation in variations:
        if not isinstance(variation, dict):
            continue
        package_id = (variation.get("PackageType") or {}).get("Id")
        name = PACKAGE_TYPES.get(package_id)
        if name and name not in by_package:
            by_package[name] = variation
    return by_package


def build_snapshots(
    variations: list[dict], today: Optional[date] = None
) -> tuple[PriceSnapshot, InventorySnapshot]:
    """Price and inventory snapshots stamped with today's date."""
    today = today or date.today()
    by_package = _variations_by_package(variations)
    stamp = {"day": today.day, "month": today.month, "year": today.year}

    pricing = PriceSnapshot(
        **stamp,
        **{
            name: list(by_package.get(name, {}).get("StandardPricing") or [])
            for name in PACKAGE_TYPES.values()
        },
    )
    inventory = InventorySnapshot(
        **stamp,
        **{
            name: int(by_package.get(name, {}).get("QuantityAvailableforPackageType") or 0)
            for name in PACKAGE_TYPES.values()
        },
    )
    pricing.hash = content_hash(pricing.payload())
    inventory.hash = content_hash(inventory.payload())
    return pricing, inventory


def normalize_product(raw: dict, today: Optional[date] = None) -> CatalogRecord:
    """Map one raw vendor product to a CatalogRecord.

    Pure: no I/O, deterministic for identical input (apart from the date stamp).
    Raises MalformedPageError when the product has no part number.
    """
    if not isinstance(raw, dict):
        raise MalformedPageError(f"Product is not an object: {type(raw).__name__}")
    part_number = raw.get("ManufacturerProductNumber")
    if not part_number:
        raise MalformedPageError("Product without ManufacturerProductNumber")

    first, every = index_parameters(raw.get("Parameters") or [])
    description = raw.get("Description") or {}
    category = raw.get("Category") or {}
    children = category.get("ChildCategories") or []
    pricing, inventory = build_snapshots(raw.get("ProductVariations") or [], today)

    fields: dict[str, Any] = {
        name: first.get(label, "") for name, label in SCALAR_PARAMETERS.items()
    }
    fields.update({name: every.get(label, []) for name, label in MULTI_PARAMETERS.items()})

    return CatalogRecord(
        part_number=part_number,
        product_description=description.get("ProductDescription") or "",
        detailed_description=description.get("DetailedDescription") or "",
        product_url=raw.get("ProductUrl") or "",
        datasheet_url=raw.get("DatasheetUrl") or "",
        photo_url=raw.get("PhotoUrl") or "",
        video_url=raw.get("PrimaryVideoUrl") or "",
        status=(raw.get("ProductStatus") or {}).get("Status") or "",
        terminations_number=parse_leading_int(first.get("Number of Terminations", "")),
        category=category.get("Name") or "",
        sub_category=(children[0].get("Name") or "") if children and isinstance(children[0], dict) else "",
        series=(raw.get("Series") or {}).get("Name") or "",
        classifications=raw.get("Classifications") or {},
        pricing=[pricing],
        inventory=[inventory],
        **fields,
    )


def normalize_products(products: list[dict], today: Optional[date] = None) -> list[CatalogRecord]:
    """Normalize every product of one page."""
    return [normalize_product(product, today) for product in products]
