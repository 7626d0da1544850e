"""URL and request-body builders for vendor endpoints."""
from typing import Any

from catalog_sync.config import config


def search_url() -> str:
    """Keyword search endpoint."""
    return f"{config.VENDOR_API_BASE}{config.SEARCH_PATH}"


def token_url() -> str:
    """Client-credentials token endpoint."""
    return f"{config.VENDOR_API_BASE}{config.TOKEN_PATH}"


def build_search_body(offset: int | None = None, limit: int | None = None) -> dict[str, Any]:
    """Default chip-resistor search body."""
    return {
        "Keywords": config.SEARCH_KEYWORDS,
        "Limit": limit if limit is not None else config.PAGE_SIZE,
        "Offset": offset if offset is not None else config.START_OFFSET,
        "FilterOptionsRequest": {
            "ManufacturerFilter": [],
            "MinimumQuantityAvailable": config.MIN_QUANTITY_AVAILABLE,
            "ParameterFilterRequest": {
                "CategoryFilter": {"Id": config.CATEGORY_ID, "Value": config.CATEGORY_NAME},
            },
            "StatusFilter": [{"Id": 0, "Value": "Active"}],
        },
        "ExcludeMarketPlaceProducts": False,
        "SortOptions": {
            "Field": "None",
            "SortOrder": "Ascending",
        },
    }


def with_offset(body: dict[str, Any], offset: int, limit: int | None = None) -> dict[str, Any]:
    """Copy of body at another offset; the input body is never mutated."""
    page = dict(body)
    page["Offset"] = offset
    if limit is not None:
        page["Limit"] = limit
    return page
