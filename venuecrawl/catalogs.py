from __future__ import annotations

import dataclasses
from typing import Dict, List, Optional

from .errors import ConfigurationError
from .models import CatalogDescriptor, DetailFieldRules, ItemLinkRule


SOURCE_ALL = "All"

_HARD_PAGE_CEILING = 300
_LOW_ITEM_THRESHOLD = 1
_STOP_STREAK_LENGTH = 3
_SHORT_TAIL_FLOOR = 5

_NAME_SELECTORS = ("h1", "h2", '[data-testid*="title"]')

CATALOGS: Dict[str, CatalogDescriptor] = {
    "TagVenue": CatalogDescriptor(
        source_id="TagVenue",
        seed_url_template="https://www.tagvenue.com/uk/search/event-venue",
        page_param_name="page",
        item_link_rule=ItemLinkRule(
            selector='a[href*="/rooms/"], a[href*="/venue/"], a[href*="/venues/"], a[href*="/spaces/"]',
            exclude=("/search/",),
        ),
        detail_field_rules=DetailFieldRules(
            name_selectors=_NAME_SELECTORS,
            city_selectors=(
                '[class*="breadcrumbs"]',
                'nav[aria-label*="breadcrumb"]',
                '[data-testid*="location"]',
            ),
        ),
        hard_page_ceiling=_HARD_PAGE_CEILING,
        low_item_threshold=_LOW_ITEM_THRESHOLD,
        stop_streak_length=_STOP_STREAK_LENGTH,
        short_tail_floor=_SHORT_TAIL_FLOOR,
    ),
    "HireSpace": CatalogDescriptor(
        source_id="HireSpace",
        seed_url_template=(
            "https://hirespace.com/Search?budget=30-100000&area=United+Kingdom"
            "&googlePlaceId=ChIJqZHHQhE7WgIReiWIMkOg-MQ&perPage=36&sort=relevance"
        ),
        page_param_name="page",
        item_link_rule=ItemLinkRule(selector='a[href*="/Spaces/"], a[href*="/Space/"]'),
        detail_field_rules=DetailFieldRules(
            name_selectors=_NAME_SELECTORS,
            city_selectors=(
                'a[href*="city"]',
                '[data-testid*="location"]',
                ".breadcrumbs",
                'nav[aria-label*="breadcrumb"]',
            ),
        ),
        hard_page_ceiling=_HARD_PAGE_CEILING,
        low_item_threshold=_LOW_ITEM_THRESHOLD,
        stop_streak_length=_STOP_STREAK_LENGTH,
        short_tail_floor=_SHORT_TAIL_FLOOR,
    ),
}


def get_descriptor(source_id: str) -> CatalogDescriptor:
    try:
        return CATALOGS[source_id]
    except KeyError:
        known = ", ".join(sorted(CATALOGS))
        raise ConfigurationError(f"Unknown source_id: {source_id} (known: {known})") from None


def resolve_sources(
    selector: str,
    hard_page_ceiling: Optional[int] = None,
    low_item_threshold: Optional[int] = None,
    stop_streak_length: Optional[int] = None,
    short_tail_floor: Optional[int] = None,
    start_page: Optional[int] = None,
    inline_only: bool = False,
) -> List[CatalogDescriptor]:
    """Turn a source selector into descriptors with runtime overrides applied.

    ``All`` expands to every known catalog in table order. Overrides never
    touch the table entries; each one yields a fresh frozen descriptor."""
    if selector == SOURCE_ALL:
        base = list(CATALOGS.values())
    else:
        base = [get_descriptor(selector)]

    overrides = {
        "hard_page_ceiling": hard_page_ceiling,
        "low_item_threshold": low_item_threshold,
        "stop_streak_length": stop_streak_length,
        "short_tail_floor": short_tail_floor,
        "start_page": start_page,
    }
    changes = {k: v for k, v in overrides.items() if v is not None}
    if inline_only:
        changes["detail_field_rules"] = None

    descriptors = [dataclasses.replace(d, **changes) if changes else d for d in base]
    for d in descriptors:
        validate_descriptor(d)
    return descriptors


def validate_descriptor(descriptor: CatalogDescriptor) -> None:
    if descriptor.hard_page_ceiling < 1:
        raise ConfigurationError(f"{descriptor.source_id}: hard page ceiling must be >= 1")
    if descriptor.stop_streak_length < 1:
        raise ConfigurationError(f"{descriptor.source_id}: stop streak length must be >= 1")
    if descriptor.low_item_threshold < 0:
        raise ConfigurationError(f"{descriptor.source_id}: low item threshold must be >= 0")
    if descriptor.short_tail_floor < 0:
        raise ConfigurationError(f"{descriptor.source_id}: short tail floor must be >= 0")
    if descriptor.start_page < 1:
        raise ConfigurationError(f"{descriptor.source_id}: start page must be >= 1")
