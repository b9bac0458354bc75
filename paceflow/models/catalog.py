#!/usr/bin/env python3
"""
Device and sport catalog built from the FIT Global Profile shipped with fitparse.

Names are title-cased from the profile's snake_case identifiers ("edge_1030"
becomes "Edge 1030") and lists are sorted case-insensitively by name.
"""
from functools import lru_cache
from typing import Dict, List, Optional, Union

from fitparse.profile import FIELD_TYPES
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..const import SPORT_GENERIC, UNKNOWN
from ..toolkit.pace import tolerance_moving_speed

# Manufacturers whose product field resolves through the garmin_product type
GARMIN_PRODUCT_MANUFACTURERS = (1, 13, 15, 89)  # garmin, dynastream_oem, dynastream, tacx

# Profile placeholder entries that are not real sports
_EXCLUDED_SPORTS = {"all"}


class CatalogModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Product(CatalogModel):
    """A manufacturer's product"""
    id: int
    name: str


class Manufacturer(CatalogModel):
    """Manufacturer with its product list"""
    id: int
    name: str
    products: List[Product] = Field(default_factory=list)

    def product(self, product_id: Optional[int]) -> Optional[Product]:
        for product in self.products:
            if product.id == product_id:
                return product
        return None


class Sport(CatalogModel):
    """Sport with the speed threshold used to classify moving time"""
    id: int
    name: str
    tolerance_moving_speed: float


def title_case(value: Optional[str]) -> str:
    """'fitness_equipment' -> 'Fitness Equipment'"""
    if not value:
        return ""
    return " ".join(word.capitalize() for word in str(value).replace("-", "_").split("_") if word)


def snake_case(value: str) -> str:
    """'Fitness Equipment' -> 'fitness_equipment'"""
    return "_".join(value.strip().lower().replace("-", " ").split())


def _profile_values(type_name: str) -> Dict[int, str]:
    field_type = FIELD_TYPES.get(type_name)
    if field_type is None or not field_type.values:
        return {}
    return dict(field_type.values)


@lru_cache(maxsize=1)
def _manufacturer_index() -> Dict[int, Manufacturer]:
    products = sorted(
        (Product(id=product_id, name=title_case(name))
         for product_id, name in _profile_values("garmin_product").items()),
        key=lambda p: p.name.lower(),
    )

    index = {}
    for manufacturer_id, name in _profile_values("manufacturer").items():
        index[manufacturer_id] = Manufacturer(
            id=manufacturer_id,
            name=title_case(name),
            products=products if manufacturer_id in GARMIN_PRODUCT_MANUFACTURERS else [],
        )
    return index


@lru_cache(maxsize=1)
def _sport_index() -> Dict[int, Sport]:
    index = {}
    for sport_id, name in _profile_values("sport").items():
        if name in _EXCLUDED_SPORTS:
            continue
        label = title_case(name)
        index[sport_id] = Sport(
            id=sport_id,
            name=label,
            tolerance_moving_speed=tolerance_moving_speed(label),
        )
    return index


def list_manufacturers() -> List[Manufacturer]:
    """All manufacturers, sorted case-insensitively by name."""
    return sorted(_manufacturer_index().values(), key=lambda m: m.name.lower())


def list_sports() -> List[Sport]:
    """All sports, sorted case-insensitively by name."""
    return sorted(_sport_index().values(), key=lambda s: s.name.lower())


def get_manufacturer(manufacturer_id: Optional[int]) -> Optional[Manufacturer]:
    if manufacturer_id is None:
        return None
    return _manufacturer_index().get(manufacturer_id)


def find_manufacturer_id(value: Union[int, str, None]) -> Optional[int]:
    """
    Resolve a manufacturer given either its numeric id or its name.

    Names match the profile identifier ("garmin") or the display name
    ("Garmin") case-insensitively. Returns None when unresolvable.
    """
    if value is None:
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    if text.isdigit():
        return int(text)
    wanted = snake_case(text)
    for manufacturer in _manufacturer_index().values():
        if snake_case(manufacturer.name) == wanted:
            return manufacturer.id
    return None


def creator_name(manufacturer_id: Optional[int], product_id: Optional[int]) -> str:
    """
    Display name of a device: "<Manufacturer> <Product>", or
    "<Manufacturer> (<product id>)" when the product is not catalogued.
    """
    manufacturer = get_manufacturer(manufacturer_id)
    if manufacturer is None:
        return UNKNOWN

    product = manufacturer.product(product_id)
    if product is not None:
        return f"{manufacturer.name} {product.name}"
    return f"{manufacturer.name} ({product_id if product_id is not None else 0})"


def get_sport(name: Optional[str]) -> Optional[Sport]:
    """Look up a sport by display name or profile identifier."""
    if not name:
        return None
    wanted = snake_case(name)
    for sport in _sport_index().values():
        if snake_case(sport.name) == wanted:
            return sport
    return None


def sport_id(name: Optional[str]) -> int:
    """FIT sport id for a label; unknown labels map to generic (0)."""
    sport = get_sport(name)
    return sport.id if sport is not None else 0


def sport_name(value: Union[int, str, None]) -> str:
    """Normalize a decoded sport (profile id, identifier or label) to its display label."""
    if value is None or value == "":
        return SPORT_GENERIC
    if isinstance(value, int):
        sport = _sport_index().get(value)
        return sport.name if sport is not None else SPORT_GENERIC
    sport = get_sport(str(value))
    if sport is not None:
        return sport.name
    return title_case(str(value)) or SPORT_GENERIC
