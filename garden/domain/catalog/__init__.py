from .slot_catalog import (
    OBJECT_DEFINITIONS,
    PREFERRED_CATEGORIES,
    SLOT_CATEGORIES,
    ObjectDefinition,
    SlotCatalog,
)

__all__ = [
    "OBJECT_DEFINITIONS",
    "PREFERRED_CATEGORIES",
    "SLOT_CATEGORIES",
    "ObjectDefinition",
    "SlotCatalog",
]
