from typing import Dict, List, Optional, Tuple
import re

from pydantic import BaseModel, Field


SLOT_CATEGORIES: Dict[str, List[str]] = {
    "M": ["M1", "M2", "M3", "M4", "M5", "M6"],
    "B": ["B1", "B2", "B3", "B4", "B5", "B6", "B7", "B8", "B9", "B10"],
    "RM": ["RM1", "RM2"],
    "RC": ["RC1", "RC2"],
    "H1": ["H1"],
    "H2": ["H2"],
}

OBJECT_DEFINITIONS: Dict[str, Tuple[str, List[str]]] = {
    "1": ("HandButterfly", ["M", "RM"]),
    "2": ("FlowerInsect1", ["M", "RC"]),
    "3": ("BreadHead", ["M", "B", "RM"]),
    "4": ("HeadDrawer", ["M", "B", "RM"]),
    "5": ("ShelReal", ["M", "B", "RM"]),
    "6": ("TreeHole", ["B"]),
    "7": ("BreadKey", ["M", "B"]),
    "8": ("LobsterKey", ["M", "RC"]),
    "9": ("EggHand", ["M", "RM"]),
    "10": ("Giraffe+Tire", ["B"]),
    "11": ("Skeleton", ["M", "RM"]),
    "12": ("HighheelCrutch", ["M", "RM"]),
    "13": ("FlowerWoman", ["M", "B", "RM"]),
    "14": ("FlowerInsect2", ["M", "RC"]),
    "15": ("ThumbClock", ["M", "RM"]),
    "16": ("EggEye", ["M", "RM"]),
    "17": ("BellTower", ["B"]),
    "18": ("LobsterSaxophone", ["M", "RM"]),
    "19": ("SpoonChair", ["M", "B"]),
    "20": ("CupAnt", ["M", "RC"]),
    "21": ("EggString", ["H1", "H2"]),
    "22": ("EyelashFlower", ["M", "RM"]),
    "23": ("WheelbarrowClock", ["M", "B"]),
    "24": ("ElephantLongLeg", ["B"]),
    "25": ("UpSofa", ["M", "B"]),
    "26": ("SpoonMoon", ["M", "RC"]),
    "27": ("LobsterChair", ["M", "B"]),
    "28": ("HandTree", ["M", "B"]),
    "29": ("CabinetKeyhole", ["M", "B"]),
    "30": ("PianoWater", ["M", "B"]),
}

# Objects that fill these categories before trying their other ones
PREFERRED_CATEGORIES: Dict[str, str] = {
    "3": "M",
    "4": "M",
    "5": "M",
    "7": "M",
    "11": "M",
    "12": "M",
    "13": "M",
    "15": "M",
    "18": "M",
    "19": "B",
    "23": "M",
    "26": "M",
    "28": "M",
}

_SLOT_PREFIX = re.compile(r"^([A-Z]+)")


class ObjectDefinition(BaseModel):
    """Static description of a placeable object"""
    id: str
    name: str
    categories: List[str] = Field(description="Permitted slot categories, in order")
    preferred_category: Optional[str] = None


class SlotCatalog:
    """Read-only registry of slot categories and object definitions"""

    def __init__(
        self,
        categories: Optional[Dict[str, List[str]]] = None,
        definitions: Optional[Dict[str, Tuple[str, List[str]]]] = None,
        preferred: Optional[Dict[str, str]] = None
    ):
        self.categories: Dict[str, List[str]] = {}
        self.definitions: Dict[str, ObjectDefinition] = {}
        self._slot_index: Dict[str, str] = {}

        for category, slots in (categories if categories is not None else SLOT_CATEGORIES).items():
            self.register_category(category, slots)

        preferred = preferred if preferred is not None else PREFERRED_CATEGORIES
        for object_id, (name, permitted) in (definitions if definitions is not None else OBJECT_DEFINITIONS).items():
            self.register_object(ObjectDefinition(
                id=str(object_id),
                name=name,
                categories=list(permitted),
                preferred_category=preferred.get(str(object_id))
            ))

    def register_category(self, category: str, slots: List[str]):
        """Register a slot category and its ordered slots"""

        if not slots:
            raise ValueError(f"Category {category} has no slots")

        for slot_id in slots:
            owner = self._slot_index.get(slot_id)
            if owner is not None and owner != category:
                raise ValueError(f"Slot {slot_id} already belongs to category {owner}")
            self._slot_index[slot_id] = category

        self.categories[category] = list(slots)

    def register_object(self, definition: ObjectDefinition):
        """Register an object definition"""

        unknown = [c for c in definition.categories if c not in self.categories]
        if definition.preferred_category and definition.preferred_category not in self.categories:
            unknown.append(definition.preferred_category)
        if unknown:
            raise ValueError(f"Object {definition.id} references unknown categories: {unknown}")

        self.definitions[definition.id] = definition

    def slots_of(self, category: str) -> List[str]:
        return list(self.categories.get(category, []))

    def category_of(self, slot_id: str) -> str:
        """Resolve a slot's category, falling back to its alphabetic prefix"""

        category = self._slot_index.get(slot_id)
        if category is not None:
            return category

        match = _SLOT_PREFIX.match(slot_id)
        return match.group(1) if match else slot_id

    def definition_of(self, object_id: str) -> Optional[ObjectDefinition]:
        return self.definitions.get(str(object_id))

    def name_of(self, object_id: str) -> str:
        definition = self.definitions.get(str(object_id))
        return definition.name if definition else "Unknown"

    def candidate_slots(self, definition: ObjectDefinition) -> Tuple[List[str], List[str]]:
        """
        Split an object's permitted slots into preferred and fallback lists.

        Objects without a preferred category get an empty preferred list and
        every permitted slot as fallback.
        """

        preferred: List[str] = []
        fallback: List[str] = []

        if definition.preferred_category:
            preferred = self.slots_of(definition.preferred_category)

        for category in definition.categories:
            if category != definition.preferred_category:
                fallback.extend(self.slots_of(category))

        return preferred, fallback

    @property
    def total_slots(self) -> int:
        return len(self._slot_index)

    def get_info(self) -> Dict[str, object]:
        """Get catalog information"""

        return {
            "categories": {category: list(slots) for category, slots in self.categories.items()},
            "objects": {
                object_id: definition.model_dump()
                for object_id, definition in self.definitions.items()
            },
            "total_slots": self.total_slots
        }
