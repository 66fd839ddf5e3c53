"""
Entity name helpers: NPC detection, instance-suffix cleanup and ship names.
"""

import re
from typing import Optional

from ..parsing.grammars import SHIP_MANUFACTURERS

# Trailing entity instance id, e.g. AEGS_Gladius_1234567 -> AEGS_Gladius
INSTANCE_ID = re.compile(r"_\d+$")

MANUFACTURER_NAMES = {
    "ORIG": "Origin",
    "CRUS": "Crusader",
    "RSI": "RSI",
    "AEGS": "Aegis",
    "VNCL": "Vanduul",
    "DRAK": "Drake",
    "ANVL": "Anvil",
    "BANU": "Banu",
    "MISC": "MISC",
    "CNOU": "Consolidated Outland",
    "XIAN": "Aopoa",
    "GAMA": "Gatac",
    "TMBL": "Tumbril",
    "ESPR": "Esperia",
    "KRIG": "Kruger",
    "GRIN": "Greycat",
    "XNAA": "Aopoa",
    "MRAI": "Mirai",
}

NPC_PATTERNS = [re.compile(p, re.IGNORECASE) for p in (
    r"^PU_",
    r"^NPC_",
    r"_NPC_",
    r"_NPC$",
    r"^AIModule",
    r"^AI_",
    r"^Kopion",
    r"^Quasigrazer",
    r"^vlk_",
    r"^Criminal",
    r"^Shipjacker",
    r"^Pirate_",
    r"^Security_",
    r"^Guard_",
)]

_MANUFACTURER_PREFIX = re.compile(rf"^({'|'.join(SHIP_MANUFACTURERS)})_", re.IGNORECASE)


def clean_entity_name(name: Optional[str]) -> str:
    """Strip the trailing instance id from an entity name."""
    if not name:
        return ""
    return INSTANCE_ID.sub("", name.strip())


def is_npc(name: Optional[str]) -> bool:
    if not name:
        return False
    return any(pattern.search(name) for pattern in NPC_PATTERNS)


def is_ship(name: Optional[str]) -> bool:
    return bool(name) and bool(_MANUFACTURER_PREFIX.match(name))


def ship_display_name(name: str) -> str:
    """AEGS_Gladius_123 -> 'Aegis Gladius'. Names without a known manufacturer are only cleaned."""
    base = clean_entity_name(name)
    prefix = _MANUFACTURER_PREFIX.match(base)
    if not prefix:
        return base.replace("_", " ")
    manufacturer = MANUFACTURER_NAMES.get(prefix.group(1).upper(), prefix.group(1))
    model = base[prefix.end():].replace("_", " ")
    return f"{manufacturer} {model}".strip()


def resolve_vehicle_type(name: Optional[str]) -> str:
    """Classify an entity for the vehicle_type field: 'NPC', a ship display name, or 'Player'."""
    if is_npc(name):
        return "NPC"
    if is_ship(name):
        return ship_display_name(name)
    return "Player"
