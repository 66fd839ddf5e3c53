"""
Zone naming rules for Star Citizen.

Classifies raw zone ids into primary/secondary zones, works out their star
system, type and display name, and seeds the table of well-known zones.
"""

import logging
import re
from typing import List, Optional

from .types import (
    PrimaryZone,
    SecondaryZone,
    SystemType,
    ZoneClassification,
    ZoneInfo,
)

logger = logging.getLogger(__name__)

# Entity instance suffix, e.g. Hangar_MedTop_003 -> Hangar_MedTop.
# Body numbers (OOC_Stanton_1) have fewer digits and are kept.
INSTANCE_SUFFIX = re.compile(r"_\d{3,}$")

STANTON_PLANETS = {
    "OOC_Stanton_1": "Hurston",
    "OOC_Stanton_2": "Crusader",
    "OOC_Stanton_3": "ArcCorp",
    "OOC_Stanton_4": "microTech",
}

STANTON_MOONS = {
    "1a": "Arial",
    "1b": "Aberdeen",
    "1c": "Magda",
    "1d": "Ita",
    "2a": "Cellin",
    "2b": "Daymar",
    "2c": "Yela",
    "3a": "Lyria",
    "3b": "Wala",
    "4a": "Calliope",
    "4b": "Clio",
    "4c": "Euterpe",
}

PYRO_BODIES = {
    "OOC_Pyro_1": "Pyro I",
    "OOC_Pyro_2": "Monox",
    "OOC_Pyro_3": "Bloom",
    "OOC_Pyro_4": "Pyro IV",
    "OOC_Pyro_5": "Pyro V",
    "OOC_Pyro_6": "Terminus",
}

KNOWN_LOCATION_NAMES = {
    "GrimHex": "GrimHEX",
    "PortOlisar": "Port Olisar",
    "PortTressler": "Port Tressler",
    "Everus_Harbor": "Everus Harbor",
    "Baijini_Point": "Baijini Point",
    "Orison": "Orison Landing Zone",
    "NewBabbage": "New Babbage",
    "Area18": "Area18",
    "Lorville": "Lorville",
    "SPK": "Security Post Kareah",
}

STATION_ASSOCIATIONS = {
    "PortOlisar": "OOC_Stanton_2",
    "PortTressler": "OOC_Stanton_4",
    "Everus_Harbor": "OOC_Stanton_1",
    "Baijini_Point": "OOC_Stanton_3",
    "Seraphim": "OOC_Stanton_2",
    "GrimHex": "OOC_Stanton_2c",
    "Orison": "OOC_Stanton_2",
    "NewBabbage": "OOC_Stanton_4",
    "Area18": "OOC_Stanton_3",
    "Lorville": "OOC_Stanton_1",
    "SPK": "OOC_Stanton_2c",
    "Kareah": "OOC_Stanton_2c",
}

JURISDICTIONS = {
    "1": "Hurston Dynamics",
    "2": "Crusader Industries",
    "3": "ArcCorp",
    "4": "Microtech Corporation",
}

SYSTEM_DEFAULT_ZONES = {
    SystemType.STANTON: "OOC_Stanton",
    SystemType.PYRO: "OOC_Pyro",
}


def clean_zone_id(zone_id: Optional[str]) -> str:
    """Strip whitespace and an entity instance suffix from a raw zone id."""
    if not zone_id:
        return ""
    return INSTANCE_SUFFIX.sub("", zone_id.strip())


class ZoneClassifier:
    """Pattern rules that infer classification, system and type from a zone id."""

    def __init__(self):
        self._setup_patterns()

    def _setup_patterns(self):
        """Precompile the naming rules."""
        self.primary_patterns = [re.compile(p, re.IGNORECASE) for p in (
            r"^OOC_Stanton$",
            r"^OOC_Stanton_\d+$",
            r"^OOC_Stanton_\d+[a-z]$",
            r"^OOC_Pyro$",
            r"^OOC_Pyro_\d+$",
            r"^OOC_Pyro_\d+[a-z]$",
            r"^JP_",
            r"^Quantum_",
            r"^(Hurston|Crusader|ArcCorp|microTech)$",
        )]

        self.secondary_patterns = [re.compile(p, re.IGNORECASE) for p in (
            r"^OOC_Stanton_\d+[a-z]?_(.+)$",
            r"^OOC_Pyro_\d+[a-z]?_(.+)$",
            r"^(GrimHex|PortOlisar|PortTressler|Orison|NewBabbage|Area18|Lorville)$",
            r"^(.+)_(Outpost|Station|Mining|Research|Security|Medical)$",
            r"^(CRU|HUR|ARC|MIC)-L[1-5]",
            r"^(Everus_Harbor|Baijini_Point|Tressler|Seraphim|Sentinel)$",
            r"^(.+)_(Admin|Industrial|Residential|Commercial)$",
            r"^R&R_",
            r"^SPK$",
            r"^(Kareah|Covalex|Comm_Array)",
            r"^RR_",
            r"^(Ruin_Station|Checkmate|Orbituary)",
        )]

        self.system_patterns = {
            SystemType.STANTON: [re.compile(p, re.IGNORECASE) for p in (
                r"stanton", r"hurston", r"crusader", r"arccorp", r"microtech",
                r"orison", r"lorville", r"area18", r"newbabbage", r"grimhex",
                r"olisar", r"tressler", r"everus", r"baijini", r"seraphim",
                r"kareah", r"^SPK$", r"covalex", r"yela", r"daymar", r"cellin",
                r"^(CRU|HUR|ARC|MIC)-L",
            )],
            SystemType.PYRO: [re.compile(p, re.IGNORECASE) for p in (
                r"pyro", r"ruin_station", r"checkmate", r"orbituary",
            )],
        }

        self.body_pattern = re.compile(r"^(OOC_(?:Stanton|Pyro)_\d+[a-z]?)_", re.IGNORECASE)
        self.moon_pattern = re.compile(r"^OOC_(Stanton|Pyro)_(\d+)([a-z])$", re.IGNORECASE)
        self.planet_pattern = re.compile(r"^OOC_(Stanton|Pyro)_(\d+)$", re.IGNORECASE)
        self.system_pattern = re.compile(r"^OOC_(Stanton|Pyro)$", re.IGNORECASE)

    def classify(self, zone_id: str) -> Optional[ZoneClassification]:
        """
        Classify a zone id as primary or secondary.

        Returns:
            The classification, or None if no naming rule recognizes the id
        """
        clean_id = clean_zone_id(zone_id)
        if not clean_id:
            return None

        if any(p.search(clean_id) for p in self.primary_patterns):
            return ZoneClassification.PRIMARY
        if any(p.search(clean_id) for p in self.secondary_patterns):
            return ZoneClassification.SECONDARY

        logger.debug(f"No zone rule matched '{clean_id}'")
        return None

    def determine_system(self, zone_id: str) -> SystemType:
        clean_id = clean_zone_id(zone_id)
        for system, patterns in self.system_patterns.items():
            if any(p.search(clean_id) for p in patterns):
                return system
        return SystemType.UNKNOWN

    def determine_primary_type(self, zone_id: str) -> str:
        clean_id = clean_zone_id(zone_id)
        if self.system_pattern.match(clean_id):
            return "system"
        if re.match(r"^JP_", clean_id, re.IGNORECASE):
            return "jump_point"
        if self.planet_pattern.match(clean_id) or clean_id.lower() in ("hurston", "crusader", "arccorp", "microtech"):
            return "planet"
        if self.moon_pattern.match(clean_id):
            return "moon"
        if re.search(r"asteroid", clean_id, re.IGNORECASE):
            return "asteroid_field"
        return "system"

    def determine_secondary_type(self, zone_id: str) -> str:
        clean_id = clean_zone_id(zone_id)
        if re.match(r"^(GrimHex|PortOlisar|PortTressler|Everus_Harbor|Baijini_Point|Seraphim|Ruin_Station|Checkmate|Orbituary)$",
                    clean_id, re.IGNORECASE):
            return "station"
        if re.match(r"^(CRU|HUR|ARC|MIC)-L\d", clean_id, re.IGNORECASE):
            return "station"
        if re.match(r"^(Orison|NewBabbage|Area18|Lorville)$", clean_id, re.IGNORECASE):
            return "landing_zone"
        if re.search(r"outpost|mining|research|security|medical", clean_id, re.IGNORECASE):
            return "outpost"
        if re.match(r"^(R&R|RR)_", clean_id, re.IGNORECASE):
            return "station"
        if re.search(r"derelict|wreck|abandoned", clean_id, re.IGNORECASE):
            return "derelict"
        if re.search(r"asteroid", clean_id, re.IGNORECASE):
            return "asteroid"
        if re.search(r"ship|vessel|craft", clean_id, re.IGNORECASE):
            return "ship"
        return "poi"

    def display_name(self, zone_id: str) -> str:
        """Generate a human-readable name for a zone id."""
        clean_id = clean_zone_id(zone_id)

        if clean_id in STANTON_PLANETS:
            return STANTON_PLANETS[clean_id]
        if clean_id in PYRO_BODIES:
            return PYRO_BODIES[clean_id]

        moon = self.moon_pattern.match(clean_id)
        if moon and moon.group(1).lower() == "stanton":
            planet_num, letter = moon.group(2), moon.group(3).lower()
            key = f"{planet_num}{letter}"
            if key in STANTON_MOONS:
                return STANTON_MOONS[key]
            planet = STANTON_PLANETS.get(f"OOC_Stanton_{planet_num}", f"Planet {planet_num}")
            return f"{planet} {letter.upper()}"

        if self.system_pattern.match(clean_id):
            return f"{clean_id[4:]} System"

        if clean_id in KNOWN_LOCATION_NAMES:
            return KNOWN_LOCATION_NAMES[clean_id]

        name = re.sub(r"^OOC_", "", clean_id).replace("_", " ")
        return re.sub(r"\b\w", lambda m: m.group(0).upper(), name).strip()

    def derive_primary_zone(self, zone_id: str) -> Optional[str]:
        """Find the primary zone id a secondary zone id belongs to, if derivable from its name."""
        clean_id = clean_zone_id(zone_id)
        body = self.body_pattern.match(clean_id)
        if body:
            return body.group(1)
        for prefix, planet in (("HUR", "OOC_Stanton_1"), ("CRU", "OOC_Stanton_2"),
                               ("ARC", "OOC_Stanton_3"), ("MIC", "OOC_Stanton_4")):
            if clean_id.upper().startswith(f"{prefix}-L"):
                return planet
        return STATION_ASSOCIATIONS.get(clean_id)

    def find_parent_zone(self, zone_id: str) -> Optional[str]:
        if self.moon_pattern.match(zone_id):
            return zone_id[:-1]
        planet = self.planet_pattern.match(zone_id)
        if planet:
            return f"OOC_{planet.group(1)}"
        return None

    def find_child_zones(self, zone_id: str) -> List[str]:
        if zone_id == "OOC_Stanton":
            return list(STANTON_PLANETS)
        if zone_id == "OOC_Pyro":
            return list(PYRO_BODIES)
        planet = self.planet_pattern.match(zone_id)
        if planet and planet.group(1) == "Stanton":
            return [f"{zone_id}{key[-1]}" for key in STANTON_MOONS if key[:-1] == planet.group(2)]
        return []

    def determine_jurisdiction(self, zone_id: str, system: SystemType) -> str:
        if system is SystemType.STANTON:
            body = re.match(r"^OOC_Stanton_(\d)", zone_id)
            if body and body.group(1) in JURISDICTIONS:
                return JURISDICTIONS[body.group(1)]
        if system is SystemType.PYRO:
            return "Unclaimed"
        return "UEE"

    def determine_purpose(self, zone_id: str, zone_type: str) -> Optional[str]:
        lowered = zone_id.lower()
        for keyword, purpose in (("mining", "Mining Operations"), ("research", "Research Facility"),
                                 ("security", "Security Operations"), ("medical", "Medical Facility"),
                                 ("commercial", "Commercial Hub")):
            if keyword in lowered:
                return purpose
        if zone_type == "landing_zone":
            return "Urban Center"
        if zone_type == "station":
            return "Orbital Platform"
        return None

    def build_primary(self, clean_id: str, confidence: float, coordinates=None) -> PrimaryZone:
        system = self.determine_system(clean_id)
        return PrimaryZone(
            id=clean_id,
            display_name=self.display_name(clean_id),
            classification=ZoneClassification.PRIMARY,
            zone_type=self.determine_primary_type(clean_id),
            system=system,
            coordinates=coordinates,
            confidence=confidence,
            parent=self.find_parent_zone(clean_id),
            children=self.find_child_zones(clean_id),
            jurisdiction=self.determine_jurisdiction(clean_id, system),
        )

    def build_secondary(self, clean_id: str, confidence: float, coordinates=None) -> SecondaryZone:
        zone_type = self.determine_secondary_type(clean_id)
        primary_id = self.derive_primary_zone(clean_id)
        return SecondaryZone(
            id=clean_id,
            display_name=self.display_name(clean_id),
            classification=ZoneClassification.SECONDARY,
            zone_type=zone_type,
            system=self.determine_system(clean_id),
            coordinates=coordinates,
            confidence=confidence,
            primary_zone=primary_id,
            orbiting_body=self.display_name(primary_id) if primary_id else None,
            purpose=self.determine_purpose(clean_id, zone_type),
        )


def known_zones() -> List[ZoneInfo]:
    """Well-known Stanton and Pyro zones used to seed the exact-match table."""
    classifier = ZoneClassifier()
    zones: List[ZoneInfo] = [classifier.build_primary("OOC_Stanton", 1.0), classifier.build_primary("OOC_Pyro", 1.0)]

    for zone_id in STANTON_PLANETS:
        zones.append(classifier.build_primary(zone_id, 1.0))
    for key in STANTON_MOONS:
        zones.append(classifier.build_primary(f"OOC_Stanton_{key}", 1.0))
    for zone_id in PYRO_BODIES:
        zones.append(classifier.build_primary(zone_id, 1.0))

    for zone_id in ("PortOlisar", "PortTressler", "Everus_Harbor", "Baijini_Point", "Seraphim",
                    "Lorville", "Area18", "Orison", "NewBabbage", "SPK"):
        zones.append(classifier.build_secondary(zone_id, 1.0))

    grimhex = classifier.build_secondary("GrimHex", 1.0)
    grimhex.purpose = "Outlaw Base"
    zones.append(grimhex)

    ruin = classifier.build_secondary("Ruin_Station", 1.0)
    ruin.display_name = "Ruin Station"
    ruin.primary_zone = "OOC_Pyro_6"
    ruin.orbiting_body = "Terminus"
    zones.append(ruin)

    return zones
