"""
Cause rules shared by the correlator and the assembler.
"""

from typing import List, Optional, Tuple

from ..models import DeathType

# Damage types where a vehicle destruction's caused_by names the pilot, not an attacker
SELF_INFLICTED_DAMAGE = frozenset({"SelfDestruct", "Suicide"})
IMPACT_DAMAGE = frozenset({"Collision", "Crash"})

_UNKNOWN = frozenset({"", "unknown", "none"})


def is_known(name: Optional[str]) -> bool:
    return bool(name) and name.strip().lower() not in _UNKNOWN


def is_self_inflicted(caused_by: Optional[str], driver: Optional[str]) -> bool:
    if not is_known(caused_by):
        return True
    return is_known(driver) and caused_by == driver


def determine_death_type(level: int, damage_type: Optional[str], caused_by: Optional[str],
                         driver: Optional[str]) -> DeathType:
    """
    Classify a death or destruction.

    Args:
        level: Destruction level (0 for on-foot deaths, 1 soft, 2+ hard)
        damage_type: Damage type reported by the log
        caused_by: Attacker, 'Environment', or 'unknown'
        driver: Pilot or victim, if known

    Returns:
        The DeathType; impact and environmental damage types win over the level
    """
    self_inflicted = is_self_inflicted(caused_by, driver)

    if damage_type in IMPACT_DAMAGE:
        return DeathType.CRASH if self_inflicted else DeathType.COLLISION
    if damage_type == "BleedOut":
        return DeathType.BLEED_OUT
    if damage_type == "SuffocationDamage":
        return DeathType.SUFFOCATION
    if level == 1:
        return DeathType.SOFT
    if level >= 2:
        return DeathType.HARD
    if caused_by == "Environment":
        return DeathType.UNKNOWN
    if self_inflicted:
        return DeathType.UNKNOWN
    return DeathType.COMBAT


def destruction_parties(caused_by: Optional[str], driver: Optional[str], damage_type: Optional[str],
                        vehicle_name: str) -> Tuple[List[str], List[str]]:
    """
    Split a vehicle destruction into (killers, victims).

    caused_by names the attacker, except for self-inflicted impacts and for
    SelfDestruct/Suicide damage, where it names the pilot. In those cases
    there is no killer and the pilot is the victim. An unknown pilot is
    replaced by the vehicle name as a placeholder victim.
    """
    pilot = driver if is_known(driver) else None

    if damage_type in SELF_INFLICTED_DAMAGE or (damage_type in IMPACT_DAMAGE and is_self_inflicted(caused_by, driver)):
        victim = caused_by if is_known(caused_by) else pilot
        return [], [victim or vehicle_name]

    killers = [caused_by] if is_known(caused_by) else []
    return killers, [pilot or vehicle_name]
