"""
Grammar table for Star Citizen Game.log lines.

Each grammar is one line shape with named capture groups. Several grammars
may recognize the same event kind across log schema generations; the
classifier tries them in descending priority and the first valid match wins.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Pattern, Tuple

from ..models import EventKind

# Schema generations
LEGACY = "legacy"
GEN_4_4 = "4.4"
ANY = "any"

GENERATIONS = (LEGACY, GEN_4_4, ANY)

# Leading timestamp every Game.log line carries, e.g. <2025-01-01T12:00:00.123Z>
TIMESTAMP_PREFIX = r"<(?P<timestamp>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z)>"

_NUM = r"[-\d\.eE+]+"
_POS = rf"\[pos x: (?P<pos_x>{_NUM}), y: (?P<pos_y>{_NUM}), z: (?P<pos_z>{_NUM})"

_DESTRUCTION_TAIL = (
    r".*? driven by '(?P<driver>[^']+)' \[\d+\]"
    r" advanced from destroy level (?P<level_from>\d+) to (?P<level_to>\d+)"
    r" caused by '(?P<caused_by>[^']+)' \[\d+\] with '(?P<damage_type>[^']+)'"
)

_ACTOR_DEATH_BODY = (
    r"<Actor Death> CActor::Kill: '(?P<victim>[^']+)' \[\d+\] in zone '(?P<zone>[^']+)'"
    r" killed by '(?P<killer>[^']+)' \[[^']+\] using '(?P<weapon>[^']+)'"
    r" \[Class (?P<weapon_class>[^\]]+)\] with damage type '(?P<damage_type>[^']+)'"
)

SHIP_MANUFACTURERS = (
    "ORIG", "CRUS", "RSI", "AEGS", "VNCL", "DRAK", "ANVL", "BANU", "MISC",
    "CNOU", "XIAN", "GAMA", "TMBL", "ESPR", "KRIG", "GRIN", "XNAA", "MRAI",
)


@dataclass
class Grammar:
    """
    A declarative rule recognizing one line shape.

    Attributes:
        name: Unique grammar name, also the default detection method
        kind: Event kind produced on a match
        generation: Schema generation ('legacy', '4.4' or 'any')
        priority: Higher wins; ties keep declaration order
        pattern: Compiled pattern with named groups
        required: Named groups that must be non-empty for a valid match
        identity_field: Named group holding the event subject
        identity_deferred: Subject is filled later from the session's current player
        numeric_fields: Named groups converted with the given type
        constants: Fixed fields added to every match
        timestamp_required: Lines without a valid leading timestamp are non-matches
    """
    name: str
    kind: EventKind
    generation: str
    priority: int
    pattern: Pattern
    required: Tuple[str, ...] = ()
    identity_field: Optional[str] = None
    identity_deferred: bool = False
    numeric_fields: Dict[str, type] = None
    constants: Dict[str, str] = None
    timestamp_required: bool = True

    def __post_init__(self):
        if self.numeric_fields is None:
            self.numeric_fields = {}
        if self.constants is None:
            self.constants = {}
        if self.generation not in GENERATIONS:
            raise ValueError(f"Unknown generation '{self.generation}' for grammar '{self.name}'")

    @property
    def detection_method(self) -> str:
        return self.name


def _compile(body: str, with_timestamp: bool = True, flags: int = 0) -> Pattern:
    if with_timestamp:
        return re.compile(TIMESTAMP_PREFIX + r".*?" + body, flags)
    return re.compile(body, flags)


def build_default_grammars() -> List[Grammar]:
    """
    Build the default grammar table, highest priority first.

    Returns:
        List of Grammar records covering every known line shape
    """
    position_fields = {"pos_x": float, "pos_y": float, "pos_z": float}
    level_fields = {"level_from": int, "level_to": int}

    return [
        Grammar(
            name="actor_death",
            kind=EventKind.PLAYER_DEATH,
            generation=GEN_4_4,
            priority=100,
            pattern=_compile(
                _ACTOR_DEATH_BODY
                + rf" from direction x: (?P<dir_x>{_NUM}), y: (?P<dir_y>{_NUM}), z: (?P<dir_z>{_NUM})"
            ),
            required=("victim", "killer", "zone"),
            identity_field="victim",
            numeric_fields={"dir_x": float, "dir_y": float, "dir_z": float},
        ),
        Grammar(
            name="actor_death_legacy",
            kind=EventKind.PLAYER_DEATH,
            generation=LEGACY,
            priority=90,
            pattern=_compile(_ACTOR_DEATH_BODY),
            required=("victim", "killer", "zone"),
            identity_field="victim",
        ),
        Grammar(
            name="environment_death",
            kind=EventKind.PLAYER_DEATH,
            generation=LEGACY,
            priority=85,
            pattern=_compile(
                r"<Actor Death> CActor::Kill: '(?P<victim>[^']+)' .*? damage type"
                r" '(?P<damage_type>BleedOut|SuffocationDamage)'"
            ),
            required=("victim", "damage_type"),
            identity_field="victim",
            constants={"killer": "Environment"},
        ),
        Grammar(
            name="vehicle_destruction",
            kind=EventKind.VEHICLE_DESTRUCTION,
            generation=ANY,
            priority=80,
            pattern=_compile(
                r"<Vehicle Destruction>.*?Vehicle '(?P<vehicle>[^']+)' \[\d+\]"
                r" in zone '(?P<zone>[^']+)' " + _POS + _DESTRUCTION_TAIL
            ),
            required=("vehicle", "level_to"),
            identity_field="vehicle",
            numeric_fields={**position_fields, **level_fields},
        ),
        Grammar(
            name="vehicle_destruction_nopos",
            kind=EventKind.VEHICLE_DESTRUCTION,
            generation=LEGACY,
            priority=70,
            pattern=_compile(
                r"<Vehicle Destruction>.*?Vehicle '(?P<vehicle>[^']+)' \[\d+\]"
                r" in zone '(?P<zone>[^']+)'" + _DESTRUCTION_TAIL
            ),
            required=("vehicle", "level_to"),
            identity_field="vehicle",
            numeric_fields=level_fields,
        ),
        Grammar(
            name="corpse",
            kind=EventKind.PLAYER_DEATH,
            generation=ANY,
            priority=60,
            pattern=_compile(r"<\[ActorState\] Corpse>.*?Player '(?P<player>[^']+)'"),
            required=("player",),
            identity_field="player",
        ),
        Grammar(
            name="corpse_cleanup",
            kind=EventKind.PLAYER_DEATH,
            generation=ANY,
            priority=55,
            pattern=_compile(r"<\[ActorState\] Corpse>.*?(?P<marker>corpse cleanup|IsCorpseEnabled)", flags=re.IGNORECASE),
            identity_deferred=True,
        ),
        Grammar(
            name="actor_death_fallback",
            kind=EventKind.PLAYER_DEATH,
            generation=LEGACY,
            priority=50,
            pattern=_compile(
                r"<Actor Death> CActor::Kill: '(?P<victim>[^']+)'"
                r"(?: \[\d+\] in zone '(?P<zone>[^']+)')?"
            ),
            required=("victim",),
            identity_field="victim",
        ),
        Grammar(
            name="spawn_reservation_lost",
            kind=EventKind.RESPAWN,
            generation=ANY,
            priority=40,
            pattern=_compile(
                r"<Spawn Flow>.*?Player '(?P<player>[^']+)' \[(?P<player_geid>\d+)\]"
                r" lost reservation for spawnpoint (?P<spawnpoint>\S+)"
            ),
            required=("player",),
            identity_field="player",
        ),
        Grammar(
            name="incap",
            kind=EventKind.INCAP,
            generation=ANY,
            priority=35,
            pattern=_compile(r"Logged an incap.! nickname: (?P<player>[^,]+), causes: \[(?P<causes>[^\]]+)\]"),
            required=("player",),
            identity_field="player",
        ),
        Grammar(
            name="login_character",
            kind=EventKind.LOGIN,
            generation=GEN_4_4,
            priority=30,
            pattern=_compile(r"<AccountLoginCharacterStatus_Character>.*?name\s+(?P<player>\S+)\s+-", with_timestamp=False),
            required=("player",),
            identity_field="player",
            timestamp_required=False,
        ),
        Grammar(
            name="login_legacy",
            kind=EventKind.LOGIN,
            generation=LEGACY,
            priority=29,
            pattern=_compile(r"<Legacy login response>.*?Handle\[(?P<player>[A-Za-z0-9_-]+)\]", with_timestamp=False),
            required=("player",),
            identity_field="player",
            timestamp_required=False,
        ),
        Grammar(
            name="game_mode_pu",
            kind=EventKind.GAME_MODE,
            generation=ANY,
            priority=20,
            pattern=_compile(r"Loading GameModeRecord='(?P<record>SC_Default)'", with_timestamp=False),
            constants={"mode": "PU"},
            timestamp_required=False,
        ),
        Grammar(
            name="game_mode_ac",
            kind=EventKind.GAME_MODE,
            generation=ANY,
            priority=20,
            pattern=_compile(r"Loading GameModeRecord='(?P<record>EA_[^']*)'", with_timestamp=False),
            constants={"mode": "AC"},
            timestamp_required=False,
        ),
        Grammar(
            name="game_mode_frontend",
            kind=EventKind.GAME_MODE,
            generation=ANY,
            priority=20,
            pattern=_compile(
                r"Requesting game mode Frontend_Main/SC_Frontend"
                r"|Loading screen for Frontend_Main : SC_Frontend closed",
                with_timestamp=False,
            ),
            constants={"mode": "Unknown"},
            timestamp_required=False,
        ),
        Grammar(
            name="system_quit",
            kind=EventKind.SYSTEM_QUIT,
            generation=ANY,
            priority=15,
            pattern=_compile(r"<SystemQuit>|System Fast Shutdown", with_timestamp=False, flags=re.IGNORECASE),
            timestamp_required=False,
        ),
        Grammar(
            name="game_version",
            kind=EventKind.GAME_VERSION,
            generation=ANY,
            priority=12,
            pattern=_compile(r"--system-trace-env-id='pub-sc-alpha-(?P<version>\d{3,4}-\d{7})'", with_timestamp=False),
            required=("version",),
            timestamp_required=False,
        ),
        Grammar(
            name="session_start",
            kind=EventKind.SESSION_START,
            generation=ANY,
            priority=11,
            pattern=_compile(r"Starting new game session", flags=re.IGNORECASE),
        ),
        Grammar(
            name="player_ship",
            kind=EventKind.PLAYER_SHIP,
            generation=ANY,
            priority=10,
            pattern=_compile(
                r"\[InstancedInterior\] OnEntityLeaveZone - InstancedInterior \[(?P<interior>[^\]]+)\] \[\d+\]"
                r" -> Entity \[(?P<entity>[^\]]+)\] \[\d+\] --.*?m_ownerGEID\[(?P<owner>[^\[\]]+)\]",
                with_timestamp=False,
            ),
            required=("entity", "owner"),
            identity_field="owner",
            timestamp_required=False,
        ),
        Grammar(
            name="jump_drive_zone",
            kind=EventKind.ZONE_TRANSITION,
            generation=ANY,
            priority=5,
            pattern=_compile(r"<Jump Drive State Changed> Now (?P<state>\w+).*? in zone (?P<zone>[A-Za-z0-9_\-]+)"),
            required=("zone",),
        ),
    ]
