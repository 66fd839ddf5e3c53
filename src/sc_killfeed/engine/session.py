"""
Session context: everything the engine knows about the local game session
that is not itself a kill event (current player, mode, version, ship,
recent incapacitations and respawns).
"""

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Deque, Dict, List, Optional

from .entities import clean_entity_name, is_ship

logger = logging.getLogger(__name__)

# Seconds an incapacitation cause stays usable for filling a death's weapon
INCAP_MEMORY_S = 60
MAX_RESPAWNS = 50


@dataclass
class IncapRecord:
    player: str
    causes: List[str]
    timestamp: Optional[datetime]


class SessionContext:
    """Mutable per-session state fed by context lines."""

    def __init__(self, configured_player: Optional[str] = None):
        self.configured_player = configured_player
        self.current_player: Optional[str] = configured_player
        self.game_mode = "Unknown"
        self.game_version = ""
        self.player_ship = "Unknown"
        self.current_location = "Unknown"
        self.session_started_at: Optional[datetime] = None
        self.incaps: Dict[str, IncapRecord] = {}
        self.respawns: Deque[Dict[str, Any]] = deque(maxlen=MAX_RESPAWNS)
        self.logins: List[str] = []

    def on_login(self, player: str) -> bool:
        """Returns True if the current player changed."""
        if player == self.current_player:
            return False
        logger.info(f"Login detected for user: {player}")
        self.current_player = player
        self.logins.append(player)
        return True

    def on_game_mode(self, mode: str) -> bool:
        if mode == self.game_mode:
            return False
        logger.info(f"Game mode changed: {self.game_mode} -> {mode}")
        self.game_mode = mode
        return True

    def on_system_quit(self):
        logger.info("Game quit/shutdown detected.")
        self.game_mode = "Unknown"
        self.current_location = "Unknown"

    def on_game_version(self, version: str) -> bool:
        if version == self.game_version:
            return False
        logger.info(f"Game version detected: {version}")
        self.game_version = version
        return True

    def on_player_ship(self, entity: str, owner: str) -> bool:
        """Track the local player's ship from an InstancedInterior ownership line."""
        if not self.current_player or owner != self.current_player or not is_ship(entity):
            return False
        ship = clean_entity_name(entity)
        if ship == self.player_ship:
            return False
        logger.info(f"Player ship detected: {ship}")
        self.player_ship = ship
        return True

    def on_session_start(self, timestamp: Optional[datetime]):
        logger.info(f"New game session detected at: {timestamp.isoformat() if timestamp else 'unknown time'}")
        self.session_started_at = timestamp

    def on_incap(self, player: str, causes: str, timestamp: Optional[datetime]):
        cause_list = [c.strip() for c in causes.split(",") if c.strip()]
        logger.info(f"Incapacitation detected: {player}, causes: {', '.join(cause_list)}")
        self.incaps[player.strip().lower()] = IncapRecord(player=player, causes=cause_list, timestamp=timestamp)

    def recent_incap_cause(self, player: str, timestamp: Optional[datetime]) -> Optional[str]:
        """First cause of the player's incapacitation, if it happened shortly before timestamp."""
        record = self.incaps.get((player or "").strip().lower())
        if record is None or not record.causes:
            return None
        if timestamp is not None and record.timestamp is not None:
            age = timestamp - record.timestamp
            if age < timedelta(0) or age > timedelta(seconds=INCAP_MEMORY_S):
                return None
        return record.causes[0]

    def on_respawn(self, player: str, timestamp: Optional[datetime], spawnpoint: Optional[str] = None):
        self.respawns.append({"player": player, "timestamp": timestamp, "spawnpoint": spawnpoint})
        self.incaps.pop(player.strip().lower(), None)
        logger.info(f"Respawn detected for {player}")

    def on_location(self, zone_name: str):
        self.current_location = zone_name

    def snapshot(self) -> Dict[str, Any]:
        return {
            "current_player": self.current_player,
            "game_mode": self.game_mode,
            "game_version": self.game_version,
            "player_ship": self.player_ship,
            "current_location": self.current_location,
            "session_started_at": self.session_started_at.isoformat() if self.session_started_at else None,
            "respawns": len(self.respawns),
        }

    def reset(self):
        """Back to a fresh session; the configured player is kept."""
        self.current_player = self.configured_player
        self.game_mode = "Unknown"
        self.game_version = ""
        self.player_ship = "Unknown"
        self.current_location = "Unknown"
        self.session_started_at = None
        self.incaps.clear()
        self.respawns.clear()
        self.logins.clear()
