"""
SC Kill Feed - Star Citizen Game.log event extraction and correlation.

Turns an append-only Game.log into a canonical stream of kill events:
player deaths, vehicle destructions and respawn context, each resolved to
a player, a location and a cause.
"""

__version__ = "0.1.0"
