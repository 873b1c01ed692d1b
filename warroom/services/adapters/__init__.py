"""Upstream clients: Sleeper (Source A), ESPN (Source B) and the weekly stat feed."""
from warroom.services.adapters.base_adapter import BaseAPIAdapter
from warroom.services.adapters.espn_adapter import EspnAdapter
from warroom.services.adapters.sleeper_adapter import SleeperAdapter
from warroom.services.adapters.stats_feed import StatsFeed

__all__ = ["BaseAPIAdapter", "EspnAdapter", "SleeperAdapter", "StatsFeed"]
