"""Cache inventory and garbage collection."""

from scenario_engine.cache.inventory import CacheInventory, PurgeReport

__all__ = ["CacheInventory", "PurgeReport"]
