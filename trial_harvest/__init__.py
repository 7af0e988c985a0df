"""Trial Harvest - scrape, enrich and reconcile agility trial results."""

__version__ = "0.1.0"
