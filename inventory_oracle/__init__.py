"""Inventory Oracle: recommendation and prediction engine for component inventories."""

__version__ = "0.1.0"
