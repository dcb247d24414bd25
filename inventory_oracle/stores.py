"""
Read-only collaborator interfaces: the inventory store and the usage-metrics store.

The analytical services never own component or usage data. They receive
these stores at construction and only read from them. In-memory
implementations back the CLI (loaded from a JSON file) and the tests.

Inventory JSON file layout::

    {
      "components": [
        {"id": "esp32-01", "name": "ESP32 DevKit V1", "category": "Microcontroller",
         "manufacturer": "Espressif", "quantity": 12, "purchase_price": 8.5,
         "currency": "USD", "created_at": "2026-01-10T00:00:00Z"}
      ],
      "usage_metrics": [
        {"component_id": "esp32-01", "total_used": 30, "project_count": 6,
         "last_used": "2026-10-01", "usage_frequency": "high", "success_rate": 0.8}
      ]
    }
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, Optional, Protocol

from inventory_oracle.models.component import Component, UsageMetrics

logger = logging.getLogger(__name__)


class InventoryStore(Protocol):
    async def get_by_id(self, component_id: str) -> Optional[Component]: ...

    async def get_all_items(self) -> list[Component]: ...

    async def get_by_category(self, category: str) -> list[Component]: ...


class UsageMetricsStore(Protocol):
    async def get_usage_metrics(self, component_id: str) -> Optional[UsageMetrics]: ...


class InMemoryInventoryStore:
    """``InventoryStore`` over a fixed list of components (insertion order kept)."""

    def __init__(self, components: Iterable[Component] = ()) -> None:
        self._items: dict[str, Component] = {c.id: c for c in components}

    async def get_by_id(self, component_id: str) -> Optional[Component]:
        return self._items.get(component_id)

    async def get_all_items(self) -> list[Component]:
        return list(self._items.values())

    async def get_by_category(self, category: str) -> list[Component]:
        return [c for c in self._items.values() if c.category == category]

    def __len__(self) -> int:
        return len(self._items)


class InMemoryUsageMetricsStore:
    def __init__(self, metrics: Iterable[UsageMetrics] = ()) -> None:
        self._metrics: dict[str, UsageMetrics] = {m.component_id: m for m in metrics}

    async def get_usage_metrics(self, component_id: str) -> Optional[UsageMetrics]:
        return self._metrics.get(component_id)


def load_inventory_file(path: Path | str) -> tuple[InMemoryInventoryStore, InMemoryUsageMetricsStore]:
    """Load components and usage metrics from a JSON file.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        pydantic.ValidationError: If a record is malformed.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Inventory file not found: {path}")

    with open(path, encoding="utf-8") as f:
        raw = json.load(f)

    components = [Component.model_validate(item) for item in raw.get("components", [])]
    metrics = [UsageMetrics.model_validate(item) for item in raw.get("usage_metrics", [])]
    logger.info(
        "Loaded %d components and %d usage records from %s.",
        len(components),
        len(metrics),
        path,
    )
    return InMemoryInventoryStore(components), InMemoryUsageMetricsStore(metrics)
