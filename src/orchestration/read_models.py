from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)

_DOMAIN_KEYS = {
    "clients": "clients",
    "suppliers": "suppliers",
    "products": "skus",
    "skus": "skus",
    "pricing": "pricing",
    "inventory": "inventory",
    "orders": "recentOrders",
}

INVALIDATED_AFTER_ACTIONS = ("inventory", "pricing", "clients", "orders")


class ReadModels(Protocol):
    """Read-only business data consumed by the orchestration layer."""

    async def list(self, domain: str) -> list[dict[str, Any]]: ...

    async def low_stock(self) -> list[dict[str, Any]]: ...

    async def current(self) -> list[dict[str, Any]]: ...

    async def business_context(self) -> dict[str, Any]: ...

    async def invalidate(self, domain: str) -> None: ...


def is_low_stock(item: dict[str, Any]) -> bool:
    try:
        total = float(item.get("totalStockKg") or 0)
        allocated = float(item.get("allocatedStockKg") or 0)
        threshold = float(item.get("lowStockThresholdKg") or 0)
    except (TypeError, ValueError):
        return False
    return total - allocated <= threshold


class InMemoryReadModels:
    """Snapshot-backed read models, optionally reloaded from a JSON file on invalidation."""

    def __init__(self, snapshot: Optional[dict[str, Any]] = None, *, source: Optional[Path] = None) -> None:
        self._snapshot: dict[str, Any] = snapshot or {}
        self._source = source
        self.invalidations: list[str] = []

    @classmethod
    def from_file(cls, path: str) -> "InMemoryReadModels":
        source = Path(path)
        return cls(_load_snapshot(source), source=source)

    def replace(self, snapshot: dict[str, Any]) -> None:
        self._snapshot = snapshot

    async def list(self, domain: str) -> list[dict[str, Any]]:
        key = _DOMAIN_KEYS.get(domain)
        if key is None:
            return []
        return copy.deepcopy(list(self._snapshot.get(key) or []))

    async def low_stock(self) -> list[dict[str, Any]]:
        explicit = self._snapshot.get("lowStockAlerts")
        if explicit is not None:
            return copy.deepcopy(list(explicit))
        return [copy.deepcopy(item) for item in self._snapshot.get("inventory") or [] if is_low_stock(item)]

    async def current(self) -> list[dict[str, Any]]:
        return await self.list("pricing")

    async def business_context(self) -> dict[str, Any]:
        return {
            "suppliers": await self.list("suppliers"),
            "clients": await self.list("clients"),
            "skus": await self.list("skus"),
            "pricing": await self.current(),
            "inventory": await self.list("inventory"),
            "recentOrders": await self.list("orders"),
            "lowStockAlerts": await self.low_stock(),
        }

    async def invalidate(self, domain: str) -> None:
        self.invalidations.append(domain)
        if self._source is not None:
            self._snapshot = _load_snapshot(self._source)
        logger.debug("Invalidated read model %s", domain)


def _load_snapshot(path: Path) -> dict[str, Any]:
    if not path.exists():
        logger.warning("Business snapshot %s does not exist; starting empty", path)
        return {}
    with path.open("r", encoding="utf-8") as fp:
        data = json.load(fp)
    if not isinstance(data, dict):
        raise ValueError(f"Business snapshot {path} must contain a JSON object")
    logger.info("Loaded business snapshot from %s", path)
    return data
