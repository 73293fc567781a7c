"""Durable JSON storage for the pool map and rebalance parameters."""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Iterable
from dataclasses import asdict
from pathlib import Path
from typing import Any

from yield_rebalancer.protocol.parameters import RebalanceParameters
from yield_rebalancer.protocol.pool import Pool

logger = logging.getLogger(__name__)


class JsonStateStore:
    """Single JSON document holding ``pools`` and ``parameters``.

    Writes go to a sibling temp file that is then renamed over the target,
    so a crash mid-write leaves the previous state intact.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with self.path.open() as f:
            return json.load(f)

    def _write(self, state: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        with tmp.open("w") as f:
            json.dump(state, f, indent=2, sort_keys=True)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.path)

    def load_pools(self) -> list[Pool]:
        with self._lock:
            raw = self._read().get("pools", {})
        pools = [Pool.from_dict(item) for item in raw.values()]
        logger.debug("Loaded %d pools from %s", len(pools), self.path)
        return pools

    def load_parameters(self) -> RebalanceParameters | None:
        with self._lock:
            raw = self._read().get("parameters")
        if raw is None:
            return None
        return RebalanceParameters(**raw)

    def save_pools(self, pools: Iterable[Pool]) -> None:
        with self._lock:
            state = self._read()
            state["pools"] = {p.pool_id: p.to_dict() for p in pools}
            self._write(state)

    def save_parameters(self, params: RebalanceParameters) -> None:
        with self._lock:
            state = self._read()
            state["parameters"] = asdict(params)
            self._write(state)
