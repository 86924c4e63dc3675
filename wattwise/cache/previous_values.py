"""
Per-device previous-value cache used by the delta estimator.

Holds the last cumulative hardware energy counter seen for each device
together with a snapshot of the device's bucket before the latest fold.
The cache is an explicit object passed to its users, never ambient module
state inside the estimator.

Two implementations:
- ``PreviousValueCache``: in-process dictionary. Lost on restart, which
  makes the first sample after a restart fall back to the expected-energy
  estimate.
- ``RedisPreviousValueCache``: write-through to Redis with a TTL so that
  delta accuracy survives process restarts. Redis is best-effort: failures
  are logged and the in-process layer keeps serving.

CHANGELOG:
- 2026-10-18: Add Redis write-through layer with TTL
- 2026-10-18: Initial creation

TODO:
- None
"""

import dataclasses
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import redis.asyncio as redis

from wattwise.cache.redis_client import get_redis

logger = logging.getLogger(__name__)


@dataclass
class PreviousValues:
    """Cached state for one device.

    Attributes:
        last_hardware_energy_counter: Last cumulative counter reading (kWh).
        last_day: Local day the counter reading was bucketed into.
        last_voltage: Bucket voltage before the latest fold.
        last_current: Bucket current before the latest fold.
        last_power: Bucket power total before the latest fold.
        last_accumulated_energy: Bucket energy total before the latest fold.
        last_timestamp: Observation time of the latest sample.
    """

    last_hardware_energy_counter: float | None = None
    last_day: date | None = None
    last_voltage: float = 0.0
    last_current: float = 0.0
    last_power: float = 0.0
    last_accumulated_energy: float = 0.0
    last_timestamp: datetime | None = None

    def to_json(self) -> str:
        """Serialize to a JSON string (dates as ISO 8601)."""
        data = dataclasses.asdict(self)
        if self.last_day is not None:
            data["last_day"] = self.last_day.isoformat()
        if self.last_timestamp is not None:
            data["last_timestamp"] = self.last_timestamp.isoformat()
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "PreviousValues":
        """Build an instance from :meth:`to_json` output.

        Unknown keys are ignored so that older entries still load.
        """
        data: dict[str, Any] = json.loads(raw)
        known = {f.name for f in dataclasses.fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if values.get("last_day"):
            values["last_day"] = date.fromisoformat(values["last_day"])
        if values.get("last_timestamp"):
            values["last_timestamp"] = datetime.fromisoformat(values["last_timestamp"])
        return cls(**values)


class PreviousValueCache:
    """In-process per-device cache.

    Safe only under the single-threaded asyncio execution model: there is
    no locking around read-modify-write of an entry.
    """

    def __init__(self) -> None:
        self._entries: dict[str, PreviousValues] = {}

    async def get(self, device_id: str) -> PreviousValues | None:
        """Return the cached values for *device_id*, or None."""
        return self._entries.get(device_id)

    async def update(self, device_id: str, **fields: Any) -> PreviousValues:
        """Merge *fields* into the device's entry and return the new entry.

        Raises:
            TypeError: If a field name is not a PreviousValues attribute.
        """
        current = self._entries.get(device_id) or PreviousValues()
        updated = dataclasses.replace(current, **fields)
        self._entries[device_id] = updated
        return updated

    async def clear(self) -> None:
        """Drop all entries."""
        self._entries.clear()


class RedisPreviousValueCache(PreviousValueCache):
    """Previous-value cache persisted to Redis with a TTL.

    Reads hit the in-process layer first and fall back to Redis on a miss
    (e.g., right after a restart). Writes go to both layers.

    Args:
        ttl_s: Expiry of each Redis entry in seconds.
        client_factory: Coroutine returning a Redis client. Defaults to
            :func:`wattwise.cache.redis_client.get_redis`.
        key_prefix: Prefix of the Redis keys.
    """

    def __init__(
        self,
        ttl_s: int,
        client_factory: Callable[[], Awaitable[redis.Redis]] = get_redis,
        key_prefix: str = "prev",
    ) -> None:
        super().__init__()
        self._ttl_s = ttl_s
        self._client_factory = client_factory
        self._key_prefix = key_prefix

    def _key(self, device_id: str) -> str:
        return f"{self._key_prefix}:{device_id}"

    async def get(self, device_id: str) -> PreviousValues | None:
        """Return cached values, loading from Redis on a local miss."""
        local = await super().get(device_id)
        if local is not None:
            return local

        try:
            client = await self._client_factory()
            try:
                raw = await client.get(self._key(device_id))
            finally:
                await client.aclose()
        except Exception:
            logger.warning(
                "Previous-value read from Redis failed for device %s",
                device_id, exc_info=True,
            )
            return None

        if raw is None:
            return None
        try:
            values = PreviousValues.from_json(raw)
        except (ValueError, TypeError):
            logger.warning("Discarding unreadable previous-value entry for device %s", device_id)
            return None
        self._entries[device_id] = values
        return values

    async def update(self, device_id: str, **fields: Any) -> PreviousValues:
        """Update the local entry, then write it through to Redis."""
        updated = await super().update(device_id, **fields)
        try:
            client = await self._client_factory()
            try:
                await client.set(self._key(device_id), updated.to_json(), ex=self._ttl_s)
            finally:
                await client.aclose()
        except Exception:
            logger.warning(
                "Previous-value write to Redis failed for device %s",
                device_id, exc_info=True,
            )
        return updated
