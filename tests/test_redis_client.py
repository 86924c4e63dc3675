"""
Tests for the Redis cache helpers.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from unittest.mock import AsyncMock, patch

import pytest

from wattwise.cache.redis_client import invalidate_live_cache, live_cache_key


def test_live_cache_key() -> None:
    assert live_cache_key("meter-1") == "live:meter-1"


class TestInvalidateLiveCache:
    @pytest.mark.asyncio()
    async def test_deletes_device_key(self) -> None:
        client = AsyncMock()
        with patch(
            "wattwise.cache.redis_client.get_redis", new_callable=AsyncMock, return_value=client,
        ):
            await invalidate_live_cache("meter-1")

        client.delete.assert_awaited_once_with("live:meter-1")
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_redis_down_is_logged_not_raised(
        self, caplog: pytest.LogCaptureFixture,
    ) -> None:
        with patch(
            "wattwise.cache.redis_client.get_redis",
            new_callable=AsyncMock,
            side_effect=ConnectionError("Redis down"),
        ), caplog.at_level("WARNING", logger="wattwise.cache.redis_client"):
            await invalidate_live_cache("meter-1")

        assert "meter-1" in caplog.text
