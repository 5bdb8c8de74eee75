"""Tests for Redis caching of provider reads."""

from unittest.mock import MagicMock

import pytest
import redis

from app.core.exceptions import ProviderUnavailableException
from app.core.redis_client import CacheManager
from app.schemas.providers import ProviderUpdate
from app.services.provider_service import ProviderService
from app.services.scheduler_service import SchedulerService


def test_cache_manager_get_json():
    """Test CacheManager get_json method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis, prefix="medibook")

    mock_redis.get.return_value = None
    assert cache_manager.get_json("test_key") is None
    mock_redis.get.assert_called_once_with("medibook:test_key")

    mock_redis.reset_mock()
    mock_redis.get.return_value = '{"name": "Test", "value": 123}'
    assert cache_manager.get_json("test_key") == {"name": "Test", "value": 123}

    mock_redis.get.return_value = "{not json"
    assert cache_manager.get_json("test_key") is None


def test_cache_manager_set_json():
    """Test CacheManager set_json method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis, prefix="")

    assert cache_manager.set_json("test_key", {"fee": "500.00"}) is True
    mock_redis.set.assert_called_once()

    mock_redis.reset_mock()
    assert cache_manager.set_json("test_key", {"fee": "500.00"}, ttl=300) is True
    mock_redis.setex.assert_called_once_with("test_key", 300, '{"fee": "500.00"}')


def test_cache_manager_delete_pattern():
    mock_redis = MagicMock()
    mock_redis.scan_iter.return_value = iter(["m:provider:list:a", "m:provider:list:b"])
    mock_redis.delete.return_value = 2
    cache_manager = CacheManager(redis_client=mock_redis, prefix="m")

    assert cache_manager.delete_pattern("provider:list:*") == 2
    mock_redis.scan_iter.assert_called_once_with(match="m:provider:list:*")
    mock_redis.delete.assert_called_once_with("m:provider:list:a", "m:provider:list:b")


def test_cache_manager_degrades_to_miss_when_redis_down():
    """A Redis outage never breaks a request; it just misses the cache."""
    mock_redis = MagicMock()
    mock_redis.get.side_effect = redis.ConnectionError("redis down")
    mock_redis.setex.side_effect = ConnectionError("redis down")
    mock_redis.scan_iter.side_effect = redis.TimeoutError("redis slow")
    mock_redis.delete.side_effect = redis.ConnectionError("redis down")
    cache_manager = CacheManager(redis_client=mock_redis)

    assert cache_manager.get_json("provider:1") is None
    assert cache_manager.set_json("provider:1", {}, ttl=60) is False
    assert cache_manager.delete_pattern("provider:list:*") == 0
    assert cache_manager.delete("provider:1") is False


@pytest.mark.asyncio
async def test_get_provider_uses_cache(db_session, doctor):
    cache = MagicMock()
    cache.get_json.return_value = None
    service = ProviderService(cache_manager=cache)

    provider = await service.get_provider(db_session, doctor["id"])

    assert provider["name"] == doctor["name"]
    cache.get_json.assert_called_once_with(f"provider:{doctor['id']}")
    cache.set_json.assert_called_once()
    assert cache.set_json.call_args.kwargs["ttl"] == ProviderService.PROVIDER_CACHE_TTL

    cache.reset_mock()
    cache.get_json.return_value = {"id": str(doctor["id"]), "name": "Cached name"}
    cached = await service.get_provider(db_session, doctor["id"])
    assert cached["name"] == "Cached name"
    cache.set_json.assert_not_called()


@pytest.mark.asyncio
async def test_provider_writes_invalidate_cache(db_session, doctor):
    cache = MagicMock()
    cache.get_json.return_value = None
    service = ProviderService(cache_manager=cache)

    await service.update_provider(db_session, doctor["id"], ProviderUpdate(about="Updated"))
    cache.delete.assert_any_call(f"provider:{doctor['id']}")
    cache.delete_pattern.assert_any_call("provider:list:*")

    cache.reset_mock()
    cache.get_json.return_value = None
    await service.set_availability(db_session, doctor["id"], False)
    cache.delete.assert_any_call(f"provider:{doctor['id']}")


@pytest.mark.asyncio
async def test_reservation_reads_provider_fresh(db_session, doctor, open_slot):
    """A stale cached profile cannot make a closed provider bookable."""
    await ProviderService().set_availability(db_session, doctor["id"], False)

    cache = MagicMock()
    cache.get_json.return_value = {**doctor, "id": str(doctor["id"]), "available": True}
    scheduler = SchedulerService(db_session, provider_service=ProviderService(cache))

    with pytest.raises(ProviderUnavailableException):
        await scheduler.reserve_slot(
            doctor["id"], open_slot["slot_date"], open_slot["slot_time"], doctor["id"]
        )
