"""Unit tests for the token bucket rate limiters."""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from cdc_workflow.core.rate_limit import InMemoryRateLimiter, RedisRateLimiter, get_rate_limiter


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the limiter: hashes and expiry."""

    def __init__(self):
        self.hashes: dict[str, dict[str, str]] = {}
        self.expiries: dict[str, int] = {}
        self.closed = False

    async def hmget(self, key, *fields):
        values = self.hashes.get(key, {})
        return [values.get(field) for field in fields]

    async def hset(self, key, mapping):
        self.hashes.setdefault(key, {}).update({k: str(v) for k, v in mapping.items()})

    async def expire(self, key, seconds):
        self.expiries[key] = seconds

    async def aclose(self):
        self.closed = True


class UnreachableRedis(FakeRedis):
    """Every command fails as if the server were down."""

    async def hmget(self, key, *fields):
        raise RedisConnectionError("redis down")


@pytest.mark.asyncio
async def test_in_memory_allows_up_to_limit():
    limiter = InMemoryRateLimiter(limit=3, period=60, clock=FakeClock())

    results = [await limiter.check("agent-1") for _ in range(4)]

    assert [r.allowed for r in results] == [True, True, True, False]
    assert [r.remaining for r in results[:3]] == [2, 1, 0]
    assert results[3].retry_after == 20


@pytest.mark.asyncio
async def test_in_memory_refills_over_time():
    clock = FakeClock()
    limiter = InMemoryRateLimiter(limit=2, period=10, clock=clock)
    assert (await limiter.check("agent-1")).allowed
    assert (await limiter.check("agent-1")).allowed
    assert not (await limiter.check("agent-1")).allowed

    clock.now += 5

    assert (await limiter.check("agent-1")).allowed
    assert not (await limiter.check("agent-1")).allowed


@pytest.mark.asyncio
async def test_in_memory_buckets_are_per_key():
    limiter = InMemoryRateLimiter(limit=1, period=60, clock=FakeClock())

    assert (await limiter.check("agent-1")).allowed
    assert not (await limiter.check("agent-1")).allowed
    assert (await limiter.check("agent-2")).allowed

    limiter.reset("agent-1")
    assert (await limiter.check("agent-1")).allowed


@pytest.mark.asyncio
async def test_burst_caps_bucket():
    limiter = InMemoryRateLimiter(limit=10, period=60, burst=2, clock=FakeClock())

    results = [await limiter.check("agent-1") for _ in range(3)]

    assert [r.allowed for r in results] == [True, True, False]


@pytest.mark.asyncio
async def test_redis_limiter_shares_state_through_redis():
    redis = FakeRedis()
    first_instance = RedisRateLimiter(redis, limit=2, period=60)
    second_instance = RedisRateLimiter(redis, limit=2, period=60)

    assert (await first_instance.check("agent-1")).allowed
    assert (await second_instance.check("agent-1")).allowed
    denied = await first_instance.check("agent-1")

    assert not denied.allowed
    assert denied.retry_after >= 1
    assert redis.expiries["rate_limit:bucket:agent-1"] == 120
    assert "rate_limit:bucket:agent-2" not in redis.hashes


@pytest.mark.asyncio
async def test_mutating_route_rate_limited(test_client, rate_limiter, auth_headers, air_booking):
    """Mutating routes answer 429 with Retry-After once the bucket is empty."""
    rate_limiter.bucket_size = 1
    rate_limiter.refill_rate = 1 / 3600
    rate_limiter.reset()

    first = await test_client.put(
        f"/v1/bookings/{air_booking.id}/status",
        json={"newStatus": "QUOTE_REQUESTED"},
        headers=auth_headers,
    )
    second = await test_client.put(
        f"/v1/bookings/{air_booking.id}/status",
        json={"newStatus": "QUOTE_RECEIVED"},
        headers=auth_headers,
    )

    assert first.status_code == 200
    assert second.status_code == 429
    assert int(second.headers["Retry-After"]) > 0
    assert second.json()["title"] == "Rate Limit Exceeded"

    # Reads are not rate limited
    response = await test_client.get(f"/v1/bookings/{air_booking.id}/status", headers=auth_headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_redis_limiter_fails_open_when_redis_is_down():
    limiter = RedisRateLimiter(UnreachableRedis(), limit=1, period=60)

    results = [await limiter.check("agent-1") for _ in range(3)]

    assert all(r.allowed for r in results)
    assert results[0].retry_after == 0


@pytest.mark.asyncio
async def test_redis_limiter_close_releases_client():
    redis = FakeRedis()

    await RedisRateLimiter(redis, limit=1, period=60).close()

    assert redis.closed


@pytest.mark.asyncio
async def test_status_change_allowed_while_redis_is_down(test_app, test_client, auth_headers, air_booking):
    test_app.dependency_overrides[get_rate_limiter] = lambda: RedisRateLimiter(
        UnreachableRedis(), limit=1, period=60
    )

    response = await test_client.put(
        f"/v1/bookings/{air_booking.id}/status",
        json={"newStatus": "QUOTE_REQUESTED"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["newStatus"] == "QUOTE_REQUESTED"
