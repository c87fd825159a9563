import asyncio
from datetime import datetime, timedelta, timezone

from moodreel.entities import QuotaSubject
from moodreel.services.usage_quota import (
    UsageQuotaGovernor,
    format_reset_time,
    new_guest_session_id,
)

GUEST = QuotaSubject(session_id="guest_1700000000000_abc")
USER = QuotaSubject(user_id="42")
ADMIN = QuotaSubject(user_id="1", is_admin=True)


def test_guest_gets_five_then_denied(governor):
    async def scenario():
        results = [await governor.increment(GUEST) for _ in range(6)]
        return results, await governor.get_limits(GUEST)

    results, quota = asyncio.run(scenario())
    assert results == [True] * 5 + [False]
    assert quota.consumed == 5
    assert quota.remaining == 0
    assert quota.daily_limit == 5


def test_authenticated_users_get_the_larger_limit(governor):
    quota = asyncio.run(governor.get_limits(USER))
    assert quota.daily_limit == 25
    assert quota.consumed == 0


def test_first_observation_creates_row(governor, fake_clock):
    quota = asyncio.run(governor.get_limits(GUEST))
    assert quota.consumed == 0
    assert quota.reset_at == fake_clock.now + timedelta(hours=24)


def test_elapsed_window_rolls_forward(governor, quota_store, fake_clock):
    quota_store.put(GUEST.key, consumed=5, last_reset_at=fake_clock.now - timedelta(hours=25))
    quota = asyncio.run(governor.get_limits(GUEST))
    assert quota.consumed == 0
    assert quota.reset_at == fake_clock.now + timedelta(hours=24)
    assert asyncio.run(governor.increment(GUEST)) is True


def test_window_is_rolling_not_calendar(governor, fake_clock):
    async def scenario():
        for _ in range(5):
            await governor.increment(GUEST)
        fake_clock.advance(hours=23, minutes=59)
        blocked = await governor.increment(GUEST)
        fake_clock.advance(minutes=1)
        allowed = await governor.increment(GUEST)
        return blocked, allowed

    assert asyncio.run(scenario()) == (False, True)


def test_concurrent_increments_never_exceed_limit(governor):
    async def scenario():
        return await asyncio.gather(*(governor.increment(GUEST) for _ in range(12)))

    results = asyncio.run(scenario())
    assert results.count(True) == 5
    assert asyncio.run(governor.get_limits(GUEST)).consumed == 5


def test_admin_is_unlimited_and_untracked(governor, quota_store):
    assert all(asyncio.run(governor.increment(ADMIN)) for _ in range(50))
    quota = asyncio.run(governor.get_limits(ADMIN))
    assert quota.is_privileged
    assert quota.daily_limit is None
    assert quota.remaining is None
    assert ADMIN.key not in quota_store._rows


class BrokenStore:
    async def observe(self, *args):
        raise ConnectionError("store down")

    async def increment(self, *args):
        raise ConnectionError("store down")


def test_store_failure_degrades(fake_clock):
    governor = UsageQuotaGovernor(BrokenStore(), guest_daily_limit=5, user_daily_limit=25, clock=fake_clock)
    quota = asyncio.run(governor.get_limits(USER))
    assert quota.consumed == 0
    assert quota.daily_limit == 25
    assert asyncio.run(governor.increment(USER)) is False


def test_format_reset_time():
    now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert format_reset_time(now + timedelta(hours=3, minutes=12, seconds=30), now) == "3h 12m"
    assert format_reset_time(now + timedelta(minutes=45), now) == "45m"
    assert format_reset_time(now - timedelta(minutes=5), now) == "0m"


def test_guest_session_id_shape():
    token = new_guest_session_id()
    prefix, millis, suffix = token.split("_")
    assert prefix == "guest"
    assert millis.isdigit()
    assert 1 <= len(suffix) <= 9
    assert new_guest_session_id() != token
