"""Unit tests for the cooldown tracker"""
import pytest

from rankicard.gamification.cooldown import CooldownTracker, format_countdown
from rankicard.gamification.memory_store import InMemoryCooldownStorage


class FakeTime:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def tracker(fake_time):
    return CooldownTracker(InMemoryCooldownStorage(), "sync:user-1", window_seconds=900, clock=fake_time)


@pytest.mark.asyncio
async def test_no_cooldown_initially(tracker):
    assert await tracker.remaining_seconds() == 0
    assert await tracker.is_active() is False


@pytest.mark.asyncio
async def test_start_sets_absolute_expiry(tracker, fake_time):
    expiry = await tracker.start()

    assert expiry == fake_time.now + 900
    assert await tracker.remaining_seconds() == 900


@pytest.mark.asyncio
async def test_remaining_rounds_up(tracker, fake_time):
    await tracker.start()
    fake_time.now += 0.4

    assert await tracker.remaining_seconds() == 900


@pytest.mark.asyncio
async def test_poll_is_non_increasing_and_ends_at_zero(tracker, fake_time):
    await tracker.start()

    readings = []
    for _ in range(905):
        readings.append(await tracker.remaining_seconds())
        fake_time.now += 1

    assert readings == sorted(readings, reverse=True)
    assert readings[-1] == 0
    assert 0 in readings


@pytest.mark.asyncio
async def test_reaching_zero_clears_storage(fake_time):
    storage = InMemoryCooldownStorage()
    tracker = CooldownTracker(storage, "k", window_seconds=10, clock=fake_time)
    await tracker.start()

    fake_time.now += 10
    assert await tracker.remaining_seconds() == 0
    assert await storage.get_expiry("k") is None


@pytest.mark.asyncio
async def test_survives_new_tracker_on_same_storage(fake_time):
    storage = InMemoryCooldownStorage()
    await CooldownTracker(storage, "k", window_seconds=900, clock=fake_time).start()
    fake_time.now += 100

    restarted = CooldownTracker(storage, "k", window_seconds=900, clock=fake_time)

    assert await restarted.remaining_seconds() == 800


@pytest.mark.asyncio
async def test_cancel_clears(tracker):
    await tracker.start()
    await tracker.cancel()

    assert await tracker.is_active() is False


@pytest.mark.parametrize("seconds,expected", [
    (0, "00:00"),
    (5, "00:05"),
    (65, "01:05"),
    (900, "15:00"),
    (-3, "00:00"),
])
def test_format_countdown(seconds, expected):
    assert format_countdown(seconds) == expected
