"""Tests for the age-based reclamation loop."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from fork_deployer.core.exceptions import PlatformAPIError, ReclamationCycleError
from fork_deployer.core.models import PlatformApp
from fork_deployer.deploy.heroku import HerokuClient
from fork_deployer.deploy.ownership import OwnershipMarker
from fork_deployer.deploy.reclaim import ReclamationLoop

from conftest import NOW, PREFIX, FakeHeroku


def _iso(delta: timedelta) -> str:
    return (NOW - delta).isoformat().replace("+00:00", "Z")


def _loop(heroku, **kwargs) -> ReclamationLoop:
    return ReclamationLoop(heroku, OwnershipMarker(PREFIX), clock=lambda: NOW, **kwargs)


def _client(fake: FakeHeroku) -> HerokuClient:
    return HerokuClient(api_key="test-key", transport=fake.transport)


@pytest.mark.asyncio
async def test_deletes_only_apps_past_24_hours():
    fake = FakeHeroku(
        apps=[
            {"name": f"{PREFIX}1-young", "created_at": _iso(timedelta(hours=23.9))},
            {"name": f"{PREFIX}2-old", "created_at": _iso(timedelta(hours=24.1))},
        ]
    )

    report = await _loop(_client(fake)).run_cycle()

    assert report.deleted == [f"{PREFIX}2-old"]
    assert report.kept == [f"{PREFIX}1-young"]
    assert report.owned == 2
    assert [p for _, p, _ in fake.calls_for("DELETE")] == [f"/apps/{PREFIX}2-old"]
    assert [a["name"] for a in fake.apps] == [f"{PREFIX}1-young"]


@pytest.mark.asyncio
async def test_exactly_max_age_is_deleted():
    fake = FakeHeroku(apps=[{"name": f"{PREFIX}1-edge", "created_at": _iso(timedelta(hours=24))}])

    report = await _loop(_client(fake)).run_cycle()

    assert report.deleted == [f"{PREFIX}1-edge"]


@pytest.mark.asyncio
async def test_apps_without_prefix_are_never_deleted():
    fake = FakeHeroku(
        apps=[
            {"name": "someone-elses-app", "created_at": _iso(timedelta(days=30))},
            {"name": f"x{PREFIX}", "created_at": _iso(timedelta(days=30))},
        ]
    )

    report = await _loop(_client(fake)).run_cycle()

    assert report.owned == 0
    assert report.deleted == []
    assert fake.calls_for("DELETE") == []


@pytest.mark.asyncio
async def test_apps_without_creation_time_are_kept():
    fake = FakeHeroku(
        apps=[
            {"name": f"{PREFIX}1-a"},
            {"name": f"{PREFIX}2-b", "created_at": "not-a-date"},
        ]
    )

    report = await _loop(_client(fake)).run_cycle()

    assert report.deleted == []
    assert sorted(report.kept) == [f"{PREFIX}1-a", f"{PREFIX}2-b"]


@pytest.mark.asyncio
async def test_custom_max_age():
    fake = FakeHeroku(apps=[{"name": f"{PREFIX}1-a", "created_at": _iso(timedelta(hours=2))}])

    report = await _loop(_client(fake), max_age=timedelta(hours=1)).run_cycle()

    assert report.deleted == [f"{PREFIX}1-a"]


@pytest.mark.asyncio
async def test_listing_failure_aborts_cycle():
    fake = FakeHeroku(apps=[{"name": f"{PREFIX}1-old", "created_at": _iso(timedelta(days=2))}])
    fake.fail("GET", "/apps", status=503, message="Service unavailable")

    with pytest.raises(ReclamationCycleError):
        await _loop(_client(fake)).run_cycle()

    assert fake.calls_for("DELETE") == []


@pytest.mark.asyncio
async def test_one_failed_deletion_does_not_stop_the_others():
    fake = FakeHeroku(
        apps=[
            {"name": f"{PREFIX}1-a", "created_at": _iso(timedelta(hours=30))},
            {"name": f"{PREFIX}2-b", "created_at": _iso(timedelta(hours=30))},
            {"name": f"{PREFIX}3-c", "created_at": _iso(timedelta(hours=30))},
        ]
    )
    fake.fail("DELETE", f"/apps/{PREFIX}2-b", status=500, message="Internal error")

    report = await _loop(_client(fake)).run_cycle()

    assert report.failed == [f"{PREFIX}2-b"]
    assert sorted(report.deleted) == [f"{PREFIX}1-a", f"{PREFIX}3-c"]
    assert len(fake.calls_for("DELETE")) == 3


@pytest.mark.asyncio
async def test_deletions_run_concurrently():
    in_flight = 0
    peak = 0

    async def slow_delete(name):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1

    heroku = AsyncMock()
    heroku.list_apps.return_value = [
        PlatformApp(name=f"{PREFIX}{i}", created_at=NOW - timedelta(days=2)) for i in range(3)
    ]
    heroku.delete_app.side_effect = slow_delete

    report = await _loop(heroku).run_cycle()

    assert len(report.deleted) == 3
    assert peak == 3


@pytest.mark.asyncio
async def test_loop_survives_listing_failure_and_runs_again():
    calls = 0

    async def list_apps():
        nonlocal calls
        calls += 1
        if calls == 1:
            raise PlatformAPIError("Service unavailable", status_code=503)
        return [PlatformApp(name=f"{PREFIX}1-old", created_at=NOW - timedelta(days=2))]

    heroku = AsyncMock()
    heroku.list_apps.side_effect = list_apps

    loop = _loop(heroku, interval_seconds=0.01, run_on_start=True)
    loop.start()
    try:
        for _ in range(100):
            if heroku.delete_app.await_count:
                break
            await asyncio.sleep(0.01)
    finally:
        await loop.stop()

    assert calls >= 2
    heroku.delete_app.assert_any_await(f"{PREFIX}1-old")
    assert not loop.running


@pytest.mark.asyncio
async def test_loop_waits_one_interval_before_first_cycle():
    heroku = AsyncMock()
    heroku.list_apps.return_value = []

    loop = _loop(heroku, interval_seconds=3600)
    loop.start()
    await asyncio.sleep(0.02)
    assert loop.running
    await loop.stop()

    heroku.list_apps.assert_not_awaited()


@pytest.mark.asyncio
async def test_stop_without_start_is_noop():
    loop = _loop(AsyncMock())
    await loop.stop()
    assert not loop.running


@pytest.mark.asyncio
async def test_cycle_sees_apps_beyond_first_page():
    fake = FakeHeroku(
        apps=[{"name": f"{PREFIX}{i}-old", "created_at": _iso(timedelta(hours=48))} for i in range(5)],
        page_size=2,
    )

    report = await _loop(_client(fake)).run_cycle()

    assert sorted(report.deleted) == sorted(f"{PREFIX}{i}-old" for i in range(5))
    assert len(fake.ranges) == 3
    assert fake.apps == []


@pytest.mark.asyncio
async def test_plan_matches_cycle_deletions():
    apps = [
        {"name": f"{PREFIX}1-old", "created_at": _iso(timedelta(hours=30))},
        {"name": f"{PREFIX}2-young", "created_at": _iso(timedelta(hours=2))},
        {"name": "other-old", "created_at": _iso(timedelta(hours=300))},
        {"name": f"{PREFIX}3-undated"},
    ]
    fake = FakeHeroku(apps=apps)
    loop = _loop(_client(fake))

    planned = loop.plan(await loop.heroku.list_apps(), NOW)
    report = await loop.run_cycle()

    assert [app.name for app in planned] == [f"{PREFIX}1-old"]
    assert report.deleted == [app.name for app in planned]
