"""Tests for SyncEngine — baseline, diffing, failures, staleness, scheduling."""

import asyncio

import pytest

from inboxsync.api.client import GatewayError
from inboxsync.auth.session import SessionUser
from inboxsync.events.broker import NOTIFICATION_NEW
from inboxsync.notifications.sync import SyncEngine
from inboxsync.notifications.toasts import ToastQueue


@pytest.fixture
def toasts():
    return ToastQueue(duration_ms=60_000)


@pytest.fixture
def engine(mock_gateway, session, store, toasts, broker, mock_scheduler):
    return SyncEngine(
        mock_gateway, session, store,
        toasts=toasts, broker=broker, scheduler=mock_scheduler, interval_ms=30_000,
    )


# ── Lifecycle & scheduling ──


@pytest.mark.asyncio
async def test_start_schedules_immediate_and_interval_poll(engine, mock_scheduler):
    await engine.start()

    mock_scheduler.add_job.assert_called_once()
    _, kwargs = mock_scheduler.add_job.call_args
    assert kwargs["id"] == SyncEngine.JOB_ID
    assert kwargs["next_run_time"] is not None
    assert kwargs["replace_existing"] is True
    assert engine.running is True


@pytest.mark.asyncio
async def test_start_without_user_stays_idle(mock_gateway, anonymous_session, store, mock_scheduler):
    engine = SyncEngine(mock_gateway, anonymous_session, store, scheduler=mock_scheduler)
    await engine.start()

    mock_scheduler.add_job.assert_not_called()
    assert await engine.poll() is None
    mock_gateway.fetch_active_notifications.assert_not_called()


@pytest.mark.asyncio
async def test_start_twice_is_noop(engine, mock_scheduler):
    await engine.start()
    await engine.start()
    assert mock_scheduler.add_job.call_count == 1


@pytest.mark.asyncio
async def test_stop_removes_job_but_keeps_shared_scheduler(engine, mock_scheduler):
    await engine.start()
    generation = engine.generation
    await engine.stop()

    mock_scheduler.remove_job.assert_called_with(SyncEngine.JOB_ID)
    mock_scheduler.shutdown.assert_not_called()
    assert engine.generation == generation + 1
    assert engine.running is False


@pytest.mark.asyncio
async def test_identity_change_restarts_for_new_user(engine, session, store, toasts, mock_gateway,
                                                     mock_scheduler, make_notification):
    mock_gateway.fetch_active_notifications.return_value = [make_notification(1)]
    await engine.start()
    await engine.poll()
    toasts.push(make_notification(9))

    session.set_user(SessionUser(name="bob"), persist=False)

    assert store.active == []
    assert len(toasts) == 0
    assert engine.has_baseline is False
    assert mock_scheduler.add_job.call_count == 2
    _, kwargs = mock_scheduler.add_job.call_args
    assert "bob" in kwargs["name"]

    await engine.poll()
    mock_gateway.fetch_active_notifications.assert_awaited_with("bob")


@pytest.mark.asyncio
async def test_sign_out_stops_polling(engine, session, mock_scheduler):
    await engine.start()
    session.set_user(None, persist=False)

    mock_scheduler.remove_job.assert_called_with(SyncEngine.JOB_ID)
    assert mock_scheduler.add_job.call_count == 1
    assert await engine.poll() is None


# ── Reconciliation ──


@pytest.mark.asyncio
async def test_first_poll_never_toasts(engine, mock_gateway, store, toasts, make_notification):
    mock_gateway.fetch_active_notifications.return_value = [
        make_notification(i) for i in range(1, 6)
    ]
    await engine.start()

    assert await engine.poll() == []
    assert store.unread_count == 5
    assert len(toasts) == 0


@pytest.mark.asyncio
async def test_three_poll_scenario(engine, mock_gateway, store, toasts, make_notification):
    mock_gateway.fetch_active_notifications.side_effect = [
        [make_notification(1)],
        [make_notification(1), make_notification(2)],
        [make_notification(1, read=True), make_notification(2)],
    ]
    await engine.start()

    assert await engine.poll() == []
    assert [n.id for n in store.active] == [1]
    assert toasts.ids == []

    fresh = await engine.poll()
    assert [n.id for n in fresh] == [2]
    assert toasts.ids == [2]

    fresh = await engine.poll()
    assert fresh == []
    assert toasts.ids == [2]
    assert store.unread_count == 1
    toasts.clear()


@pytest.mark.asyncio
async def test_new_but_read_records_are_not_announced(engine, mock_gateway, toasts, make_notification):
    mock_gateway.fetch_active_notifications.side_effect = [
        [make_notification(1)],
        [make_notification(1), make_notification(2, read=True), make_notification(3)],
    ]
    await engine.start()
    await engine.poll()

    fresh = await engine.poll()
    assert [n.id for n in fresh] == [3]
    assert toasts.ids == [3]
    toasts.clear()


@pytest.mark.asyncio
async def test_seen_ids_never_reannounce_when_fields_change(engine, mock_gateway, toasts, make_notification):
    mock_gateway.fetch_active_notifications.side_effect = [
        [make_notification(1)],
        [make_notification(1, title="edited", message="edited too")],
    ]
    await engine.start()
    await engine.poll()

    assert await engine.poll() == []
    assert len(toasts) == 0


@pytest.mark.asyncio
async def test_announcement_published_on_broker(engine, broker, mock_gateway, make_notification):
    received = []
    broker.subscribe(NOTIFICATION_NEW, received.append)
    mock_gateway.fetch_active_notifications.side_effect = [
        [],
        [make_notification(1), make_notification(2)],
    ]
    await engine.start()
    await engine.poll()
    await engine.poll()

    assert len(received) == 1
    assert [n.id for n in received[0]] == [1, 2]
    engine.toasts.clear()


@pytest.mark.asyncio
async def test_empty_first_snapshot_is_still_a_baseline(engine, mock_gateway, toasts, make_notification):
    mock_gateway.fetch_active_notifications.side_effect = [[], [make_notification(1)]]
    await engine.start()

    await engine.poll()
    assert engine.has_baseline is True

    fresh = await engine.poll()
    assert [n.id for n in fresh] == [1]
    toasts.clear()


@pytest.mark.asyncio
async def test_poll_overwrites_local_read_flag(engine, mock_gateway, store, make_notification):
    mock_gateway.fetch_active_notifications.return_value = [make_notification(1)]
    await engine.start()
    await engine.poll()

    store.upsert_read_flag(1)
    assert store.unread_count == 0

    await engine.poll()
    assert store.unread_count == 1


# ── Failures & staleness ──


@pytest.mark.asyncio
async def test_failed_poll_leaves_state_unchanged(engine, mock_gateway, store, toasts, make_notification):
    mock_gateway.fetch_active_notifications.side_effect = [
        [make_notification(1)],
        GatewayError("down", status_code=503),
        [make_notification(1), make_notification(2)],
    ]
    await engine.start()
    await engine.poll()

    assert await engine.poll() is None
    assert [n.id for n in store.active] == [1]
    assert engine.stats["failures"] == 1

    fresh = await engine.poll()
    assert [n.id for n in fresh] == [2]
    toasts.clear()


@pytest.mark.asyncio
async def test_failed_first_poll_keeps_baseline_unset(engine, mock_gateway, toasts, make_notification):
    mock_gateway.fetch_active_notifications.side_effect = [
        GatewayError("down"),
        [make_notification(1)],
    ]
    await engine.start()

    assert await engine.poll() is None
    assert engine.has_baseline is False
    assert await engine.poll() == []
    assert len(toasts) == 0


@pytest.mark.asyncio
async def test_late_response_after_generation_change_is_discarded(engine, mock_gateway, store, make_notification):
    await engine.start()

    async def fetch_then_supersede(user_id):
        engine._generation += 1
        return [make_notification(1)]

    mock_gateway.fetch_active_notifications.side_effect = fetch_then_supersede

    assert await engine.poll() is None
    assert store.active == []
    assert engine.stats["discarded"] == 1


@pytest.mark.asyncio
async def test_inflight_poll_cancelled_on_identity_change(engine, mock_gateway, session, store, make_notification):
    release = asyncio.Event()

    async def slow_fetch(user_id):
        await release.wait()
        return [make_notification(1)]

    mock_gateway.fetch_active_notifications.side_effect = slow_fetch
    await engine.start()

    task = asyncio.create_task(engine.poll())
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    session.set_user(SessionUser(name="bob"), persist=False)
    release.set()

    assert await task is None
    assert store.active == []


@pytest.mark.asyncio
async def test_inflight_poll_discarded_on_stop(engine, mock_gateway, store, make_notification):
    release = asyncio.Event()

    async def slow_fetch(user_id):
        await release.wait()
        return [make_notification(1)]

    mock_gateway.fetch_active_notifications.side_effect = slow_fetch
    await engine.start()

    task = asyncio.create_task(engine.poll())
    await asyncio.sleep(0)
    await engine.stop()
    release.set()

    assert await task is None
    assert store.active == []


@pytest.mark.asyncio
async def test_scheduled_tick_skipped_while_poll_in_flight(engine, mock_gateway):
    await engine.start()

    async with engine._poll_lock:
        await engine._scheduled_poll()

    mock_gateway.fetch_active_notifications.assert_not_called()


@pytest.mark.asyncio
async def test_manual_refresh_waits_for_inflight_poll(engine, mock_gateway, make_notification):
    release = asyncio.Event()
    order = []

    async def fetch(user_id):
        order.append("start")
        await release.wait()
        order.append("end")
        return [make_notification(1)]

    mock_gateway.fetch_active_notifications.side_effect = fetch
    await engine.start()

    first = asyncio.create_task(engine.poll())
    await asyncio.sleep(0)
    second = asyncio.create_task(engine.refresh())
    await asyncio.sleep(0)
    release.set()
    await asyncio.gather(first, second)

    assert order == ["start", "end", "start", "end"]


# ── Reload & local insertions ──


@pytest.mark.asyncio
async def test_reload_is_silent_and_becomes_baseline(engine, mock_gateway, store, toasts, broker,
                                                    make_notification):
    received = []
    broker.subscribe(NOTIFICATION_NEW, received.append)
    mock_gateway.fetch_active_notifications.side_effect = [
        [make_notification(1)],
        [make_notification(1), make_notification(3), make_notification(7)],
        [make_notification(1), make_notification(3), make_notification(7)],
    ]
    mock_gateway.fetch_trashed_notifications.return_value = [make_notification(9)]
    await engine.start()
    await engine.poll()

    assert await engine.reload() is True
    assert [n.id for n in store.active] == [1, 3, 7]
    assert [n.id for n in store.trash] == [9]
    assert len(toasts) == 0
    assert received == []
    assert engine.stats["announced"] == 0

    # reloaded ids are part of the baseline, so the next poll stays quiet too
    assert await engine.poll() == []
    assert len(toasts) == 0


@pytest.mark.asyncio
async def test_reload_failure_returns_false(engine, mock_gateway, store, make_notification):
    mock_gateway.fetch_active_notifications.side_effect = [
        [make_notification(1)],
        GatewayError("down"),
    ]
    await engine.start()
    await engine.poll()

    assert await engine.reload() is False
    assert [n.id for n in store.active] == [1]


@pytest.mark.asyncio
async def test_remember_suppresses_announcement(engine, mock_gateway, toasts, make_notification):
    mock_gateway.fetch_active_notifications.side_effect = [
        [make_notification(1)],
        [make_notification(1), make_notification(2)],
    ]
    await engine.start()
    await engine.poll()

    engine.remember(2)
    assert await engine.poll() == []
    assert len(toasts) == 0


@pytest.mark.asyncio
async def test_get_status(engine, mock_scheduler):
    await engine.start()
    status = engine.get_status()

    assert status["running"] is True
    assert status["user"] == "alice"
    assert status["interval_seconds"] == 30
    assert status["next_poll"] is None
    assert "stats" in status


@pytest.mark.asyncio
async def test_owned_scheduler_polls_on_start(mock_gateway, session, store, make_notification):
    mock_gateway.fetch_active_notifications.return_value = [make_notification(1)]
    engine = SyncEngine(mock_gateway, session, store, interval_ms=60_000)
    await engine.start()

    for _ in range(50):
        if engine.has_baseline:
            break
        await asyncio.sleep(0.02)

    assert [n.id for n in store.active] == [1]
    assert engine.get_status()["next_poll"] is not None

    await engine.stop()
    assert engine.scheduler.get_job(SyncEngine.JOB_ID) is None
    await asyncio.sleep(0.05)  # shutdown is dispatched onto the loop
    assert engine.scheduler.running is False


@pytest.mark.asyncio
async def test_poll_after_stop_never_touches_store(engine, mock_gateway, store, make_notification):
    mock_gateway.fetch_active_notifications.return_value = [make_notification(1)]
    await engine.start()
    await engine.stop()

    assert await engine.refresh() is None
    assert await engine.reload() is False
    mock_gateway.fetch_active_notifications.assert_not_called()
    assert store.active == []
    assert engine.get_status()["user"] is None


@pytest.mark.asyncio
async def test_new_unread_reach_an_empty_toast_queue(engine, mock_gateway, toasts, make_notification):
    mock_gateway.fetch_active_notifications.side_effect = [
        [],
        [make_notification(4)],
    ]
    await engine.start()
    await engine.poll()
    assert len(toasts) == 0

    await engine.poll()
    assert toasts.ids == [4]
    toasts.clear()
