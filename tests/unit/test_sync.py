"""Unit tests for the dispatch poller, pool events and alerts."""
import asyncio
import pytest
from datetime import timedelta
from types import SimpleNamespace

from pharmfind.services.sync.alerts import DRIVERS, PHARMACISTS, AlertCenter
from pharmfind.services.sync.events import PoolEventBus
from pharmfind.services.sync.poller import DispatchPoller


class FakePool:
    """Pool source returning whatever the test put in it."""

    def __init__(self, claims=None):
        self.claims = claims or []
        self.calls = 0
        self.fail_next = False

    async def __call__(self):
        self.calls += 1
        if self.fail_next:
            self.fail_next = False
            raise RuntimeError("store unavailable")
        return list(self.claims)


class TestDispatchPoller:
    """Test pool polling and new-delivery alerts."""

    @pytest.mark.asyncio
    async def test_first_poll_is_baseline(self, board, alert_center, make_ready_delivery):
        await make_ready_delivery()
        poller = DispatchPoller(board.list_available, alert_center)

        assert await poller.poll_once() == []
        assert poller.known_pool_size == 1
        assert alert_center.list_for(DRIVERS) == []

    @pytest.mark.asyncio
    async def test_new_deliveries_raise_one_alert(self, board, alert_center, make_ready_delivery):
        poller = DispatchPoller(board.list_available, alert_center)
        await poller.poll_once()

        first = await make_ready_delivery()
        second = await make_ready_delivery()
        new_ids = await poller.poll_once()

        assert new_ids == sorted([first.delivery.delivery_id, second.delivery.delivery_id])
        alerts = alert_center.list_for("driver-1", broadcast=DRIVERS)
        assert len(alerts) == 1
        assert alerts[0].kind == "new_deliveries"
        assert alerts[0].message == "2 new deliveries available"

    @pytest.mark.asyncio
    async def test_claimed_deliveries_do_not_alert(self, board, alert_center, make_ready_delivery):
        order = await make_ready_delivery()
        poller = DispatchPoller(board.list_available, alert_center)
        await poller.poll_once()

        await board.claim("driver-1", order.delivery.delivery_id)

        assert await poller.poll_once() == []
        assert poller.known_pool_size == 0
        assert alert_center.list_for(DRIVERS) == []

    @pytest.mark.asyncio
    async def test_same_size_different_pool_alerts(self, alert_center):
        """A delivery replaced by another one is still news."""
        pool = FakePool([SimpleNamespace(delivery_id="DEL-A")])
        poller = DispatchPoller(pool, alert_center)
        await poller.poll_once()

        pool.claims = [SimpleNamespace(delivery_id="DEL-B")]

        assert await poller.poll_once() == ["DEL-B"]
        assert alert_center.list_for(DRIVERS)[0].message == "1 new delivery available"

    @pytest.mark.asyncio
    async def test_background_loop_survives_errors(self, alert_center):
        pool = FakePool()
        pool.fail_next = True
        poller = DispatchPoller(pool, alert_center, interval_seconds=0.01)

        poller.start()
        assert poller.running
        for _ in range(100):
            if pool.calls >= 3:
                break
            await asyncio.sleep(0.01)
        await poller.stop()

        assert pool.calls >= 3
        assert not poller.running

    @pytest.mark.asyncio
    async def test_stop_without_start(self, alert_center):
        poller = DispatchPoller(FakePool(), alert_center)

        await poller.stop()

        assert not poller.running


class TestPoolEventBus:
    """Test pool event fan-out."""

    @pytest.mark.asyncio
    async def test_events_reach_every_subscription(self):
        bus = PoolEventBus()
        first = bus.subscribe("driver-1")
        second = bus.subscribe("driver-2")

        event = bus.emit("added", "DEL-1", "ORD-1")

        assert (await first.next(timeout=1)).event_id == event.event_id
        assert [e.event_id for e in second.drain()] == [event.event_id]

    @pytest.mark.asyncio
    async def test_redelivery_is_ignored(self):
        bus = PoolEventBus()
        subscription = bus.subscribe("driver-1")
        event = bus.emit("added", "DEL-1", "ORD-1")

        bus.publish(event)

        assert len(subscription.drain()) == 1
        assert subscription.deliver(event) is False

    @pytest.mark.asyncio
    async def test_next_times_out(self):
        subscription = PoolEventBus().subscribe("driver-1")

        with pytest.raises(asyncio.TimeoutError):
            await subscription.next(timeout=0.01)

    @pytest.mark.asyncio
    async def test_wait_and_drain_wakes_on_event(self):
        bus = PoolEventBus()
        subscription = bus.subscription_for("driver-1")

        waiter = asyncio.ensure_future(subscription.wait_and_drain(timeout=1))
        await asyncio.sleep(0)
        first = bus.emit("added", "DEL-1", "ORD-1")
        events = await waiter

        assert [e.event_id for e in events] == [first.event_id]
        assert await subscription.wait_and_drain(timeout=0.01) == []

    @pytest.mark.asyncio
    async def test_subscription_for_reuses_named_subscription(self):
        bus = PoolEventBus()
        subscription = bus.subscription_for("driver-1")

        bus.emit("added", "DEL-1", "ORD-1")

        assert bus.subscription_for("driver-1") is subscription
        assert subscription.pending == 1

    @pytest.mark.asyncio
    async def test_seen_ids_are_bounded(self):
        """Old event ids are forgotten once max_seen newer ones arrive."""
        bus = PoolEventBus()
        subscription = bus.subscribe("driver-1")
        subscription.max_seen = 3
        events = [bus.emit("added", f"DEL-{i}", f"ORD-{i}") for i in range(5)]
        subscription.drain()

        assert subscription.seen_count == 3
        assert subscription.deliver(events[-1]) is False
        assert subscription.deliver(events[0]) is True

    @pytest.mark.asyncio
    async def test_slow_consumer_keeps_newest_events(self):
        bus = PoolEventBus()
        subscription = bus.subscribe("driver-1")
        subscription.max_pending = 2
        events = [bus.emit("added", f"DEL-{i}", f"ORD-{i}") for i in range(3)]

        assert [e.event_id for e in subscription.drain()] == [
            events[1].event_id,
            events[2].event_id,
        ]

    @pytest.mark.asyncio
    async def test_unsubscribed_receives_nothing(self):
        bus = PoolEventBus()
        subscription = bus.subscribe("driver-1")
        bus.unsubscribe(subscription)

        bus.emit("removed", "DEL-1", "ORD-1")

        assert subscription.drain() == []


class TestAlertCenter:
    """Test alert storage and filtering."""

    def test_alerts_filtered_by_recipient(self, clock):
        alerts = AlertCenter(clock=clock)
        alerts.emit(DRIVERS, "new_deliveries", "1 new delivery available")
        clock.advance(seconds=1)
        alerts.emit("driver-1", "notice", "Your delivery was re-dispatched")
        alerts.emit(PHARMACISTS, "delivery_failed", "Delivery failed")

        mine = alerts.list_for("driver-1", broadcast=DRIVERS)

        assert [a.kind for a in mine] == ["notice", "new_deliveries"]
        assert [a.kind for a in alerts.list_for(PHARMACISTS)] == ["delivery_failed"]

    def test_since_filter(self, clock):
        alerts = AlertCenter(clock=clock)
        alerts.emit(DRIVERS, "old", "old")
        checkpoint = clock.now
        clock.advance(minutes=1)
        alerts.emit(DRIVERS, "new", "new")

        assert [a.kind for a in alerts.list_for(DRIVERS, since=checkpoint)] == ["new"]
        assert alerts.list_for(DRIVERS, since=clock.now + timedelta(minutes=1)) == []

    def test_oldest_alerts_dropped(self, clock):
        alerts = AlertCenter(max_alerts=2, clock=clock)
        for i in range(3):
            alerts.emit(DRIVERS, f"alert-{i}", "message")

        assert [a.kind for a in alerts.list_for(DRIVERS)] == ["alert-2", "alert-1"]

        alerts.clear()
        assert alerts.list_for(DRIVERS) == []
