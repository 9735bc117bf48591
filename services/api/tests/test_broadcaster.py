import threading

import anyio
import pytest

from bikebusters.services.ws import LocationBroadcaster, LocationUpdated

pytestmark = pytest.mark.anyio


def _event(n: int) -> LocationUpdated:
    return LocationUpdated(bike={"id": f"bike-{n}"}, coordinate=(5.0 + n, 52.0))


async def test_every_subscriber_gets_each_event_once():
    broadcaster = LocationBroadcaster()
    first, second = broadcaster.subscribe(), broadcaster.subscribe()

    broadcaster.publish(_event(1))
    broadcaster.publish(_event(2))

    for sub in (first, second):
        assert (await sub.get()).bike["id"] == "bike-1"
        assert (await sub.get()).bike["id"] == "bike-2"
        assert sub._queue.empty()


async def test_late_subscriber_misses_earlier_events():
    broadcaster = LocationBroadcaster()
    broadcaster.publish(_event(1))
    late = broadcaster.subscribe()
    broadcaster.publish(_event(2))

    assert (await late.get()).bike["id"] == "bike-2"
    assert late._queue.empty()


async def test_unsubscribed_viewer_receives_nothing():
    broadcaster = LocationBroadcaster()
    sub = broadcaster.subscribe()
    broadcaster.unsubscribe(sub)
    broadcaster.unsubscribe(sub)

    broadcaster.publish(_event(1))

    assert broadcaster.subscriber_count == 0
    assert sub._queue.empty()


async def test_publish_without_subscribers_is_fine():
    LocationBroadcaster().publish(_event(1))


async def test_slow_viewer_drops_overflow():
    broadcaster = LocationBroadcaster(queue_size=2)
    slow = broadcaster.subscribe()
    for n in range(5):
        broadcaster.publish(_event(n))

    assert slow.dropped == 3
    assert (await slow.get()).bike["id"] == "bike-0"
    assert (await slow.get()).bike["id"] == "bike-1"


async def test_publish_from_worker_thread():
    broadcaster = LocationBroadcaster()
    sub = broadcaster.subscribe()

    thread = threading.Thread(target=broadcaster.publish, args=(_event(7),))
    thread.start()
    thread.join()

    with anyio.fail_after(2):
        event = await sub.get()
    assert event.to_message() == {
        "type": "location.updated",
        "data": {"bike": {"id": "bike-7"}, "coordinate": {"longitude": 12.0, "latitude": 52.0}},
    }
