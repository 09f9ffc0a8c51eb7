"""Album cache: arrival order, copies, TTL sweep, background sweeper shutdown."""
import asyncio
import threading

from app.services.media_groups.aggregator import MediaGroupAggregator


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_snapshot_in_arrival_order():
    agg = MediaGroupAggregator(ttl_seconds=600, clock=FakeClock())
    for file_id in ("f1", "f2", "f3"):
        agg.append("g", file_id)
    assert agg.snapshot("g") == ["f1", "f2", "f3"]


def test_unknown_batch_is_empty():
    agg = MediaGroupAggregator(ttl_seconds=600, clock=FakeClock())
    assert agg.snapshot("missing") == []


def test_no_dedup():
    agg = MediaGroupAggregator(ttl_seconds=600, clock=FakeClock())
    agg.append("g", "f1")
    agg.append("g", "f1")
    assert agg.snapshot("g") == ["f1", "f1"]


def test_snapshot_is_a_copy():
    agg = MediaGroupAggregator(ttl_seconds=600, clock=FakeClock())
    agg.append("g", "f1")
    snap = agg.snapshot("g")
    snap.append("intruder")
    agg.append("g", "f2")
    assert snap == ["f1", "intruder"]
    assert agg.snapshot("g") == ["f1", "f2"]


def test_sweep_uses_oldest_entry():
    clock = FakeClock(0.0)
    agg = MediaGroupAggregator(ttl_seconds=600, clock=clock)
    agg.append("old", "a1")
    clock.now = 500.0
    agg.append("old", "a2")
    agg.append("new", "b1")

    clock.now = 601.0
    assert agg.sweep() == 1
    assert agg.snapshot("old") == []
    assert agg.snapshot("new") == ["b1"]
    assert len(agg) == 1


def test_batch_empty_after_ten_minutes():
    clock = FakeClock(0.0)
    agg = MediaGroupAggregator(ttl_seconds=600, clock=clock)
    for file_id in ("f1", "f2", "f3"):
        agg.append("g", file_id)
    assert agg.sweep(now=599.0) == 0
    assert agg.snapshot("g") == ["f1", "f2", "f3"]
    assert agg.sweep(now=600.5) == 1
    assert agg.snapshot("g") == []


def test_concurrent_appends_are_all_kept():
    agg = MediaGroupAggregator(ttl_seconds=600, clock=FakeClock())

    def worker(prefix: str) -> None:
        for i in range(200):
            agg.append("g", f"{prefix}-{i}")

    threads = [threading.Thread(target=worker, args=(str(n),)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(agg.snapshot("g")) == 800


def test_collect_waits_then_snapshots():
    agg = MediaGroupAggregator(ttl_seconds=600, clock=FakeClock())
    agg.append("g", "f1")

    async def scenario():
        pending = asyncio.create_task(agg.collect("g", settle_seconds=0.05))
        await asyncio.sleep(0)
        agg.append("g", "f2")
        return await pending

    assert asyncio.run(scenario()) == ["f1", "f2"]


def test_sweeper_stops_on_event():
    clock = FakeClock(0.0)
    agg = MediaGroupAggregator(ttl_seconds=600, clock=clock)
    agg.append("g", "f1")

    async def scenario():
        stop = asyncio.Event()
        task = asyncio.create_task(agg.run_sweeper(stop, interval_seconds=0.01))
        clock.now = 700.0
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

    asyncio.run(scenario())
    assert agg.snapshot("g") == []
