import threading

import pytest

from sync_latency.correlation import CorrelationEngine, iteration_pattern, parse_iteration_id
from sync_latency.errors import MalformedSignalError, UnknownIterationError
from sync_latency.iterations import IterationRecord, IterationStore

T0 = 1_700_000_000.0


def build(*ids):
    store = IterationStore()
    for i in ids:
        store.append(IterationRecord(i)).stamp("upload_started_at", T0)
    engine = CorrelationEngine(store, "web_sync_at", started_field="upload_started_at")
    return store, engine


def test_parse_iteration_id():
    pattern = iteration_pattern("iteration")
    assert parse_iteration_id("iteration-3.txt", pattern) == 3
    assert parse_iteration_id("  iteration-12.txt", pattern) == 12
    assert parse_iteration_id("iteration-.txt", pattern) is None
    assert parse_iteration_id("my-iteration-3.txt", pattern) is None
    assert parse_iteration_id(None, pattern) is None


def test_correlate_sets_timestamp_once():
    store, engine = build(3)
    assert engine.correlate("iteration-3.txt", T0 + 5.0) is True
    record = store.find_by_id(3)
    assert record.get("web_sync_at") == T0 + 5.0
    assert round(record.duration("upload_started_at", "web_sync_at"), 2) == 5.00
    # the browser timer may fire twice for the same file
    assert engine.correlate("iteration-3.txt", T0 + 9.0) is False
    assert record.get("web_sync_at") == T0 + 5.0


@pytest.mark.parametrize("name,ts", [
    ("foo-3.txt", T0),
    ("", T0),
    (None, T0),
    ("iteration-3.txt", 0),
    ("iteration-3.txt", -1.0),
    ("iteration-3.txt", None),
])
def test_malformed_signals_do_not_mutate(name, ts):
    store, engine = build(3)
    with pytest.raises(MalformedSignalError):
        engine.correlate(name, ts)
    assert store.find_by_id(3).has("web_sync_at") is False


def test_unknown_iteration():
    store, engine = build(3)
    with pytest.raises(UnknownIterationError) as exc:
        engine.correlate("iteration-99.txt", T0 + 1.0)
    assert exc.value.iteration_id == 99
    assert store.find_by_id(99) is None
    assert store.find_by_id(3).has("web_sync_at") is False


def test_handle_drops_bad_signals():
    store, engine = build(0)
    assert engine.handle("garbage", T0) is False
    assert engine.handle("iteration-5.txt", T0) is False
    assert engine.handle("iteration-0.txt", T0 + 1) is True


def test_signal_before_record_is_dropped_not_replayed():
    store, engine = build()
    assert engine.handle("iteration-0.txt", T0 + 1) is False
    store.append(IterationRecord(0))
    assert store.find_by_id(0).has("web_sync_at") is False


def test_engines_for_different_fields_share_a_store():
    store, web = build(4)
    local = CorrelationEngine(store, "local_deleted_at")
    web.correlate("iteration-4.txt", T0 + 1)
    local.correlate("iteration-4.txt", T0 + 2)
    record = store.find_by_id(4)
    assert record.get("web_sync_at") == T0 + 1
    assert record.get("local_deleted_at") == T0 + 2


def test_custom_prefix():
    store = IterationStore()
    store.append(IterationRecord(1))
    engine = CorrelationEngine(store, "web_sync_at", prefix="perf.run")
    assert engine.correlate("perf.run-1.txt", T0) is True
    with pytest.raises(MalformedSignalError):
        engine.correlate("perfXrun-1.txt", T0)


def test_racing_signals_for_same_id_have_one_winner():
    store, engine = build(0)
    barrier = threading.Barrier(8)
    results = []

    def fire(n):
        barrier.wait()
        results.append((engine.correlate("iteration-0.txt", T0 + n + 1), T0 + n + 1))

    threads = [threading.Thread(target=fire, args=(n,)) for n in range(8)]
    for t in threads: t.start()
    for t in threads: t.join()
    winners = [ts for won, ts in results if won]
    assert len(winners) == 1
    assert store.find_by_id(0).get("web_sync_at") == winners[0]
