from boardresult.workflows.records import ResultRecord
from boardresult.workflows.result_cache import ResultCache


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _record(name: str) -> ResultRecord:
    return ResultRecord(student_name=name)


def test_entry_is_served_at_the_ttl_boundary_and_dropped_after() -> None:
    clock = FakeClock(1000.0)
    cache = ResultCache(ttl_seconds=86400, clock=clock)
    cache.put("dhaka|ssc|1|2|", _record("A"))

    clock.now = 1000.0 + 86400
    assert cache.get("dhaka|ssc|1|2|").student_name == "A"

    clock.now = 1000.0 + 86400.001
    assert cache.get("dhaka|ssc|1|2|") is None
    assert "dhaka|ssc|1|2|" not in cache
    assert len(cache) == 0


def test_cap_keeps_the_newest_entries() -> None:
    clock = FakeClock()
    cache = ResultCache(max_entries=1000, clock=clock)
    for idx in range(1001):
        clock.now = float(idx)
        cache.put(f"key-{idx}", _record(str(idx)))

    assert len(cache) == 1000
    assert "key-0" not in cache
    assert "key-1" in cache
    assert cache.get("key-1000").student_name == "1000"


def test_ties_on_timestamp_evict_the_earliest_insert() -> None:
    cache = ResultCache(max_entries=2, clock=FakeClock(5.0))
    cache.put("a", _record("a"))
    cache.put("b", _record("b"))
    cache.put("c", _record("c"))

    assert cache.stats() == {"size": 2, "entries": ["b", "c"]}


def test_reads_do_not_refresh_position_but_rewrites_do() -> None:
    clock = FakeClock()
    cache = ResultCache(max_entries=2, clock=clock)
    cache.put("a", _record("a"))
    clock.now = 1.0
    cache.put("b", _record("b"))
    clock.now = 2.0
    assert cache.get("a") is not None
    cache.put("c", _record("c"))
    assert "a" not in cache

    clock.now = 3.0
    cache.put("b", _record("b2"))
    clock.now = 4.0
    cache.put("d", _record("d"))
    assert set(cache.stats()["entries"]) == {"b", "d"}
    assert cache.get("b").student_name == "b2"


def test_clear_and_stats() -> None:
    cache = ResultCache(clock=FakeClock())
    cache.put("x", _record("x"))
    cache.put("y", _record("y"))

    assert cache.stats() == {"size": 2, "entries": ["x", "y"]}

    cache.clear()
    assert cache.stats() == {"size": 0, "entries": []}
