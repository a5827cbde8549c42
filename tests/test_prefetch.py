import random

import pytest

from conftest import make_content
from content import UpstreamError
from periods import Period, all_combinations
from prefetch import PrefetchCache, PrefetchSlot

FIRST = Period(1500, 1550)
SECOND = Period(1551, 1600)


class QueuedSpawn:
    """Collects spawned jobs so a test can decide when they finish"""

    def __init__(self):
        self.jobs = []

    def __call__(self, fn, *args):
        self.jobs.append((fn, args))

    def run_next(self):
        fn, args = self.jobs.pop(0)
        fn(*args)


@pytest.fixture()
def fetched():
    return []


@pytest.fixture()
def spawn():
    return QueuedSpawn()


@pytest.fixture()
def cache(fetched, spawn):
    def fetch(region, period):
        fetched.append((region, period.start))
        return make_content(period.label)
    return PrefetchCache(fetch, spawn=spawn, rng=random.Random(3))


def test_consume_requires_exact_match(cache, spawn):
    cache.schedule_next_period('Europe', FIRST)
    spawn.run_next()

    assert cache.consume(PrefetchSlot.NEXT_PERIOD, 'Europe', 1551) is None
    assert cache.consume(PrefetchSlot.NEXT_PERIOD, 'Asia', 1500) is None
    payload = cache.consume(PrefetchSlot.NEXT_PERIOD, 'Europe', 1500)
    assert payload.period == '1500-1550'
    # evicted on use
    assert cache.consume(PrefetchSlot.NEXT_PERIOD, 'Europe', 1500) is None


def test_duplicate_schedule_is_ignored(cache, spawn, fetched):
    assert cache.schedule_next_period('Europe', FIRST)
    assert not cache.schedule_next_period('Europe', FIRST)
    spawn.run_next()
    assert not cache.schedule_next_period('Europe', FIRST)
    assert fetched == [('Europe', 1500)]


def test_superseded_result_is_discarded_and_latest_key_fetched(cache, spawn, fetched):
    cache.schedule_next_period('Europe', FIRST)
    cache.schedule_next_period('Europe', SECOND)
    # Only one request in flight per slot
    assert len(spawn.jobs) == 1

    spawn.run_next()
    assert cache.peek(PrefetchSlot.NEXT_PERIOD) is None
    assert cache.is_pending(PrefetchSlot.NEXT_PERIOD)

    spawn.run_next()
    assert fetched == [('Europe', 1500), ('Europe', 1551)]
    assert cache.peek(PrefetchSlot.NEXT_PERIOD).key == ('Europe', 1551)


def test_failures_leave_the_slot_empty(spawn):
    def fetch(region, period):
        raise UpstreamError('down')

    cache = PrefetchCache(fetch, spawn=spawn)
    cache.schedule_next_period('Europe', FIRST)
    spawn.run_next()
    assert cache.peek(PrefetchSlot.NEXT_PERIOD) is None
    assert not cache.is_pending(PrefetchSlot.NEXT_PERIOD)
    # Can be asked for again after a failure
    assert cache.schedule_next_period('Europe', FIRST)


def test_region_change_drops_next_period_entry(cache, spawn):
    cache.schedule_next_period('Europe', FIRST)
    spawn.run_next()
    cache.on_region_change('Europe')
    assert cache.peek(PrefetchSlot.NEXT_PERIOD) is not None
    cache.on_region_change('Asia')
    assert cache.peek(PrefetchSlot.NEXT_PERIOD) is None


def test_region_change_drops_in_flight_result(cache, spawn):
    cache.schedule_next_period('Europe', FIRST)
    cache.on_region_change('Asia')
    spawn.run_next()
    assert cache.peek(PrefetchSlot.NEXT_PERIOD) is None


def test_random_unseen_skips_scored_combinations(cache):
    combinations = all_combinations()
    scored = {(region, period.label) for region, period in combinations[1:]}
    region, period = cache.pick_unseen(scored)
    assert (region, period) == combinations[0]


def test_random_unseen_falls_back_to_everything(cache):
    scored = {(region, period.label) for region, period in all_combinations()}
    pick = cache.pick_unseen(scored)
    assert pick in all_combinations()


def test_random_pick_is_reproducible_with_a_seed(fetched):
    picks = []
    for _ in range(2):
        cache = PrefetchCache(lambda r, p: None, spawn=lambda *a: None, rng=random.Random(11))
        picks.append(cache.pick_unseen(set()))
    assert picks[0] == picks[1]


def test_take_checks_both_slots(cache, spawn):
    region, period = cache.schedule_random_unseen(set())
    spawn.run_next()
    assert cache.take(region, period.start).period == period.label
    assert cache.peek(PrefetchSlot.RANDOM_UNSEEN) is None


def test_miss_drops_pending_request_for_that_period(cache, spawn, fetched):
    cache.schedule_next_period('Europe', FIRST)
    assert cache.take('Europe', 1500) is None

    spawn.run_next()
    assert fetched == [('Europe', 1500)]
    assert cache.peek(PrefetchSlot.NEXT_PERIOD) is None
    assert not cache.is_pending(PrefetchSlot.NEXT_PERIOD)


def test_miss_for_another_period_keeps_pending_request(cache, spawn):
    cache.schedule_next_period('Europe', SECOND)
    assert cache.take('Europe', 1500) is None

    spawn.run_next()
    assert cache.peek(PrefetchSlot.NEXT_PERIOD).key == ('Europe', 1551)
