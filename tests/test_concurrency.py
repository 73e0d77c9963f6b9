import threading

from webindex.backend.concurrency import run_batches, split_into_batches, split_into_chunks


def test_split_into_batches():
    assert split_into_batches(range(5), 2) == [[0, 1], [2, 3], [4]]
    assert split_into_batches([], 3) == []


def test_split_into_chunks():
    chunks = split_into_chunks(range(10), 3)
    assert len(chunks) == 3
    assert sum(chunks, []) == list(range(10))
    assert split_into_chunks([1, 2], 8) == [[1], [2]]
    assert split_into_chunks([], 4) == []


def test_results_keep_batch_order():
    outcome = run_batches(sum, [[1, 2], [3], [4, 5]], max_workers=3)
    assert outcome.results == [3, 3, 9]
    assert not outcome.partial


def test_inline_failure_is_counted():
    def explode(batch):
        if batch == [2]:
            raise ValueError("bad batch")
        return batch[0]

    outcome = run_batches(explode, [[1], [2], [3]], max_workers=1)
    assert outcome.results == [1, None, 3]
    assert outcome.failed == 1
    assert outcome.partial


def test_slow_batch_is_dropped_after_timeout():
    release = threading.Event()

    def work(batch):
        if batch == ["slow"]:
            release.wait(5)
        return batch[0]

    try:
        outcome = run_batches(work, [["fast"], ["slow"]], max_workers=2, timeout=0.2)
    finally:
        release.set()

    assert outcome.results == ["fast", None]
    assert outcome.timed_out == 1
    assert outcome.partial
