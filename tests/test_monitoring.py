import time

import pytest

from eventgraph.monitoring import PerfCounter


def test_perf_counter_measures():
    counter = PerfCounter("test_operation")

    def slow_answer():
        time.sleep(0.01)
        return 42

    assert counter.measure(slow_answer) == 42
    counter.measure(lambda: time.sleep(0.01))

    average = counter.average_time()
    assert counter.count == 2
    assert average >= 0.009
    assert average < 0.05


def test_perf_counter_empty():
    counter = PerfCounter("empty")
    assert counter.average_time() == 0.0
    assert counter.count == 0


def test_perf_counter_failed_operation_not_recorded():
    counter = PerfCounter("failing")

    def fail():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        counter.measure(fail)
    assert counter.count == 0
    assert counter.average_time() == 0.0


def test_perf_counter_total_time_accumulates():
    counter = PerfCounter("total")
    counter.measure(lambda: time.sleep(0.005))
    counter.measure(lambda: time.sleep(0.005))
    assert counter.total_time >= 0.009
    assert counter.average_time() == pytest.approx(counter.total_time / 2)