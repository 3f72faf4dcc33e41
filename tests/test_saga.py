import pytest

from gymmini.services.saga import Saga


def test_results_flow_between_steps():
    saga = Saga("chain")
    saga.add("a", lambda r: 1)
    saga.add("b", lambda r: r["a"] + 1)
    assert saga.run() == {"a": 1, "b": 2}


def test_failure_compensates_completed_steps_in_reverse():
    undone = []

    def boom(r):
        raise RuntimeError("step c failed")

    saga = Saga("rollback")
    saga.add("a", lambda r: "A", lambda res: undone.append(res))
    saga.add("b", lambda r: "B", lambda res: undone.append(res))
    saga.add("c", boom, lambda res: undone.append("never"))

    with pytest.raises(RuntimeError, match="step c failed"):
        saga.run()
    assert undone == ["B", "A"]


def test_failing_compensation_does_not_stop_the_others():
    undone = []

    def bad_undo(res):
        raise ValueError("cannot undo")

    def boom(r):
        raise KeyError("x")

    saga = Saga("partial")
    saga.add("a", lambda r: "A", lambda res: undone.append(res))
    saga.add("b", lambda r: "B", bad_undo)
    saga.add("c", boom)

    # the original error surfaces, not the compensation's
    with pytest.raises(KeyError):
        saga.run()
    assert undone == ["A"]
