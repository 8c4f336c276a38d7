import threading

from wlh.tasks import TaskGroup


def test_join_collects_results():
    tg = TaskGroup("t")
    tg.spawn("a", lambda: None)
    tg.spawn("b", lambda: None)
    assert tg.join(timeout=5) is True
    results = tg.results()
    assert set(results) == {"a", "b"}
    assert not any(r.crashed for r in results.values())


def test_crash_is_recorded_not_propagated():
    tg = TaskGroup("t")
    err = ValueError("bad")

    def crash():
        raise err

    tg.spawn("crash", crash)
    tg.spawn("ok", lambda: None)
    assert tg.join(timeout=5) is True
    assert tg.results()["crash"].error is err
    assert tg.results()["ok"].crashed is False


def test_join_times_out_while_running():
    release = threading.Event()
    tg = TaskGroup("t")
    tg.spawn("blocked", release.wait)
    assert tg.join(timeout=0.05) is False
    release.set()
    assert tg.join(timeout=5) is True
