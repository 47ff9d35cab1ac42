import pytest

from aimi.core.trajectory import PhaseSpacePoint, TrajectoryHistory


def _point(t, bg=100.0):
    return PhaseSpacePoint(timestamp=t, bg=bg, delta=0.0)


def test_window_must_cover_a_few_readings():
    with pytest.raises(ValueError, match="HISTORY_WINDOW_ERROR"):
        TrajectoryHistory(window_minutes=10.0)


def test_old_points_are_evicted_on_append():
    history = TrajectoryHistory(window_minutes=90.0)
    history.append(_point(0.0))
    history.append(_point(50.0))
    history.append(_point(100.0))

    assert [p.timestamp for p in history.snapshot(100.0)] == [50.0, 100.0]
    assert len(history) == 2


def test_snapshot_applies_the_window_without_writes():
    history = TrajectoryHistory(window_minutes=90.0)
    history.append(_point(0.0))
    history.append(_point(50.0))

    assert [p.timestamp for p in history.snapshot(120.0)] == [50.0]
    assert history.evict(120.0) == 1
    assert len(history) == 1


def test_duplicate_timestamp_replaces_point():
    history = TrajectoryHistory()
    history.append(_point(5.0, bg=100.0))
    history.append(_point(5.0, bg=110.0))

    snapshot = history.snapshot(5.0)
    assert len(snapshot) == 1
    assert snapshot[0].bg == 110.0


def test_out_of_order_point_is_inserted_in_place():
    history = TrajectoryHistory()
    for t in (0.0, 5.0, 10.0, 15.0):
        history.append(_point(t))

    history.append(_point(7.0, bg=120.0))

    assert [p.timestamp for p in history.snapshot(15.0)] == [0.0, 5.0, 7.0, 10.0, 15.0]


def test_late_duplicate_replaces_only_its_own_slot():
    history = TrajectoryHistory()
    for t in (0.0, 5.0, 10.0, 15.0):
        history.append(_point(t))

    history.append(_point(5.0, bg=130.0))

    snapshot = history.snapshot(15.0)
    assert [p.timestamp for p in snapshot] == [0.0, 5.0, 10.0, 15.0]
    assert snapshot[1].bg == 130.0


def test_late_point_does_not_move_the_window():
    history = TrajectoryHistory(window_minutes=30.0)
    for t in (100.0, 105.0, 110.0):
        history.append(_point(t))

    history.append(_point(60.0))

    assert [p.timestamp for p in history.snapshot(110.0)] == [100.0, 105.0, 110.0]
    assert len(history) == 3


def test_dataframe_export():
    history = TrajectoryHistory()
    for i in range(4):
        history.append(_point(i * 5.0, bg=100.0 + i))

    frame = history.to_dataframe()

    assert len(frame) == 4
    assert list(frame["bg"]) == [100.0, 101.0, 102.0, 103.0]
    assert frame["stage"].iloc[0] == "EXHAUSTED"

    history.clear()
    assert history.to_dataframe().empty
