import math

import pytest

from gantry_headless.devices import SimulatedPiston
from gantry_headless.motion import (
    MotionPlanner,
    execute_equalize_group,
    execute_move_piston,
    travel_points,
)
from gantry_headless.tasks import CommitPositionTask, EqualizeGroupTask, MoveWaypointTask


@pytest.mark.parametrize(
    "start,target",
    [
        ((8.0, 8.0, 3.0), (12.0, 8.0, 3.0)),
        ((8.0, 4.0, 3.0), (8.0, 12.0, 5.0)),
        ((6.0, 7.0, 3.0), (10.0, 10.0, 2.0)),
        ((0.1, 0.1, 1.0), (0.3, 7.7, 1.7)),
        ((8.0, 8.0, 3.0), (9.0, 9.0, 3.0)),
    ],
)
def test_waypoint_count_and_exact_final_point(start, target):
    points = travel_points(start, target)
    planar = math.hypot(target[0] - start[0], target[1] - start[1])

    assert len(points) == math.ceil(planar / 2.0)
    assert points[-1] == target
    for (ax, ay, _), (bx, by, _) in zip([start] + points[:-1], points):
        assert math.hypot(bx - ax, by - ay) <= 2.0 + 1e-9


def test_z_interpolates_with_planar_parameter():
    points = travel_points((8.0, 4.0, 3.0), (8.0, 12.0, 7.0))
    assert [p[2] for p in points] == pytest.approx([4.0, 5.0, 6.0, 7.0])


def test_no_planar_travel_yields_no_waypoints():
    assert travel_points((8.0, 8.0, 3.0), (8.0, 8.0, 5.0)) == []


def test_queue_move_splits_time_and_commits():
    queued = []
    planner = MotionPlanner(queued.append)
    done = []

    planner.queue_move((8.0, 4.0, 3.0), (8.0, 12.0, 3.0), 10.0, on_finish=lambda: done.append(True))

    waypoints = [t for t in queued if isinstance(t, MoveWaypointTask)]
    assert len(waypoints) == 4
    assert sum(t.time_s for t in waypoints) == pytest.approx(10.0)
    assert isinstance(queued[-1], CommitPositionTask)
    assert (queued[-1].x, queued[-1].y, queued[-1].z) == (8.0, 12.0, 3.0)
    queued[-1].on_finish()
    assert done == [True]


def test_queue_move_in_place_adds_settle_waypoint():
    queued = []
    MotionPlanner(queued.append).queue_move((8.0, 8.0, 3.0), (8.0, 8.0, 4.0), 2.0)

    assert len(queued) == 2
    settle = queued[0]
    assert isinstance(settle, MoveWaypointTask)
    assert (settle.x, settle.y, settle.z, settle.time_s) == (8.0, 8.0, 4.0, 2.0)


def test_queue_equalize_all_orders_vertical_first():
    queued = []
    MotionPlanner(queued.append).queue_equalize_all(1.0)

    assert len(queued) == 8
    assert all(isinstance(t, EqualizeGroupTask) for t in queued)
    assert [t.vertical for t in queued[:2]] == [True, False]


def test_move_within_speed_limit_uses_requested_time():
    piston = SimulatedPiston("p", position=2.0)
    actual = execute_move_piston(piston, 3.0, 2.0, speed_limit=1.0)

    assert actual == pytest.approx(2.0)
    assert piston.velocity == pytest.approx(0.5)
    assert (piston.min_limit, piston.max_limit) == (2.0, 3.0)


def test_move_clamped_to_speed_limit_reports_longer_time():
    piston = SimulatedPiston("p", position=0.0)
    actual = execute_move_piston(piston, 6.0, 2.0, speed_limit=1.0)

    assert actual == pytest.approx(6.0)
    assert piston.velocity == pytest.approx(1.0)


def test_retracting_move_narrows_window_below():
    piston = SimulatedPiston("p", position=5.0)
    actual = execute_move_piston(piston, 2.0, 1.0, speed_limit=1.0)

    assert actual == pytest.approx(3.0)
    assert piston.velocity == pytest.approx(-1.0)
    assert (piston.min_limit, piston.max_limit) == (2.0, 5.0)


def test_zero_time_budget_moves_at_limit():
    piston = SimulatedPiston("p", position=1.0)
    assert execute_move_piston(piston, 4.0, 0.0, speed_limit=0.5) == pytest.approx(6.0)
    assert execute_move_piston(SimulatedPiston("q", 1.0), 1.0, 0.0, speed_limit=0.5) == 0.0


def test_piston_stops_at_target_despite_late_timer():
    piston = SimulatedPiston("p", position=0.0)
    execute_move_piston(piston, 1.0, 1.0, speed_limit=1.0)
    piston.advance(3.0)
    assert piston.current_position == pytest.approx(1.0)


def test_equalize_drives_group_to_mean():
    pistons = [SimulatedPiston("a", 4.0), SimulatedPiston("b", 5.0)]
    actual = execute_equalize_group(pistons, 1.0, speed_limit=1.0)

    assert actual == pytest.approx(1.0)
    for piston in pistons:
        piston.advance(1.0)
    assert [p.current_position for p in pistons] == pytest.approx([4.5, 4.5])
