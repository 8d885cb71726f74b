import pytest

from conftest import build
from gantry_headless.commands import MOVE_USAGE, handle_command, parse_move_arguments


def test_parse_move_arguments():
    assert parse_move_arguments("move 9 8 3.5 2") == (9, 8, 3.5, 2.0)


@pytest.mark.parametrize(
    "command",
    ["move", "move 1 2 3", "move 1 2 3 4 5", "move a 2 3 4", "move 1.5 2 3 4", "move 9 8 3 -1",
     "move 10 8 3 nan", "move 10 8 3 inf", "move 10 8 nan 2", "move 10 8 -inf 2"],
)
def test_parse_move_rejects_malformed(command):
    with pytest.raises(ValueError) as exc:
        parse_move_arguments(command)
    assert str(exc.value).startswith(MOVE_USAGE)


def test_malformed_move_is_echoed(aligned):
    _, controller = aligned
    ok, msg = handle_command(controller, "move 9 nine 3 2")
    assert not ok
    assert msg.startswith(MOVE_USAGE)
    assert controller.state.status_text == msg
    assert not controller.scheduler.busy


def test_unknown_command(aligned):
    _, controller = aligned
    assert handle_command(controller, "dance") == (False, "Unknown command: dance")
    assert controller.state.messages[-1] == "Unknown command: dance"


def test_commands_are_trimmed(aligned):
    _, controller = aligned
    assert handle_command(controller, "  init \n") == (True, "Pistons are already initialized.")


def test_abort_reports_and_clears(aligned):
    _, controller = aligned
    handle_command(controller, "unlock")
    handle_command(controller, "move 10 8 3 2")
    assert handle_command(controller, "abort") == (True, "Aborting movement.")
    assert not controller.scheduler.busy


def test_debug_closest_grid_reports_match(aligned):
    _, controller = aligned
    ok, msg = handle_command(controller, "debug_closest_grid")
    assert ok
    assert "closest = (8, 8)" in msg
    assert "grid distance = 0.00" in msg


def test_debug_closest_grid_off_centre_start():
    _, controller = build(start=(10.0, 9.0, 3.0))
    ok, msg = handle_command(controller, "debug_closest_grid")
    assert ok
    assert "closest = (10, 9)" in msg
    assert "current welder pos = (10.0, 9.0)" in msg


@pytest.mark.parametrize("time_arg", ["nan", "inf", "-inf"])
def test_non_finite_move_time_queues_nothing(aligned, time_arg):
    sim, controller = aligned
    handle_command(controller, "unlock")

    ok, msg = handle_command(controller, f"move 10 8 3 {time_arg}")

    assert not ok
    assert msg.startswith(MOVE_USAGE)
    assert not controller.scheduler.busy
    for _ in range(5):
        sim.advance(0.25)
        controller.tick(0.25)
    assert controller.state.position.as_tuple()[:2] == (8.0, 8.0)
    assert sim.head_position()[:2] == (8, 8)
    assert all(p.velocity == 0.0 for p in controller.rig.all_pistons())


def test_controller_refuses_non_finite_time(aligned):
    _, controller = aligned
    controller.try_unlock()
    ok, msg = controller.request_move(10, 8, 3.0, float("nan"))
    assert not ok
    assert "invalid move time" in msg
    assert len(controller.scheduler.queue) == 0
