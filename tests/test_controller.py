from datetime import date
from typing import List, Optional

import pytest

from gantt_scheduler.autoscroll import AutoScroller, Viewport
from gantt_scheduler.config import GridConfig
from gantt_scheduler.controller import (
    Cancelled,
    Creating,
    DragController,
    DragMode,
    DragPreview,
    Dragging,
    Idle,
    Previewing,
    ResizingEnd,
    ResizingStart,
)
from gantt_scheduler.models import SCHEDULES, TASKS
from gantt_scheduler.scheduling import delete_task
from gantt_scheduler.store import ChangeEvent, TaskStore
from gantt_scheduler.validation import RejectReason


# Day N of January 2025 starts at pixel (N - 1) * 40. Rows are 36 px high:
# F1 at y 0-35, F2 at 36-71, P1 at 72-107. Task A's bar spans x 160-400 and
# task B's spans x 440-600, both on F1.
GRID = GridConfig(cell_width=40, row_height=36, epoch=date(2025, 1, 1))
ON_F1 = 10
ON_F2 = 50


@pytest.fixture
def controller(store: TaskStore, january) -> DragController:
    controller = DragController(store, january["schedule"].id, grid=GRID)
    yield controller
    controller.dispose()


def _task(store: TaskStore, task_id: str):
    return store.get_by_id(TASKS, task_id)


def test_move_commits_snapped_candidate(controller: DragController, store: TaskStore, january) -> None:
    a = january["a"]
    state = controller.on_pointer_down(200, ON_F1)
    assert isinstance(state, Dragging)
    assert state.grab_offset == 40

    preview = controller.on_pointer_move(240, ON_F1)
    assert preview.valid
    assert preview.candidate_range.start == date(2025, 1, 6)
    assert preview.candidate_range.end == date(2025, 1, 11)
    assert isinstance(controller.state, Previewing)

    result = controller.on_pointer_up(240, ON_F1)

    assert result.committed
    assert result.task_id == a.id
    moved = _task(store, a.id)
    assert (moved.start_date, moved.end_date) == (date(2025, 1, 6), date(2025, 1, 11))
    assert moved.duration_days == a.duration_days
    assert isinstance(controller.state, Idle)


def test_move_over_sibling_is_rejected_and_snaps_back(
    controller: DragController, store: TaskStore, january
) -> None:
    a, b = january["a"], january["b"]
    controller.on_pointer_down(200, ON_F1)

    preview = controller.on_pointer_move(320, ON_F1)
    assert preview.candidate_range.start == date(2025, 1, 8)
    assert preview.reason is RejectReason.OVERLAP
    assert preview.error.conflict_id == b.id
    assert "\n" in preview.tooltip

    result = controller.on_pointer_up()

    assert not result.committed
    assert result.error.reason is RejectReason.OVERLAP
    assert _task(store, a.id) == a
    assert isinstance(controller.state, Idle)


def test_move_past_schedule_end_is_out_of_bounds(controller: DragController, january) -> None:
    controller.on_pointer_down(200, ON_F1)
    preview = controller.on_pointer_move(1280, ON_F1)

    assert preview.candidate_range.start == date(2025, 2, 1)
    assert preview.reason is RejectReason.OUT_OF_BOUNDS
    assert not controller.on_pointer_up().committed


def test_resize_end_before_start_never_reaches_the_store(
    controller: DragController, store: TaskStore, january
) -> None:
    events: List[ChangeEvent] = []
    store.subscribe("*", events.append)

    assert isinstance(controller.on_pointer_down(398, ON_F1), ResizingEnd)
    preview = controller.on_pointer_move(100, ON_F1)
    assert preview.reason is RejectReason.INVERTED_RANGE
    assert preview.mode is DragMode.RESIZE_END

    result = controller.on_pointer_up()

    assert not result.committed
    assert result.error.reason is RejectReason.INVERTED_RANGE
    assert events == []
    assert _task(store, january["a"].id) == january["a"]


def test_resize_end_may_touch_the_next_task(controller: DragController, store: TaskStore, january) -> None:
    controller.on_pointer_down(398, ON_F1)
    controller.on_pointer_move(470, ON_F1)

    assert controller.on_pointer_up().committed
    resized = _task(store, january["a"].id)
    assert (resized.start_date, resized.end_date) == (date(2025, 1, 5), date(2025, 1, 12))


def test_resize_start_only_moves_the_start(controller: DragController, store: TaskStore, january) -> None:
    assert isinstance(controller.on_pointer_down(162, ON_F1), ResizingStart)
    preview = controller.on_pointer_move(90, ON_F1)
    assert preview.candidate_range == preview.candidate.date_range
    assert (preview.candidate.start_date, preview.candidate.end_date) == (
        date(2025, 1, 3),
        date(2025, 1, 10),
    )

    assert controller.on_pointer_up().committed
    assert _task(store, january["a"].id).start_date == date(2025, 1, 3)


@pytest.mark.parametrize(
    "x, expected_state",
    [(402, ResizingEnd), (398, ResizingEnd), (158, ResizingStart), (163, ResizingStart)],
)
def test_resize_without_travel_keeps_the_dates(
    controller: DragController, store: TaskStore, january, x, expected_state
) -> None:
    events: List[ChangeEvent] = []
    store.subscribe(TASKS, events.append)

    assert isinstance(controller.on_pointer_down(x, ON_F1), expected_state)
    preview = controller.on_pointer_move(x, ON_F1)
    assert (preview.candidate.start_date, preview.candidate.end_date) == (
        date(2025, 1, 5),
        date(2025, 1, 10),
    )
    result = controller.on_pointer_up()

    assert not result.committed
    assert events == []
    assert _task(store, january["a"].id) == january["a"]


def test_resize_follows_pointer_travel_from_the_grab_point(
    controller: DragController, store: TaskStore, january
) -> None:
    controller.on_pointer_down(402, ON_F1)
    # One cell to the right of where the edge was grabbed.
    controller.on_pointer_move(442, ON_F1)

    assert controller.on_pointer_up().committed
    assert _task(store, january["a"].id).end_date == date(2025, 1, 11)


def test_pointer_up_samples_a_new_release_position(controller: DragController, store: TaskStore, january) -> None:
    controller.on_pointer_down(200, ON_F1)
    controller.on_pointer_move(320, ON_F1)

    result = controller.on_pointer_up(240, ON_F1)

    assert result.committed
    assert _task(store, january["a"].id).start_date == date(2025, 1, 6)


def test_click_without_movement_is_not_a_commit(controller: DragController, store: TaskStore, january) -> None:
    states = []
    controller.subscribe_state(states.append)

    controller.on_pointer_down(200, ON_F1)
    result = controller.on_pointer_up(200, ON_F1)

    assert result.clicked and not result.committed
    assert result.task_id == january["a"].id
    assert [type(state) for state in states] == [Dragging, Idle]
    assert _task(store, january["a"].id) == january["a"]


def test_drop_on_the_original_position_changes_nothing(
    controller: DragController, store: TaskStore, january
) -> None:
    events: List[ChangeEvent] = []
    store.subscribe(TASKS, events.append)

    controller.on_pointer_down(200, ON_F1)
    controller.on_pointer_move(240, ON_F1)
    result = controller.on_pointer_up(200, ON_F1)

    assert not result.committed and not result.clicked
    assert result.error is None
    assert events == []


def test_cancel_discards_the_candidate(controller: DragController, store: TaskStore, january) -> None:
    states = []
    controller.subscribe_state(states.append)
    controller.on_pointer_down(200, ON_F1)
    controller.on_pointer_move(240, ON_F1)

    assert controller.cancel() is True
    assert controller.cancel() is False

    assert isinstance(controller.state, Idle)
    assert [type(state) for state in states] == [Dragging, Previewing, Cancelled, Idle]
    assert _task(store, january["a"].id) == january["a"]
    assert controller.on_pointer_up(240, ON_F1).committed is False


def test_commit_revalidates_against_current_siblings(
    controller: DragController, store: TaskStore, january
) -> None:
    controller.on_pointer_down(200, ON_F1)
    assert controller.on_pointer_move(240, ON_F1).valid

    # Another edit lands between the last preview and the drop.
    store.update(TASKS, january["b"].id, {"start_date": date(2025, 1, 10)})
    result = controller.on_pointer_up()

    assert not result.committed
    assert result.error.reason is RejectReason.OVERLAP
    assert result.error.conflict_id == january["b"].id
    assert _task(store, january["a"].id).start_date == date(2025, 1, 5)


def test_moving_to_another_row(controller: DragController, store: TaskStore, january) -> None:
    controller.on_pointer_down(200, ON_F1)
    preview = controller.on_pointer_move(200, ON_F2)
    assert preview.candidate.resource_id == january["f2"].id
    assert preview.y == 36

    assert controller.on_pointer_up().committed
    assert _task(store, january["a"].id).resource_id == january["f2"].id


def test_pointer_below_the_grid_targets_the_last_row(controller: DragController, january) -> None:
    controller.on_pointer_down(200, ON_F1)
    preview = controller.on_pointer_move(200, 500)
    assert preview.candidate.resource_id == january["p1"].id
    assert preview.valid

    controller.on_pointer_move(200)
    assert controller.state.candidate.resource_id == january["p1"].id


def test_resource_type_checks_apply_to_cross_row_moves(store: TaskStore, january) -> None:
    controller = DragController(store, january["schedule"].id, grid=GRID, check_resource_types=True)
    controller.on_pointer_down(200, ON_F1)

    assert controller.on_pointer_move(200, 80).reason is RejectReason.INCOMPATIBLE_RESOURCE
    assert controller.on_pointer_move(200, ON_F2).valid
    controller.dispose()


@pytest.mark.parametrize(
    "x, y, expected",
    [
        (158, ON_F1, DragMode.RESIZE_START),
        (165, ON_F1, DragMode.RESIZE_START),
        (404, ON_F1, DragMode.RESIZE_END),
        (300, ON_F1, DragMode.MOVE),
        (500, ON_F1, DragMode.MOVE),
    ],
)
def test_hit_test_picks_edges_within_tolerance(controller: DragController, x, y, expected) -> None:
    task, mode = controller.hit_test(x, y)
    assert mode is expected


@pytest.mark.parametrize("x, y", [(420, ON_F1), (300, ON_F2), (300, -5), (300, 400)])
def test_hit_test_misses(controller: DragController, x, y) -> None:
    assert controller.hit_test(x, y) is None


def test_pointer_down_on_empty_cell_stays_idle_without_create(controller: DragController) -> None:
    assert isinstance(controller.on_pointer_down(300, ON_F2), Idle)
    assert controller.on_pointer_move(320, ON_F2) is None


def test_drag_create_adds_a_task(store: TaskStore, january) -> None:
    schedule_id = january["schedule"].id
    controller = DragController(
        store, schedule_id, grid=GRID, allow_create=True, new_task_name="Capping"
    )

    assert isinstance(controller.on_pointer_down(170, ON_F2), Creating)
    preview = controller.on_pointer_move(85, ON_F1)
    assert preview.task_id is None
    assert preview.candidate.resource_id == january["f2"].id
    assert (preview.candidate.start_date, preview.candidate.end_date) == (
        date(2025, 1, 3),
        date(2025, 1, 5),
    )

    result = controller.on_pointer_up()

    assert result.committed
    created = _task(store, result.task_id)
    assert created.name == "Capping"
    assert created.resource_id == january["f2"].id
    assert result.task_id in store.get_by_id(SCHEDULES, schedule_id).task_ids
    controller.dispose()


def test_begin_drag_rejects_bad_requests(controller: DragController) -> None:
    with pytest.raises(ValueError):
        controller.begin_drag("anything", 0, DragMode.CREATE)
    assert controller.begin_drag("missing", 0) is False
    assert controller.begin_create("no-such-row", 0) is False


def test_deleting_the_dragged_task_cancels_the_gesture(
    controller: DragController, store: TaskStore, january
) -> None:
    controller.on_pointer_down(200, ON_F1)
    controller.on_pointer_move(240, ON_F1)

    delete_task(store, january["a"].id)

    assert isinstance(controller.state, Idle)
    assert controller.on_pointer_up().committed is False


def test_previews_are_published_and_cleared(controller: DragController) -> None:
    previews: List[Optional[DragPreview]] = []
    unsubscribe = controller.subscribe_preview(previews.append)

    controller.on_pointer_down(200, ON_F1)
    controller.on_pointer_move(240, ON_F1)
    controller.on_pointer_up()

    first, cleared = previews
    assert cleared is None
    assert (first.x, first.y, first.width) == (200, 0, 240)
    assert first.tooltip == "2025-01-06 ~ 2025-01-11 (6 days)"

    unsubscribe()
    controller.on_pointer_down(200, ON_F1)
    controller.on_pointer_move(240, ON_F1)
    assert len(previews) == 2


def test_dispose_releases_store_subscriptions(store: TaskStore, january) -> None:
    baseline = store.listener_count
    controller = DragController(store, january["schedule"].id, grid=GRID)
    assert store.listener_count == baseline + 1

    controller.on_pointer_down(200, ON_F1)
    controller.dispose()

    assert store.listener_count == baseline
    assert isinstance(controller.state, Idle)
    assert isinstance(controller.on_pointer_down(200, ON_F1), Idle)


def test_auto_scroll_resamples_without_pointer_movement(qapp, store: TaskStore, january) -> None:
    viewport = Viewport(scroll_x=0, width=400, scroll_width=1240)
    scroller = AutoScroller(viewport)
    controller = DragController(store, january["schedule"].id, grid=GRID, scroller=scroller)
    previews: List[Optional[DragPreview]] = []
    controller.subscribe_preview(previews.append)

    controller.on_pointer_down(200, ON_F1)
    controller.on_pointer_move(390, ON_F1)
    assert scroller.velocity == pytest.approx(17.5)
    assert previews[-1].candidate.start_date == date(2025, 1, 10)

    for _ in range(3):
        assert scroller.tick()

    assert viewport.scroll_x == pytest.approx(52.5)
    assert previews[-1].candidate.start_date == date(2025, 1, 11)

    controller.on_pointer_up()
    assert not scroller.active
    controller.dispose()
    assert scroller.on_scroll is None
