import pytest

from watchtracker.models import ListType
from watchtracker.positions import (
    EMPTY_PARTITION,
    PositionShift,
    append_position,
    close_gap,
    move_across_lists,
    reorder_within_list,
)

WQ = ListType.WATCH_QUEUE
CW = ListType.CURRENTLY_WATCHING


def _apply(positions: dict[str, int], shifts: list[PositionShift], moved: str) -> dict[str, int]:
    result = dict(positions)
    for shift in shifts:
        for name, position in positions.items():
            if name != moved and shift.applies_to(position):
                result[name] = result[name] + shift.delta
    return result


def test_append_to_empty_list_starts_at_zero():
    assert append_position(EMPTY_PARTITION) == 0


def test_append_follows_current_max():
    assert append_position(0) == 1
    assert append_position(6) == 7


def test_append_rejects_impossible_max():
    with pytest.raises(ValueError):
        append_position(-2)


def test_reorder_same_position_needs_no_shift():
    assert reorder_within_list(WQ, 2, 2) == []


def test_reorder_later_pulls_range_back():
    assert reorder_within_list(WQ, 0, 2) == [PositionShift(WQ, -1, lower=1, upper=2)]


def test_reorder_earlier_pushes_range_forward():
    assert reorder_within_list(WQ, 3, 1) == [PositionShift(WQ, 1, lower=1, upper=2)]


def test_reorder_moving_a_to_two():
    before = {"A": 0, "B": 1, "C": 2, "D": 3}
    after = _apply(before, reorder_within_list(WQ, 0, 2), moved="A")
    after["A"] = 2
    assert sorted(after, key=after.get) == ["B", "C", "A", "D"]
    assert sorted(after.values()) == [0, 1, 2, 3]


def test_reorder_moving_d_to_front():
    before = {"A": 0, "B": 1, "C": 2, "D": 3}
    after = _apply(before, reorder_within_list(WQ, 3, 0), moved="D")
    after["D"] = 0
    assert after == {"D": 0, "A": 1, "B": 2, "C": 3}


def test_move_across_lists_shifts_both_partitions():
    shifts = move_across_lists(WQ, 0, CW, 0)
    assert shifts == [
        PositionShift(WQ, -1, lower=1),
        PositionShift(CW, 1, lower=0),
    ]


def test_move_across_lists_requires_two_list_types():
    with pytest.raises(ValueError):
        move_across_lists(WQ, 0, WQ, 1)


def test_close_gap_pulls_everything_after_removed_slot():
    before = {"A": 0, "C": 2}
    after = _apply(before, close_gap(WQ, 1), moved="B")
    assert after == {"A": 0, "C": 1}


def test_shift_bounds_are_inclusive_and_open_ended():
    shift = PositionShift(WQ, 1, lower=2)
    assert not shift.applies_to(1)
    assert shift.applies_to(2)
    assert shift.applies_to(50)
    bounded = PositionShift(WQ, -1, lower=1, upper=3)
    assert bounded.applies_to(3)
    assert not bounded.applies_to(4)
