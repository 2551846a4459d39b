from datetime import datetime, timedelta, timezone

import pytest

from letterbox import codec
from letterbox.bitmap import CURSOR_MAX, BitmapSeries, series_path
from letterbox.errors import InvalidReading
from letterbox.layout import BOX_STATUS, LAYOUTS, RECEIVED_STATUS, Color
from letterbox.status import BoxStatus


def _count(series: BitmapSeries, color: Color) -> int:
    return sum(1 for slot in range(series.layout.slots) if series.color_at(slot) is color)


@pytest.fixture
def heartbeat():
    return BitmapSeries.new(LAYOUTS[RECEIVED_STATUS])


@pytest.fixture
def level():
    return BitmapSeries.new(LAYOUTS[BOX_STATUS])


def test_first_heartbeat_paints_no_gap(heartbeat):
    cursor = codec.update(heartbeat, 5)

    assert cursor == 5
    assert heartbeat.read_cursor() == 5
    assert heartbeat.is_initialized
    assert heartbeat.color_at(5) is Color.RECEIVED_OK
    assert _count(heartbeat, Color.RECEIVED_GAP) == 0


@pytest.mark.parametrize("i, j", [(0, 1), (0, 2), (3, 10), (40, 130)])
def test_heartbeat_gap_fill_paints_skipped_counters(heartbeat, i, j):
    codec.update(heartbeat, i)
    cursor = codec.update(heartbeat, j)

    assert cursor == j
    assert heartbeat.read_cursor() == j
    assert _count(heartbeat, Color.RECEIVED_GAP) == j - i - 1
    assert _count(heartbeat, Color.RECEIVED_OK) == 2
    assert all(heartbeat.color_at(slot) is Color.RECEIVED_GAP for slot in range(i + 1, j))


def test_heartbeat_duplicate_does_not_rewind_cursor(heartbeat):
    codec.update(heartbeat, 3)
    codec.update(heartbeat, 10)

    cursor = codec.update(heartbeat, 7)

    assert cursor == 10
    assert heartbeat.read_cursor() == 10
    assert heartbeat.color_at(7) is Color.RECEIVED_OK
    assert heartbeat.color_at(8) is Color.RECEIVED_GAP
    assert heartbeat.color_at(10) is Color.RECEIVED_OK


def test_heartbeat_uses_stored_cursor_unless_prior_given(heartbeat):
    codec.update(heartbeat, 3)
    codec.update(heartbeat, 6, prior_cursor=5)
    assert heartbeat.color_at(4) is Color.CLEAR
    assert heartbeat.color_at(5) is Color.CLEAR
    assert heartbeat.color_at(6) is Color.RECEIVED_OK


def test_update_clears_three_rows_ahead_of_cursor(heartbeat):
    width = heartbeat.layout.xmax
    last_cleared = 20 + 3 * width
    for slot in (21, 60, last_cleared, last_cleared + 1):
        heartbeat.plot(slot, Color.RECEIVED_OK)

    codec.update(heartbeat, 20)

    assert heartbeat.color_at(21) is Color.CLEAR
    assert heartbeat.color_at(60) is Color.CLEAR
    assert heartbeat.color_at(last_cleared) is Color.CLEAR
    assert heartbeat.color_at(last_cleared + 1) is Color.RECEIVED_OK


def test_level_carries_color_over_skipped_buckets(level):
    codec.update(level, 10, Color.FULL)
    codec.update(level, 14, Color.EMPTIED)

    assert level.color_at(10) is Color.FULL
    assert [level.color_at(slot) for slot in (11, 12, 13, 14)] == [Color.EMPTIED] * 4
    assert level.read_cursor() == 14


def test_level_consecutive_bucket_needs_no_fill(level):
    codec.update(level, 10, Color.FULL)
    codec.update(level, 11, Color.EMPTY)
    assert level.color_at(10) is Color.FULL
    assert level.color_at(11) is Color.EMPTY


def test_level_requires_color(level):
    with pytest.raises(InvalidReading):
        codec.update(level, 1)


@pytest.mark.parametrize("slot", [-1, 2**32, True])
def test_update_rejects_slots_outside_cursor_range(heartbeat, slot):
    with pytest.raises(InvalidReading):
        codec.update(heartbeat, slot)
    assert heartbeat.is_initialized is False


def test_level_slot_is_quarter_hour_bucket():
    base = datetime(2024, 3, 1, tzinfo=timezone.utc)
    assert codec.level_slot("1970-01-01T00:14:59Z") == 0
    assert codec.level_slot("1970-01-01T00:15:00Z") == 1
    assert codec.level_slot(base + timedelta(minutes=75)) - codec.level_slot(base) == 5


def test_device_end_to_end_day_grid(tmp_path):
    layout = LAYOUTS[BOX_STATUS]
    path = series_path(tmp_path, "A1", BOX_STATUS)
    day0 = datetime(1970, 1, 1, tzinfo=timezone.utc)

    codec.store_level(path, layout, day0, BoxStatus.FULL)
    codec.store_level(path, layout, day0 + timedelta(minutes=5 * 15), BoxStatus.FULL)
    cursor = codec.store_level(path, layout, day0 + timedelta(days=1), BoxStatus.FULL)

    series = BitmapSeries.load(path, layout)
    assert cursor == 96
    assert series.read_cursor() == 96
    assert all(series.cell(col, 0) is Color.FULL for col in range(6))
    assert series.cell(0, 1) is Color.FULL
    set_bits = [col for col in range(32) if series.image.getpixel((col, 0)) == Color.CURSOR_1]
    assert set_bits == [5, 6]


def test_store_heartbeat_flushes_each_call(tmp_path):
    layout = LAYOUTS[RECEIVED_STATUS]
    path = series_path(tmp_path, "A1", RECEIVED_STATUS)

    codec.store_heartbeat(path, layout, 1)
    codec.store_heartbeat(path, layout, 4)

    series = BitmapSeries.load(path, layout)
    assert series.read_cursor() == 4
    assert [series.color_at(slot) for slot in range(1, 5)] == [
        Color.RECEIVED_OK,
        Color.RECEIVED_GAP,
        Color.RECEIVED_GAP,
        Color.RECEIVED_OK,
    ]
    assert not list(tmp_path.glob("*.tmp"))


def test_huge_counter_jump_paints_one_lap_of_gaps(heartbeat):
    codec.update(heartbeat, 0)
    cursor = codec.update(heartbeat, CURSOR_MAX)

    layout = heartbeat.layout
    assert cursor == CURSOR_MAX
    assert heartbeat.color_at(CURSOR_MAX) is Color.RECEIVED_OK
    assert _count(heartbeat, Color.RECEIVED_OK) == 1
    assert _count(heartbeat, Color.CLEAR) == 3 * layout.xmax
    assert _count(heartbeat, Color.RECEIVED_GAP) == layout.slots - 1 - 3 * layout.xmax


def test_capped_fill_matches_full_fill_on_the_grid(level):
    lap = level.layout.slots
    codec.update(level, 5, Color.FULL)
    codec.update(level, 5 + lap + 7, Color.EMPTY)

    reference = BitmapSeries.new(level.layout)
    codec.update(reference, 5, Color.FULL)
    for slot in range(6, 5 + lap + 8):
        reference.plot(slot, Color.EMPTY)
    codec.update(reference, 5 + lap + 7, Color.EMPTY)

    assert level.image.tobytes() == reference.image.tobytes()
