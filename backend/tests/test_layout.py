import pytest
from PIL import Image

from letterbox.layout import (
    BOX_STATUS,
    LAYOUTS,
    RECEIVED_STATUS,
    Color,
    create_grid,
    get_layout,
    paint_digit,
    paint_number,
)


def _blank(width=20, height=7):
    return Image.new("P", (width, height), color=int(Color.CLEAR))


def _lit(image):
    return {
        (x, y)
        for y in range(image.height)
        for x in range(image.width)
        if image.getpixel((x, y)) == Color.BLACK
    }


def test_digit_one_is_a_single_column():
    image = _blank()
    paint_digit(image, 0, 0, 1)
    assert _lit(image) == {(1, y) for y in range(5)}


def test_digit_zero_has_hollow_center():
    image = _blank()
    paint_digit(image, 0, 0, 0)
    lit = _lit(image)
    assert (1, 0) in lit and (1, 4) in lit
    assert {(1, 1), (1, 2), (1, 3)}.isdisjoint(lit)
    assert len(lit) == 12


def test_number_uses_four_pixel_pitch_without_leading_zeros():
    image = _blank()
    paint_number(image, 0, 0, 10)
    lit = _lit(image)
    assert {(1, y) for y in range(5)} <= lit
    assert (0, 2) not in lit
    assert (4, 2) in lit and (5, 2) not in lit
    assert max(x for x, _ in lit) == 6


def test_number_zero_is_one_glyph():
    image = _blank()
    paint_number(image, 0, 0, 0)
    assert max(x for x, _ in _lit(image)) == 2


def test_paint_number_rejects_negative():
    with pytest.raises(ValueError):
        paint_number(_blank(), 0, 0, -3)


@pytest.mark.parametrize(
    "series_type, size",
    [(BOX_STATUS, (114, 116)), (RECEIVED_STATUS, (82, 122))],
)
def test_grid_dimensions(series_type, size):
    layout = LAYOUTS[series_type]
    image = create_grid(layout)
    assert image.mode == "P"
    assert image.size == size == (layout.width, layout.height)


def test_grid_frame_plot_area_and_ticks():
    layout = LAYOUTS[BOX_STATUS]
    image = create_grid(layout)
    lb, tb = layout.lborder, layout.tborder

    assert image.getpixel((0, image.height - 1)) == Color.BLACK
    assert image.getpixel((1, image.height - 2)) == Color.BORDER
    assert image.getpixel((lb, tb)) == Color.CLEAR
    assert image.getpixel((lb + layout.xmax - 1, tb + layout.ymax - 1)) == Color.CLEAR
    # minor, numbered and major tick above column 0
    assert image.getpixel((lb, tb - 1)) == Color.TICKS
    assert image.getpixel((lb, tb - 2)) == Color.TICKS
    assert image.getpixel((lb, tb - 3)) == Color.TICKS
    # minor tick only above column 4
    assert image.getpixel((lb + 4, tb - 1)) == Color.TICKS
    assert image.getpixel((lb + 4, tb - 2)) == Color.BORDER
    # hour 6 printed above column 24
    assert image.getpixel((lb + 24 - 1, 2)) == Color.BLACK


def test_grid_header_starts_with_zero_cursor():
    image = create_grid(LAYOUTS[BOX_STATUS])
    assert all(image.getpixel((bit, 0)) == Color.CURSOR_0 for bit in range(32))


def test_only_heartbeat_grid_has_counter_scale():
    received = LAYOUTS[RECEIVED_STATUS]
    image = create_grid(received)
    right_x = received.width - received.rborder + 4
    # "0" at the first row, "480" ten rows down
    assert image.getpixel((right_x, received.tborder - 1)) == Color.BLACK
    assert image.getpixel((right_x, received.tborder + 10 - 1)) == Color.BLACK
    # bottom scale "24" below column 24
    assert image.getpixel((received.lborder + 24 - 1, received.height - received.bborder + 4)) == Color.BLACK

    box = LAYOUTS[BOX_STATUS]
    box_image = create_grid(box)
    bottom_rows = range(box.height - box.bborder, box.height - 1)
    assert all(
        box_image.getpixel((x, y)) != Color.BLACK for y in bottom_rows for x in range(1, box.width - 1)
    )


def test_get_layout_unknown_type():
    with pytest.raises(ValueError):
        get_layout("rainfall")
    assert get_layout(BOX_STATUS) is LAYOUTS[BOX_STATUS]
