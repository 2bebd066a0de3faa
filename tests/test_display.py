import pytest

from mode7racer.display import BUFFER_SIZE, HEIGHT, WIDTH, Display, DisplayConfig


@pytest.fixture
def display():
    with Display() as d:
        yield d


def test_buffers_start_black(display):
    assert len(display.frame_buffer) * 2 == BUFFER_SIZE
    assert display.pixel(0, 0) == 0
    assert display.pixel(WIDTH - 1, HEIGHT - 1) == 0


def test_default_config_is_square_screen():
    assert DisplayConfig().width == 720
    assert DisplayConfig().height == 720


def test_clear_fills_every_pixel(display):
    display.clear(0xF800)
    assert set(display.frame_buffer) == {0xF800}


def test_draw_pixel_and_read_back(display):
    display.draw_pixel(5, 7, 0x07E0)
    assert display.pixel(5, 7) == 0x07E0
    assert display.pixel(6, 7) == 0


def test_draw_pixel_off_screen_ignored(display):
    display.draw_pixel(-1, 0, 0xFFFF)
    display.draw_pixel(WIDTH, 0, 0xFFFF)
    display.draw_pixel(0, HEIGHT, 0xFFFF)
    assert sum(display.frame_buffer) == 0


def test_fill_rect_clips_negative_origin(display):
    display.fill_rect(-2, -3, 5, 6, 0x001F)
    assert display.pixel(2, 2) == 0x001F
    assert display.pixel(3, 2) == 0
    assert display.pixel(2, 3) == 0
    assert display.frame_buffer.count(0x001F) == 9


def test_fill_rect_clips_far_edge(display):
    display.fill_rect(WIDTH - 2, HEIGHT - 1, 10, 10, 0xAAAA)
    assert display.frame_buffer.count(0xAAAA) == 2
    assert display.pixel(WIDTH - 1, HEIGHT - 1) == 0xAAAA


def test_fill_rect_entirely_off_screen(display):
    display.fill_rect(WIDTH + 5, 0, 10, 10, 0xAAAA)
    assert display.frame_buffer.count(0xAAAA) == 0


def test_draw_scanline_truncated_to_width(display):
    display.draw_scanline(3, [0x1111] * (WIDTH + 50))
    assert display.frame_buffer.count(0x1111) == WIDTH
    assert display.pixel(WIDTH - 1, 3) == 0x1111
    assert display.pixel(0, 4) == 0


def test_draw_scanline_partial_row(display):
    display.draw_scanline(0, [1, 2, 3])
    assert [display.pixel(x, 0) for x in range(4)] == [1, 2, 3, 0]


def test_draw_scanline_bad_row_ignored(display):
    display.draw_scanline(HEIGHT, [9] * 4)
    display.draw_scanline(-1, [9] * 4)
    assert display.frame_buffer.count(9) == 0


def test_swap_buffers_keeps_frames_apart(display):
    display.draw_pixel(1, 1, 0x4242)
    display.swap_buffers()
    assert display.pixel(1, 1) == 0
    display.swap_buffers()
    assert display.pixel(1, 1) == 0x4242


def test_flush_counts_frames(display):
    for _ in range(3):
        display.flush()
    assert display.frame_count == 3


def test_pixel_off_screen_raises(display):
    with pytest.raises(IndexError):
        display.pixel(WIDTH, 0)


def test_closed_display_ignores_drawing():
    display = Display()
    display.close()
    display.flush()
    display.clear(0xFFFF)
    assert display.frame_count == 0
    assert display.is_open is False
    with pytest.raises(RuntimeError):
        display.pixel(0, 0)