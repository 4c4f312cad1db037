"""Property-based tests using Hypothesis."""

import math

from hypothesis import given, settings, strategies as st
from PIL import Image as PILImage

from layerdeck.compose import compose_key, key_offset
from layerdeck.frames import fit_image, make_variant, scale_frame, split_frame
from layerdeck.interaction import SlotTable
from layerdeck.sources import parse_color

sizes = st.integers(min_value=1, max_value=48)
channels = st.integers(min_value=0, max_value=255)


class TestFrameProperties:
    """Frame geometry never changes the target size."""

    @settings(max_examples=50, deadline=None)
    @given(width=sizes, height=sizes, factor=st.floats(min_value=0, max_value=2, exclude_min=True))
    def test_scale_keeps_size(self, width, height, factor):
        """A press-scaled frame has the size of its base frame."""
        image = PILImage.new("RGBA", (width, height), (255, 0, 0, 255))
        assert scale_frame(image, factor).size == (width, height)

    @settings(max_examples=50, deadline=None)
    @given(
        src=st.tuples(sizes, sizes),
        dst=st.tuples(sizes, sizes),
        fit=st.sampled_from(["contain", "cover", "fill"]),
        enlarge=st.booleans(),
    )
    def test_fit_produces_target_size(self, src, dst, fit, enlarge):
        """Every fit mode yields an image of exactly the target size."""
        image = PILImage.new("RGBA", src, (0, 0, 255, 255))
        assert fit_image(image, dst[0], dst[1], fit, enlarge).size == dst

    @settings(max_examples=50, deadline=None)
    @given(width=sizes, height=sizes, cell_w=st.integers(1, 16), cell_h=st.integers(1, 16))
    def test_split_cell_count(self, width, height, cell_w, cell_h):
        """Splitting covers the frame with whole cells, row by row."""
        cells = split_frame(PILImage.new("RGBA", (width, height)), cell_w, cell_h)
        assert len(cells) == math.ceil(width / cell_w) * math.ceil(height / cell_h)
        assert all(cell.size == (cell_w, cell_h) for cell in cells)


class TestComposeProperties:
    @given(
        rows=st.integers(1, 8),
        columns=st.integers(1, 8),
        key_w=st.integers(1, 96),
        key_h=st.integers(1, 96),
        data=st.data(),
    )
    def test_key_offset_inside_panel(self, rows, columns, key_w, key_h, data):
        """Every slot's tile lies fully on the panel canvas."""
        index = data.draw(st.integers(0, rows * columns - 1))
        x, y = key_offset(index, columns, key_w, key_h)
        assert 0 <= x <= key_w * columns - key_w
        assert 0 <= y <= key_h * rows - key_h
        assert x // key_w + (y // key_h) * columns == index

    @settings(max_examples=30, deadline=None)
    @given(colors=st.lists(st.tuples(channels, channels, channels, channels), min_size=1, max_size=4))
    def test_composed_key_is_rgb_of_key_size(self, colors):
        """However many layers are stacked the buffer is flat RGB."""
        layers = [make_variant(PILImage.new("RGBA", (6, 5), color)) for color in colors]
        assert len(compose_key(layers)) == 6 * 5 * 3


class TestSourceProperties:
    @given(color=st.tuples(channels, channels, channels))
    def test_rgb_tuple_gets_opaque_alpha(self, color):
        assert parse_color(color) == color + (255,)

    @given(color=st.tuples(channels, channels, channels))
    def test_hex_string_matches_tuple(self, color):
        text = "#{:02x}{:02x}{:02x}".format(*color)
        assert parse_color(text) == parse_color(color)

    @given(color=st.tuples(channels, channels, channels, channels))
    def test_bare_hex_and_mapping_match_tuple(self, color):
        text = "{:02x}{:02x}{:02x}{:02x}".format(*color)
        mapping = dict(zip(("red", "green", "blue", "alpha"), color))
        assert parse_color(text) == color
        assert parse_color(mapping) == color


class TestSlotTableProperties:
    @given(entries=st.lists(st.tuples(st.sampled_from("abc"), st.integers(0, 14)), max_size=30))
    def test_length_counts_distinct_slots(self, entries):
        """Length is the number of distinct (page, index) pairs set."""
        table = SlotTable()
        for page, index in entries:
            table.set(page, index, True)

        assert len(table) == len(set(entries))
        for page, index in set(entries):
            assert table.pop(page, index)
        assert not table
