"""Tests for the frame pipeline primitives."""

import pytest
from PIL import Image as PILImage

from helpers import gif_bytes, png_bytes
from layerdeck import frames

RED = (255, 0, 0, 255)
BLUE = (0, 0, 255, 255)


def solid_image(size, color):
    return PILImage.new("RGBA", size, color)


class TestDecode:
    """Tests for decoding encoded sources."""

    def test_png_bytes(self):
        sheet = frames.decode(png_bytes((10, 6), RED))
        assert sheet.size == (10, 6)
        assert len(sheet.frames) == 1
        assert sheet.loop_count == 0
        assert sheet.format == "PNG"
        assert sheet.frames[0].mode == "RGBA"

    def test_path(self, tmp_path):
        path = tmp_path / "red.png"
        path.write_bytes(png_bytes((4, 4), RED))
        sheet = frames.decode(path)
        assert sheet.frames[0].getpixel((0, 0)) == RED

    def test_animated_gif_metadata(self):
        data = gif_bytes([(255, 0, 0), (0, 255, 0), (0, 0, 255)], duration=20, loop=2)
        sheet = frames.decode(data)

        assert len(sheet.frames) == 3
        assert sheet.loop_count == 2
        assert sheet.delays == [20, 20, 20]
        assert sheet.metadata["pages"] == 3
        assert sheet.metadata["format"] == "GIF"

    def test_garbage_raises(self):
        with pytest.raises(OSError):
            frames.decode(b"definitely not an image")


class TestFitImage:
    """Tests for resizing a layer to the target size."""

    def test_contain_letterboxes_transparent(self):
        fitted = frames.fit_image(solid_image((40, 20), RED), 72, 72)
        assert fitted.size == (72, 72)
        # 72x36 band centered vertically
        assert fitted.getpixel((36, 0))[3] == 0
        assert fitted.getpixel((36, 36)) == RED
        assert fitted.getpixel((36, 71))[3] == 0

    def test_contain_enlarges_square(self):
        fitted = frames.fit_image(solid_image((40, 40), RED), 72, 72)
        assert fitted.getpixel((0, 0)) == RED
        assert fitted.getpixel((71, 71)) == RED

    def test_no_enlarge_centers_with_padding(self):
        fitted = frames.fit_image(solid_image((40, 40), RED), 72, 72, enlarge=False)
        assert fitted.size == (72, 72)
        assert fitted.getpixel((15, 15))[3] == 0
        assert fitted.getpixel((16, 16)) == RED
        assert fitted.getpixel((55, 55)) == RED
        assert fitted.getpixel((56, 56))[3] == 0

    def test_cover_fills_canvas(self):
        fitted = frames.fit_image(solid_image((40, 20), RED), 72, 72, fit="cover")
        assert fitted.size == (72, 72)
        assert fitted.getpixel((0, 0)) == RED
        assert fitted.getpixel((71, 71)) == RED

    def test_fill_stretches(self):
        fitted = frames.fit_image(solid_image((40, 20), RED), 10, 30, fit="fill")
        assert fitted.size == (10, 30)
        assert fitted.getpixel((0, 0)) == RED


class TestScaleFrame:
    """Tests for the press-scaled variant."""

    def test_shrink_pads_transparent(self):
        scaled = frames.scale_frame(solid_image((8, 8), RED), 0.5)
        assert scaled.size == (8, 8)
        assert scaled.getpixel((0, 0))[3] == 0
        assert scaled.getpixel((4, 4)) == RED

    def test_grow_crops_center(self):
        scaled = frames.scale_frame(solid_image((8, 8), RED), 1.5)
        assert scaled.size == (8, 8)
        assert scaled.getpixel((0, 0)) == RED

    def test_tiny_factor_keeps_one_pixel(self):
        scaled = frames.scale_frame(solid_image((8, 8), RED), 0.01)
        assert scaled.size == (8, 8)
        assert sum(1 for p in scaled.getdata() if p[3]) == 1


class TestSplitFrame:
    """Tests for cutting panel frames into key cells."""

    def test_row_major_order(self):
        image = solid_image((6, 4), RED)
        image.paste(solid_image((3, 4), BLUE), (3, 0))

        cells = frames.split_frame(image, 3, 2)

        assert len(cells) == 4
        assert [cell.size for cell in cells] == [(3, 2)] * 4
        assert cells[0].getpixel((0, 0)) == RED
        assert cells[1].getpixel((0, 0)) == BLUE
        assert cells[2].getpixel((0, 0)) == RED
        assert cells[3].getpixel((0, 0)) == BLUE


class TestBuildFrame:
    """Tests for producing every variant of a frame."""

    def test_base_only(self):
        frame = frames.build_frame(solid_image((4, 4), RED))
        assert frame.scaled is None
        assert frame.split is None
        assert len(frame.base.with_alpha) == 4 * 4 * 4
        assert len(frame.base.without_alpha) == 4 * 4 * 3

    def test_scale_of_one_is_skipped(self):
        assert frames.build_frame(solid_image((4, 4), RED), scale=1).scaled is None

    def test_scaled_and_split(self):
        frame = frames.build_frame(solid_image((4, 4), RED), scale=0.5, split=(2, 2))
        assert frame.scaled.size == (4, 4)
        assert len(frame.split) == 4

    def test_variant_prefers_scaled_when_pressed(self):
        frame = frames.build_frame(solid_image((4, 4), RED), scale=0.5)
        assert frame.variant(pressed=True) is frame.scaled
        assert frame.variant(pressed=False) is frame.base

    def test_variant_falls_back_to_base(self):
        frame = frames.build_frame(solid_image((4, 4), RED))
        assert frame.variant(pressed=True) is frame.base

    def test_flatten_uses_black_backing(self):
        frame = frames.build_frame(solid_image((2, 2), (255, 255, 255, 0)))
        assert frame.base.without_alpha == bytes(2 * 2 * 3)


class TestComposite:
    """Tests for compositing sheets."""

    def test_overlay_contributes_first_frame(self):
        base = frames.decode(gif_bytes([(255, 0, 0), (0, 255, 0)], size=(4, 4), loop=0))
        overlay_image = PILImage.new("RGBA", (4, 4), (0, 0, 0, 0))
        overlay_image.putpixel((0, 0), BLUE)
        overlay = frames.Sheet([overlay_image])

        result = frames.composite_sheets([base, overlay])

        assert len(result.frames) == 2
        assert result.loop_count == 0
        for frame in result.frames:
            assert frame.getpixel((0, 0)) == BLUE
        assert result.frames[1].getpixel((3, 3)) == (0, 255, 0, 255)

    def test_overlay_is_clipped_to_base(self):
        base = frames.solid(4, 4, RED)
        overlay = frames.solid(8, 2, BLUE)

        result = frames.composite_sheets([base, overlay])

        assert result.size == (4, 4)
        assert result.frames[0].getpixel((3, 1)) == BLUE
        assert result.frames[0].getpixel((3, 3)) == RED

    def test_overlay_offset(self):
        base = frames.solid(4, 4, RED)
        overlay = frames.solid(2, 2, BLUE)

        result = frames.composite_sheets([base, overlay], [(0, 0), (2, 1)])

        assert result.frames[0].getpixel((2, 1)) == BLUE
        assert result.frames[0].getpixel((3, 2)) == BLUE
        assert result.frames[0].getpixel((1, 1)) == RED
        assert result.frames[0].getpixel((3, 3)) == RED

    def test_negative_offset_is_clipped(self):
        base = frames.solid(4, 4, RED)
        overlay = frames.solid(2, 2, BLUE)

        result = frames.composite_sheets([base, overlay], [(0, 0), (-1, -1)])

        assert result.frames[0].getpixel((0, 0)) == BLUE
        assert result.frames[0].getpixel((1, 0)) == RED

    def test_base_offset_leaves_transparency(self):
        base = frames.solid(4, 4, RED)

        result = frames.composite_sheets([base], [(2, 0)])

        assert result.frames[0].getpixel((1, 0)) == (0, 0, 0, 0)
        assert result.frames[0].getpixel((2, 0)) == RED

    def test_snapshot_copies_pixels(self):
        sheet = frames.solid(2, 2, RED)
        copy = frames.snapshot(sheet)
        copy.frames[0].putpixel((0, 0), BLUE)
        assert sheet.frames[0].getpixel((0, 0)) == RED
