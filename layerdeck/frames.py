###############################################################
#
# LayerDeck – layered pages, keys and images for StreamDeck
#
# Copyright (C) 2026 Peter Damerau
# https://www.talla83.de
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
###############################################################

"""
Frame pipeline primitives

Blocking Pillow operations used by Image while loading. Everything here
works on plain PIL images in RGBA mode and is safe to run in a worker
thread: no function touches shared state.
"""

import io
import math
import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from PIL import Image as PILImage
from PIL import ImageSequence

# Delay used when a frame does not carry its own (milliseconds)
DEFAULT_FRAME_DELAY = 100

# Transparent areas are flattened onto this color
NEUTRAL_BACKING = (0, 0, 0, 255)

TRANSPARENT = (0, 0, 0, 0)


@dataclass(frozen=True)
class FrameVariant:
    """One rendition of a frame as raw buffers"""

    width: int
    height: int
    with_alpha: bytes      # RGBA, 4 bytes per pixel
    without_alpha: bytes   # RGB, flattened onto NEUTRAL_BACKING

    @property
    def size(self):
        return (self.width, self.height)

    def to_image(self):
        """Rebuild an RGBA PIL image from the raw buffer"""
        return PILImage.frombytes("RGBA", self.size, self.with_alpha)


@dataclass(frozen=True)
class Frame:
    """
    A single animation frame

    Attributes:
        base: Full size frame
        scaled: Press-scaled frame, same size as base, or None
        split: Row-major cells of the frame for panel backgrounds, or None
    """

    base: FrameVariant
    scaled: Optional[FrameVariant] = None
    split: Optional[Tuple[FrameVariant, ...]] = None

    def variant(self, pressed=False):
        """Scaled variant while pressed if there is one, base otherwise"""
        if pressed and self.scaled is not None:
            return self.scaled
        return self.base


@dataclass
class Sheet:
    """
    Decoded frames of one source

    Attributes:
        frames: RGBA PIL images, all the same size
        loop_count: Number of passes, 0 loops forever
        delays: Per-frame delay in milliseconds
        format: Decoder format name ("PNG", "GIF", ...) or None for fills
    """

    frames: List[PILImage.Image]
    loop_count: int = 0
    delays: List[int] = field(default_factory=list)
    format: Optional[str] = None

    @property
    def size(self):
        return self.frames[0].size

    @property
    def metadata(self):
        width, height = self.size
        return {
            "format": self.format,
            "width": width,
            "height": height,
            "pages": len(self.frames),
            "loop": self.loop_count,
            "delay": list(self.delays),
        }


def decode(source):
    """
    Decode a file path or encoded bytes into a Sheet

    Every frame of a multi-frame format (GIF, APNG, WebP) is read.

    Raises:
        OSError or ValueError from Pillow if the data cannot be decoded
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        fp = io.BytesIO(bytes(source))
    else:
        fp = os.fspath(source)

    with PILImage.open(fp) as image:
        image_format = image.format
        loop = image.info.get("loop")

        frames = []
        delays = []
        for frame in ImageSequence.Iterator(image):
            frames.append(frame.convert("RGBA"))
            delays.append(_frame_delay(frame.info.get("duration")))

    if len(frames) > 1:
        # No loop extension means the animation plays once
        loop_count = 1 if loop is None else int(loop)
    else:
        loop_count = 0

    return Sheet(frames, loop_count, delays, image_format)


def solid(width, height, rgba):
    """Single frame Sheet filled with one RGBA color"""
    return Sheet([PILImage.new("RGBA", (width, height), tuple(rgba))], delays=[DEFAULT_FRAME_DELAY])


def snapshot(sheet):
    """Copy of a Sheet that shares no pixel data with the original"""
    return Sheet(
        [frame.copy() for frame in sheet.frames],
        sheet.loop_count,
        list(sheet.delays),
        sheet.format,
    )


def fit_image(image, width, height, fit="contain", enlarge=True):
    """
    Fit an image into a width x height transparent canvas

    The image is scaled while maintaining aspect ratio and centered on
    the canvas, like a letterboxed splash screen.

    Args:
        image: RGBA PIL image
        width, height: Target size
        fit: "contain" letterboxes, "cover" crops the overflow, "fill" stretches
        enlarge: If False an image smaller than the target is never scaled up

    Returns:
        RGBA PIL image of exactly width x height
    """
    img_w, img_h = image.size

    if fit == "fill":
        new_w, new_h = width, height
    else:
        img_ratio = img_w / img_h
        box_ratio = width / height
        # contain fits the long side, cover fits the short side
        fit_width = (img_ratio > box_ratio) == (fit == "contain")
        if fit_width:
            new_w = width
            new_h = max(1, round(width / img_ratio))
        else:
            new_h = height
            new_w = max(1, round(height * img_ratio))

    if not enlarge:
        new_w = min(new_w, img_w)
        new_h = min(new_h, img_h)

    if (new_w, new_h) != image.size:
        image = image.resize((new_w, new_h), PILImage.LANCZOS)

    if image.size == (width, height):
        return image

    # Center on canvas; negative offsets crop the overflow of "cover"
    canvas = PILImage.new("RGBA", (width, height), TRANSPARENT)
    canvas.paste(image, ((width - new_w) // 2, (height - new_h) // 2))
    return canvas


def resize_sheet(sheet, width, height, fit="contain", enlarge=True):
    """Fit every frame of a Sheet to width x height"""
    frames = [fit_image(frame, width, height, fit, enlarge) for frame in sheet.frames]
    return Sheet(frames, sheet.loop_count, list(sheet.delays), sheet.format)


def alpha_over(base, overlay, offset=(0, 0)):
    """Draw overlay over base at offset, clipped to the size of base"""
    if overlay.size != base.size or offset != (0, 0):
        # paste() clips, including negative offsets
        canvas = PILImage.new("RGBA", base.size, TRANSPARENT)
        canvas.paste(overlay, offset)
        overlay = canvas
    return PILImage.alpha_composite(base, overlay)


def composite_sheets(sheets, offsets=None):
    """
    Composite Sheets bottom to top

    The first sheet is the base layer and keeps its size, frames, loop
    count and delays. Overlays contribute their first frame to every
    frame. offsets holds a (left, top) pair per sheet; a base offset
    shifts the base frames inside their own bounds.
    """
    if offsets is None:
        offsets = [(0, 0)] * len(sheets)

    base = sheets[0]
    base_offset = tuple(offsets[0])
    overlays = [(sheet.frames[0], tuple(offset)) for sheet, offset in zip(sheets[1:], offsets[1:])]
    if not overlays and base_offset == (0, 0):
        return base

    frames = []
    for frame in base.frames:
        if base_offset != (0, 0):
            frame = alpha_over(PILImage.new("RGBA", frame.size, TRANSPARENT), frame, base_offset)
        for overlay, offset in overlays:
            frame = alpha_over(frame, overlay, offset)
        frames.append(frame)

    return Sheet(frames, base.loop_count, list(base.delays), base.format)


def flatten(image):
    """Replace transparency with NEUTRAL_BACKING and drop the alpha channel"""
    backing = PILImage.new("RGBA", image.size, NEUTRAL_BACKING)
    return PILImage.alpha_composite(backing, image).convert("RGB")


def make_variant(image):
    """Raw RGBA and flattened RGB buffers of an RGBA image"""
    return FrameVariant(
        image.width,
        image.height,
        image.tobytes(),
        flatten(image).tobytes(),
    )


def scale_frame(image, factor):
    """
    Press-scale a frame while keeping its size

    The frame is resized by factor, rounding down with a 1px floor, then
    center-cropped back to size when larger or centered on a transparent
    canvas when smaller.
    """
    width, height = image.size
    scaled_w = max(1, math.floor(width * factor))
    scaled_h = max(1, math.floor(height * factor))

    scaled = image.resize((scaled_w, scaled_h), PILImage.LANCZOS)

    if factor < 1:
        canvas = PILImage.new("RGBA", (width, height), TRANSPARENT)
        canvas.paste(scaled, ((width - scaled_w) // 2, (height - scaled_h) // 2))
        return canvas

    left = math.floor(scaled_w / 2 - width / 2)
    top = math.floor(scaled_h / 2 - height / 2)
    return scaled.crop((left, top, left + width, top + height))


def split_frame(image, cell_width, cell_height):
    """Cut a frame into row-major cells of cell_width x cell_height"""
    cells = []
    for top in range(0, image.height, cell_height):
        for left in range(0, image.width, cell_width):
            cells.append(image.crop((left, top, left + cell_width, top + cell_height)))
    return cells


def build_frame(image, scale=None, split=None):
    """
    Produce every variant of one frame

    Args:
        image: RGBA PIL image of the frame
        scale: Press-scale factor; None or 1 skips the scaled variant
        split: (width, height) of split cells, or None

    Returns:
        Frame
    """
    scaled = None
    if scale is not None and scale != 1:
        scaled = make_variant(scale_frame(image, scale))

    cells = None
    if split is not None:
        cells = tuple(make_variant(cell) for cell in split_frame(image, *split))

    return Frame(make_variant(image), scaled, cells)


def _frame_delay(duration):
    if not duration:
        return DEFAULT_FRAME_DELAY
    return int(round(duration))
