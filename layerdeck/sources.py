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
Image source descriptors

An image source can be any of:

- A file path (str or os.PathLike), absolute or relative to the working directory
- Encoded image bytes (PNG, GIF, JPEG, WebP, ...)
- Another Image, whose composited frames are snapshotted
- SolidColor(color) for a solid fill of the target size
- Empty() for a fully transparent fill
- Layer(source, ...) to attach per-layer options to one of the above
- A list or tuple of sources, composited bottom to top
"""

import os
import string
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

from PIL import ImageColor

from .errors import ValidationError

FITS = ("contain", "cover", "fill")


@dataclass(frozen=True)
class SolidColor:
    """
    Solid color fill

    color accepts anything PIL.ImageColor understands ("red", "#0f0",
    "#00ff0080", "rgb(0,255,0)"), hex digits without the "#" ("0f0"),
    a tuple of 3 or 4 channel values 0-255 or a mapping with red, green,
    blue and an optional alpha.
    """

    color: Any


@dataclass(frozen=True)
class Empty:
    """Fully transparent fill"""


@dataclass(frozen=True)
class Layer:
    """
    One source with per-layer load options

    Attributes:
        source: The wrapped source
        resize: False keeps the source at its own size
        fit: "contain" (default, letterbox with transparency), "cover"
            (crop to fill) or "fill" (stretch). Setting fit forces a
            resize even when the source already has the target size.
        enlarge: False never scales a source up
        left, top: Offset in pixels of the layer on the image, may be
            negative; parts outside the image are clipped
    """

    source: Any
    resize: bool = True
    fit: Optional[str] = None
    enlarge: bool = True
    left: int = 0
    top: int = 0

    def __post_init__(self):
        for name in ("left", "top"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(name, "must be an integer, got {!r}".format(value))
        if self.fit is not None and self.fit not in FITS:
            raise ValidationError("fit", "must be one of {}, got {!r}".format(FITS, self.fit))


def flatten_sources(source):
    """
    Normalize a source into a flat list of Layer entries

    Nested lists and tuples are flattened in order. None yields an
    empty list. Entries are wrapped but not checked here; unrecognized
    shapes are reported per layer while loading.
    """
    if source is None:
        return []

    if isinstance(source, (list, tuple)):
        layers = []
        for entry in source:
            layers.extend(flatten_sources(entry))
        return layers

    if isinstance(source, Layer):
        return [source]

    return [Layer(source)]


def is_file_source(source):
    return isinstance(source, (str, os.PathLike, bytes, bytearray, memoryview))


def parse_color(color):
    """
    Parse a color into an RGBA tuple

    Returns:
        (red, green, blue, alpha) with each channel 0-255

    Raises:
        ValueError if the color cannot be understood
    """
    if isinstance(color, str):
        if len(color) in (3, 4, 6, 8) and all(char in string.hexdigits for char in color):
            color = "#" + color
        rgba = ImageColor.getrgb(color)
    elif isinstance(color, (list, tuple)) and len(color) in (3, 4):
        rgba = tuple(color)
    elif isinstance(color, Mapping):
        try:
            rgba = (color["red"], color["green"], color["blue"], color.get("alpha", 255))
        except KeyError as err:
            raise ValueError("Color {!r} is missing {}".format(color, err)) from None
    else:
        raise ValueError("Unsupported color {!r}".format(color))

    if len(rgba) == 3:
        rgba = rgba + (255,)

    for channel in rgba:
        if isinstance(channel, bool) or not isinstance(channel, int) or not 0 <= channel <= 255:
            raise ValueError("Color channels must be integers 0-255, got {!r}".format(color))

    return rgba
