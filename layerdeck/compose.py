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
Final buffer assembly for a single key or the whole panel

Layers are FrameVariant objects (or None for an absent layer) and are
drawn bottom to top with alpha-over. The result is a flattened RGB
buffer ready for the transport, or None when there is nothing to draw
and the surface should be cleared instead.
"""

from PIL import Image as PILImage

from .frames import NEUTRAL_BACKING, flatten


def compose_key(layers):
    """
    Compose the buffer of one key

    Args:
        layers: [page background cell, key background, key foreground],
            each a FrameVariant or None

    Returns:
        RGB bytes, or None if every layer is absent
    """
    present = [layer for layer in layers if layer is not None]
    if not present:
        return None

    if len(present) == 1:
        # Already flattened while loading
        return present[0].without_alpha

    image = present[0].to_image()
    for layer in present[1:]:
        image = PILImage.alpha_composite(image, layer.to_image())

    return flatten(image).tobytes()


def key_offset(index, columns, key_width, key_height):
    """Top-left pixel of key slot index on the panel canvas"""
    row, column = divmod(index, columns)
    return (column * key_width, row * key_height)


def compose_panel(panel_size, key_size, columns, background, tiles):
    """
    Compose the buffer of the whole panel

    Args:
        panel_size: (width, height) of the panel canvas
        key_size: (width, height) of one key
        columns: Number of key columns
        background: Page background FrameVariant of panel size, or None
        tiles: Iterable of (index, [key background, key foreground])

    Returns:
        RGB bytes, or None if there is neither a background nor any key layer
    """
    tiles = [(index, [layer for layer in layers if layer is not None]) for index, layers in tiles]
    tiles = [(index, layers) for index, layers in tiles if layers]

    if not tiles:
        if background is None:
            return None
        return background.without_alpha

    if background is not None:
        canvas = background.to_image()
    else:
        canvas = PILImage.new("RGBA", panel_size, NEUTRAL_BACKING)

    key_width, key_height = key_size
    for index, layers in tiles:
        offset = key_offset(index, columns, key_width, key_height)
        for layer in layers:
            canvas.alpha_composite(layer.to_image(), dest=offset)

    return flatten(canvas).tobytes()
