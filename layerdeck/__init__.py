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

"""Layered pages, keys and animated images for Elgato Stream Deck devices"""

from .config import DeckOptions, KeyAttachment, KeyOptions, PageAttachment, PageOptions, apply_layout, load_layout
from .deck import Deck, open_deck
from .errors import DeckError, LifecycleError, TransportError, UnrecognizedSourceError, ValidationError
from .image import Image
from .key import Key
from .page import Page
from .sources import Empty, Layer, SolidColor
from .transport import DeviceInfo, StreamDeckTransport, Transport, list_devices

__version__ = "1.0.0"

__all__ = [
    "Deck",
    "DeckError",
    "DeckOptions",
    "DeviceInfo",
    "Empty",
    "Image",
    "Key",
    "KeyAttachment",
    "KeyOptions",
    "Layer",
    "LifecycleError",
    "Page",
    "PageAttachment",
    "PageOptions",
    "SolidColor",
    "StreamDeckTransport",
    "Transport",
    "TransportError",
    "UnrecognizedSourceError",
    "ValidationError",
    "apply_layout",
    "list_devices",
    "load_layout",
    "open_deck",
]
