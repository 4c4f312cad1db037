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
Device transport

Transport describes what the rest of LayerDeck needs from a device.
StreamDeckTransport implements it on top of the python-elgato-streamdeck
library. All write methods block on USB I/O and are called from the
render queue through the event loop's executor.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from PIL import Image as PILImage
from StreamDeck.DeviceManager import DeviceManager
from StreamDeck.ImageHelpers import PILHelper
from StreamDeck.Transport.Transport import TransportError as StreamDeckTransportError

from .compose import key_offset
from .errors import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceInfo:
    """A connected deck as reported by enumeration"""

    path: str
    model: str
    serial_number: Optional[str] = None


class Transport:
    """
    Interface to one physical deck

    Attributes:
        path: Device path
        model: Product name
        serial_number: Serial number
        firmware_version: Firmware version
        key_count: Number of keys
        key_size: (width, height) of one key image
        key_layout: (rows, columns) of the key grid
    """

    path = None
    model = None
    serial_number = None
    firmware_version = None
    key_count = 0
    key_size = (0, 0)
    key_layout = (0, 0)

    @property
    def panel_size(self):
        rows, columns = self.key_layout
        width, height = self.key_size
        return (width * columns, height * rows)

    def set_key_handler(self, handler, loop):
        """
        Route key transitions to handler(index, pressed) on loop

        The handler must run on the event loop thread even when the
        device reports from its own reader thread.
        """
        raise NotImplementedError

    def fill_key(self, index, rgb):
        """Show an RGB buffer of key_size on key index"""
        raise NotImplementedError

    def clear_key(self, index):
        raise NotImplementedError

    def fill_panel(self, rgb):
        """Show an RGB buffer of panel_size across every key"""
        raise NotImplementedError

    def clear_panel(self):
        raise NotImplementedError

    def set_brightness(self, percent):
        raise NotImplementedError

    def close(self):
        raise NotImplementedError


class StreamDeckTransport(Transport):
    """
    Transport backed by an opened python-elgato-streamdeck device

    Args:
        deck: An opened StreamDeck.Devices.StreamDeck.StreamDeck
    """

    def __init__(self, deck):
        self._deck = deck

        with self._device():
            self.path = deck.id()
            self.model = deck.deck_type()
            self.serial_number = deck.get_serial_number()
            self.firmware_version = deck.get_firmware_version()
            self.key_count = deck.key_count()
            # IMPORTANT: key_layout() returns (rows, cols)
            self.key_layout = tuple(deck.key_layout())
            self.key_size = tuple(deck.key_image_format()["size"])

    @property
    def deck(self):
        return self._deck

    def set_key_handler(self, handler, loop):
        def key_change_callback(deck, key, state):
            # Called from the device reader thread
            logger.debug("Deck %s Key %s = %s", deck.id(), key, state)
            loop.call_soon_threadsafe(handler, key, bool(state))

        self._deck.set_key_callback(key_change_callback)

    def fill_key(self, index, rgb):
        image = PILImage.frombytes("RGB", self.key_size, rgb)
        native = PILHelper.to_native_key_format(self._deck, image)

        with self._device():
            self._deck.set_key_image(index, native)

    def clear_key(self, index):
        with self._device():
            # A None image is the deck's blank key
            self._deck.set_key_image(index, None)

    def fill_panel(self, rgb):
        # The deck has no panel-wide write, so split the canvas into key tiles
        panel = PILImage.frombytes("RGB", self.panel_size, rgb)
        key_width, key_height = self.key_size
        columns = self.key_layout[1]

        tiles = []
        for index in range(self.key_count):
            left, top = key_offset(index, columns, key_width, key_height)
            tile = panel.crop((left, top, left + key_width, top + key_height))
            tiles.append(PILHelper.to_native_key_format(self._deck, tile))

        with self._device():
            for index, native in enumerate(tiles):
                self._deck.set_key_image(index, native)

    def clear_panel(self):
        with self._device():
            for index in range(self.key_count):
                self._deck.set_key_image(index, None)

    def set_brightness(self, percent):
        with self._device():
            self._deck.set_brightness(percent)

    def close(self):
        with self._device():
            self._deck.reset()
            self._deck.close()

    @contextmanager
    def _device(self):
        """Hold the device lock and translate library transport failures"""
        try:
            with self._deck:
                yield self._deck
        except StreamDeckTransportError as err:
            raise TransportError(str(err)) from err


def _visual_decks():
    # Skip non-visual devices (e.g., Stream Deck Pedal)
    return [deck for deck in DeviceManager().enumerate() if deck.is_visual()]


def list_devices():
    """
    Enumerate connected visual decks

    Each deck is opened briefly to read its serial number. Decks that
    cannot be opened are listed without one.

    Returns:
        List of DeviceInfo
    """
    devices = []
    for deck in _visual_decks():
        serial_number = None
        try:
            deck.open()
            try:
                serial_number = deck.get_serial_number()
            finally:
                deck.close()
        except StreamDeckTransportError as err:
            logger.warning("Unable to read serial number of %s: %s", deck.id(), err)

        devices.append(DeviceInfo(deck.id(), deck.deck_type(), serial_number))

    logger.debug("Found %d deck(s)", len(devices))
    return devices


def open_transport(path_or_serial=None):
    """
    Open a deck and wrap it in a StreamDeckTransport

    Args:
        path_or_serial: Device path or serial number; the first visual
            deck is used when omitted

    Raises:
        TransportError if no matching deck is connected or it fails to open
    """
    decks = _visual_decks()
    if not decks:
        raise TransportError("No Stream Decks are connected")

    candidates = decks
    if path_or_serial is not None:
        candidates = [deck for deck in decks if deck.id() == path_or_serial]
        if not candidates:
            candidates = [deck for deck in decks if _serial_number(deck) == path_or_serial]
        if not candidates:
            raise TransportError("Unable to find Stream Deck with path or serial: {}".format(path_or_serial))

    deck = candidates[0]
    try:
        deck.open()
        deck.reset()
    except StreamDeckTransportError as err:
        raise TransportError(str(err)) from err

    transport = StreamDeckTransport(deck)
    logger.debug(
        "Opened '%s' device (serial number: '%s', fw: '%s')",
        transport.model, transport.serial_number, transport.firmware_version,
    )
    return transport


def _serial_number(deck):
    try:
        deck.open()
        try:
            return deck.get_serial_number()
        finally:
            deck.close()
    except StreamDeckTransportError:
        return None
