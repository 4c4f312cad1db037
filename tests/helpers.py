"""Fake device and in-memory image builders shared by the tests."""

import io
import threading

from PIL import Image as PILImage

from layerdeck.errors import TransportError
from layerdeck.transport import Transport


class FakeTransport(Transport):
    """In-memory deck that records every call made to it."""

    path = "/dev/hidraw-fake"
    model = "Stream Deck Fake"
    serial_number = "FAKE0001"
    firmware_version = "1.0.0"

    def __init__(self, key_size=(8, 8), key_layout=(2, 3)):
        self.key_size = key_size
        self.key_layout = key_layout
        self.key_count = key_layout[0] * key_layout[1]
        self.calls = []
        self.handler = None
        self.loop = None
        self.closed = False
        self.fail = False
        self._lock = threading.Lock()

    def set_key_handler(self, handler, loop):
        self.handler = handler
        self.loop = loop

    def fill_key(self, index, rgb):
        self._record("fill_key", index, rgb)

    def clear_key(self, index):
        self._record("clear_key", index)

    def fill_panel(self, rgb):
        self._record("fill_panel", rgb)

    def clear_panel(self):
        self._record("clear_panel")

    def set_brightness(self, percent):
        self._record("set_brightness", percent)

    def close(self):
        self._record("close")
        self.closed = True

    # Test helpers

    def press(self, index):
        self.handler(index, True)

    def release(self, index):
        self.handler(index, False)

    def named(self, name):
        return [args for call, *args in self.calls if call == name]

    def last_key_write(self, index):
        """Last fill_key buffer or None for a clear_key of index."""
        for call, *args in reversed(self.calls):
            if call == "fill_key" and args[0] == index:
                return args[1]
            if call == "clear_key" and args[0] == index:
                return None
        raise AssertionError("key {} was never written".format(index))

    def _record(self, name, *args):
        if self.fail:
            raise TransportError("{} failed".format(name))
        with self._lock:
            self.calls.append((name, *args))


def encode(image, fmt="PNG", **params):
    buf = io.BytesIO()
    image.save(buf, fmt, **params)
    return buf.getvalue()


def png_bytes(size, color):
    """Encoded PNG of a single solid color."""
    return encode(PILImage.new("RGBA", size, color))


def gif_bytes(colors, size=(8, 8), duration=20, loop=None):
    """Encoded animated GIF with one solid frame per color."""
    frames = [PILImage.new("RGB", size, color) for color in colors]
    params = {"save_all": True, "append_images": frames[1:], "duration": duration}
    if loop is not None:
        params["loop"] = loop
    return encode(frames[0], "GIF", **params)


def pixel(rgb, size, x, y):
    """RGB tuple at (x, y) of a raw RGB buffer."""
    offset = (y * size[0] + x) * 3
    return tuple(rgb[offset:offset + 3])


