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
Animated, layered images sized for a key or for the whole panel

An Image starts loading as soon as it is created and fills its frames in
the background. Pillow work runs in the event loop's default executor so
timers and key events keep flowing while large GIFs decode.
"""

import asyncio
import functools
import logging
import time

from . import frames
from .errors import DeckError, LifecycleError, UnrecognizedSourceError, ValidationError
from .events import Emitter
from .sources import Empty, SolidColor, flatten_sources, is_file_source, parse_color
from .validation import check_dimensions, check_int, check_number

logger = logging.getLogger(__name__)


class Image(Emitter):
    """
    An image to be displayed on a Page or Key

    Events:
        loaded: Sources were composited, frame metadata is known
        frame_loaded(index): A frame finished loading
        image_loaded(load_time): The last frame finished loading
        frame_updated: current_frame changed or the current frame arrived
        error(err): A layer or loading stage failed
        destroy: The image was destroyed

    The animation timer only runs while the image animates AND somebody
    listens to frame_updated.
    """

    EVENTS = frozenset({"loaded", "frame_loaded", "image_loaded", "frame_updated", "error", "destroy"})

    def __init__(self, source=None, width=None, height=None, split_frames=None, scale_frames=None):
        """
        Create an image and start loading it

        Must be called while an asyncio event loop is running.

        Args:
            source: Image source, see layerdeck.sources
            width, height: Target size in pixels, fixed for the image's lifetime
            split_frames: (width, height) of the cells to split frames into
            scale_frames: Press-scale factor between 0 and 2; 1 or None disables it
        """
        super().__init__()

        self._width = check_int("width", width, minimum=1)
        self._height = check_int("height", height, minimum=1)
        self._split_frames = check_dimensions("split_frames", split_frames, allow_none=True)
        self._scale_frames = check_number("scale_frames", scale_frames, minimum=0, maximum=2, allow_none=True)
        self._source = source

        self._event_loop = asyncio.get_running_loop()

        self._sheet = None
        self._metadata = {}
        self._frames = []
        self._frame_count = 1
        self._loop_count = 0
        self._delays = []
        self._load_time = None

        self._current_frame = 0
        self._current_loop = 0
        self._animate = None     # None until start/stop is called or loading auto-starts
        self._timer = None
        self._pending = None     # (frame, loop) waiting for its frame to load

        self._sheet_ready = self._event_loop.create_future()
        self._done = self._event_loop.create_future()
        self._load_task = self._event_loop.create_task(self._load())

    def __repr__(self):
        return "<Image {}x{} frame {}/{}>".format(
            self._width, self._height, self._current_frame, self._frame_count
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def width(self):
        return self._width

    @property
    def height(self):
        return self._height

    @property
    def size(self):
        return (self._width, self._height)

    @property
    def split_frames(self):
        """(width, height) of split cells, or None"""
        return self._split_frames

    @property
    def scale_frames(self):
        return self._scale_frames

    @property
    def source(self):
        return self._source

    @property
    def metadata(self):
        """Format, size, page count, loop and delays of the composited image"""
        return dict(self._metadata)

    @property
    def frame_count(self):
        return self._frame_count

    @property
    def current_frame(self):
        return self._current_frame

    @property
    def loop_count(self):
        """Number of passes before the animation stops, 0 loops forever"""
        return self._loop_count

    @property
    def current_loop(self):
        return self._current_loop

    @property
    def delays(self):
        return tuple(self._delays)

    @property
    def load_time(self):
        """Milliseconds the full load took, None until loaded"""
        return self._load_time

    @property
    def loaded(self):
        return self._done.done()

    @property
    def animating(self):
        return bool(self._animate)

    # ------------------------------------------------------------------
    # Frames
    # ------------------------------------------------------------------

    def get_frame(self):
        """
        Get the current frame

        Returns:
            The current Frame, the last loaded frame if the current one is
            still loading, or None if no frame has loaded yet
        """
        self._check_destroyed()

        if self._current_frame < len(self._frames):
            return self._frames[self._current_frame]
        if self._frames:
            return self._frames[-1]
        return None

    async def wait_loaded(self):
        """Wait until every frame has loaded or loading has stopped"""
        await asyncio.shield(self._done)

    async def snapshot(self):
        """
        Get a copy of the composited frames

        Waits for the sources to be composited.

        Returns:
            layerdeck.frames.Sheet owned by the caller
        """
        self._check_destroyed()

        await asyncio.shield(self._sheet_ready)
        if self._destroyed:
            raise LifecycleError(self)
        if self._sheet is None:
            raise DeckError("Image failed to load")
        return await self._run(frames.snapshot, self._sheet)

    # ------------------------------------------------------------------
    # Animation
    # ------------------------------------------------------------------

    def start_animation(self):
        """Start the animation; no-op for single frame images"""
        self._check_destroyed()

        if self._frame_count <= 1:
            return

        self._animate = True
        self._arm()

    def stop_animation(self):
        """Stop the animation, keeping the current frame"""
        if self._destroyed:
            return

        self._disarm()
        self._animate = False

    def next_frame(self):
        """
        Advance one frame, skipping the remaining delay

        At the end of a pass the animation wraps to frame 0 unless
        loop_count passes have been shown, in which case it halts on the
        last frame. If the next frame is still loading the change is applied
        once it arrives.
        """
        if self._destroyed or self._frame_count <= 1:
            return

        self._disarm()

        frame = self._current_frame + 1
        loop = self._current_loop

        if frame >= self._frame_count:
            loop += 1
            if self._loop_count > 0 and loop >= self._loop_count:
                self._animate = False
                return
            frame = 0

        if frame < len(self._frames):
            self._show(frame, loop)
        else:
            self._pending = (frame, loop)

    def set_current_frame(self, index):
        """
        Jump to a frame

        Raises:
            ValidationError if the image has a single frame or index is out of range
        """
        self._check_destroyed()

        if self._frame_count <= 1:
            raise ValidationError("current_frame", "Image does not have multiple frames")
        check_int("current_frame", index, minimum=0, maximum=self._frame_count - 1)

        self._disarm()
        self._pending = None
        self._current_frame = index
        self._emit("frame_updated")
        self._arm()

    def reset_animation(self):
        """Go back to frame 0 of loop 0; no-op for single frame images"""
        self._check_destroyed()

        if self._frame_count <= 1:
            return

        self._disarm()
        self._pending = None
        self._current_frame = 0
        self._current_loop = 0
        self._emit("frame_updated")
        self._arm()

    def destroy(self):
        """Stop animating, cancel loading and release the composited frames"""
        self._check_destroyed()

        self.stop_animation()
        self.off("frame_updated")

        self._destroyed = True
        self._pending = None
        self._load_task.cancel()
        self._sheet = None
        self._frames = []

        self._emit("destroy")

    def _show(self, frame, loop):
        self._pending = None
        self._current_frame = frame
        self._current_loop = loop
        self._emit("frame_updated")
        self._arm()

    def _arm(self):
        if (
            self._destroyed
            or not self._animate
            or self._timer is not None
            or self._frame_count <= 1
            or not self.listener_count("frame_updated")
        ):
            return

        delay = self._delays[self._current_frame] if self._current_frame < len(self._delays) else frames.DEFAULT_FRAME_DELAY
        self._timer = self._event_loop.call_later(delay / 1000, self._tick)

    def _disarm(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _tick(self):
        self._timer = None
        self.next_frame()

    def _listeners_changed(self, event):
        if event != "frame_updated":
            return
        if self.listener_count(event):
            self._arm()
        else:
            self._disarm()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _load(self):
        start = time.monotonic()

        try:
            sheet = await self._compose_sources()
            if self._destroyed:
                return

            self._sheet = sheet
            self._metadata = sheet.metadata
            self._frame_count = len(sheet.frames)
            self._loop_count = sheet.loop_count
            self._delays = list(sheet.delays)
            self._sheet_ready.set_result(None)
            self._emit("loaded")

            for number, frame_image in enumerate(sheet.frames):
                try:
                    frame = await self._run(frames.build_frame, frame_image, self._scale_frames, self._split_frames)
                except asyncio.CancelledError:
                    raise
                except Exception as err:
                    if self._destroyed:
                        return
                    logger.warning("Dropping frame %d of %r: %s", number, self, err)
                    self._report_error(err)
                    self._drop_frame(len(self._frames))
                    continue

                if self._destroyed:
                    return

                self._frames.append(frame)
                self._frame_loaded(len(self._frames) - 1)

            self._load_time = round((time.monotonic() - start) * 1000)
            logger.debug("Loaded %r in %d ms", self, self._load_time)
            self._emit("image_loaded", self._load_time)

            if self._frame_count > 1 and self._animate is None:
                self.start_animation()

        except asyncio.CancelledError:
            raise
        except Exception as err:
            self._report_error(err)
        finally:
            if not self._sheet_ready.done():
                self._sheet_ready.set_result(None)
            if not self._done.done():
                self._done.set_result(None)

    def _drop_frame(self, index):
        """Forget a frame that failed to build; later frames move up one"""
        del self._delays[index:index + 1]
        self._frame_count -= 1

        if self._current_frame >= self._frame_count:
            self._current_frame = max(self._frame_count - 1, 0)

        if self._pending is not None and self._pending[0] >= self._frame_count:
            # The advance was waiting on the dropped last frame
            self._pending = None
            self.next_frame()

    def _frame_loaded(self, index):
        self._emit("frame_loaded", index)

        if self._pending is not None and index >= self._pending[0]:
            self._show(*self._pending)
        elif index == self._current_frame:
            self._emit("frame_updated")

    async def _compose_sources(self):
        layers = flatten_sources(self._source)
        resolved = await asyncio.gather(*(self._resolve_layer(layer) for layer in layers))
        placed = [(sheet, (layer.left, layer.top)) for sheet, layer in zip(resolved, layers) if sheet is not None]

        # A load never ends without at least one layer
        if not placed:
            placed = [(frames.solid(self._width, self._height, frames.TRANSPARENT), (0, 0))]

        sheets = [sheet for sheet, _ in placed]
        offsets = [offset for _, offset in placed]

        sheet = sheets[0]
        if len(sheets) > 1 or offsets[0] != (0, 0):
            sheet = await self._run(frames.composite_sheets, sheets, offsets)

        if sheet.size != self.size:
            sheet = await self._run(frames.resize_sheet, sheet, self._width, self._height)

        return sheet

    async def _resolve_layer(self, layer):
        """Resolve and resize one layer, reporting and dropping it on failure"""
        try:
            sheet = await self._resolve_source(layer.source)

            if not layer.resize:
                return sheet
            if layer.fit is None and sheet.size == self.size:
                return sheet

            return await self._run(
                frames.resize_sheet, sheet, self._width, self._height, layer.fit or "contain", layer.enlarge
            )
        except asyncio.CancelledError:
            raise
        except UnrecognizedSourceError as err:
            self._report_error(err)
        except Exception as err:
            error = UnrecognizedSourceError(layer.source, str(err))
            error.__cause__ = err
            logger.warning("Dropping image layer: %s", error)
            self._report_error(error)
        return None

    async def _resolve_source(self, source):
        if isinstance(source, Image):
            if source is self:
                raise UnrecognizedSourceError(source, "an image cannot be its own source")
            return await source.snapshot()

        if is_file_source(source):
            return await self._run(frames.decode, source)

        if isinstance(source, Empty):
            return frames.solid(self._width, self._height, frames.TRANSPARENT)

        if isinstance(source, SolidColor):
            return frames.solid(self._width, self._height, parse_color(source.color))

        raise UnrecognizedSourceError(source)

    async def _run(self, func, *args):
        return await self._event_loop.run_in_executor(None, functools.partial(func, *args))
