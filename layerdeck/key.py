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

import logging

from .compose import compose_key
from .errors import LifecycleError, TransportError
from .events import Emitter
from .image import Image
from .interaction import IdleTimer, SlotState, SlotTable
from .validation import check_int, check_number

logger = logging.getLogger(__name__)


class Key(Emitter):
    """
    A virtual key that can sit on several pages and indexes at once

    Created through Deck.create_key(). Input and interaction state are
    tracked per (page, index) so the same Key can be pressed on two
    slots at the same time.

    Events:
        focus(focus_page, blur_page), blur(focus_page, blur_page)
        attach(index, page, key), detach(index, page, key)
        down, hold, up, click, held: (index, page, key)
        activity(event, index, page, key)
        idle, error(err), create, destroy
    """

    EVENTS = frozenset({
        "focus", "blur", "attach", "detach", "down", "hold", "up", "click", "held",
        "activity", "idle", "error", "create", "destroy",
    })

    def __init__(self, deck, options):
        super().__init__()

        self._deck = deck
        self._hold_time = options.hold_time
        self._press_time = deck.press_time if options.press_time is None else options.press_time
        self._press_scale = deck.press_scale if options.press_scale is None else options.press_scale
        self._idle_time = deck.idle_time if options.idle_time is None else options.idle_time
        self.custom = dict(options.custom)

        self._slots = SlotTable()
        self._idle = IdleTimer(deck.loop, self._idle_fired)

        self._background_image = None
        self._image = None
        self._background_frame = None
        self._frame = None
        self._watched = set()
        self._bound_draw = self.draw

        if options.background is not None:
            self.set_background_image(options.background)
        if options.image is not None:
            self.set_image(options.image)

    def __repr__(self):
        return "<Key {:#x}>".format(id(self))

    @property
    def deck(self):
        return self._deck

    @property
    def hold_time(self):
        """Own hold duration in milliseconds; None inherits from the page"""
        return self._hold_time

    @property
    def press_time(self):
        return self._press_time

    @property
    def press_scale(self):
        return self._press_scale

    @property
    def idle_time(self):
        return self._idle_time

    @property
    def key_size(self):
        return self._deck.key_size

    @property
    def background_image(self):
        return self._background_image

    @property
    def image(self):
        return self._image

    @property
    def pages(self):
        """Pages the key is attached to"""
        return [page for page in self._deck.pages if page.indexes_of(self)]

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    def is_down(self, page, index):
        self._check_destroyed()
        return self._slots.has(page, self._check_index(index))

    def is_held(self, page, index):
        self._check_destroyed()
        state = self._slots.get(page, self._check_index(index))
        return state is not None and state.held

    def is_pressed(self, page, index):
        """True while the press-scaled visual applies to the slot"""
        self._check_destroyed()
        state = self._slots.get(page, self._check_index(index))
        return state is not None and state.pressed

    def is_pressed_on(self, page):
        """True if any slot of the key on page is pressed"""
        self._check_destroyed()
        if not self._slots.has_any(page):
            return False
        return any(self._slots.get(page, index).pressed for index in self._slots.indexes(page))

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def create_background_image(self, source=None):
        """Create a key sized Image without press scaling"""
        self._check_destroyed()
        width, height = self.key_size
        return Image(source, width, height)

    def set_background_image(self, image=None):
        """
        Set the background image

        Args:
            image: An Image of key size, or any source to build one from;
                None clears the background
        """
        self._check_destroyed()

        if image is None:
            self.clear_background_image()
            return None

        image = self._coerce(image, self.create_background_image)
        self._background_image = image
        self._background_frame = None
        self._watch()
        self.draw()
        return image

    def clear_background_image(self):
        self._check_destroyed()

        if self._background_image is None:
            return

        self._background_image = None
        self._background_frame = None
        self._watch()
        self.draw()

    def get_background_frame(self):
        """Current background frame, the last one seen, or None"""
        self._check_destroyed()

        if self._background_image is None:
            return None

        if not self._background_image.destroyed:
            frame = self._background_image.get_frame()
            if frame is not None:
                self._background_frame = frame

        return self._background_frame

    def create_image(self, source=None, scale_frames=None):
        """
        Create a key sized Image with press-scaled frames

        Args:
            source: Image source
            scale_frames: Press-scale factor, defaults to the key's press_scale
        """
        self._check_destroyed()
        check_number("scale_frames", scale_frames, minimum=0, maximum=2, allow_none=True)

        width, height = self.key_size
        if scale_frames is None:
            scale_frames = self._press_scale
        return Image(source, width, height, scale_frames=scale_frames)

    def set_image(self, image=None):
        """
        Set the foreground image

        Args:
            image: An Image of key size, or any source to build one from;
                None clears the image
        """
        self._check_destroyed()

        if image is None:
            self.clear_image()
            return None

        image = self._coerce(image, self.create_image)
        self._image = image
        self._frame = None
        self._watch()
        self.draw()
        return image

    def clear_image(self):
        self._check_destroyed()

        if self._image is None:
            return

        self._image = None
        self._frame = None
        self._watch()
        self.draw()

    def get_frame(self):
        """Current foreground frame, the last one seen, or None"""
        self._check_destroyed()

        if self._image is None:
            return None

        if not self._image.destroyed:
            frame = self._image.get_frame()
            if frame is not None:
                self._frame = frame

        return self._frame

    def _coerce(self, image, factory):
        if isinstance(image, Image):
            if image.destroyed:
                raise LifecycleError(image)
            if image.size == self.key_size:
                return image
        # Anything else, including an Image of another size, is a source
        return factory(image)

    def _watch(self):
        # One subscription per Image, even when it is background and foreground
        wanted = {image for image in (self._background_image, self._image) if image is not None}

        for image in self._watched - wanted:
            image.off("frame_updated", self._bound_draw)
        for image in wanted - self._watched:
            image.on("frame_updated", self._bound_draw)

        self._watched = wanted

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------

    def draw(self):
        """Queue a redraw of every slot of the key on the focused page"""
        if self._destroyed:
            return

        self._deck.render_queue.push(self._draw_job, owner=self)

    async def _draw_job(self):
        deck = self._deck
        page = deck.focused_page
        if page is None or self._destroyed:
            return

        indexes = page.indexes_of(self)
        if not indexes:
            return

        page_frame = page.get_background_frame()
        background = self.get_background_frame()
        frame = self.get_frame()

        for index in indexes:
            layers = [
                _cell(page_frame, index),
                background.base if background is not None else None,
                frame.variant(self.is_pressed(page, index)) if frame is not None else None,
            ]

            try:
                rgb = await deck.run(compose_key, layers)
                if rgb is None:
                    await deck.run(deck.transport.clear_key, index)
                else:
                    await deck.run(deck.transport.fill_key, index, rgb)
            except TransportError as err:
                # Keep drawing the remaining slots
                self._report_error(err)

    # ------------------------------------------------------------------
    # Interaction, dispatched by Deck and Page
    # ------------------------------------------------------------------

    def _handle_down(self, index, page):
        if self._destroyed:
            return

        stale = self._slots.pop(page, index)
        if stale is not None:
            stale.cancel()

        state = SlotState()
        self._slots.set(page, index, state)

        loop = self._deck.loop
        if self._hold_time:
            state.hold_timer = loop.call_later(self._hold_time / 1000, self._hold_fired, index, page, state)
        if self._press_time > 0:
            state.press_timer = loop.call_later(self._press_time / 1000, self._press_elapsed, state)

        self._emit("down", index, page, self)
        self.draw()

    def _hold_fired(self, index, page, state):
        state.hold_timer = None
        if self._slots.get(page, index) is not state:
            return

        state.held = True
        self._emit("hold", index, page, self)
        self._activity("hold", index, page)

    def _inherit_hold(self, index, page):
        """Hold propagated from the page or deck while hold_time is None"""
        state = self._slots.get(page, index)
        if self._destroyed or state is None:
            return

        state.held = True
        self._emit("hold", index, page, self)
        self._activity("hold", index, page)

    def _press_elapsed(self, state):
        state.press_timer = None
        state.pressed = False
        self.draw()

    def _release(self, index, page):
        """Drop the slot state and emit up; None if the slot was purged"""
        if self._destroyed:
            return None

        state = self._slots.pop(page, index)
        if state is None:
            return None

        state.cancel()
        self._emit("up", index, page, self)
        return state

    def _settle(self, index, page, state):
        self._emit("held" if state.held else "click", index, page, self)

        if state.pressed:
            self.draw()

    def _handle_detach(self, index, page):
        state = self._slots.pop(page, index)
        if state is not None:
            state.cancel()

    def _activity(self, event, index=None, page=None):
        self._idle.reset(self._idle_time, suppressed=bool(self._slots))
        self._emit("activity", event, index, page, self)

    def _idle_fired(self):
        self._emit("idle")

    def _check_index(self, index):
        return check_int("index", index, minimum=0, maximum=self._deck.key_count - 1)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def destroy(self):
        """
        Detach from every page and release the images

        Shared Images are left alone; only the subscriptions are dropped.
        """
        self._check_destroyed()

        for state in self._slots.values():
            state.cancel()
        self._slots.clear()
        self._idle.cancel()

        for page in self._deck.pages:
            if page.indexes_of(self):
                page.detach_key(key=self)

        self._background_image = None
        self._image = None
        self._background_frame = None
        self._frame = None
        self._watch()

        self._destroyed = True
        self._emit("destroy")
        self._deck._forget_key(self)


def _cell(page_frame, index):
    """Split cell of the page background under a key slot"""
    if page_frame is None or not page_frame.split or index >= len(page_frame.split):
        return None
    return page_frame.split[index]
