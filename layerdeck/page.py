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

from .compose import compose_panel
from .errors import DeckError, LifecycleError, ValidationError
from .events import Emitter
from .image import Image
from .interaction import IdleTimer, SlotState
from .key import Key
from .validation import check_instance, check_int

logger = logging.getLogger(__name__)


class Page(Emitter):
    """
    A virtual screen holding key attachments and a panel background

    Created through Deck.create_page(). At most one page has focus at a
    time; only the focused page is drawn.

    Events:
        brightness(percent)
        focus(focus_page, blur_page), blur(focus_page, blur_page)
        attach(index, page, key), detach(index, page, key)
        down, hold, up, click, held: (index, page, key)
        activity(event, index, page, key)
        idle, error(err), create, destroy
    """

    EVENTS = frozenset({
        "brightness", "focus", "blur", "attach", "detach", "down", "hold", "up", "click", "held",
        "activity", "idle", "error", "create", "destroy",
    })

    def __init__(self, deck, options):
        super().__init__()

        self._deck = deck
        self._hold_time = options.hold_time
        self._idle_time = deck.idle_time if options.idle_time is None else options.idle_time
        self._brightness = options.brightness
        self.custom = dict(options.custom)

        self._keys = {}          # index -> Key
        self._slots = {}         # index -> SlotState
        self._idle = IdleTimer(deck.loop, self._idle_fired)

        self._background_image = None
        self._background_frame = None
        self._bound_draw = self.draw

        if options.background is not None:
            self.set_background_image(options.background)

    def __repr__(self):
        return "<Page {:#x} keys={}>".format(id(self), sorted(self._keys))

    @property
    def deck(self):
        return self._deck

    @property
    def hold_time(self):
        """Own hold duration in milliseconds; None inherits from the deck"""
        return self._hold_time

    @property
    def idle_time(self):
        return self._idle_time

    @property
    def brightness(self):
        """Brightness override in percent, None follows the deck"""
        return self._brightness

    @property
    def focused(self):
        return self._deck.focused_page is self

    @property
    def keys(self):
        """Copy of the index to Key mapping"""
        return dict(self._keys)

    @property
    def background_image(self):
        return self._background_image

    def get_key(self, index):
        return self._keys.get(index)

    def indexes_of(self, key):
        """Sorted indexes the key is attached at"""
        return sorted(index for index, attached in self._keys.items() if attached is key)

    def is_down(self, index):
        return index in self._slots

    def set_brightness(self, percent=None):
        """
        Set the brightness override

        Args:
            percent: 0-100, or None to follow the deck brightness
        """
        self._check_destroyed()
        check_int("brightness", percent, minimum=0, maximum=100, allow_none=True)

        self._brightness = percent
        self._emit("brightness", percent)

        if self.focused:
            self._deck._apply_brightness(self._deck.brightness if percent is None else percent)

    def focus(self):
        self._check_destroyed()
        if not self.focused:
            self._deck.set_focused_page(self)

    def blur(self):
        """Give focus back to the default page"""
        self._check_destroyed()
        if self.focused:
            self._deck.set_focused_page(self._deck.default_page)

    # ------------------------------------------------------------------
    # Attachments
    # ------------------------------------------------------------------

    def attach_key(self, key, index=None, row=None, column=None):
        """
        Attach a key to a slot

        The slot is chosen by index, by 1-based row and column, or is the
        first free slot when neither is given. A key already attached at
        the slot is detached first.

        Returns:
            The index the key was attached at

        Raises:
            DeckError if no slot is free
        """
        self._check_destroyed()
        self._check_key(key)

        index = self._resolve_index(index, row, column)
        if index is None:
            index = next((i for i in range(self._deck.key_count) if i not in self._keys), None)
            if index is None:
                raise DeckError("There are no free key slots on this Page")

        if index in self._keys:
            self._detach(index)
            self.draw()

        self._keys[index] = key
        logger.debug("Attached %r at %d on %r", key, index, self)

        self._deck._emit("attach", index, self, key)
        self._emit("attach", index, self, key)
        key._emit("attach", index, self, key)

        key.draw()
        return index

    def detach_key(self, index=None, row=None, column=None, key=None):
        """
        Detach keys from this page

        With a slot (index, or row and column) the key at that slot is
        detached, only if it is key when key is given too. With only a key,
        the key is detached from every slot it occupies. Detaching an
        empty slot does nothing.

        Returns:
            List of detached indexes
        """
        self._check_destroyed()

        index = self._resolve_index(index, row, column)
        if key is not None:
            check_instance("key", key, Key)
        if index is None and key is None:
            raise ValidationError("index", "an index, a row and column, or a key is required")

        if index is not None:
            attached = self._keys.get(index)
            if attached is None or (key is not None and attached is not key):
                return []
            indexes = [index]
        else:
            indexes = self.indexes_of(key)

        for i in indexes:
            self._detach(i)

        if indexes:
            self.draw()
        return indexes

    def _detach(self, index):
        key = self._keys.pop(index)
        key._handle_detach(index, self)
        logger.debug("Detached %r from %d on %r", key, index, self)

        self._deck._emit("detach", index, self, key)
        self._emit("detach", index, self, key)
        key._emit("detach", index, self, key)

    def _resolve_index(self, index, row, column):
        deck = self._deck

        if row is not None or column is not None:
            if row is None or column is None:
                raise ValidationError("row" if row is None else "column", "row and column must be given together")

            check_int("row", row, minimum=1, maximum=deck.row_count)
            check_int("column", column, minimum=1, maximum=deck.column_count)
            position = column - 1 + (row - 1) * deck.column_count

            if index is not None and index != position:
                raise ValidationError("index", "does not match row {} column {}".format(row, column))
            return position

        return check_int("index", index, minimum=0, maximum=deck.key_count - 1, allow_none=True)

    def _check_key(self, key):
        check_instance("key", key, Key)
        if key.destroyed:
            raise LifecycleError(key)
        if key.deck is not self._deck:
            raise ValidationError("key", "belongs to another deck")

    def _unique_keys(self):
        keys = []
        for index in sorted(self._keys):
            if self._keys[index] not in keys:
                keys.append(self._keys[index])
        return keys

    # ------------------------------------------------------------------
    # Background
    # ------------------------------------------------------------------

    def create_background_image(self, source=None):
        """Create a panel sized Image split into key cells"""
        self._check_destroyed()
        width, height = self._deck.panel_size
        return Image(source, width, height, split_frames=self._deck.key_size)

    def set_background_image(self, image=None):
        """
        Set the panel background

        Args:
            image: A panel sized Image split into key cells, or any source
                to build one from; None clears the background
        """
        self._check_destroyed()

        if image is None:
            self.clear_background_image()
            return None

        if isinstance(image, Image) and image.destroyed:
            raise LifecycleError(image)

        if not (
            isinstance(image, Image)
            and image.size == self._deck.panel_size
            and image.split_frames == self._deck.key_size
        ):
            image = self.create_background_image(image)

        if self._background_image is not None:
            self._background_image.off("frame_updated", self._bound_draw)

        self._background_image = image
        self._background_frame = None
        image.on("frame_updated", self._bound_draw)

        self.draw()
        return image

    def clear_background_image(self):
        self._check_destroyed()

        if self._background_image is None:
            return

        self._release_background()
        self.draw()

    def _release_background(self):
        if self._background_image is not None:
            self._background_image.off("frame_updated", self._bound_draw)
        self._background_image = None
        self._background_frame = None

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

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------

    def draw(self):
        """Queue a redraw of the whole panel; only applies while focused"""
        if self._destroyed:
            return

        self._deck.render_queue.push(self._draw_job, owner=self)

    async def _draw_job(self):
        deck = self._deck
        if deck.focused_page is not self or self._destroyed:
            return

        frame = self.get_background_frame()
        background = frame.base if frame is not None else None

        tiles = []
        for index in sorted(self._keys):
            key = self._keys[index]
            key_background = key.get_background_frame()
            key_frame = key.get_frame()
            tiles.append((index, [
                key_background.base if key_background is not None else None,
                key_frame.variant(key.is_pressed(self, index)) if key_frame is not None else None,
            ]))

        rgb = await deck.run(compose_panel, deck.panel_size, deck.key_size, deck.column_count, background, tiles)
        if rgb is None:
            await deck.run(deck.transport.clear_panel)
        else:
            await deck.run(deck.transport.fill_panel, rgb)

    # ------------------------------------------------------------------
    # Interaction, dispatched by Deck
    # ------------------------------------------------------------------

    def _handle_down(self, index, key):
        if self._destroyed:
            return

        stale = self._slots.pop(index, None)
        if stale is not None:
            stale.cancel()

        state = SlotState(key=key)
        self._slots[index] = state

        if self._hold_time:
            state.hold_timer = self._deck.loop.call_later(self._hold_time / 1000, self._hold_fired, index, state)

        self._emit("down", index, self, key)

    def _hold_fired(self, index, state):
        state.hold_timer = None
        if self._slots.get(index) is not state:
            return

        state.held = True
        key = state.key
        self._emit("hold", index, self, key)

        if key is not None and key.hold_time is None:
            key._inherit_hold(index, self)

        self._activity("hold", index, key)

    def _inherit_hold(self, index):
        """Hold propagated from the deck while hold_time is None"""
        state = self._slots.get(index)
        if self._destroyed or state is None:
            return

        state.held = True
        self._emit("hold", index, self, state.key)
        self._activity("hold", index, state.key)

    def _release(self, index):
        """Drop the slot state and emit up; None if there was none"""
        if self._destroyed:
            return None

        state = self._slots.pop(index, None)
        if state is None:
            return None

        state.cancel()
        self._emit("up", index, self, state.key)
        return state

    def _settle(self, index, state):
        self._emit("held" if state.held else "click", index, self, state.key)

    def _activity(self, event, index=None, key=None):
        self._idle.reset(self._idle_time, suppressed=bool(self._slots))
        self._emit("activity", event, index, self, key)

    def _idle_fired(self):
        self._emit("idle")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def destroy(self):
        """
        Detach every key, drop the background and leave the deck

        The background Image itself is not destroyed.
        """
        self._check_destroyed()

        for state in self._slots.values():
            state.cancel()
        self._slots.clear()
        self._idle.cancel()

        deck = self._deck
        if deck.default_page is self:
            deck.set_default_page(None)
        if deck.focused_page is self:
            deck.set_focused_page(deck.default_page)

        self._release_background()

        for index in sorted(self._keys):
            self._detach(index)

        self._destroyed = True
        self._emit("destroy")
        deck._forget_page(self)
