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
Device session

A Deck owns one transport, the render queue and every Page and Key
created through it. Hardware key transitions enter here and are
dispatched to the focused Page and the Key attached at that index.
"""

import asyncio
import dataclasses
import functools
import logging

from .config import DeckOptions, KeyAttachment, KeyOptions, PageAttachment, PageOptions
from .errors import DeckError, LifecycleError, ValidationError
from .events import Emitter
from .image import Image
from .interaction import IdleTimer, SlotState
from .key import Key
from .page import Page
from .render import RenderQueue
from .transport import open_transport
from .validation import check_instance, check_int, check_number

logger = logging.getLogger(__name__)


class Deck(Emitter):
    """
    A Stream Deck with layered pages and keys

    Must be created while an asyncio event loop is running.

    Args:
        transport: layerdeck.transport.Transport of an opened device
        options: DeckOptions

    Events:
        brightness(percent)
        focus(focus_page, blur_page), blur(focus_page, blur_page)
        page(page), key(key)
        attach(index, page, key), detach(index, page, key)
        down, hold, up, click, held: (index, page, key)
        activity(event, index, page, key)
        idle, error(err), destroy
    """

    EVENTS = frozenset({
        "brightness", "focus", "blur", "page", "key", "attach", "detach", "down", "hold", "up",
        "click", "held", "activity", "idle", "error", "destroy",
    })

    def __init__(self, transport, options=None):
        super().__init__()

        options = (options or DeckOptions()).validate()

        self._transport = transport
        self._loop = asyncio.get_running_loop()
        self._queue = RenderQueue(self._loop)

        self._hold_time = options.hold_time
        self._press_time = options.press_time
        self._press_scale = options.press_scale
        self._idle_time = options.idle_time
        self._brightness = options.brightness
        self.custom = dict(options.custom)

        self._default_page = None
        self._focused_page = None
        self._pages = []
        self._keys = []

        self._slots = {}        # index -> SlotState of the slots currently down
        self._idle = IdleTimer(self._loop, self._idle_fired)

        transport.set_key_handler(self._handle_key_event, self._loop)

        self._clear_panel()
        self._apply_brightness(self._brightness)

    def __repr__(self):
        return "<Deck {} {}>".format(self.model, self.serial_number)

    # ------------------------------------------------------------------
    # Device properties
    # ------------------------------------------------------------------

    @property
    def transport(self):
        return self._transport

    @property
    def loop(self):
        return self._loop

    @property
    def render_queue(self):
        return self._queue

    @property
    def path(self):
        return self._transport.path

    @property
    def model(self):
        return self._transport.model

    @property
    def serial_number(self):
        return self._transport.serial_number

    @property
    def firmware_version(self):
        return self._transport.firmware_version

    @property
    def key_count(self):
        return self._transport.key_count

    @property
    def key_size(self):
        return tuple(self._transport.key_size)

    @property
    def key_width(self):
        return self.key_size[0]

    @property
    def key_height(self):
        return self.key_size[1]

    @property
    def row_count(self):
        return self._transport.key_layout[0]

    @property
    def column_count(self):
        return self._transport.key_layout[1]

    @property
    def panel_size(self):
        return (self.panel_width, self.panel_height)

    @property
    def panel_width(self):
        return self.key_width * self.column_count

    @property
    def panel_height(self):
        return self.key_height * self.row_count

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @property
    def hold_time(self):
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
    def brightness(self):
        return self._brightness

    @property
    def default_page(self):
        return self._default_page

    @property
    def focused_page(self):
        return self._focused_page

    @property
    def pages(self):
        return list(self._pages)

    @property
    def keys(self):
        return list(self._keys)

    def set_brightness(self, percent):
        """
        Set the deck brightness

        The focused page's own brightness, if set, stays in effect.

        Args:
            percent: 0-100
        """
        self._check_destroyed()
        check_int("brightness", percent, minimum=0, maximum=100)

        self._brightness = percent
        self._emit("brightness", percent)

        if self._focused_page is not None and self._focused_page.brightness is not None:
            return

        self._apply_brightness(percent)

    def set_default_page(self, page=None):
        """Set the page blur() returns to; focuses it if nothing has focus"""
        self._check_destroyed()

        if self._default_page is page:
            return

        self._check_page(page, allow_none=True)
        self._default_page = page

        if self._focused_page is None:
            self.set_focused_page(page)

    def set_focused_page(self, page=None):
        """
        Give a page device focus

        Args:
            page: Page to focus, defaults to the default page
        """
        self._check_destroyed()

        if page is None:
            page = self._default_page
        if self._focused_page is page:
            return

        self._check_page(page, allow_none=True)

        blur_page = self._focused_page
        self._focused_page = page
        logger.debug("Switching from page %r to page %r", blur_page, page)

        if blur_page is not None:
            self._emit("blur", page, blur_page)
            blur_page._emit("blur", page, blur_page)
            for key in blur_page._unique_keys():
                key._emit("blur", page, blur_page)

        if page is None:
            self._clear_panel()
        else:
            page.draw()

        if page is not None and page.brightness is not None:
            self._apply_brightness(page.brightness)
        else:
            self._apply_brightness(self._brightness)

        if page is None:
            return

        keys = page._unique_keys()

        self._emit("focus", page, blur_page)
        page._emit("focus", page, blur_page)
        for key in keys:
            key._emit("focus", page, blur_page)

        self._activity("focus", None, page, None)
        page._activity("focus")
        for key in keys:
            key._activity("focus", None, page)

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    def create_page(self, options=None, **kwargs):
        """
        Create a Page

        Args:
            options: PageOptions; keyword arguments override its fields

        Raises:
            ValidationError for bad options, in which case no page is kept
        """
        self._check_destroyed()

        if self.panel_width <= 0 or self.panel_height <= 0:
            raise DeckError("This Stream Deck does not support Pages")

        options = _options(PageOptions, options, kwargs).validate()
        attachments = [self._key_attachment(entry) for entry in options.attach_keys]

        page = Page(self, options)
        self._pages.append(page)

        try:
            for attachment in attachments:
                page.attach_key(attachment.key, attachment.index, attachment.row, attachment.column)

            if options.set_default:
                self.set_default_page(page)
            if options.set_focused:
                self.set_focused_page(page)
        except Exception:
            page.destroy()
            raise

        self._emit("page", page)
        page._emit("create")
        return page

    def create_key(self, options=None, **kwargs):
        """
        Create a Key

        Args:
            options: KeyOptions; keyword arguments override its fields

        Raises:
            ValidationError for bad options, in which case no key is kept
        """
        self._check_destroyed()

        if self.key_width <= 0 or self.key_height <= 0:
            raise DeckError("This Stream Deck does not support Keys")

        options = _options(KeyOptions, options, kwargs).validate()
        attachments = [self._page_attachment(entry) for entry in options.attach_to_pages]

        key = Key(self, options)
        self._keys.append(key)

        try:
            for attachment in attachments:
                attachment.page.attach_key(key, attachment.index, attachment.row, attachment.column)
        except Exception:
            key.destroy()
            raise

        self._emit("key", key)
        key._emit("create")
        return key

    def create_page_background_image(self, source=None):
        """Create a panel sized Image split into key cells"""
        self._check_destroyed()

        if self.panel_width <= 0 or self.panel_height <= 0:
            raise DeckError("This Stream Deck does not support Page Images")

        return Image(source, self.panel_width, self.panel_height, split_frames=self.key_size)

    def create_key_background_image(self, source=None):
        """Create a key sized Image"""
        self._check_destroyed()

        if self.key_width <= 0 or self.key_height <= 0:
            raise DeckError("This Stream Deck does not support Key Images")

        return Image(source, self.key_width, self.key_height)

    def create_key_image(self, source=None, scale_frames=None):
        """Create a key sized Image with press-scaled frames"""
        self._check_destroyed()

        if self.key_width <= 0 or self.key_height <= 0:
            raise DeckError("This Stream Deck does not support Key Images")

        check_number("scale_frames", scale_frames, minimum=0, maximum=2, allow_none=True)
        if scale_frames is None:
            scale_frames = self._press_scale

        return Image(source, self.key_width, self.key_height, scale_frames=scale_frames)

    def _key_attachment(self, entry):
        if isinstance(entry, Key):
            entry = KeyAttachment(entry)
        check_instance("attach_keys", entry, KeyAttachment)
        self._check_owned("attach_keys.key", entry.key, Key)
        return entry

    def _page_attachment(self, entry):
        if isinstance(entry, Page):
            entry = PageAttachment(entry)
        check_instance("attach_to_pages", entry, PageAttachment)
        self._check_owned("attach_to_pages.page", entry.page, Page)
        return entry

    def _check_page(self, page, allow_none=False):
        if page is None and allow_none:
            return
        self._check_owned("page", page, Page)

    def _check_owned(self, name, entity, cls):
        check_instance(name, entity, cls)
        if entity.destroyed:
            raise LifecycleError(entity)
        if entity.deck is not self:
            raise ValidationError(name, "belongs to another deck")

    def _forget_page(self, page):
        if page in self._pages:
            self._pages.remove(page)

    def _forget_key(self, key):
        if key in self._keys:
            self._keys.remove(key)

    # ------------------------------------------------------------------
    # Hardware input
    # ------------------------------------------------------------------

    def _handle_key_event(self, index, pressed):
        """Entry point for transport key transitions, on the event loop thread"""
        if self._destroyed:
            return

        logger.debug("Deck %s Key %s = %s (Page %r)", self.serial_number, index, pressed, self._focused_page)

        if pressed:
            self._key_down(index)
        else:
            self._key_up(index)

    def _key_down(self, index):
        stale = self._slots.pop(index, None)
        if stale is not None:
            stale.cancel()

        # Record where the key was pressed so the release goes to the same page
        page = self._focused_page
        key = page.get_key(index) if page is not None else None

        state = SlotState(page=page, key=key)
        self._slots[index] = state

        self._emit("down", index, page, key)
        if page is not None:
            page._handle_down(index, key)
        if key is not None:
            key._handle_down(index, page)

        if self._hold_time > 0:
            state.hold_timer = self._loop.call_later(self._hold_time / 1000, self._hold_fired, index, state)

        self._activity("down", index, page, key)
        if page is not None:
            page._activity("down", index, key)
        if key is not None:
            key._activity("down", index, page)

    def _hold_fired(self, index, state):
        state.hold_timer = None
        if self._slots.get(index) is not state:
            return

        state.held = True
        page, key = state.page, state.key
        self._emit("hold", index, page, key)

        # Propagate to finer scopes that inherit their hold duration
        if page is not None and page.hold_time is None:
            page._inherit_hold(index)
            if key is not None and key.hold_time is None:
                key._inherit_hold(index, page)

        self._activity("hold", index, page, key)

    def _key_up(self, index):
        state = self._slots.pop(index, None)
        if state is None:
            # Pressed before the deck was opened
            return

        state.cancel()
        page, key = state.page, state.key

        self._emit("up", index, page, key)
        page_state = page._release(index) if page is not None else None
        key_state = key._release(index, page) if key is not None else None

        self._emit("held" if state.held else "click", index, page, key)
        if page_state is not None:
            page._settle(index, page_state)
        if key_state is not None:
            key._settle(index, page, key_state)

        self._activity("up", index, page, key)
        if page_state is not None:
            page._activity("up", index, key)
        if key_state is not None:
            key._activity("up", index, page)

    def _activity(self, event, index=None, page=None, key=None):
        self._idle.reset(self._idle_time, suppressed=bool(self._slots))
        self._emit("activity", event, index, page, key)

    def _idle_fired(self):
        self._emit("idle")

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    async def run(self, func, *args):
        """Run blocking work (Pillow, USB) in the loop's executor"""
        return await self._loop.run_in_executor(None, functools.partial(func, *args))

    async def flush(self):
        """Wait until every queued draw has reached the device"""
        await self._queue.join()

    def _apply_brightness(self, percent):
        logger.debug("Set brightness to %d", percent)
        self._queue.push(functools.partial(self.run, self._transport.set_brightness, percent), owner=self)

    def _clear_panel(self):
        self._queue.push(functools.partial(self.run, self._transport.clear_panel), owner=self)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def destroy(self):
        """Destroy every key and page and stop drawing; the device stays open"""
        self._check_destroyed()

        for state in self._slots.values():
            state.cancel()
        self._slots.clear()
        self._idle.cancel()

        for key in list(self._keys):
            key.destroy()
        for page in list(self._pages):
            page.destroy()

        self._queue.close()

        self._destroyed = True
        self._emit("destroy")

    async def close(self):
        """
        Destroy the deck, blank the panel and close the device

        Failures are reported on the error event instead of raised.
        """
        if not self._destroyed:
            self.destroy()

        # The write in flight must land before the panel is blanked
        await self._queue.wait_closed()

        logger.debug("Shutting down...")
        try:
            await self.run(self._transport.clear_panel)
            await self.run(self._transport.set_brightness, 0)
            await self.run(self._transport.close)
        except Exception as err:
            self._report_error(err)


def _options(cls, options, overrides):
    known = {field.name for field in dataclasses.fields(cls)}
    for name in sorted(overrides):
        if name not in known:
            raise ValidationError(name, "is not a {} field".format(cls.__name__))

    if options is None:
        return cls(**overrides)
    check_instance("options", options, cls)
    if overrides:
        return dataclasses.replace(options, **overrides)
    return options


async def open_deck(path_or_serial=None, options=None):
    """
    Open a connected Stream Deck

    Args:
        path_or_serial: Device path or serial number; the first visual
            deck is used when omitted
        options: DeckOptions

    Raises:
        TransportError if no matching deck is connected
    """
    loop = asyncio.get_running_loop()
    transport = await loop.run_in_executor(None, open_transport, path_or_serial)
    return Deck(transport, options)
