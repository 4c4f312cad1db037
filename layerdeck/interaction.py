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
Building blocks of the press / hold / release state machine

Deck, Page and Key each own their interaction state and timers. The
pieces here carry no behaviour of their own beyond timer bookkeeping.
"""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class SlotState:
    """
    State of one key slot between its down and up transitions

    The state only exists while the slot is down, so held can never be
    true for a released slot.

    Attributes:
        page: Page that had focus on down (deck level only)
        key: Key attached at the slot on down (deck and page level)
        held: The hold duration elapsed
        pressed: The press-scaled visual applies
    """

    page: Any = None
    key: Any = None
    held: bool = False
    pressed: bool = True
    hold_timer: Optional[Any] = None
    press_timer: Optional[Any] = None

    def cancel_hold(self):
        if self.hold_timer is not None:
            self.hold_timer.cancel()
            self.hold_timer = None

    def cancel_press(self):
        if self.press_timer is not None:
            self.press_timer.cancel()
            self.press_timer = None

    def cancel(self):
        """Cancel every pending timer"""
        self.cancel_hold()
        self.cancel_press()


class SlotTable:
    """
    Two level mapping of page -> index -> value

    Used for state that a Key tracks per attachment, since one Key may
    sit on several pages and several indexes at once.
    """

    def __init__(self):
        self._pages = {}

    def __len__(self):
        return sum(len(slots) for slots in self._pages.values())

    def __bool__(self):
        return bool(self._pages)

    def get(self, page, index, default=None):
        return self._pages.get(page, {}).get(index, default)

    def has(self, page, index):
        return index in self._pages.get(page, ())

    def has_any(self, page):
        """True if any index on page has a value"""
        return bool(self._pages.get(page))

    def indexes(self, page):
        return sorted(self._pages.get(page, ()))

    def set(self, page, index, value):
        self._pages.setdefault(page, {})[index] = value

    def pop(self, page, index, default=None):
        slots = self._pages.get(page)
        if not slots or index not in slots:
            return default

        value = slots.pop(index)
        if not slots:
            del self._pages[page]
        return value

    def values(self):
        for slots in self._pages.values():
            yield from slots.values()

    def clear(self):
        self._pages.clear()


class IdleTimer:
    """
    Fires a callback after a period without activity

    Args:
        loop: Event loop used for scheduling
        callback: Called when the timer elapses
    """

    def __init__(self, loop, callback):
        self._loop = loop
        self._callback = callback
        self._handle = None

    @property
    def armed(self):
        return self._handle is not None

    def reset(self, idle_time, suppressed=False):
        """
        Restart the idle period

        Args:
            idle_time: Milliseconds of inactivity; 0 disables the timer
            suppressed: Only cancel, e.g. while a slot is held down
        """
        self.cancel()

        if idle_time <= 0 or suppressed:
            return

        self._handle = self._loop.call_later(idle_time / 1000, self._fire)

    def cancel(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self):
        self._handle = None
        self._callback()

