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
Notification channel shared by Deck, Page, Key and Image

Every entity publishes a closed set of named events. Listeners are plain
callables invoked inline on the event loop thread. A failing listener is
logged and never stops delivery to the remaining listeners.
"""

import logging
from collections import defaultdict

from .errors import LifecycleError, ValidationError

logger = logging.getLogger(__name__)


class Emitter:
    """
    Named event publisher with explicit subscription

    Subclasses list their event names in EVENTS and may override
    _listeners_changed() to react when the number of listeners for
    an event changes.
    """

    EVENTS = frozenset()

    def __init__(self):
        self._listeners = defaultdict(list)
        self._destroyed = False

    @property
    def destroyed(self):
        """True once destroy() has run"""
        return self._destroyed

    def on(self, event, callback):
        """
        Subscribe callback to event

        Args:
            event: Event name, one of EVENTS
            callback: Callable receiving the event arguments

        Returns:
            The callback, so on() can be used as a decorator factory
        """
        self._check_destroyed()
        self._check_event(event)
        self._listeners[event].append(callback)
        self._listeners_changed(event)
        return callback

    def once(self, event, callback):
        """Subscribe callback for a single delivery of event"""

        def wrapper(*args):
            self.off(event, wrapper)
            callback(*args)

        wrapper.callback = callback
        self.on(event, wrapper)
        return callback

    def off(self, event, callback=None):
        """
        Unsubscribe callback from event

        Without a callback every listener of event is removed. Removing
        a callback that is not subscribed is a no-op.
        """
        self._check_event(event)
        listeners = self._listeners.get(event)
        if not listeners:
            return

        if callback is None:
            listeners.clear()
        else:
            for i, listener in enumerate(listeners):
                if listener == callback or getattr(listener, "callback", None) == callback:
                    del listeners[i]
                    break
            else:
                return

        self._listeners_changed(event)

    def listener_count(self, event):
        return len(self._listeners.get(event, ()))

    def _emit(self, event, *args):
        # Copy so listeners may unsubscribe while being called
        for callback in list(self._listeners.get(event, ())):
            try:
                callback(*args)
            except Exception:
                logger.exception("%s listener for %r failed", type(self).__name__, event)

    def _report_error(self, err):
        """Publish an asynchronous failure on the error channel"""
        if self.listener_count("error"):
            self._emit("error", err)
        else:
            logger.error("%s error: %s", type(self).__name__, err, exc_info=err)

    def _listeners_changed(self, event):
        pass

    def _check_event(self, event):
        if event not in self.EVENTS:
            raise ValidationError("event", "{} has no {!r} event".format(type(self).__name__, event))

    def _check_destroyed(self):
        if self._destroyed:
            raise LifecycleError(self)
