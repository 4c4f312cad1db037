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

"""Exception types raised or reported by LayerDeck"""


class DeckError(Exception):
    """Base class for every LayerDeck error"""


class ValidationError(DeckError, ValueError):
    """
    Malformed input to a public operation

    Raised synchronously to the caller. Device state is left untouched.
    """

    def __init__(self, name, message):
        super().__init__("{}: {}".format(name, message))
        self.name = name
        self.message = message


class UnrecognizedSourceError(DeckError):
    """One image layer could not be resolved and was dropped"""

    def __init__(self, source, reason=None):
        message = "Unrecognized image source: {!r}".format(_short_repr(source))
        if reason:
            message = "{} ({})".format(message, reason)
        super().__init__(message)
        self.source = source


class TransportError(DeckError):
    """A write to the physical device failed"""


class LifecycleError(DeckError):
    """Operation invoked on an entity that has been destroyed"""

    def __init__(self, entity):
        super().__init__("{} has been destroyed!".format(type(entity).__name__))
        self.entity = entity


def _short_repr(source):
    # Encoded image bytes would flood the message
    if isinstance(source, (bytes, bytearray, memoryview)):
        return "<{} bytes>".format(len(source))
    return source
