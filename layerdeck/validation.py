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

"""Small argument checks shared by the public entry points"""

import numbers

from .errors import ValidationError


def check_int(name, value, minimum=None, maximum=None, allow_none=False):
    """
    Check that value is an integer within [minimum, maximum]

    Returns:
        The value unchanged
    """
    if value is None:
        if allow_none:
            return None
        raise ValidationError(name, "is required")

    # bool is an int subclass but never a valid count or index
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise ValidationError(name, "must be an integer, got {!r}".format(value))

    _check_range(name, value, minimum, maximum)
    return int(value)


def check_number(name, value, minimum=None, maximum=None, allow_none=False):
    """Check that value is a real number within [minimum, maximum]"""
    if value is None:
        if allow_none:
            return None
        raise ValidationError(name, "is required")

    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValidationError(name, "must be a number, got {!r}".format(value))

    _check_range(name, value, minimum, maximum)
    return value


def check_dimensions(name, value, allow_none=False):
    """Check a (width, height) pair of positive integers"""
    if value is None:
        if allow_none:
            return None
        raise ValidationError(name, "is required")

    try:
        width, height = value
    except (TypeError, ValueError):
        raise ValidationError(name, "must be a (width, height) pair, got {!r}".format(value))

    return (
        check_int("{}.width".format(name), width, minimum=1),
        check_int("{}.height".format(name), height, minimum=1),
    )


def check_instance(name, value, cls, allow_none=False):
    """Check that value is an instance of cls"""
    if value is None and allow_none:
        return None
    if not isinstance(value, cls):
        raise ValidationError(name, "must be a {}, got {!r}".format(cls.__name__, value))
    return value


def _check_range(name, value, minimum, maximum):
    if minimum is not None and value < minimum:
        raise ValidationError(name, "must be >= {}, got {}".format(minimum, value))
    if maximum is not None and value > maximum:
        raise ValidationError(name, "must be <= {}, got {}".format(maximum, value))
