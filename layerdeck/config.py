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
Options and declarative layouts

Deck, Page and Key are configured with the option dataclasses below.
A whole layout can also be described in an INI file:

    [General]
    Verbose = true
    Brightness = 30
    HoldTime = 500

    [page.1]
    Background = splash.png
    Default = true

    [page.1.key.00]
    Image = play.png
    HoldTime = 0

    # Legacy sections always belong to page 1
    [key.01]
    Image = stop.png
"""

import configparser
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import ValidationError
from .sources import SolidColor
from .validation import check_int, check_number

logger = logging.getLogger(__name__)

MAX_PAGES = 20


@dataclass
class DeckOptions:
    """
    Device level defaults

    Attributes:
        hold_time: Milliseconds a key must stay down to count as held; 0 disables hold
        press_time: Milliseconds the press-scaled visual lasts; 0 keeps it until release
        press_scale: Default press-scale factor for key images, 0 to 2
        idle_time: Milliseconds without activity before idle; 0 disables idle
        brightness: Panel brightness in percent
        custom: Free-form values for the caller
    """

    hold_time: int = 500
    press_time: int = 0
    press_scale: float = 0.85
    idle_time: int = 10000
    brightness: int = 100
    custom: Dict[str, Any] = field(default_factory=dict)

    def validate(self):
        check_int("hold_time", self.hold_time, minimum=0)
        check_int("press_time", self.press_time, minimum=0)
        check_number("press_scale", self.press_scale, minimum=0, maximum=2)
        check_int("idle_time", self.idle_time, minimum=0)
        check_int("brightness", self.brightness, minimum=0, maximum=100)
        return self


@dataclass
class KeyAttachment:
    """A key to attach to a page, by index, by row and column, or to the first free slot"""

    key: Any
    index: Optional[int] = None
    row: Optional[int] = None
    column: Optional[int] = None


@dataclass
class PageAttachment:
    """A page to attach a key to, by index, by row and column, or to the first free slot"""

    page: Any
    index: Optional[int] = None
    row: Optional[int] = None
    column: Optional[int] = None


@dataclass
class PageOptions:
    """
    Page options

    hold_time None inherits hold from the deck, idle_time None uses the
    deck default and brightness None follows the deck brightness.
    """

    hold_time: Optional[int] = None
    idle_time: Optional[int] = None
    brightness: Optional[int] = None
    background: Any = None
    attach_keys: List[Any] = field(default_factory=list)
    set_default: bool = False
    set_focused: bool = False
    custom: Dict[str, Any] = field(default_factory=dict)

    def validate(self):
        check_int("hold_time", self.hold_time, minimum=0, allow_none=True)
        check_int("idle_time", self.idle_time, minimum=0, allow_none=True)
        check_int("brightness", self.brightness, minimum=0, maximum=100, allow_none=True)
        if not isinstance(self.attach_keys, (list, tuple)):
            raise ValidationError("attach_keys", "must be a list")
        return self


@dataclass
class KeyOptions:
    """
    Key options

    hold_time None inherits hold from the page the key is pressed on.
    The other None values fall back to the deck defaults.
    """

    hold_time: Optional[int] = None
    press_time: Optional[int] = None
    press_scale: Optional[float] = None
    idle_time: Optional[int] = None
    background: Any = None
    image: Any = None
    attach_to_pages: List[Any] = field(default_factory=list)
    custom: Dict[str, Any] = field(default_factory=dict)

    def validate(self):
        check_int("hold_time", self.hold_time, minimum=0, allow_none=True)
        check_int("press_time", self.press_time, minimum=0, allow_none=True)
        check_number("press_scale", self.press_scale, minimum=0, maximum=2, allow_none=True)
        check_int("idle_time", self.idle_time, minimum=0, allow_none=True)
        if not isinstance(self.attach_to_pages, (list, tuple)):
            raise ValidationError("attach_to_pages", "must be a list")
        return self


# ----------------------------------------------------------------------
# INI layouts
# ----------------------------------------------------------------------


@dataclass
class KeyLayout:
    index: int
    options: KeyOptions


@dataclass
class PageLayout:
    number: int
    options: PageOptions
    default: bool = False
    keys: Dict[int, KeyLayout] = field(default_factory=dict)


@dataclass
class Layout:
    """A parsed INI layout"""

    path: Optional[str] = None
    verbose: bool = False
    deck: DeckOptions = field(default_factory=DeckOptions)
    pages: Dict[int, PageLayout] = field(default_factory=dict)


def load_layout(path):
    """
    Parse an INI layout file

    Relative image paths are resolved against the directory of the file.

    Args:
        path: Path to the INI file

    Returns:
        Layout

    Raises:
        ValidationError for unparseable values
        FileNotFoundError if the file does not exist
    """
    config = configparser.ConfigParser()
    with open(path, encoding="utf-8") as fp:
        config.read_file(fp)

    base_dir = os.path.dirname(os.path.abspath(path))
    layout = parse_layout(config, base_dir)
    layout.path = path
    return layout


def parse_layout(config, base_dir="."):
    """Build a Layout from an already loaded ConfigParser"""
    layout = Layout()

    # Read general configuration section
    if config.has_section("General"):
        configopts = config["General"]
        layout.verbose = _get(configopts, "Verbose", configopts.getboolean, False)
        layout.deck = DeckOptions(
            hold_time=_get(configopts, "HoldTime", configopts.getint, 500),
            press_time=_get(configopts, "PressTime", configopts.getint, 0),
            press_scale=_get(configopts, "PressScale", configopts.getfloat, 0.85),
            idle_time=_get(configopts, "IdleTime", configopts.getint, 10000),
            brightness=_get(configopts, "Brightness", configopts.getint, 100),
        )
    _validated(layout.deck, "General")

    for section in config.sections():
        parts = section.split(".")

        if len(parts) == 2 and parts[0] == "page":
            # Page-level config: [page.N]
            number = _page_number(section, parts[1])
            if number is None:
                continue
            page = _page(layout, number)
            _read_page(config[section], page, base_dir)

        elif len(parts) == 4 and parts[0] == "page" and parts[2] == "key":
            # Key-specific config: [page.N.key.XX]
            number = _page_number(section, parts[1])
            if number is None:
                continue
            index = _key_index(section, parts[3])
            _page(layout, number).keys[index] = _read_key(config[section], index, base_dir)

        elif len(parts) == 2 and parts[0] == "key":
            # Legacy format: [key.XX] - always page 1
            index = _key_index(section, parts[1])
            page = _page(layout, 1)
            # Page specific sections win over legacy ones
            if index not in page.keys:
                page.keys[index] = _read_key(config[section], index, base_dir)

        elif section != "General":
            logger.warning("Ignoring unknown layout section [%s]", section)

    # If no pages configured, assume page 1
    if not layout.pages:
        _page(layout, 1)

    logger.debug("Found configured pages: %s", sorted(layout.pages))
    return layout


def apply_layout(deck, layout):
    """
    Create the pages and keys of a layout on a deck

    The page marked Default (else the lowest numbered page) becomes the
    default and focused page.

    Returns:
        Dict of page number to Page
    """
    deck.set_brightness(layout.deck.brightness)

    pages = {}
    for number in sorted(layout.pages):
        page_layout = layout.pages[number]
        pages[number] = deck.create_page(page_layout.options)

        for index in sorted(page_layout.keys):
            key_layout = page_layout.keys[index]
            options = key_layout.options
            options.attach_to_pages = [PageAttachment(pages[number], index=index)]
            deck.create_key(options)

        logger.debug("Page %d: %d configured keys", number, len(page_layout.keys))

    defaults = [number for number in sorted(layout.pages) if layout.pages[number].default]
    initial = defaults[0] if defaults else min(pages)

    deck.set_default_page(pages[initial])
    deck.set_focused_page(pages[initial])
    return pages


def _page(layout, number):
    if number not in layout.pages:
        layout.pages[number] = PageLayout(number, PageOptions())
    return layout.pages[number]


def _read_page(configopts, page, base_dir):
    section = configopts.name
    color = configopts.get("BackgroundColor", None)
    image = _path(configopts.get("Background", None), base_dir)

    page.default = _get(configopts, "Default", configopts.getboolean, False)
    page.options.background = _layers(color, image)
    page.options.hold_time = _get(configopts, "HoldTime", configopts.getint, None)
    page.options.idle_time = _get(configopts, "IdleTime", configopts.getint, None)
    page.options.brightness = _get(configopts, "Brightness", configopts.getint, None)
    _validated(page.options, section)


def _read_key(configopts, index, base_dir):
    section = configopts.name
    color = configopts.get("BackgroundColor", None)
    background = _path(configopts.get("BackgroundImage", None), base_dir)

    options = KeyOptions(
        hold_time=_get(configopts, "HoldTime", configopts.getint, None),
        press_time=_get(configopts, "PressTime", configopts.getint, None),
        press_scale=_get(configopts, "PressScale", configopts.getfloat, None),
        idle_time=_get(configopts, "IdleTime", configopts.getint, None),
        background=_layers(color, background),
        image=_path(configopts.get("Image", None), base_dir),
    )
    return KeyLayout(index, _validated(options, section))


def _layers(color, image):
    if color is None:
        return image
    if image is None:
        return SolidColor(color)
    return [SolidColor(color), image]


def _get(configopts, option, getter, fallback):
    try:
        return getter(option, fallback)
    except ValueError as err:
        raise ValidationError("{}.{}".format(configopts.name, option), str(err)) from err


def _validated(options, section):
    try:
        return options.validate()
    except ValidationError as err:
        raise ValidationError("{}.{}".format(section, err.name), err.message) from err


def _page_number(section, text):
    try:
        number = int(text)
    except ValueError:
        raise ValidationError(section, "page number must be an integer")

    if not 1 <= number <= MAX_PAGES:
        logger.warning("Ignoring [%s]: pages are numbered 1-%d", section, MAX_PAGES)
        return None
    return number


def _key_index(section, text):
    try:
        index = int(text)
    except ValueError:
        raise ValidationError(section, "key index must be an integer")

    if index < 0:
        raise ValidationError(section, "key index must be >= 0")
    return index


def _path(filename, base_dir):
    # Resolve path: absolute or relative to the layout file
    if not filename:
        return None
    return filename if os.path.isabs(filename) else os.path.join(base_dir, filename)
