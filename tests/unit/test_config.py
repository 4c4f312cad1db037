"""Tests for option validation and INI layouts."""

import configparser
import os
import textwrap

import pytest

from layerdeck import DeckOptions, KeyOptions, PageOptions, SolidColor
from layerdeck.config import apply_layout, load_layout, parse_layout
from layerdeck.errors import ValidationError


def parse(text, base_dir="/layouts"):
    config = configparser.ConfigParser()
    config.read_string(textwrap.dedent(text))
    return parse_layout(config, base_dir)


class TestOptions:
    """Option dataclass validation."""

    def test_deck_defaults(self):
        options = DeckOptions().validate()
        assert options.hold_time == 500
        assert options.press_time == 0
        assert options.press_scale == 0.85
        assert options.idle_time == 10000
        assert options.brightness == 100

    @pytest.mark.parametrize("field, value", [
        ("hold_time", -1),
        ("hold_time", 1.5),
        ("press_scale", 2.5),
        ("brightness", 101),
        ("idle_time", True),
    ])
    def test_deck_rejects(self, field, value):
        with pytest.raises(ValidationError) as excinfo:
            DeckOptions(**{field: value}).validate()
        assert excinfo.value.name == field

    def test_none_inherits_on_pages_and_keys(self):
        assert PageOptions().validate().hold_time is None
        assert KeyOptions().validate().press_scale is None

    def test_attachments_must_be_lists(self):
        with pytest.raises(ValidationError):
            PageOptions(attach_keys="all").validate()
        with pytest.raises(ValidationError):
            KeyOptions(attach_to_pages=None).validate()


class TestParseLayout:
    """INI section handling."""

    def test_general_section(self):
        layout = parse("""
            [General]
            Verbose = yes
            HoldTime = 300
            PressScale = 0.5
            Brightness = 30
        """)

        assert layout.verbose
        assert layout.deck.hold_time == 300
        assert layout.deck.press_scale == 0.5
        assert layout.deck.brightness == 30
        assert layout.deck.idle_time == 10000

    def test_pages_and_keys(self):
        layout = parse("""
            [page.1]
            BackgroundColor = #102030

            [page.2]
            Background = splash.png
            Default = true
            HoldTime = 0

            [page.2.key.04]
            Image = icons/play.png
            BackgroundColor = red
            HoldTime = 250
        """)

        assert sorted(layout.pages) == [1, 2]
        assert layout.pages[1].options.background == SolidColor("#102030")
        assert not layout.pages[1].default

        second = layout.pages[2]
        assert second.default
        assert second.options.hold_time == 0
        assert second.options.background == os.path.join("/layouts", "splash.png")

        key = second.keys[4]
        assert key.index == 4
        assert key.options.image == os.path.join("/layouts", "icons/play.png")
        assert key.options.background == SolidColor("red")
        assert key.options.hold_time == 250

    def test_color_under_image(self):
        layout = parse("""
            [page.1.key.00]
            BackgroundColor = blue
            BackgroundImage = /abs/frame.png
        """)
        assert layout.pages[1].keys[0].options.background == [SolidColor("blue"), "/abs/frame.png"]

    def test_legacy_sections_belong_to_page_one(self):
        layout = parse("""
            [key.00]
            Image = legacy.png

            [key.01]
            Image = legacy.png

            [page.1.key.01]
            Image = specific.png
        """)

        keys = layout.pages[1].keys
        assert keys[0].options.image.endswith("legacy.png")
        assert keys[1].options.image.endswith("specific.png")

    def test_no_pages_means_page_one(self):
        layout = parse("""
            [General]
            Brightness = 50
        """)
        assert list(layout.pages) == [1]

    def test_out_of_range_page_is_skipped(self, caplog):
        layout = parse("""
            [page.21]
            Default = true

            [page.3]
        """)
        assert list(layout.pages) == [3]
        assert "page.21" in caplog.text

    def test_unknown_section_is_ignored(self, caplog):
        layout = parse("""
            [button.1]
            Image = x.png
        """)
        assert list(layout.pages) == [1]
        assert "button.1" in caplog.text

    def test_bad_number_names_the_option(self):
        with pytest.raises(ValidationError) as excinfo:
            parse("""
                [page.1]
                HoldTime = soon
            """)
        assert excinfo.value.name == "page.1.HoldTime"

    def test_out_of_range_value_names_the_section(self):
        with pytest.raises(ValidationError) as excinfo:
            parse("""
                [page.1.key.02]
                PressScale = 3
            """)
        assert excinfo.value.name == "page.1.key.02.press_scale"

    def test_bad_section_names(self):
        with pytest.raises(ValidationError):
            parse("""
                [page.one]
            """)
        with pytest.raises(ValidationError):
            parse("""
                [key.-1]
            """)


class TestLoadLayout:
    def test_paths_are_relative_to_file(self, tmp_path):
        path = tmp_path / "deck.ini"
        path.write_text("[page.1.key.00]\nImage = play.png\n", encoding="utf-8")

        layout = load_layout(str(path))

        assert layout.path == str(path)
        assert layout.pages[1].keys[0].options.image == str(tmp_path / "play.png")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_layout(str(tmp_path / "missing.ini"))


@pytest.mark.asyncio
class TestApplyLayout:
    """Building pages and keys on a deck."""

    async def test_default_page_gets_focus(self, deck, transport):
        layout = parse("""
            [General]
            Brightness = 30

            [page.1]

            [page.2]
            Default = true

            [page.2.key.03]
            BackgroundColor = green
        """)

        pages = apply_layout(deck, layout)

        assert sorted(pages) == [1, 2]
        assert deck.default_page is pages[2]
        assert deck.focused_page is pages[2]
        assert deck.brightness == 30

        key = pages[2].get_key(3)
        assert key is not None
        assert key.background_image is not None
        assert pages[1].keys == {}

        await key.background_image.wait_loaded()
        await deck.flush()
        assert transport.last_key_write(3)[:3] == bytes([0, 128, 0])

    async def test_lowest_page_without_default(self, deck):
        pages = apply_layout(deck, parse("""
            [page.4]
            [page.2]
        """))
        assert deck.focused_page is pages[2]
