"""Shared test fixtures."""

import pytest
import pytest_asyncio

from helpers import FakeTransport
from layerdeck import Deck, DeckOptions


@pytest.fixture
def transport():
    return FakeTransport()


@pytest_asyncio.fixture
async def deck(transport):
    """A deck on a 2x3 fake device with 8x8 keys and short timers."""
    deck = Deck(transport, DeckOptions(hold_time=50, idle_time=0))
    yield deck
    if not deck.destroyed:
        deck.destroy()


@pytest.fixture
def recorder():
    """Collects (source, event, args) triples from any number of entities."""

    class Recorder:
        def __init__(self):
            self.events = []

        def watch(self, entity, *events, tag=None):
            for event in events:
                entity.on(event, self._listener(tag or type(entity).__name__.lower(), event))

        def names(self, tag):
            return [event for source, event, _ in self.events if source == tag]

        def _listener(self, tag, event):
            def listener(*args):
                self.events.append((tag, event, args))
            return listener

    return Recorder()
