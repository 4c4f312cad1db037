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

import argparse
import asyncio
import logging
import sys

from .config import apply_layout, load_layout
from .deck import open_deck
from .errors import DeckError
from .transport import list_devices

logger = logging.getLogger("layerdeck")


async def run(layout, device=None):
    """Show a layout on a deck until cancelled"""
    deck = await open_deck(device, layout.deck)
    logger.debug("Opened '%s' device (serial number: '%s', fw: '%s')",
                 deck.model, deck.serial_number, deck.firmware_version)

    try:
        pages = apply_layout(deck, layout)
        logger.debug("Showing %d page(s)", len(pages))

        def on_click(index, page, key):
            logger.debug("Key %d clicked on %r", index, page)

        def on_held(index, page, key):
            logger.debug("Key %d held on %r", index, page)

        deck.on("click", on_click)
        deck.on("held", on_held)

        # Main loop: just keep running
        await asyncio.Event().wait()
    finally:
        await deck.close()


def main(argv=None):
    # Parse command line arguments
    ap = argparse.ArgumentParser(
        prog="layerdeck",
        description="Layered pages, keys and animated images for StreamDeck",
    )
    ap.add_argument("configfile", nargs="?", help="Path to layout INI file")
    ap.add_argument("--verbose", action="store_true", help="Log debug output")
    ap.add_argument("--device", metavar="PATH_OR_SERIAL", help="Deck to open, defaults to the first one")
    ap.add_argument("--list", action="store_true", help="List connected decks and exit")
    args = ap.parse_args(argv)

    if args.list:
        logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
        for device in list_devices():
            print("{}\t{}\t{}".format(device.path, device.model, device.serial_number or "-"))
        return 0

    if not args.configfile:
        ap.error("configfile is required")

    try:
        layout = load_layout(args.configfile)
    except (OSError, DeckError) as err:
        print("Unable to load {}: {}".format(args.configfile, err), file=sys.stderr)
        return 1

    verbose = args.verbose or layout.verbose
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    try:
        asyncio.run(run(layout, args.device))
    except KeyboardInterrupt:
        # Clean shutdown on Ctrl+C
        logger.info("Shutting down...")
    except DeckError as err:
        logger.error("%s", err)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
