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
Serialized render queue

All pixel production and device writes of one deck go through a single
FIFO with one worker, so a key press and an animation tick never
interleave their writes.
"""

import asyncio
import logging

logger = logging.getLogger(__name__)


class RenderQueue:
    """
    FIFO of render jobs drained by one worker task

    A job is a coroutine function taking no arguments. Jobs read live
    state when they run, so a stale job simply draws the current state.
    """

    def __init__(self, loop=None):
        self._loop = loop or asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._worker = None
        self._closed = False
        self._busy = False

    def __len__(self):
        return self._queue.qsize()

    @property
    def closed(self):
        return self._closed

    def push(self, job, owner=None):
        """
        Append a job

        Args:
            job: Coroutine function to run
            owner: Emitter whose error channel receives the job's failure
        """
        if self._closed:
            return

        self._queue.put_nowait((job, owner))

        if self._worker is None or self._worker.done():
            self._worker = self._loop.create_task(self._drain())

    async def join(self):
        """Wait until every queued job has run"""
        await self._queue.join()

    def close(self):
        """
        Drop pending jobs and stop the worker

        A job already running is left to finish; await wait_closed() to
        know when its writes are done.
        """
        self._closed = True

        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

        if self._worker is not None and not self._busy:
            self._worker.cancel()

    async def wait_closed(self):
        """Wait for the worker, and the job it was running, to stop"""
        if self._worker is not None:
            await asyncio.wait([self._worker])
            self._worker = None

    async def _drain(self):
        while not self._closed:
            job, owner = await self._queue.get()
            self._busy = True
            try:
                await job()
            except asyncio.CancelledError:
                raise
            except Exception as err:
                # A failed job must never stop the queue
                if owner is not None:
                    owner._report_error(err)
                else:
                    logger.error("Render job failed: %s", err, exc_info=err)
            finally:
                self._busy = False
                self._queue.task_done()
