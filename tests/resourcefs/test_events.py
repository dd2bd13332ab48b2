"""
Tests for change event delivery.
"""

import pytest

from resourcefs.events import EventEmitter, FileChangeEvent, FileChangeType

CHANGED = [FileChangeEvent(FileChangeType.CHANGED, "/a.js")]


class TestEventEmitter:
    def test_delivers_batches(self):
        emitter = EventEmitter()
        received = []
        emitter.subscribe(received.append)

        emitter.fire(CHANGED)

        assert received == [CHANGED]

    def test_unsubscribe(self):
        emitter = EventEmitter()
        received = []
        unsubscribe = emitter.subscribe(received.append)

        unsubscribe()
        unsubscribe()
        emitter.fire(CHANGED)

        assert received == []
        assert emitter.listener_count == 0

    def test_empty_batch_is_not_delivered(self):
        emitter = EventEmitter()
        received = []
        emitter.subscribe(received.append)

        emitter.fire([])

        assert received == []

    def test_failing_listener_does_not_block_others(self):
        emitter = EventEmitter()
        received = []

        def broken(events):
            raise RuntimeError("listener bug")

        emitter.subscribe(broken)
        emitter.subscribe(received.append)

        emitter.fire(CHANGED)

        assert received == [CHANGED]

    @pytest.mark.asyncio
    async def test_queue_receives_batches(self):
        emitter = EventEmitter()
        queue = emitter.queue()

        emitter.fire(CHANGED)

        assert await queue.get() == CHANGED

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self):
        emitter = EventEmitter()
        queue = emitter.queue(maxsize=2)

        for i in range(3):
            emitter.fire([FileChangeEvent(FileChangeType.CREATED, f"/{i}.js")])

        assert queue.qsize() == 2
        assert (await queue.get())[0].path == "/1.js"
        assert (await queue.get())[0].path == "/2.js"
