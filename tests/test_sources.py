"""Tests for the decoded, queued and continuous sample sources."""

import numpy as np
import pytest

from audiointake.audio.capture_queue import CaptureQueue
from audiointake.errors import SeekOutOfRangeError
from audiointake.sources import ContinuousSampleSource, DecodedSampleSource, QueueSampleSource
from audiointake.sources.decoded import seek_byte_offset

from conftest import ArrayDecoder, ScriptedSource


class TestDecodedSampleSource:
    def test_pulls_never_exceed_request_and_end_with_zero(self):
        decoder = ArrayDecoder(np.arange(2500, dtype=np.float32), 1000)
        source = DecodedSampleSource(decoder, sample_rate=1000)

        counts = []
        while True:
            chunk = source.pull(1000)
            assert chunk.count <= 1000
            counts.append(chunk.count)
            if chunk.count == 0:
                break

        assert counts == [1000, 1000, 500, 0]
        assert source.finished

    def test_downmixes_to_mono(self):
        stereo = np.stack([np.full(100, 1.0), np.full(100, 3.0)], axis=1)
        source = DecodedSampleSource(ArrayDecoder(stereo, 1000), sample_rate=1000)

        chunk = source.pull(100)

        np.testing.assert_allclose(chunk.valid, np.full(100, 2.0, dtype=np.float32))

    def test_resampled_length_matches_rate_ratio(self):
        decoder = ArrayDecoder(np.zeros(8000, dtype=np.float32), 8000)
        source = DecodedSampleSource(decoder, sample_rate=4000)

        total = 0
        while not source.finished:
            total += source.pull(333).count

        assert total == 4000

    def test_seek_is_applied_on_first_pull(self):
        decoder = ArrayDecoder(np.arange(1000, dtype=np.float32), 100)
        source = DecodedSampleSource(decoder, sample_rate=100, start_at=2.5)
        assert decoder.reads == 0

        chunk = source.pull(10)

        np.testing.assert_array_equal(chunk.valid, np.arange(250, 260, dtype=np.float32))

    def test_seek_past_end_fails_on_first_pull_not_at_construction(self):
        decoder = ArrayDecoder(np.zeros(100, dtype=np.float32), 100)
        source = DecodedSampleSource(decoder, sample_rate=100, start_at=5.0)

        with pytest.raises(SeekOutOfRangeError):
            source.pull(10)

    def test_seek_offset_uses_frame_size(self):
        decoder = ArrayDecoder(np.zeros((10, 2), dtype=np.float32), 1000, bits_per_sample=16)

        assert seek_byte_offset(decoder, 1.5) == 6000

    def test_close_closes_decoder(self):
        decoder = ArrayDecoder(np.zeros(10, dtype=np.float32), 100)
        DecodedSampleSource(decoder, sample_rate=100).close()

        assert decoder.closed


class TestQueueSampleSource:
    def test_splits_large_buffers_and_finishes_after_completion(self):
        q = CaptureQueue()
        q.append(np.arange(10, dtype=np.float32))
        q.complete()
        source = QueueSampleSource(q)

        counts = [source.pull(4).count for _ in range(4)]

        assert counts == [4, 4, 2, 0]
        assert source.finished

    def test_poll_interval_returns_unfinished_empty_chunk(self):
        source = QueueSampleSource(CaptureQueue(), poll_interval=0.01)

        chunk = source.pull(10)

        assert chunk.count == 0
        assert not source.finished


class TestContinuousSampleSource:
    def test_empty_pull_is_not_terminal(self):
        sleeps = []
        inner = ScriptedSource([5])
        source = ContinuousSampleSource(inner, retry_interval=0.5, sleep=sleeps.append)

        assert source.pull(10).count == 5
        assert source.pull(10).count == 0
        assert inner.finished
        assert not source.finished
        assert sleeps == [0.5]
        assert source.empty_pulls == 1

    def test_reopens_finished_inner_source(self):
        opened = []

        def reopen():
            src = ScriptedSource([7])
            opened.append(src)
            return src

        first = ScriptedSource([3])
        source = ContinuousSampleSource(first, retry_interval=0.0, reopen=reopen)

        assert source.pull(10).count == 3
        assert source.pull(10).count == 0
        assert first.closed
        assert source.pull(10).count == 7
        assert len(opened) == 1

    def test_close_closes_inner(self):
        inner = ScriptedSource([])
        ContinuousSampleSource(inner).close()

        assert inner.closed
