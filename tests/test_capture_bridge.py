"""Tests for CaptureBridge."""

import threading

import numpy as np
import pytest

from audiointake.aggregator import SamplesAggregator
from audiointake.audio.capture_bridge import CaptureBridge, CaptureState
from audiointake.errors import DeviceError, StallTimeoutError

from conftest import FakeCaptureDevice


def _ramp(start, size):
    return np.arange(start, start + size, dtype=np.float32)


class TestCaptureBridge:
    def test_device_stop_before_target_returns_partial(self):
        device = FakeCaptureDevice([_ramp(0, 1000), _ramp(1000, 1000), _ramp(2000, 500)])
        bridge = CaptureBridge(device)

        samples = bridge.record(SamplesAggregator(), seconds=10, sample_rate=5512)

        assert samples.size == 2500
        np.testing.assert_array_equal(samples, _ramp(0, 2500))
        assert bridge.state is CaptureState.COMPLETED
        assert bridge.error is None

    def test_reaching_target_stops_device(self):
        device = FakeCaptureDevice([_ramp(i * 1000, 1000) for i in range(10)], stop_when_done=False)
        bridge = CaptureBridge(device, queue_maxsize=2)

        samples = bridge.record(SamplesAggregator(), seconds=0.5, sample_rate=5512)

        assert samples.size == 2756
        np.testing.assert_array_equal(samples, _ramp(0, 2756))
        assert device.stop_calls == 1
        assert bridge.state is CaptureState.COMPLETED

    def test_external_stop_before_any_data_returns_empty(self):
        device = FakeCaptureDevice([], stop_when_done=False)
        bridge = CaptureBridge(device)
        timer = threading.Timer(0.1, bridge.stop)
        timer.start()

        samples = bridge.record(SamplesAggregator(stall_timeout=30.0), seconds=10, sample_rate=5512)
        timer.join()

        assert samples.size == 0
        assert bridge.state is CaptureState.COMPLETED

    def test_stop_before_record_returns_empty_without_starting(self):
        device = FakeCaptureDevice([_ramp(0, 100)])
        bridge = CaptureBridge(device)
        bridge.stop()

        samples = bridge.record(SamplesAggregator(), seconds=1, sample_rate=5512)

        assert samples.size == 0
        assert device.start_calls == 0

    def test_device_failure_carries_partial_samples(self):
        device = FakeCaptureDevice([_ramp(0, 500)], error=RuntimeError("overflow"))
        bridge = CaptureBridge(device)

        with pytest.raises(DeviceError) as exc_info:
            bridge.record(SamplesAggregator(), seconds=10, sample_rate=5512)

        assert exc_info.value.stage == "device"
        assert exc_info.value.samples.size == 500
        assert bridge.state is CaptureState.COMPLETED

    def test_start_failure_is_device_error(self):
        device = FakeCaptureDevice(start_error=OSError("no input device"))
        bridge = CaptureBridge(device)

        with pytest.raises(DeviceError):
            bridge.record(SamplesAggregator(), seconds=1, sample_rate=5512)

        assert bridge.state is CaptureState.COMPLETED

    def test_resamples_when_device_rate_differs(self):
        device = FakeCaptureDevice([np.zeros(2000, dtype=np.float32)] * 4, actual_sample_rate=11024)
        bridge = CaptureBridge(device)

        samples = bridge.record(SamplesAggregator(), seconds=10, sample_rate=5512)

        assert samples.size == 4000

    def test_silent_device_hits_stall_timeout(self):
        device = FakeCaptureDevice([], stop_when_done=False)
        bridge = CaptureBridge(device, poll_interval=0.02)

        with pytest.raises(StallTimeoutError):
            bridge.record(SamplesAggregator(stall_timeout=0.2), seconds=1, sample_rate=5512)

        assert device.stop_calls == 1
        assert bridge.state is CaptureState.COMPLETED

    def test_bridge_records_once(self):
        bridge = CaptureBridge(FakeCaptureDevice([_ramp(0, 10)]))
        bridge.record(SamplesAggregator(), seconds=1, sample_rate=100)

        with pytest.raises(RuntimeError):
            bridge.record(SamplesAggregator(), seconds=1, sample_rate=100)

    def test_device_initiated_stop_moves_to_stopping_before_completion(self):
        device = FakeCaptureDevice([_ramp(0, 1000)])
        bridge = CaptureBridge(device)
        seen = []

        class StateRecordingAggregator(SamplesAggregator):
            def read_samples(self, source, seconds, sample_rate):
                samples = super().read_samples(source, seconds, sample_rate)
                seen.append(bridge.state)
                return samples

        bridge.record(StateRecordingAggregator(), seconds=10, sample_rate=5512)

        assert seen == [CaptureState.STOPPING]
        assert bridge.state is CaptureState.COMPLETED

    def test_concurrent_device_and_external_stop_complete_once(self):
        device = FakeCaptureDevice([_ramp(i * 100, 100) for i in range(20)], delay=0.005)
        bridge = CaptureBridge(device)
        stoppers = [threading.Timer(0.05 + 0.005 * i, bridge.stop) for i in range(4)]
        for timer in stoppers:
            timer.start()

        samples = bridge.record(SamplesAggregator(), seconds=10, sample_rate=5512)
        for timer in stoppers:
            timer.join(timeout=5.0)

        assert bridge.state is CaptureState.COMPLETED
        assert device.stop_calls == 1
        np.testing.assert_array_equal(samples, _ramp(0, samples.size))
