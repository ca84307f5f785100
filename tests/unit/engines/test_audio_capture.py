# SPDX-License-Identifier: Apache-2.0
"""Unit tests for AudioCapture."""

from types import SimpleNamespace
from unittest.mock import MagicMock, Mock

import numpy as np
import pytest

from config.constants import MAX_AUDIO_GAIN, MIN_AUDIO_GAIN
from engines.audio.capture import MAX_CONSECUTIVE_READ_ERRORS, AudioCapture, AudioCaptureError


def _fake_pyaudio(devices):
    instance = MagicMock()
    instance.get_device_count.return_value = len(devices)

    def info(index):
        entry = devices[index]
        if isinstance(entry, Exception):
            raise entry
        return entry

    instance.get_device_info_by_index.side_effect = info
    return SimpleNamespace(PyAudio=Mock(return_value=instance), paInt16=8), instance


class TestConvertFrame:
    def test_mono_frame_is_normalised(self):
        raw = np.array([0, 16384, -16384], dtype=np.int16).tobytes()

        frame = AudioCapture.convert_frame(raw)

        assert frame.dtype == np.float32
        assert np.allclose(frame, [0.0, 0.5, -0.5])

    def test_stereo_frame_is_downmixed(self):
        raw = np.array([16384, 0, -16384, -16384], dtype=np.int16).tobytes()

        frame = AudioCapture.convert_frame(raw, channels=2)

        assert np.allclose(frame, [0.25, -0.5])

    def test_gain_is_clipped(self):
        raw = np.array([16384, -16384], dtype=np.int16).tobytes()

        frame = AudioCapture.convert_frame(raw, gain=4.0)

        assert np.allclose(frame, [1.0, -1.0])


class TestGain:
    def test_in_range_gain_is_kept(self):
        capture = AudioCapture()
        capture.set_gain(1.5)
        assert capture.gain == 1.5

    def test_out_of_range_gain_is_clamped(self):
        capture = AudioCapture()

        capture.set_gain(MAX_AUDIO_GAIN + 10)
        assert capture.gain == MAX_AUDIO_GAIN

        capture.set_gain(MIN_AUDIO_GAIN - 10)
        assert capture.gain == MIN_AUDIO_GAIN


class TestDevices:
    def test_lists_only_input_devices(self):
        module, _ = _fake_pyaudio(
            [
                {"name": "Mic", "maxInputChannels": 2, "defaultSampleRate": 48000.0},
                {"name": "Speakers", "maxInputChannels": 0},
                OSError("gone"),
            ]
        )
        capture = AudioCapture()
        capture._pyaudio_module = module

        devices = capture.get_input_devices()

        assert devices == [
            {"index": 0, "name": "Mic", "max_input_channels": 2, "default_sample_rate": 48000.0}
        ]

    def test_missing_pyaudio_returns_empty_list(self):
        capture = AudioCapture()
        capture._ensure_module = Mock(side_effect=ImportError("no pyaudio"))

        assert capture.get_input_devices() == []


class TestCapture:
    def test_open_failure_raises_capture_error(self):
        module, instance = _fake_pyaudio([])
        instance.open.side_effect = OSError("device busy")
        capture = AudioCapture()
        capture._pyaudio_module = module

        with pytest.raises(AudioCaptureError, match="device busy"):
            capture.start_capture()

        assert capture.is_capturing is False

    def test_loop_delivers_frames(self):
        capture = AudioCapture()
        capture.is_capturing = True
        raw = np.array([16384] * 4, dtype=np.int16).tobytes()
        received = []

        def read(*_args, **_kwargs):
            if received:
                capture.is_capturing = False
                raise OSError("stopped")
            return raw

        capture.stream = Mock()
        capture.stream.read.side_effect = read

        capture._capture_loop(received.append, None)

        assert len(received) == 1
        assert np.allclose(received[0], [0.5] * 4)

    def test_loop_reports_lost_stream(self):
        capture = AudioCapture()
        capture.is_capturing = True
        capture.stream = Mock()
        capture.stream.read.side_effect = OSError("unplugged")
        on_error = Mock()

        capture._capture_loop(None, on_error)

        assert capture.stream.read.call_count == MAX_CONSECUTIVE_READ_ERRORS
        assert capture.is_capturing is False
        on_error.assert_called_once()
        assert isinstance(on_error.call_args.args[0], OSError)

    def test_callback_errors_do_not_stop_the_loop(self):
        capture = AudioCapture()
        capture.is_capturing = True
        raw = np.zeros(4, dtype=np.int16).tobytes()
        reads = []

        def read(*_args, **_kwargs):
            reads.append(1)
            if len(reads) > 2:
                capture.is_capturing = False
            return raw

        capture.stream = Mock()
        capture.stream.read.side_effect = read
        callback = Mock(side_effect=ValueError("boom"))

        capture._capture_loop(callback, None)

        assert callback.call_count == 3


class TestStop:
    def test_stop_joins_thread_then_closes_stream(self):
        capture = AudioCapture()
        capture.is_capturing = True
        capture.stream = Mock()
        capture.capture_thread = Mock()
        order = []
        capture.capture_thread.join.side_effect = lambda timeout: order.append("join")
        capture.stream.stop_stream.side_effect = lambda: order.append("stop_stream")
        capture.stream.close.side_effect = lambda: order.append("close")

        capture.stop_capture()

        assert order == ["join", "stop_stream", "close"]
        assert capture.is_capturing is False
        assert capture.stream is None
        assert capture.capture_thread is None

    def test_stop_when_idle_is_noop(self):
        capture = AudioCapture()
        capture.stop_capture()
        assert capture.stream is None

    def test_close_terminates_pyaudio(self):
        capture = AudioCapture()
        instance = Mock()
        capture.pyaudio = instance

        with capture:
            pass

        instance.terminate.assert_called_once()
        assert capture.pyaudio is None
