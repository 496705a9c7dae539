"""Tests for chunk assembly, stereo synthesis and WAV sinks."""

from __future__ import annotations

import io
import struct

import numpy as np
import pytest
import soundfile as sf

from koko_core import audio
from koko_core.audio import (
    StreamSink,
    apply_phase_shift,
    concatenate_chunks,
    encode_pcm16,
    encode_wav,
    stream_header,
    to_channels,
    write_wav,
)
from koko_core.constants import SAMPLE_RATE
from conftest import RecordingPipe


def _reference_allpass(x: np.ndarray, k: float) -> np.ndarray:
    y = np.zeros_like(x)
    prev_x = np.float32(0.0)
    prev_y = np.float32(0.0)
    kf = np.float32(k)
    for n, xn in enumerate(x):
        prev_y = kf * xn + prev_y - kf * prev_x
        y[n] = prev_y
        prev_x = xn
    return y


@pytest.fixture
def signal() -> np.ndarray:
    rng = np.random.default_rng(1)
    return rng.uniform(-0.5, 0.5, 480).astype(np.float32)


class TestConcatenate:
    def test_lengths_add_up(self):
        out = concatenate_chunks([np.ones(3), np.zeros(5), np.full(2, 0.5)])
        assert out.shape == (10,)
        assert out.dtype == np.float32
        np.testing.assert_array_equal(out[:3], 1.0)
        np.testing.assert_array_equal(out[8:], 0.5)

    def test_empty(self):
        assert concatenate_chunks([]).shape == (0,)


class TestStereo:
    def test_zero_phase_shift_duplicates(self, signal):
        stereo = to_channels(signal, mono=False, phase_shift=0.0)
        assert stereo.shape == (signal.size, 2)
        np.testing.assert_array_equal(stereo[:, 0], stereo[:, 1])

    def test_zero_phase_shift_filter_agrees_with_duplication(self, signal):
        filtered = apply_phase_shift(signal, 0.0)
        duplicated = to_channels(signal, mono=False, phase_shift=0.0)[:, 1]
        assert filtered.tobytes() == duplicated.tobytes()
        assert filtered is not signal

    @pytest.mark.parametrize("k", [0.3, -0.7, 1.0])
    def test_filter_matches_recurrence(self, signal, k):
        # Bit-exact against the step-by-step float32 recurrence
        expected = _reference_allpass(signal, k)
        assert apply_phase_shift(signal, k).tobytes() == expected.tobytes()

    def test_left_channel_untouched(self, signal):
        stereo = to_channels(signal, mono=False, phase_shift=-0.7)
        np.testing.assert_array_equal(stereo[:, 0], signal)

    def test_mono_pass_through(self, signal):
        out = to_channels(signal, mono=True, phase_shift=0.5)
        assert out.ndim == 1
        np.testing.assert_array_equal(out, signal)

    def test_phase_shift_out_of_range(self, signal):
        with pytest.raises(ValueError):
            apply_phase_shift(signal, 1.5)


class TestWriteWav:
    def test_stereo_float_wav(self, tmp_path, signal):
        path = write_wav(tmp_path / "out" / "a.wav", signal, mono=False)
        info = sf.info(str(path))
        assert info.samplerate == SAMPLE_RATE
        assert info.channels == 2
        assert info.subtype == "FLOAT"
        data, _ = sf.read(str(path), dtype="float32")
        np.testing.assert_array_equal(data[:, 0], signal)
        assert not list(tmp_path.glob("out/*.partial"))

    def test_mono(self, tmp_path, signal):
        path = write_wav(tmp_path / "m.wav", signal, mono=True)
        assert sf.info(str(path)).channels == 1

    def test_failed_write_leaves_nothing(self, tmp_path, signal, monkeypatch):
        def _boom(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(audio.sf, "write", _boom)
        target = tmp_path / "never.wav"
        with pytest.raises(RuntimeError):
            write_wav(target, signal)
        assert not target.exists()
        assert not list(tmp_path.iterdir())


class TestEncoders:
    def test_encode_wav_round_trip(self, signal):
        data, sr = sf.read(io.BytesIO(encode_wav(signal, mono=True)), dtype="float32")
        assert sr == SAMPLE_RATE
        np.testing.assert_array_equal(data, signal)

    def test_pcm16_clips(self):
        raw = encode_pcm16(np.array([2.0, -2.0, 0.0], dtype=np.float32))
        assert np.frombuffer(raw, dtype="<i2").tolist() == [32767, -32767, 0]


class TestStreamHeader:
    def test_layout(self):
        header = stream_header(channels=2)
        assert len(header) == 44
        assert header[:4] == b"RIFF"
        assert header[8:12] == b"WAVE"
        fmt_tag, channels, rate = struct.unpack("<HHI", header[20:28])
        assert (fmt_tag, channels, rate) == (3, 2, SAMPLE_RATE)
        assert struct.unpack("<H", header[34:36])[0] == 32
        assert header[36:40] == b"data"


class TestStreamSink:
    def test_header_written_once(self):
        pipe = RecordingPipe()
        sink = StreamSink(pipe, mono=True)
        sink.write_header()
        sink.write_header()
        sink.write_block(np.zeros(4, dtype=np.float32))
        assert sum(1 for w in pipe.writes if w.startswith(b"RIFF")) == 1

    def test_each_block_flushed(self):
        pipe = RecordingPipe()
        sink = StreamSink(pipe, mono=True)
        sink.write_block(np.ones(3, dtype=np.float32))
        sink.write_block(np.ones(5, dtype=np.float32))
        kinds = [kind for kind, _ in pipe.events]
        assert kinds == ["write", "flush", "write", "flush", "write", "flush"]
        assert [len(w) for w in pipe.writes[1:]] == [12, 20]
        assert sink.blocks_written == 2

    def test_stereo_interleaves(self):
        pipe = RecordingPipe()
        sink = StreamSink(pipe, mono=False)
        sink.write_block(np.array([0.25, -0.5], dtype=np.float32))
        header, block = pipe.writes
        assert struct.unpack("<H", header[22:24])[0] == 2
        assert np.frombuffer(block, dtype="<f4").tolist() == [0.25, 0.25, -0.5, -0.5]
