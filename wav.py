"""Float sample <-> 16-bit PCM WAV helpers."""

from __future__ import annotations

import io
import wave

import numpy as np


def float_to_pcm16(samples: np.ndarray) -> np.ndarray:
    """Clamp float samples to [-1, 1] and scale them to int16."""
    clipped = np.clip(np.asarray(samples, dtype=np.float32).reshape(-1), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 0x8000, clipped * 0x7FFF)
    return scaled.astype(np.int16)


def encode_wav(samples: np.ndarray, sample_rate: int = 16000) -> bytes:
    """Encode mono float samples as a canonical 44-byte-header PCM WAV."""
    pcm = float_to_pcm16(samples)
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm.tobytes())
    return buf.getvalue()


def decode_wav(data: bytes) -> tuple[np.ndarray, int]:
    """Return (float32 samples, sample rate) from a 16-bit mono WAV."""
    with wave.open(io.BytesIO(data), "rb") as wf:
        if wf.getsampwidth() != 2:
            raise ValueError(f"unsupported sample width: {wf.getsampwidth()}")
        sample_rate = wf.getframerate()
        frames = wf.readframes(wf.getnframes())
    pcm = np.frombuffer(frames, dtype="<i2")
    samples = np.where(pcm < 0, pcm / 0x8000, pcm / 0x7FFF).astype(np.float32)
    return samples, sample_rate
