"""Microphone + system audio capture pipeline."""

from __future__ import annotations

import logging
import threading
from queue import Full, Queue
from typing import Any, Optional

import numpy as np

from errors import CaptureError, CaptureFailure
from interfaces import AudioSource, BlockCallback, PcmSink
from models import AudioSession, RecordingSource
from wav import encode_wav, float_to_pcm16

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

try:
    import soundcard as sc
except Exception:  # pragma: no cover
    sc = None  # type: ignore

logger = logging.getLogger(__name__)

MIC = "microphone"
SYSTEM = "system"


def _downmix(data: Any) -> np.ndarray:
    block = np.asarray(data, dtype=np.float32)
    if block.ndim == 2 and block.shape[1] > 1:
        return block.mean(axis=1, dtype=np.float32)
    return block.reshape(-1).copy()


class MicrophoneSource:
    name = MIC

    def __init__(
        self,
        sample_rate: int = 16000,
        block_size: int = 4096,
        device: Optional[Any] = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.block_size = block_size
        self.device = device
        self._stream: Any = None
        self._on_block: Optional[BlockCallback] = None

    def start(self, on_block: BlockCallback) -> None:
        if sd is None:
            raise CaptureError(CaptureFailure.PERMISSION_DENIED, "sounddevice is not installed")
        self._on_block = on_block
        try:
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype="float32",
                blocksize=self.block_size,
                device=self.device,
                callback=self._on_audio,
            )
            self._stream.start()
        except sd.PortAudioError as exc:
            self._stream = None
            self._on_block = None
            raise CaptureError(
                CaptureFailure.PERMISSION_DENIED, f"Microphone unavailable: {exc}"
            ) from exc

    def stop(self) -> None:
        self._on_block = None
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.stop()
            stream.close()

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            logger.warning("Microphone stream status: %s", status)
        on_block = self._on_block
        if on_block is None:
            return
        on_block(_downmix(indata))


class SystemAudioSource:
    """Loopback capture of the default speaker."""

    name = SYSTEM

    def __init__(self, sample_rate: int = 16000, block_size: int = 4096) -> None:
        self.sample_rate = sample_rate
        self.block_size = block_size
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._on_block: Optional[BlockCallback] = None

    def start(self, on_block: BlockCallback) -> None:
        if sc is None:
            raise CaptureError(CaptureFailure.NO_SCREEN_SOURCE, "soundcard is not installed")
        try:
            speaker = sc.default_speaker()
            loopback = (
                sc.get_microphone(speaker.name, include_loopback=True)
                if speaker is not None
                else None
            )
        except Exception as exc:
            raise CaptureError(
                CaptureFailure.NO_SCREEN_SOURCE, f"System audio unavailable: {exc}"
            ) from exc
        if loopback is None:
            raise CaptureError(CaptureFailure.NO_SCREEN_SOURCE)

        self._on_block = on_block
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._worker, args=(loopback,), daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._on_block = None
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread.is_alive():
            thread.join(timeout=1.0)

    def _worker(self, loopback: Any) -> None:
        try:
            with loopback.recorder(
                samplerate=self.sample_rate, channels=2, blocksize=self.block_size
            ) as rec:
                while not self._stop_event.is_set():
                    data = rec.record(numframes=self.block_size)
                    on_block = self._on_block
                    if on_block is None:
                        break
                    on_block(_downmix(data))
        except Exception as exc:
            logger.warning("System audio capture stopped: %s", exc)


class AudioCapturePipeline:
    """Feeds microphone and system blocks through one mixing stage.

    Both sources push blocks into a bounded queue; a mixer thread drains it,
    sums pending system samples onto each microphone block, keeps a copy for
    the batch buffer and, when a live sink is attached, forwards the block as
    16-bit PCM right away.
    """

    def __init__(
        self,
        microphone: Optional[AudioSource] = None,
        system: Optional[AudioSource] = None,
        sample_rate: int = 16000,
        block_size: int = 4096,
        queue_maxsize: int = 64,
        max_pending_system_blocks: int = 8,
    ) -> None:
        self.sample_rate = sample_rate
        self.block_size = block_size
        self.microphone = microphone or MicrophoneSource(sample_rate, block_size)
        self.system = system or SystemAudioSource(sample_rate, block_size)
        self._queue_maxsize = queue_maxsize
        self._max_pending = max_pending_system_blocks * block_size
        self._lock = threading.Lock()
        self._session: Optional[AudioSession] = None
        self._queue: Optional[Queue] = None
        self._mixer: Optional[threading.Thread] = None
        self._live_sink: Optional[PcmSink] = None
        self._stats_lock = threading.Lock()
        self.dropped_blocks = 0

    @property
    def session(self) -> Optional[AudioSession]:
        return self._session

    @property
    def is_active(self) -> bool:
        return self._session is not None

    def start(
        self,
        source: RecordingSource,
        live_sink: Optional[PcmSink] = None,
    ) -> AudioSession:
        with self._lock:
            if self._session is not None:
                return self._session
            session = AudioSession(
                source=source,
                sample_rate=self.sample_rate,
                microphone_track=self.microphone.name,
                system_track=self.system.name,
            )
            audio_queue: Queue = Queue(maxsize=self._queue_maxsize)
            self._session = session
            self._queue = audio_queue
            self._live_sink = live_sink
            self.dropped_blocks = 0
            self._mixer = threading.Thread(
                target=self._mix, args=(session, audio_queue, live_sink), daemon=True
            )
            self._mixer.start()
            try:
                self.microphone.start(lambda block: self._enqueue(audio_queue, MIC, block))
                self.system.start(lambda block: self._enqueue(audio_queue, SYSTEM, block))
            except Exception:
                self._teardown()
                raise
            logger.info("Recording started (source=%s, live=%s)", source.value, live_sink is not None)
            return session

    def stop(self) -> bytes:
        """Detach both sources and return the encoded WAV.

        Returns an empty payload when a live sink consumed the audio.
        """
        with self._lock:
            session = self._session
            if session is None:
                return b""
            streamed = self._live_sink is not None
            self._teardown()

        if not session.chunks:
            raise CaptureError(CaptureFailure.EMPTY_BUFFER)
        samples = np.concatenate(session.chunks)
        if samples.size == 0:
            raise CaptureError(CaptureFailure.EMPTY_BUFFER)
        logger.info(
            "Recording stopped: %d samples (%.2fs), dropped %d blocks",
            samples.size,
            samples.size / self.sample_rate,
            self.dropped_blocks,
        )
        if streamed:
            return b""
        return encode_wav(samples, self.sample_rate)

    def _teardown(self) -> None:
        for source in (self.microphone, self.system):
            try:
                source.stop()
            except Exception as exc:
                logger.warning("Failed to stop %s source: %s", source.name, exc)
        audio_queue, mixer = self._queue, self._mixer
        if audio_queue is not None:
            audio_queue.put(None)
        if mixer is not None:
            mixer.join()
        if self._session is not None:
            self._session.is_active = False
        self._session = None
        self._queue = None
        self._mixer = None
        self._live_sink = None

    def _enqueue(self, audio_queue: Queue, tag: str, block: np.ndarray) -> None:
        try:
            audio_queue.put_nowait((tag, block))
        except Full:
            with self._stats_lock:
                self.dropped_blocks += 1

    def _mix(
        self,
        session: AudioSession,
        audio_queue: Queue,
        live_sink: Optional[PcmSink],
    ) -> None:
        pending = np.zeros(0, dtype=np.float32)
        while True:
            item = audio_queue.get()
            if item is None:  # Sentinel
                break
            tag, block = item
            if tag == SYSTEM:
                pending = np.concatenate([pending, block])[-self._max_pending:]
                continue

            mixed = np.array(block, dtype=np.float32)
            overlap = min(mixed.size, pending.size)
            if overlap:
                mixed[:overlap] += pending[:overlap]
                pending = pending[overlap:]
            session.chunks.append(mixed)

            if live_sink is not None:
                try:
                    live_sink.send_audio(float_to_pcm16(mixed).tobytes())
                except Exception as exc:
                    logger.warning("Dropping live audio block: %s", exc)
