"""Capture collaborators: live input devices and WAV files."""

import threading
import time
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import soundfile as sf

from ..core.errors import ConfigurationError
from ..logger import get_logger
from .interfaces import AudioCallback, IAudioProvider

logger = get_logger(__name__)


def _sounddevice():
    # PortAudio is loaded on import, so only pull it in when a device is needed
    import sounddevice as sd

    return sd


def list_input_devices() -> List[Tuple[int, Dict[str, Any]]]:
    """Return (device_id, device_info) for every device with input channels."""
    sd = _sounddevice()
    return [
        (device_id, device)
        for device_id, device in enumerate(sd.query_devices())
        if device["max_input_channels"] > 0
    ]


def find_input_device(name: str) -> Tuple[Optional[int], Optional[Dict[str, Any]]]:
    """Find an input device whose name contains ``name`` (case-insensitive).

    Returns:
        A tuple of (device_id, device_info) if found, (None, None) otherwise
    """
    try:
        for device_id, device in list_input_devices():
            if name.lower() in device["name"].lower():
                logger.info(f"Found input device {device_id}: {device['name']}")
                return device_id, device
        return None, None
    except Exception as e:
        logger.error(f"Error looking up input device '{name}': {e}")
        raise


def resolve_input_device(device: Optional[Any]) -> Optional[int]:
    """Turn a configured device (index, name fragment or None) into a device index.

    Raises:
        ConfigurationError: If no input device matches the name
    """
    if device is None or device == "":
        return None
    if isinstance(device, int) or (isinstance(device, str) and device.isdigit()):
        return int(device)
    device_id, _ = find_input_device(str(device))
    if device_id is None:
        raise ConfigurationError("device", "no input device matches", device)
    return device_id


class LiveAudioProvider(IAudioProvider):
    """Provides live audio from an input device using sounddevice.

    Chunks are delivered on the PortAudio callback thread; timestamps come
    from the sample clock so they advance exactly with the audio.
    """

    def __init__(
        self,
        device_id: Optional[int] = None,
        sample_rate: int = 44100,
        channels: int = 1,
        chunk_size: int = 1024,
    ):
        self._device_id = device_id
        self._sample_rate = sample_rate
        self._channels = channels
        self._chunk_size = chunk_size
        self._stream = None
        self._on_data_callback: Optional[AudioCallback] = None
        self._samples_seen = 0
        self._start_time = 0.0

    def start(self, on_data_callback: AudioCallback) -> None:
        sd = _sounddevice()
        self._on_data_callback = on_data_callback
        self._samples_seen = 0
        self._start_time = time.monotonic()
        self._stream = sd.InputStream(
            device=self._device_id,
            channels=self._channels,
            samplerate=self._sample_rate,
            blocksize=self._chunk_size,
            callback=self._audio_callback,
            dtype="float32",
        )
        self._stream.start()
        logger.info(
            f"Started input stream: device={self._device_id}, {self._sample_rate}Hz, "
            f"{self._channels} channel(s), blocksize={self._chunk_size}"
        )

    def stop(self) -> None:
        if self._stream:
            self._stream.stop()
            self._stream.close()
            self._stream = None
            logger.info("Stopped input stream")

    def _audio_callback(self, indata: np.ndarray, frames: int, _time_info, status) -> None:
        if status:
            logger.warning(f"Input stream status: {status}")
        timestamp = self._start_time + self._samples_seen / self._sample_rate
        self._samples_seen += frames
        if self._on_data_callback:
            chunk = indata[:, 0] if indata.shape[1] == 1 else indata.mean(axis=1)
            self._on_data_callback(chunk.astype(np.float32, copy=True), timestamp)

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def channels(self) -> int:
        return self._channels


class WavFileAudioProvider(IAudioProvider):
    """Provides audio data by reading from a sound file.

    Args:
        file_path: Any file libsndfile can read
        chunk_size: Samples per delivered chunk
        loop: Restart from the beginning at end of file
        gain: Linear gain applied to every sample
        realtime: Pace delivery at the file's sample rate
    """

    def __init__(
        self,
        file_path: str,
        chunk_size: int = 1024,
        loop: bool = False,
        gain: float = 1.0,
        realtime: bool = True,
    ):
        self._file_path = file_path
        self._chunk_size = chunk_size
        self._loop = loop
        self._gain = gain
        self._realtime = realtime
        self._on_data_callback: Optional[AudioCallback] = None
        self._is_running = False
        self._thread: Optional[threading.Thread] = None
        self._finished = threading.Event()

        with sf.SoundFile(self._file_path) as f:
            self._sample_rate = f.samplerate
            self._channels = f.channels
        logger.info(
            f"Opened {file_path}: {self._sample_rate}Hz, {self._channels} channel(s)"
        )

    def start(self, on_data_callback: AudioCallback) -> None:
        if self._is_running:
            return

        self._on_data_callback = on_data_callback
        self._is_running = True
        self._finished.clear()
        self._thread = threading.Thread(target=self._stream_data, name="file-reader", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._is_running = False
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join()
        self._thread = None

    @property
    def finished(self) -> threading.Event:
        """Set once the whole file has been delivered."""
        return self._finished

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the file has been fully delivered (never, when looping)."""
        return self._finished.wait(timeout)

    @property
    def is_running(self) -> bool:
        """Returns True if the provider is currently streaming data."""
        return self._is_running

    def _stream_data(self) -> None:
        position = 0
        try:
            with sf.SoundFile(self._file_path) as f:
                while self._is_running:
                    data = f.read(self._chunk_size, dtype="float32", always_2d=True)
                    if len(data) == 0:
                        if self._loop:
                            f.seek(0)
                            continue
                        break

                    chunk = data.mean(axis=1) if data.shape[1] > 1 else data[:, 0]
                    if self._gain != 1.0:
                        chunk = chunk * self._gain

                    if self._on_data_callback:
                        self._on_data_callback(chunk, position / self._sample_rate)
                    position += len(data)

                    if self._realtime:
                        time.sleep(len(data) / self._sample_rate)
        except Exception as e:
            logger.error(f"Error streaming {self._file_path}: {e}", exc_info=True)
            raise
        finally:
            self._is_running = False
            self._finished.set()
            logger.info(f"Finished reading {self._file_path} after {position} samples")

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def channels(self) -> int:
        return self._channels
