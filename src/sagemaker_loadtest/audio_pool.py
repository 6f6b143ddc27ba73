"""
Audio Pool - Loads the candidate request payloads for the load test.

Every audio file in the dataset directory is read into memory once, before
any virtual user starts, so iterations never touch the filesystem.
"""

import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import structlog

from .exceptions import PayloadNotFoundError

logger = structlog.get_logger()

AUDIO_EXTENSIONS = (".mp3", ".wav", ".flac", ".ogg", ".raw", ".pcm")

MP3_CONTENT_TYPE = "audio/mp3"
RAW_CONTENT_TYPE = "audio/x-raw;rate=22050;format=f32le;channels=1"


@dataclass(frozen=True)
class AudioFile:
    """A payload file held in memory."""
    name: str
    path: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def default_content_type(file_name: str) -> str:
    """Content type implied by the payload's extension."""
    if file_name.endswith(".mp3"):
        return MP3_CONTENT_TYPE
    return RAW_CONTENT_TYPE


def resolve_content_type(file_name: str, override: Optional[str] = None) -> str:
    return override or default_content_type(file_name)


class AudioPool:
    """
    Holds every payload file found in the dataset directory.

    Usage:
        pool = AudioPool("./dataset")
        pool.load()
        payload = pool.get("10sec_test.mp3")
    """

    def __init__(self, dataset_dir: str):
        self.dataset_dir = Path(dataset_dir)
        self._files: Dict[str, AudioFile] = {}
        self._loaded = False

    def load(self) -> int:
        """
        Load all audio files from the dataset directory.

        Returns:
            Number of files loaded.

        Raises:
            FileNotFoundError: If the dataset directory doesn't exist.
            ValueError: If it holds no audio files.
        """
        if not self.dataset_dir.is_dir():
            raise FileNotFoundError(f"Dataset directory not found: {self.dataset_dir}")

        paths = sorted(
            p for p in self.dataset_dir.iterdir()
            if p.is_file() and p.suffix.lower() in AUDIO_EXTENSIONS
        )
        if not paths:
            raise ValueError(f"No audio files found in {self.dataset_dir}")

        self._files = {}
        for path in paths:
            audio_file = AudioFile(name=path.name, path=str(path), data=path.read_bytes())
            self._files[audio_file.name] = audio_file
            logger.debug("Loaded payload", file=audio_file.name, bytes=audio_file.size)

        self._loaded = True
        logger.info("Audio pool loaded", count=len(self._files), directory=str(self.dataset_dir))
        return len(self._files)

    def get(self, name: str) -> AudioFile:
        """
        Look up a payload by file name.

        Raises:
            RuntimeError: If the pool has not been loaded.
            PayloadNotFoundError: If no file with that name was loaded.
        """
        if not self._loaded:
            raise RuntimeError("AudioPool not loaded. Call load() first.")

        try:
            return self._files[name]
        except KeyError:
            raise PayloadNotFoundError(
                f"File {name} not found. Available: {', '.join(self.names)}"
            ) from None

    @property
    def names(self) -> List[str]:
        return list(self._files)

    @property
    def count(self) -> int:
        return len(self._files)

    def summary(self) -> dict:
        """Get summary statistics about the audio pool."""
        if not self._files:
            return {"loaded": False, "count": 0}

        sizes = [f.size for f in self._files.values()]
        return {
            "loaded": True,
            "count": len(sizes),
            "total_bytes": sum(sizes),
            "min_bytes": min(sizes),
            "max_bytes": max(sizes),
            "files": self.names,
        }


def create_test_audio(output_dir: str, duration: float = 2.0, sample_rate: int = 22050) -> str:
    """
    Write a raw f32le mono silence payload, matching the raw content type.

    Args:
        output_dir: Directory to save the file.
        duration: Duration in seconds.
        sample_rate: Sample rate in Hz.
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    filepath = output_path / f"silence_{duration}s.raw"
    num_samples = int(duration * sample_rate)
    filepath.write_bytes(struct.pack(f"<{num_samples}f", *([0.0] * num_samples)))

    logger.info("Created test audio", path=str(filepath), samples=num_samples)
    return str(filepath)
