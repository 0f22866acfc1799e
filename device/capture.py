from __future__ import annotations

import io
import pathlib
from dataclasses import dataclass
from typing import Protocol

from PIL import Image

_ENCODING_ALIASES = {"jpg": "jpeg", "jpeg": "jpeg", "png": "png", "webp": "webp"}


@dataclass
class Frame:
    """Container for image bytes on their way to the classification API."""

    data: bytes
    encoding: str = "jpeg"
    source: str = "camera"


class Camera(Protocol):
    def capture(self) -> Frame: ...

    def release(self) -> None: ...


class StubCamera:
    """Camera stand-in that renders a solid-colour JPEG, or replays a sample file."""

    def __init__(
        self,
        sample_path: pathlib.Path | None = None,
        color: tuple[int, int, int] = (120, 160, 90),
        size: tuple[int, int] = (64, 64),
    ) -> None:
        self._sample_path = sample_path
        self._color = color
        self._size = size

    def capture(self) -> Frame:
        if self._sample_path and self._sample_path.exists():
            data = self._sample_path.read_bytes()
            return Frame(data=data, encoding=_encoding_for(self._sample_path), source="camera")
        buffer = io.BytesIO()
        Image.new("RGB", self._size, self._color).save(buffer, format="JPEG")
        return Frame(data=buffer.getvalue(), source="camera")

    def release(self) -> None:
        return None


class FileImageSource:
    """Read an image file as-is, the way a browser upload delivers it."""

    def __init__(self, path: pathlib.Path) -> None:
        self._path = pathlib.Path(path)

    def capture(self) -> Frame:
        if not self._path.is_file():
            raise FileNotFoundError(f"Image file not found: {self._path}")
        return Frame(
            data=self._path.read_bytes(),
            encoding=_encoding_for(self._path),
            source="upload",
        )

    def release(self) -> None:
        return None


def _encoding_for(path: pathlib.Path) -> str:
    suffix = path.suffix.lstrip(".").lower()
    return _ENCODING_ALIASES.get(suffix, suffix or "jpeg")


__all__ = ["Camera", "FileImageSource", "Frame", "StubCamera"]
