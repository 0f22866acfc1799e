from __future__ import annotations

import hashlib

import pytest

from device.capture import FileImageSource, StubCamera
from wastesort.fingerprint import fingerprint, is_fingerprint


def test_fingerprint_is_hex_sha256_of_bytes() -> None:
    data = b"\x89PNG\r\n\x1a\nfake-image"
    digest = fingerprint(data)
    assert digest == hashlib.sha256(data).hexdigest()
    assert is_fingerprint(digest)


def test_fingerprint_changes_with_single_byte() -> None:
    assert fingerprint(b"abc") != fingerprint(b"abd")


def test_fingerprint_accepts_bytearray() -> None:
    assert fingerprint(bytearray(b"abc")) == fingerprint(b"abc")


def test_fingerprint_rejects_text() -> None:
    with pytest.raises(TypeError):
        fingerprint("not bytes")  # type: ignore[arg-type]


def test_camera_and_upload_paths_share_fingerprint(tmp_path) -> None:
    frame = StubCamera(color=(10, 20, 30)).capture()
    image_path = tmp_path / "photo.jpg"
    image_path.write_bytes(frame.data)

    uploaded = FileImageSource(image_path).capture()

    assert frame.source == "camera"
    assert uploaded.source == "upload"
    assert fingerprint(frame.data) == fingerprint(uploaded.data)


@pytest.mark.parametrize(
    "value",
    ["", "abc", "g" * 64, "_" * 64, "a" * 63, " " + "a" * 63, None, 42],
)
def test_is_fingerprint_rejects_malformed_values(value) -> None:
    assert not is_fingerprint(value)
