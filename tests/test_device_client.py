from __future__ import annotations

import base64
import io
from unittest.mock import Mock, patch

import pytest
from PIL import Image

from device.capture import FileImageSource, Frame, StubCamera
from device.main import run
from wastesort.api.client import WasteSortClientError, WasteSortHttpClient


def _response(status: int, body: dict) -> Mock:
    response = Mock()
    response.status_code = status
    response.json.return_value = body
    response.text = ""
    return response


def test_stub_camera_produces_readable_jpeg() -> None:
    frame = StubCamera(color=(200, 10, 10), size=(16, 12)).capture()
    assert frame.encoding == "jpeg"
    with Image.open(io.BytesIO(frame.data)) as img:
        assert img.size == (16, 12)


def test_file_image_source_reads_raw_bytes(tmp_path) -> None:
    path = tmp_path / "bottle.JPG"
    path.write_bytes(b"raw-bytes")
    frame = FileImageSource(path).capture()
    assert frame == Frame(data=b"raw-bytes", encoding="jpeg", source="upload")

    with pytest.raises(FileNotFoundError):
        FileImageSource(tmp_path / "missing.png").capture()


def test_client_submit_posts_base64_payload() -> None:
    session = Mock()
    session.request.return_value = _response(200, {"category": "glass"})
    client = WasteSortHttpClient(base_url="http://api.local/", session=session)

    result = client.submit(Frame(data=b"img", source="camera"), user_id="alice")

    assert result == {"category": "glass"}
    args, kwargs = session.request.call_args
    assert args == ("POST", "http://api.local/v1/classifications")
    assert kwargs["json"] == {
        "image_base64": base64.b64encode(b"img").decode("ascii"),
        "user_id": "alice",
        "source": "camera",
    }


def test_client_history_passes_limit() -> None:
    session = Mock()
    session.request.return_value = _response(
        200, {"user_id": "alice", "entries": [{"delta": 5, "reason": "Waste Classification"}]}
    )
    client = WasteSortHttpClient(base_url="http://api.local", session=session)

    result = client.history("alice", limit=3)

    assert result["entries"][0]["delta"] == 5
    args, kwargs = session.request.call_args
    assert args == ("GET", "http://api.local/v1/users/alice/points/history")
    assert kwargs["params"] == {"limit": 3}


def test_client_raises_on_error_status() -> None:
    session = Mock()
    session.request.return_value = _response(409, {"detail": "User bob has 2 point(s)"})
    client = WasteSortHttpClient(base_url="http://api.local", session=session)

    with pytest.raises(WasteSortClientError) as excinfo:
        client.redeem("bob", 10)
    assert excinfo.value.status_code == 409
    assert "2 point(s)" in str(excinfo.value)


def test_run_submits_file_and_prints_result(tmp_path, capsys) -> None:
    path = tmp_path / "can.png"
    path.write_bytes(b"png-bytes")
    fake_client = Mock()
    fake_client.submit.return_value = {"category": "metal", "reward_status": "awarded"}
    fake_client.balance.return_value = {"user_id": "alice", "balance": 5}

    with patch("device.main.WasteSortHttpClient", return_value=fake_client):
        code = run(["--image", str(path), "--user", "alice", "--balance"])

    assert code == 0
    frame = fake_client.submit.call_args.args[0]
    assert frame.data == b"png-bytes"
    assert frame.source == "upload"
    output = capsys.readouterr().out
    assert '"category": "metal"' in output
    assert '"balance": 5' in output


def test_run_prints_history_when_requested(capsys) -> None:
    fake_client = Mock()
    fake_client.submit.return_value = {"category": "paper"}
    fake_client.history.return_value = {"user_id": "alice", "entries": []}

    with patch("device.main.WasteSortHttpClient", return_value=fake_client):
        code = run(["--user", "alice", "--history", "2"])

    assert code == 0
    fake_client.history.assert_called_once_with("alice", limit=2)
    assert '"entries": []' in capsys.readouterr().out


def test_run_reports_api_failure(capsys) -> None:
    fake_client = Mock()
    fake_client.submit.side_effect = WasteSortClientError("WasteSort API returned 400: bad")

    with patch("device.main.WasteSortHttpClient", return_value=fake_client):
        code = run(["--color", "1,2,3"])

    assert code == 1
    assert "Submission failed" in capsys.readouterr().out
