from __future__ import annotations

import base64
import io
import threading
from unittest.mock import Mock

import pytest
from PIL import Image

from wastesort.ai.static import StaticLabelSource
from wastesort.ai.types import LabelSourceError, Prediction
from wastesort.api.service import ClassificationService, InvalidSubmissionError
from wastesort.fingerprint import fingerprint
from wastesort.ledger.ledger import RewardLedger
from wastesort.ledger.records import LedgerError, LedgerWriteError
from wastesort.ledger.storage import FileSystemLedgerStore

_BOTTLE = [("plastic bottle", 0.85), ("water bottle", 0.1)]


def _image_bytes(color: str) -> bytes:
    img = Image.new("RGB", (48, 48), color=color)
    buf = io.BytesIO()
    img.save(buf, format="JPEG")
    return buf.getvalue()


def _payload(data: bytes, user_id: str | None = "alice", source: str = "upload") -> dict[str, object]:
    return {
        "image_base64": base64.b64encode(data).decode("ascii"),
        "user_id": user_id,
        "source": source,
    }


def _service(label_source=None, store=None, **kwargs) -> ClassificationService:
    return ClassificationService(
        label_source=label_source or StaticLabelSource.from_pairs(_BOTTLE),
        ledger=RewardLedger(store or FileSystemLedgerStore()),
        **kwargs,
    )


def test_submission_awards_points_and_returns_guidance() -> None:
    data = _image_bytes("blue")
    service = _service()
    result = service.process_submission(_payload(data))

    assert result["fingerprint"] == fingerprint(data)
    assert result["category"] == "plastic"
    assert result["disposal_guidance"]["category"] == "plastic"
    assert result["disposal_guidance"]["recyclable"] is True
    assert isinstance(result["disposal_guidance"]["tips"], list)
    assert result["top_label"] == "plastic bottle"
    assert result["confidence"] == pytest.approx(0.85)
    assert result["inference_available"] is True
    assert result["low_confidence"] is False
    assert result["awarded"] is True
    assert result["points_delta"] == 5
    assert result["new_balance"] == 5
    assert result["reward_status"] == "awarded"


def test_camera_then_upload_of_same_bytes_is_duplicate() -> None:
    data = _image_bytes("green")
    service = _service()
    first = service.process_submission(_payload(data, source="camera"))
    second = service.process_submission(_payload(data, user_id="bob", source="upload"))

    assert first["fingerprint"] == second["fingerprint"]
    assert first["reward_status"] == "awarded"
    assert second["reward_status"] == "duplicate"
    assert second["awarded"] is False
    assert second["points_delta"] == 0
    assert second["previous_category"] == "plastic"
    assert second["new_balance"] == 0
    assert second["category"] == "plastic"


def test_anonymous_submission_is_classified_without_reward() -> None:
    store = FileSystemLedgerStore()
    service = _service(store=store)
    data = _image_bytes("white")
    result = service.process_submission(_payload(data, user_id=None))

    assert result["category"] == "plastic"
    assert result["reward_status"] == "skipped"
    assert result["new_balance"] is None
    assert store.get_record(fingerprint(data)) is None


def test_label_source_timeout_falls_back_to_others() -> None:
    release = threading.Event()

    class _SlowSource:
        def classify(self, image_bytes: bytes, top_k: int) -> list[Prediction]:
            release.wait(5.0)
            return [Prediction("plastic bottle", 0.9)]

    store = FileSystemLedgerStore()
    service = _service(label_source=_SlowSource(), store=store, label_timeout_seconds=0.05)
    data = _image_bytes("red")
    try:
        result = service.process_submission(_payload(data))
    finally:
        release.set()

    assert result["category"] == "others"
    assert result["low_confidence"] is True
    assert result["inference_available"] is False
    assert result["awarded"] is False
    assert result["reward_status"] == "skipped"
    assert "No points" in result["message"]
    assert store.get_record(fingerprint(data)) is None


def test_label_source_error_falls_back_to_others() -> None:
    failing = Mock()
    failing.classify.side_effect = LabelSourceError("upstream 500")
    result = _service(label_source=failing).process_submission(_payload(_image_bytes("gray")))

    assert result["category"] == "others"
    assert result["disposal_guidance"]["recyclable"] is False
    assert result["inference_available"] is False
    assert result["low_confidence"] is True


def test_ledger_failure_still_returns_classification() -> None:
    store = Mock()
    store.exists_record.return_value = False
    store.insert_record_and_credit.side_effect = LedgerWriteError("database offline")
    result = _service(store=store).process_submission(_payload(_image_bytes("yellow")))

    assert result["category"] == "plastic"
    assert result["reward_status"] == "failed"
    assert result["awarded"] is False
    assert "retry" in result["message"]


def test_hung_label_calls_do_not_starve_other_submissions() -> None:
    release = threading.Event()
    hung = _image_bytes("purple")

    class _PartlyHungSource:
        def classify(self, image_bytes: bytes, top_k: int) -> list[Prediction]:
            if image_bytes == hung:
                release.wait(5.0)
            return [Prediction("plastic bottle", 0.9)]

    busy = _service(label_source=_PartlyHungSource(), label_timeout_seconds=0.1, label_workers=4)
    other = _service(label_timeout_seconds=0.5, label_workers=1)
    try:
        for _ in range(3):
            stalled = busy.process_submission(_payload(hung, user_id=None))
            assert stalled["inference_available"] is False
        healthy = busy.process_submission(_payload(_image_bytes("orange")))
        separate = other.process_submission(_payload(_image_bytes("navy")))
    finally:
        release.set()
        busy.shutdown()
        other.shutdown()

    assert healthy["inference_available"] is True
    assert healthy["category"] == "plastic"
    assert healthy["reward_status"] == "awarded"
    assert separate["inference_available"] is True


def test_committed_award_survives_failed_balance_read() -> None:
    class _FlakyReadStore(FileSystemLedgerStore):
        def get_balance(self, user_id: str) -> int:
            raise LedgerError("read timed out")

    store = _FlakyReadStore()
    service = _service(store=store)
    data = _image_bytes("teal")

    first = service.process_submission(_payload(data))
    assert first["reward_status"] == "awarded"
    assert first["awarded"] is True
    assert first["points_delta"] == 5
    assert first["new_balance"] is None
    assert store.get_record(fingerprint(data)) is not None

    retry = service.process_submission(_payload(data))
    assert retry["reward_status"] == "duplicate"
    assert retry["new_balance"] is None
    assert len(store.list_history("alice")) == 1


def test_top_k_is_applied_to_predictions() -> None:
    source = Mock()
    source.classify.return_value = [Prediction(f"label-{i}", 0.5) for i in range(20)]
    service = _service(label_source=source, top_k=3)
    service.process_submission(_payload(_image_bytes("black"), user_id=None))

    args, _ = source.classify.call_args
    assert args[1] == 3


@pytest.mark.parametrize(
    "image_b64",
    [
        "",
        "not base64!!",
        base64.b64encode(b"definitely not an image").decode("ascii"),
    ],
)
def test_invalid_payloads_are_rejected(image_b64: str) -> None:
    with pytest.raises(InvalidSubmissionError):
        _service().process_submission({"image_base64": image_b64, "user_id": "alice"})
