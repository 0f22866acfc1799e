import unittest
from unittest.mock import Mock

import requests

from wastesort.ledger.records import (
    ClassificationRecord,
    InsufficientPointsError,
    LedgerError,
    LedgerWriteError,
    PointsHistoryEntry,
)
from wastesort.ledger.supabase import SupabaseLedgerStore

_DIGEST = "ab" * 32


def _response(status: int, body: object = None) -> Mock:
    response = Mock()
    response.status_code = status
    response.content = b"" if body is None else b"{}"
    response.json.return_value = body
    response.text = ""
    return response


class SupabaseLedgerStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session = Mock()
        self.store = SupabaseLedgerStore(
            base_url="https://example.supabase.co/",
            api_key="service-key",
            session=self.session,
        )

    def test_get_record_queries_by_fingerprint(self) -> None:
        self.session.request.return_value = _response(
            200,
            [
                {
                    "fingerprint": _DIGEST,
                    "user_id": "alice",
                    "category": "plastic",
                    "confidence_of_top": 0.8,
                    "created_at": "2025-01-02T03:04:05Z",
                }
            ],
        )
        record = self.store.get_record(_DIGEST)

        self.assertIsNotNone(record)
        self.assertEqual(record.category, "plastic")
        args, kwargs = self.session.request.call_args
        self.assertEqual(args[0], "GET")
        self.assertEqual(
            args[1], "https://example.supabase.co/rest/v1/classification_records"
        )
        self.assertEqual(kwargs["params"]["fingerprint"], f"eq.{_DIGEST}")
        self.assertEqual(kwargs["headers"]["apikey"], "service-key")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer service-key")

    def test_missing_record_and_balance(self) -> None:
        self.session.request.return_value = _response(200, [])
        self.assertFalse(self.store.exists_record(_DIGEST))
        self.assertEqual(self.store.get_balance("nobody"), 0)

    def test_award_calls_rpc_and_reports_winner(self) -> None:
        record = ClassificationRecord(fingerprint=_DIGEST, user_id="alice", category="glass")
        entry = PointsHistoryEntry(
            user_id="alice", delta=5, reason="Waste Classification", fingerprint=_DIGEST
        )
        self.session.request.return_value = _response(200, True)
        self.assertTrue(self.store.insert_record_and_credit(record, entry))

        args, kwargs = self.session.request.call_args
        self.assertEqual(args[0], "POST")
        self.assertTrue(args[1].endswith("/rest/v1/rpc/award_classification"))
        self.assertEqual(kwargs["json"]["p_fingerprint"], _DIGEST)
        self.assertEqual(kwargs["json"]["p_points"], 5)

        self.session.request.return_value = _response(200, False)
        self.assertFalse(self.store.insert_record_and_credit(record, entry))

    def test_history_rows_use_remote_column_names(self) -> None:
        self.session.request.return_value = _response(
            200,
            [
                {
                    "user_id": "alice",
                    "points": -3,
                    "action": "Reward Redemption",
                    "description": None,
                    "created_at": "2025-01-02T03:04:05+00:00",
                }
            ],
        )
        history = self.store.list_history("alice", limit=5)
        self.assertEqual(history[0].delta, -3)
        self.assertEqual(history[0].reason, "Reward Redemption")
        _, kwargs = self.session.request.call_args
        self.assertEqual(kwargs["params"]["order"], "created_at.desc")
        self.assertEqual(kwargs["params"]["limit"], "5")

    def test_append_history_returns_new_balance(self) -> None:
        self.session.request.return_value = _response(200, 12)
        entry = PointsHistoryEntry(user_id="alice", delta=-3, reason="Reward Redemption")
        self.assertEqual(self.store.append_history(entry), 12)

    def test_insufficient_points_error_is_mapped(self) -> None:
        self.session.request.return_value = _response(400, {"message": "insufficient_points"})
        entry = PointsHistoryEntry(user_id="alice", delta=-30, reason="Reward Redemption")
        with self.assertRaises(InsufficientPointsError) as ctx:
            self.store.append_history(entry)
        self.assertEqual(ctx.exception.requested, 30)

    def test_transport_failures_raise_ledger_errors(self) -> None:
        self.session.request.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(LedgerError):
            self.store.get_balance("alice")
        record = ClassificationRecord(fingerprint=_DIGEST, user_id="alice", category="glass")
        entry = PointsHistoryEntry(user_id="alice", delta=5, reason="Waste Classification")
        with self.assertRaises(LedgerWriteError):
            self.store.insert_record_and_credit(record, entry)

    def test_server_error_on_write_is_write_error(self) -> None:
        self.session.request.return_value = _response(500, {"message": "boom"})
        entry = PointsHistoryEntry(user_id="alice", delta=5, reason="Bonus")
        with self.assertRaises(LedgerWriteError):
            self.store.append_history(entry)


if __name__ == "__main__":
    unittest.main()
