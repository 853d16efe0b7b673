import tempfile
import unittest
from pathlib import Path

from calpilot.session_store import SessionStore


class SessionStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.store = SessionStore(str(Path(self.temp_dir.name) / "data" / "sessions.db"))

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_create_get_save_delete(self) -> None:
        sid, session = self.store.create()
        self.assertEqual(session, {"tokens": None, "oauth_state": None})
        self.assertEqual(self.store.get(sid), session)

        session["tokens"] = {"token": "abc", "refresh_token": "r"}
        self.store.save(sid, session)
        self.assertEqual(self.store.get(sid)["tokens"]["token"], "abc")

        self.assertTrue(self.store.delete(sid))
        self.assertIsNone(self.store.get(sid))
        self.assertFalse(self.store.delete(sid))

    def test_unknown_or_empty_ids(self) -> None:
        self.assertIsNone(self.store.get(None))
        self.assertIsNone(self.store.get("missing"))
        self.assertFalse(self.store.delete(""))

    def test_ids_are_unique(self) -> None:
        sid_a, _ = self.store.create()
        sid_b, _ = self.store.create()
        self.assertNotEqual(sid_a, sid_b)


if __name__ == "__main__":
    unittest.main()
