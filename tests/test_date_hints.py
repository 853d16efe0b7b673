import unittest

from calpilot.date_hints import inject_relative_date_hints


class DateHintTests(unittest.TestCase):
    def test_appends_hint_once(self) -> None:
        first = inject_relative_date_hints("See you tomorrow", "2024-03-10")
        self.assertEqual(first, "See you tomorrow (tomorrow: 2024-03-11)")
        self.assertEqual(inject_relative_date_hints(first, "2024-03-10"), first)

    def test_fixed_token_order(self) -> None:
        reply = inject_relative_date_hints("Yesterday was busy, tomorrow is light, today is fine.", "2024-03-10")
        self.assertEqual(
            reply,
            "Yesterday was busy, tomorrow is light, today is fine."
            " (today: 2024-03-10) (tomorrow: 2024-03-11) (yesterday: 2024-03-09)",
        )

    def test_skips_when_date_already_present(self) -> None:
        reply = "Tomorrow (2024-03-11) works."
        self.assertEqual(inject_relative_date_hints(reply, "2024-03-10"), reply)

    def test_word_boundaries_and_case(self) -> None:
        self.assertEqual(inject_relative_date_hints("Todays plan", "2024-03-10"), "Todays plan")
        self.assertEqual(inject_relative_date_hints("TODAY!", "2024-03-10"), "TODAY! (today: 2024-03-10)")

    def test_empty_reply_or_bad_key(self) -> None:
        self.assertEqual(inject_relative_date_hints("", "2024-03-10"), "")
        self.assertEqual(inject_relative_date_hints("see you tomorrow", "bad"), "see you tomorrow")


if __name__ == "__main__":
    unittest.main()
