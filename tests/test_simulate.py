"""Smoke test for the simulation script."""

import contextlib
import io
import unittest

import simulate


class TestSimulate(unittest.TestCase):
    """Run the walkthrough end to end."""

    def test_main_runs(self) -> None:
        out = io.StringIO()
        with contextlib.redirect_stdout(out), self.assertLogs(level="INFO"):
            simulate.main()
        text = out.getvalue()
        self.assertIn("Alice clues red to Cathy", text)
        self.assertIn("Replaying history", text)
        self.assertIn("action  0: PLAY", text)


if __name__ == "__main__":
    unittest.main()
