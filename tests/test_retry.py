"""Bounded retry helper tests"""

import unittest

from packetgen.shared.retry import RetriesExhausted, retry_bounded


class TestRetryBounded(unittest.TestCase):

    def test_returns_first_success(self):
        seen = []

        def op(attempt):
            seen.append(attempt)
            if attempt < 3:
                raise ValueError("not yet")
            return "ok"

        self.assertEqual(retry_bounded(op, 5), "ok")
        self.assertEqual(seen, [1, 2, 3])

    def test_exhaustion_carries_last_error(self):
        def op(attempt):
            raise ValueError(f"fail {attempt}")

        with self.assertRaises(RetriesExhausted) as ctx:
            retry_bounded(op, 4)
        self.assertEqual(ctx.exception.attempts, 4)
        self.assertEqual(str(ctx.exception.last_error), "fail 4")

    def test_other_errors_propagate_immediately(self):
        calls = []

        def op(attempt):
            calls.append(attempt)
            raise KeyError("boom")

        with self.assertRaises(KeyError):
            retry_bounded(op, 5, retry_on=(ValueError,))
        self.assertEqual(calls, [1])

    def test_on_failure_hook(self):
        failures = []

        def op(attempt):
            if attempt == 1:
                raise ValueError("first")
            return attempt

        retry_bounded(op, 3, on_failure=lambda n, e: failures.append((n, str(e))))
        self.assertEqual(failures, [(1, "first")])

    def test_rejects_zero_ceiling(self):
        with self.assertRaises(ValueError):
            retry_bounded(lambda n: n, 0)


if __name__ == "__main__":
    unittest.main()
