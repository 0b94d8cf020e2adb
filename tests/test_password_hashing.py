"""Tests for the bcrypt-backed credential hasher."""

from __future__ import annotations

import unittest
from unittest import mock

from booking.errors import PasswordHashingError
from booking.passwords import DEFAULT_ROUNDS, PasswordHasher


class PasswordHashingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.hasher = PasswordHasher(rounds=4)

    def test_hash_and_verify(self) -> None:
        hashed = self.hasher.hash("supersecurepassword")
        self.assertNotEqual(hashed, "supersecurepassword")
        self.assertTrue(hashed.startswith("$2b$04$"))
        self.assertTrue(self.hasher.verify("supersecurepassword", hashed))
        self.assertFalse(self.hasher.verify("incorrect", hashed))

    def test_hashes_are_salted(self) -> None:
        first = self.hasher.hash("same-password")
        second = self.hasher.hash("same-password")
        self.assertNotEqual(first, second)
        self.assertTrue(self.hasher.verify("same-password", first))
        self.assertTrue(self.hasher.verify("same-password", second))

    def test_malformed_hash_does_not_verify(self) -> None:
        self.assertFalse(self.hasher.verify("password", "not-a-bcrypt-hash"))
        self.assertFalse(self.hasher.verify("password", ""))
        self.assertFalse(self.hasher.verify("", self.hasher.hash("password")))

    def test_empty_password_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self.hasher.hash("")

    def test_password_longer_than_bcrypt_limit_is_rejected(self) -> None:
        with self.assertRaises(ValueError) as ctx:
            self.hasher.hash("a" * 72 + "SECRET-TAIL")
        self.assertNotIsInstance(ctx.exception, PasswordHashingError)

    def test_shared_72_byte_prefix_does_not_verify(self) -> None:
        hashed = self.hasher.hash("a" * 72)
        self.assertTrue(self.hasher.verify("a" * 72, hashed))
        self.assertFalse(self.hasher.verify("a" * 72 + "totally-different", hashed))

    def test_limit_counts_utf8_bytes(self) -> None:
        self.hasher.hash("\u00e9" * 36)
        with self.assertRaises(ValueError):
            self.hasher.hash("\u00e9" * 37)

    def test_nul_byte_is_a_validation_error(self) -> None:
        with self.assertRaises(ValueError) as ctx:
            self.hasher.hash("abc\x00def")
        self.assertNotIsInstance(ctx.exception, PasswordHashingError)
        self.assertFalse(self.hasher.verify("abc\x00def", self.hasher.hash("abc")))

    def test_backend_failure_raises_distinct_error(self) -> None:
        with mock.patch.object(self.hasher._context, "hash", side_effect=MemoryError()):
            with self.assertRaises(PasswordHashingError):
                self.hasher.hash("supersecurepassword")

    def test_default_work_factor(self) -> None:
        self.assertEqual(DEFAULT_ROUNDS, 14)
        self.assertEqual(PasswordHasher().rounds, 14)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
