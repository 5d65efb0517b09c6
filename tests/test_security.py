from __future__ import annotations

import unittest

from farmvault.security.csrf import tokens_match
from farmvault.security.passwords import hash_password, validate_new_password, verify_password


class SecurityTests(unittest.TestCase):
    def test_tokens_match(self) -> None:
        self.assertTrue(tokens_match('abc123', 'abc123'))
        self.assertFalse(tokens_match('abc123', 'abc124'))
        self.assertFalse(tokens_match(None, 'abc123'))
        self.assertFalse(tokens_match('abc123', ''))

    def test_validate_new_password(self) -> None:
        self.assertEqual(validate_new_password('long-enough'), 'long-enough')
        with self.assertRaises(ValueError):
            validate_new_password('short')
        with self.assertRaises(ValueError):
            validate_new_password(' padded-password ')

    def test_hash_round_trip(self) -> None:
        hashed = hash_password('harvest-season')
        self.assertNotEqual(hashed, 'harvest-season')
        self.assertTrue(verify_password('harvest-season', hashed))
        self.assertFalse(verify_password('wrong-password', hashed))


if __name__ == '__main__':
    unittest.main()
