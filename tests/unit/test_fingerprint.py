"""Tests for content fingerprinting."""

from knowledge_base.utils.fingerprint import FINGERPRINT_LENGTH, fingerprint


class TestFingerprint:
    def test_known_digests(self):
        assert fingerprint(b"") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        assert fingerprint(b"abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

    def test_is_lowercase_hex_of_fixed_length(self):
        digest = fingerprint(b"some document bytes")
        assert len(digest) == FINGERPRINT_LENGTH
        assert digest == digest.lower()
        int(digest, 16)

    def test_deterministic_and_content_sensitive(self):
        assert fingerprint(b"same") == fingerprint(b"same")
        assert fingerprint(b"same") != fingerprint(b"same ")
