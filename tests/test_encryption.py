"""
Tests for SecretCipher — round trips, tamper detection, malformed payloads.
"""

import pytest

from integrations.encryption import SecretCipher
from integrations.errors import CryptoError


def _flip_hex(text: str, index: int) -> str:
    """Replace one hex digit with a different one."""
    replacement = "0" if text[index] != "0" else "1"
    return text[:index] + replacement + text[index + 1:]


class TestRoundTrip:
    @pytest.mark.parametrize(
        "plaintext",
        ["client-secret-123", "pässwörd ✓ 秘密", ""],
    )
    def test_decrypt_returns_plaintext(self, cipher, plaintext):
        assert cipher.decrypt(cipher.encrypt(plaintext)) == plaintext

    def test_format_is_three_hex_fields(self, cipher):
        iv, tag, body = cipher.encrypt("abc").split(":")
        assert len(iv) == 32
        assert len(tag) == 32
        assert len(body) == 6
        int(iv + tag + body, 16)

    def test_fresh_iv_per_call(self, cipher):
        assert cipher.encrypt("same") != cipher.encrypt("same")

    def test_optional_helpers_pass_none_through(self, cipher):
        assert cipher.encrypt_optional(None) is None
        assert cipher.decrypt_optional("") is None
        assert cipher.decrypt_optional(cipher.encrypt_optional("x")) == "x"


class TestTampering:
    def test_tag_tamper_fails(self, cipher):
        iv, tag, body = cipher.encrypt("secret value").split(":")
        with pytest.raises(CryptoError):
            cipher.decrypt(f"{iv}:{_flip_hex(tag, 5)}:{body}")

    def test_ciphertext_tamper_fails(self, cipher):
        iv, tag, body = cipher.encrypt("secret value").split(":")
        with pytest.raises(CryptoError):
            cipher.decrypt(f"{iv}:{tag}:{_flip_hex(body, 0)}")

    def test_iv_tamper_fails(self, cipher):
        iv, tag, body = cipher.encrypt("secret value").split(":")
        with pytest.raises(CryptoError):
            cipher.decrypt(f"{_flip_hex(iv, 10)}:{tag}:{body}")

    def test_wrong_key_fails(self, cipher):
        token = cipher.encrypt("secret value")
        with pytest.raises(CryptoError):
            SecretCipher("another-key").decrypt(token)


class TestMalformed:
    @pytest.mark.parametrize(
        "payload",
        ["", "abcd", "aa:bb", "aa:bb:cc:dd", "zz:zz:zz"],
    )
    def test_rejected(self, cipher, payload):
        with pytest.raises(CryptoError):
            cipher.decrypt(payload)

    def test_short_iv_rejected(self, cipher):
        _, tag, body = cipher.encrypt("x").split(":")
        with pytest.raises(CryptoError):
            cipher.decrypt(f"00ff:{tag}:{body}")

    def test_empty_secret_refused(self):
        with pytest.raises(ValueError):
            SecretCipher("")
