"""
Tests for master key configuration and data key wrapping.
"""

from __future__ import annotations

import base64
import os

import pytest

import journal_vault.config
from journal_vault import (
    ConfigurationError,
    CryptoError,
    DecryptionError,
    KeyManager,
    SecureKey,
    generate_master_key,
    resolve_master_key,
)
from journal_vault.config import MASTER_KEY_ENV
from journal_vault.crypto import AesGcmCipher


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class TestResolveMasterKey:
    def test_reads_configured_key(self, configured_master_key):
        assert resolve_master_key() == b"\x01" * 32

    def test_explicit_value(self):
        assert resolve_master_key(_b64(b"\x05" * 32)) == b"\x05" * 32

    def test_missing(self, monkeypatch):
        monkeypatch.delenv(MASTER_KEY_ENV, raising=False)
        with pytest.raises(ConfigurationError):
            resolve_master_key()

    def test_dotenv_loaded_once(self, monkeypatch, master_key_b64):
        calls = []

        def fake_load_dotenv():
            calls.append(1)
            os.environ[MASTER_KEY_ENV] = master_key_b64

        monkeypatch.delenv(MASTER_KEY_ENV, raising=False)
        monkeypatch.setattr(journal_vault.config, "_dotenv_loaded", False)
        monkeypatch.setattr(journal_vault.config, "load_dotenv", fake_load_dotenv)
        try:
            assert resolve_master_key() == b"\x01" * 32
            assert resolve_master_key() == b"\x01" * 32
        finally:
            os.environ.pop(MASTER_KEY_ENV, None)
        assert len(calls) == 1

    @pytest.mark.parametrize(
        "value",
        ["", "   ", "not base64 at all!", _b64(b"\x01" * 16), _b64(b"\x01" * 33)],
        ids=["empty", "blank", "not-base64", "too-short", "too-long"],
    )
    def test_invalid(self, value):
        with pytest.raises(ConfigurationError):
            resolve_master_key(value)

    def test_generated_key_is_valid(self):
        assert len(resolve_master_key(generate_master_key())) == 32


class TestLazyConfiguration:
    """A KeyManager without an injected key fails on its first crypto call."""

    @pytest.fixture
    def no_cipher(self, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("cipher must not run without a master key")

        monkeypatch.setattr(AesGcmCipher, "seal", staticmethod(fail))
        monkeypatch.setattr(AesGcmCipher, "unseal", staticmethod(fail))

    @pytest.mark.parametrize(
        "value", [None, "%%%", _b64(b"\x01" * 31)], ids=["missing", "not-base64", "wrong-length"]
    )
    def test_wrap_and_unwrap_fail_before_cipher_work(self, monkeypatch, no_cipher, value):
        if value is None:
            monkeypatch.delenv(MASTER_KEY_ENV, raising=False)
        else:
            monkeypatch.setenv(MASTER_KEY_ENV, value)

        manager = KeyManager()
        with pytest.raises(ConfigurationError):
            manager.wrap_data_key(SecureKey.generate())
        with pytest.raises(ConfigurationError):
            manager.unwrap_data_key("AAAA")
        with pytest.raises(ConfigurationError):
            manager.rewrap_data_key("AAAA", generate_master_key())

    def test_construction_does_not_read_configuration(self, monkeypatch):
        monkeypatch.delenv(MASTER_KEY_ENV, raising=False)
        KeyManager()

    def test_from_env_is_eager(self, monkeypatch):
        monkeypatch.delenv(MASTER_KEY_ENV, raising=False)
        with pytest.raises(ConfigurationError):
            KeyManager.from_env()

    def test_resolved_from_env(self, configured_master_key, master_key):
        wrapped = KeyManager().wrap_data_key(SecureKey(b"\x09" * 32))
        assert KeyManager(master_key).unwrap_data_key(wrapped) == b"\x09" * 32

    def test_explicit_key_must_be_32_bytes(self):
        with pytest.raises(ConfigurationError):
            KeyManager(b"\x01" * 8)


class TestWrapping:
    def test_generate_data_key(self, key_manager):
        assert len(key_manager.generate_data_key()) == 32
        assert key_manager.generate_data_key() != key_manager.generate_data_key()

    def test_wrap_round_trip(self, key_manager):
        for _ in range(10):
            data_key = key_manager.generate_data_key()
            assert key_manager.unwrap_data_key(key_manager.wrap_data_key(data_key)) == data_key

    def test_wrapped_layout(self, key_manager):
        wrapped = base64.b64decode(key_manager.wrap_data_key(SecureKey.generate()))
        assert len(wrapped) == 12 + 16 + 32

    def test_wrapping_is_not_deterministic(self, key_manager):
        data_key = SecureKey.generate()
        assert key_manager.wrap_data_key(data_key) != key_manager.wrap_data_key(data_key)

    def test_wrong_master_key(self, key_manager):
        wrapped = key_manager.wrap_data_key(SecureKey.generate())
        with pytest.raises(DecryptionError):
            KeyManager(SecureKey(b"\x02" * 32)).unwrap_data_key(wrapped)

    @pytest.mark.parametrize("bit", [0, 95, 96, 223, 224, 479])
    def test_tampered_wrapped_key(self, key_manager, bit):
        raw = bytearray(base64.b64decode(key_manager.wrap_data_key(SecureKey.generate())))
        raw[bit // 8] ^= 1 << (bit % 8)
        with pytest.raises(DecryptionError):
            key_manager.unwrap_data_key(_b64(bytes(raw)))

    def test_truncated_wrapped_key(self, key_manager):
        with pytest.raises(DecryptionError):
            key_manager.unwrap_data_key(_b64(b"\x00" * 20))

    def test_malformed_wrapped_key(self, key_manager):
        with pytest.raises(DecryptionError):
            key_manager.unwrap_data_key("@@not-base64@@")

    def test_wrap_rejects_wrong_size_data_key(self, key_manager):
        with pytest.raises(CryptoError):
            key_manager.wrap_data_key(b"\x01" * 16)


class TestRewrap:
    def test_rotation_recovers_same_data_key(self, key_manager, new_master_key_b64):
        data_key = key_manager.generate_data_key()
        wrapped = key_manager.wrap_data_key(data_key)

        rewrapped = key_manager.rewrap_data_key(wrapped, new_master_key_b64)

        new_manager = KeyManager(SecureKey(base64.b64decode(new_master_key_b64)))
        assert new_manager.unwrap_data_key(rewrapped) == key_manager.unwrap_data_key(wrapped)
        with pytest.raises(DecryptionError):
            key_manager.unwrap_data_key(rewrapped)

    def test_accepts_raw_bytes_target(self, key_manager):
        data_key = key_manager.generate_data_key()
        rewrapped = key_manager.rewrap_data_key(key_manager.wrap_data_key(data_key), b"\x03" * 32)
        assert KeyManager(b"\x03" * 32).unwrap_data_key(rewrapped) == data_key

    def test_accepts_secure_key_target(self, key_manager):
        data_key = key_manager.generate_data_key()
        target = SecureKey(b"\x02" * 32)
        rewrapped = key_manager.rewrap_data_key(key_manager.wrap_data_key(data_key), target)
        assert KeyManager(target).unwrap_data_key(rewrapped) == data_key

    @pytest.mark.parametrize("target", [12345, ["a", "b"], SecureKey(b"\x02" * 16)])
    def test_unsupported_target_type_is_configuration_error(self, key_manager, target):
        wrapped = key_manager.wrap_data_key(key_manager.generate_data_key())
        with pytest.raises(ConfigurationError):
            key_manager.rewrap_data_key(wrapped, target)

    @pytest.mark.parametrize("target", ["", "%%%", _b64(b"\x01" * 24)])
    def test_invalid_target_fails_before_unwrapping(self, key_manager, target):
        with pytest.raises(ConfigurationError):
            key_manager.rewrap_data_key("garbage that would not unwrap", target)

    def test_wrapped_under_other_key(self, key_manager, new_master_key_b64):
        foreign = KeyManager(b"\x04" * 32).wrap_data_key(SecureKey.generate())
        with pytest.raises(DecryptionError):
            key_manager.rewrap_data_key(foreign, new_master_key_b64)

    def test_is_wrapped_under(self, key_manager, master_key):
        wrapped = key_manager.wrap_data_key(SecureKey.generate())
        assert key_manager.is_wrapped_under(wrapped, master_key)
        assert not key_manager.is_wrapped_under(wrapped, b"\x02" * 32)
