"""
Unit tests for request tokens and device fingerprints
"""

import hashlib

import pytest

from medgate.security.tokens import TokenIssuer, generate_device_fingerprint


class TestDeviceFingerprint:
    """Test fingerprint derivation"""

    def test_stable_and_truncated(self):
        a = generate_device_fingerprint("Mozilla/5.0", "en-US", "1920x1080", "Europe/Paris")
        b = generate_device_fingerprint("Mozilla/5.0", "en-US", "1920x1080", "Europe/Paris")

        assert a == b
        assert len(a) == 32

    def test_missing_signals_use_unknown(self):
        expected = hashlib.sha256(b"UA|fr|unknown|unknown").hexdigest()[:32]
        assert generate_device_fingerprint("UA", "fr") == expected

    def test_different_devices_differ(self):
        assert generate_device_fingerprint("UA", "en", "1920x1080") != generate_device_fingerprint("UA", "en", "1280x720")


class TestTokenIssuer:
    """Test HMAC request tokens"""

    def test_token_verifies_for_same_context(self, tokens):
        token = tokens.token("s1", "u1", "fp")
        assert tokens.verify(token, "s1", "u1", "fp") is True

    def test_token_bound_to_each_component(self, tokens):
        token = tokens.token("s1", "u1", "fp")

        assert tokens.verify(token, "s2", "u1", "fp") is False
        assert tokens.verify(token, "s1", "u2", "fp") is False
        assert tokens.verify(token, "s1", "u1", "other") is False

    def test_empty_token_rejected(self, tokens):
        assert tokens.verify("", "s1", "u1", "fp") is False
        assert tokens.verify(None, "s1", "u1", "fp") is False

    def test_secret_matters(self):
        assert TokenIssuer("a").token("s", "u", "f") != TokenIssuer("b").token("s", "u", "f")

    def test_empty_secret_rejected(self):
        with pytest.raises(ValueError):
            TokenIssuer("")

    def test_production_requires_secret(self, settings):
        prod = settings.model_copy(update={"ENVIRONMENT": "production", "SESSION_TOKEN_SECRET": None})
        with pytest.raises(RuntimeError):
            TokenIssuer.from_settings(prod)

    def test_development_fallback(self, settings):
        dev = settings.model_copy(update={"SESSION_TOKEN_SECRET": None})
        issuer = TokenIssuer.from_settings(dev)

        assert issuer.verify(issuer.token("s", "u", "f"), "s", "u", "f") is True
