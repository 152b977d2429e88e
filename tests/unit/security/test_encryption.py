"""MFA secret encryption: Fernet round-trip, wrong key, missing key."""

import pytest

from kindling.security.encryption import EncryptionService
from kindling.security.exceptions import EncryptionError

KEY = "test-secret-key-at-least-32-chars-long-for-aes"


def test_encryption_round_trip_works():
    svc = EncryptionService(key=KEY)
    encrypted = svc.encrypt("JBSWY3DPEHPK3PXP")
    assert encrypted != "JBSWY3DPEHPK3PXP"
    assert svc.decrypt(encrypted) == "JBSWY3DPEHPK3PXP"


def test_same_plaintext_encrypts_differently():
    svc = EncryptionService(key=KEY)
    assert svc.encrypt("seed") != svc.encrypt("seed")


def test_encryption_fails_with_wrong_key():
    encrypted = EncryptionService(key=KEY).encrypt("secret")
    other = EncryptionService(key="other-secret-key-at-least-32-chars-long-for-aes")
    with pytest.raises(EncryptionError) as exc_info:
        other.decrypt(encrypted)
    assert "wrong key" in exc_info.value.message


def test_corrupt_ciphertext_raises():
    with pytest.raises(EncryptionError):
        EncryptionService(key=KEY).decrypt("not-a-fernet-token")


def test_encryption_fails_if_key_missing():
    with pytest.raises(EncryptionError) as exc_info:
        EncryptionService(key=None)
    assert "MFA_ENCRYPTION_KEY" in exc_info.value.message


def test_encryption_blank_key_raises():
    with pytest.raises(EncryptionError):
        EncryptionService(key="   ")
