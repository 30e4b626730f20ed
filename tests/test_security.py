import pytest

from core.security import hash_password, validate_password_policy, verify_password


def test_password_policy_rejects_weak():
    ok, msg = validate_password_policy("weak")
    assert not ok
    assert "10+" in msg
    with pytest.raises(ValueError):
        hash_password("weak")


def test_hash_and_verify():
    hashed = hash_password("CoachPass!234")
    assert hashed != "CoachPass!234"
    assert verify_password("CoachPass!234", hashed)
    assert not verify_password("CoachPass!235", hashed)


def test_verify_handles_empty_and_garbage():
    assert not verify_password("", "whatever")
    assert not verify_password("CoachPass!234", "")
    assert not verify_password("CoachPass!234", "not-a-hash")
