import pytest

from tabwarden import generate_otp, InvalidSecret

pytestmark = pytest.mark.otp

# rfc 6238 sha1 seed "12345678901234567890"
RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


@pytest.mark.parametrize("for_time,code", [
    (59, "287082"),
    (1111111109, "081804"),
    (1234567890, "005924"),
])
def test_rfc_vectors(for_time, code):
    assert generate_otp(RFC_SECRET, for_time) == code


def test_uses_clock_when_no_time_given():
    assert generate_otp(RFC_SECRET, clock=lambda: 59) == "287082"


def test_same_window_same_code():
    # 30..59 is one window
    assert generate_otp(RFC_SECRET, 30) == generate_otp(RFC_SECRET, 59)


def test_next_window_changes_code():
    assert generate_otp(RFC_SECRET, 59) != generate_otp(RFC_SECRET, 60)


def test_secret_is_normalized():
    spaced = "gezd gnbv gy3t qojq gezd gnbv gy3t qojq"
    assert generate_otp(spaced, 59) == "287082"


def test_code_is_zero_padded():
    code = generate_otp(RFC_SECRET, 1234567890)
    assert len(code) == 6 and code.isdigit()


@pytest.mark.parametrize("secret", ["", "   ", None])
def test_empty_secret(secret):
    with pytest.raises(InvalidSecret):
        generate_otp(secret, 59)


def test_malformed_secret():
    with pytest.raises(InvalidSecret):
        generate_otp("not base32 1!", 59)
    # still a ValueError for callers that don't know the type
    with pytest.raises(ValueError):
        generate_otp("189", 59)
