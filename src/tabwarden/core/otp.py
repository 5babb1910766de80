import binascii
import time
from datetime import datetime
from typing import Callable

import pyotp

from .errors import InvalidSecret

# RFC 6238 defaults; what authenticator apps use
DIGITS = 6
INTERVAL = 30


def generate_otp(
    secret: str,
    for_time: int | float | datetime | None = None,
    *,
    clock: Callable[[], float] = time.time,
    digits: int = DIGITS,
    interval: int = INTERVAL,
) -> str:
    """generate the time-based one-time code for `secret`.

    whitespace is stripped and the secret upper-cased before decoding, so
    secrets copied in "JBSW Y3DP ..." groups work as-is.

    :param secret: base32 shared secret.
    :param for_time: explicit time to generate for. `clock()` is sampled when `None`.
    :param clock: time source (epoch seconds); inject a fixed one for tests.
    :param digits: code length.
    :param interval: step window in seconds.
    :return: zero-padded numeric code.
    :rtype: str
    :raises InvalidSecret: secret is empty or not base32.
    """
    normalized = "".join((secret or "").split()).upper()
    if not normalized:
        raise InvalidSecret("otp secret is empty")
    if for_time is None:
        for_time = clock()
    try:
        return pyotp.TOTP(normalized, digits=digits, interval=interval).at(for_time)
    except (binascii.Error, ValueError) as e:
        raise InvalidSecret(f"otp secret is not valid base32: {e}") from e


__all__ = [
    "generate_otp",
    "DIGITS",
    "INTERVAL",
]
