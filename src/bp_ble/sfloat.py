"""IEEE 11073 16-bit SFLOAT codec.

An SFLOAT word carries a 12-bit two's-complement mantissa in bits 0-11 and a
4-bit two's-complement base-10 exponent in bits 12-15. Five mantissa values
with a zero exponent are reserved for special values.
"""

import math

SFLOAT_NAN = 0x07FF
SFLOAT_NRES = 0x0800  # Not at this resolution
SFLOAT_POSITIVE_INFINITY = 0x07FE
SFLOAT_NEGATIVE_INFINITY = 0x0802
SFLOAT_RESERVED = 0x0801

MANTISSA_MIN = -0x0800
MANTISSA_MAX = 0x07FF
EXPONENT_MIN = -0x08
EXPONENT_MAX = 0x07

_SPECIAL_VALUES: dict[int, float | None] = {
    SFLOAT_NAN: math.nan,
    SFLOAT_NRES: math.nan,
    SFLOAT_POSITIVE_INFINITY: math.inf,
    SFLOAT_NEGATIVE_INFINITY: -math.inf,
    SFLOAT_RESERVED: None,
}


def decode_sfloat(word: int) -> float | None:
    """Decode a 16-bit SFLOAT word.

    Args:
        word: Raw 16-bit value (signed or unsigned, masked to 16 bits)

    Returns:
        Decoded value, NaN/+-inf for the special codes, or None for the
        reserved code
    """
    raw = word & 0xFFFF

    if raw in _SPECIAL_VALUES:
        return _SPECIAL_VALUES[raw]

    mantissa = raw & 0x0FFF
    exponent = raw >> 12

    if mantissa >= 0x0800:
        mantissa -= 0x1000
    if exponent >= 0x08:
        exponent = -((0x0F - exponent) + 1)

    # Divide for negative exponents so 1200e-1 is exactly 120.0
    if exponent < 0:
        return mantissa / (10 ** -exponent)
    return float(mantissa * (10**exponent))


def encode_sfloat(mantissa: int, exponent: int = 0) -> int:
    """Build a raw SFLOAT word from mantissa and exponent.

    Args:
        mantissa: Signed 12-bit mantissa
        exponent: Signed 4-bit base-10 exponent

    Returns:
        Unsigned 16-bit word
    """
    if not MANTISSA_MIN <= mantissa <= MANTISSA_MAX:
        raise ValueError(f"Mantissa {mantissa} out of range {MANTISSA_MIN}..{MANTISSA_MAX}")
    if not EXPONENT_MIN <= exponent <= EXPONENT_MAX:
        raise ValueError(f"Exponent {exponent} out of range {EXPONENT_MIN}..{EXPONENT_MAX}")
    return ((exponent & 0x0F) << 12) | (mantissa & 0x0FFF)
