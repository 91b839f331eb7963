"""
decay.py - Fixed-Point Decay Math

Represents repeated multiplicative shrinkage as additive logarithmic weight.
Removing `reduced` out of `total` contributes -log2((total - reduced) / total)
to a weight; the fraction of anything that survives a weight w is 2^-w.
Summing weights replaces multiplying survival fractions, so a position can
settle any number of global events with a single exponentiation.

Representation:
    All weights and survival fractions are unsigned Q128 integers
    (128 fractional bits, ONE_Q128 == 1.0). Intermediate results carry
    _GUARD_BITS extra fractional bits and are rounded once on the way out.
    No floating point is used anywhere.

Rounding direction:
    - weight_increment rounds weights UP (never under-reports shrinkage)
    - survival_from_weight rounds DOWN after an upward-biased table walk,
      so a survival fraction never exceeds its true value by more than one
      unit in the last place
    - scale_by_weight_delta therefore rounds the consumed amount up

Public API:
    weight_increment(reduced, total)     -> Q128 weight
    survival_from_weight(weight)         -> Q128 fraction in [0, 1]
    scale_by_weight_delta(value, delta)  -> value * (1 - 2^-delta)
    mul_q128(a, b), div_q128(a, b)       -> Q128 helpers
"""

from __future__ import annotations
from math import isqrt
from typing import Tuple

from .core import DecayDomainError


# ============================================================================
# CONSTANTS
# ============================================================================

FRACTIONAL_BITS = 128
ONE_Q128 = 1 << FRACTIONAL_BITS

# Largest value accepted as a total or a scaled value.
MAX_Q128_INPUT = (1 << 128) - 1

# Survival of any weight at or above this is below 2^-128 and saturates to zero.
# weight_increment() returns it for a full depletion.
SATURATION_WEIGHT = FRACTIONAL_BITS << FRACTIONAL_BITS

# Extra fractional bits carried through log2/exp2 before the final rounding.
_GUARD_BITS = 64
_WIDE = FRACTIONAL_BITS + _GUARD_BITS
_ONE_WIDE = 1 << _WIDE
_TWO_WIDE = 2 << _WIDE


def _ceil_sqrt(n: int) -> int:
    root = isqrt(n)
    return root if root * root == n else root + 1


def _build_neg_pow2_table() -> Tuple[int, ...]:
    """
    Per-bit multipliers 2^(-2^-k) for k = 1..128, wide fixed point, rounded up.

    Entry 0 corresponds to fractional bit 127 (weight 0.5), the last entry to
    bit 0. Each entry is the ceiling square root of the previous one, so the
    table is fully determined by integer arithmetic.
    """
    table = []
    # 2^(-1/2) = sqrt(1/2)
    constant = _ceil_sqrt(_ONE_WIDE * _ONE_WIDE // 2)
    for _ in range(FRACTIONAL_BITS):
        table.append(constant)
        constant = _ceil_sqrt(constant * _ONE_WIDE)
    return tuple(table)


_NEG_POW2_TABLE = _build_neg_pow2_table()


# ============================================================================
# Q128 HELPERS
# ============================================================================

def mul_q128(a: int, b: int) -> int:
    """Multiply by a Q128 fraction, rounding down."""
    return (a * b) >> FRACTIONAL_BITS


def div_q128(a: int, b: int) -> int:
    """Divide two integers into a Q128 fraction, rounding down."""
    if b == 0:
        raise DecayDomainError("Q128 division by zero")
    return (a << FRACTIONAL_BITS) // b


# ============================================================================
# INTERNAL PRIMITIVES
# ============================================================================

def _log2_frac(mantissa: int) -> int:
    """
    Fractional binary logarithm of a wide mantissa in [1, 2).

    Classic bit-by-bit method: squaring the mantissa doubles its logarithm,
    so each squaring that overflows past 2 reveals the next bit of the
    result. Squares are truncated, which can only under-report bits.
    """
    result = 0
    bit = _ONE_WIDE >> 1
    while bit:
        mantissa = (mantissa * mantissa) >> _WIDE
        if mantissa >= _TWO_WIDE:
            mantissa >>= 1
            result |= bit
        bit >>= 1
    return result


def _exp2_neg_frac(x: int) -> int:
    """
    Compute 2^-x for a Q128 exponent 0 < x < SATURATION_WEIGHT.

    Walks the fractional bits of x from high to low, multiplying by the
    matching table constant with the product rounded up; the whole part is
    applied as a right shift. Exponents whose result drops below 2^-128
    return 0.
    """
    whole = x >> FRACTIONAL_BITS
    frac = x & (ONE_Q128 - 1)

    result = _ONE_WIDE
    bit = 1 << (FRACTIONAL_BITS - 1)
    for constant in _NEG_POW2_TABLE:
        if frac & bit:
            result = -((-result * constant) >> _WIDE)
        bit >>= 1

    return (result >> whole) >> _GUARD_BITS


# ============================================================================
# PUBLIC API
# ============================================================================

def weight_increment(reduced: int, total: int) -> int:
    """
    Weight contributed by removing `reduced` out of `total`.

    Returns -log2((total - reduced) / total) as a Q128 integer, rounded up.

    Args:
        reduced: Amount removed (0 <= reduced <= total)
        total: Amount it was removed from (total <= 2^128 - 1)

    Returns:
        0 when reduced == 0. SATURATION_WEIGHT when the remaining ratio
        rounds to zero, so that survival_from_weight() yields zero rather
        than a tiny non-zero fraction.

    Raises:
        DecayDomainError: If reduced > total, total exceeds 2^128 - 1, or
            either argument is negative.
    """
    if reduced < 0 or total < 0:
        raise DecayDomainError(f"negative weight input: reduced={reduced}, total={total}")
    if total > MAX_Q128_INPUT:
        raise DecayDomainError(f"total {total} exceeds the Q128 input range")
    if reduced > total:
        raise DecayDomainError(f"reduced {reduced} exceeds total {total}")
    if reduced == 0:
        return 0

    ratio = ((total - reduced) << _WIDE) // total
    if ratio == 0:
        return SATURATION_WEIGHT

    # ratio = 2^(msb - WIDE) * mantissa, mantissa in [1, 2)
    msb = ratio.bit_length() - 1
    mantissa = ratio << (_WIDE - msb)
    whole = _WIDE - msb

    # -log2(ratio) = whole - log2(mantissa)
    weight_wide = (whole << _WIDE) - _log2_frac(mantissa)
    return -((-weight_wide) >> _GUARD_BITS)


def survival_from_weight(weight: int) -> int:
    """
    Fraction surviving a weight: 2^-weight as a Q128 integer in [0, ONE_Q128].

    A weight of 0 returns exactly ONE_Q128. Weights at or beyond
    SATURATION_WEIGHT return 0 (full decay).

    Raises:
        DecayDomainError: If weight is negative.
    """
    if weight < 0:
        raise DecayDomainError(f"negative weight {weight}")
    if weight == 0:
        return ONE_Q128
    if weight >= SATURATION_WEIGHT:
        return 0
    return _exp2_neg_frac(weight)


def scale_by_weight_delta(value: int, weight_delta: int) -> int:
    """
    Portion of `value` consumed by a weight delta: value * (1 - 2^-delta).

    A zero delta consumes nothing. The result never exceeds `value`.

    Raises:
        DecayDomainError: If value is negative or exceeds 2^128 - 1, or the
            delta is negative (a checkpoint ahead of the global weight).
    """
    if value < 0 or value > MAX_Q128_INPUT:
        raise DecayDomainError(f"value {value} outside the Q128 input range")
    if weight_delta < 0:
        raise DecayDomainError(f"negative weight delta {weight_delta}")
    if weight_delta == 0 or value == 0:
        return 0
    return value - mul_q128(value, survival_from_weight(weight_delta))
