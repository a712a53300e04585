"""Conversion between on-chain values and domain values.

The pool contract stores amounts as uint256 fixed-point numbers with 18
implied decimals and asset symbols as left-aligned, zero-padded bytes32.
"""

import math
from decimal import Decimal
from typing import Sequence

from dhtrader.errors import DecodeError, EncodeError
from dhtrader.models import Asset, Symbol

DECIMALS = 18
SCALE = 10**DECIMALS
SYMBOL_SIZE = 32
UINT256_MAX = 2**256 - 1


def decode_symbol(raw: bytes) -> Symbol:
    """Decode a bytes32 symbol, dropping the trailing zero padding."""
    if len(raw) != SYMBOL_SIZE:
        raise DecodeError(f"Symbol must be {SYMBOL_SIZE} bytes, got {len(raw)}")
    try:
        return bytes(raw).rstrip(b"\x00").decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Symbol {bytes(raw).hex()} is not valid UTF-8") from e


def encode_symbol(symbol: Symbol) -> bytes:
    """Encode a symbol as bytes32, left-aligned and zero-padded."""
    data = symbol.encode("utf-8")
    if len(data) > SYMBOL_SIZE:
        raise EncodeError(
            f"Symbol '{symbol}' is {len(data)} bytes, at most {SYMBOL_SIZE} allowed"
        )
    return data.ljust(SYMBOL_SIZE, b"\x00")


def decode_fixed(value: int) -> float:
    """Convert an 18-decimal fixed-point integer to a float.

    The fractional part is zero-padded to 18 digits before parsing, so
    10**16 decodes to 0.01 and not 0.1.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(f"Fixed-point value must be an integer, got {value!r}")
    if value < 0 or value > UINT256_MAX:
        raise DecodeError(f"Fixed-point value {value} is outside the uint256 range")

    integer, fraction = divmod(value, SCALE)
    return float(f"{integer}.{fraction:0{DECIMALS}d}")


def _positional(value: float) -> str:
    # repr() switches to exponent form for very small and very large floats
    text = repr(value)
    if "e" in text or "E" in text:
        text = format(Decimal(text), "f")
    return text


def encode_fixed(value: float) -> int:
    """Convert a float to an 18-decimal fixed-point integer.

    Digits past the 18th decimal are truncated.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise EncodeError(f"Cannot encode {value!r} as fixed-point")
    try:
        number = float(value)
    except OverflowError as e:
        raise EncodeError(f"Amount {value!r} does not fit in uint256") from e
    if math.isnan(number) or math.isinf(number):
        raise EncodeError(f"Cannot encode {value!r} as fixed-point")
    if number < 0:
        raise EncodeError(f"Cannot encode negative amount {value!r} as uint256")

    text = _positional(number)
    integer, _, fraction = text.partition(".")
    fraction = fraction[:DECIMALS]
    if not integer.isdigit() or (fraction and not fraction.isdigit()):
        raise EncodeError(f"Unsupported float formatting '{text}'")

    result = int(integer) * SCALE
    if fraction:
        result += int(fraction) * 10 ** (DECIMALS - len(fraction))
    if result > UINT256_MAX:
        raise EncodeError(f"Amount {value!r} does not fit in uint256")
    return result


def decode_composition(
    symbols: Sequence[bytes],
    balances: Sequence[int],
    rates: Sequence[int],
) -> dict[Symbol, Asset]:
    """Zip the parallel arrays of getFundComposition into a snapshot."""
    if not (len(symbols) == len(balances) == len(rates)):
        raise DecodeError(
            f"Fund composition arrays differ in length: symbols={len(symbols)} "
            f"balances={len(balances)} rates={len(rates)}"
        )

    assets: dict[Symbol, Asset] = {}
    for raw_symbol, raw_balance, raw_rate in zip(symbols, balances, rates):
        symbol = decode_symbol(raw_symbol)
        if symbol in assets:
            raise DecodeError(f"Duplicate symbol '{symbol}' in fund composition")
        assets[symbol] = Asset(
            balance=decode_fixed(raw_balance),
            rate=decode_fixed(raw_rate),
        )
    return assets
