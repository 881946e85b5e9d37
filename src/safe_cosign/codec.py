"""Hex, byte and integer conversions.

The canonical wire form of binary data is a lowercase `0x`-prefixed hex
string. Loosely-typed input (JSON files, command-line options) is converted
here before it reaches the models.
"""

import re
from typing import Union

from hexbytes import (
    HexBytes,
)

HEX_PATTERN = re.compile(r"^(0x)?[0-9a-f]+$", re.IGNORECASE)
DECIMAL_PATTERN = re.compile(r"^[0-9]+$")
UINT256_MAX = 2**256 - 1


def is_hex_string(value: object) -> bool:
    return isinstance(value, str) and HEX_PATTERN.match(value) is not None


def has_hex_prefix(value: object) -> bool:
    return isinstance(value, str) and value[:2] in ("0x", "0X")


def remove_hex_prefix(value: str) -> str:
    return value[2:] if has_hex_prefix(value) else value


def ensure_hex_prefix(value: str) -> str:
    """Lowercase a hex string and make sure it starts with `0x`."""
    return "0x" + remove_hex_prefix(value).lower()


def to_bytes(value: Union[str, bytes]) -> HexBytes:
    """Convert a hex or UTF-8 string to bytes.

    Strings that do not look like hex are encoded as UTF-8 rather than
    rejected, so `"0x"` and `""` are *not* treated as empty hex. Use
    `hex_to_bytes()` when the input must be hex.
    """
    if isinstance(value, (bytes, bytearray)):
        return HexBytes(value)
    if is_hex_string(value):
        digits = remove_hex_prefix(value)
        if len(digits) % 2:
            digits = "0" + digits
        return HexBytes(bytes.fromhex(digits))
    return HexBytes(value.encode("utf-8"))


def hex_to_bytes(value: Union[str, bytes, None]) -> HexBytes:
    """Strict variant of `to_bytes()`: the input must be hex (or empty)."""
    if value is None:
        return HexBytes(b"")
    if isinstance(value, (bytes, bytearray)):
        return HexBytes(value)
    if not isinstance(value, str):
        raise ValueError(f"Not a hex string: {value!r}.")
    if remove_hex_prefix(value) == "":
        return HexBytes(b"")
    if not is_hex_string(value):
        raise ValueError(f"Not a hex string: '{value}'.")
    return to_bytes(value)


def to_0x_hex(value: Union[str, bytes, int]) -> str:
    if isinstance(value, int):
        return decimal_to_hex(value)
    if isinstance(value, str):
        return ensure_hex_prefix(value)
    return HexBytes(value).to_0x_hex()


def decimal_to_hex(value: Union[str, int]) -> str:
    """Convert a non-negative decimal of any size to a `0x` hex string."""
    from eth_utils.conversions import to_hex

    if isinstance(value, bool):
        raise ValueError(f"Not a decimal value: {value!r}.")
    if isinstance(value, str):
        if not DECIMAL_PATTERN.match(value):
            raise ValueError(f"Not a decimal string: '{value}'.")
        value = int(value, 10)
    if value < 0:
        raise ValueError(f"Negative value: {value}.")
    return to_hex(value)


def to_hex_if_needed(value: Union[str, int]) -> str:
    """Pass `0x` strings through unchanged, convert decimals to hex."""
    if has_hex_prefix(value):
        return str(value)
    return decimal_to_hex(value)


def to_int(value: Union[int, str, bytes]) -> int:
    """Convert a decimal string, `0x` hex string or big-endian bytes to an
    unsigned integer."""
    if isinstance(value, bool):
        raise ValueError(f"Not an integer value: {value!r}.")
    if isinstance(value, int):
        result = value
    elif isinstance(value, (bytes, bytearray)):
        result = int.from_bytes(value, "big")
    elif not isinstance(value, str):
        raise ValueError(f"Not an integer value: {value!r}.")
    elif has_hex_prefix(value):
        digits = remove_hex_prefix(value)
        if not digits or not is_hex_string(digits):
            raise ValueError(f"Not a hex string: '{value}'.")
        result = int(digits, 16)
    elif DECIMAL_PATTERN.match(value.strip()):
        result = int(value.strip(), 10)
    else:
        raise ValueError(f"Not an integer value: '{value}'.")
    if result < 0:
        raise ValueError(f"Negative value: {result}.")
    return result


def to_bytes32(value: int) -> bytes:
    if not 0 <= value <= UINT256_MAX:
        raise ValueError(f"Value {value} does not fit in 32 bytes.")
    return value.to_bytes(32, "big")
