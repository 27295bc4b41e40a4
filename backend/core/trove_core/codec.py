"""Length-checked payload builder shared by every operation encoder.

Wire encodings (all little-endian):

* ``u32`` / ``u64``: fixed-width unsigned integers
* ``string``: u32 byte length followed by the raw UTF-8 bytes, no padding
* ``opt_address``: ``0x00`` when absent, ``0x01`` followed by 32 bytes when present
* ``address_list``: u32 element count followed by the concatenated 32-byte addresses
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Union

from borsh_construct import U32, U64, Option, String, Vec
from construct import Bytes
from solders.pubkey import Pubkey

from backend.core.trove_core.constants import U32_MAX, U64_MAX
from backend.core.trove_core.errors import EncodingError, EncodingLengthMismatch

SELECTOR_SIZE = 8
U32_SIZE = 4
U64_SIZE = 8
ADDRESS_SIZE = 32

AddressLike = Union[Pubkey, bytes]

_ADDRESS = Bytes(ADDRESS_SIZE)
_OPT_ADDRESS = Option(_ADDRESS)
_ADDRESS_VEC = Vec(_ADDRESS)


def string_size(value: str) -> int:
    return U32_SIZE + len(value.encode("utf-8"))


def opt_address_size(value: Optional[AddressLike]) -> int:
    return 1 if value is None else 1 + ADDRESS_SIZE


def address_list_size(count: int) -> int:
    return U32_SIZE + ADDRESS_SIZE * count


def address_bytes(value: AddressLike, field: str = "address") -> bytes:
    if isinstance(value, Pubkey):
        return bytes(value)
    if isinstance(value, (bytes, bytearray)) and len(value) == ADDRESS_SIZE:
        return bytes(value)
    raise EncodingError(f"{field} must be a 32-byte address, got {value!r}")


def _check_int(value: int, upper: int, field: str, kind: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodingError(f"{field} must be an integer {kind}, got {value!r}")
    if value < 0 or value > upper:
        raise EncodingError(f"{field}={value} out of range for {kind}")
    return value


class LengthCheckedBuffer:
    """Accumulates the encoded fields of one operation behind its selector.

    Each appender records one component; :meth:`build` joins them only after
    the summed length matches the independently derived expected length.
    """

    def __init__(self, operation: str, selector: bytes) -> None:
        if len(selector) != SELECTOR_SIZE:
            raise EncodingError(f"{operation}: selector must be {SELECTOR_SIZE} bytes, got {len(selector)}")
        self.operation = operation
        self._parts: List[bytes] = [bytes(selector)]

    def __len__(self) -> int:
        return sum(len(p) for p in self._parts)

    def u32(self, value: int, field: str = "value") -> "LengthCheckedBuffer":
        self._parts.append(U32.build(_check_int(value, U32_MAX, field, "u32")))
        return self

    def u64(self, value: int, field: str = "value") -> "LengthCheckedBuffer":
        self._parts.append(U64.build(_check_int(value, U64_MAX, field, "u64")))
        return self

    def string(self, value: str, field: str = "value") -> "LengthCheckedBuffer":
        if not isinstance(value, str):
            raise EncodingError(f"{field} must be a string, got {value!r}")
        if len(value.encode("utf-8")) > U32_MAX:
            raise EncodingError(f"{field} is too long to encode")
        self._parts.append(String.build(value))
        return self

    def opt_address(self, value: Optional[AddressLike], field: str = "value") -> "LengthCheckedBuffer":
        raw = None if value is None else address_bytes(value, field)
        self._parts.append(_OPT_ADDRESS.build(raw))
        return self

    def address_list(self, values: Sequence[AddressLike], field: str = "values") -> "LengthCheckedBuffer":
        raws = [address_bytes(v, f"{field}[{i}]") for i, v in enumerate(values)]
        _check_int(len(raws), U32_MAX, f"len({field})", "u32")
        self._parts.append(_ADDRESS_VEC.build(raws))
        return self

    def build(self, expected_length: int) -> bytes:
        actual = len(self)
        if actual != expected_length:
            raise EncodingLengthMismatch(self.operation, expected_length, actual)
        return b"".join(self._parts)


__all__ = [
    "SELECTOR_SIZE",
    "U32_SIZE",
    "U64_SIZE",
    "ADDRESS_SIZE",
    "AddressLike",
    "LengthCheckedBuffer",
    "address_bytes",
    "string_size",
    "opt_address_size",
    "address_list_size",
]
