import pytest
from solders.pubkey import Pubkey

from backend.core.trove_core.codec import (
    LengthCheckedBuffer,
    address_list_size,
    opt_address_size,
    string_size,
)
from backend.core.trove_core.errors import EncodingError, EncodingLengthMismatch

SEL = bytes(range(8))


def test_field_encodings_are_little_endian():
    addr = Pubkey(bytes([7]) * 32)
    data = (
        LengthCheckedBuffer("t", SEL)
        .u32(1)
        .u64(2)
        .string("SOL")
        .opt_address(None)
        .opt_address(addr)
        .address_list([addr])
        .build(8 + 4 + 8 + 7 + 1 + 33 + 36)
    )
    assert data[:8] == SEL
    assert data[8:12] == b"\x01\x00\x00\x00"
    assert data[12:20] == (2).to_bytes(8, "little")
    assert data[20:27] == b"\x03\x00\x00\x00SOL"
    assert data[27:28] == b"\x00"
    assert data[28:61] == b"\x01" + bytes(addr)
    assert data[61:] == b"\x01\x00\x00\x00" + bytes(addr)


def test_build_rejects_length_mismatch():
    buf = LengthCheckedBuffer("stake", SEL).u64(5)
    with pytest.raises(EncodingLengthMismatch) as exc:
        buf.build(17)
    assert exc.value.expected == 17
    assert exc.value.actual == 16
    assert "stake" in str(exc.value)


def test_empty_string_and_list():
    data = LengthCheckedBuffer("t", SEL).string("").address_list([]).build(8 + 4 + 4)
    assert data[8:] == b"\x00" * 8


@pytest.mark.parametrize("value", [-1, 2**64, "12", True])
def test_u64_out_of_range(value):
    with pytest.raises(EncodingError):
        LengthCheckedBuffer("t", SEL).u64(value)


def test_u32_upper_bound():
    assert len(LengthCheckedBuffer("t", SEL).u32(2**32 - 1)) == 12
    with pytest.raises(EncodingError):
        LengthCheckedBuffer("t", SEL).u32(2**32)


def test_bad_address_and_selector():
    with pytest.raises(EncodingError):
        LengthCheckedBuffer("t", SEL).opt_address(b"\x01" * 31)
    with pytest.raises(EncodingError):
        LengthCheckedBuffer("t", b"\x00" * 7)


def test_size_helpers():
    assert string_size("SOL") == 7
    assert string_size("é") == 6
    assert opt_address_size(None) == 1
    assert opt_address_size(Pubkey(bytes(32))) == 33
    assert address_list_size(0) == 4
    assert address_list_size(3) == 100
