"""Tests for the IDE token blob decoder."""

import base64

import pytest

from quota_cockpit.auth.state_decoder import (
    decode_state_blob,
    find_field,
    parse_oauth_token_info,
    parse_timestamp,
    read_varint,
    skip_field,
)
from quota_cockpit.exceptions import (
    LocalStateError,
    MalformedVarintError,
    UnknownWireTypeError,
)


def encode_varint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def length_field(number: int, payload: bytes) -> bytes:
    return encode_varint(number << 3 | 2) + encode_varint(len(payload)) + payload


def varint_field(number: int, value: int) -> bytes:
    return encode_varint(number << 3) + encode_varint(value)


def token_message(
    access: bytes = b"ya29.access",
    refresh: bytes = b"1//refresh",
    expiry: int | None = 1_700_000_000,
) -> bytes:
    message = length_field(1, access) + length_field(2, b"Bearer")
    message += length_field(3, refresh)
    if expiry is not None:
        message += length_field(4, varint_field(1, expiry))
    return message


@pytest.mark.unit
class TestVarint:
    @pytest.mark.parametrize(
        ("value", "size"), [(0, 1), (1, 1), (127, 1), (128, 2), (300, 2), (2**35, 6)]
    )
    def test_decodes_encoded_value(self, value: int, size: int) -> None:
        encoded = encode_varint(value)

        assert len(encoded) == size
        assert read_varint(b"\xff" + encoded, 1) == (value, 1 + size)

    def test_truncated_varint_raises(self) -> None:
        with pytest.raises(MalformedVarintError) as exc_info:
            read_varint(b"\x01\x80\x80", 1)

        assert exc_info.value.offset == 1


@pytest.mark.unit
class TestSkipField:
    def test_fixed_widths(self) -> None:
        assert skip_field(b"", 3, 1) == 11
        assert skip_field(b"", 3, 5) == 7

    def test_length_delimited(self) -> None:
        buffer = encode_varint(3) + b"abc"

        assert skip_field(buffer, 0, 2) == 4

    def test_unknown_wire_type(self) -> None:
        with pytest.raises(UnknownWireTypeError) as exc_info:
            skip_field(b"\x00", 0, 3)

        assert exc_info.value.wire_type == 3


@pytest.mark.unit
class TestFindField:
    def test_skips_other_fields(self) -> None:
        buffer = (
            varint_field(1, 42)
            + encode_varint(2 << 3 | 1)
            + b"\x00" * 8
            + encode_varint(3 << 3 | 5)
            + b"\x00" * 4
            + length_field(4, b"other")
            + length_field(6, b"wanted")
        )

        assert find_field(buffer, 6) == b"wanted"

    def test_missing_field(self) -> None:
        assert find_field(length_field(1, b"x"), 6) is None

    def test_truncated_payload_returns_none(self) -> None:
        buffer = encode_varint(6 << 3 | 2) + encode_varint(10) + b"abc"

        assert find_field(buffer, 6) is None

    def test_truncated_tag_returns_none(self) -> None:
        assert find_field(length_field(1, b"x") + b"\x80", 6) is None

    def test_unknown_wire_type_propagates(self) -> None:
        buffer = encode_varint(1 << 3 | 3) + length_field(6, b"x")

        with pytest.raises(UnknownWireTypeError):
            find_field(buffer, 6)


@pytest.mark.unit
class TestTokenMessage:
    def test_parse_timestamp(self) -> None:
        assert parse_timestamp(varint_field(2, 5) + varint_field(1, 99)) == 99
        assert parse_timestamp(b"") is None

    def test_parse_oauth_token_info(self) -> None:
        info = parse_oauth_token_info(token_message())

        assert info.access_token == "ya29.access"
        assert info.token_type == "Bearer"
        assert info.refresh_token == "1//refresh"
        assert info.expiry_seconds == 1_700_000_000
        assert info.expiry is not None
        assert info.expiry.year == 2023

    def test_missing_expiry(self) -> None:
        info = parse_oauth_token_info(token_message(expiry=None))

        assert info.expiry_seconds is None
        assert info.expiry is None

    def test_overrunning_field_raises(self) -> None:
        buffer = encode_varint(3 << 3 | 2) + encode_varint(50) + b"short"

        with pytest.raises(LocalStateError, match="runs past the end"):
            parse_oauth_token_info(buffer)


@pytest.mark.unit
class TestDecodeStateBlob:
    def test_decodes_oauth_field(self) -> None:
        outer = varint_field(1, 7) + length_field(2, b"ignored")
        outer += length_field(6, token_message())
        blob = base64.b64encode(outer).decode()

        info = decode_state_blob(f"  {blob}\n")

        assert info.refresh_token == "1//refresh"
        assert info.access_token == "ya29.access"

    def test_missing_oauth_field(self) -> None:
        blob = base64.b64encode(length_field(2, b"nothing here")).decode()

        with pytest.raises(LocalStateError, match="OAuth field not found"):
            decode_state_blob(blob)
