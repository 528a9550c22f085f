"""Decoder for the IDE's cached OAuth token blob.

The IDE persists its agent-manager state as a base64-encoded protobuf
message. Only the wire format is walked here: field 6 holds the OAuth token
sub-message, whose fields 1/2/3 are the access token, token type and refresh
token and whose field 4 is a timestamp message (field 1 = epoch seconds).
Unknown fields are skipped.
"""

import base64
import binascii

from structlog import get_logger

from quota_cockpit.auth.models import LocalTokenInfo
from quota_cockpit.exceptions import (
    LocalStateError,
    MalformedVarintError,
    UnknownWireTypeError,
)


logger = get_logger(__name__)

WIRE_VARINT = 0
WIRE_FIXED64 = 1
WIRE_LENGTH_DELIMITED = 2
WIRE_FIXED32 = 5

OAUTH_TOKEN_FIELD = 6

FIELD_ACCESS_TOKEN = 1
FIELD_TOKEN_TYPE = 2
FIELD_REFRESH_TOKEN = 3
FIELD_EXPIRY = 4


def read_varint(buffer: bytes, offset: int) -> tuple[int, int]:
    """Decode a base-128 little-endian varint.

    Returns:
        Tuple of (value, offset of the first byte after the varint)

    Raises:
        MalformedVarintError: If the buffer ends before the terminating byte
    """
    result = 0
    shift = 0
    pos = offset
    while pos < len(buffer):
        byte = buffer[pos]
        result |= (byte & 0x7F) << shift
        pos += 1
        if not byte & 0x80:
            return result, pos
        shift += 7
    raise MalformedVarintError(offset)


def skip_field(buffer: bytes, offset: int, wire_type: int) -> int:
    """Return the offset just past one field value of the given wire type."""
    if wire_type == WIRE_VARINT:
        _, next_offset = read_varint(buffer, offset)
        return next_offset
    if wire_type == WIRE_FIXED64:
        return offset + 8
    if wire_type == WIRE_LENGTH_DELIMITED:
        length, content_offset = read_varint(buffer, offset)
        return content_offset + length
    if wire_type == WIRE_FIXED32:
        return offset + 4
    raise UnknownWireTypeError(wire_type)


def _split_tag(tag: int) -> tuple[int, int]:
    return tag >> 3, tag & 0x07


def find_field(buffer: bytes, field_number: int) -> bytes | None:
    """Return the payload of the first length-delimited `field_number`.

    A buffer that is truncated anywhere during the scan yields None rather
    than an error. An unknown wire type still raises UnknownWireTypeError.
    """
    offset = 0
    while offset < len(buffer):
        try:
            tag, offset = read_varint(buffer, offset)
        except MalformedVarintError:
            return None

        number, wire_type = _split_tag(tag)
        if number == field_number and wire_type == WIRE_LENGTH_DELIMITED:
            try:
                length, content_offset = read_varint(buffer, offset)
            except MalformedVarintError:
                return None
            end = content_offset + length
            if end > len(buffer):
                return None
            return bytes(buffer[content_offset:end])

        try:
            offset = skip_field(buffer, offset, wire_type)
        except MalformedVarintError:
            return None
    return None


def parse_timestamp(buffer: bytes) -> int | None:
    """Read the seconds field (1) of a timestamp message."""
    offset = 0
    while offset < len(buffer):
        tag, offset = read_varint(buffer, offset)
        number, wire_type = _split_tag(tag)
        if number == 1 and wire_type == WIRE_VARINT:
            seconds, _ = read_varint(buffer, offset)
            return seconds
        offset = skip_field(buffer, offset, wire_type)
    return None


def _decode_text(value: bytes) -> str:
    return value.decode("utf-8", errors="replace")


def parse_oauth_token_info(buffer: bytes) -> LocalTokenInfo:
    """Extract the token fields from the OAuth sub-message.

    Raises:
        LocalStateError: If the message is malformed
    """
    access_token = None
    token_type = None
    refresh_token = None
    expiry_seconds = None

    offset = 0
    while offset < len(buffer):
        tag, offset = read_varint(buffer, offset)
        number, wire_type = _split_tag(tag)

        if wire_type != WIRE_LENGTH_DELIMITED:
            offset = skip_field(buffer, offset, wire_type)
            continue

        length, content_offset = read_varint(buffer, offset)
        offset = content_offset + length
        if offset > len(buffer):
            raise LocalStateError(
                f"Field {number} runs past the end of the token message"
            )
        value = buffer[content_offset:offset]

        if number == FIELD_ACCESS_TOKEN:
            access_token = _decode_text(value)
        elif number == FIELD_TOKEN_TYPE:
            token_type = _decode_text(value)
        elif number == FIELD_REFRESH_TOKEN:
            refresh_token = _decode_text(value)
        elif number == FIELD_EXPIRY:
            expiry_seconds = parse_timestamp(value)

    return LocalTokenInfo(
        access_token=access_token,
        refresh_token=refresh_token,
        token_type=token_type,
        expiry_seconds=expiry_seconds,
    )


def decode_state_blob(text: str) -> LocalTokenInfo:
    """Decode the persisted base64 state value into token fields.

    Raises:
        LocalStateError: If the value is not base64, holds no OAuth field,
            or the OAuth field is malformed
    """
    try:
        raw = base64.b64decode(text.strip(), validate=False)
    except (binascii.Error, ValueError) as e:
        raise LocalStateError("State value is not valid base64") from e

    oauth_field = find_field(raw, OAUTH_TOKEN_FIELD)
    if oauth_field is None:
        raise LocalStateError("OAuth field not found in local state")

    info = parse_oauth_token_info(oauth_field)
    logger.debug(
        "local_token_info_decoded",
        has_access_token=bool(info.access_token),
        has_refresh_token=bool(info.refresh_token),
        expiry_seconds=info.expiry_seconds,
    )
    return info
