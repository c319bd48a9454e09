"""Wire transaction assembly with fixed-offset signature slots.

``[compact-u16 signer count][64-byte slot]*count[message]``

Slots are positional: slot ``i`` belongs to the ``i``-th account key of the
message. A signer can sign a placeholder transaction (zeroed slots) and its
signature stays valid once the remaining slots are filled in.
"""
from __future__ import annotations

from xbridge_core.exceptions import XBridgeValidationError

from .message import decode_compact_u16, encode_compact_u16

SIGNATURE_LENGTH = 64


def assemble_placeholder(signer_count: int, message: bytes) -> bytes:
    if signer_count < 1:
        raise XBridgeValidationError("signer_count must be at least 1", field="signer_count")
    return encode_compact_u16(signer_count) + bytes(SIGNATURE_LENGTH * signer_count) + message


def assemble_final(message: bytes, *signatures: bytes) -> bytes:
    """Rebuild the wire transaction with real signatures in slot order."""
    if not signatures:
        raise XBridgeValidationError("at least one signature is required", field="signatures")
    for slot, sig in enumerate(signatures):
        if len(sig) != SIGNATURE_LENGTH:
            raise XBridgeValidationError(
                f"signature for slot {slot} must be {SIGNATURE_LENGTH} bytes, got {len(sig)}",
                field="signatures",
            )
    return encode_compact_u16(len(signatures)) + b"".join(signatures) + message


def extract_signature(signed: bytes, slot: int) -> bytes:
    """Read the 64-byte signature in ``slot`` of a wire transaction."""
    try:
        count, header_len = decode_compact_u16(signed)
    except ValueError as e:
        raise XBridgeValidationError(f"Malformed wire transaction: {e}") from e
    if not 0 <= slot < count:
        raise XBridgeValidationError(f"slot {slot} out of range for {count} signers", field="slot")
    start = header_len + slot * SIGNATURE_LENGTH
    end = start + SIGNATURE_LENGTH
    if len(signed) < end:
        raise XBridgeValidationError("Wire transaction truncated before signature slot")
    return bytes(signed[start:end])


def extract_message(signed: bytes) -> bytes:
    count, header_len = decode_compact_u16(signed)
    return bytes(signed[header_len + count * SIGNATURE_LENGTH :])
