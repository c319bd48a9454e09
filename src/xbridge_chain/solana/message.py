"""Legacy Solana message construction.

Layout:
    [num_required_signatures u8][num_readonly_signed u8][num_readonly_unsigned u8]
    [compact-u16 key count][32-byte keys...]
    [32-byte recent blockhash or durable nonce value]
    [compact-u16 instruction count][instructions...]

Each instruction is ``[program index u8][compact-u16 n][n account indices]
[compact-u16 len][data]``. Signature slots in the wire transaction follow the
order of the first ``num_required_signatures`` keys.
"""
from __future__ import annotations

import struct
from dataclasses import dataclass, field

from solders.pubkey import Pubkey

from xbridge_core.constants import SolanaDefaults
from xbridge_core.exceptions import XBridgeValidationError

from .keys import (
    ASSOCIATED_TOKEN_PROGRAM,
    RECENT_BLOCKHASHES_SYSVAR,
    RENT_SYSVAR,
    SYSTEM_PROGRAM,
    TOKEN_PROGRAM,
)

# System program instruction indices
CREATE_ACCOUNT_WITH_SEED = 3
ADVANCE_NONCE_ACCOUNT = 4
INITIALIZE_NONCE_ACCOUNT = 6

# SPL token / ATA program instructions
TRANSFER_CHECKED = 12
CREATE_ATA_IDEMPOTENT = 1


def encode_compact_u16(value: int) -> bytes:
    """Encode ``value`` as Solana's variable-length compact-u16."""
    if not 0 <= value <= 0xFFFF:
        raise ValueError(f"compact-u16 out of range: {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_compact_u16(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Return ``(value, bytes_consumed)`` for the compact-u16 at ``offset``."""
    value = 0
    for i in range(3):
        if offset + i >= len(data):
            raise ValueError("truncated compact-u16")
        byte = data[offset + i]
        value |= (byte & 0x7F) << (7 * i)
        if not byte & 0x80:
            return value, i + 1
    raise ValueError("compact-u16 longer than 3 bytes")


@dataclass(frozen=True)
class AccountMeta:
    pubkey: Pubkey
    is_signer: bool = False
    is_writable: bool = False


@dataclass
class Instruction:
    program_id: Pubkey
    accounts: list[AccountMeta] = field(default_factory=list)
    data: bytes = b""


def compile_legacy_message(
    fee_payer: Pubkey,
    instructions: list[Instruction],
    recent_blockhash: bytes,
) -> bytes:
    """Compile instructions into a legacy message with the fee payer at key 0."""
    if len(recent_blockhash) != 32:
        raise XBridgeValidationError("Recent blockhash must be 32 bytes", field="blockhash")

    # pubkey -> [is_signer, is_writable], insertion ordered
    flags: dict[Pubkey, list[bool]] = {fee_payer: [True, True]}
    for ix in instructions:
        for meta in ix.accounts:
            entry = flags.setdefault(meta.pubkey, [False, False])
            entry[0] = entry[0] or meta.is_signer
            entry[1] = entry[1] or meta.is_writable
        flags.setdefault(ix.program_id, [False, False])

    def bucket(signer: bool, writable: bool) -> list[Pubkey]:
        return [k for k, (s, w) in flags.items() if s == signer and w == writable]

    writable_signers = bucket(True, True)
    readonly_signers = bucket(True, False)
    writable_unsigned = bucket(False, True)
    readonly_unsigned = bucket(False, False)
    keys = writable_signers + readonly_signers + writable_unsigned + readonly_unsigned
    index = {k: i for i, k in enumerate(keys)}

    out = bytearray(
        [
            len(writable_signers) + len(readonly_signers),
            len(readonly_signers),
            len(readonly_unsigned),
        ]
    )
    out += encode_compact_u16(len(keys))
    for key in keys:
        out += bytes(key)
    out += recent_blockhash
    out += encode_compact_u16(len(instructions))
    for ix in instructions:
        out.append(index[ix.program_id])
        out += encode_compact_u16(len(ix.accounts))
        out += bytes(index[meta.pubkey] for meta in ix.accounts)
        out += encode_compact_u16(len(ix.data))
        out += ix.data
    return bytes(out)


def create_account_with_seed(
    payer: Pubkey,
    new_account: Pubkey,
    base: Pubkey,
    seed: str,
    lamports: int,
    space: int,
    owner: Pubkey = SYSTEM_PROGRAM,
) -> Instruction:
    seed_bytes = seed.encode()
    data = (
        struct.pack("<I", CREATE_ACCOUNT_WITH_SEED)
        + bytes(base)
        + struct.pack("<Q", len(seed_bytes))
        + seed_bytes
        + struct.pack("<QQ", lamports, space)
        + bytes(owner)
    )
    return Instruction(
        program_id=SYSTEM_PROGRAM,
        accounts=[
            AccountMeta(payer, is_signer=True, is_writable=True),
            AccountMeta(new_account, is_writable=True),
            AccountMeta(base, is_signer=True),
        ],
        data=data,
    )


def initialize_nonce_account(nonce_account: Pubkey, authority: Pubkey) -> Instruction:
    return Instruction(
        program_id=SYSTEM_PROGRAM,
        accounts=[
            AccountMeta(nonce_account, is_writable=True),
            AccountMeta(RECENT_BLOCKHASHES_SYSVAR),
            AccountMeta(RENT_SYSVAR),
        ],
        data=struct.pack("<I", INITIALIZE_NONCE_ACCOUNT) + bytes(authority),
    )


def build_create_nonce_message(
    wallet: Pubkey,
    nonce_account: Pubkey,
    seed: str,
    rent_lamports: int,
    recent_blockhash: bytes,
) -> bytes:
    """One-signer message creating and initializing ``wallet``'s nonce account."""
    return compile_legacy_message(
        fee_payer=wallet,
        instructions=[
            create_account_with_seed(
                payer=wallet,
                new_account=nonce_account,
                base=wallet,
                seed=seed,
                lamports=rent_lamports,
                space=SolanaDefaults.NONCE_ACCOUNT_SIZE,
            ),
            initialize_nonce_account(nonce_account, authority=wallet),
        ],
        recent_blockhash=recent_blockhash,
    )


@dataclass(frozen=True)
class SplTransferParams:
    """Inputs of the two-signer durable-nonce SPL transfer.

    All keys are raw 32-byte values; ``nonce`` is the nonce account's stored
    blockhash.
    """

    nonce_authority: bytes
    token_owner: bytes
    nonce_account: bytes
    destination_ata: bytes
    source_ata: bytes
    destination_wallet: bytes
    mint: bytes
    nonce: bytes
    amount: int
    decimals: int


SPL_TRANSFER_HEADER = bytes([2, 1, 6])
SPL_TRANSFER_KEY_COUNT = 11


def build_spl_transfer_message(params: SplTransferParams) -> bytes:
    """Build the burn flow's destination-side message.

    Signers are the nonce authority (slot 0, the user) and the token owner
    (slot 1, the dWallet). Instructions: AdvanceNonce,
    CreateAssociatedTokenAccountIdempotent, TransferChecked.
    """
    for name in (
        "nonce_authority",
        "token_owner",
        "nonce_account",
        "destination_ata",
        "source_ata",
        "destination_wallet",
        "mint",
        "nonce",
    ):
        value = getattr(params, name)
        if len(value) != 32:
            raise XBridgeValidationError(f"{name} must be 32 bytes, got {len(value)}", field=name)
    if not 0 <= params.amount < 2**64:
        raise XBridgeValidationError("amount out of u64 range", field="amount")
    if not 0 <= params.decimals <= 255:
        raise XBridgeValidationError("decimals out of u8 range", field="decimals")

    keys = [
        params.nonce_authority,  # 0 writable signer
        params.token_owner,  # 1 readonly signer
        params.nonce_account,  # 2
        params.destination_ata,  # 3
        params.source_ata,  # 4
        bytes(SYSTEM_PROGRAM),  # 5 readonly from here on
        bytes(RECENT_BLOCKHASHES_SYSVAR),  # 6
        bytes(ASSOCIATED_TOKEN_PROGRAM),  # 7
        params.destination_wallet,  # 8
        params.mint,  # 9
        bytes(TOKEN_PROGRAM),  # 10
    ]

    out = bytearray(SPL_TRANSFER_HEADER)
    out += encode_compact_u16(SPL_TRANSFER_KEY_COUNT)
    for key in keys:
        out += key
    out += params.nonce
    out += encode_compact_u16(3)
    # AdvanceNonce: nonce account, recent blockhashes sysvar, authority
    out += bytes([5, 3, 2, 6, 0, 4]) + struct.pack("<I", ADVANCE_NONCE_ACCOUNT)
    # CreateIdempotent: payer, ata, wallet, mint, system, token program
    out += bytes([7, 6, 0, 3, 8, 9, 5, 10, 1, CREATE_ATA_IDEMPOTENT])
    # TransferChecked: source, mint, destination, owner
    out += bytes([10, 4, 4, 9, 3, 1, 10, TRANSFER_CHECKED])
    out += struct.pack("<QB", params.amount, params.decimals)
    return bytes(out)
