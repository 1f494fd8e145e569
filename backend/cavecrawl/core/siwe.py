"""Sign-In With Ethereum (EIP-4361) messages and signature envelopes.

Message grammar, rendering and the domain, nonce and time checks come from
the ``siwe`` library. On top of it this module adds the chain allow-list
and the signature envelope.

Wallets hand back signatures in one of three shapes. Each is recognised by
its exact structure, never by searching for plausible bytes:

- ``raw``: a bare 65-byte ``r || s || v`` signature.
- ``abi_wrapped``: the signature ABI-encoded as a dynamic ``bytes`` value
  (some smart-contract wallets return this).
- ``deferred``: an ERC-6492 wrapper for a contract wallet that may not be
  deployed yet, marked by the 32-byte magic suffix.

Anything else is rejected.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import to_checksum_address
from siwe import (
    DomainMismatch,
    ExpiredMessage,
    InvalidSignature,
    NonceMismatch,
    NotYetValidMessage,
    SiweMessage,
    VerificationError,
)

from cavecrawl.core.errors import InvalidMessage, InvalidNonce, SignatureVerificationFailed

ERC6492_MAGIC = bytes.fromhex("64926492" * 8)
RAW_SIGNATURE_LENGTH = 65


def parse_message(text: str) -> SiweMessage:
    """Parse signed text with the EIP-4361 grammar; it must be in canonical form."""
    try:
        message = SiweMessage.from_message(message=text)
    except (ValueError, TypeError) as e:
        raise InvalidMessage(f"Malformed sign-in message: {e}")
    if message.prepare_message() != text:
        raise InvalidMessage("Sign-in message is not in canonical form")
    return message


def parse_timestamp(value: str) -> datetime:
    """Aware UTC datetime for an RFC 3339 timestamp the grammar already accepted."""
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def expires_at(message: SiweMessage) -> datetime | None:
    return parse_timestamp(message.expiration_time) if message.expiration_time else None


def check_chain(message: SiweMessage, allowed_chain_ids: list[int]) -> None:
    if message.chain_id not in allowed_chain_ids:
        raise InvalidMessage(f"Unsupported network: chain {message.chain_id}")


def check_message(
    message: SiweMessage,
    signature: bytes,
    nonce: str,
    domain: str = "",
    now: datetime | None = None,
) -> bool:
    """Run the library's domain, nonce and time checks plus EOA recovery.

    Field problems raise. The return value says whether ``signature`` is a
    key-pair signature by ``message.address``; False leaves the decision to
    the contract-wallet path.
    """
    try:
        message.verify(
            "0x" + signature.hex(),
            domain=domain or None,
            nonce=nonce,
            timestamp=now,
        )
    except DomainMismatch:
        raise InvalidMessage("Domain mismatch")
    except NonceMismatch:
        raise InvalidNonce("Nonce does not match the issued one")
    except ExpiredMessage:
        raise InvalidMessage("Message expired")
    except NotYetValidMessage:
        raise InvalidMessage("Message not yet valid")
    except InvalidSignature:
        return False
    except VerificationError as e:
        raise InvalidMessage(f"Sign-in message rejected: {type(e).__name__}")
    return True


class SignatureKind(enum.Enum):
    RAW = "raw"
    ABI_WRAPPED = "abi_wrapped"
    DEFERRED = "deferred"


@dataclass(frozen=True)
class SignatureEnvelope:
    kind: SignatureKind
    signature: bytes
    # ERC-6492 only: the factory that would deploy the wallet
    factory: str | None = None
    factory_calldata: bytes = b""


def _hex_to_bytes(value: str) -> bytes:
    value = value.strip()
    if value.startswith(("0x", "0X")):
        value = value[2:]
    try:
        return bytes.fromhex(value)
    except ValueError:
        raise SignatureVerificationFailed("Signature is not valid hex")


def _unwrap_abi_bytes(data: bytes) -> bytes | None:
    """Inner payload of a single ABI-encoded ``bytes`` value, or None if not one exactly."""
    if len(data) < 64 or len(data) % 32:
        return None
    if int.from_bytes(data[:32], "big") != 32:
        return None
    length = int.from_bytes(data[32:64], "big")
    padded = (length + 31) // 32 * 32
    if length == 0 or 64 + padded != len(data):
        return None
    payload, padding = data[64 : 64 + length], data[64 + length :]
    if any(padding):
        return None
    return payload


def classify_signature(signature: str) -> SignatureEnvelope:
    """Tag a wallet signature by its exact shape; unknown shapes fail closed."""
    data = _hex_to_bytes(signature)

    if data.endswith(ERC6492_MAGIC):
        try:
            factory, calldata, inner = abi_decode(
                ["address", "bytes", "bytes"], data[: -len(ERC6492_MAGIC)]
            )
        except (DecodingError, ValueError):
            raise SignatureVerificationFailed("Malformed ERC-6492 signature")
        return SignatureEnvelope(
            kind=SignatureKind.DEFERRED,
            signature=bytes(inner),
            factory=to_checksum_address(factory),
            factory_calldata=bytes(calldata),
        )

    if len(data) == RAW_SIGNATURE_LENGTH:
        return SignatureEnvelope(kind=SignatureKind.RAW, signature=data)

    inner = _unwrap_abi_bytes(data)
    if inner is not None:
        return SignatureEnvelope(kind=SignatureKind.ABI_WRAPPED, signature=inner)

    raise SignatureVerificationFailed("Unrecognised signature format")
