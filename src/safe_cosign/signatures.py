"""Safe signature construction and aggregation.

The Safe contract takes all owner signatures as one byte string: 65-byte
entries concatenated in ascending signer order. The last byte of an entry
selects how it is checked:

- 27/28: ECDSA signature over the SafeTx hash,
- 31/32: ECDSA signature over the EIP-191 (`eth_sign`) prefixed hash,
- 1: the signer approved the hash on chain with `approveHash()`; `r`
  holds the signer address and `s` is unused.
"""

import json
import logging
from typing import (
    TYPE_CHECKING,
    Any,
    Iterable,
    Mapping,
    Union,
)

from hexbytes import (
    HexBytes,
)

from .codec import hex_to_bytes
from .constants import (
    APPROVED_HASH_V,
    ECDSA_V_VALUES,
    ETH_SIGN_V_OFFSET,
    SIGNATURE_LENGTH,
)
from .exceptions import DuplicateSigner, InvalidSignature, SigningError
from .models import Signature
from .util import is_address, to_checksum_address

if TYPE_CHECKING:
    from eth_typing import ChecksumAddress

    from .auth import Authenticator

logger = logging.getLogger(__name__)

ETH_SIGN_V_VALUES = tuple(v + ETH_SIGN_V_OFFSET for v in ECDSA_V_VALUES)


def to_safe_signature_data(raw: bytes) -> HexBytes:
    """Mark a signature over the `eth_sign` prefixed hash for the Safe.

    Signers produce `v` 27/28, which the Safe would check against the bare
    hash, so it is shifted to 31/32. Signatures that are already marked,
    and approval placeholders, are returned unchanged.
    """
    sigbytes = HexBytes(raw)
    if len(sigbytes) != SIGNATURE_LENGTH:
        raise InvalidSignature(
            f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(sigbytes)}."
        )
    v = sigbytes[-1]
    if v in ECDSA_V_VALUES:
        return HexBytes(sigbytes[:-1] + bytes([v + ETH_SIGN_V_OFFSET]))
    if v in ETH_SIGN_V_VALUES or v == APPROVED_HASH_V:
        return sigbytes
    raise InvalidSignature(f"Unsupported signature v value {v}.")


def make_approval_signature(signer: str) -> Signature:
    """Placeholder for an owner that approved the hash on chain."""
    if not is_address(signer):
        raise InvalidSignature(f"Invalid signer address '{signer}'.")
    data = HexBytes(
        HexBytes(signer).rjust(32, b"\x00") + bytes(32) + bytes([APPROVED_HASH_V])
    )
    return Signature(signer=to_checksum_address(signer), data=data)


def sign_digest(auth: "Authenticator", digest: bytes) -> Signature:
    """Sign a SafeTx hash with `eth_sign` semantics."""
    try:
        raw = auth.sign_digest(digest)
    except SigningError:
        raise
    except Exception as exc:
        raise SigningError(f"Signer {auth.address} failed: {exc}", [exc]) from exc
    try:
        data = to_safe_signature_data(raw)
    except InvalidSignature as exc:
        raise SigningError(
            f"Signer {auth.address} returned an invalid signature: {exc}", [exc]
        ) from exc
    return Signature(signer=auth.address, data=data)


def validate_signature(sig: Signature) -> None:
    if not sig.signer:
        raise InvalidSignature("Signature has no signer.")
    if not is_address(sig.signer):
        raise InvalidSignature(f"Invalid signer address '{sig.signer}'.")
    if not sig.data:
        raise InvalidSignature(f"Empty signature data for signer {sig.signer}.")
    if len(sig.data) != SIGNATURE_LENGTH:
        raise InvalidSignature(
            f"Signature for signer {sig.signer} must be {SIGNATURE_LENGTH} "
            f"bytes, got {len(sig.data)}."
        )


def parse_signature(value: Union[str, Mapping[str, Any], Signature]) -> Signature:
    """Read a signature from its `{"signer": ..., "data": ...}` JSON form."""
    if isinstance(value, Signature):
        obj: Mapping[str, Any] = value._asdict()
    elif isinstance(value, str):
        try:
            obj = json.loads(value)
        except json.JSONDecodeError as exc:
            raise InvalidSignature(f"Signature is not valid JSON: {exc}") from exc
    else:
        obj = value
    if not isinstance(obj, Mapping):
        raise InvalidSignature(f"Not a signature object: {value!r}.")
    signer, data = obj.get("signer"), obj.get("data")
    if not signer or not data:
        raise InvalidSignature(f"Signature requires 'signer' and 'data': {value!r}.")
    try:
        sigbytes = hex_to_bytes(data)
    except ValueError as exc:
        raise InvalidSignature(str(exc)) from exc
    if not is_address(signer):
        raise InvalidSignature(f"Invalid signer address '{signer}'.")
    sig = Signature(
        signer=to_checksum_address(signer), data=to_safe_signature_data(sigbytes)
    )
    validate_signature(sig)
    return sig


def recover_signer(sig: Signature, digest: bytes) -> "ChecksumAddress":
    """Return the address that produced `sig` for the SafeTx hash `digest`."""
    from safe_eth.safe.safe_signature import SafeSignature

    validate_signature(sig)
    v = sig.data[-1]
    if v not in (*ECDSA_V_VALUES, *ETH_SIGN_V_VALUES, APPROVED_HASH_V):
        raise InvalidSignature(f"Unsupported signature v value {v}.")
    try:
        siglist = SafeSignature.parse_signature(bytes(sig.data), bytes(digest))
        owner = siglist[0].owner if len(siglist) == 1 else None
    except Exception as exc:
        raise InvalidSignature(
            f"Cannot recover signer of signature for {sig.signer}: {exc}"
        ) from exc
    # ECDSA recovery failures are reported as the zero address.
    if owner is None or int(owner, 16) == 0:
        raise InvalidSignature(f"Cannot recover signer of signature for {sig.signer}.")
    return to_checksum_address(owner)


def verify_signature(sig: Signature, digest: bytes) -> None:
    recovered = recover_signer(sig, digest)
    if recovered != to_checksum_address(sig.signer):
        raise InvalidSignature(
            f"Signature claims signer {sig.signer} but was produced by {recovered}."
        )


class SignatureSet:
    """Signatures for one SafeTx hash, at most one per signer."""

    def __init__(self, signatures: Iterable[Signature] = ()):
        self._signatures: dict[str, Signature] = {}
        for sig in signatures:
            self.add(sig)

    def __len__(self) -> int:
        return len(self._signatures)

    def __iter__(self):
        return iter(self._signatures.values())

    def __contains__(self, signer: object) -> bool:
        return isinstance(signer, str) and signer.lower() in self._signatures

    def add(self, sig: Signature) -> None:
        validate_signature(sig)
        key = sig.signer.lower()
        if key in self._signatures:
            raise DuplicateSigner(to_checksum_address(sig.signer))
        self._signatures[key] = sig

    def sorted(self) -> list[Signature]:
        return [self._signatures[key] for key in sorted(self._signatures)]

    def signers(self) -> list["ChecksumAddress"]:
        return [to_checksum_address(sig.signer) for sig in self.sorted()]

    def finalize(self) -> HexBytes:
        """Concatenate the signatures in ascending signer order."""
        sigbytes = HexBytes(b"".join(bytes(sig.data) for sig in self.sorted()))
        logger.debug(f"Finalized {len(self)} signature(s): {self.signers()}")
        return sigbytes


def build_signature_bytes(
    signatures: Union[Iterable[Signature], SignatureSet, bytes],
) -> HexBytes:
    """One-shot `SignatureSet(signatures).finalize()`.

    Signature bytes that were already finalized are returned as is.
    """
    if isinstance(signatures, (bytes, bytearray)):
        return HexBytes(signatures)
    if isinstance(signatures, SignatureSet):
        return signatures.finalize()
    return SignatureSet(signatures).finalize()
