"""Build, hash, sign and execute Safe transactions.

Each function is a pure function of its arguments plus the capabilities it
is handed (`NonceSource`, `Authenticator`, `Broadcaster`). Nothing is cached
between calls, and any failure aborts the workflow before broadcasting.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import (
    TYPE_CHECKING,
    Any,
    Iterable,
    Mapping,
    NamedTuple,
    Optional,
    Sequence,
    Union,
)

from hexbytes import (
    HexBytes,
)

from .codec import UINT256_MAX, hex_to_bytes, to_int
from .constants import (
    DEFAULT_BASE_GAS,
    DEFAULT_GAS_PRICE,
    DEFAULT_GAS_TOKEN,
    DEFAULT_OPERATION,
    DEFAULT_REFUND_RECEIVER,
    DEFAULT_SAFE_TX_GAS,
    SAFE_APPROVE_HASH_FUNC_SELECTOR,
    SAFE_EXEC_FUNC_SELECTOR,
    SAFE_EXEC_FUNC_TYPES,
)
from .exceptions import (
    DuplicateSigner,
    InvalidConfig,
    NonceUnavailable,
    RpcError,
    SigningError,
)
from .models import (
    ExecutionRequest,
    PreparedSafeTx,
    Safe,
    SafeOperation,
    SafeTx,
    Signature,
    TxIntent,
    TxKind,
)
from .signatures import SignatureSet, sign_digest, verify_signature
from .util import is_address, to_checksum_address

if TYPE_CHECKING:
    from eth_typing import ChecksumAddress

    from .auth import Authenticator
    from .chain import Broadcaster, NonceSource

logger = logging.getLogger(__name__)


class ExecutionPlan(NamedTuple):
    prepared: PreparedSafeTx
    signatures: SignatureSet
    request: ExecutionRequest


class Approval(NamedTuple):
    tx_hash: HexBytes
    signature: Signature


# ┌─────────┐
# │ Parsing │
# └─────────┘


def _field(obj: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in obj and obj[key] is not None:
            return obj[key]
    return None


def _parse_uint(obj: Mapping[str, Any], *keys: str, default: Optional[int]) -> Any:
    value = _field(obj, *keys)
    if value is None:
        return default
    try:
        result = to_int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidConfig(f"Invalid value for '{keys[0]}': {exc}") from exc
    if result > UINT256_MAX:
        raise InvalidConfig(f"Value for '{keys[0]}' exceeds uint256: {result}.")
    return result


def _parse_address(
    obj: Mapping[str, Any], *keys: str, default: Optional[str]
) -> "ChecksumAddress":
    value = _field(obj, *keys)
    if value is None:
        if default is None:
            raise InvalidConfig(f"Missing address for '{keys[0]}'.")
        value = default
    if not is_address(value):
        raise InvalidConfig(f"Invalid address for '{keys[0]}': '{value}'.")
    return to_checksum_address(value)


def _parse_data(obj: Mapping[str, Any], *keys: str) -> HexBytes:
    try:
        return hex_to_bytes(_field(obj, *keys))
    except ValueError as exc:
        raise InvalidConfig(f"Invalid value for '{keys[0]}': {exc}") from exc


def load_transaction(
    data: Mapping[str, Any], kind: TxKind
) -> Union[TxIntent, SafeTx]:
    """Read a transaction from its JSON object form.

    `kind` says what the object is; the shape of `data` is never used to
    guess it.
    """
    if kind is TxKind.RAW:
        return TxIntent(
            to=_parse_address(data, "to", default=None),
            value=_parse_uint(data, "value", default=0),
            data=_parse_data(data, "data"),
            safe_nonce=_parse_uint(data, "safeNonce", "safe_nonce", default=None),
        )
    if kind is TxKind.EIP712:
        if not isinstance(data.get("message"), Mapping):
            raise InvalidConfig("EIP-712 data has no 'message' object.")
        data = data["message"]
    return SafeTx(
        to=_parse_address(data, "to", default=None),
        value=_parse_uint(data, "value", default=0),
        data=_parse_data(data, "data"),
        operation=_parse_uint(data, "operation", default=DEFAULT_OPERATION),
        safe_tx_gas=_parse_uint(data, "safeTxGas", default=DEFAULT_SAFE_TX_GAS),
        # Safe versions < 1.0.0 called this field `dataGas`.
        base_gas=_parse_uint(data, "baseGas", "dataGas", default=DEFAULT_BASE_GAS),
        gas_price=_parse_uint(data, "gasPrice", default=DEFAULT_GAS_PRICE),
        gas_token=_parse_address(data, "gasToken", default=DEFAULT_GAS_TOKEN),
        refund_receiver=_parse_address(
            data, "refundReceiver", default=DEFAULT_REFUND_RECEIVER
        ),
        nonce=_parse_uint(data, "nonce", default=None),
    )


def reconstruct_safetx(data: Mapping[str, Any]) -> PreparedSafeTx:
    """Rebuild a SafeTx and its hash from EIP-712 typed data."""
    domain = data.get("domain")
    if not isinstance(domain, Mapping):
        raise InvalidConfig("EIP-712 data has no 'domain' object.")
    chain_id = _parse_uint(domain, "chainId", default=None)
    if chain_id is None:
        raise InvalidConfig("EIP-712 domain has no 'chainId'.")
    safe = Safe(
        safe_address=_parse_address(domain, "verifyingContract", default=None),
        chain_id=chain_id,
    )
    safetx = load_transaction(data, TxKind.EIP712)
    assert isinstance(safetx, SafeTx)
    validate_safetx(safetx)
    return PreparedSafeTx(safe=safe, safetx=safetx, hash=safetx.hash(safe))


# ┌──────────┐
# │ Building │
# └──────────┘


def to_safetx(intent: Union[TxIntent, SafeTx]) -> SafeTx:
    """Fill in Safe-specific defaults for a raw intent."""
    if isinstance(intent, SafeTx):
        return intent
    if isinstance(intent, TxIntent):
        if not is_address(intent.to):
            raise InvalidConfig(f"Invalid destination address '{intent.to}'.")
        try:
            data = hex_to_bytes(intent.data)
        except ValueError as exc:
            raise InvalidConfig(f"Invalid call data: {exc}") from exc
        return SafeTx(
            to=to_checksum_address(intent.to),
            value=intent.value,
            data=data,
            nonce=intent.safe_nonce,
        )
    raise TypeError(f"Expected TxIntent or SafeTx, got {type(intent).__name__}.")


def validate_safe(safe: Safe) -> None:
    if not is_address(safe.safe_address) or int(safe.safe_address, 16) == 0:
        raise InvalidConfig(f"Invalid Safe address '{safe.safe_address}'.")
    if not isinstance(safe.chain_id, int) or safe.chain_id <= 0:
        raise InvalidConfig(f"Invalid chain ID {safe.chain_id!r}.")


def validate_safetx(safetx: SafeTx) -> None:
    for name in ("to", "gas_token", "refund_receiver"):
        if not is_address(getattr(safetx, name)):
            raise InvalidConfig(f"Invalid SafeTx {name} '{getattr(safetx, name)}'.")
    for name in ("value", "safe_tx_gas", "base_gas", "gas_price"):
        value = getattr(safetx, name)
        if not isinstance(value, int) or not 0 <= value <= UINT256_MAX:
            raise InvalidConfig(f"Invalid SafeTx {name} {value!r}.")
    if safetx.operation not in {op.value for op in SafeOperation}:
        raise InvalidConfig(f"Invalid SafeTx operation {safetx.operation!r}.")
    if safetx.nonce is not None and not 0 <= safetx.nonce <= UINT256_MAX:
        raise InvalidConfig(f"Invalid SafeTx nonce {safetx.nonce!r}.")


def resolve_nonce(
    safe: Safe, safetx: SafeTx, nonce_source: Optional["NonceSource"]
) -> SafeTx:
    """Return `safetx` with its nonce set, querying the Safe if needed.

    The nonce is part of the hash: resolving it again after signatures were
    collected would invalidate them.
    """
    if safetx.nonce is not None:
        return safetx
    if nonce_source is None:
        raise NonceUnavailable(
            "SafeTx has no nonce and no RPC is available to query it."
        )
    try:
        nonce = nonce_source.query_nonce(safe.safe_address)
    except RpcError as exc:
        raise NonceUnavailable(f"Cannot resolve SafeTx nonce: {exc}") from exc
    return safetx._replace(nonce=nonce)


def prepare_safetx(
    safe: Safe,
    intent: Union[TxIntent, SafeTx],
    nonce_source: Optional["NonceSource"] = None,
) -> PreparedSafeTx:
    validate_safe(safe)
    safetx = to_safetx(intent)
    validate_safetx(safetx)
    safetx = resolve_nonce(safe, safetx, nonce_source)
    safetx_hash = safetx.hash(safe)
    logger.info(
        f"Prepared SafeTx for {safe.safe_address} (chain {safe.chain_id}, "
        f"nonce {safetx.nonce}): {safetx_hash.to_0x_hex()}"
    )
    return PreparedSafeTx(safe=safe, safetx=safetx, hash=safetx_hash)


# ┌─────────┐
# │ Signing │
# └─────────┘


def collect_signatures(
    digest: bytes,
    *,
    recovery: "Authenticator",
    owners: Sequence["Authenticator"] = (),
    presigned: Iterable[Signature] = (),
    max_workers: Optional[int] = None,
) -> SignatureSet:
    """Gather the recovery signature, owner signatures and presigned ones.

    Owners sign concurrently; all of them are waited for, and if any fail a
    single `SigningError` lists every failure in signer order.
    """
    sigset = SignatureSet()
    for sig in presigned:
        verify_signature(sig, digest)
        sigset.add(sig)

    signers = [recovery, *owners]
    seen: set[str] = set()
    for auth in signers:
        key = auth.address.lower()
        if key in seen or auth.address in sigset:
            raise DuplicateSigner(to_checksum_address(auth.address))
        seen.add(key)

    failures: list[SigningError] = []
    signatures: list[Signature] = []
    with ThreadPoolExecutor(max_workers=max_workers or len(signers)) as executor:
        futures = [executor.submit(sign_digest, auth, digest) for auth in signers]
        for future in futures:
            try:
                signatures.append(future.result())
            except SigningError as exc:
                failures.append(exc)
    if failures:
        raise SigningError(
            f"{len(failures)} of {len(signers)} signer(s) failed: "
            + "; ".join(str(exc) for exc in failures),
            failures,
        )
    for sig in signatures:
        sigset.add(sig)
    logger.info(f"Collected {len(sigset)} signature(s): {sigset.signers()}")
    return sigset


def sign_only(
    safe: Safe,
    intent: Union[TxIntent, SafeTx],
    *,
    auth: "Authenticator",
    nonce_source: Optional["NonceSource"] = None,
) -> Signature:
    prepared = prepare_safetx(safe, intent, nonce_source)
    return sign_digest(auth, prepared.hash)


# ┌───────────┐
# │ Execution │
# └───────────┘


def encode_exec_call(safetx: SafeTx, signatures: bytes) -> HexBytes:
    """Encode `execTransaction()` for a SafeTx and finalized signatures."""
    from eth_abi.abi import encode as abi_encode

    args = abi_encode(
        SAFE_EXEC_FUNC_TYPES,
        (
            safetx.to,
            safetx.value,
            bytes(safetx.data),
            safetx.operation,
            safetx.safe_tx_gas,
            safetx.base_gas,
            safetx.gas_price,
            safetx.gas_token,
            safetx.refund_receiver,
            bytes(signatures),
        ),
    )
    return HexBytes(HexBytes(SAFE_EXEC_FUNC_SELECTOR) + args)


def encode_approve_hash_call(digest: bytes) -> HexBytes:
    from eth_abi.abi import encode as abi_encode

    return HexBytes(
        HexBytes(SAFE_APPROVE_HASH_FUNC_SELECTOR)
        + abi_encode(("bytes32",), (bytes(digest),))
    )


def assemble_execution(
    safe: Safe,
    intent: Union[TxIntent, SafeTx],
    *,
    recovery: "Authenticator",
    owners: Sequence["Authenticator"] = (),
    presigned: Iterable[Signature] = (),
    nonce_source: Optional["NonceSource"] = None,
    max_workers: Optional[int] = None,
) -> ExecutionPlan:
    prepared = prepare_safetx(safe, intent, nonce_source)
    sigset = collect_signatures(
        prepared.hash,
        recovery=recovery,
        owners=owners,
        presigned=presigned,
        max_workers=max_workers,
    )
    calldata = encode_exec_call(prepared.safetx, sigset.finalize())
    return ExecutionPlan(
        prepared=prepared,
        signatures=sigset,
        request=ExecutionRequest(to=safe.safe_address, data=calldata),
    )


def build_and_execute(
    safe: Safe,
    intent: Union[TxIntent, SafeTx],
    *,
    recovery: "Authenticator",
    broadcaster: "Broadcaster",
    owners: Sequence["Authenticator"] = (),
    presigned: Iterable[Signature] = (),
    nonce_source: Optional["NonceSource"] = None,
    max_workers: Optional[int] = None,
) -> HexBytes:
    """Sign a SafeTx with the recovery signer and owners, then execute it.

    Returns the identifier of the broadcast transaction.
    """
    plan = assemble_execution(
        safe,
        intent,
        recovery=recovery,
        owners=owners,
        presigned=presigned,
        nonce_source=nonce_source,
        max_workers=max_workers,
    )
    tx_hash = broadcaster.broadcast(plan.request)
    logger.info(
        f"Executed SafeTx {plan.prepared.hash.to_0x_hex()} in {tx_hash.to_0x_hex()}"
    )
    return tx_hash


def approve_hash(
    safe: Safe,
    intent: Union[TxIntent, SafeTx],
    *,
    owner: "ChecksumAddress",
    broadcaster: "Broadcaster",
    nonce_source: Optional["NonceSource"] = None,
) -> Approval:
    """Approve a SafeTx hash on chain on behalf of `owner`.

    `broadcaster` must send transactions from `owner`. The returned
    signature is the placeholder to include when executing the SafeTx.
    """
    from .signatures import make_approval_signature

    prepared = prepare_safetx(safe, intent, nonce_source)
    signature = make_approval_signature(owner)
    tx_hash = broadcaster.broadcast(
        ExecutionRequest(
            to=safe.safe_address, data=encode_approve_hash_call(prepared.hash)
        )
    )
    logger.info(
        f"Approved SafeTx {prepared.hash.to_0x_hex()} for {owner} "
        f"in {tx_hash.to_0x_hex()}"
    )
    return Approval(tx_hash=HexBytes(tx_hash), signature=signature)
