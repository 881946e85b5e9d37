import threading

import pytest
from eth_abi.abi import decode as abi_decode
from eth_utils.address import to_checksum_address
from hexbytes import HexBytes
from safe_cosign.auth import PrivateKeyAuthenticator
from safe_cosign.constants import (
    SAFE_APPROVE_HASH_FUNC_SELECTOR,
    SAFE_EXEC_FUNC_SELECTOR,
    SAFE_EXEC_FUNC_TYPES,
)
from safe_cosign.exceptions import (
    DuplicateSigner,
    InvalidConfig,
    InvalidSignature,
    NonceUnavailable,
    RpcError,
    SigningError,
)
from safe_cosign.models import ExecutionRequest, Safe, SafeTx, TxIntent, TxKind
from safe_cosign.signatures import make_approval_signature, sign_digest
from safe_cosign.workflows import (
    approve_hash,
    build_and_execute,
    collect_signatures,
    encode_exec_call,
    load_transaction,
    prepare_safetx,
    resolve_nonce,
    sign_only,
    to_safetx,
)

SAFE = Safe(
    safe_address=to_checksum_address("0xb6e46b8Ad163C68d736Ec4199F43033B43379c70"),
    chain_id=1,
)
DEAD = to_checksum_address("0x000000000000000000000000000000000000dEaD")
GOLDEN_HASH = "0xee9cb87bb8d928142dbb0745dd71fc91ec103ade601dfe631d744d875c400bf1"

RECOVERY_KEY = "0x" + "aa" * 32
OWNER_KEYS = ["0x" + "bb" * 32, "0x" + "cc" * 32, "0x" + "dd" * 32]


class FakeNonceSource:
    def __init__(self, nonce: int = 3, error: Exception | None = None):
        self.nonce = nonce
        self.error = error
        self.calls: list[str] = []

    def query_nonce(self, safe_address):
        self.calls.append(safe_address)
        if self.error is not None:
            raise self.error
        return self.nonce


class FakeBroadcaster:
    def __init__(self):
        self.requests: list[ExecutionRequest] = []

    def broadcast(self, request: ExecutionRequest) -> HexBytes:
        self.requests.append(request)
        return HexBytes(b"\x42" * 32)


class FailingAuthenticator:
    def __init__(self, key: str, message: str):
        self._auth = PrivateKeyAuthenticator(key)
        self.address = self._auth.address
        self.message = message

    def sign_transaction(self, params):
        raise NotImplementedError

    def sign_digest(self, digest: bytes) -> bytes:
        raise RuntimeError(self.message)


class MalformedAuthenticator:
    """Signs correctly but returns an unusable `v`."""

    def __init__(self, key: str, v: int):
        self._auth = PrivateKeyAuthenticator(key)
        self.address = self._auth.address
        self.v = v

    def sign_transaction(self, params):
        raise NotImplementedError

    def sign_digest(self, digest: bytes) -> bytes:
        return self._auth.sign_digest(digest)[:-1] + bytes([self.v])


@pytest.fixture
def recovery() -> PrivateKeyAuthenticator:
    return PrivateKeyAuthenticator(RECOVERY_KEY)


@pytest.fixture
def owners() -> list[PrivateKeyAuthenticator]:
    return [PrivateKeyAuthenticator(key) for key in OWNER_KEYS]


# ┌──────────┐
# │ Building │
# └──────────┘


def test_to_safetx_fills_defaults():
    safetx = to_safetx(TxIntent(to=DEAD, value=5, data=HexBytes("0x01"), safe_nonce=9))
    assert safetx == SafeTx(to=DEAD, value=5, data=HexBytes("0x01"), nonce=9)
    assert safetx.operation == 0
    assert safetx.gas_token == "0x0000000000000000000000000000000000000000"


def test_to_safetx_passes_safetx_through():
    safetx = SafeTx(to=DEAD, value=0, data=HexBytes(b""), operation=1, nonce=1)
    assert to_safetx(safetx) is safetx


def test_load_raw_transaction():
    intent = load_transaction(
        {"to": DEAD.lower(), "value": "0x10", "data": "0xabcd", "safeNonce": 2},
        TxKind.RAW,
    )
    assert intent == TxIntent(to=DEAD, value=16, data=HexBytes("0xabcd"), safe_nonce=2)


def test_load_transaction_kind_is_explicit():
    data = {"to": DEAD, "value": 0, "data": "0x", "operation": 1, "nonce": 3}
    assert isinstance(load_transaction(data, TxKind.RAW), TxIntent)
    safetx = load_transaction(data, TxKind.SAFETX)
    assert isinstance(safetx, SafeTx)
    assert safetx.operation == 1


@pytest.mark.parametrize(
    "data",
    [
        {},
        {"to": "0x1234"},
        {"to": DEAD, "value": "-1"},
        {"to": DEAD, "data": "hello"},
        {"to": DEAD, "value": str(2**256)},
        {"to": DEAD, "value": 1e18},
        {"to": DEAD, "safeNonce": 1.5},
    ],
)
def test_load_invalid_transaction(data: dict):
    with pytest.raises(InvalidConfig):
        load_transaction(data, TxKind.RAW)


def test_load_eip712_requires_message():
    with pytest.raises(InvalidConfig):
        load_transaction({"to": DEAD}, TxKind.EIP712)


def test_resolve_nonce_keeps_explicit_nonce():
    source = FakeNonceSource(nonce=10)
    safetx = SafeTx(to=DEAD, value=0, data=HexBytes(b""), nonce=3)
    assert resolve_nonce(SAFE, safetx, source) is safetx
    assert source.calls == []


def test_resolve_nonce_queries_source():
    source = FakeNonceSource(nonce=3)
    safetx = resolve_nonce(SAFE, to_safetx(TxIntent(to=DEAD)), source)
    assert safetx.nonce == 3
    assert source.calls == [SAFE.safe_address]


def test_resolve_nonce_without_source():
    with pytest.raises(NonceUnavailable):
        resolve_nonce(SAFE, to_safetx(TxIntent(to=DEAD)), None)


def test_resolve_nonce_rpc_failure():
    source = FakeNonceSource(error=RpcError("connection refused"))
    with pytest.raises(NonceUnavailable) as excinfo:
        resolve_nonce(SAFE, to_safetx(TxIntent(to=DEAD)), source)
    assert isinstance(excinfo.value.__cause__, RpcError)


def test_prepare_safetx():
    prepared = prepare_safetx(SAFE, TxIntent(to=DEAD), FakeNonceSource(nonce=3))
    assert prepared.safetx.nonce == 3
    assert prepared.hash.to_0x_hex() == GOLDEN_HASH


@pytest.mark.parametrize(
    "safe, intent",
    [
        (SAFE._replace(chain_id=0), TxIntent(to=DEAD, safe_nonce=3)),
        (SAFE._replace(safe_address="0x1234"), TxIntent(to=DEAD, safe_nonce=3)),
        (SAFE, SafeTx(to=DEAD, value=0, data=HexBytes(b""), operation=2, nonce=3)),
        (SAFE, TxIntent(to=DEAD, value=-1, safe_nonce=3)),
        (SAFE, TxIntent(to="0x1234", safe_nonce=3)),  # type: ignore[arg-type]
        (SAFE, TxIntent(to=DEAD, data="hello", safe_nonce=3)),  # type: ignore[arg-type]
    ],
)
def test_prepare_invalid_safetx(safe: Safe, intent):
    with pytest.raises(InvalidConfig):
        prepare_safetx(safe, intent)


def test_encode_exec_call():
    safetx = SafeTx(to=DEAD, value=7, data=HexBytes("0xabcd"), nonce=3)
    signatures = HexBytes(b"\x01" * 65)
    calldata = encode_exec_call(safetx, signatures)
    assert calldata[:4] == HexBytes(SAFE_EXEC_FUNC_SELECTOR)
    decoded = abi_decode(SAFE_EXEC_FUNC_TYPES, bytes(calldata[4:]))
    assert to_checksum_address(decoded[0]) == DEAD
    assert decoded[1] == 7
    assert decoded[2] == b"\xab\xcd"
    assert decoded[3:7] == (0, 0, 0, 0)
    assert decoded[9] == bytes(signatures)


# ┌─────────┐
# │ Signing │
# └─────────┘


def test_collect_signatures(recovery, owners):
    digest = HexBytes(GOLDEN_HASH)
    sigset = collect_signatures(digest, recovery=recovery, owners=owners)
    expected = sorted([recovery.address, *(o.address for o in owners)], key=str.lower)
    assert sigset.signers() == expected
    for sig in sigset:
        assert sig.data[-1] in (31, 32)


def test_collect_signatures_recovery_only(recovery):
    sigset = collect_signatures(HexBytes(GOLDEN_HASH), recovery=recovery)
    assert sigset.signers() == [recovery.address]


def test_collect_signatures_signs_concurrently(recovery, owners):
    barrier = threading.Barrier(len(owners) + 1, timeout=10)

    class BarrierAuthenticator:
        def __init__(self, auth):
            self.address = auth.address
            self._auth = auth

        def sign_transaction(self, params):
            raise NotImplementedError

        def sign_digest(self, digest: bytes) -> bytes:
            # Only completes if every signer runs at the same time.
            barrier.wait()
            return self._auth.sign_digest(digest)

    signers = [BarrierAuthenticator(auth) for auth in owners]
    sigset = collect_signatures(
        HexBytes(GOLDEN_HASH), recovery=BarrierAuthenticator(recovery), owners=signers
    )
    assert len(sigset) == len(owners) + 1


def test_collect_signatures_reports_every_failure(recovery):
    failing = [
        FailingAuthenticator(OWNER_KEYS[0], "first failure"),
        PrivateKeyAuthenticator(OWNER_KEYS[1]),
        FailingAuthenticator(OWNER_KEYS[2], "second failure"),
    ]
    with pytest.raises(SigningError) as excinfo:
        collect_signatures(HexBytes(GOLDEN_HASH), recovery=recovery, owners=failing)
    failures = excinfo.value.failures
    assert len(failures) == 2
    assert "first failure" in str(failures[0])
    assert "second failure" in str(failures[1])
    assert "2 of 4" in str(excinfo.value)


def test_collect_signatures_reports_malformed_signature(recovery):
    signers = [
        MalformedAuthenticator(OWNER_KEYS[0], v=0),
        FailingAuthenticator(OWNER_KEYS[1], "unplugged"),
    ]
    with pytest.raises(SigningError) as excinfo:
        collect_signatures(HexBytes(GOLDEN_HASH), recovery=recovery, owners=signers)
    failures = excinfo.value.failures
    assert len(failures) == 2
    assert "invalid signature" in str(failures[0])
    assert isinstance(failures[0].__cause__, InvalidSignature)
    assert "unplugged" in str(failures[1])


def test_collect_signatures_duplicate_signer(recovery):
    with pytest.raises(DuplicateSigner):
        collect_signatures(
            HexBytes(GOLDEN_HASH),
            recovery=recovery,
            owners=[PrivateKeyAuthenticator(RECOVERY_KEY)],
        )


def test_collect_signatures_with_presigned(recovery, owners):
    digest = HexBytes(GOLDEN_HASH)
    presigned = [
        sign_digest(owners[0], digest),
        make_approval_signature(owners[1].address),
    ]
    sigset = collect_signatures(digest, recovery=recovery, presigned=presigned)
    assert len(sigset) == 3
    assert owners[0].address in sigset
    assert owners[1].address in sigset


def test_collect_signatures_presigned_wrong_signer(recovery, owners):
    digest = HexBytes(GOLDEN_HASH)
    forged = sign_digest(owners[0], digest)._replace(signer=owners[1].address)
    with pytest.raises(InvalidSignature):
        collect_signatures(digest, recovery=recovery, presigned=[forged])


def test_collect_signatures_presigned_duplicates_recovery(recovery):
    digest = HexBytes(GOLDEN_HASH)
    with pytest.raises(DuplicateSigner):
        collect_signatures(
            digest,
            recovery=recovery,
            presigned=[sign_digest(recovery, digest)],
        )


def test_sign_only(recovery):
    sig = sign_only(SAFE, TxIntent(to=DEAD, safe_nonce=3), auth=recovery)
    assert sig.signer == recovery.address
    sigset_sig = sign_digest(recovery, HexBytes(GOLDEN_HASH))
    assert sig == sigset_sig


def test_sign_only_without_nonce(recovery):
    with pytest.raises(NonceUnavailable):
        sign_only(SAFE, TxIntent(to=DEAD), auth=recovery)


# ┌───────────┐
# │ Execution │
# └───────────┘


def test_build_and_execute(recovery, owners):
    broadcaster = FakeBroadcaster()
    tx_hash = build_and_execute(
        SAFE,
        TxIntent(to=DEAD),
        recovery=recovery,
        owners=owners[:1],
        nonce_source=FakeNonceSource(nonce=3),
        broadcaster=broadcaster,
    )
    assert tx_hash == HexBytes(b"\x42" * 32)
    assert len(broadcaster.requests) == 1
    request = broadcaster.requests[0]
    assert request.to == SAFE.safe_address
    assert request.value == 0
    assert request.data[:4] == HexBytes(SAFE_EXEC_FUNC_SELECTOR)

    decoded = abi_decode(SAFE_EXEC_FUNC_TYPES, bytes(request.data[4:]))
    signatures = decoded[9]
    assert len(signatures) == 65 * 2
    expected = sorted([recovery.address, owners[0].address], key=str.lower)
    digest = HexBytes(GOLDEN_HASH)
    by_signer = {
        recovery.address: sign_digest(recovery, digest),
        owners[0].address: sign_digest(owners[0], digest),
    }
    assert signatures == b"".join(bytes(by_signer[a].data) for a in expected)


def test_build_and_execute_aborts_on_signing_failure(recovery):
    broadcaster = FakeBroadcaster()
    with pytest.raises(SigningError):
        build_and_execute(
            SAFE,
            TxIntent(to=DEAD, safe_nonce=3),
            recovery=recovery,
            owners=[FailingAuthenticator(OWNER_KEYS[0], "rejected")],
            broadcaster=broadcaster,
        )
    assert broadcaster.requests == []


def test_build_and_execute_aborts_without_nonce(recovery):
    broadcaster = FakeBroadcaster()
    with pytest.raises(NonceUnavailable):
        build_and_execute(
            SAFE,
            TxIntent(to=DEAD),
            recovery=recovery,
            nonce_source=FakeNonceSource(error=RpcError("timeout")),
            broadcaster=broadcaster,
        )
    assert broadcaster.requests == []


def test_approve_hash(recovery):
    broadcaster = FakeBroadcaster()
    approval = approve_hash(
        SAFE,
        TxIntent(to=DEAD, safe_nonce=3),
        owner=recovery.address,
        broadcaster=broadcaster,
    )
    assert approval.tx_hash == HexBytes(b"\x42" * 32)
    assert approval.signature == make_approval_signature(recovery.address)
    (request,) = broadcaster.requests
    assert request.to == SAFE.safe_address
    assert request.data == HexBytes(
        HexBytes(SAFE_APPROVE_HASH_FUNC_SELECTOR) + HexBytes(GOLDEN_HASH)
    )
