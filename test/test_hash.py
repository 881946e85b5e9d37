import pytest
from eth_utils.crypto import keccak
from eth_utils.address import to_checksum_address
from hexbytes import HexBytes
from safe_cosign.exceptions import NonceUnavailable
from safe_cosign.models import Safe, SafeTx, TxKind
from safe_cosign.workflows import load_transaction, reconstruct_safetx

SAFE = Safe(
    safe_address=to_checksum_address("0xb6e46b8Ad163C68d736Ec4199F43033B43379c70"),
    chain_id=1,
)
DEAD = to_checksum_address("0x000000000000000000000000000000000000dEaD")
SAFETX = SafeTx(to=DEAD, value=0, data=HexBytes(b""), nonce=3)

GOLDEN_HASH = "0xee9cb87bb8d928142dbb0745dd71fc91ec103ade601dfe631d744d875c400bf1"
GOLDEN_DOMAIN_SEPARATOR = (
    "1bd911f27b3af13a3133759c62fbc9d80406c383eacf85b2f117d2834e168bea"
)
GOLDEN_STRUCT_HASH = "686ed4feccfa32972e07e99249756bd766e16b9e85ae67a383b7b41f688d7a0a"


def test_golden_hash():
    assert SAFETX.hash(SAFE).to_0x_hex() == GOLDEN_HASH


def test_preimage_layout():
    preimage = SAFETX.preimage(SAFE)
    assert len(preimage) == 66
    assert preimage[:2] == b"\x19\x01"
    assert preimage[2:34].hex() == GOLDEN_DOMAIN_SEPARATOR
    assert preimage[34:].hex() == GOLDEN_STRUCT_HASH
    assert HexBytes(keccak(preimage)) == SAFETX.hash(SAFE)


def test_hash_is_deterministic():
    assert SAFETX.hash(SAFE) == SAFETX._replace().hash(SAFE)


def test_nonce_changes_hash():
    safetx = SAFETX._replace(nonce=4)
    assert safetx.hash(SAFE).to_0x_hex() == (
        "0x0cf9e13d8240d766dc94d1bb9fc241b9c7df927b7c84a67cac7e39db18139437"
    )


def test_chain_id_changes_hash():
    safe = SAFE._replace(chain_id=11155111)
    assert SAFETX.hash(safe).to_0x_hex() == (
        "0xceeb6cdbf63910477dc7d66c524ac116d6660e8d0818bbb69463e7b87f1df0bf"
    )


@pytest.mark.parametrize(
    "changes",
    [
        dict(to=to_checksum_address("0x000000000000000000000000000000000000bEEF")),
        dict(value=1),
        dict(data=HexBytes("0x00")),
        dict(operation=1),
        dict(safe_tx_gas=1),
        dict(base_gas=1),
        dict(gas_price=1),
        dict(gas_token=DEAD),
        dict(refund_receiver=DEAD),
    ],
)
def test_every_field_changes_hash(changes: dict):
    safetx = SAFETX._replace(**changes)
    assert safetx.hash(SAFE) != SAFETX.hash(SAFE)
    assert HexBytes(keccak(safetx.preimage(SAFE))) == safetx.hash(SAFE)


def test_safe_address_changes_hash():
    safe = SAFE._replace(safe_address=DEAD)
    assert SAFETX.hash(safe) != SAFETX.hash(SAFE)


def test_missing_nonce():
    safetx = SAFETX._replace(nonce=None)
    with pytest.raises(NonceUnavailable):
        safetx.hash(SAFE)
    with pytest.raises(NonceUnavailable):
        safetx.preimage(SAFE)


def test_eip712_message_roundtrip():
    typed_data = SAFETX.to_eip712_message(SAFE)
    assert typed_data["primaryType"] == "SafeTx"
    assert typed_data["message"]["data"] == "0x"
    prepared = reconstruct_safetx(typed_data)
    assert prepared.safe == SAFE
    assert prepared.safetx == SAFETX
    assert prepared.hash.to_0x_hex() == GOLDEN_HASH


def test_load_safetx_with_legacy_data_gas():
    safetx = load_transaction(
        {
            "to": DEAD.lower(),
            "value": "0",
            "data": "0x",
            "operation": 0,
            "safeTxGas": 0,
            "dataGas": "0x0",
            "gasPrice": 0,
            "nonce": "3",
        },
        TxKind.SAFETX,
    )
    assert safetx == SAFETX
    assert safetx.hash(SAFE).to_0x_hex() == GOLDEN_HASH
