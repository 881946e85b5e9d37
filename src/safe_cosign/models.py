import dataclasses
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    NamedTuple,
    Optional,
    cast,
)

from hexbytes import (
    HexBytes,
)

from .constants import (
    DEFAULT_BASE_GAS,
    DEFAULT_GAS_PRICE,
    DEFAULT_GAS_TOKEN,
    DEFAULT_OPERATION,
    DEFAULT_REFUND_RECEIVER,
    DEFAULT_SAFE_TX_GAS,
    DOMAIN_SEPARATOR_TYPEHASH,
    EIP712_SAFE_TX_TYPES,
    NOOP_ADDRESS,
    SAFE_TX_TYPEHASH,
)
from .exceptions import NonceUnavailable

if TYPE_CHECKING:
    from eth_typing import ChecksumAddress


class SafeOperation(Enum):
    CALL = 0
    DELEGATECALL = 1


class SafeVariant(Enum):
    SAFE = 1
    SAFE_L2 = 2
    UNKNOWN = 3


class TxKind(Enum):
    """How a transaction file is to be read."""

    RAW = "raw"
    SAFETX = "safetx"
    EIP712 = "eip712"


class InitializerAction(NamedTuple):
    """Optional delegate call and payment performed by `Safe.setup()`."""

    to: "ChecksumAddress" = cast("ChecksumAddress", NOOP_ADDRESS)
    data: HexBytes = HexBytes(b"")
    payment_token: "ChecksumAddress" = cast("ChecksumAddress", NOOP_ADDRESS)
    payment: int = 0
    payment_receiver: "ChecksumAddress" = cast("ChecksumAddress", NOOP_ADDRESS)


@dataclasses.dataclass(frozen=True, kw_only=True)
class AccountConfig:
    # deployment
    proxy_factory: "ChecksumAddress"
    singleton: "ChecksumAddress"
    salt_nonce: int
    chain_id: Optional[int] = None
    # initialization
    owners: tuple["ChecksumAddress", ...]
    threshold: int
    fallback: "ChecksumAddress"
    initializer: InitializerAction = InitializerAction()


class Safe(NamedTuple):
    safe_address: "ChecksumAddress"
    chain_id: int


class TxIntent(NamedTuple):
    """A plain transaction the Safe should perform."""

    to: "ChecksumAddress"
    value: int = 0
    data: HexBytes = HexBytes(b"")
    safe_nonce: Optional[int] = None


class SafeTx(NamedTuple):
    to: "ChecksumAddress"
    value: int
    data: HexBytes
    operation: int = DEFAULT_OPERATION
    safe_tx_gas: int = DEFAULT_SAFE_TX_GAS
    base_gas: int = DEFAULT_BASE_GAS
    gas_price: int = DEFAULT_GAS_PRICE
    gas_token: "ChecksumAddress" = cast("ChecksumAddress", DEFAULT_GAS_TOKEN)
    refund_receiver: "ChecksumAddress" = cast(
        "ChecksumAddress", DEFAULT_REFUND_RECEIVER
    )
    nonce: Optional[int] = None

    def _require_nonce(self) -> int:
        if self.nonce is None:
            raise NonceUnavailable("SafeTx nonce has not been resolved.")
        return self.nonce

    def _eip712_message(self, safe: "Safe") -> dict[str, Any]:
        return {
            "types": EIP712_SAFE_TX_TYPES,
            "primaryType": "SafeTx",
            "domain": {
                "chainId": safe.chain_id,
                "verifyingContract": safe.safe_address,
            },
            "message": {
                "to": self.to,
                "value": self.value,
                "data": self.data,
                "operation": self.operation,
                "safeTxGas": self.safe_tx_gas,
                "baseGas": self.base_gas,
                "gasPrice": self.gas_price,
                "gasToken": self.gas_token,
                "refundReceiver": self.refund_receiver,
                "nonce": self._require_nonce(),
            },
        }

    def hash(
        self,
        safe: "Safe",
    ) -> HexBytes:
        from .util import hash_eip712_data

        return hash_eip712_data(self._eip712_message(safe))

    def preimage(
        self,
        safe: "Safe",
    ) -> HexBytes:
        """Return `0x19 || 0x01 || domainSeparator || safeTxHash`."""
        from eth_abi.abi import encode as abi_encode
        from eth_utils.crypto import keccak

        domain_separator = keccak(
            abi_encode(
                ("bytes32", "uint256", "address"),
                (
                    HexBytes(DOMAIN_SEPARATOR_TYPEHASH),
                    safe.chain_id,
                    safe.safe_address,
                ),
            )
        )
        struct_hash = keccak(
            abi_encode(
                (
                    "bytes32",
                    "address",
                    "uint256",
                    "bytes32",
                    "uint8",
                    "uint256",
                    "uint256",
                    "uint256",
                    "address",
                    "address",
                    "uint256",
                ),
                (
                    HexBytes(SAFE_TX_TYPEHASH),
                    self.to,
                    self.value,
                    keccak(self.data),
                    self.operation,
                    self.safe_tx_gas,
                    self.base_gas,
                    self.gas_price,
                    self.gas_token,
                    self.refund_receiver,
                    self._require_nonce(),
                ),
            )
        )
        return HexBytes(b"\x19\x01" + domain_separator + struct_hash)

    def to_eip712_message(
        self,
        safe: "Safe",
    ) -> dict[str, Any]:
        typed_data = self._eip712_message(safe)
        typed_data["message"]["data"] = self.data.to_0x_hex()
        return typed_data


class PreparedSafeTx(NamedTuple):
    safe: Safe
    safetx: SafeTx
    hash: HexBytes


class Signature(NamedTuple):
    signer: "ChecksumAddress"
    data: HexBytes

    def to_json_dict(self) -> dict[str, str]:
        return {"signer": self.signer, "data": self.data.to_0x_hex()}


class ExecutionRequest(NamedTuple):
    to: "ChecksumAddress"
    data: HexBytes
    value: int = 0


class Web3TxOptions(NamedTuple):
    chain_id: Optional[int] = None
    gas_limit: Optional[int] = None
    nonce: Optional[int] = None
    max_fee: Optional[int] = None
    max_pri_fee: Optional[int] = None
