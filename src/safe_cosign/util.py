import dataclasses
import logging
from decimal import Decimal, localcontext
from typing import (
    TYPE_CHECKING,
    Any,
    Iterable,
    Optional,
    cast,
)

from hexbytes import (
    HexBytes,
)

from .codec import UINT256_MAX
from .constants import (
    PROXY_FACTORY_CREATE_CHAIN_SPECIFIC_FUNC_SELECTOR,
    PROXY_FACTORY_CREATE_FUNC_SELECTOR,
    PROXY_FACTORY_CREATE_FUNC_TYPES,
    SAFE_SETUP_FUNC_SELECTOR,
    SAFE_SETUP_FUNC_TYPES,
)
from .exceptions import InvalidConfig
from .models import (
    AccountConfig,
    ExecutionRequest,
    InitializerAction,
    Web3TxOptions,
)

if TYPE_CHECKING:
    from eth_account.datastructures import SignedTransaction
    from eth_typing import ChecksumAddress, HexStr
    from web3 import Web3
    from web3.types import Nonce, TxParams, Wei

logger = logging.getLogger(__name__)


def is_address(value: object) -> bool:
    from eth_utils.address import is_address

    return isinstance(value, str) and is_address(value)


def is_uint(value: object) -> bool:
    """Whether `value` is an int (not a bool) that fits in a uint256."""
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 0 <= value <= UINT256_MAX
    )


def sort_addresses(addresses: Iterable[str]) -> list["ChecksumAddress"]:
    """Sort addresses the way the Safe contracts expect owners and signers:
    ascending, ignoring case."""
    return [
        to_checksum_address(address)
        for address in sorted(addresses, key=lambda address: address.lower())
    ]


def validate_account_config(config: AccountConfig) -> None:
    owners = config.owners
    if not owners:
        raise InvalidConfig("At least one owner is required.")
    for owner in owners:
        if not is_address(owner):
            raise InvalidConfig(f"Invalid owner address '{owner}'.")
    if len({owner.lower() for owner in owners}) != len(owners):
        raise InvalidConfig("Duplicate owner address.")
    if not is_uint(config.threshold) or not 1 <= config.threshold <= len(owners):
        raise InvalidConfig(
            f"Invalid threshold {config.threshold} for {len(owners)} owner(s)."
        )
    for name, address in (
        ("singleton", config.singleton),
        ("proxy factory", config.proxy_factory),
    ):
        if not is_address(address) or int(address, 16) == 0:
            raise InvalidConfig(f"Invalid {name} address '{address}'.")
    for name, address in (
        ("fallback handler", config.fallback),
        ("initializer target", config.initializer.to),
        ("payment token", config.initializer.payment_token),
        ("payment receiver", config.initializer.payment_receiver),
    ):
        if not is_address(address):
            raise InvalidConfig(f"Invalid {name} address '{address}'.")
    if not is_uint(config.salt_nonce):
        raise InvalidConfig(f"Invalid salt nonce {config.salt_nonce!r}.")
    if not is_uint(config.initializer.payment):
        raise InvalidConfig(f"Invalid payment amount {config.initializer.payment!r}.")
    if config.chain_id is not None and (
        not is_uint(config.chain_id) or config.chain_id == 0
    ):
        raise InvalidConfig(f"Invalid chain ID {config.chain_id!r}.")


def encode_setup_call(
    *,
    owners: Iterable[str],
    threshold: int,
    fallback: str,
    initializer: InitializerAction,
) -> HexBytes:
    """Encode the `Safe.setup()` call with owners in sorted order."""
    from eth_abi.abi import encode as abi_encode

    setup_args = abi_encode(
        SAFE_SETUP_FUNC_TYPES,
        (
            sort_addresses(owners),
            threshold,
            initializer.to,
            bytes(initializer.data),
            fallback,
            initializer.payment_token,
            initializer.payment,
            initializer.payment_receiver,
        ),
    )
    return HexBytes(HexBytes(SAFE_SETUP_FUNC_SELECTOR) + setup_args)


def compute_safe_address(
    *,
    chain_id: Optional[int],
    fallback: "ChecksumAddress",
    owners: Iterable["ChecksumAddress"],
    proxy_factory: "ChecksumAddress",
    salt_nonce: int,
    singleton: "ChecksumAddress",
    threshold: int,
    initializer_action: InitializerAction = InitializerAction(),
) -> tuple[HexBytes, "ChecksumAddress"]:
    """Compute Safe address via SafeProxyFactory v1.4.1."""
    from eth_abi.packed import encode_packed
    from eth_utils.crypto import keccak
    from safe_eth.eth.contracts import load_contract_interface
    from web3.utils.address import get_create2_address

    initializer = encode_setup_call(
        owners=owners,
        threshold=threshold,
        fallback=fallback,
        initializer=initializer_action,
    )
    if chain_id is None:
        # bytes32 salt = keccak256(abi.encodePacked(keccak256(initializer), saltNonce));
        salt_preimage = encode_packed(
            (
                "bytes32",
                "uint256",
            ),
            (
                keccak(initializer),
                salt_nonce,
            ),
        )
    else:
        # bytes32 salt = keccak256(abi.encodePacked(keccak256(initializer), saltNonce, getChainId()));
        salt_preimage = encode_packed(
            (
                "bytes32",
                "uint256",
                "uint256",
            ),
            (
                keccak(initializer),
                salt_nonce,
                chain_id,
            ),
        )
    salt = keccak(salt_preimage)

    bytecode = HexBytes(load_contract_interface("Proxy_V1_4_1.json")["bytecode"])
    deployment_data = encode_packed(
        ["bytes", "uint256"], [bytecode, int(singleton, 16)]
    )
    address = get_create2_address(
        proxy_factory,
        cast("HexStr", HexBytes(salt).to_0x_hex()),
        cast("HexStr", HexBytes(deployment_data).to_0x_hex()),
    )
    logger.debug(f"Computed Safe address {address} (salt nonce {salt_nonce})")
    return (initializer, to_checksum_address(address))


def derive_address(config: AccountConfig) -> "ChecksumAddress":
    """Compute the address a Safe account will be deployed to."""
    validate_account_config(config)
    _, address = compute_safe_address(
        chain_id=config.chain_id,
        fallback=config.fallback,
        owners=config.owners,
        proxy_factory=config.proxy_factory,
        salt_nonce=config.salt_nonce,
        singleton=config.singleton,
        threshold=config.threshold,
        initializer_action=config.initializer,
    )
    return address


def encode_create_proxy_call(config: AccountConfig) -> ExecutionRequest:
    """Build the SafeProxyFactory call that deploys the Safe account."""
    from eth_abi.abi import encode as abi_encode

    validate_account_config(config)
    initializer = encode_setup_call(
        owners=config.owners,
        threshold=config.threshold,
        fallback=config.fallback,
        initializer=config.initializer,
    )
    selector = (
        PROXY_FACTORY_CREATE_FUNC_SELECTOR
        if config.chain_id is None
        else PROXY_FACTORY_CREATE_CHAIN_SPECIFIC_FUNC_SELECTOR
    )
    calldata = HexBytes(selector) + abi_encode(
        PROXY_FACTORY_CREATE_FUNC_TYPES,
        (config.singleton, bytes(initializer), config.salt_nonce),
    )
    return ExecutionRequest(to=config.proxy_factory, data=HexBytes(calldata))


def with_recovery_owner(
    config: AccountConfig, recovery_address: str
) -> AccountConfig:
    """Return a copy of `config` that includes the recovery owner."""
    if not is_address(recovery_address):
        raise InvalidConfig(f"Invalid recovery address '{recovery_address}'.")
    if recovery_address.lower() in {owner.lower() for owner in config.owners}:
        return config
    return dataclasses.replace(
        config,
        owners=(*config.owners, to_checksum_address(recovery_address)),
    )


def format_native_value(value: "Wei", symbol: str = "ETH", decimals: int = 18) -> str:
    with localcontext() as ctx:
        ctx.prec = 78
        converted = Decimal(value).scaleb(-decimals).normalize()
    return f"{converted:,f} {symbol}"


def format_gwei_value(value: "Wei", units: tuple[str, str] = ("Wei", "Gwei")) -> str:
    from eth_utils.currency import denoms

    with localcontext() as ctx:
        ctx.prec = 78
        converted = (Decimal(value) / denoms.gwei).normalize()
    wei, gwei = units
    return f"{value} {wei} ({converted:f} {gwei})"


def hexbytes_json_encoder(obj: Any):
    if isinstance(obj, HexBytes):
        return obj.to_0x_hex()
    raise TypeError(f"Cannot serialize object of {type(obj)}")


def hash_eip712_data(data: Any) -> HexBytes:  # using eth_account
    """Compute EIP-712 typed data hash.

    This replicates `eth_account.account.sign_typed_data()` except it
    doesn't require a private key.
    """
    from eth_account.messages import (
        _hash_eip191_message,  # pyright: ignore[reportPrivateUsage]
        encode_typed_data,
    )

    encoded = encode_typed_data(full_message=data)
    return HexBytes(_hash_eip191_message(encoded))


def make_web3tx(
    w3: "Web3",
    *,
    from_: "ChecksumAddress",
    to: "ChecksumAddress",
    txopts: "Web3TxOptions",
    data: "bytes | HexStr",
    value: "Wei",
) -> "TxParams":
    from web3.types import TxParams

    if (chain_id := txopts.chain_id) is None:
        chain_id = w3.eth.chain_id
    if (gas_limit := txopts.gas_limit) is None:
        gas_limit = w3.eth.estimate_gas(
            {"from": from_, "to": to, "data": data, "value": value}
        )
    if (nonce := txopts.nonce) is None:
        nonce = w3.eth.get_transaction_count(from_, block_identifier="pending")
    if (max_pri_fee := txopts.max_pri_fee) is None:
        max_pri_fee = w3.eth.max_priority_fee
    if (max_fee := txopts.max_fee) is None:
        block = w3.eth.get_block("latest")
        assert "baseFeePerGas" in block
        max_fee = (2 * block["baseFeePerGas"]) + max_pri_fee
    tx = TxParams(
        type=2,
        to=to,
        chainId=chain_id,
        gas=gas_limit,
        nonce=cast("Nonce", nonce),
        maxFeePerGas=cast("Wei", max_fee),
        maxPriorityFeePerGas=cast("Wei", max_pri_fee),
        data=data,
        value=value,
    )
    logger.info(f"Created Web3Tx: {tx}")
    return tx


def scale_decimal_value(value: str, decimals: int) -> int:
    scaled_value = int(Decimal(value).scaleb(decimals))
    logger.debug(f"Scaled value '{value}' to '{scaled_value}' ({decimals} decimals)")
    return scaled_value


def signed_tx_to_dict(signed_tx: "SignedTransaction") -> dict[str, str]:
    res: dict[str, str] = {}
    for key, val in signed_tx._asdict().items():
        if isinstance(val, HexBytes):
            res[key] = val.to_0x_hex()
        else:
            res[key] = val
    return res


def to_checksum_address(address: str) -> "ChecksumAddress":
    from eth_utils.address import to_checksum_address

    return to_checksum_address(address)
