import dataclasses

import pytest
from eth_utils.address import to_checksum_address
from hexbytes import HexBytes
from safe_cosign.constants import (
    DEFAULT_FALLBACK_ADDRESS,
    DEFAULT_PROXYFACTORY_ADDRESS,
    DEFAULT_SAFE_SINGLETON_ADDRESS,
    DEFAULT_SAFEL2_SINGLETON_ADDRESS,
    PROXY_FACTORY_CREATE_CHAIN_SPECIFIC_FUNC_SELECTOR,
    PROXY_FACTORY_CREATE_FUNC_SELECTOR,
    SAFE_SETUP_FUNC_SELECTOR,
)
from safe_cosign.exceptions import InvalidConfig
from safe_cosign.models import AccountConfig, InitializerAction
from safe_cosign.util import (
    compute_safe_address,
    derive_address,
    encode_create_proxy_call,
    encode_setup_call,
    with_recovery_owner,
)
from web3.constants import CHECKSUM_ADDRESSS_ZERO

OWNER_A = to_checksum_address("0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa1")
OWNER_B = to_checksum_address("0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb2")
OWNER_C = to_checksum_address("0xccccccccccccccccccccccccccccccccccccccc3")


@pytest.fixture
def config() -> AccountConfig:
    return AccountConfig(
        proxy_factory=to_checksum_address(DEFAULT_PROXYFACTORY_ADDRESS),
        singleton=to_checksum_address(DEFAULT_SAFEL2_SINGLETON_ADDRESS),
        salt_nonce=7,
        owners=(OWNER_A, OWNER_B),
        threshold=2,
        fallback=to_checksum_address(DEFAULT_FALLBACK_ADDRESS),
    )


def test_happy_path():
    owner = to_checksum_address("0xdeadbeef00000000000000000000000000000000")
    params = dict(
        proxy_factory=to_checksum_address(DEFAULT_PROXYFACTORY_ADDRESS),
        singleton=to_checksum_address(DEFAULT_SAFEL2_SINGLETON_ADDRESS),
        salt_nonce=0,
        owners=[owner],
        threshold=1,
        fallback=to_checksum_address(DEFAULT_FALLBACK_ADDRESS),
        chain_id=None,
    )
    _, address = compute_safe_address(**params)
    assert address == "0x1B751A15d6aEd26aC3e2A5320548F390ccE76ED2"

    params.update(
        singleton=to_checksum_address(DEFAULT_SAFE_SINGLETON_ADDRESS),
    )
    _, address = compute_safe_address(**params)
    assert address == "0x09e5830Fdf94340474B54fCDE0F3A2d408Df56DE"

    params.update(salt_nonce=123)
    _, address = compute_safe_address(**params)
    assert address == "0x06bA263c7Fd42Ac736e7b782540693696Cf7D9Ec"

    params.update(chain_id=1)
    _, address = compute_safe_address(**params)
    assert address == "0x5381010Eb5716fda6f37B56655edebFEe57C5e38"


def test_derive_address(config: AccountConfig):
    assert derive_address(config) == "0x51f92044B2A5217a378604ff69FE5D43e462cf40"


def test_derive_address_is_deterministic(config: AccountConfig):
    assert derive_address(config) == derive_address(dataclasses.replace(config))


def test_salt_nonce_changes_address(config: AccountConfig):
    address = derive_address(dataclasses.replace(config, salt_nonce=8))
    assert address == "0x958A3f03ddfab98db00ABE0E00f5fe24C3E42163"


def test_chain_specific_address(config: AccountConfig):
    address = derive_address(dataclasses.replace(config, chain_id=1))
    assert address == "0x32A11090d3E73D085213B75c0aF5F550BA0a75f7"


def test_singleton_changes_address(config: AccountConfig):
    address = derive_address(
        dataclasses.replace(
            config, singleton=to_checksum_address(DEFAULT_SAFE_SINGLETON_ADDRESS)
        )
    )
    assert address == "0x904C68d16339dE4aC61Ff44A301ef205b31Ec39d"


def test_owner_order_does_not_matter(config: AccountConfig):
    reordered = dataclasses.replace(config, owners=(OWNER_B, OWNER_A))
    assert derive_address(reordered) == derive_address(config)
    lowercase = dataclasses.replace(
        config, owners=(OWNER_B.lower(), OWNER_A.lower())
    )
    assert derive_address(lowercase) == derive_address(config)


def test_initializer_changes_address(config: AccountConfig):
    action = InitializerAction(to=OWNER_C, data=HexBytes("0x1234"))
    address = derive_address(dataclasses.replace(config, initializer=action))
    assert address != derive_address(config)


def test_address_is_checksummed(config: AccountConfig):
    address = derive_address(config)
    assert address == to_checksum_address(address.lower())


def test_setup_call_sorts_owners():
    setup_ab = encode_setup_call(
        owners=[OWNER_A, OWNER_B],
        threshold=2,
        fallback=to_checksum_address(DEFAULT_FALLBACK_ADDRESS),
        initializer=InitializerAction(),
    )
    setup_ba = encode_setup_call(
        owners=[OWNER_B, OWNER_A],
        threshold=2,
        fallback=to_checksum_address(DEFAULT_FALLBACK_ADDRESS),
        initializer=InitializerAction(),
    )
    assert setup_ab == setup_ba
    assert setup_ab[:4] == HexBytes(SAFE_SETUP_FUNC_SELECTOR)


@pytest.mark.parametrize(
    "changes",
    [
        dict(owners=()),
        dict(owners=(OWNER_A, "0x1234")),
        dict(owners=(OWNER_A, OWNER_A.lower())),
        dict(threshold=0),
        dict(threshold=3),
        dict(singleton=CHECKSUM_ADDRESSS_ZERO),
        dict(proxy_factory=CHECKSUM_ADDRESSS_ZERO),
        dict(fallback="not an address"),
        dict(salt_nonce=-1),
        dict(salt_nonce=2**256),
        dict(salt_nonce=True),
        dict(threshold=True),
        dict(chain_id=0),
        dict(chain_id=True),
        dict(chain_id="1"),
        dict(initializer=InitializerAction(payment=True)),
        dict(initializer=InitializerAction(payment="100")),
    ],
)
def test_invalid_config(config: AccountConfig, changes: dict):
    with pytest.raises(InvalidConfig):
        derive_address(dataclasses.replace(config, **changes))


def test_with_recovery_owner(config: AccountConfig):
    recovered = with_recovery_owner(config, OWNER_C.lower())
    assert recovered.owners == (OWNER_A, OWNER_B, OWNER_C)
    assert recovered.threshold == config.threshold
    assert derive_address(recovered) == "0x7605e85e969Faf81523Fd4cCFFCD8733BAC6187b"


def test_with_recovery_owner_already_owner(config: AccountConfig):
    assert with_recovery_owner(config, OWNER_B.lower()) is config


def test_with_invalid_recovery_owner(config: AccountConfig):
    with pytest.raises(InvalidConfig):
        with_recovery_owner(config, "0xdead")


def test_create_proxy_call(config: AccountConfig):
    from eth_abi.abi import decode as abi_decode

    request = encode_create_proxy_call(config)
    assert request.to == config.proxy_factory
    assert request.value == 0
    assert request.data[:4] == HexBytes(PROXY_FACTORY_CREATE_FUNC_SELECTOR)
    singleton, initializer, salt_nonce = abi_decode(
        ["address", "bytes", "uint256"], bytes(request.data[4:])
    )
    assert to_checksum_address(singleton) == config.singleton
    assert salt_nonce == 7
    initializer_expected, _ = compute_safe_address(
        chain_id=None,
        fallback=config.fallback,
        owners=config.owners,
        proxy_factory=config.proxy_factory,
        salt_nonce=config.salt_nonce,
        singleton=config.singleton,
        threshold=config.threshold,
    )
    assert initializer == bytes(initializer_expected)


def test_create_chain_specific_proxy_call(config: AccountConfig):
    request = encode_create_proxy_call(dataclasses.replace(config, chain_id=1))
    assert request.data[:4] == HexBytes(
        PROXY_FACTORY_CREATE_CHAIN_SPECIFIC_FUNC_SELECTOR
    )
