import secrets
from typing import Optional

import click

from .codec import to_int
from .console import SAFE_DEBUG, activate_logging
from .constants import (
    DEFAULT_FALLBACK_ADDRESS,
    DEFAULT_PROXYFACTORY_ADDRESS,
    DEFAULT_SAFE_SINGLETON_ADDRESS,
    DEFAULT_SAFEL2_SINGLETON_ADDRESS,
    SALT_NONCE_SENTINEL,
)
from .models import AccountConfig, Safe
from .util import is_address, to_checksum_address, with_recovery_owner


def verbose_callback(
    ctx: click.Context, opt: click.Option, value: Optional[bool]
) -> None:
    if value and not SAFE_DEBUG:
        activate_logging()


def validate_address(value: str, name: str):
    if not is_address(value):
        raise click.ClickException(f"Invalid {name} address '{value}'.")
    return to_checksum_address(value)


def validate_salt_nonce(salt_nonce: str) -> int:
    if salt_nonce == SALT_NONCE_SENTINEL:
        return secrets.randbits(256)
    try:
        return to_int(salt_nonce)
    except ValueError as exc:
        raise click.ClickException(f"Invalid salt nonce '{salt_nonce}'.") from exc


def validate_deploy_options(
    *,
    chain_id: Optional[int],
    chain_specific: bool,
    custom_proxy_factory: Optional[str],
    custom_singleton: Optional[str],
    fallback: Optional[str],
    owners: list[str],
    recovery_owner: Optional[str],
    salt_nonce: str,
    threshold: int,
    without_events: bool,
) -> AccountConfig:
    if chain_specific and chain_id is None:
        raise click.ClickException("Missing --chain-id for chain-specific address.")
    if not chain_specific and chain_id is not None:
        raise click.ClickException("The --chain-id option needs --chain-specific.")
    if custom_singleton is not None:
        singleton = validate_address(custom_singleton, "singleton")
    elif without_events:
        singleton = to_checksum_address(DEFAULT_SAFE_SINGLETON_ADDRESS)
    else:
        singleton = to_checksum_address(DEFAULT_SAFEL2_SINGLETON_ADDRESS)
    config = AccountConfig(
        proxy_factory=validate_address(
            custom_proxy_factory or DEFAULT_PROXYFACTORY_ADDRESS, "proxy factory"
        ),
        singleton=singleton,
        salt_nonce=validate_salt_nonce(salt_nonce),
        chain_id=chain_id,
        owners=tuple(validate_address(owner, "owner") for owner in owners),
        threshold=threshold,
        fallback=validate_address(fallback or DEFAULT_FALLBACK_ADDRESS, "fallback"),
    )
    if recovery_owner is not None:
        config = with_recovery_owner(config, recovery_owner)
    return config


def validate_safe_options(safe_address: str, chain_id: int) -> Safe:
    return Safe(
        safe_address=validate_address(safe_address, "Safe"),
        chain_id=chain_id,
    )
