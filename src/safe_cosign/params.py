import dataclasses
from typing import Any, Callable, Iterable, Optional, TypeVar, Union

import click
from click import Command
from click_option_group import RequiredMutuallyExclusiveOptionGroup
from click_option_group._decorators import (
    _OptGroup,  # pyright: ignore[reportPrivateUsage]
)

from .constants import DEPLOY_SAFE_VERSION, SALT_NONCE_SENTINEL
from .models import TxKind
from .validation import verbose_callback

FC = TypeVar("FC", bound=Callable[..., Any] | Command)

Decorator = Callable[[FC], FC]

optgroup = _OptGroup()

# ┌─────────────┐
# │ Option Info │
# └─────────────┘


@dataclasses.dataclass(kw_only=True)
class OptionInfo:
    args: Iterable[str]
    help: str
    # defaults should match click.Option
    metavar: Optional[str] = None
    type: Optional[Union[click.types.ParamType, Any]] = None


def make_option(
    option: OptionInfo, cls: Decorator[Any] = click.option, **overrides: Any
) -> Decorator[FC]:
    info = dataclasses.asdict(option)
    info.update(**overrides)
    args = info.pop("args")
    return cls(*args, **info)


chain_id_option_info = OptionInfo(
    args=["--chain-id"],
    help="the chain ID to use",
    type=int,
    metavar="ID",
)

# ┌─────────┐
# │ Options │
# └─────────┘


def authentication(f: FC) -> FC:
    for option in reversed(
        [
            optgroup.group(
                "Authentication",
                cls=RequiredMutuallyExclusiveOptionGroup,
            ),
            optgroup.option(
                "--keyfile",
                "-k",
                type=click.Path(exists=True),
                help="local Ethereum keyfile",
            ),
            optgroup.option(
                "--private-key",
                metavar="HEX",
                envvar="SAFE_PRIVATE_KEY",
                show_envvar=True,
                help="raw private key",
            ),
        ]
    ):
        f = option(f)
    return f


def build_safetx(f: FC) -> FC:
    for option in reversed(
        [
            click.option(
                "--to", "to_str", metavar="ADDRESS", required=True, help="destination address"
            ),
            click.option("--value", default="0.0", help="tx value in decimals"),
            click.option("--data", default="0x", help="call data payload"),
            optgroup.group("Build offline"),
            make_option(chain_id_option_info, cls=optgroup.option),
            optgroup.option("--safe-nonce", type=int, help="Safe nonce"),
            optgroup.group("Build online"),
            rpc(optgroup.option),
        ]
    ):
        f = option(f)
    return f


def common(f: FC) -> FC:
    for option in reversed(
        [
            click.option(
                "--verbose",
                "-v",
                is_flag=True,
                expose_value=False,
                is_eager=True,
                help="print informational messages",
                callback=verbose_callback,
            ),
        ]
    ):
        f = option(f)
    return f


def deployment(f: FC) -> FC:
    for option in reversed(
        [
            optgroup.group(
                "Deployment settings",
            ),
            optgroup.option(
                "--chain-specific",
                is_flag=True,
                default=False,
                help="account address will depend on --chain-id",
            ),
            make_option(
                chain_id_option_info,
                cls=optgroup.option,
                help=chain_id_option_info.help + " (required for --chain-specific)",
            ),
            optgroup.option(
                "--salt-nonce",
                type=str,
                metavar="BYTES32",
                default=SALT_NONCE_SENTINEL,
                help="nonce used to generate CREATE2 salt",
            ),
            optgroup.option(
                "--without-events",
                is_flag=True,
                default=False,
                help="use implementation that does not emit events",
            ),
            optgroup.option(
                "--custom-singleton",
                metavar="ADDRESS",
                help=f"use a non-canonical Singleton {DEPLOY_SAFE_VERSION}",
            ),
            optgroup.option(
                "--custom-proxy-factory",
                metavar="ADDRESS",
                help=f"use a non-canonical SafeProxyFactory {DEPLOY_SAFE_VERSION}",
            ),
            optgroup.group(
                "Initialization settings",
            ),
            optgroup.option(
                "--owner",
                "owners",
                required=True,
                multiple=True,
                metavar="ADDRESS",
                type=str,
                help="add an owner (repeat option to add more)",
            ),
            optgroup.option(
                "--recovery-owner",
                metavar="ADDRESS",
                envvar="SAFE_RECOVERY_ADDRESS",
                show_envvar=True,
                help="add the recovery account as an owner",
            ),
            optgroup.option(
                "--threshold",
                type=int,
                default=1,
                help="number of required confirmations",
            ),
            optgroup.option(
                "--fallback",
                metavar="ADDRESS",
                help="custom Fallback Handler address",
            ),
        ]
    ):
        f = option(f)
    return f


def cosigners(f: FC) -> FC:
    for option in reversed(
        [
            optgroup.group("Signers"),
            optgroup.option(
                "--recovery-keyfile",
                type=click.Path(exists=True),
                required=True,
                envvar="SAFE_RECOVERY_KEYFILE",
                show_envvar=True,
                help="keyfile of the recovery signer, which also pays for gas",
            ),
            optgroup.option(
                "--owner-keyfile",
                "owner_keyfiles",
                type=click.Path(exists=True),
                multiple=True,
                help="keyfile of an additional owner (repeat option to add more)",
            ),
        ]
    ):
        f = option(f)
    return f


force = click.option(
    "--force",
    "-f",
    is_flag=True,
    default=False,
    help="skip confirmation prompts",
)

output_file = click.option(
    "--output", "-o", type=click.File(mode="w"), help="write output to FILENAME"
)


def rpc(
    decorator: Callable[..., Callable[[FC], FC]], required: bool = False
) -> Callable[[FC], FC]:
    return decorator(
        "--rpc",
        "-r",
        required=required,
        envvar="SAFE_RPC",
        metavar="URL",
        show_envvar=True,
        help="HTTP JSON-RPC endpoint",
    )


safe_address = click.option(
    "--safe",
    "safe_address",
    metavar="ADDRESS",
    required=True,
    help="Safe account address",
)

sigfile = click.argument(
    "sigfiles",
    metavar="[SIGFILE]...",
    type=click.Path(exists=True),
    nargs=-1,
)


def txfile(f: FC) -> FC:
    for option in reversed(
        [
            click.argument("txfile", type=click.File("r"), required=True),
            optgroup.group("Transaction file"),
            optgroup.option(
                "--kind",
                type=click.Choice([kind.value for kind in TxKind]),
                default=TxKind.EIP712.value,
                help="format of TXFILE",
            ),
            optgroup.option(
                "--safe",
                "safe_address",
                metavar="ADDRESS",
                help="Safe account address (unless TXFILE is EIP-712 data)",
            ),
            make_option(
                chain_id_option_info,
                cls=optgroup.option,
                help=chain_id_option_info.help + " (defaults to the RPC chain ID)",
            ),
        ]
    ):
        f = option(f)
    return f


def web3tx(f: FC) -> FC:
    for option in reversed(
        [
            optgroup.group(
                "Web3 Transaction",
            ),
            optgroup.option("--gas-limit", type=int, help="Web3 transaction gas limit"),
            optgroup.option(
                "--max-fee", type=int, metavar="WEI", help="max fee per gas"
            ),
            optgroup.option(
                "--max-pri-fee", type=int, metavar="WEI", help="max priority fee per gas"
            ),
        ]
    ):
        f = option(f)
    return f
