import json
import logging
import shutil
import sys
import typing
from types import TracebackType
from typing import (
    TYPE_CHECKING,
    Optional,
)

import click
from hexbytes import (
    HexBytes,
)
from rich.prompt import Confirm
from rich.traceback import Traceback

from . import params
from .auth import KeyfileAuthenticator, validate_authenticator
from .chain import Web3Broadcaster, Web3NonceSource, make_web3
from .click import Group
from .codec import hex_to_bytes
from .console import (
    SAFE_DEBUG,
    activate_logging,
    console,
    get_json_data_renderable,
    get_output_console,
    make_status_logger,
    print_kvtable,
    print_safe_deploy_info,
    print_safetxdata,
    print_signatures,
    print_version,
)
from .models import PreparedSafeTx, Signature, TxIntent, TxKind, Web3TxOptions
from .signatures import parse_signature
from .util import (
    derive_address,
    encode_create_proxy_call,
    scale_decimal_value,
)
from .validation import (
    validate_address,
    validate_deploy_options,
    validate_safe_options,
)
from .workflows import (
    approve_hash,
    assemble_execution,
    load_transaction,
    prepare_safetx,
    reconstruct_safetx,
    sign_only,
)

if TYPE_CHECKING:
    from web3 import Web3

    from .auth import Authenticator

# ┌───────┐
# │ Setup │
# └───────┘

logger = logging.getLogger(__name__)
status = make_status_logger(logger)

NATIVE_DECIMALS = 18


def handle_crash(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_traceback: TracebackType | None,
) -> None:
    if not SAFE_DEBUG:
        console.print(f"[bold]{exc_type.__name__}[/bold]: {exc_value}")
    else:
        rich_traceback = Traceback.from_exception(
            exc_type,
            exc_value,
            exc_traceback,
            suppress=[click],
            show_locals=True,
        )
        console.print(rich_traceback)


sys.excepthook = handle_crash


def load_signatures(sigfiles: typing.Iterable[str]) -> list[Signature]:
    signatures: list[Signature] = []
    for sigfile in sigfiles:
        with open(sigfile, "r") as sf:
            signatures.append(parse_signature(sf.read()))
    return signatures


def load_safetx(
    txfile: typing.TextIO,
    kind: str,
    safe_address: Optional[str],
    chain_id: Optional[int],
    w3: Optional["Web3"] = None,
) -> PreparedSafeTx:
    """Read TXFILE and resolve its nonce, which may need `w3`."""
    try:
        data = json.load(txfile)
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"Invalid JSON in {txfile.name}: {exc}") from exc
    if not isinstance(data, dict):
        raise click.ClickException(f"Expected a JSON object in {txfile.name}.")
    if TxKind(kind) is TxKind.EIP712:
        return reconstruct_safetx(data)
    if safe_address is None:
        raise click.ClickException(f"Missing --safe for a '{kind}' transaction.")
    if chain_id is None:
        if w3 is None:
            raise click.ClickException("Missing --chain-id and no RPC URL provided.")
        chain_id = w3.eth.chain_id
    safe = validate_safe_options(safe_address, chain_id)
    intent = load_transaction(data, TxKind(kind))
    return prepare_safetx(
        safe, intent, Web3NonceSource(w3) if w3 is not None else None
    )


def confirm_or_abort(force: bool, prompt: str) -> None:
    if force:
        return
    console.line()
    if not Confirm.ask(prompt, default=False, console=console):
        raise click.Abort()


# ┌──────┐
# │ Main │
# └──────┘


@click.group(
    cls=Group,
    context_settings=dict(
        show_default=True,
        max_content_width=shutil.get_terminal_size().columns,
        help_option_names=["-h", "--help"],
    ),
)
@click.option(
    "--version",
    is_flag=True,
    callback=print_version,
    expose_value=False,
    is_eager=True,
    help="print version info and exit",
)
def main():
    """Co-sign and execute Safe transactions with a recovery signer."""
    if SAFE_DEBUG:
        activate_logging()


# ┌──────────┐
# │ Commands │
# └──────────┘


@main.command()
@params.safe_address
@params.build_safetx
@params.output_file
@params.common
def build(
    chain_id: Optional[int],
    data: str,
    output: typing.TextIO | None,
    rpc: Optional[str],
    safe_address: str,
    safe_nonce: Optional[int],
    to_str: str,
    value: str,
) -> None:
    """Build a Safe transaction and print its EIP-712 data."""
    with status("Building Safe transaction..."):
        if safe_nonce is None and rpc is None:
            raise click.ClickException(
                "Cannot determine Safe nonce and no RPC URL provided."
            )
        w3 = make_web3(rpc) if rpc is not None else None
        if chain_id is None:
            if w3 is None:
                raise click.ClickException(
                    "Cannot determine chain ID and no RPC URL provided."
                )
            chain_id = w3.eth.chain_id
        try:
            calldata = hex_to_bytes(data)
        except ValueError as exc:
            raise click.ClickException(f"Invalid call data '{data}'.") from exc
        intent = TxIntent(
            to=validate_address(to_str, "destination"),
            value=scale_decimal_value(value, NATIVE_DECIMALS),
            data=calldata,
            safe_nonce=safe_nonce,
        )
        prepared = prepare_safetx(
            validate_safe_options(safe_address, chain_id),
            intent,
            Web3NonceSource(w3) if w3 is not None else None,
        )
    output_console = get_output_console(output)
    output_console.print(
        get_json_data_renderable(prepared.safetx.to_eip712_message(prepared.safe))
    )


@main.command()
@params.txfile
@params.cosigners
@params.web3tx
@params.rpc(click.option, required=True)
@params.force
@params.sigfile
@params.common
def exec(
    chain_id: Optional[int],
    force: bool,
    gas_limit: Optional[int],
    kind: str,
    max_fee: Optional[int],
    max_pri_fee: Optional[int],
    owner_keyfiles: tuple[str, ...],
    recovery_keyfile: str,
    rpc: str,
    safe_address: Optional[str],
    sigfiles: tuple[str, ...],
    txfile: typing.TextIO,
):
    """Co-sign and execute a Safe transaction.

    The recovery signer always signs and sends the transaction. A SIGFILE
    holds a signature JSON object from another owner.
    """
    with status("Loading Safe transaction..."):
        w3 = make_web3(rpc)
        prepared = load_safetx(txfile, kind, safe_address, chain_id, w3)
        presigned = load_signatures(sigfiles)

    console.line()
    print_safetxdata(prepared)
    confirm_or_abort(force, "Sign Safe transaction?")

    recovery = KeyfileAuthenticator(recovery_keyfile)
    owners: list["Authenticator"] = [
        KeyfileAuthenticator(keyfile) for keyfile in owner_keyfiles
    ]
    with status("Collecting signatures..."):
        plan = assemble_execution(
            prepared.safe,
            prepared.safetx,
            recovery=recovery,
            owners=owners,
            presigned=presigned,
        )

    console.line()
    print_signatures(plan.signatures.sorted(), plan.prepared.hash)
    confirm_or_abort(force, "Execute Safe transaction?")

    broadcaster = Web3Broadcaster(
        w3,
        recovery,
        Web3TxOptions(gas_limit=gas_limit, max_fee=max_fee, max_pri_fee=max_pri_fee),
    )
    with status("Executing Safe transaction..."):
        tx_hash = broadcaster.broadcast(plan.request)
    get_output_console().print(tx_hash.to_0x_hex())


@main.command()
@params.txfile
@params.authentication
@params.web3tx
@params.rpc(click.option, required=True)
@params.force
@params.output_file
@params.common
def approve(
    chain_id: Optional[int],
    force: bool,
    gas_limit: Optional[int],
    keyfile: Optional[str],
    kind: str,
    max_fee: Optional[int],
    max_pri_fee: Optional[int],
    output: typing.TextIO | None,
    private_key: Optional[str],
    rpc: str,
    safe_address: Optional[str],
    txfile: typing.TextIO,
):
    """Approve a Safe transaction hash on chain.

    Prints the approval signature to pass to `exec` as a SIGFILE.
    """
    with status("Loading Safe transaction..."):
        w3 = make_web3(rpc)
        prepared = load_safetx(txfile, kind, safe_address, chain_id, w3)

    console.line()
    print_safetxdata(prepared)
    confirm_or_abort(force, "Approve Safe transaction hash?")

    auth = validate_authenticator(keyfile, private_key)
    broadcaster = Web3Broadcaster(
        w3,
        auth,
        Web3TxOptions(gas_limit=gas_limit, max_fee=max_fee, max_pri_fee=max_pri_fee),
    )
    with status("Approving Safe transaction hash..."):
        approval = approve_hash(
            prepared.safe,
            prepared.safetx,
            owner=auth.address,
            broadcaster=broadcaster,
        )
    console.print(f"Web3Tx Hash: {approval.tx_hash.to_0x_hex()}")
    output_console = get_output_console(output)
    output_console.print(get_json_data_renderable(approval.signature.to_json_dict()))


@main.command()
@click.argument("txfile", type=click.File("r"), required=True)
@click.option(
    "--preimage",
    is_flag=True,
    default=False,
    help="print the EIP-712 encoding instead of its hash",
)
@params.common
def hash(txfile: typing.TextIO, preimage: bool) -> None:
    """Compute hash of Safe transaction EIP-712 data."""
    prepared = load_safetx(txfile, TxKind.EIP712.value, None, None)
    output_console = get_output_console()
    if preimage:
        output_console.print(prepared.safetx.preimage(prepared.safe).to_0x_hex())
    else:
        output_console.print(prepared.hash.to_0x_hex())


@main.command()
@params.deployment
@params.output_file
@params.common
def precompute(
    chain_id: Optional[int],
    chain_specific: bool,
    custom_proxy_factory: Optional[str],
    custom_singleton: Optional[str],
    fallback: Optional[str],
    output: typing.TextIO | None,
    owners: list[str],
    recovery_owner: Optional[str],
    salt_nonce: str,
    threshold: int,
    without_events: bool,
):
    """Compute a Safe address offline."""
    config = validate_deploy_options(
        chain_id=chain_id,
        chain_specific=chain_specific,
        custom_proxy_factory=custom_proxy_factory,
        custom_singleton=custom_singleton,
        fallback=fallback,
        owners=owners,
        recovery_owner=recovery_owner,
        salt_nonce=salt_nonce,
        threshold=threshold,
        without_events=without_events,
    )
    address = derive_address(config)
    deployment = encode_create_proxy_call(config)
    console.line()
    print_safe_deploy_info(config, address)
    console.line()
    print_kvtable(
        "Deployment Call",
        "",
        {
            "To Address": deployment.to,
            "Data": deployment.data.to_0x_hex(),
        },
    )
    if not output:
        console.line()
    output_console = get_output_console(output)
    output_console.print(address)


@main.command()
@params.txfile
@params.rpc(click.option)
@params.sigfile
@params.common
def preview(
    chain_id: Optional[int],
    kind: str,
    rpc: Optional[str],
    safe_address: Optional[str],
    sigfiles: tuple[str, ...],
    txfile: typing.TextIO,
):
    """Preview a Safe transaction.

    A SIGFILE holds a signature JSON object; its signer is recovered and
    checked against the signer it claims.
    """
    with status("Loading Safe transaction..."):
        w3 = make_web3(rpc) if rpc is not None else None
        prepared = load_safetx(txfile, kind, safe_address, chain_id, w3)
        signatures = load_signatures(sigfiles)

    console.line()
    print_safetxdata(prepared)
    if signatures:
        console.line()
        num_invalid = print_signatures(signatures, prepared.hash)
        if num_invalid:
            raise click.ClickException(f"{num_invalid} invalid signature(s).")


@main.command()
@params.txfile
@params.authentication
@params.rpc(click.option)
@params.output_file
@params.force
@params.common
def sign(
    chain_id: Optional[int],
    force: bool,
    keyfile: Optional[str],
    kind: str,
    output: typing.TextIO | None,
    private_key: Optional[str],
    rpc: Optional[str],
    safe_address: Optional[str],
    txfile: typing.TextIO,
):
    """Sign a Safe transaction."""
    with status("Loading Safe transaction..."):
        w3 = make_web3(rpc) if rpc is not None else None
        prepared = load_safetx(txfile, kind, safe_address, chain_id, w3)

    console.line()
    print_safetxdata(prepared)
    confirm_or_abort(force, "Sign Safe transaction?")

    auth = validate_authenticator(keyfile, private_key)
    signature = sign_only(prepared.safe, prepared.safetx, auth=auth)
    logger.info(
        f"Signature by {signature.signer}: {HexBytes(signature.data).to_0x_hex()}"
    )

    output_console = get_output_console(output)
    output_console.print(get_json_data_renderable(signature.to_json_dict()))
