import logging
import os
import sys
import typing
from importlib.metadata import version
from typing import TYPE_CHECKING, Any, Iterable, Optional

import rich
from click import Context, Parameter
from rich.theme import Theme

from .constants import (
    DEFAULT_FALLBACK_ADDRESS,
    DEFAULT_PROXYFACTORY_ADDRESS,
    DEFAULT_SAFE_SINGLETON_ADDRESS,
    DEFAULT_SAFEL2_SINGLETON_ADDRESS,
    SYMBOL_CAUTION,
    SYMBOL_CHECK,
    SYMBOL_CROSS,
)
from .models import (
    AccountConfig,
    PreparedSafeTx,
    SafeOperation,
    SafeVariant,
    Signature,
)
from .util import (
    format_gwei_value,
    format_native_value,
    hexbytes_json_encoder,
)

if TYPE_CHECKING:
    from eth_typing import ChecksumAddress
    from rich.console import Console, RenderableType
    from rich.panel import Panel
    from rich.table import Table
    from web3.types import Wei


logger = logging.getLogger(__name__)

# Constants
JSON_INDENT_LEVEL = 2
SAFE_DEBUG = True if "SAFE_DEBUG" in os.environ else False

THEME = Theme(
    {
        "ok": "green",
        "caution": "yellow",
        "danger": "red",
        "secondary": "dim",
        "panel_ok": "bold green",
        "panel_caution": "bold yellow",
        "panel_danger": "bold red",
    }
)

# Human-readable output goes to stderr, results to stdout.
rich.reconfigure(stderr=True, theme=THEME)
console = rich.get_console()


def activate_logging():
    from rich.logging import RichHandler

    if SAFE_DEBUG:
        level = logging.NOTSET
    else:
        level = logging.INFO
    format = "<%(name)s.%(funcName)s> %(message)s"
    logging.basicConfig(
        level=level,
        format=format,
        datefmt="[%X]",
        handlers=[RichHandler(console=console)],
    )


def get_json_data_renderable(
    data: dict[str, Any], indent: Optional[int] = JSON_INDENT_LEVEL
) -> "RenderableType":
    from rich.json import JSON

    return JSON.from_data(
        data,
        default=hexbytes_json_encoder,
        indent=indent,
    )


def get_kvtable(*sections: dict[str, "RenderableType"]) -> "Table":
    """Two-column key/value table, with a rule between sections."""
    from rich.box import Box
    from rich.table import Table
    from rich.text import Text

    # Only the row separator is drawn.
    rule_box = Box("    \n" * 4 + " ── \n" + "    \n" * 3)
    table = Table(show_edge=False, show_header=False, box=rule_box)
    table.add_column("Field", justify="right", style="bold", no_wrap=True)
    table.add_column("Value", no_wrap=False)
    for section in sections:
        if table.row_count:
            table.add_section()
        for key, val in section.items():
            if isinstance(val, str):
                val = Text.from_markup(val, overflow="fold")
            table.add_row(key, val)
    return table


def get_output_console(output: Optional[typing.TextIO] = None) -> "Console":
    """Console for results: stdout by default, soft wrapping only, so hex
    strings and JSON survive piping intact."""
    from rich.console import Console

    return Console(file=output or sys.stdout, soft_wrap=True)


def get_panel(
    title: str, subtitle: str, renderable: "RenderableType", **kwargs: Any
) -> "Panel":
    from rich.box import ROUNDED
    from rich.panel import Panel

    kwargs.setdefault("border_style", "bold italic")
    return Panel(
        renderable,
        box=ROUNDED,
        title=title,
        title_align="left",
        subtitle=subtitle,
        subtitle_align="right",
        padding=(1, 1),
        **kwargs,
    )


def make_status_logger(logger: logging.Logger):
    def status_logger(message: str):
        logger.info(message, stacklevel=2)
        return console.status(message)

    return status_logger


def print_kvtable(
    title: str, subtitle: str, *sections: dict[str, "RenderableType"]
) -> None:
    console.print(get_panel(title, subtitle, get_kvtable(*sections)))


def get_safe_variant(singleton: str) -> SafeVariant:
    if singleton.lower() == DEFAULT_SAFEL2_SINGLETON_ADDRESS.lower():
        return SafeVariant.SAFE_L2
    if singleton.lower() == DEFAULT_SAFE_SINGLETON_ADDRESS.lower():
        return SafeVariant.SAFE
    return SafeVariant.UNKNOWN


def print_safe_deploy_info(config: AccountConfig, safe_address: "ChecksumAddress"):
    from hexbytes import HexBytes

    variant = {
        SafeVariant.SAFE: "Safe.sol (without events)",
        SafeVariant.SAFE_L2: "SafeL2.sol (emits events)",
        SafeVariant.UNKNOWN: "unknown",
    }[get_safe_variant(config.singleton)]
    base_params: dict[str, "RenderableType"] = {
        "Proxy Factory": config.proxy_factory
        + (
            f" [ok]{SYMBOL_CHECK} CANONICAL[/ok]"
            if config.proxy_factory == DEFAULT_PROXYFACTORY_ADDRESS
            else ""
        ),
        "Singleton": config.singleton
        + (
            f" [ok]{SYMBOL_CHECK} CANONICAL[/ok]"
            if config.singleton
            in (DEFAULT_SAFE_SINGLETON_ADDRESS, DEFAULT_SAFEL2_SINGLETON_ADDRESS)
            else ""
        ),
        "Safe Variant": variant,
        "Salt Nonce": HexBytes(config.salt_nonce.to_bytes(32)).to_0x_hex(),
    }
    if config.chain_id is not None:
        base_params["Chain ID"] = str(config.chain_id)
    print_kvtable(
        "Safe Deployment Parameters",
        "",
        base_params,
        {
            f"Owners({len(config.owners)})": ", ".join(config.owners),
            "Threshold": str(config.threshold),
            "Fallback Handler": config.fallback
            + (
                f" [ok]{SYMBOL_CHECK} DEFAULT[/ok]"
                if config.fallback == DEFAULT_FALLBACK_ADDRESS
                else ""
            ),
        },
        {
            "Safe Address": f"{safe_address}",
        },
    )


def print_safetxdata(prepared: PreparedSafeTx) -> None:
    safe, safetx = prepared.safe, prepared.safetx
    table_data: list[dict[str, "RenderableType"]] = []
    table_data.append(
        {
            "Safe Address": safe.safe_address,
            "Chain ID": str(safe.chain_id),
            "Safe Nonce": str(safetx.nonce),
            "To Address": str(safetx.to),
            "Operation": f"{safetx.operation} ({SafeOperation(safetx.operation).name})",
            "Value": format_native_value(typing.cast("Wei", safetx.value)),
            "Gas Limit": format_gwei_value(typing.cast("Wei", safetx.safe_tx_gas)),
            "Data": safetx.data.to_0x_hex(),
        }
    )
    if safetx.gas_price > 0:
        table_data.append(
            {
                "Gas Price": format_gwei_value(typing.cast("Wei", safetx.gas_price)),
                "Gas Token": safetx.gas_token,
                "Refund Receiver": safetx.refund_receiver,
            }
        )
    table_data.append(
        {
            "SafeTx Hash": prepared.hash.to_0x_hex(),
        }
    )
    print_kvtable("Safe Transaction", "", *table_data)


def print_signatures(signatures: Iterable[Signature], digest: bytes) -> int:
    """Print signatures with the signer each one recovers to.

    Returns the number of invalid signatures.
    """
    from .exceptions import InvalidSignature
    from .signatures import recover_signer

    sigout: list[dict[str, "RenderableType"]] = []
    num_invalid = 0
    for sig in signatures:
        row: dict[str, "RenderableType"] = {"Signer": sig.signer}
        try:
            recovered = recover_signer(sig, digest)
        except InvalidSignature as exc:
            recovered, reason = None, str(exc)
        else:
            reason = ""
        if recovered is not None and recovered == sig.signer:
            row["Signature"] = sig.data.to_0x_hex() + f" [ok]{SYMBOL_CHECK} VALID[/ok]"
        else:
            num_invalid += 1
            row["Signature"] = (
                sig.data.to_0x_hex() + f" [danger]{SYMBOL_CROSS} INVALID[/danger]"
            )
        if recovered is not None:
            row["ECRecover"] = recovered
        elif reason:
            row["Error"] = f"[caution]{SYMBOL_CAUTION} {reason}[/caution]"
        sigout.append(row)
    if not sigout:
        return 0
    if num_invalid == 0:
        summary, border_style = f"[{SYMBOL_CHECK} VALID]", "panel_ok"
    elif num_invalid == 1:
        summary, border_style = f"[{SYMBOL_CROSS} INVALID SIGNATURE]", "panel_danger"
    else:
        summary, border_style = f"[{SYMBOL_CROSS} INVALID SIGNATURES]", "panel_danger"
    console.print(
        get_panel(
            "Signatures",
            summary,
            get_kvtable(*sigout),
            border_style=border_style,
        )
    )
    return num_invalid


def print_version(ctx: Context, param: Parameter, value: Optional[bool]) -> None:
    if not value or ctx.resilient_parsing:
        return

    get_output_console().print(
        f"Safe Cosign v{version('safe-cosign')}", highlight=False
    )
    ctx.exit()
