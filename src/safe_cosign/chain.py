"""Chain access used by the workflows.

The workflows only see the `NonceSource` and `Broadcaster` protocols. The
Web3 implementations below translate every provider failure into `RpcError`
and never retry.
"""

import logging
from typing import (
    TYPE_CHECKING,
    Protocol,
    cast,
)

from hexbytes import (
    HexBytes,
)

from .constants import SAFE_NONCE_ABI
from .exceptions import RpcError
from .models import ExecutionRequest, Web3TxOptions
from .util import make_web3tx, signed_tx_to_dict, to_checksum_address

if TYPE_CHECKING:
    from eth_typing import URI, ChecksumAddress
    from web3 import Web3
    from web3.types import Wei

    from .auth import Authenticator

logger = logging.getLogger(__name__)


class NonceSource(Protocol):
    def query_nonce(self, safe_address: "ChecksumAddress") -> int: ...


class Broadcaster(Protocol):
    def broadcast(self, request: ExecutionRequest) -> HexBytes: ...


def make_web3(rpc: str) -> "Web3":
    from web3 import Web3
    from web3.providers.auto import load_provider_from_uri

    return Web3(load_provider_from_uri(cast("URI", rpc)))


class Web3NonceSource:
    def __init__(self, w3: "Web3"):
        self.w3 = w3

    def query_nonce(self, safe_address: "ChecksumAddress") -> int:
        try:
            contract = self.w3.eth.contract(
                address=to_checksum_address(safe_address), abi=SAFE_NONCE_ABI
            )
            nonce = contract.functions.nonce().call(block_identifier="latest")
        except Exception as exc:
            raise RpcError(f"Cannot query nonce of Safe {safe_address}: {exc}") from exc
        logger.info(f"Safe {safe_address} nonce: {nonce}")
        return int(nonce)


class Web3Broadcaster:
    """Sign the execution request with `auth` and send it as a Web3Tx."""

    def __init__(
        self,
        w3: "Web3",
        auth: "Authenticator",
        txopts: Web3TxOptions = Web3TxOptions(),
    ):
        self.w3 = w3
        self.auth = auth
        self.txopts = txopts

    def broadcast(self, request: ExecutionRequest) -> HexBytes:
        try:
            tx = make_web3tx(
                self.w3,
                from_=self.auth.address,
                to=request.to,
                txopts=self.txopts,
                data=bytes(request.data),
                value=cast("Wei", request.value),
            )
        except Exception as exc:
            raise RpcError(f"Cannot prepare Web3 transaction: {exc}") from exc
        signed_tx = self.auth.sign_transaction(tx)
        logger.info(f"Signed Web3Tx: {signed_tx_to_dict(signed_tx)}")
        try:
            tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        except Exception as exc:
            raise RpcError(f"Cannot broadcast Web3 transaction: {exc}") from exc
        logger.info(f"Broadcast Web3Tx {HexBytes(tx_hash).to_0x_hex()}")
        return HexBytes(tx_hash)
