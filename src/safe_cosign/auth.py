import logging
import sys
from getpass import getpass
from typing import TYPE_CHECKING, Optional, Protocol, cast

import click

from .console import make_status_logger
from .exceptions import SigningError

if TYPE_CHECKING:
    from eth_account.datastructures import SignedTransaction
    from eth_account.signers.local import LocalAccount
    from eth_account.types import TransactionDictType
    from eth_typing import ChecksumAddress
    from web3.types import TxParams


logger = logging.getLogger(__name__)
status = make_status_logger(logger)


class Authenticator(Protocol):
    address: "ChecksumAddress"

    def sign_transaction(self, params: "TxParams") -> "SignedTransaction": ...

    def sign_digest(self, digest: bytes) -> bytes:
        """Sign `digest` with the EIP-191 (`eth_sign`) prefix.

        Returns the 65-byte `r || s || v` signature with `v` in (27, 28).
        """
        ...


class LocalAuthenticator:
    account: "LocalAccount"

    def __init__(self, account: "LocalAccount", label: str = "local key"):
        self.account = account
        self.address = account.address
        self.label = label

    def __repr__(self):
        return self.label

    def sign_transaction(self, params: "TxParams") -> "SignedTransaction":
        logger.info(f"Signing Web3 transaction with {self.address}")
        try:
            return self.account.sign_transaction(cast("TransactionDictType", params))
        except Exception as exc:
            raise SigningError(
                f"Cannot sign Web3 transaction with {self}: {exc}", [exc]
            ) from exc

    def sign_digest(self, digest: bytes) -> bytes:
        from eth_account.messages import encode_defunct

        logger.info(f"Signing SafeTx hash with {self.address}")
        try:
            signed = self.account.sign_message(encode_defunct(primitive=digest))
        except Exception as exc:
            raise SigningError(
                f"Cannot sign SafeTx hash with {self}: {exc}", [exc]
            ) from exc
        return bytes(signed.signature)


class PrivateKeyAuthenticator(LocalAuthenticator):
    def __init__(self, private_key: str | bytes, label: str = "private key"):
        from eth_account import Account

        try:
            account = Account.from_key(private_key)
        except Exception as exc:
            raise SigningError(f"Invalid private key ({label}): {exc}", [exc]) from exc
        super().__init__(account, label=label)


class KeyfileAuthenticator(LocalAuthenticator):
    def __init__(self, keyfile: str, password: Optional[str] = None):
        from eth_account import Account

        self.keyfile = keyfile
        if password is None:
            password = getpass(
                prompt=f"[{self.keyfile}] password: ", stream=sys.stderr
            )
        with status("Decrypting keyfile..."):
            with click.open_file(self.keyfile) as kf:
                keydata = kf.read()
            try:
                privkey = Account.decrypt(keydata, password=password)
            except Exception as exc:
                raise SigningError(
                    f"Cannot decrypt keyfile {self.keyfile}: {exc}", [exc]
                ) from exc
        super().__init__(Account.from_key(privkey), label=f"keyfile: {self.keyfile}")


def validate_authenticator(
    keyfile: Optional[str],
    private_key: Optional[str] = None,
) -> Authenticator:
    if keyfile is not None:
        auth: Authenticator = KeyfileAuthenticator(keyfile)
    elif private_key is not None:
        auth = PrivateKeyAuthenticator(private_key)
    else:
        raise click.ClickException("No keyfile or private key supplied.")
    logger.info(f"Using authenticator: {auth}")
    return auth
