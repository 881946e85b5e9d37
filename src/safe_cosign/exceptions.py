"""Errors raised by safe_cosign.

Library code raises these and never logs or swallows them. The CLI turns
them into `click.ClickException` messages.
"""

from typing import Sequence


class SafeCosignError(Exception):
    """Base class for all safe_cosign errors."""


class InvalidConfig(SafeCosignError, ValueError):
    """Malformed or incomplete Safe account parameters."""


class RpcError(SafeCosignError):
    """A JSON-RPC read or write failed."""


class NonceUnavailable(SafeCosignError):
    """The Safe nonce was not supplied and could not be queried."""


class InvalidSignature(SafeCosignError, ValueError):
    """A signature entry is malformed or does not match its signer."""


class DuplicateSigner(SafeCosignError):
    """The same signer appears more than once in a signature set."""

    def __init__(self, signer: str):
        super().__init__(f"Duplicate signature for signer {signer}.")
        self.signer = signer


class SigningError(SafeCosignError):
    """One or more signers failed to produce a signature."""

    def __init__(self, message: str, failures: Sequence[BaseException] = ()):
        super().__init__(message)
        self.failures = list(failures)
