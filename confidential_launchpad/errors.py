"""Error taxonomy shared by the registry, disclosure and mutation layers."""

from __future__ import annotations


class LaunchpadError(RuntimeError):
    """Base class for launchpad workflow failures."""


class RegistryUnavailable(LaunchpadError):
    """Raised when the factory's token list cannot be read."""


class PartialMetadataFailure(LaunchpadError):
    """A single metadata field could not be read; recovered with a fallback."""

    def __init__(self, token: str, field: str, reason: str) -> None:
        super().__init__(f"{field} unavailable for {token}: {reason}")
        self.token = token
        self.field = field
        self.reason = reason


class NotAuthenticated(LaunchpadError):
    """Raised when no holder identity is available."""


class ChainReadError(LaunchpadError):
    """Raised when an encrypted handle or balance read fails."""


class DisclosureServiceUnavailable(LaunchpadError):
    """Raised when the disclosure service has not finished initializing."""


class SignatureDeclined(LaunchpadError):
    """Raised when the holder has no signer or refuses to sign."""


class DisclosureRequestFailed(LaunchpadError):
    """Raised when the disclosure service call fails or returns malformed data."""


class MutationRejected(LaunchpadError):
    """Raised when a mutation is refused before anything is sent to the chain."""


class MutationReverted(LaunchpadError):
    """Raised when a dispatched transaction is rejected or reverts on-chain."""

    def __init__(self, message: str, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash
