"""Confidential token launchpad client package."""

from .coordinator import (
    DisclosurePhase,
    EncryptedValueDisclosureCoordinator,
    disclose_balance,
)
from .errors import (
    ChainReadError,
    DisclosureRequestFailed,
    DisclosureServiceUnavailable,
    LaunchpadError,
    MutationRejected,
    MutationReverted,
    NotAuthenticated,
    PartialMetadataFailure,
    RegistryUnavailable,
    SignatureDeclined,
)
from .model import DisclosureOutcome, TokenIdentity, TokenMetadata, TokenRecord
from .mutations import (
    MutationKind,
    MutationLifecycleManager,
    MutationRecord,
    MutationStatus,
)
from .registry import TokenRegistryAggregator

__all__ = [
    "DisclosureOutcome",
    "DisclosurePhase",
    "EncryptedValueDisclosureCoordinator",
    "disclose_balance",
    "MutationKind",
    "MutationLifecycleManager",
    "MutationRecord",
    "MutationStatus",
    "TokenIdentity",
    "TokenMetadata",
    "TokenRecord",
    "TokenRegistryAggregator",
    "ChainReadError",
    "DisclosureRequestFailed",
    "DisclosureServiceUnavailable",
    "LaunchpadError",
    "MutationRejected",
    "MutationReverted",
    "NotAuthenticated",
    "PartialMetadataFailure",
    "RegistryUnavailable",
    "SignatureDeclined",
]
