"""Command-line interface for the confidential token launchpad.

The CLI is a thin façade over the registry, mutation and disclosure
components so operators can inspect and exercise a deployed factory without
writing Python. Every command prints one compact JSON document on stdout.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, Sequence

from .chain import JsonRpcChainReader
from .config import (
    ConfigurationError,
    LaunchpadConfig,
    load_launchpad_config,
    set_default_config_path,
)
from .coordinator import EncryptedValueDisclosureCoordinator
from .disclosure import RelayerDisclosureService
from .errors import LaunchpadError
from .mutations import MutationLifecycleManager, MutationRecord
from .registry import TokenRegistryAggregator
from .rpc_client import EthereumRPCClient, RPCError, RPCTransportError
from .signer import LocalAccountSigner
from .tx_sender import JsonRpcChainWriter

logger = logging.getLogger(__name__)

COMPACT_JSON_SEPARATORS = (",", ":")


class CLIError(RuntimeError):
    """Raised when CLI arguments are invalid."""


def _emit(data: Any) -> None:
    print(json.dumps(data, separators=COMPACT_JSON_SEPARATORS))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Confidential token launchpad CLI")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML config file (default: ~/.launchpad.yaml)",
    )
    parser.add_argument("--rpc-url", default=None, help="Override the JSON-RPC endpoint")
    parser.add_argument(
        "--factory", default=None, help="Override the token factory address"
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Enable debug logging"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "factory-address", help="show the configured factory and network"
    )

    list_parser = subparsers.add_parser(
        "list-tokens", help="list every token deployed by the factory"
    )
    list_parser.add_argument(
        "--creator", default=None, help="Only show tokens created by this address"
    )
    list_parser.add_argument(
        "--decimals",
        type=int,
        default=None,
        help="Decimals used to format free-mint allowances (default: config)",
    )

    create_parser = subparsers.add_parser(
        "create-token", help="deploy a new confidential token through the factory"
    )
    create_parser.add_argument("--name", required=True, help="Token name")
    create_parser.add_argument("--symbol", required=True, help="Token symbol")

    freemint_parser = subparsers.add_parser(
        "freemint", help="claim the free-mint allowance of a token"
    )
    freemint_parser.add_argument("--token", required=True, help="Token address")

    decrypt_parser = subparsers.add_parser(
        "decrypt-balance", help="decrypt a holder's confidential balance"
    )
    decrypt_parser.add_argument("--token", required=True, help="Token address")
    decrypt_parser.add_argument(
        "--holder",
        default=None,
        help="Holder address (default: the account of the configured private key)",
    )

    return parser


def _load_config(args: argparse.Namespace) -> LaunchpadConfig:
    overrides: Dict[str, Any] = {}
    if args.rpc_url:
        overrides["rpc_url"] = args.rpc_url
    if args.factory:
        overrides["factory_address"] = args.factory
    return load_launchpad_config(overrides=overrides)


def _build_registry(config: LaunchpadConfig) -> TokenRegistryAggregator:
    rpc = EthereumRPCClient.from_config(config)
    reader = JsonRpcChainReader(rpc, config.multicall_address)
    return TokenRegistryAggregator(reader, config.require_factory())


def _record_to_jsonable(record: MutationRecord) -> Dict[str, Any]:
    return {
        "kind": record.kind.value,
        "target": record.target,
        "status": record.status.value,
        "tx_hash": record.tx_hash,
        "params": record.params,
        "error": str(record.error) if record.error is not None else None,
    }


def cmd_factory_address(config: LaunchpadConfig) -> None:
    _emit(
        {
            "factory_address": config.factory_address,
            "configured": config.is_factory_configured,
            "chain_id": config.chain_id,
        }
    )


async def cmd_list_tokens(args: argparse.Namespace, config: LaunchpadConfig) -> None:
    registry = _build_registry(config)
    if args.creator:
        tokens = await registry.tokens_by_creator(args.creator)
    else:
        tokens = await registry.list_tokens()
    decimals = config.token_decimals if args.decimals is None else args.decimals
    _emit({"tokens": [token.to_jsonable(decimals) for token in tokens]})


def _build_mutations(config: LaunchpadConfig) -> MutationLifecycleManager:
    rpc = EthereumRPCClient.from_config(config)
    writer = None
    if config.private_key:
        writer = JsonRpcChainWriter(
            rpc,
            config.private_key,
            config.chain_id,
            receipt_timeout_seconds=config.receipt_timeout_seconds,
            poll_interval_seconds=config.receipt_poll_interval_seconds,
        )
    registry = None
    if config.is_factory_configured:
        registry = TokenRegistryAggregator(
            JsonRpcChainReader(rpc, config.multicall_address), config.factory_address
        )
    return MutationLifecycleManager(
        writer, registry, factory_address=config.factory_address
    )


def _log_progress(record: MutationRecord) -> None:
    logger.info("%s %s", record.kind.value, record.status.value, extra={"tx_hash": record.tx_hash})


async def cmd_create_token(args: argparse.Namespace, config: LaunchpadConfig) -> None:
    manager = _build_mutations(config)
    record = await manager.create_token(args.name, args.symbol, observer=_log_progress)
    await record.wait()
    _emit(_record_to_jsonable(record))
    record.raise_for_status()


async def cmd_freemint(args: argparse.Namespace, config: LaunchpadConfig) -> None:
    manager = _build_mutations(config)
    record = await manager.freemint(args.token, observer=_log_progress)
    await record.wait()
    _emit(_record_to_jsonable(record))
    record.raise_for_status()


async def cmd_decrypt_balance(args: argparse.Namespace, config: LaunchpadConfig) -> None:
    rpc = EthereumRPCClient.from_config(config)
    reader = JsonRpcChainReader(rpc, config.multicall_address)
    signer = LocalAccountSigner(config.private_key) if config.private_key else None
    holder = args.holder or (signer.address if signer is not None else None)

    service = RelayerDisclosureService(
        config.relayer_url,
        chain_id=config.chain_id,
        gateway_chain_id=config.gateway_chain_id,
        verifying_contract=config.decryption_contract,
        timeout=config.request_timeout_seconds,
    )
    await service.initialize()

    coordinator = EncryptedValueDisclosureCoordinator(
        reader,
        service,
        signer,
        args.token,
        holder,
        decimals=config.token_decimals,
        duration_days=config.duration_days,
    )
    outcome = await coordinator.run()
    _emit(
        {
            "token": outcome.token,
            "holder": outcome.holder,
            "handle": outcome.handle,
            "amount": str(outcome.amount),
            "formatted": outcome.formatted,
            "short_circuited": outcome.short_circuited,
        }
    )


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    if args.config:
        set_default_config_path(args.config)
    try:
        config = _load_config(args)
        if args.command == "factory-address":
            cmd_factory_address(config)
        elif args.command == "list-tokens":
            asyncio.run(cmd_list_tokens(args, config))
        elif args.command == "create-token":
            asyncio.run(cmd_create_token(args, config))
        elif args.command == "freemint":
            asyncio.run(cmd_freemint(args, config))
        elif args.command == "decrypt-balance":
            asyncio.run(cmd_decrypt_balance(args, config))
        else:  # pragma: no cover - argparse enforces choices
            raise CLIError(f"Unknown command: {args.command}")
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        logger.info("Interrupted by user")
    except (
        CLIError,
        ConfigurationError,
        LaunchpadError,
        RPCError,
        RPCTransportError,
    ) as exc:
        parser.exit(1, f"error: {exc}\n")


if __name__ == "__main__":
    main(sys.argv[1:])
