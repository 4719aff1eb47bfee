"""Operator CLI for the vault transaction pipeline."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Callable, List, Optional

from execution_adapter.sui.models import SimulationClearance
from tx_engine.errors import VaultError
from tx_engine.models import OperationKind
from tx_engine.objects import SUI_COIN_TYPE
from vault_pipeline.attempt import AttemptState, TransactionAttempt
from vault_pipeline.config import VaultConfig
from vault_pipeline.workflows import VaultPipeline, created_balance_manager

PipelineFactory = Callable[[VaultConfig], VaultPipeline]


def main(
    argv: Optional[List[str]] = None,
    *,
    pipeline_factory: Optional[PipelineFactory] = None,
) -> int:
    parser = argparse.ArgumentParser(prog="vault-pipeline")
    parser.add_argument("--env-file")
    parser.add_argument("--log-level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    authorize_parser = subparsers.add_parser("authorize")
    authorize_parser.add_argument("--operation", required=True)
    authorize_parser.set_defaults(func=_authorize)

    create_parser = subparsers.add_parser("create-bm")
    create_parser.add_argument("--bot", required=True)
    _add_submit_args(create_parser)
    create_parser.set_defaults(func=_create_balance_manager)

    deposit_parser = subparsers.add_parser("deposit")
    deposit_parser.add_argument("--amount", type=int, required=True)
    deposit_parser.add_argument("--coin-type", default=SUI_COIN_TYPE)
    deposit_parser.add_argument("--source-coin")
    deposit_parser.add_argument("--balance-manager")
    _add_submit_args(deposit_parser)
    deposit_parser.set_defaults(func=_deposit)

    withdraw_parser = subparsers.add_parser("withdraw")
    withdraw_parser.add_argument("--amount", type=int, required=True)
    withdraw_parser.add_argument("--coin-type", default=SUI_COIN_TYPE)
    withdraw_parser.add_argument("--balance-manager")
    _add_submit_args(withdraw_parser)
    withdraw_parser.set_defaults(func=_withdraw)

    acl_parser = subparsers.add_parser("acl-add")
    acl_parser.add_argument("--record", required=True)
    _add_submit_args(acl_parser)
    acl_parser.set_defaults(func=_acl_add)

    trade_parser = subparsers.add_parser("bot-trade")
    trade_parser.add_argument("--from-asset", required=True)
    trade_parser.add_argument("--to-asset", required=True)
    trade_parser.add_argument("--amount", type=int, required=True)
    trade_parser.add_argument("--slippage", type=float, default=0.01)
    trade_parser.add_argument("--fee-rate", type=float, default=0.0)
    trade_parser.add_argument("--min-deposit", type=int, default=0)
    trade_parser.add_argument("--balance-manager")
    _add_submit_args(trade_parser)
    trade_parser.set_defaults(func=_bot_trade)

    query_parser = subparsers.add_parser("query")
    query_parser.add_argument("--coin-type", action="append", required=True)
    query_parser.add_argument("--balance-manager")
    query_parser.set_defaults(func=_query)

    args = parser.parse_args(argv)

    try:
        config = VaultConfig.from_env(dotenv_path=args.env_file)
        logging.basicConfig(
            level=(args.log_level or config.log_level).upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        pipeline = (pipeline_factory or VaultPipeline.from_config)(config)
        return args.func(args, pipeline)
    except (ValueError, VaultError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2


def _authorize(args: argparse.Namespace, pipeline: VaultPipeline) -> int:
    try:
        kind = OperationKind(args.operation.upper())
    except ValueError as exc:
        raise ValueError(f"Unknown operation kind: {args.operation}") from exc
    decision = pipeline.authorize(kind)
    _print(
        {
            "operation": kind.value,
            "authorized": decision.authorized,
            "reason": decision.reason,
            "required": decision.required_kind.value if decision.required_kind else None,
        }
    )
    return 0 if decision.authorized else 1


def _create_balance_manager(args: argparse.Namespace, pipeline: VaultPipeline) -> int:
    _confirm_submission(args, f"Create balance manager for bot {args.bot}?")
    attempt = pipeline.create_balance_manager(args.bot, dry_run=args.dry_run)
    output = _attempt_output(attempt)
    if attempt.state == AttemptState.FINALIZED:
        output["balance_manager"] = created_balance_manager(attempt.result)
    _print(output)
    return 0


def _deposit(args: argparse.Namespace, pipeline: VaultPipeline) -> int:
    _confirm_submission(args, f"Deposit {args.amount} {args.coin_type}?")
    attempt = pipeline.deposit(
        args.amount,
        args.coin_type,
        balance_manager=args.balance_manager,
        source_coin=args.source_coin,
        dry_run=args.dry_run,
    )
    _print(_attempt_output(attempt))
    return 0


def _withdraw(args: argparse.Namespace, pipeline: VaultPipeline) -> int:
    _confirm_submission(args, f"Withdraw {args.amount} {args.coin_type}?")
    attempt = pipeline.withdraw(
        args.amount,
        args.coin_type,
        balance_manager=args.balance_manager,
        dry_run=args.dry_run,
    )
    _print(_attempt_output(attempt))
    return 0


def _acl_add(args: argparse.Namespace, pipeline: VaultPipeline) -> int:
    _confirm_submission(args, f"Add access list record {args.record}?")
    attempt = pipeline.acl_add(args.record, dry_run=args.dry_run)
    _print(_attempt_output(attempt))
    return 0


def _bot_trade(args: argparse.Namespace, pipeline: VaultPipeline) -> int:
    _confirm_submission(
        args, f"Trade {args.amount} {args.from_asset} -> {args.to_asset}?"
    )
    attempt = pipeline.bot_trade(
        args.from_asset,
        args.to_asset,
        args.amount,
        slippage=args.slippage,
        fee_rate=args.fee_rate,
        balance_manager=args.balance_manager,
        min_deposit=args.min_deposit,
        dry_run=args.dry_run,
    )
    _print(_attempt_output(attempt))
    return 0


def _query(args: argparse.Namespace, pipeline: VaultPipeline) -> int:
    balances = pipeline.query_balances(args.coin_type, balance_manager=args.balance_manager)
    _print({"balances": balances})
    return 0


def _add_submit_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("--yes", action="store_true")


def _confirm_submission(args: argparse.Namespace, prompt: str) -> None:
    if args.dry_run or args.yes:
        return
    if not _confirm(f"{prompt} [y/N]: "):
        raise ValueError("Submission confirmation denied.")


def _confirm(prompt: str) -> bool:
    response = input(prompt)
    return response.strip().lower() in {"y", "yes"}


def _attempt_output(attempt: TransactionAttempt) -> dict:
    output = attempt.to_dict()
    output["balance_changes"] = _balance_changes(attempt.clearance)
    return output


def _balance_changes(clearance: Optional[SimulationClearance]) -> list:
    if clearance is None:
        return []
    return [
        {"owner": change.owner, "coin_type": change.coin_type, "amount": change.amount}
        for change in clearance.result.balance_changes
    ]


def _print(payload: dict) -> None:
    print(json.dumps(payload, indent=2, default=str))


if __name__ == "__main__":
    raise SystemExit(main())
