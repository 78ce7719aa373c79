"""
Command line interface for chainpilot.
"""
import argparse
import logging
import os
import sys
from typing import List, Optional

from .engine import Engine
from .exceptions import ChainPilotError
from .funding import format_cascade_results
from .models import CascadeFundingRequest, FundingMode, NetworkFamily, RepeatSchedule
from .runner import summarize
from .version import __version__

logger = logging.getLogger(__name__)

DEFAULT_OWNER = "local"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chainpilot", description="Multi-chain task automation")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--owner",
        default=os.environ.get("CHAINPILOT_OWNER", DEFAULT_OWNER),
        help="Owner whose accounts and task sets to use (default: $CHAINPILOT_OWNER or 'local')",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a task set now")
    run.add_argument("task_set", help="Task set id or name")

    schedule = sub.add_parser("schedule", help="Run due task sets on a timer")
    schedule.add_argument("--once", action="store_true", help="Run a single tick and exit")

    history = sub.add_parser("history", help="Show recent task results")
    history.add_argument("--limit", type=int, default=20)
    history.add_argument("--task-set", help="Only results of this task set id")

    fund = sub.add_parser("fund", help="Cascade-fund accounts from a source account")
    fund.add_argument("source", help="Source account address")
    fund.add_argument("--network", required=True, help="Network slug, chain id or custom network name")
    fund.add_argument("--mode", choices=[m.value for m in FundingMode], default=FundingMode.EQUAL.value)
    fund.add_argument("--amount", help="Per-target amount (fixed mode)")
    fund.add_argument("--total", help="Total amount to split (equal mode)")
    fund.add_argument("--to", nargs="*", default=[], help="Target addresses (default: all other accounts)")

    add_router = sub.add_parser("add-router", help="Save a DEX router for a network")
    add_router.add_argument("network_id", help="Network id (chain id for EVM networks)")
    add_router.add_argument("router", help="Router address")
    add_router.add_argument("wrapped_native", help="Wrapped native token address")
    add_router.add_argument("--name", help="Router name")

    add_network = sub.add_parser("add-network", help="Save a custom network")
    add_network.add_argument("name")
    add_network.add_argument("rpc_endpoint")
    add_network.add_argument("native_symbol")
    add_network.add_argument("--family", choices=[f.value for f in NetworkFamily], default=NetworkFamily.EVM.value)
    add_network.add_argument("--chain-id", type=int)
    add_network.add_argument("--decimals", type=int, default=18)
    add_network.add_argument("--explorer-url")
    add_network.add_argument("--testnet", action="store_true")

    sub.add_parser("networks", help="List built-in and custom networks")

    account = sub.add_parser("account", help="Create, import or list accounts")
    account_sub = account.add_subparsers(dest="account_command", required=True)
    create = account_sub.add_parser("create")
    create.add_argument("family", choices=[f.value for f in NetworkFamily])
    create.add_argument("--label")
    imported = account_sub.add_parser("import")
    imported.add_argument("family", choices=[f.value for f in NetworkFamily])
    imported.add_argument("--label")
    account_sub.add_parser("list")

    task_set = sub.add_parser("add-task-set", help="Save a task set")
    task_set.add_argument("name")
    task_set.add_argument("--network", required=True)
    task_set.add_argument("--task", action="append", required=True, dest="tasks", help="Task text (repeatable)")
    task_set.add_argument(
        "--repeat", choices=[r.value for r in RepeatSchedule], default=RepeatSchedule.NONE.value
    )

    ask = sub.add_parser("ask", help="Act on a free-text request, e.g. 'swap 0.01 eth for 0x...'")
    ask.add_argument("text", nargs="+", help="The request")
    ask.add_argument("--network", required=True, help="Network slug, chain id or custom network name")
    ask.add_argument("--account", help="Account to act with (default: first account of the network's family)")

    extract = sub.add_parser("extract", help="Build a task set from an announcement")
    extract.add_argument("file", help="Announcement text file ('-' for stdin)")
    extract.add_argument("--save", metavar="NAME", help="Save the extracted task set under this name")
    extract.add_argument(
        "--repeat", choices=[r.value for r in RepeatSchedule], default=RepeatSchedule.NONE.value
    )
    return parser


def _cmd_run(engine: Engine, args) -> int:
    results = engine.run_task_set(args.owner, args.task_set)
    for result in results:
        status = "OK  " if result.success else "FAIL"
        print(f"{status} {result.account_address[:10]} {result.task_text!r}: {result.message}")
    successes, failures = summarize(results)
    print(f"{successes} succeeded, {failures} failed")
    return 0 if failures == 0 else 1


def _cmd_schedule(engine: Engine, args) -> int:
    scheduler = engine.scheduler()
    if args.once:
        count = scheduler.tick()
        print(f"Ran {count} due task sets")
        return 0
    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        scheduler.stop()
    return 0


def _cmd_history(engine: Engine, args) -> int:
    results = engine.history(args.owner, limit=args.limit, task_set_id=args.task_set)
    if not results:
        print("No task history yet")
    for result in results:
        status = "OK  " if result.success else "FAIL"
        tx = f" [{result.tx_id}]" if result.tx_id else ""
        print(f"{result.executed_at:%Y-%m-%d %H:%M} {status} {result.task_text!r}: {result.message}{tx}")
    return 0


def _cmd_fund(engine: Engine, args) -> int:
    network = engine.resolve_network(args.owner, args.network)
    request = CascadeFundingRequest.from_human(
        owner=args.owner,
        source_account_address=args.source,
        mode=args.mode,
        decimals=network.decimals,
        amount_per_target=args.amount,
        total_amount=args.total,
        target_account_addresses=args.to,
        network_id=network.network_id,
    )
    results = engine.funder.cascade_fund(request)
    print(format_cascade_results(results, network))
    return 0 if all(r.success for r in results) else 1


def _cmd_add_router(engine: Engine, args) -> int:
    router = engine.routers.save_custom(
        args.owner, args.network_id, args.router, args.wrapped_native, name=args.name
    )
    print(f"Saved {router.name} ({router.router_address}) for network {router.network_id}")
    return 0


def _cmd_add_network(engine: Engine, args) -> int:
    network = engine.add_network(
        args.owner,
        args.name,
        args.rpc_endpoint,
        args.native_symbol,
        family=args.family,
        chain_id=args.chain_id,
        decimals=args.decimals,
        explorer_url=args.explorer_url,
        is_testnet=args.testnet,
    )
    print(f"Saved network {network.name} (id {network.network_id})")
    return 0


def _cmd_networks(engine: Engine, args) -> int:
    for network in engine.list_networks(args.owner):
        scope = "custom" if network.owner else "built-in"
        testnet = " testnet" if network.is_testnet else ""
        print(f"{network.network_id:>16}  {network.name} ({network.native_symbol}, "
              f"{network.network_family.value}{testnet}, {scope})")
    return 0


def _cmd_account(engine: Engine, args) -> int:
    if args.account_command == "create":
        account = engine.accounts.create(args.owner, args.family, label=args.label)
        print(f"Created {account.label}: {account.address}")
    elif args.account_command == "import":
        secret = sys.stdin.readline().strip()
        account = engine.accounts.import_secret(args.owner, args.family, secret, label=args.label)
        print(f"Imported {account.label}: {account.address}")
    else:
        for account in engine.accounts.list_accounts(args.owner):
            print(f"{account.network_family.value:>6}  {account.address}  {account.label}")
    return 0


def _cmd_add_task_set(engine: Engine, args) -> int:
    task_set = engine.create_task_set(args.owner, args.name, args.tasks, args.network, schedule=args.repeat)
    print(f"Saved task set {task_set.name} ({task_set.id}) with {len(task_set.tasks)} tasks")
    return 0


def _cmd_ask(engine: Engine, args) -> int:
    result = engine.ask(args.owner, " ".join(args.text), args.network, account_address=args.account)
    print(result.message)
    if result.tx_id:
        print(f"Transaction: {result.tx_id}")
    return 0 if result.success else 1


def _cmd_extract(engine: Engine, args) -> int:
    if args.file == "-":
        text = sys.stdin.read()
    else:
        with open(args.file, "r", encoding="utf-8") as f:
            text = f.read()
    extraction = engine.extract_announcement(args.owner, text)
    if extraction is None:
        print("Could not extract tasks from the announcement")
        return 1
    network = extraction.network.name if extraction.network else "unknown network"
    print(f"{extraction.project_name or 'Announcement'} on {network}:")
    for index, task in enumerate(extraction.tasks, start=1):
        print(f"  {index}. {task}")
    if args.save:
        task_set = engine.save_last_extraction(args.owner, name=args.save, schedule=args.repeat)
        print(f"Saved task set {task_set.name} ({task_set.id})")
    return 0


COMMANDS = {
    "run": _cmd_run,
    "schedule": _cmd_schedule,
    "history": _cmd_history,
    "fund": _cmd_fund,
    "add-router": _cmd_add_router,
    "add-network": _cmd_add_network,
    "networks": _cmd_networks,
    "account": _cmd_account,
    "add-task-set": _cmd_add_task_set,
    "extract": _cmd_extract,
    "ask": _cmd_ask,
}


def main(argv: Optional[List[str]] = None, engine: Optional[Engine] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        engine = engine or Engine()
        return COMMANDS[args.command](engine, args)
    except ChainPilotError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
