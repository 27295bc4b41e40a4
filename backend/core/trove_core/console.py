"""
Trove Core Console

Commands:
  positions [--denom SOL]
  neighbors --owner <pubkey> --collateral <int> --debt <int> --price <int> [--denom SOL] [--skip-at-head]
  encode <operation> [--amount N] [--loan N] [--collateral N] [--denom SOL]
                     [--owners a,b,c] [--prev <pubkey>] [--next <pubkey>]

``encode`` is offline. The other commands read the ledger through the
configured RPC (``--config trove.yaml`` or ``TROVE_*`` environment variables).
"""
import argparse
import asyncio
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.table import Table
from solders.pubkey import Pubkey

from backend.core.logging import configure_console_log
from backend.core.trove_core.config import ConfigError, TroveConfig, load_trove_config
from backend.core.trove_core.constants import ICR_SCALE
from backend.core.trove_core.errors import EncodingError, SnapshotFetchFailure
from backend.core.trove_core.fetcher import PositionSnapshotFetcher
from backend.core.trove_core.models import Position
from backend.core.trove_core.neighbors import find_neighbors, hypothetical_position, neighbor_accounts
from backend.core.trove_core.operations import (
    AddCollateral,
    BorrowLoan,
    LiquidateTroves,
    OpenPosition,
    Redeem,
    RemoveCollateral,
    RepayLoan,
    Stake,
    Unstake,
    WithdrawLiquidationGains,
    encode_operation,
)
from backend.core.trove_core.rpc import connect
from backend.core.trove_core.sorter import sort_positions


# --------- helpers ---------
def _load_cfg(args) -> TroveConfig:
    if getattr(args, "config", None):
        return load_trove_config(args.config)
    return TroveConfig.from_env()


def _ratio_pct(ratio) -> str:
    if ratio == float("inf"):
        return "inf"
    return f"{ratio / ICR_SCALE:.2f}%"


def _pubkey(value: Optional[str], label: str) -> Optional[Pubkey]:
    if value is None:
        return None
    try:
        return Pubkey.from_string(value)
    except ValueError as e:
        raise ValueError(f"{label} is not a valid base58 address: {value}") from e


async def _snapshot(cfg: TroveConfig, denom: str):
    client = await connect(cfg)
    try:
        fetcher = PositionSnapshotFetcher.from_config(cfg, client)
        result = await fetcher.fetch(denom)
    finally:
        await client.close()
    return result, sort_positions(result.positions)


def _positions_table(title: str, positions: List[Position]) -> Table:
    t = Table(title=title, box=box.MINIMAL_DOUBLE_HEAD, expand=False)
    for col in ("#", "owner", "ICR", "debt", "collateral"):
        t.add_column(col)
    for i, p in enumerate(positions):
        t.add_row(str(i), str(p.owner), _ratio_pct(p.health_ratio), str(p.debt_amount), str(p.collateral_amount))
    return t


# --------- commands ---------
def cmd_positions(args):
    cn = Console()
    cfg = _load_cfg(args)
    denom = args.denom or cfg.denom
    try:
        result, ordered = asyncio.run(_snapshot(cfg, denom))
    except (ConnectionError, SnapshotFetchFailure) as e:
        cn.print(f"error: {e}")
        return 2
    cn.print(_positions_table(f"{denom} positions (riskiest first)", ordered))
    for f in result.failures:
        cn.print(f"warning: {f.address} {f.reason}")
    return 0 if result.complete else 1


def cmd_neighbors(args):
    cn = Console()
    cfg = _load_cfg(args)
    denom = args.denom or cfg.denom
    try:
        owner = _pubkey(args.owner, "--owner")
        _, ordered = asyncio.run(_snapshot(cfg, denom))
    except (ValueError, ConnectionError, SnapshotFetchFailure) as e:
        cn.print(f"error: {e}")
        return 2
    target = hypothetical_position(owner, args.collateral, args.debt, args.price, denom, Pubkey.from_string(cfg.program_id))
    proof = find_neighbors(target, ordered)
    t = Table(title=f"neighbors at index {proof.insert_index} (ICR {_ratio_pct(target.health_ratio)})", box=box.SIMPLE)
    t.add_column("side", style="bold cyan")
    t.add_column("owner")
    t.add_column("ICR")
    for side, pos in (("prev", proof.prev), ("next", proof.next)):
        t.add_row(side, str(pos.owner) if pos else "-", _ratio_pct(pos.health_ratio) if pos else "-")
    cn.print(t)
    for addr in neighbor_accounts(proof, skip_at_head=args.skip_at_head):
        cn.print(f"hint: {addr}")
    return 0


def _operation_from_args(args):
    name = args.operation
    denom = args.denom
    if name == "open_trove":
        return OpenPosition(loan_amount=args.loan, collateral_amount=args.collateral, denom=denom)
    if name in ("add_collateral", "remove_collateral", "borrow_loan", "repay_loan"):
        cls = {
            "add_collateral": AddCollateral,
            "remove_collateral": RemoveCollateral,
            "borrow_loan": BorrowLoan,
            "repay_loan": RepayLoan,
        }[name]
        return cls(
            amount=args.amount,
            denom=denom,
            prev_node_id=_pubkey(args.prev, "--prev"),
            next_node_id=_pubkey(args.next, "--next"),
        )
    if name == "stake":
        return Stake(amount=args.amount)
    if name == "unstake":
        return Unstake(amount=args.amount)
    if name == "liquidate_troves":
        owners = [x.strip() for x in (args.owners or "").split(",") if x.strip()]
        return LiquidateTroves(owners=tuple(_pubkey(o, "--owners") for o in owners), denom=denom)
    if name == "redeem":
        return Redeem(amount=args.amount, denom=denom)
    return WithdrawLiquidationGains(denom=denom)


def cmd_encode(args):
    cn = Console()
    try:
        op = _operation_from_args(args)
        data = encode_operation(op)
    except (ValueError, EncodingError) as e:
        cn.print(f"error: {e}")
        return 2
    cn.print(f"operation: {op.NAME}", soft_wrap=True)
    cn.print(f"selector: {op.SELECTOR.hex()}", soft_wrap=True)
    cn.print(f"payload: {data.hex()}", soft_wrap=True)
    cn.print(f"length: {len(data)}", soft_wrap=True)
    return 0


OPERATION_NAMES = [
    "open_trove",
    "add_collateral",
    "remove_collateral",
    "borrow_loan",
    "repay_loan",
    "stake",
    "unstake",
    "liquidate_troves",
    "redeem",
    "withdraw_liquidation_gains",
]


def build_parser():
    p = argparse.ArgumentParser(prog="trove_console", description="Trove Core Console")
    p.add_argument("--config", help="Path to a YAML file with a 'trove' section (defaults to TROVE_* env)")
    p.add_argument("--debug", action="store_true", help="verbose logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("positions", help="list live positions ordered by ICR")
    s.add_argument("--denom")
    s.set_defaults(func=cmd_positions)

    s = sub.add_parser("neighbors", help="resolve the neighbor proof for a hypothetical position")
    s.add_argument("--owner", required=True)
    s.add_argument("--collateral", type=int, required=True)
    s.add_argument("--debt", type=int, required=True)
    s.add_argument("--price", type=int, required=True, help="price scaled so the ratio lands in micro-percent")
    s.add_argument("--denom")
    s.add_argument("--skip-at-head", action="store_true")
    s.set_defaults(func=cmd_neighbors)

    s = sub.add_parser("encode", help="encode an instruction payload (offline)")
    s.add_argument("operation", choices=OPERATION_NAMES)
    s.add_argument("--amount", type=int, default=0)
    s.add_argument("--loan", type=int, default=0)
    s.add_argument("--collateral", type=int, default=0)
    s.add_argument("--denom", default="SOL")
    s.add_argument("--owners", help="comma-separated owner addresses (liquidate_troves)")
    s.add_argument("--prev")
    s.add_argument("--next")
    s.set_defaults(func=cmd_encode)

    return p


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_console_log(args.debug)
    try:
        return args.func(args)
    except ConfigError as e:
        Console().print(f"config error: {e}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
