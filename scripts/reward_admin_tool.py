from __future__ import annotations

import argparse
import asyncio
import csv
from pathlib import Path
from uuid import UUID

from voucherdraw.core.logging import configure_logging
from voucherdraw.db.session import SessionLocal
from voucherdraw.draw.codes import parse_utc_datetime
from voucherdraw.draw.constants import (
    CODE_GENERATION_POLICIES,
    DEFAULT_CODE_PREFIX,
    REWARD_CATEGORIES,
    REWARD_STATUSES,
)
from voucherdraw.draw.replenishment import adjust_stock, import_pre_seeded_codes
from voucherdraw.draw.rewards import create_reward, set_reward_status, update_reward


def _load_raw_codes_from_csv(path: Path) -> list[str]:
    rows: list[str] = []
    with path.open("r", encoding="utf-8", newline="") as file:
        reader = csv.DictReader(file)
        if "code" in (reader.fieldnames or []):
            for row in reader:
                raw = (row.get("code") or "").strip()
                if raw:
                    rows.append(raw)
            return rows

    with path.open("r", encoding="utf-8", newline="") as file:
        for line in file:
            raw = line.strip()
            if raw:
                rows.append(raw)
    return rows


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reward catalog and stock administration tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create", help="create a reward")
    create.add_argument("--name", required=True)
    create.add_argument("--face-value", required=True)
    create.add_argument("--category", choices=REWARD_CATEGORIES, required=True)
    create.add_argument("--weight", required=True)
    create.add_argument("--stock", type=int, default=0)
    create.add_argument("--description")
    create.add_argument("--valid-from", help="ISO datetime")
    create.add_argument("--valid-to", help="ISO datetime")
    create.add_argument("--status", choices=REWARD_STATUSES, default="DRAFT")
    create.add_argument("--code-generation", choices=CODE_GENERATION_POLICIES, default="AUTO")
    create.add_argument("--code-prefix", default=DEFAULT_CODE_PREFIX)
    create.add_argument("--created-by", required=True)

    update = subparsers.add_parser("update", help="edit reward details, weight or validity window")
    update.add_argument("--reward-id", type=UUID, required=True)
    update.add_argument("--name")
    update.add_argument("--description")
    update.add_argument("--face-value")
    update.add_argument("--weight")
    update.add_argument("--valid-from", help="ISO datetime")
    update.add_argument("--valid-to", help="ISO datetime")
    update.add_argument("--clear-window", action="store_true", help="remove both validity bounds")

    adjust = subparsers.add_parser("adjust-stock", help="add or remove stock")
    adjust.add_argument("--reward-id", type=UUID, required=True)
    adjust.add_argument("--delta", type=int, required=True)
    adjust.add_argument("--reason", required=True)
    adjust.add_argument("--created-by", required=True)

    import_codes = subparsers.add_parser("import-codes", help="import pre-seeded codes from CSV")
    import_codes.add_argument("--reward-id", type=UUID, required=True)
    import_codes.add_argument("--import-csv", type=Path, required=True)
    import_codes.add_argument("--reason", required=True)
    import_codes.add_argument("--created-by", required=True)

    set_status = subparsers.add_parser("set-status", help="activate or deactivate a reward")
    set_status.add_argument("--reward-id", type=UUID, required=True)
    set_status.add_argument("--status", choices=REWARD_STATUSES, required=True)

    return parser


async def _run_create(args: argparse.Namespace) -> str:
    valid_from = parse_utc_datetime(args.valid_from) if args.valid_from else None
    valid_to = parse_utc_datetime(args.valid_to) if args.valid_to else None
    async with SessionLocal.begin() as session:
        reward = await create_reward(
            session,
            name=args.name,
            face_value=args.face_value,
            category=args.category,
            weight=args.weight,
            stock=args.stock,
            description=args.description,
            valid_from=valid_from,
            valid_to=valid_to,
            status=args.status,
            code_generation=args.code_generation,
            code_prefix=args.code_prefix,
            created_by=args.created_by,
        )
        return f"created reward_id={reward.id} stock={reward.stock_remaining} status={reward.status}"


def _update_changes(args: argparse.Namespace) -> dict[str, object]:
    changes: dict[str, object] = {}
    for field in ("name", "description", "face_value", "weight"):
        value = getattr(args, field)
        if value is not None:
            changes[field] = value
    if args.clear_window:
        changes["valid_from"] = None
        changes["valid_to"] = None
    if args.valid_from:
        changes["valid_from"] = parse_utc_datetime(args.valid_from)
    if args.valid_to:
        changes["valid_to"] = parse_utc_datetime(args.valid_to)
    return changes


async def _run_update(args: argparse.Namespace) -> str:
    changes = _update_changes(args)
    if not changes:
        return f"reward_id={args.reward_id} unchanged"
    async with SessionLocal.begin() as session:
        reward = await update_reward(session, reward_id=args.reward_id, **changes)
        return f"updated reward_id={reward.id} fields={','.join(sorted(changes))}"


async def _run_adjust_stock(args: argparse.Namespace) -> str:
    async with SessionLocal.begin() as session:
        result = await adjust_stock(
            session,
            reward_id=args.reward_id,
            delta=args.delta,
            reason=args.reason,
            created_by=args.created_by,
        )
    return (
        f"adjusted reward_id={result.reward_id} previous={result.previous_stock} "
        f"new={result.new_stock} codes_provisioned={result.codes_provisioned}"
    )


async def _run_import_codes(args: argparse.Namespace) -> str:
    raw_codes = _load_raw_codes_from_csv(args.import_csv)
    async with SessionLocal.begin() as session:
        result = await import_pre_seeded_codes(
            session,
            reward_id=args.reward_id,
            raw_codes=raw_codes,
            reason=args.reason,
            created_by=args.created_by,
        )
    return f"imported reward_id={result.reward_id} codes={result.codes_provisioned} new_stock={result.new_stock}"


async def _run_set_status(args: argparse.Namespace) -> str:
    async with SessionLocal.begin() as session:
        reward = await set_reward_status(session, reward_id=args.reward_id, status=args.status)
        return f"reward_id={reward.id} status={reward.status}"


COMMANDS = {
    "create": _run_create,
    "update": _run_update,
    "adjust-stock": _run_adjust_stock,
    "import-codes": _run_import_codes,
    "set-status": _run_set_status,
}


async def _run(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging("WARNING")
    summary = await COMMANDS[args.command](args)
    print(summary)  # noqa: T201
    return 0


def main(argv: list[str] | None = None) -> int:
    return asyncio.run(_run(argv))


if __name__ == "__main__":
    raise SystemExit(main())
