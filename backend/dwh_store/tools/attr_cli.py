"""
Attribute maintenance CLI for dwh-store.

This tool inspects and repairs project attributes directly through the
attribute store (so every write is still validated):
- get: Print one typed attribute
- list: Print all attributes of a project, including corruption markers
- set: Write one attribute with an explicit kind
- delete: Remove one attribute
- audit: Scan for rows whose stored text fails to parse

Usage:
    python -m backend.dwh_store.tools.attr_cli --db warehouse.db list 7
    python -m backend.dwh_store.tools.attr_cli set 7 tvl 1234.5 --kind float
    python -m backend.dwh_store.tools.attr_cli audit --format json

Invariants:
    - audit exits non-zero when corrupted rows exist
    - Store errors exit non-zero with the error code on stderr
    - Output is deterministic (sorted keys)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from ..attributes import AttributeStore, ValueKind
from ..config import StorageConfig
from ..errors import WarehouseError
from ..storage import Database

logger = logging.getLogger(__name__)


class AttributeCLI:
    """Commands over an AttributeStore.

    Example:
        >>> cli = AttributeCLI(AttributeStore(db))
        >>> await cli.list_project(7)
        {'tvl': {'kind': 'float', 'payload': 1234.5}}
    """

    def __init__(self, store: AttributeStore) -> None:
        self.store = store

    async def get(self, project_id: int, key: str) -> dict[str, Any]:
        return (await self.store.get_attribute(project_id, key)).to_dict()

    async def list_project(self, project_id: int) -> dict[str, Any]:
        listing = await self.store.list_attributes(project_id)
        # CorruptionError markers serialize through WarehouseError.to_dict()
        return {key: item.to_dict() for key, item in listing.items()}

    async def set_value(
        self,
        project_id: int,
        key: str,
        value: str,
        kind: str,
        confirm_kind_change: bool = False,
    ) -> dict[str, Any]:
        typed = await self.store.set_attribute(
            project_id, key, value, kind, allow_kind_change=confirm_kind_change
        )
        return typed.to_dict()

    async def delete(self, project_id: int, key: str) -> bool:
        return await self.store.delete_attribute(project_id, key)

    async def audit(self, project_id: int | None = None) -> list[dict[str, Any]]:
        return [e.details for e in await self.store.find_corrupt_attributes(project_id)]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="dwh-store attribute maintenance tool")
    parser.add_argument("--db", help="SQLite database path (default: $DWH_DB_PATH)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    get_parser = subparsers.add_parser("get", help="Print one attribute")
    get_parser.add_argument("project_id", type=int)
    get_parser.add_argument("key")

    list_parser = subparsers.add_parser("list", help="Print all attributes of a project")
    list_parser.add_argument("project_id", type=int)

    set_parser = subparsers.add_parser("set", help="Write one attribute")
    set_parser.add_argument("project_id", type=int)
    set_parser.add_argument("key")
    set_parser.add_argument("value", help="Text form of the value")
    set_parser.add_argument(
        "--kind", required=True, choices=[k.value for k in ValueKind], help="Value kind"
    )
    set_parser.add_argument(
        "--confirm-kind-change",
        action="store_true",
        help="Allow replacing an existing attribute of another kind",
    )

    delete_parser = subparsers.add_parser("delete", help="Remove one attribute")
    delete_parser.add_argument("project_id", type=int)
    delete_parser.add_argument("key")

    audit_parser = subparsers.add_parser("audit", help="Scan for corrupted attributes")
    audit_parser.add_argument("--project", type=int, help="Restrict scan to one project")
    audit_parser.add_argument(
        "--format", choices=["text", "json"], default="text", help="Output format"
    )

    return parser


async def _run(args: argparse.Namespace) -> int:
    db_path = args.db or StorageConfig.from_env().db_path
    db = Database(db_path)
    await db.initialize()
    cli = AttributeCLI(AttributeStore(db))

    if args.command == "get":
        print(json.dumps(await cli.get(args.project_id, args.key), sort_keys=True))
    elif args.command == "list":
        print(json.dumps(await cli.list_project(args.project_id), indent=2, sort_keys=True))
    elif args.command == "set":
        result = await cli.set_value(
            args.project_id, args.key, args.value, args.kind, args.confirm_kind_change
        )
        print(json.dumps(result, sort_keys=True))
    elif args.command == "delete":
        deleted = await cli.delete(args.project_id, args.key)
        print("Deleted" if deleted else "Already absent")
    elif args.command == "audit":
        corrupted = await cli.audit(args.project)
        if args.format == "json":
            print(json.dumps(corrupted, indent=2, sort_keys=True))
        elif not corrupted:
            print("No corrupted attributes")
        else:
            print(f"Found {len(corrupted)} corrupted attribute(s):")
            for item in corrupted:
                print(f"  [{item['value_type']}] project {item['project_id']} / {item['key']}")
                print(f"          {item['reason']}")
        return 1 if corrupted else 0

    return 0


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for the attribute tool."""
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(_run(args))
    except WarehouseError as e:
        print(f"{e.code}: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
