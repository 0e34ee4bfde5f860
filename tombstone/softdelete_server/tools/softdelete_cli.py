"""
Operator CLI for the soft-delete engine.

This tool works directly against a SQLite file:
- migrate: Add tombstone columns to eligible tables
- trash: List tombstoned records of a resource type
- restore: Restore a record or document
- purge: Permanently remove a record or document
- settings: Show or change restore behavior

Resource types are loaded from a YAML or JSON file:

    resource_types:
      - uid: api::article.article
        table: articles
        attributes:
          - {name: title, kind: str, required: true}

Usage:
    softdelete migrate --db app.db --types types.yaml
    softdelete trash --db app.db --types types.yaml --uid api::article.article
    softdelete restore --db app.db --types types.yaml --uid api::page.page --document-key doc-1
    softdelete purge --db app.db --types types.yaml --uid api::article.article --id 42
    softdelete settings set --db app.db --types types.yaml --versioned restore-as-draft

Invariants:
    - Restore and purge exit non-zero when nothing matched
    - JSON output is deterministic (sorted keys)

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep output format stable for scripting
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ..config import EngineConfig
from ..engine import SoftDeleteEngine, setup_logging
from ..errors import SoftDeleteError
from ..schema.registry import ResourceTypeRegistry
from ..softdelete.actors import Actor, ActorKind, AuthContext

logger = logging.getLogger(__name__)

# Actor kind -> authentication strategy it is resolved from
_KIND_STRATEGIES = {
    ActorKind.ADMIN: "admin",
    ActorKind.APPLICATION_USER: "users-permissions",
}


class SoftDeleteCLI:
    """CLI operations over a started engine.

    Example:
        >>> cli = SoftDeleteCLI(engine)
        >>> print(await cli.trash("api::article.article"))
    """

    def __init__(self, engine: SoftDeleteEngine) -> None:
        self.engine = engine

    def migrate(self) -> dict[str, Any]:
        report = self.engine.report
        return {
            "added": report.added,
            "unchanged": sorted(report.unchanged),
            "failed": {uid: error.message for uid, error in report.failed.items()},
            "skipped": sorted(report.skipped),
        }

    async def trash(self, uid: str) -> dict[str, Any]:
        listing = await self.engine.trash.list_tombstoned(uid)
        return listing.to_dict()

    async def restore(
        self, uid: str, target: int | str, context: AuthContext | None = None
    ) -> dict[str, Any]:
        result = await self.engine.trash.restore(uid, target, context)
        output: dict[str, Any] = {
            "uid": uid,
            "restored": [r.to_dict() for r in result.records],
            "displaced": [r.id for r in result.displaced],
        }
        if result.failure is not None:
            output["failed"] = result.failure.failed
        return output

    async def purge(self, uid: str, target: int | str) -> dict[str, Any]:
        count = await self.engine.trash.purge(uid, target)
        return {"uid": uid, "purged": count}

    async def get_settings(self) -> dict[str, Any]:
        return (await self.engine.trash.get_behavior_config()).to_storage()

    async def set_settings(self, values: dict[str, Any]) -> dict[str, Any]:
        return (await self.engine.trash.set_behavior_config(values)).to_storage()


def load_registry(path: str) -> ResourceTypeRegistry:
    """Load resource types from a YAML or JSON file.

    Both a bare list and a {"resource_types": [...]} mapping are accepted.
    """
    text = Path(path).read_text()
    if path.endswith(".json"):
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)

    if isinstance(data, list):
        data = {"resource_types": data}
    return ResourceTypeRegistry.from_dict(data or {})


def parse_actor(actor_str: str | None) -> AuthContext | None:
    """Turn "admin:7" into the auth context the engine resolves actors from."""
    if not actor_str:
        return None
    actor = Actor.parse(actor_str)
    return AuthContext(
        strategy=_KIND_STRATEGIES.get(actor.kind),
        credentials={"id": actor.id},
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Soft-delete engine operator tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--db", help="SQLite database file (default: SOFTDELETE_DB_PATH)")
    common.add_argument("--types", required=True, help="Resource types file (YAML or JSON)")
    common.add_argument(
        "--create-tables", action="store_true", help="Create missing resource type tables"
    )

    subparsers.add_parser("migrate", parents=[common], help="Add tombstone columns")

    trash_parser = subparsers.add_parser("trash", parents=[common], help="List tombstoned records")
    trash_parser.add_argument("--uid", required=True, help="Resource type uid")

    for name, help_text in (("restore", "Restore a record or document"),
                            ("purge", "Permanently remove a record or document")):
        target_parser = subparsers.add_parser(name, parents=[common], help=help_text)
        target_parser.add_argument("--uid", required=True, help="Resource type uid")
        target = target_parser.add_mutually_exclusive_group(required=True)
        target.add_argument("--id", type=int, help="Record id")
        target.add_argument("--document-key", help="Document key (versioned types)")
        if name == "restore":
            target_parser.add_argument("--actor", help="Acting user, e.g. admin:7")

    settings_parser = subparsers.add_parser("settings", help="Restore behavior settings")
    settings_sub = settings_parser.add_subparsers(dest="action", required=True)
    settings_sub.add_parser("get", parents=[common], help="Show settings")
    set_parser = settings_sub.add_parser("set", parents=[common], help="Change settings")
    set_parser.add_argument(
        "--single-type", choices=["soft-delete", "delete-permanently"],
        help="What happens to the live record of a single type on restore",
    )
    set_parser.add_argument(
        "--versioned", choices=["restore-as-draft", "restore-unchanged"],
        help="How versioned documents are restored",
    )

    return parser


async def run(args: argparse.Namespace, config: EngineConfig) -> dict[str, Any]:
    registry = load_registry(args.types)
    engine = SoftDeleteEngine.from_config(registry, config)
    await engine.start(create_tables=args.create_tables)
    cli = SoftDeleteCLI(engine)

    if args.command == "migrate":
        return cli.migrate()
    if args.command == "trash":
        return await cli.trash(args.uid)
    if args.command in ("restore", "purge"):
        target: int | str = args.id if args.id is not None else args.document_key
        if args.command == "restore":
            return await cli.restore(args.uid, target, parse_actor(args.actor))
        return await cli.purge(args.uid, target)
    if args.action == "get":
        return await cli.get_settings()

    values = {}
    if args.single_type:
        values["singleTypeRestoreBehavior"] = args.single_type
    if args.versioned:
        values["versionedRestoreBehavior"] = args.versioned
    return await cli.set_settings(values)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = EngineConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    if args.db:
        config = replace(config, storage=replace(config.storage, db_path=args.db))
    setup_logging(config)

    try:
        output = asyncio.run(run(args, config))
    except (SoftDeleteError, ValidationError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(json.dumps(output, indent=2, sort_keys=True, default=str))


if __name__ == "__main__":
    main()
