"""
CLI entry point for the DSC storage marketplace.

Usage:
    python -m DSC_Storage.cli --user alice providers
    python -m DSC_Storage.cli --user alice upload report.pdf photo.png
    python -m DSC_Storage.cli --user alice upload big.iso --provider <provider-uuid>
    python -m DSC_Storage.cli --user alice deals
    python -m DSC_Storage.cli --user alice retrieve <deal-uuid>
    python -m DSC_Storage.cli --user alice share <deal-uuid> --days 3 --max-access 5
    python -m DSC_Storage.cli --user alice delete <deal-uuid>
    python -m DSC_Storage.cli stats
    python -m DSC_Storage.cli refresh
    python -m DSC_Storage.cli backup --frequency weekly --replication 5
"""

import argparse
import dataclasses
import asyncio
import logging
import mimetypes
import os
import sys
import uuid
from typing import Optional
from uuid import UUID

from DSC_Storage.dsc_shared import config, errors
from DSC_Storage.dsc_shared.deal_status import derive_status
from DSC_Storage.dsc_shared.types import BackupSettings, FileDescriptor, Notification
from DSC_Storage.session import StorageSession


# ─── ANSI Display Helpers ───

class Display:
    """Terminal formatting with ANSI colors."""

    RESET   = "\033[0m"
    BOLD    = "\033[1m"
    DIM     = "\033[2m"

    RED     = "\033[91m"
    GREEN   = "\033[92m"
    YELLOW  = "\033[93m"
    BLUE    = "\033[94m"
    MAGENTA = "\033[95m"
    CYAN    = "\033[96m"
    WHITE   = "\033[97m"

    STATUS_COLORS = {
        "pending":   YELLOW,
        "active":    GREEN,
        "completed": CYAN,
        "failed":    RED,
        "expired":   DIM,
    }

    @classmethod
    def arrow(cls, msg: str) -> None:
        print(f"  {cls.BLUE}→{cls.RESET} {msg}")

    @classmethod
    def success(cls, msg: str) -> None:
        print(f"  {cls.GREEN}✓{cls.RESET} {msg}")

    @classmethod
    def error(cls, msg: str) -> None:
        print(f"  {cls.RED}✗{cls.RESET} {msg}")

    @classmethod
    def stat_row(cls, label: str, value, width: int = 28) -> None:
        print(f"  {label:<{width}} {cls.BOLD}{value}{cls.RESET}")

    @classmethod
    def status_label(cls, status: str) -> str:
        color = cls.STATUS_COLORS.get(status, cls.WHITE)
        return f"{color}{cls.BOLD}{status}{cls.RESET}"

    @classmethod
    def table(cls, headers: list[str], rows: list[list], col_width: int = 14) -> None:
        header_line = "".join(f"{h:<{col_width}}" for h in headers)
        print(f"\n  {cls.BOLD}{header_line}{cls.RESET}")
        print(f"  {'─' * (col_width * len(headers))}")
        for row in rows:
            cells = []
            for cell in row:
                s = str(cell)
                if s in cls.STATUS_COLORS:
                    # Pad accounting for ANSI escape chars
                    cells.append(cls.status_label(s) + " " * max(0, col_width - len(s)))
                else:
                    cells.append(f"{s:<{col_width}}")
            print(f"  {''.join(cells)}")
        print()

    @classmethod
    def section(cls, title: str) -> None:
        print(f"\n  {cls.MAGENTA}{cls.BOLD}── {title} ──{cls.RESET}")

    @classmethod
    def notification(cls, note: Notification) -> None:
        if note.variant == "destructive":
            cls.error(f"{note.title}: {note.description}")
        else:
            cls.success(f"{note.title}: {note.description}")


D = Display  # shorthand


def format_file_size(size: int) -> str:
    if size == 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    i = min((size.bit_length() - 1) // 10, len(units) - 1)
    return f"{round(size / 1024 ** i, 2):g} {units[i]}"


def user_uuid(name: str) -> UUID:
    """Deterministic user id derived from a name."""
    return uuid.uuid5(uuid.NAMESPACE_DNS, f"dsc.{name}")


def _describe_file(path: str) -> FileDescriptor:
    mime, _ = mimetypes.guess_type(path)
    return FileDescriptor(name=os.path.basename(path), size=os.path.getsize(path), mime_type=mime)


# ─── Commands ───

async def cmd_providers(session: StorageSession, args) -> None:
    D.section("Storage providers")
    D.table(
        ["Name", "Location", "Reputation", "Price/GB", "Free GB", "Uptime %"],
        [
            [p.name, p.location, p.reputation_score, p.price_per_gb.normalize(),
             p.available_storage_gb, p.uptime_percentage]
            for p in session.providers
        ],
    )


async def cmd_deals(session: StorageSession, args) -> None:
    D.section("Storage deals")
    D.table(
        ["Deal", "File", "Size", "Cost", "Status", "Expires"],
        [
            [str(d.id)[:8], d.file_name[:13], format_file_size(d.file_size),
             d.total_cost.normalize(), derive_status(d), d.expires_at.strftime("%Y-%m-%d")]
            for d in session.deals
        ],
    )
    _print_wallet(session)


async def cmd_upload(session: StorageSession, args) -> None:
    files = [_describe_file(p) for p in args.files]
    provider = None
    if args.provider:
        provider = next((p for p in session.providers if str(p.id) == args.provider), None)
        if provider is None:
            D.error(f"Unknown provider {args.provider}; using default rate")

    deals = await session.create_batch(files, provider)
    D.arrow(f"Waiting for {len(deals)} activation(s)…")
    await session.wait_for_activations()
    await cmd_deals(session, args)


async def cmd_retrieve(session: StorageSession, args) -> None:
    content = await session.retrieve_content(args.deal_id)
    D.stat_row("Content URL", content.url[:60])
    D.stat_row("MIME type", content.mime_type)
    _print_wallet(session)


async def cmd_delete(session: StorageSession, args) -> None:
    await session.delete_deal(args.deal_id)


async def cmd_share(session: StorageSession, args) -> None:
    link = await session.create_share_link(
        args.deal_id,
        expiry_days=args.days,
        max_access=args.max_access,
        password=args.password,
        allow_download=not args.no_download,
    )
    D.stat_row("Share URL", link.share_url)
    D.stat_row("Expires", link.expires_at.strftime("%Y-%m-%d"))


async def cmd_stats(session: StorageSession, args) -> None:
    stats = session.network_stats
    D.section("Network")
    if stats is None:
        D.arrow("No network stats recorded")
        return
    D.stat_row("Nodes", stats.total_nodes)
    D.stat_row("Active deals", stats.active_deals)
    D.stat_row("Storage used (GB)", stats.total_storage_used_gb)
    D.stat_row("Health score", stats.network_health_score)
    D.stat_row("Avg response (ms)", stats.avg_response_time_ms)


async def cmd_refresh(session: StorageSession, args) -> None:
    result = await session.refresh_statuses()
    D.stat_row("Deals activated", result.deals_activated)
    D.stat_row("Deals expired", result.deals_expired)


BACKUP_FLAGS = {
    "auto_backup": "auto",
    "backup_frequency": "frequency",
    "replication_factor": "replication",
    "storage_regions": "regions",
    "compression_level": "compression",
    "max_versions": "max_versions",
    "retention_period": "retention",
    "bandwidth_limit_mbps": "bandwidth",
}


def backup_changes(settings: BackupSettings, args) -> BackupSettings:
    changes = {
        field: getattr(args, flag)
        for field, flag in BACKUP_FLAGS.items()
        if getattr(args, flag) is not None
    }
    return dataclasses.replace(settings, **changes) if changes else settings


async def cmd_backup(session: StorageSession, args) -> None:
    current = session.load_backup_settings()
    updated = backup_changes(current, args)
    if updated != current:
        session.save_backup_settings(updated)

    D.section("Backup settings")
    for field in dataclasses.fields(updated):
        value = getattr(updated, field.name)
        if isinstance(value, list):
            value = ", ".join(value)
        D.stat_row(field.name, value)


def _print_wallet(session: StorageSession) -> None:
    wallet = session.wallet
    if wallet is None:
        return
    D.stat_row("DSC balance", wallet.dsc_balance.normalize())
    D.stat_row("Total spent", wallet.total_spent.normalize())


COMMANDS = {
    "providers": cmd_providers,
    "deals": cmd_deals,
    "upload": cmd_upload,
    "retrieve": cmd_retrieve,
    "delete": cmd_delete,
    "share": cmd_share,
    "stats": cmd_stats,
    "refresh": cmd_refresh,
    "backup": cmd_backup,
}


async def run(args) -> int:
    user_id: Optional[UUID] = user_uuid(args.user) if args.user else None
    session = StorageSession(user_id, on_notify=D.notification)
    try:
        await session.setup()
    except (errors.StorageMarketError, errors.ServerDatabaseError) as e:
        D.error(str(e))
        await session.teardown()
        return 1

    try:
        if user_id is not None:
            await session.open_wallet()
        if not await session.load():
            return 1
        await COMMANDS[args.command](session, args)
        return 0
    except (errors.StorageMarketError, errors.ServerDatabaseError):
        # Already reported through the session notifications
        return 1
    finally:
        await session.teardown()


# ─── Arg parsing ───

def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="DSC Storage Marketplace: deals, wallet and sharing",
    )
    parser.add_argument("--user", help="This user's name (e.g., alice)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("providers", help="List storage providers by reputation")
    sub.add_parser("deals", help="List your storage deals")
    sub.add_parser("stats", help="Show the latest network stats snapshot")
    sub.add_parser("refresh", help="Run the server-side deal status refresh")

    upload = sub.add_parser("upload", help="Create storage deals for local files")
    upload.add_argument("files", nargs="+")
    upload.add_argument("--provider", help="Provider id to price against")

    retrieve = sub.add_parser("retrieve", help="Retrieve a stored file")
    retrieve.add_argument("deal_id", type=UUID)

    delete = sub.add_parser("delete", help="Delete a storage deal")
    delete.add_argument("deal_id", type=UUID)

    share = sub.add_parser("share", help="Generate a share link for a deal")
    share.add_argument("deal_id", type=UUID)
    share.add_argument("--days", type=int, default=7)
    share.add_argument("--max-access", type=int, default=None)
    share.add_argument("--password", default=None)
    share.add_argument("--no-download", action="store_true")

    backup = sub.add_parser("backup", help="Show or update local backup settings")
    auto = backup.add_mutually_exclusive_group()
    auto.add_argument("--auto", dest="auto", action="store_true", default=None)
    auto.add_argument("--no-auto", dest="auto", action="store_false")
    backup.add_argument("--frequency", choices=sorted(config.VALID_BACKUP_FREQUENCIES))
    backup.add_argument("--replication", type=int)
    backup.add_argument("--regions", nargs="+")
    backup.add_argument("--compression", type=int)
    backup.add_argument("--max-versions", type=int)
    backup.add_argument("--retention", choices=sorted(config.VALID_RETENTION_PERIODS))
    backup.add_argument("--bandwidth", type=int, help="Bandwidth limit in Mbps")

    return parser.parse_args(argv)


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command not in ("providers", "stats", "refresh", "backup") and not args.user:
        print(f"{D.RED}Error: --user is required for {args.command}{D.RESET}")
        sys.exit(1)

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
