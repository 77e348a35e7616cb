"""
CLI script for the scheduled notification sweeps.

Usage:
    # Retry due pending email deliveries (oldest first)
    notification-queue --pending email --limit 200

    # Send daily / weekly digest emails
    notification-queue --daily-digest
    notification-queue --weekly-digest

    # Dry run (report what would be processed, send nothing)
    notification-queue --daily-digest --dry-run
"""

import argparse

from models import Channel, DigestFrequency, DigestType
from notifications.digest_builder import DIGEST_WINDOWS
from notifications.service import NotificationService
from shared.utils import print_summary, utc_now


def process_pending_queue(
    service: NotificationService, channel: Channel, limit: int, dry_run: bool = False
) -> dict[str, int]:
    """
    Retry due pending deliveries for one channel.

    Returns:
        Dictionary with stats: processed, remaining
    """
    print(f"Processing pending {channel.value} deliveries (limit {limit})")

    if dry_run:
        due = service.store.get_pending_deliveries(channel, limit, utc_now())
        for record, notification in due:
            print(
                f"  [DRY RUN] Would retry {notification.type.value} notification "
                f"{notification.id} for user {record.user_id} (attempts so far: {record.attempts})"
            )
        return {"processed": 0, "remaining": len(due)}

    processed = service.run_pending_retry_sweep(channel, limit)
    print(f"  ✓ Processed {processed} pending {channel.value} deliveries")
    return {"processed": processed}


def process_digests(
    service: NotificationService, digest_type: DigestType, dry_run: bool = False
) -> dict[str, int]:
    """
    Send digests of one type.

    Returns:
        Dictionary with stats: sent, failed, skipped
    """
    print(f"Processing {digest_type.value} digests")

    if dry_run:
        user_ids = service.store.list_user_ids_by_frequency(
            DigestFrequency(digest_type.value)
        )
        content = service.digests.collect_content(utc_now() - DIGEST_WINDOWS[digest_type])
        for user_id in user_ids:
            print(
                f"  [DRY RUN] Would send {digest_type.value} digest "
                f"({content.total_count} items) to user {user_id}"
            )
        if content.total_count == 0:
            return {"sent": 0, "failed": 0, "skipped": len(user_ids)}
        return {"sent": len(user_ids), "failed": 0, "skipped": 0}

    if digest_type == DigestType.WEEKLY:
        return service.run_weekly_digest_sweep()
    return service.run_daily_digest_sweep()


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run scheduled notification sweeps (pending retries and digests)"
    )

    parser.add_argument(
        "--pending",
        choices=[c.value for c in Channel],
        help="Retry pending deliveries for this channel",
    )

    parser.add_argument(
        "--limit",
        type=int,
        default=100,
        help="Maximum number of pending deliveries to process (default: 100)",
    )

    parser.add_argument(
        "--daily-digest", action="store_true", help="Send daily digest emails"
    )

    parser.add_argument(
        "--weekly-digest", action="store_true", help="Send weekly digest emails"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Dry run mode (don't actually send anything)",
    )

    args = parser.parse_args()

    if not (args.pending or args.daily_digest or args.weekly_digest):
        parser.error("Must specify --pending, --daily-digest or --weekly-digest")
    if args.limit < 1:
        parser.error("--limit must be at least 1")

    with NotificationService.from_settings() as service:
        if args.pending:
            channel = Channel(args.pending)
            stats = process_pending_queue(service, channel, args.limit, args.dry_run)
            print_summary(f"Pending {channel.value} Sweep Complete", stats)

        if args.daily_digest:
            stats = process_digests(service, DigestType.DAILY, args.dry_run)
            print_summary("Daily Digest Processing Complete", stats)

        if args.weekly_digest:
            stats = process_digests(service, DigestType.WEEKLY, args.dry_run)
            print_summary("Weekly Digest Processing Complete", stats)


if __name__ == "__main__":
    main()
