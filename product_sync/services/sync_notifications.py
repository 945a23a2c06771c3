"""Admin messages sent after a sync attempt."""
import logging
from typing import Optional, Protocol, Tuple

from product_sync.constants.sync import NotificationKind
from product_sync.schemas.sync_schemas import Product

logger = logging.getLogger(__name__)

SUBJECTS = {
    NotificationKind.FAILURE: "Product Sync Error",
    NotificationKind.HIDDEN: "Product Hidden",
    NotificationKind.RESTORED: "Product Restored",
}


class Notifier(Protocol):
    def send(self, to_address: str, subject: str, body: str) -> None:
        ...


def compose_message(
    kind: NotificationKind,
    product: Product,
    site_name: str,
    error: str = "",
    error_count: int = 0,
    max_errors: int = 1,
) -> Tuple[str, str]:
    """
    Build subject and body for an admin message.

    Returns:
        Tuple of (subject, body)
    """
    subject = f"[{site_name}] {SUBJECTS[kind]}"
    lines = [
        "Hello,",
        "",
        f"Product: {product.label}",
        f"Product ID: {product.id}",
    ]
    if kind == NotificationKind.RESTORED:
        lines += [
            "",
            "The product synced successfully again and is visible in the catalog.",
        ]
    else:
        lines += [
            f"Error: {error}",
            f"Consecutive errors: {error_count} of {max_errors}",
            "",
        ]
        if kind == NotificationKind.HIDDEN:
            lines.append("The product has been hidden from the catalog until the issue is resolved.")
        else:
            lines.append(
                f"The product will be hidden after {max_errors} consecutive failed syncs."
            )
    lines += ["", "Best regards,", site_name]
    return subject, "\n".join(lines)


def notify(
    notifier: Optional[Notifier],
    to_address: str,
    kind: NotificationKind,
    product: Product,
    site_name: str,
    **details,
) -> None:
    """Send a message; delivery problems are logged and never raised."""
    if notifier is None or not to_address:
        return
    subject, body = compose_message(kind, product, site_name, **details)
    try:
        notifier.send(to_address, subject, body)
    except Exception as e:
        logger.warning(f"Could not send {kind.value} notification for product {product.id}: {e}")
