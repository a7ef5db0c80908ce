"""Receipt output for print agents.

Printer hardware and receipt typography are out of scope; a ReceiptPrinter
only has to turn an order into a ticket somewhere durable.
"""

import asyncio
from pathlib import Path
from typing import Any, Protocol

from src.theaterpos.core.logging import get_logger

logger = get_logger(__name__)


class ReceiptPrinter(Protocol):
    async def print_order(self, order: dict[str, Any], tenant_name: str) -> None: ...


def render_receipt(order: dict[str, Any], tenant_name: str) -> str:
    """Plain-text kitchen ticket."""
    customer = order.get("customer") or {}
    pricing = order.get("pricing") or {}
    lines = [
        tenant_name,
        f"Order {order.get('orderNumber', '?')}",
        f"Payment: {order.get('paymentMethod', '')} ({order.get('paymentStatus', '')})",
    ]
    if customer.get("seat") or customer.get("screen"):
        lines.append(f"Seat {customer.get('seat', '-')} / Screen {customer.get('screen', '-')}")
    lines.append("-" * 32)
    for item in order.get("items", []):
        quantity, name = item.get("quantity", 1), item.get("name", "")
        lines.append(f"{quantity} x {name}  {item.get('finalTotal', '')}")
    lines.append("-" * 32)
    if pricing:
        lines.append(f"CGST {pricing.get('cgst', '0')}  SGST {pricing.get('sgst', '0')}")
        lines.append(f"TOTAL {pricing.get('total', '0')}")
    if order.get("notes"):
        lines.append(f"Note: {order['notes']}")
    return "\n".join(lines) + "\n"


class LogReceiptPrinter:
    """Writes tickets to the log. Default when no spool directory is configured."""

    async def print_order(self, order: dict[str, Any], tenant_name: str) -> None:
        logger.info(
            "Receipt",
            order_number=order.get("orderNumber"),
            receipt=render_receipt(order, tenant_name),
        )


class SpoolReceiptPrinter:
    """One text file per order in a spool directory a print daemon watches."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _write(self, name: str, content: str) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self.directory / f"{name}.txt"
        partial = target.with_suffix(".tmp")
        partial.write_text(content, encoding="utf-8")
        partial.replace(target)
        return target

    async def print_order(self, order: dict[str, Any], tenant_name: str) -> None:
        name = str(order.get("orderNumber") or order.get("id"))
        path = await asyncio.to_thread(self._write, name, render_receipt(order, tenant_name))
        logger.info("Receipt spooled", order_number=name, path=str(path))


def build_printer(spool_dir: str | None) -> ReceiptPrinter:
    if spool_dir:
        return SpoolReceiptPrinter(spool_dir)
    return LogReceiptPrinter()
