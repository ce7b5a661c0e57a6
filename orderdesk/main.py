from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from typing import List, Optional

from orderdesk.data import database
from orderdesk.errors import OrderDeskError
from orderdesk.services import order_service
from orderdesk.services.ledger import OrderLedger
from orderdesk.services.lifecycle import list_order_statuses

logger = logging.getLogger("orderdesk")


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="orderdesk", description="Order desk for catalog orders")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    list_parser = commands.add_parser("orders", help="list orders with their discounted totals")
    list_parser.add_argument("--status", choices=list_order_statuses())
    list_parser.add_argument("--search", default="", help="match client name or order id")

    invoice_parser = commands.add_parser("invoice", help="export the delivery note of an order")
    invoice_parser.add_argument("order_id")
    invoice_parser.add_argument("--output", help="directory to write the PDF to")

    merge_parser = commands.add_parser("merge", help="merge orders of one client")
    merge_parser.add_argument("order_ids", nargs="+")
    merge_parser.add_argument("--date", required=True, type=date.fromisoformat, help="new delivery date (YYYY-MM-DD)")
    merge_parser.add_argument("--token", help="merged order id of an interrupted merge to resume")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        database.initialize()
        ledger = OrderLedger.load()

        if args.command == "orders":
            for row in order_service.list_order_summaries(ledger, search=args.search, status=args.status):
                print(
                    f"#{row.short_id}  {row.client_name:<30.30}  {row.delivery_date.isoformat()}  "
                    f"{row.status:<9}  {row.subtotal:>10.2f}  {-row.discount:>10.2f}  {row.final_total:>10.2f}"
                )
        elif args.command == "invoice":
            path = order_service.export_order_invoice(ledger, args.order_id, args.output)
            print(path)
        elif args.command == "merge":
            merged = order_service.merge_orders(ledger, args.order_ids, args.date, operation_token=args.token)
            print(merged.id)
    except (OrderDeskError, OSError) as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
