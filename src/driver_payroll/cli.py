"""Driver payroll command line interface.

Provides operational tools for:
- Creating the schema
- Seeding drivers
- Showing the current pay period
- Printing per-driver payroll totals

Usage:
    python -m driver_payroll.cli init-db
    python -m driver_payroll.cli add-driver --name "Ada Lovelace" --mileage-rate 0.55
    python -m driver_payroll.cli current-period
    python -m driver_payroll.cli payroll --period-start 2024-01-01
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Coroutine

from driver_payroll.calculators.pay_period import PayPeriod
from driver_payroll.config import Settings, get_settings
from driver_payroll.database import create_tables, dispose_db, get_session, init_db
from driver_payroll.errors import DriverPayrollError
from driver_payroll.services.fleet_service import DefaultRates, FleetService
from driver_payroll.services.lifecycle_service import LifecycleService
from driver_payroll.services.log_repository import LogFilter
from driver_payroll.services.payroll_aggregator import PayrollAggregator
from driver_payroll.services.state_machine import Actor


def parse_date(s: str) -> date:
    """Parse YYYY-MM-DD date string."""
    return date.fromisoformat(s)


def parse_rate(s: str) -> Decimal:
    """Parse a non-negative decimal rate."""
    try:
        value = Decimal(s)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"invalid rate: {s!r}")
    if value < 0:
        raise argparse.ArgumentTypeError("rate cannot be negative")
    return value


class DriverPayrollCli:
    """Driver payroll command line interface."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m driver_payroll.cli",
            description="Driver payroll operational tools",
        )
        parser.add_argument(
            "--database-url",
            type=str,
            help="Override DATABASE_URL",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser("init-db", help="Create missing tables")

        add_driver = subparsers.add_parser("add-driver", help="Seed a driver")
        add_driver.add_argument("--name", type=str, required=True, help="Driver name")
        add_driver.add_argument("--email", type=str, help="Contact email")
        add_driver.add_argument(
            "--mileage-rate",
            type=parse_rate,
            help="Default currency per mile",
        )
        add_driver.add_argument(
            "--detention-rate",
            type=parse_rate,
            help="Default currency per detention hour",
        )

        subparsers.add_parser("current-period", help="Show the active pay period")

        payroll = subparsers.add_parser("payroll", help="Print per-driver totals")
        payroll.add_argument("--from", dest="date_from", type=parse_date, help="First log date")
        payroll.add_argument("--to", dest="date_to", type=parse_date, help="Last log date")
        payroll.add_argument("--driver-id", type=int, help="Restrict to one driver")
        payroll.add_argument("--truck-id", type=int, help="Restrict to one truck")
        payroll.add_argument(
            "--period-start",
            type=parse_date,
            help="Restrict to entries assigned to the period starting on this date",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        handlers: dict[str, Callable[[argparse.Namespace], Coroutine[Any, Any, int]]] = {
            "init-db": self._cmd_init_db,
            "add-driver": self._cmd_add_driver,
            "current-period": self._cmd_current_period,
            "payroll": self._cmd_payroll,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return asyncio.run(self._with_db(handler, parsed))
        except DriverPayrollError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1

    async def _with_db(
        self,
        handler: Callable[[argparse.Namespace], Coroutine[Any, Any, int]],
        args: argparse.Namespace,
    ) -> int:
        init_db(args.database_url or self.settings.database_url)
        try:
            return await handler(args)
        finally:
            await dispose_db()

    async def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create missing tables."""
        engine, _ = init_db()
        await create_tables(engine)
        print("Schema ready")
        return 0

    async def _cmd_add_driver(self, args: argparse.Namespace) -> int:
        """Seed a driver."""
        async with get_session() as session:
            driver = await FleetService(session).create_driver(
                args.name,
                Actor.admin("cli"),
                email=args.email,
                rates=DefaultRates(
                    mileage_rate=args.mileage_rate,
                    detention_rate=args.detention_rate,
                ),
            )
        print(f"Created driver {driver.driver_id}: {driver.name}")
        return 0

    async def _cmd_current_period(self, args: argparse.Namespace) -> int:
        """Show the active pay period."""
        async with get_session() as session:
            period = LifecycleService(
                session, pay_period_config=self.settings.pay_period_config()
            ).current_period()
        start, end = period.as_strings()
        print(f"{start} .. {end}")
        return 0

    async def _cmd_payroll(self, args: argparse.Namespace) -> int:
        """Print per-driver payroll totals."""
        period = PayPeriod.starting(args.period_start) if args.period_start else None
        async with get_session() as session:
            rows = await PayrollAggregator(session).aggregate(
                LogFilter(
                    date_from=args.date_from,
                    date_to=args.date_to,
                    driver_id=args.driver_id,
                    truck_id=args.truck_id,
                    period=period,
                )
            )

        if not rows:
            print("No entries")
            return 0

        print(f"{'Driver':<24} {'Entries':>7} {'Miles':>10} {'Value h':>8} {'Det min':>8} {'Gross':>10}")
        print("=" * 72)
        total = Decimal("0")
        for row in rows:
            print(
                f"{row.driver_name[:24]:<24} {row.entry_count:>7} "
                f"{row.total_miles:>10.2f} {row.total_value_hours:>8.2f} "
                f"{row.total_detention_minutes:>8} {row.gross_pay:>10.2f}"
            )
            total += row.gross_pay
        print("=" * 72)
        print(f"{'Total':<24} {'':>7} {'':>10} {'':>8} {'':>8} {total:>10.2f}")
        return 0


def main() -> int:
    """CLI entry point."""
    logging.basicConfig(level=get_settings().log_level)
    cli = DriverPayrollCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
