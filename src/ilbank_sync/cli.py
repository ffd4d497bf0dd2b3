#!/usr/bin/env python3
"""Command-line interface for ilbank-sync."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

from ilbank_sync.config import (
    get_state_path,
    get_ynab_budget_id,
    get_ynab_credentials,
    get_ynab_oauth_client,
    load_config,
)
from ilbank_sync.exceptions import ConfigError, LedgerError
from ilbank_sync.models import FileAnalysis
from ilbank_sync.normalizer import StatementFile, StatementNormalizer
from ilbank_sync.parsers import ParserRegistry
from ilbank_sync.reconcile import reconcile_account
from ilbank_sync.storage import IdentifierAccountMap, JsonFileStore
from ilbank_sync.ynab import (
    OAuthTokenRefresher,
    YNABClient,
    generate_import_id,
    pick_primary_budget,
)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description="Normalize Israeli bank and credit card statements for YNAB",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ilbank-sync ~/Downloads/statements/ -o transactions.csv
  ilbank-sync shekel123456789.csv --upload --account 123456789=<account-id>
  ilbank-sync ~/Downloads/statements/ --upload --dry-run
  ilbank-sync Export_0123.xls --reconcile
  ilbank-sync --list-parsers

Supported institutions:
  - Cal, Isracard, Max (credit cards)
  - Mizrahi Tfahot, Bank Hapoalim, Discount (bank accounts)
        """,
    )

    parser.add_argument(
        "inputs",
        nargs="*",
        help="Input files or directories",
    )
    parser.add_argument(
        "-o",
        "--output",
        default="transactions.csv",
        help="Output CSV file (default: transactions.csv)",
    )
    parser.add_argument(
        "--format",
        choices=["csv", "tsv"],
        default="csv",
        help="Output format (default: csv)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config.json file",
    )
    parser.add_argument(
        "--list-parsers",
        action="store_true",
        help="List supported institutions in detection order",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Verbose output",
    )

    # YNAB integration
    parser.add_argument(
        "--upload",
        action="store_true",
        help="Upload to YNAB instead of writing CSV",
    )
    parser.add_argument(
        "--token",
        help="YNAB access token (or YNAB_ACCESS_TOKEN, or config.json)",
    )
    parser.add_argument(
        "--budget-id",
        help="YNAB budget ID (default: configured, else the oldest budget)",
    )
    parser.add_argument(
        "--account",
        action="append",
        default=[],
        metavar="IDENTIFIER=ACCOUNT_ID",
        help="Send statements with this identifier to this YNAB account (repeatable)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be uploaded without actually uploading",
    )
    parser.add_argument(
        "--reconcile",
        action="store_true",
        help="Compare each statement balance with its YNAB account's cleared balance",
    )
    return parser


def parse_account_args(values: list[str]) -> dict[str, str]:
    """
    Parse repeated IDENTIFIER=ACCOUNT_ID options.

    Raises:
        ValueError: If a value has no '=' or an empty side
    """
    mapping: dict[str, str] = {}
    for value in values:
        identifier, sep, account_id = value.partition("=")
        if not sep or not identifier.strip() or not account_id.strip():
            raise ValueError(f"Invalid --account value: {value!r} (expected IDENTIFIER=ACCOUNT_ID)")
        mapping[identifier.strip()] = account_id.strip()
    return mapping


def collect_files(inputs: list[str]) -> list[Path]:
    """Expand directories and drop inputs that do not exist."""
    files: list[Path] = []
    for inp in inputs:
        path = Path(inp)
        if path.is_dir():
            files.extend(StatementNormalizer.find_statement_files(path))
        elif path.exists():
            files.append(path)
        else:
            print(f"Warning: {inp} not found", file=sys.stderr)
    return files


def report_results(results: list[FileAnalysis], verbose: bool) -> None:
    """Print one line per file to stderr."""
    for result in results:
        if result.error:
            print(f"  {result.file_name}: error: {result.error}", file=sys.stderr)
        elif not result.recognized:
            print(f"  {result.file_name}: unrecognized", file=sys.stderr)
        else:
            balance = "" if result.final_balance is None else f", balance {result.final_balance:,.2f}"
            print(
                f"  {result.file_name}: {result.vendor_info.name} [{result.identifier}] "
                f"{len(result.transactions)} transactions{balance}",
                file=sys.stderr,
            )
            if verbose and result.balances_by_tab:
                for tab, tab_balance in result.balances_by_tab.items():
                    print(f"    {tab}: {tab_balance:,.2f}", file=sys.stderr)


def run_dry_run(results: list[FileAnalysis]) -> int:
    """Print the transactions that would be uploaded."""
    print("\nDry run - transactions that would be uploaded:\n", file=sys.stderr)
    uploadable = 0
    skipped = 0
    for result in results:
        if not result.recognized:
            continue
        if not result.account_id:
            print(
                f"  {result.file_name} (no account for {result.identifier} - "
                f"{len(result.transactions)} transactions skipped)",
                file=sys.stderr,
            )
            skipped += len(result.transactions)
            continue

        print(
            f"  {result.file_name} -> account {result.account_id} "
            f"({len(result.transactions)} transactions):",
            file=sys.stderr,
        )
        for tx in result.transactions:
            print(
                f"    {tx.date}  {tx.amount:>10}  {tx.payee_name[:40]:<40}  "
                f"[{generate_import_id(tx)}]",
                file=sys.stderr,
            )
        uploadable += len(result.transactions)

    print("\nSummary:", file=sys.stderr)
    print(f"  Would upload: {uploadable} transactions", file=sys.stderr)
    print(f"  Would skip (no account): {skipped} transactions", file=sys.stderr)
    print("\nNote: YNAB also skips transactions whose import_id it has already seen.",
          file=sys.stderr)
    return 0


def resolve_budget(client: YNABClient, config: dict[str, Any] | None, override: str | None) -> str:
    """
    Pick the budget to work with.

    Raises:
        LedgerError: If no budget is configured and the token sees none
    """
    budget_id = get_ynab_budget_id(config, override)
    if budget_id:
        return budget_id
    budget = pick_primary_budget(client.get_budgets())
    if budget is None:
        raise LedgerError("No YNAB budgets found")
    return str(budget["id"])


def run_upload(
    client: YNABClient,
    budget_id: str,
    results: list[FileAnalysis],
    account_map: IdentifierAccountMap,
) -> int:
    """Upload every recognized file that has a target account."""
    exit_code = 0
    for result in results:
        if not result.recognized or not result.transactions:
            continue
        if not result.account_id:
            print(f"Skipping {result.file_name}: no account for identifier {result.identifier}",
                  file=sys.stderr)
            continue

        try:
            upload = client.create_transactions(budget_id, result.transactions, result.account_id)
        except LedgerError as e:
            print(f"Error uploading {result.file_name}: {e}", file=sys.stderr)
            return 1

        if result.identifier:
            account_map.remember(result.identifier, result.account_id)

        print(f"\n{result.file_name}:", file=sys.stderr)
        print(f"  Uploaded: {upload.uploaded}", file=sys.stderr)
        print(f"  Skipped (duplicates/invalid): {upload.skipped}", file=sys.stderr)
        if upload.errors:
            exit_code = 1
            print(f"  Errors: {len(upload.errors)}", file=sys.stderr)
            for error in upload.errors:
                print(f"    - {error}", file=sys.stderr)
    return exit_code


def run_reconcile(client: YNABClient, budget_id: str, results: list[FileAnalysis]) -> int:
    """Print the balance comparison for every file that has a target account."""
    print("\nReconciliation:", file=sys.stderr)
    for result in results:
        if not result.recognized or not result.account_id:
            continue
        try:
            account = client.get_account(budget_id, result.account_id)
        except LedgerError as e:
            print(f"Error fetching account for {result.file_name}: {e}", file=sys.stderr)
            return 1

        rec = reconcile_account(account, result.file_name, result.final_balance)
        if rec.difference is None:
            status = "no statement balance"
        elif rec.is_balanced:
            status = "balanced"
        else:
            status = f"off by {rec.difference / 1000:,.2f} ({rec.direction})"
        print(f"  {rec.account_name} <- {rec.file_name}: {status}", file=sys.stderr)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    # List parsers and exit
    if args.list_parsers:
        print("Available parsers:")
        for parser_cls in ParserRegistry.get_all_parsers():
            print(f"  {parser_cls.vendor.priority + 1}. {parser_cls.vendor.value}: "
                  f"{parser_cls.__name__}")
        return 0

    if not args.inputs:
        parser.print_help()
        return 1

    try:
        explicit_accounts = parse_account_args(args.account)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        config: dict[str, Any] | None = load_config(args.config)
    except (ConfigError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    account_map = IdentifierAccountMap(JsonFileStore(get_state_path(config)))

    files = collect_files(args.inputs)
    if not files:
        print("Error: No valid input files found", file=sys.stderr)
        return 1

    normalizer = StatementNormalizer(account_map=account_map)
    results = asyncio.run(normalizer.analyze_files(StatementFile.from_path(f) for f in files))

    for result in results:
        if result.identifier and result.identifier in explicit_accounts:
            result.account_id = explicit_accounts[result.identifier]

    print(f"Processed {len(files)} files", file=sys.stderr)
    report_results(results, args.verbose)

    recognized = [r for r in results if r.recognized]
    total = sum(len(r.transactions) for r in recognized)
    print(f"Found {total} transactions", file=sys.stderr)

    if args.upload and args.dry_run:
        return run_dry_run(results)

    if args.upload or args.reconcile:
        credentials = get_ynab_credentials(config, args.token, account_map.store)
        if not credentials.access_token:
            print("Error: YNAB token required. Use --token, YNAB_ACCESS_TOKEN, or config.json",
                  file=sys.stderr)
            return 1

        oauth_client = get_ynab_oauth_client(config)
        client = YNABClient(
            credentials.access_token,
            refresh_token=credentials.refresh_token,
            token_refresher=OAuthTokenRefresher(*oauth_client) if oauth_client else None,
            store=account_map.store,
            token_expiry=credentials.token_expiry,
        )
        try:
            budget_id = resolve_budget(client, config, args.budget_id)
        except LedgerError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        exit_code = 0
        if args.upload:
            exit_code = run_upload(client, budget_id, results, account_map)
        if args.reconcile and exit_code == 0:
            exit_code = run_reconcile(client, budget_id, results)
        return exit_code

    # Write output
    output_path = Path(args.output)
    delimiter = "\t" if args.format == "tsv" else ","
    count = normalizer.write_csv(results, output_path, delimiter)
    print(f"Wrote {count} transactions to {output_path}", file=sys.stderr)

    return 0


if __name__ == "__main__":
    sys.exit(main())
