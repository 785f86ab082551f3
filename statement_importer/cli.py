from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

import pandas as pd

from statement_importer import __version__ as TOOL_VERSION
from statement_importer.config import ConfigError, ImporterOptions, load_options, starter_config
from statement_importer.contracts import build_contract, build_parse_report, build_run_summary
from statement_importer.decoder import ALL_FORMATS, StatementDecodeError
from statement_importer.importer import parse_statement
from statement_importer.ingestion import DEFAULT_SOURCE, IngestionClient, IngestionError
from statement_importer.logging_setup import configure_logging
from statement_importer.normalizer import StatementParseResult

ROW_OUTPUT_SUFFIXES = {".json", ".csv"}
CSV_COLUMNS = ["txn_date", "value_date", "description", "reference_no", "debit", "credit", "balance", "currency"]

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_NO_ROWS = 3
EXIT_SUBMIT_FAILED = 4


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class StatementImporterArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_text(path: Path, payload: str) -> None:
    ensure_parent(path)
    path.write_text(payload, encoding="utf-8")


def safe_output_path(path: Path) -> Path:
    if path.exists():
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    if path.suffix.lower() not in ROW_OUTPUT_SUFFIXES:
        raise CliError("Row output must be .json or .csv", EXIT_COMMAND_ERROR)
    return path


def remove_generated_at(value: Any) -> Any:
    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            if key == "generated_at":
                result[key] = "1970-01-01T00:00:00Z"
            else:
                result[key] = remove_generated_at(item)
        return result
    if isinstance(value, list):
        return [remove_generated_at(item) for item in value]
    return value


def normalize_report_for_cli(payload: Any) -> Any:
    if os.environ.get("STATEMENT_IMPORTER_OUTPUT_STAMP"):
        return remove_generated_at(payload)
    return payload


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, IngestionError):
        return EXIT_SUBMIT_FAILED
    if isinstance(exc, ConfigError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, (ImportError, UnicodeDecodeError, StatementDecodeError)):
        return EXIT_PARSE_FAILED
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, ValueError):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def setup_logging(args: argparse.Namespace) -> None:
    if getattr(args, "verbose", False):
        configure_logging(logging.DEBUG)
    elif getattr(args, "quiet", False):
        configure_logging(logging.ERROR)
    else:
        configure_logging()


def resolve_options(args: argparse.Namespace) -> ImporterOptions:
    return load_options(args.config) if getattr(args, "config", None) else load_options()


def check_input(input_path: Path) -> None:
    if not input_path.exists():
        raise CliError(f"File not found: {input_path}", EXIT_COMMAND_ERROR)
    suffix = input_path.suffix.lower()
    if suffix not in ALL_FORMATS:
        raise CliError(
            f"Unsupported file type '{suffix or '[missing extension]'}'. "
            f"Supported: {', '.join(sorted(ALL_FORMATS))}",
            EXIT_COMMAND_ERROR,
        )


def render_parse_text(result: StatementParseResult, input_path: Path) -> str:
    lines = [
        "statement-importer parse",
        f"File: {input_path.name}",
        f"Header row: {result.header_index if result.header_found else '[not found]'}",
        f"Detected headers: {', '.join(result.detected_headers) or '[none]'}",
    ]
    if result.header_map is not None:
        lines.append("Header map:")
        for name, idx in result.header_map.as_dict().items():
            header = result.header_map.header_of(name)
            lines.append(f"- {name}: {header!r} (column {idx})" if idx is not None else f"- {name}: [unresolved]")
    if result.debug_rows:
        lines.append("Debug rows:")
        for row in result.debug_rows:
            lines.append(
                f"- crdr={row.crdr or '-'} amount={row.amount} balance={row.balance} reference={row.reference or '-'}"
            )
    lines.append(f"Rows: {result.row_count}")
    lines.append(f"Dropped rows: {result.dropped_rows}")
    if result.warnings:
        lines.append("Warnings:")
        lines.extend(f"- {warning}" for warning in result.warnings)
    lines.append(result.message)
    return "\n".join(lines) + "\n"


def write_rows(result: StatementParseResult, output_path: Path) -> None:
    ensure_parent(output_path)
    if output_path.suffix.lower() == ".csv":
        frame = pd.DataFrame([row.to_dict() for row in result.rows], columns=CSV_COLUMNS)
        frame.to_csv(output_path, index=False)
        return
    write_text(output_path, json_dumps([row.to_dict() for row in result.rows]) + "\n")


def build_parser() -> argparse.ArgumentParser:
    parser = StatementImporterArgumentParser(
        prog="statement-importer",
        description="Normalize bank statement exports into canonical transactions.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    parse = subparsers.add_parser("parse", help="Parse a statement and show what was detected.")
    parse.add_argument("input", help="Statement file path")
    parse.add_argument("--output", help="Write normalized rows to this .json or .csv path")
    parse.add_argument("--config", help="JSON options file")
    parse.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    parse.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    parse.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    submit = subparsers.add_parser("submit", help="Parse a statement and forward rows to the ingestion procedure.")
    submit.add_argument("input", help="Statement file path")
    submit.add_argument("--api-url", dest="api_url", help="Ingestion API base URL (or STATEMENT_IMPORTER_API_URL)")
    submit.add_argument("--api-key", dest="api_key", help="Ingestion API key (or STATEMENT_IMPORTER_API_KEY)")
    submit.add_argument("--access-token", dest="access_token", help="User access token (or STATEMENT_IMPORTER_ACCESS_TOKEN)")
    submit.add_argument("--source", default=DEFAULT_SOURCE, help="Source label passed to the procedure")
    submit.add_argument("--account-ref", dest="account_ref", help="Optional account reference")
    submit.add_argument("--timeout", type=float, default=30, help="Request timeout in seconds")
    submit.add_argument("--config", help="JSON options file")
    submit.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    submit.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    submit.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter config file.")
    config_init.add_argument("--path", default="statement-importer.json", help="Config output path")

    subparsers.add_parser("version", help="Print version")
    return parser


def run_parse(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    try:
        check_input(input_path)
        output_path = safe_output_path(Path(args.output)) if args.output else None
        options = resolve_options(args)
        result = parse_statement(input_path, options=options)
        report = normalize_report_for_cli(build_parse_report(result, input_path=input_path, output_path=output_path))
        if output_path is not None and result.row_count:
            write_rows(result, output_path)
        if args.json:
            maybe_emit_json_stdout(report, True)
        else:
            emit_human(render_parse_text(result, input_path).rstrip(), quiet=args.quiet)
            if output_path is not None and result.row_count:
                emit_human(f"Rows written: {output_path}", quiet=args.quiet)
        return EXIT_SUCCESS if result.row_count else EXIT_NO_ROWS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_submit(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    try:
        check_input(input_path)
        options = resolve_options(args)
        try:
            client = IngestionClient.from_env(
                base_url=args.api_url,
                api_key=args.api_key,
                access_token=args.access_token,
                timeout=args.timeout,
            )
        except IngestionError as exc:
            raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc
        result = parse_statement(input_path, options=options)
        if not result.row_count:
            eprint(result.message)
            return EXIT_NO_ROWS
        summary = client.submit_rows(result.rows, source=args.source, account_ref=args.account_ref)
        contract = build_contract("statement_import.submit")
        payload = {
            "contract": contract,
            "schema_version": contract["version"],
            "tool_version": TOOL_VERSION,
            "file": input_path.name,
            "rows_submitted": result.row_count,
            "result": summary.to_dict(),
            "run_summary": build_run_summary(
                tool="statement-importer",
                command="submit",
                input_path=input_path,
                status="ok" if not summary.errors else "partial",
                metrics={
                    "rows_submitted": result.row_count,
                    "inserted": summary.inserted,
                    "skipped": summary.skipped,
                    "errors": summary.errors,
                },
                warnings=list(result.warnings),
            ),
        }
        payload = normalize_report_for_cli(payload)
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(
                "\n".join(
                    [
                        "statement-importer submit",
                        f"File: {input_path.name}",
                        f"Rows submitted: {result.row_count}",
                        f"Inserted: {summary.inserted}",
                        f"Skipped: {summary.skipped}",
                        f"Errors: {summary.errors}",
                    ]
                ),
                quiet=args.quiet,
            )
            for item in summary.error_rows:
                emit_human(f"- {item.error}", quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    if config_path.suffix.lower() != ".json":
        eprint("Config path must end in .json")
        return EXIT_COMMAND_ERROR
    write_text(config_path, starter_config())
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        setup_logging(args)
        if args.command == "parse":
            return run_parse(args)
        if args.command == "submit":
            return run_submit(args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
