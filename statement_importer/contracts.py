"""Shared versioned contracts for statement importer outputs."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from statement_importer import __version__ as TOOL_VERSION
from statement_importer.normalizer import StatementParseResult

CONTRACT_VERSIONS = {
    "statement_import.parse": "1.0.0",
    "statement_import.submit": "1.0.0",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    version = CONTRACT_VERSIONS[name]
    return {"name": name, "version": version}


def build_run_summary(
    *,
    tool: str,
    command: str,
    input_path: Path,
    status: str = "ok",
    output_path: Path | None = None,
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "tool": tool,
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "input_file": str(input_path),
        "output_file": str(output_path) if output_path else None,
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
    }


def build_parse_report(
    result: StatementParseResult,
    *,
    input_path: Path,
    output_path: Path | None = None,
) -> dict[str, Any]:
    contract = build_contract("statement_import.parse")
    payload = result.to_dict()
    payload.update(
        {
            "contract": contract,
            "schema_version": contract["version"],
            "tool_version": TOOL_VERSION,
            "file": input_path.name,
            "run_summary": build_run_summary(
                tool="statement-importer",
                command="parse",
                input_path=input_path,
                status="ok" if result.row_count else "no_rows",
                output_path=output_path,
                metrics={
                    "rows_emitted": result.row_count,
                    "rows_dropped": result.dropped_rows,
                    "header_index": result.header_index,
                    "unresolved_fields": result.header_map.missing() if result.header_map else [],
                },
                warnings=list(result.warnings),
            ),
        }
    )
    return payload
