"""Bounded per-row snapshots shown to the operator while reviewing an import."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Iterable, Optional

from statement_importer.vocabulary import DEBUG_KEY_LIMIT, DEBUG_ROW_LIMIT


@dataclass(frozen=True)
class DebugRow:
    keys: tuple[str, ...]
    crdr: str
    amount: Optional[float]
    balance: Optional[float]
    reference: Optional[str]

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["keys"] = list(self.keys)
        return payload


class DiagnosticsCollector:
    """Keeps the first ``limit`` snapshots; later calls to ``record`` are ignored."""

    def __init__(self, limit: int = DEBUG_ROW_LIMIT) -> None:
        self.limit = max(0, limit)
        self._rows: list[DebugRow] = []

    @property
    def full(self) -> bool:
        return len(self._rows) >= self.limit

    def record(
        self,
        keys: Iterable[str],
        *,
        crdr: str,
        amount: Optional[float],
        balance: Optional[float],
        reference: Optional[str],
    ) -> None:
        if self.full:
            return
        self._rows.append(
            DebugRow(
                keys=tuple(keys)[:DEBUG_KEY_LIMIT],
                crdr=crdr,
                amount=amount,
                balance=balance,
                reference=reference,
            )
        )

    def snapshot(self) -> tuple[DebugRow, ...]:
        return tuple(self._rows)
