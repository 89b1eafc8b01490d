"""Persistent record of which occurrences have already been created."""

import json
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

from models import LedgerEntry, LedgerRecord


class LedgerError(Exception):
    """The ledger file exists but can't be read or parsed."""


class LedgerSaveError(Exception):
    """The ledger could not be written back to disk."""


def _parse_optional_date(value) -> date | None:
    if value is None:
        return None
    return date.fromisoformat(value)


@dataclass
class Ledger:
    """Mapping of issue name -> occurrence number -> LedgerEntry.

    Occurrences under each name are kept in ascending order.
    """

    entries: dict[str, dict[int, LedgerEntry]] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def names(self) -> list[str]:
        return sorted(self.entries)

    def occurrences(self, name: str) -> list[int]:
        return list(self.entries.get(name, {}))

    def get(self, name: str, occurrence: int) -> LedgerEntry | None:
        return self.entries.get(name, {}).get(occurrence)

    def last_record(self, name: str) -> LedgerRecord | None:
        """The highest recorded occurrence for ``name``, if any."""
        recorded = self.entries.get(name)
        if not recorded:
            return None
        occurrence = next(reversed(recorded))
        entry = recorded[occurrence]
        return LedgerRecord(
            name=name,
            occurrence=occurrence,
            issue_id=entry.issue_id,
            created=entry.created,
            due=entry.due,
        )

    def missing_occurrences(self, name: str, due_occurrence: int | None) -> list[int]:
        """All occurrences up to and including ``due_occurrence`` not yet created.

        Gaps left by earlier partial failures are included, not just the
        occurrences after the last recorded one.
        """
        if due_occurrence is None:
            return []
        recorded = self.entries.get(name, {})
        return [n for n in range(due_occurrence + 1) if n not in recorded]

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def insert(self, record: LedgerRecord) -> None:
        """Record a created occurrence, replacing any existing entry for it."""
        recorded = self.entries.setdefault(record.name, {})
        recorded[record.occurrence] = record.entry()
        self.entries[record.name] = dict(sorted(recorded.items()))

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            name: {
                str(occurrence): {
                    "issue_id": entry.issue_id,
                    "created": entry.created.isoformat(),
                    "due": entry.due.isoformat() if entry.due else None,
                }
                for occurrence, entry in recorded.items()
            }
            for name, recorded in sorted(self.entries.items())
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Ledger":
        """Build a ledger from its JSON representation."""
        if not isinstance(data, dict):
            raise LedgerError("ledger must be a JSON object of issue names")

        ledger = cls()
        for name, recorded in data.items():
            if not isinstance(recorded, dict):
                raise LedgerError(f"ledger entry '{name}' must be an object")
            seen = set()
            for key, value in recorded.items():
                try:
                    occurrence = int(key)
                    if occurrence < 0:
                        raise ValueError(f"negative occurrence {occurrence}")
                    record = LedgerRecord(
                        name=name,
                        occurrence=occurrence,
                        issue_id=str(value["issue_id"]),
                        created=date.fromisoformat(value["created"]),
                        due=_parse_optional_date(value.get("due")),
                    )
                except (KeyError, TypeError, ValueError, AttributeError) as e:
                    raise LedgerError(f"invalid ledger entry '{name}' #{key}: {e}") from e
                if occurrence in seen:
                    raise LedgerError(f"duplicate occurrence {occurrence} in ledger entry '{name}'")
                seen.add(occurrence)
                ledger.insert(record)
        return ledger

    @classmethod
    def load(cls, path: str | Path) -> "Ledger":
        """Load the ledger. A missing file means nothing has been created yet."""
        if not os.path.exists(path):
            return cls()
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise LedgerError(
                f"failed to parse ledger {path}: line {e.lineno}, column {e.colno}: {e.msg}"
            ) from e
        except OSError as e:
            raise LedgerError(f"failed to read ledger {path}: {e}") from e
        return cls.from_dict(data)

    def save(self, path: str | Path) -> None:
        """Replace the ledger file in one step (temp file + rename)."""
        directory = os.path.dirname(os.path.abspath(path))
        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=directory,
                prefix=".ledger-",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp_path = f.name
                json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            # NamedTemporaryFile creates 0600; keep what the old file had
            if os.path.exists(path):
                shutil.copymode(path, tmp_path)
            else:
                os.chmod(tmp_path, 0o666 & ~_current_umask())
            os.replace(tmp_path, path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise LedgerSaveError(f"failed to write ledger {path}: {e}") from e


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask
