"""Durable mapping of Jira issue keys to GitHub issue numbers.

Three files make up the state carried from one run to the next:

- mappings: ``KEY:NUMBER`` lines for imports that are done
- pending: ``KEY:NUMBER`` lines for imports GitHub accepted but had not
  finished processing when they were recorded
- failures: free-text diagnostics, one banner per run

Every update is written, flushed and fsynced before the call returns, so the
files always describe a prefix of the outcomes of a run. The mappings and
failures files are only appended to. The pending file is replaced atomically
whenever a key leaves it, so no key is ever in both tables on disk. The in-memory tables
are a cache of what the next ``load()`` will read back.
"""

from __future__ import annotations

import datetime as dt
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from .exceptions import MappingStateError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .models import SourceIssue

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_MAPPINGS_FILE = "github-issue-mappings.properties"
DEFAULT_PENDING_FILE = "github-issue-pending.properties"
DEFAULT_FAILURES_FILE = "github-migration-failures.txt"


def read_mappings(path: Path) -> dict[str, int]:
    """Read ``KEY:NUMBER`` (or ``KEY=NUMBER``) lines. A missing file is empty."""
    result: dict[str, int] = {}
    if not path.exists():
        return result
    with path.open(encoding="utf-8") as f:
        for line_number, raw_line in enumerate(f, start=1):
            line = raw_line.strip()
            if not line or line.startswith(("#", "!")):
                continue
            separator = ":" if ":" in line else "="
            key, _, value = line.partition(separator)
            try:
                result[key.strip()] = int(value.strip())
            except ValueError:
                logger.warning(f"Ignoring malformed line {line_number} in {path}: {line}")
    return result


class MappingStore:
    """Completed and pending Jira key → GitHub issue number tables."""

    def __init__(
        self,
        mappings_path: Path | str = DEFAULT_MAPPINGS_FILE,
        pending_path: Path | str = DEFAULT_PENDING_FILE,
        failures_path: Path | str = DEFAULT_FAILURES_FILE,
    ) -> None:
        self.mappings_path: Path = Path(mappings_path)
        self.pending_path: Path = Path(pending_path)
        self.failures_path: Path = Path(failures_path)

        self.completed: dict[str, int] = {}
        self.pending: dict[str, int] = {}
        self.failed_count: int = 0
        self.holder_count: int = 0

        self._mappings_file: TextIO | None = None
        self._pending_file: TextIO | None = None
        self._failures_file: TextIO | None = None
        self._pending_lines: list[str] = []
        # Pending keys whose GitHub issue was seen created during this run
        self._confirmed_pending: set[str] = set()

    def __enter__(self) -> MappingStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def load(self) -> tuple[dict[str, int], dict[str, int]]:
        """Read the state of previous runs and open the files for this run.

        The pending file is truncated and re-derived from the entries carried
        over from the previous run, so it only ever holds this run's view. A key
        found in both files was promoted by a run that stopped before it could
        rewrite the pending file; the completed entry wins and is dropped from
        the pending file here.
        """
        completed = read_mappings(self.mappings_path)
        pending = {key: number for key, number in read_mappings(self.pending_path).items() if key not in completed}

        self.completed = dict(completed)
        self.pending = dict(pending)

        self._mappings_file = self.mappings_path.open("a", encoding="utf-8")
        self._failures_file = self.failures_path.open("a", encoding="utf-8")
        self._pending_lines = [f"{key}:{number}\n" for key, number in self.pending.items()]
        self._confirmed_pending = set()
        self._rewrite_pending()

        start_time = dt.datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")
        self._write(self._failures_file, f"==================================\n{start_time}\n")

        logger.info(f"Loaded {len(self.completed)} imported and {len(self.pending)} pending issue mappings")
        return dict(self.completed), dict(self.pending)

    def close(self) -> None:
        for f in (self._mappings_file, self._pending_file, self._failures_file):
            if f is not None and not f.closed:
                f.close()

    @property
    def is_empty(self) -> bool:
        return not self.completed and not self.pending

    def is_mapped(self, key: str) -> bool:
        return key in self.completed or key in self.pending

    def lookup(self, key: str) -> int | None:
        """GitHub issue number for a key, whether its import is completed or pending."""
        number = self.completed.get(key)
        return number if number is not None else self.pending.get(key)

    def pending_number(self, key: str) -> int | None:
        return self.pending.get(key)

    def confirmed_number(self, key: str) -> int | None:
        """GitHub issue number for a key whose issue is known to exist.

        Pending keys carried over from a previous run are not confirmed until
        they are promoted.
        """
        number = self.completed.get(key)
        if number is None and key in self._confirmed_pending:
            number = self.pending.get(key)
        return number

    def filter_remaining(self, issues: Iterable[SourceIssue]) -> list[SourceIssue]:
        """Drop issues that were imported, or accepted as pending, by a previous run."""
        return [issue for issue in issues if not self.is_mapped(issue.key)]

    def record_completed(self, key: str, number: int) -> None:
        if key in self.pending:
            msg = f"{key} is pending as #{self.pending[key]}; promote it instead"
            raise MappingStateError(msg)
        self.completed[key] = number
        self._write(self._mappings_file, f"{key}:{number}\n")

    def record_pending(self, key: str, number: int) -> None:
        """Record a key whose issue GitHub created while the import was reported pending."""
        if key in self.completed:
            msg = f"{key} is already imported as #{self.completed[key]}"
            raise MappingStateError(msg)
        self.pending[key] = number
        self._confirmed_pending.add(key)
        self._append_pending(f"{key}:{number}\n")

    def promote(self, key: str) -> int:
        """Move a key from the pending to the completed table."""
        if key not in self.pending:
            msg = f"{key} is not pending"
            raise MappingStateError(msg)
        number = self.pending.pop(key)
        self._confirmed_pending.discard(key)
        self.completed[key] = number
        self._write(self._mappings_file, f"{key}:{number}\n")
        self._pending_lines = [line for line in self._pending_lines if not line.startswith((f"{key}:", f"# {key}:"))]
        self._rewrite_pending()
        return number

    def record_failure(self, ref: str, reason: str) -> None:
        self.failed_count += 1
        self._write(self._failures_file, f"=> {ref} [{reason}]\n")

    def record_holder(self) -> None:
        self.holder_count += 1

    def add_failure_message(self, message: str) -> None:
        self._write(self._failures_file, message.rstrip("\n") + "\n")

    def add_pending_message(self, key: str, number: int) -> None:
        """Note in the pending file that a carried-over import is still unresolved."""
        self._append_pending(f"# {key}:{number} still pending\n")

    def summary(self) -> str:
        return (
            f"{len(self.completed)} imported issues, {len(self.pending)} pending issues, "
            f"{self.failed_count} failed imports, {self.holder_count} backported issue holders"
        )

    def _append_pending(self, line: str) -> None:
        self._write(self._pending_file, line)
        self._pending_lines.append(line)

    def _rewrite_pending(self) -> None:
        """Replace the pending file with this run's lines through a temporary file."""
        temp_path = self.pending_path.with_name(f"{self.pending_path.name}.tmp")
        if self._pending_file is not None and not self._pending_file.closed:
            self._pending_file.close()
        try:
            with temp_path.open("w", encoding="utf-8") as f:
                f.writelines(self._pending_lines)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.pending_path)
        except OSError as e:
            lines = "".join(self._pending_lines)
            logger.error(f'Failed to rewrite {self.pending_path} due to "{e}":\n{lines}')  # noqa: TRY400
        self._pending_file = self.pending_path.open("a", encoding="utf-8")

    def _write(self, f: TextIO | None, line: str) -> None:
        if f is None:
            msg = "Mapping store is not loaded"
            raise MappingStateError(msg)
        try:
            f.write(line)
            f.flush()
            os.fsync(f.fileno())
        except OSError as e:
            logger.error(f'Failed to write the below import result due to "{e}":\n{line}')  # noqa: TRY400
