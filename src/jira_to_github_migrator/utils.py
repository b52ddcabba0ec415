"""
Utility functions for the Jira to GitHub migration tool.
"""

from __future__ import annotations

import datetime as dt
import logging
import re
import subprocess
from subprocess import CompletedProcess


class PassError(Exception):
    """Base class for pass-related errors."""


class InvalidPassPathError(PassError):
    """Raised when the pass path format is invalid."""


class PassphraseRequiredError(PassError):
    """Raised when a GPG passphrase is required for the pass utility."""


_SIZE_UNITS = ("bytes", "kB", "MB", "GB")


def setup_logging(*, verbose: bool = False) -> None:
    """Configure logging for the migration process."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(), logging.FileHandler("migration.log", mode="a")],
    )


def parse_timestamp(value: str | None) -> dt.datetime | None:
    """Parse an ISO 8601 timestamp as returned by Jira or GitHub.

    Jira writes offsets without a colon ("+0000"), which fromisoformat()
    accepts on current Python versions. Returns None for empty or invalid values.
    """
    if not value:
        return None
    try:
        return dt.datetime.fromisoformat(value)
    except ValueError:
        return None


def human_size(size: int) -> str:
    """Render a byte count the way Jira shows attachment sizes (e.g., "12 kB")."""
    value = float(size)
    for unit in _SIZE_UNITS:
        if value < 1024 or unit == _SIZE_UNITS[-1]:
            if unit == "bytes":
                return f"{int(value)} {unit}"
            return f"{value:.0f} {unit}" if value >= 10 else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} bytes"


def _validate_pass_path(pass_path: str) -> None:
    if not re.fullmatch(r"[A-Za-z0-9_-]+(?:/[A-Za-z0-9_-]+)*", pass_path):
        msg = f"Invalid pass path: {pass_path}"
        raise ValueError(msg)


def get_pass_value(pass_path: str) -> str:
    """Return the first line of the pass entry at ``pass_path``.

    The GPG key must already be unlocked (e.g. by gpg-agent): the migration
    runs unattended and never prompts for a passphrase.
    """
    _validate_pass_path(pass_path)

    try:
        result: CompletedProcess[str] = subprocess.run(  # noqa: S603
            ["pass", "show", pass_path], capture_output=True, text=True, check=True
        )
    except FileNotFoundError as e:
        msg = "The pass utility is not installed"
        raise PassError(msg) from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()
        if "not in the password store" in stderr.lower():
            msg = f"Pass path '{pass_path}' not found"
            raise InvalidPassPathError(msg) from e
        if "decryption failed" in stderr.lower():
            msg = f"Cannot decrypt '{pass_path}', unlock the GPG key first: {stderr}"
            raise PassphraseRequiredError(msg) from e
        msg = f"pass exited with code {e.returncode} for '{pass_path}': {stderr}"
        raise PassError(msg) from e

    lines = result.stdout.splitlines()
    if not lines or not lines[0].strip():
        msg = f"Pass entry '{pass_path}' is empty"
        raise PassError(msg)
    return lines[0].strip()
