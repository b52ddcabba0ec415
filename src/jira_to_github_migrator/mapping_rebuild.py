"""Rebuild the Jira key → GitHub issue number mappings from the destination repository.

Used when the mappings file was lost: every imported issue carries its Jira key
in its title ("[PROJ-123] Summary").
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .protocols import Destination

logger: logging.Logger = logging.getLogger(__name__)

_TITLE_KEY = re.compile(r"\[([A-Z][A-Z0-9_]*-\d+)\]")


def key_from_title(title: str) -> str | None:
    match = _TITLE_KEY.search(title)
    return match.group(1) if match else None


def collect_mappings(destination: Destination) -> dict[str, int]:
    """Map the Jira key of every issue title to its issue number.

    Issues are listed in ascending number order, so for a key imported twice
    the first (lowest) number wins and the duplicates are logged.
    """
    mappings: dict[str, int] = {}
    for number, title in destination.list_issues():
        key = key_from_title(title)
        if key is None:
            continue
        if key in mappings:
            logger.warning(f"Duplicate GitHub issue #{number} for {key}, keeping #{mappings[key]}")
            continue
        mappings[key] = number
    logger.info(f"Found {len(mappings)} Jira keys in GitHub issue titles")
    return mappings


def write_mappings(mappings: dict[str, int], path: Path | str) -> None:
    path = Path(path)
    with path.open("w", encoding="utf-8") as f:
        for key, number in mappings.items():
            f.write(f"{key}:{number}\n")
    logger.info(f"Wrote {len(mappings)} mappings to {path}")


def rebuild_mappings(destination: Destination, path: Path | str) -> dict[str, int]:
    mappings = collect_mappings(destination)
    write_mappings(mappings, path)
    return mappings
