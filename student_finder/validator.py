"""Reference-list check for candidate names."""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Iterable, Set, Union

logger = logging.getLogger("student_finder.validator")

PathLike = Union[str, Path]


def load_name_set(path: PathLike) -> Set[str]:
    """Read the first column of a header-less CSV file into a case-folded set."""
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Name list not found: {path}")
    names: Set[str] = set()
    with path.open(newline="", encoding="utf-8-sig") as handle:
        for row in csv.reader(handle):
            if not row:
                continue
            value = row[0].strip()
            if value:
                names.add(value.casefold())
    logger.debug("Loaded %d names from %s", len(names), path)
    return names


class NameValidator:
    """A name is valid when any of its whitespace tokens is a known first or last name."""

    def __init__(self, first_names: Iterable[str], last_names: Iterable[str]) -> None:
        self.first_names = {name.strip().casefold() for name in first_names if name.strip()}
        self.last_names = {name.strip().casefold() for name in last_names if name.strip()}

    @classmethod
    def from_csv(cls, first_names_path: PathLike, last_names_path: PathLike) -> "NameValidator":
        return cls(load_name_set(first_names_path), load_name_set(last_names_path))

    def is_valid(self, full_name: str) -> bool:
        if not full_name or not full_name.strip():
            return False
        for token in full_name.split():
            token = token.casefold()
            if token in self.first_names or token in self.last_names:
                return True
        return False
