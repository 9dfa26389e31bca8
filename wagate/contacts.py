"""Contact source — broadcast audiences from a CSV export of the contact sheet.

The sheet has one column per category; each cell holds a phone number.
"""

import csv
import logging
import os
import re

from .errors import ContactSourceError

logger = logging.getLogger("wagate.contacts")

ALL = "All"
CATEGORIES = ("Contractors", "Individual Customers", "Retailers")

_NON_DIGITS = re.compile(r"\D")
_NUMBER_LENGTH = 12  # country code + 10 digits


def clean_number(value) -> str:
    """Strip everything but digits."""
    return _NON_DIGITS.sub("", str(value))


def to_jid(digits: str) -> str:
    return f"{digits}@s.whatsapp.net"


class ContactSource:
    """Resolves a category name to an ordered list of recipient JIDs."""

    def __init__(self, path: str):
        self.path = os.path.expanduser(path)

    def _read_rows(self) -> list[dict]:
        if not os.path.isfile(self.path):
            logger.warning(f"Contacts file not found: {self.path}")
            return []
        try:
            with open(self.path, newline="", encoding="utf-8-sig") as f:
                return list(csv.DictReader(f))
        except (OSError, csv.Error, UnicodeDecodeError) as e:
            raise ContactSourceError(f"Cannot read contacts file {self.path}: {e}")

    def resolve(self, category: str = ALL) -> list[str]:
        """Recipient JIDs for `category` ("All" or one of CATEGORIES).

        Row order is preserved; within a row columns follow CATEGORIES.
        Numbers that are not exactly 12 digits are skipped.
        """
        if category != ALL and category not in CATEGORIES:
            raise ContactSourceError(
                f"Unknown category '{category}'. Use {ALL} or one of: {', '.join(CATEGORIES)}"
            )
        columns = CATEGORIES if category == ALL else (category,)

        numbers = []
        for row in self._read_rows():
            for column in columns:
                value = (row.get(column) or "").strip()
                if value:
                    numbers.append(value)

        jids = []
        skipped = 0
        for value in numbers:
            digits = clean_number(value)
            if len(digits) == _NUMBER_LENGTH:
                jids.append(to_jid(digits))
            else:
                skipped += 1
        if skipped:
            logger.info(f"Skipped {skipped} malformed number(s) for category {category}")
        return jids

    def count(self, category: str = ALL) -> int:
        return len(self.resolve(category))
