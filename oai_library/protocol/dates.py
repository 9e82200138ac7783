"""UTC datestamps at day or second granularity."""

import re
from dataclasses import dataclass
from datetime import UTC
from datetime import datetime

from ..config.settings import DAY_GRANULARITY
from ..config.settings import SECOND_GRANULARITY

DAY_FORMAT = "%Y-%m-%d"
SECOND_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_DAY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_SECOND_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$")


@dataclass(frozen=True)
class Datestamp:
    """A parsed ``from``/``until`` argument."""

    value: datetime
    granularity: str

    def as_until(self) -> datetime:
        """Upper bound of the datestamp (a day covers its last second)."""
        if self.granularity == DAY_GRANULARITY:
            return self.value.replace(hour=23, minute=59, second=59)
        return self.value


def parse_datestamp(text: str) -> Datestamp:
    """Parse a UTC datestamp.

    Raises:
        ValueError: If the text matches neither granularity or is not a real date
    """
    if _DAY_PATTERN.match(text):
        return Datestamp(datetime.strptime(text, DAY_FORMAT).replace(tzinfo=UTC), DAY_GRANULARITY)
    if _SECOND_PATTERN.match(text):
        return Datestamp(datetime.strptime(text, SECOND_FORMAT).replace(tzinfo=UTC), SECOND_GRANULARITY)
    raise ValueError(f"Invalid datestamp: {text}")


def format_datestamp(value: datetime, granularity: str = SECOND_GRANULARITY) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.strftime(DAY_FORMAT if granularity == DAY_GRANULARITY else SECOND_FORMAT)
