# SPDX-License-Identifier: Apache-2.0

"""
Clock abstraction so engine components never read wall time directly.
"""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo


class SystemClock:
    """Wall clock. now() is UTC; today() is the council's local calendar day."""

    def __init__(self, timezone_name: str = "America/Sao_Paulo"):
        self.timezone_name = timezone_name
        self._zone = ZoneInfo(timezone_name)

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().astimezone(self._zone).date()
