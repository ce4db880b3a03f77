# icsReminder - Discord iCalendar Reminder Bot
# Copyright (c) 2025-2026 Slash Daemon slashdaemon@protonmail.com
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, version 3 of the License.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.
#
# Commercial licensing: [slashdaemon@protonmail.com]

"""
iCalendar Module

Extracts the single VEVENT embedded in an uploaded calendar file and answers
recurrence queries against it. Occurrences come from DTSTART plus any
RRULE/RDATE/EXDATE properties, expanded with dateutil.
"""

import logging
from datetime import date, datetime, time
from typing import Optional, Union

import pytz
from dateutil import tz
from dateutil.rrule import rruleset, rrulestr
from icalendar import Event

logger = logging.getLogger("icsReminder.reminders.ics")

BEGIN_MARKER = "BEGIN:VEVENT"
END_MARKER = "END:VEVENT"

# Kept as-is when an event has no SUMMARY line
SUMMARY_FIELD = "SUMMARY:"

RECURRENCE_PROPERTIES = {"DTSTART", "RRULE", "RDATE", "EXDATE"}


class ParseError(Exception):
    """Raised when a calendar payload holds no usable VEVENT."""

    pass


def extract_vevent(text: str) -> str:
    """
    Cut the first VEVENT block out of a calendar document.

    Markers are matched case-insensitively after trimming. A block with no
    END marker runs to the end of the document and is left for the
    iCalendar parser to reject.

    Args:
        text: Full calendar document

    Returns:
        The block including its BEGIN/END lines, or "" if there is none
    """
    lines = text.replace("\r", "").split("\n")
    block = []
    inside = False

    for line in lines:
        marker = line.strip().upper()
        if marker == BEGIN_MARKER:
            inside = True
            line = BEGIN_MARKER
        if inside:
            if marker == END_MARKER:
                block.append(END_MARKER)
                break
            block.append(line)

    if not block:
        return ""
    return "\n".join(block) + "\n"


def extract_summary(vevent_text: str) -> str:
    """Return the raw SUMMARY value of a VEVENT block, or the field label."""
    for line in vevent_text.split("\n"):
        if line.startswith(SUMMARY_FIELD):
            return line[len(SUMMARY_FIELD):]
    return SUMMARY_FIELD


def current_instant(timezone: str) -> datetime:
    """Current time in the given zone, truncated to the second."""
    return datetime.now(pytz.timezone(timezone)).replace(microsecond=0)


def _to_datetime(value, zone) -> datetime:
    """
    Normalize an iCalendar date value to an aware datetime.

    Floating times and all-day dates are placed in the reference zone.
    pytz zones are swapped for dateutil zones so recurrence expansion keeps
    wall-clock times across DST changes.
    """
    if isinstance(value, tuple):
        # PERIOD values: (start, end-or-duration)
        value = value[0]

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=zone)
        zone_name = getattr(value.tzinfo, "zone", None)
        if zone_name:
            return value.replace(tzinfo=tz.gettz(zone_name))
        return value

    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=zone)

    raise ParseError(f"Unsupported date value: {value!r}")


def _as_list(prop) -> list:
    if prop is None:
        return []
    if isinstance(prop, list):
        return prop
    return [prop]


def _ical_text(prop) -> str:
    text = prop.to_ical()
    if isinstance(text, bytes):
        text = text.decode("utf-8")
    return text


class CalendarEvent:
    """
    A parsed VEVENT with its recurrence set.

    Recurrence queries are pure: they depend only on the rule and the
    instant passed in.
    """

    def __init__(self, component: Event, summary: str, timezone: str = "UTC"):
        self.component = component
        self.summary = summary
        self.timezone = timezone
        self._zone = tz.gettz(timezone) or tz.UTC
        self.dtstart = self._read_dtstart()
        self._rules = self._build_rules()
        self._raw = _ical_text(component)

    @classmethod
    def parse(cls, raw: Union[str, bytes], timezone: str = "UTC") -> "CalendarEvent":
        """
        Parse a calendar document into a CalendarEvent.

        Args:
            raw: Calendar document (bytes are decoded as UTF-8)
            timezone: Reference zone for floating times and all-day dates

        Returns:
            CalendarEvent for the first VEVENT in the document

        Raises:
            ParseError: If there is no VEVENT or it cannot be expanded
        """
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")

        vevent_text = extract_vevent(raw)
        if not vevent_text:
            raise ParseError("No VEVENT found in calendar data")

        try:
            component = Event.from_ical(vevent_text)
        except (ValueError, TypeError, KeyError) as e:
            raise ParseError(f"Invalid VEVENT: {e}")

        for name, message in getattr(component, "errors", []):
            if str(name).upper() in RECURRENCE_PROPERTIES:
                raise ParseError(f"Invalid {name}: {message}")

        return cls(component, extract_summary(vevent_text), timezone)

    def _read_dtstart(self) -> datetime:
        prop = self.component.get("DTSTART")
        value = getattr(prop, "dt", None)
        if not isinstance(value, (date, datetime)):
            raise ParseError("VEVENT has no valid DTSTART")
        return _to_datetime(value, self._zone)

    def _build_rules(self) -> rruleset:
        rules = rruleset()

        recurrences = _as_list(self.component.get("RRULE"))
        try:
            for recur in recurrences:
                rules.rrule(self._build_rule(recur))
        except (ValueError, TypeError) as e:
            raise ParseError(f"Invalid RRULE: {e}")

        if not recurrences:
            rules.rdate(self.dtstart)

        for prop in _as_list(self.component.get("RDATE")):
            for value in getattr(prop, "dts", []):
                rules.rdate(_to_datetime(value.dt, self._zone))

        for prop in _as_list(self.component.get("EXDATE")):
            for value in getattr(prop, "dts", []):
                rules.exdate(_to_datetime(value.dt, self._zone))

        return rules

    def _build_rule(self, recur):
        """
        Expand one RRULE against DTSTART.

        UNTIL may be a date or a floating time while DTSTART has already
        been placed in a zone, so it is normalized the same way and applied
        after parsing the rest of the rule.
        """
        rule_text = _ical_text(recur)
        until_values = _as_list(recur.get("UNTIL"))
        if not until_values:
            return rrulestr(rule_text, dtstart=self.dtstart)

        parts = [part for part in rule_text.split(";") if not part.upper().startswith("UNTIL=")]
        rule = rrulestr(";".join(parts), dtstart=self.dtstart)
        return rule.replace(until=self._read_until(until_values[0]))

    def _read_until(self, value) -> datetime:
        if isinstance(value, date) and not isinstance(value, datetime):
            # An all-day UNTIL includes the whole day
            return datetime.combine(value, time(23, 59, 59), tzinfo=self._zone)
        return _to_datetime(value, self._zone)

    def _normalize(self, instant: datetime) -> datetime:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=self._zone)
        return instant.replace(microsecond=0)

    def next_occurrence_at_or_after(self, instant: datetime) -> Optional[datetime]:
        """Earliest occurrence >= instant, or None if the rule has run out."""
        return self._rules.after(self._normalize(instant), inc=True)

    def next_occurrence_after(self, instant: datetime) -> Optional[datetime]:
        """Earliest occurrence strictly after instant, or None."""
        return self._rules.after(self._normalize(instant), inc=False)

    def serialize(self) -> str:
        """Serialize the VEVENT back to iCalendar text."""
        return self._raw

    def __repr__(self) -> str:
        return f"CalendarEvent(summary={self.summary!r}, dtstart={self.dtstart.isoformat()})"
