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
Reminder Models

The durable reminder record and the structured messages the bot posts
about it.
"""

import base64
import html
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from .ics import CalendarEvent


def generate_uid(room_id: int) -> str:
    """
    Build a fresh reminder uid.

    The room id is encoded together with a random token so uids from
    different rooms can never collide.
    """
    token = f"{room_id}|{uuid.uuid4()}".encode("utf-8")
    return base64.urlsafe_b64encode(token).decode("ascii").rstrip("=")


@dataclass
class ReminderRecord:
    """A calendar reminder owned by one room."""

    uid: str
    room_id: int
    summary_plain: str
    summary_html: str
    event: CalendarEvent
    deleted: bool = field(default=False, compare=False)

    @property
    def raw_event(self) -> str:
        return self.event.serialize()

    @property
    def is_deleted(self) -> bool:
        return self.deleted

    @classmethod
    def new(cls, event: CalendarEvent, room_id: int) -> "ReminderRecord":
        """Create a record for a freshly uploaded event."""
        return cls(
            uid=generate_uid(room_id),
            room_id=room_id,
            summary_plain=event.summary,
            summary_html=html.escape(event.summary),
            event=event,
        )

    def to_account_data(self) -> dict[str, Any]:
        return {
            "rawEvent": self.raw_event,
            "summaryPlain": self.summary_plain,
            "summaryHtml": self.summary_html,
        }

    @classmethod
    def from_account_data(
        cls, room_id: int, uid: str, content: dict[str, Any], timezone: str = "UTC"
    ) -> "ReminderRecord":
        """
        Rebuild a record from its stored content.

        Raises:
            ParseError: If the stored event no longer parses
        """
        event = CalendarEvent.parse(content["rawEvent"], timezone)
        summary_plain = content.get("summaryPlain", event.summary)
        return cls(
            uid=uid,
            room_id=room_id,
            summary_plain=summary_plain,
            summary_html=content.get("summaryHtml", html.escape(summary_plain)),
            event=event,
        )


class MessageKind(str, Enum):
    """Tag carried by every reminder message."""

    CREATE = "create"
    PREVIEW = "preview"
    TRIGGER = "trigger"


@dataclass
class ReminderMessage:
    """
    A message about a reminder, ready for delivery into a room.

    Only trigger messages carry a next occurrence.
    """

    kind: MessageKind
    uid: str
    body: str
    formatted_body: str
    vevent: str
    next_occurrence: Optional[datetime] = None

    @property
    def next_timestamp(self) -> Optional[int]:
        if self.next_occurrence is None:
            return None
        return int(self.next_occurrence.timestamp())

    @classmethod
    def create(
        cls, record: ReminderRecord, body: str, formatted_body: str
    ) -> "ReminderMessage":
        return cls(
            kind=MessageKind.CREATE,
            uid=record.uid,
            body=body,
            formatted_body=formatted_body,
            vevent=record.raw_event,
        )

    @classmethod
    def preview(cls, record: ReminderRecord) -> "ReminderMessage":
        return cls(
            kind=MessageKind.PREVIEW,
            uid=record.uid,
            body=record.summary_plain,
            formatted_body=record.summary_html,
            vevent=record.raw_event,
        )

    @classmethod
    def trigger(
        cls, record: ReminderRecord, next_occurrence: Optional[datetime]
    ) -> "ReminderMessage":
        return cls(
            kind=MessageKind.TRIGGER,
            uid=record.uid,
            body=record.summary_plain,
            formatted_body=record.summary_html,
            vevent=record.raw_event,
            next_occurrence=next_occurrence,
        )
