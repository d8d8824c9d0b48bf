"""
Data records shared by the analysis pipeline and the report handlers
"""
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime


class CalendarLoadError(Exception):
    """A calendar file could not be read or parsed."""

    def __init__(self, path, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


def includes_everyone(persons) -> bool:
    """A person filter holding a single blank entry matches every attendee."""
    return persons is not None and len(persons) == 1 and not persons[0].strip()


@dataclass(frozen=True)
class Attendee:
    name: str
    email: str = ''


@dataclass(frozen=True)
class Event:
    """A single VEVENT occurrence with defaults already filled in."""
    start: datetime
    end: datetime
    summary: str = 'No title'
    location: str = 'No location'
    attendees: tuple[Attendee, ...] = ()
    status: str = 'CONFIRMED'
    class_type: str = 'PUBLIC'

    @property
    def duration_minutes(self) -> int:
        # Truncates toward zero, sub-minute remainders are dropped
        return int((self.end - self.start).total_seconds() / 60)

    @property
    def month(self) -> str:
        return self.start.strftime('%B %Y')

    @property
    def is_private(self) -> bool:
        return self.class_type == 'PRIVATE'

    def to_dict(self) -> dict[str, object]:
        return {
            'summary': self.summary,
            'start': self.start.isoformat(),
            'end': self.end.isoformat(),
            'duration_minutes': self.duration_minutes,
            'location': self.location,
            'attendees': [{'name': a.name, 'email': a.email} for a in self.attendees],
            'status': self.status,
            'class': self.class_type,
            'private': self.is_private,
        }


@dataclass(frozen=True)
class Bucket:
    events: tuple[Event, ...] = ()
    total_minutes: int = 0

    @classmethod
    def of(cls, events: Iterable[Event]) -> 'Bucket':
        events = tuple(events)
        return cls(events=events, total_minutes=sum(event.duration_minutes for event in events))


@dataclass(frozen=True)
class AnalysisOptions:
    """Run configuration, built once from the command line."""
    files: tuple[str, ...]
    start_date: date
    end_date: date
    group_by: str
    persons: tuple[str, ...] | None = None
    expand_recurring: bool = False


@dataclass(frozen=True)
class Report:
    group_by: str
    groups: dict[str, Bucket]
    start_date: date
    end_date: date
    persons: tuple[str, ...] | None = None
    time_with_person: list[tuple[str, int]] | None = None

    @property
    def event_count(self) -> int:
        return sum(len(bucket.events) for bucket in self.groups.values())

    @property
    def include_everyone(self) -> bool:
        return includes_everyone(self.persons)

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            'group_by': self.group_by,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'event_count': self.event_count,
            'groups': [
                {
                    'key': key,
                    'total_minutes': bucket.total_minutes,
                    'events': [event.to_dict() for event in bucket.events],
                }
                for key, bucket in self.groups.items()
            ],
        }
        if self.time_with_person is not None:
            data['time_with_person'] = [
                {'name': name, 'minutes': minutes}
                for name, minutes in self.time_with_person
            ]
        return data
