"""Shared fixtures for tallycal tests."""

from datetime import datetime, timedelta

import pytest

from tallycal.models import Attendee, Event


def vevent(
    summary: str | None = "Meeting",
    start: str | None = "20240105T090000",
    end: str | None = "20240105T091500",
    attendees: tuple[tuple[str | None, str], ...] = (),
    privacy: str | None = None,
    extra: tuple[str, ...] = (),
) -> str:
    """Build a VEVENT block; attendees are (CN, email) pairs."""
    lines = ["BEGIN:VEVENT"]
    if start:
        lines.append(f"DTSTART:{start}")
    if end:
        lines.append(f"DTEND:{end}")
    if summary is not None:
        lines.append(f"SUMMARY:{summary}")
    if privacy:
        lines.append(f"CLASS:{privacy}")
    for cn, email in attendees:
        if cn:
            lines.append(f"ATTENDEE;CN={cn}:mailto:{email}")
        else:
            lines.append(f"ATTENDEE:mailto:{email}")
    lines.extend(extra)
    lines.append("END:VEVENT")
    return "\n".join(lines)


def vcalendar(*components: str) -> str:
    return "\n".join([
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//tallycal//tests//EN",
        *components,
        "END:VCALENDAR",
    ]) + "\n"


@pytest.fixture
def write_ics(tmp_path):
    """Write calendar text to a .ics file under tmp_path and return its path."""

    def _write(name: str, *components: str, raw: str | None = None):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(raw if raw is not None else vcalendar(*components), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_event():
    """Build an Event directly, without going through ICS parsing."""

    def _make(
        summary: str = "Meeting",
        start: datetime = datetime(2024, 1, 5, 9, 0),
        minutes: int = 30,
        attendees: tuple[str, ...] = (),
        class_type: str = "PUBLIC",
    ) -> Event:
        return Event(
            start=start,
            end=start + timedelta(minutes=minutes),
            summary=summary,
            attendees=tuple(Attendee(name=name, email=f"{name.lower()}@example.com") for name in attendees),
            class_type=class_type,
        )

    return _make


@pytest.fixture
def standup_files(write_ics):
    """Two files holding one 'Standup' event each, the second one private."""
    first = write_ics(
        "a.ics",
        vevent(
            summary="Standup",
            start="20240105T090000",
            end="20240105T091500",
            attendees=(("Alice", "alice@example.com"),),
        ),
    )
    second = write_ics(
        "b.ics",
        vevent(
            summary="Standup",
            start="20240110T100000",
            end="20240110T110000",
            attendees=(("Bob", "bob@example.com"),),
            privacy="PRIVATE",
        ),
    )
    return first, second
