"""
Text report handler
"""
from tallycal.models import Event, Report

TIME_FORMAT = '%Y-%m-%d %H:%M'


def format_duration(minutes: int) -> str:
    """Format minutes as 'H hours M minutes', leaving out a unit that is zero."""
    hours, mins = divmod(minutes, 60)

    if hours > 0 and mins > 0:
        return f"{hours} hours {mins} minutes"
    elif hours > 0:
        return f"{hours} hours"
    elif mins > 0:
        return f"{mins} minutes"
    else:
        return "0 minutes"


def format_event(event: Event) -> str:
    span = f"({event.start.strftime(TIME_FORMAT)} - {event.end.strftime(TIME_FORMAT)})"
    if event.is_private:
        return f"    🔒 {event.summary} (PRIVATE) {span}"
    return f"    🔹 {event.summary} {span}"


def render_report(report: Report) -> str:
    """Render grouped events and attendee totals as plain text."""
    lines = [f"Events Grouped by {report.group_by.capitalize()}:"]

    for group, bucket in report.groups.items():
        lines.append(f"{group}:")
        lines.append(f"  Total Duration: {format_duration(bucket.total_minutes)}")
        lines.append("  Events:")
        lines.extend(format_event(event) for event in bucket.events)
        lines.append("")

    lines.extend(render_attendee_time(report))

    return "\n".join(lines)


def render_attendee_time(report: Report) -> list[str]:
    """Render the time spent with attendees, or nothing if it was not requested."""
    if report.time_with_person is None:
        return []

    if report.include_everyone:
        who = "everyone"
    else:
        who = " OR ".join(f"'{person}'" for person in report.persons)

    lines = [f"Time spent with {who}:"]
    for person, minutes in report.time_with_person:
        lines.append(f"  {person}: {format_duration(minutes)}")
    return lines


class Handler:
    """Handler class printing the text report to the console"""

    def __call__(self, report: Report) -> None:
        print(render_report(report), flush=True)
