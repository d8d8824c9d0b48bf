#!/usr/bin/env python
'''
@File    :   main.py
@Version :   1.0
@Desc    :   ICS Calendar Time Analysis Tool
'''
import argparse
import importlib
import importlib.util
import json
import logging
import os
import re
import sys
from collections.abc import Iterable, Iterator, Sequence
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Literal, Protocol, cast, overload

import dateutil.parser
import dateutil.rrule
import dateutil.tz
from icalendar import Calendar, Component, vDDDLists, vDDDTypes

from tallycal.models import (
    AnalysisOptions,
    Attendee,
    Bucket,
    CalendarLoadError,
    Event,
    Report,
    includes_everyone,
)


class BaseHandler(Protocol):
    def __call__(self, report: Report) -> None: ...


GROUP_KEYS = {
    'month': lambda event: event.month,
    'title': lambda event: event.summary,
}


def to_naive_local_datetime(dt: date) -> datetime:
    """Convert a date or datetime to a naive datetime in local timezone.

    Args:
        dt: date or datetime object, optionally timezone-aware

    Returns:
        Naive datetime object in local timezone
    """
    if isinstance(dt, datetime):
        if dt.tzinfo:
            local_tz = dateutil.tz.tzlocal()
            return dt.astimezone(local_tz).replace(tzinfo=None)
        return dt
    return datetime(dt.year, dt.month, dt.day)


@overload
def extract_datetime(component: Component, key: Literal['DTSTART', 'DTEND', 'RECURRENCE-ID']) -> datetime | None: ...

@overload
def extract_datetime(component: Component, key: Literal['DURATION']) -> timedelta | None: ...

def extract_datetime(component: Component, key: str) -> datetime | timedelta | None:
    if not isinstance(component, Component):
        return None

    key = key.upper()

    ddd: list[vDDDTypes] | vDDDTypes | None = component.get(key)
    if not ddd:
        return None

    if isinstance(ddd, list):
        ddd = ddd[0]

    dt = ddd.dt

    if key == 'DURATION':
        return dt if isinstance(dt, timedelta) else None

    if isinstance(dt, date):
        return to_naive_local_datetime(dt)

    return None


def is_all_day(component: Component) -> bool:
    return component.decoded('DTSTART', None).__class__ == date


def resolve_end(component: Component, start: datetime) -> datetime:
    """Resolve the end of an event from DTEND, DURATION or its value type."""
    dtend_value = extract_datetime(component, 'DTEND')
    if dtend_value is not None:
        return dtend_value

    duration_value = extract_datetime(component, 'DURATION')
    if duration_value is not None:
        return start + duration_value

    if is_all_day(component):
        return start + timedelta(days=1)

    return start


def extract_attendees(component: Component) -> tuple[Attendee, ...]:
    props = component.get('ATTENDEE')
    if not props:
        return ()
    if not isinstance(props, list):
        props = [props]

    attendees = []
    for prop in props:
        email = re.sub(r'^mailto:', '', str(prop), flags=re.IGNORECASE).strip()
        cn = prop.params.get('CN') if hasattr(prop, 'params') else None
        name = str(cn).strip() if cn else email
        attendees.append(Attendee(name=name, email=email))
    return tuple(attendees)


def extract_fields(component: Component) -> dict[str, object]:
    """Read the descriptive VEVENT properties, filling in defaults for missing ones."""
    def text(key: str, default: str) -> str:
        value = component.get(key)
        return str(value) if value else default

    return {
        'summary': text('SUMMARY', 'No title'),
        'location': text('LOCATION', 'No location'),
        'attendees': extract_attendees(component),
        'status': text('STATUS', 'CONFIRMED'),
        'class_type': text('CLASS', 'PUBLIC'),
    }


def is_recurring(component: Component) -> bool:
    return component.get('RRULE') is not None or component.get('RDATE') is not None


def to_wall_time(dt: date, tz) -> datetime:
    """Express a date or datetime as naive wall-clock time in ``tz``.

    Floating values are kept as they are. With no ``tz`` (a floating or
    all-day DTSTART), aware values are converted to local time.
    """
    if isinstance(dt, datetime):
        if dt.tzinfo is None:
            return dt
        if tz is None:
            return to_naive_local_datetime(dt)
        return dt.astimezone(tz).replace(tzinfo=None)
    return datetime(dt.year, dt.month, dt.day)


def local_to_wall_time(dt: datetime, tz) -> datetime:
    """Convert a naive local datetime to naive wall-clock time in ``tz``."""
    if tz is None:
        return dt
    return dt.replace(tzinfo=dateutil.tz.tzlocal()).astimezone(tz).replace(tzinfo=None)


def wall_to_local_time(dt: datetime, tz) -> datetime:
    """Convert naive wall-clock time in ``tz`` to a naive local datetime."""
    if tz is None:
        return dt
    return to_naive_local_datetime(dt.replace(tzinfo=tz))


def get_occurrences_in_range(
    component: Component,
    start_time: datetime,
    end_time: datetime,
    overridden: Iterable[date] = (),
) -> list[datetime]:
    """Get all occurrences of an event within a time range.

    Handles recurring events using RRULE, RDATE, and EXDATE properties.
    The rule is expanded in the wall-clock time of the DTSTART timezone so
    that occurrences keep their local hour across DST changes.

    Args:
        component: VEVENT component
        start_time: Start of the query range, naive local time
        end_time: End of the query range, naive local time
        overridden: RECURRENCE-ID values of components replacing occurrences

    Returns:
        List of naive local datetime objects for each occurrence
    """
    dtstart_raw = component.decoded('DTSTART', None)
    if dtstart_raw is None:
        return []

    tz = dtstart_raw.tzinfo if isinstance(dtstart_raw, datetime) else None
    dtstart_value = to_wall_time(dtstart_raw, tz)

    rules = dateutil.rrule.rruleset()

    has_rrule = False

    rrule_props = component.get('RRULE')
    if rrule_props:
        if not isinstance(rrule_props, list):
            rrule_props = [rrule_props]

        for prop in rrule_props:
            try:
                rrule_str = prop.to_ical().decode('utf-8')
                rule = dateutil.rrule.rrulestr(
                    s=rrule_str,
                    dtstart=dtstart_value,
                    forceset=False,
                    ignoretz=True
                )
                rule = cast(dateutil.rrule.rrule, rule)
                # UNTIL is usually given in UTC
                until = prop.get('UNTIL')
                if until and isinstance(until[0], datetime) and until[0].tzinfo is not None:
                    rule = rule.replace(until=to_wall_time(until[0], tz))
                rules.rrule(rule)
                has_rrule = True
            except ValueError:
                logging.warning(f"Invalid RRULE format: {prop.to_ical().decode('utf-8')}, skipped.")
                continue

    if not has_rrule:
        rules.rdate(dtstart_value)

    def extract_dates(props: list[vDDDLists] | vDDDLists) -> list[datetime]:
        extracted = []
        if not isinstance(props, list):
            props = [props]
        for prop in props:
            for ddd in prop.dts:
                ddd_dt = ddd.dt
                # PERIOD values count from their start
                if isinstance(ddd_dt, tuple) and len(ddd_dt) == 2:
                    ddd_dt = ddd_dt[0]
                if isinstance(ddd_dt, date):
                    extracted.append(to_wall_time(ddd_dt, tz))
        return extracted

    rdates = component.get('RDATE')
    if rdates:
        for rdate in extract_dates(rdates):
            rules.rdate(rdate)

    exdates = component.get('EXDATE')
    if exdates:
        for exdate in extract_dates(exdates):
            rules.exdate(exdate)

    for recurrence_id in overridden:
        rules.exdate(to_wall_time(recurrence_id, tz))

    occurrences = rules.between(
        local_to_wall_time(to_naive_local_datetime(start_time), tz),
        local_to_wall_time(to_naive_local_datetime(end_time), tz),
        inc=True,
    )
    return [wall_to_local_time(occurrence, tz) for occurrence in occurrences]


def extract_events(
    calendar: Component,
    start_time: datetime | None = None,
    end_time: datetime | None = None,
) -> list[Event]:
    """Build Event records from the VEVENT components of a calendar.

    When both ``start_time`` and ``end_time`` are given, recurring events are
    expanded into one Event per occurrence inside that window. Occurrences that
    a separate RECURRENCE-ID component overrides are left to that component.
    """
    expand = start_time is not None and end_time is not None

    overridden: dict[str, list[date]] = {}
    for component in calendar.walk('VEVENT'):
        recurrence_id = component.decoded('RECURRENCE-ID', None)
        if recurrence_id is not None:
            overridden.setdefault(str(component.get('UID')), []).append(recurrence_id)

    events: list[Event] = []
    for component in calendar.walk('VEVENT'):
        dtstart_value = extract_datetime(component, 'DTSTART')
        if dtstart_value is None:
            logging.warning(f"Event '{component.get('SUMMARY', 'No title')}' has no DTSTART, skipped.")
            continue

        duration = resolve_end(component, dtstart_value) - dtstart_value
        fields = extract_fields(component)

        starts = [dtstart_value]
        if expand and is_recurring(component) and component.get('RECURRENCE-ID') is None:
            starts = get_occurrences_in_range(
                component,
                start_time,
                end_time,
                overridden.get(str(component.get('UID')), ()),
            )

        for start in starts:
            events.append(Event(start=start, end=start + duration, **fields))

    return events


def iter_calendar_files(input_paths: Iterable[str]) -> Iterator[Path]:
    """Yield calendar files, walking directories for .ics files.

    Raises:
        CalendarLoadError: If a path does not exist
    """
    for path_str in input_paths:
        path = Path(path_str)

        if not path.exists():
            raise CalendarLoadError(path, "no such file or directory")

        if path.is_dir():
            yield from sorted(p for p in path.rglob('*.ics') if p.is_file())
        else:
            yield path


def load_calendar(path: Path) -> list[Component]:
    """Read and parse a single ICS file.

    A file may hold several concatenated VCALENDAR blocks.

    Returns:
        Parsed calendar components, empty if the file is empty

    Raises:
        CalendarLoadError: If the file cannot be read or parsed
    """
    try:
        with path.open('r', encoding='utf-8') as f:
            content = f.read().strip()
    except (OSError, UnicodeDecodeError) as e:
        raise CalendarLoadError(path, f"cannot read file: {e}") from e

    if not content:
        logging.warning(f"No content in file {path}, skipped.")
        return []

    try:
        return Calendar.from_ical(content, multiple=True)
    except Exception as e:
        raise CalendarLoadError(path, f"cannot parse calendar: {e}") from e


def load_events(
    input_paths: Iterable[str],
    start_time: datetime | None = None,
    end_time: datetime | None = None,
) -> list[Event]:
    """Load and concatenate the events of every input file, in order."""
    events: list[Event] = []
    for path in iter_calendar_files(input_paths):
        file_events = [
            event
            for calendar in load_calendar(path)
            for event in extract_events(calendar, start_time, end_time)
        ]
        logging.info(f"Loaded {len(file_events)} events from {path}")
        events.extend(file_events)
    return events


def filter_events_by_date(events: Iterable[Event], start_date: date, end_date: date) -> list[Event]:
    """Keep events starting between start_date and end_date, both days included."""
    return [event for event in events if start_date <= event.start.date() <= end_date]


def group_events(events: Iterable[Event], group_by: str) -> dict[str, Bucket]:
    """Group events by month label or by title.

    Title groups keep the order in which titles first appear. Month groups
    are ordered chronologically.

    Raises:
        ValueError: If group_by is not a supported grouping
    """
    try:
        key_of = GROUP_KEYS[group_by]
    except KeyError:
        raise ValueError(f"Unsupported grouping: {group_by}") from None

    members: dict[str, list[Event]] = {}
    for event in events:
        members.setdefault(key_of(event), []).append(event)

    groups = {key: Bucket.of(group) for key, group in members.items()}

    if group_by == 'month':
        def month_of(item: tuple[str, Bucket]) -> tuple[int, int]:
            start = item[1].events[0].start
            return start.year, start.month

        groups = dict(sorted(groups.items(), key=month_of))

    return groups


def tally_attendee_time(events: Iterable[Event], persons: Sequence[str]) -> list[tuple[str, int]]:
    """Sum the time spent with each matching attendee, largest total first.

    Every attendee of an event is credited with the full event duration.
    An attendee matches when its name or email equals one of ``persons``,
    or always when ``persons`` is the single blank entry.
    """
    everyone = includes_everyone(persons)
    wanted = set(persons)

    totals: dict[str, int] = {}
    for event in events:
        for attendee in event.attendees:
            if everyone or attendee.name in wanted or attendee.email in wanted:
                totals[attendee.name] = totals.get(attendee.name, 0) + event.duration_minutes

    return sorted(totals.items(), key=lambda item: item[1], reverse=True)


def build_report(events: Iterable[Event], options: AnalysisOptions) -> Report:
    filtered = filter_events_by_date(events, options.start_date, options.end_date)

    time_with_person = None
    if options.persons is not None:
        time_with_person = tally_attendee_time(filtered, options.persons)

    return Report(
        group_by=options.group_by,
        groups=group_events(filtered, options.group_by),
        start_date=options.start_date,
        end_date=options.end_date,
        persons=options.persons,
        time_with_person=time_with_person,
    )


def analyse(options: AnalysisOptions) -> Report:
    """Load every input file and build the report for the configured range."""
    start_time = end_time = None
    if options.expand_recurring:
        start_time = datetime.combine(options.start_date, time.min)
        end_time = datetime.combine(options.end_date, time.max)

    events = load_events(options.files, start_time, end_time)
    return build_report(events, options)


def load_handler(handler_name: str, handler_params: dict | None = None) -> BaseHandler:
    """Load and instantiate a report handler module.

    Args:
        handler_name: Module name or path to handler script
        handler_params: Optional parameters to pass to handler constructor

    Returns:
        Callable handler instance
    """
    handler_file = Path(handler_name)
    if handler_file.is_file() and handler_file.suffix == '.py':
        spec = importlib.util.spec_from_file_location(handler_file.stem, handler_name)
        if not spec or not spec.loader:
            raise ImportError(f"Cannot load handler from {handler_name}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
    else:
        try:
            module = importlib.import_module(f'tallycal.handlers.{handler_name}')
        except ImportError:
            module = importlib.import_module(handler_name)

    handler_class = getattr(module, 'Handler')

    if handler_params:
        return handler_class(**handler_params)
    else:
        return handler_class()


def parse_date(value: str) -> date:
    """argparse type for YYYY-MM-DD dates."""
    try:
        return dateutil.parser.isoparse(value).date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date '{value}', expected YYYY-MM-DD") from None


def parse_person_list(value: str) -> tuple[str, ...]:
    return tuple(name.strip() for name in value.split(','))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='tallycal',
        description='ICS Calendar Time Analysis Tool'
    )

    parser.add_argument(
        '-f', '--files',
        nargs='+',
        required=True,
        help='.ics files or directories containing .ics files'
    )

    parser.add_argument(
        '-s', '--startDate',
        dest='start_date',
        type=parse_date,
        required=True,
        help='start date, inclusive (YYYY-MM-DD)'
    )

    parser.add_argument(
        '-e', '--endDate',
        dest='end_date',
        type=parse_date,
        required=True,
        help='end date, inclusive (YYYY-MM-DD)'
    )

    parser.add_argument(
        '-g', '--groupBy',
        dest='group_by',
        choices=sorted(GROUP_KEYS),
        required=True,
        help='group events by "month" or "title"'
    )

    parser.add_argument(
        '-p', '--person',
        type=parse_person_list,
        help='track time spent with one or more persons (comma-separated names or emails); an empty list includes everyone'
    )

    parser.add_argument(
        '-r', '--expand-recurring',
        action='store_true',
        help='count every occurrence of recurring events inside the date range'
    )

    parser.add_argument(
        '-m', '--module',
        type=str,
        default='formatter',
        help='report handler module name (default: formatter, text report on stdout)'
    )

    parser.add_argument(
        '--params',
        type=str,
        help='handler initialization parameters in JSON format'
    )

    parser.add_argument(
        '-l', '--log-level',
        type=str.upper,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        default='INFO',
        help='set the logging level (default: INFO)'
    )

    parser.add_argument(
        '-v', '--version',
        action='version',
        version='tallycal 1.0.0',
        help='show program version and exit'
    )

    return parser


def main(argv: Sequence[str] | None = None):
    """Main entry point for the ICS calendar time analysis tool."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if args.params:
        try:
            params = json.loads(args.params)
        except json.JSONDecodeError as e:
            logging.error(f"Invalid JSON format for handler parameters: {e}")
            sys.exit(1)
        if not isinstance(params, dict):
            logging.error("Params must be a JSON object (dict)")
            sys.exit(1)
    else:
        params = None

    try:
        handler = load_handler(args.module, params)
    except Exception as e:
        logging.error(f"Error loading handler module: {e}")
        sys.exit(1)

    options = AnalysisOptions(
        files=tuple(args.files),
        start_date=args.start_date,
        end_date=args.end_date,
        group_by=args.group_by,
        persons=args.person,
        expand_recurring=args.expand_recurring,
    )

    logging.info(f"Date Range: {options.start_date} to {options.end_date}")

    try:
        report = analyse(options)
    except CalendarLoadError as e:
        logging.error(f"Error loading calendar: {e}")
        sys.exit(1)

    handler(report)
    return


def run():
    try:
        main()
    except KeyboardInterrupt:
        print(file=sys.stderr)
        sys.exit(130)
    except BrokenPipeError:
        sys.stderr = open(os.devnull, 'w')
        sys.exit(1)


if __name__ == "__main__":
    run()
