"""
Ntfy handler
"""
import logging

import requests

from tallycal.handlers.formatter import format_duration, format_event, render_attendee_time, render_report
from tallycal.models import Bucket, Report


class Handler:
    """Handler class for sending the report to an Ntfy webhook"""

    def __init__(
        self,
        url: str = "https://ntfy.sh/calendar",
        headers: dict | None = None,
        individual: bool = False,
        priority: int = 3,
    ):
        """
        Initialize Ntfy webhook handler

        Args:
            url: Ntfy webhook URL
            headers: Custom headers for the request
            individual: Whether to send each group individually. False (default) sends the whole report as one message, True sends one message per group
            priority: Ntfy message priority, clamped to 1-5
        """
        self.url = url
        self.headers = headers or {}
        self.individual = individual
        self.priority = max(1, min(5, int(priority)))

    def __call__(self, report: Report) -> None:
        """
        Send the report to the configured Ntfy webhook

        Args:
            report: Analysis report
        """
        if self.individual:
            self._send_groups(report)
        else:
            self._send_report(report)

    def _post(self, title: str, message: str) -> bool:
        headers = {
            "Content-Type": "text/plain; charset=utf-8",
            "Title": title,
            "Tags": "calendar",
            "Priority": str(self.priority),
        }
        headers.update(self.headers)

        try:
            response = requests.post(
                self.url,
                data=message.encode('utf-8'),
                headers=headers,
                timeout=10
            )
        except requests.exceptions.RequestException as e:
            logging.error(f"❌ Error sending to webhook: {e}")
            return False

        if response.status_code != 200:
            logging.error(f"❌ Failed to send: HTTP {response.status_code}, {response.text}")
            return False
        return True

    def _send_groups(self, report: Report) -> None:
        """
        Send one message per group to webhook, then the attendee totals

        Args:
            report: Analysis report
        """
        for group, bucket in report.groups.items():
            if self._post(f"{group} ({format_duration(bucket.total_minutes)})", self._group_message(bucket)):
                logging.info(f"✅ Group {group} sent successfully")

        attendee_lines = render_attendee_time(report)
        if attendee_lines:
            title = attendee_lines[0].rstrip(':')
            message = "\n".join(line.strip() for line in attendee_lines[1:]) or "No attendees in range."
            if self._post(title, message):
                logging.info("✅ Attendee totals sent successfully")

    def _group_message(self, bucket: Bucket) -> str:
        lines = [f"⏱ Total: {format_duration(bucket.total_minutes)}"]
        lines.extend(format_event(event).strip() for event in bucket.events)
        return "\n".join(lines)

    def _send_report(self, report: Report) -> None:
        """
        Send the whole report as a single message

        Args:
            report: Analysis report
        """
        if report.groups or report.time_with_person:
            message = render_report(report).strip()
        else:
            message = "No events in range."

        title = f"Calendar Time Report ({report.event_count} events)"
        if self._post(title, message):
            logging.info(f"✅ Successfully sent {report.event_count} events to {self.url}")
