"""
JSON output handler
"""
import json

from tallycal.models import Report


class Handler:
    """Console output handler class"""

    def __init__(self, indent: int | None = 2):
        self.indent = indent

    def __call__(self, report: Report) -> None:
        """
        Output the report as JSON to console

        Args:
            report: Analysis report
        """
        print(json.dumps(report.to_dict(), indent=self.indent, ensure_ascii=False), flush=True)
