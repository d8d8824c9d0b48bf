"""
File output handler
"""
import logging
from pathlib import Path

from tallycal.handlers.formatter import render_report
from tallycal.models import Report


class Handler:
    """File writer handler class"""

    def __init__(self, output_file: str):
        """
        Initialize file output handler

        Args:
            output_file: Output file path
        """
        self.output_file = Path(output_file)

    def __call__(self, report: Report) -> None:
        """
        Write the text report to file

        Args:
            report: Analysis report
        """
        try:
            with open(self.output_file, 'w', encoding='utf-8') as f:
                f.write(render_report(report) + '\n')
            logging.info(f"Report written to file: {self.output_file}")

        except OSError as e:
            logging.error(f"Failed to write file: {e}")
