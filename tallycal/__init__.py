"""
tallycal: time spent in meetings and with attendees, from ICS calendar files
"""

__version__ = "1.0.0"
