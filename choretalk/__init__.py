"""ChoreTalk - spoken household walkthroughs turned into chore lists."""

__version__ = "0.1.0"
