# ladder/__init__.py
"""
League standings and MVP ingestion.

Spreadsheet exports are parsed, normalized and reconciled against a record
store; the read side serves leaderboard and MVP rankings.
"""

__version__ = "0.3.0"
