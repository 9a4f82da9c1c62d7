"""Conjunctive searchable symmetric encryption: ODXT and HDXT schemes, with storage helpers and an ODXT command."""

__version__ = "0.1.0"