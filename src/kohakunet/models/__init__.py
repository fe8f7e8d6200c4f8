"""Enumerations and wire models shared across KohakuNet."""
