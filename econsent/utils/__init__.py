"""Utility functions."""

from econsent.utils.time import format_datetime, seconds_between, utc_now

__all__ = ["utc_now", "format_datetime", "seconds_between"]
