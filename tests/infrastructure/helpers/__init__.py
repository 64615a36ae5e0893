"""Test helpers."""

from .waiting import wait_until

__all__ = ["wait_until"]
