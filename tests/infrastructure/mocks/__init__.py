"""Test doubles for HID devices and the delivery endpoint."""
