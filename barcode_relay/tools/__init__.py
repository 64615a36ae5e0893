"""Standalone helper tools shipped with the relay."""
