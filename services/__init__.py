"""Slot availability and booking core."""
