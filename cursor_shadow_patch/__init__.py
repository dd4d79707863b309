"""Cursor Shadow Patch: custom machine id, MAC address and device ids for Cursor."""

__version__ = "0.3.0"
