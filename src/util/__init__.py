"""Logging, configuration, timing, device and coordinate utilities."""
