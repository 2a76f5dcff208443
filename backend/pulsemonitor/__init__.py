"""Pulse Monitor - multi-protocol endpoint monitoring service."""
