"""Shared core helpers for the listener service."""
from __future__ import annotations

SERVICE_NAME = "sqs_listener"
