"""
Background Jobs for Grievance Desk.

This module contains scheduled and background jobs:
- mapping_maintenance: TTL purge and cross-store reconciliation
"""

from .mapping_maintenance import run_mapping_maintenance, send_alert

__all__ = ["run_mapping_maintenance", "send_alert"]
