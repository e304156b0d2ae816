"""Monitoring of explanation behaviour over time."""

from __future__ import annotations

from .drift import DriftLevel, DriftReport, ExplanationDriftDetector

__all__ = ["DriftLevel", "DriftReport", "ExplanationDriftDetector"]
