"""Threshold and trap based detection, and trap placement."""

from .rules import ThresholdDetection, TrapDetection, TrapPlacement

__all__ = ['ThresholdDetection', 'TrapDetection', 'TrapPlacement']
