"""Sliding-window anomaly detection for the HTTP log feed."""

from .detector import HIGH_ERROR_RATE, RESPONSE_TIME_SPIKE, SlidingWindowDetector

__all__ = ["SlidingWindowDetector", "HIGH_ERROR_RATE", "RESPONSE_TIME_SPIKE"]
