"""HTTP analytics: endpoint monitoring, anomaly detection and AI insights."""

__version__ = "0.1.0"
