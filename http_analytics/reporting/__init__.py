"""Reporting module for endpoint history digests."""

from .report_generator import EndpointSummary, ReportGenerator, render_template

__all__ = ["ReportGenerator", "EndpointSummary", "render_template"]
