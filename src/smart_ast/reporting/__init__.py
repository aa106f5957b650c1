"""Report generation."""

from smart_ast.reporting.report_builder import ReportBuilder, render_markdown

__all__ = ["ReportBuilder", "render_markdown"]
