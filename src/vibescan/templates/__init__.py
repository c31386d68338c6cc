"""vibescan report rendering.

Jinja2-based Markdown export of finished analysis runs.
"""

from vibescan.templates.renderer import ReportRenderer

__all__ = ["ReportRenderer"]
