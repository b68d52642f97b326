"""Terminal rendering of run and verification reports.

Modules
-------
renderer
    ``ReportRenderer`` turns ``RunReport`` and ``VerificationReport`` into
    Rich renderables for terminal display.
"""

from reprodocs.monitor.renderer import ReportRenderer

__all__ = ["ReportRenderer"]
