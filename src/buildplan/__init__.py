"""Buildplan - Construction project phase and task scheduling.

This package provides the scheduling core of a multi-tenant construction
coordination system: a two-level phase/task hierarchy with business-day date
arithmetic, automatic phase duration recalculation, and schedule variance
classification against a project baseline.
"""

__version__ = "0.1.0"
