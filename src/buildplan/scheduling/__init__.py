"""Scheduling engine for Buildplan.

Business-day calendar arithmetic, the phase/task hierarchy rules, the phase
duration recalculation engine, project metrics, and the PhaseService that
exposes them to the HTTP and CLI layers.
"""
