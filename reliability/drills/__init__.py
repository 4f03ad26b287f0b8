"""Bounded load drills against the product's HTTP endpoints.

Scenarios live in ``scenarios/``, stage execution in ``stage.py``, SLO checks
in ``slo.py`` and the command line driver in ``cli.py``.
"""
