#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# cranfit/errors.py

"""
Exception types raised by cranfit.

Only configuration problems are raised to the caller. Per-iteration domain
violations and numerical overflow are absorbed as a log-posterior of -inf
and handled by the accept/reject step.
"""

from __future__ import annotations

__all__ = ["ConfigurationError"]


class ConfigurationError(ValueError):
    """Fatal misconfiguration detected before sampling starts."""
