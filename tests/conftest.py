"""Shared pytest configuration: non-interactive plotting backend."""

import matplotlib

matplotlib.use("Agg")
