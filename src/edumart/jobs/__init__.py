"""Batch jobs invoked from outside the web process."""

from .expire_sweep import run_sweep_once

__all__ = ["run_sweep_once"]
