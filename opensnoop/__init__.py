"""Trace open() syscalls through ftrace and reconstruct one row per open."""

__version__ = "0.3.0"
