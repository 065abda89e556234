from __future__ import annotations


class OpensnoopError(Exception):
    exit_code = 1


class ConfigError(OpensnoopError):
    exit_code = 2


class ProbeError(OpensnoopError):
    pass


class SessionError(OpensnoopError):
    pass


class Interrupted(OpensnoopError):
    """Raised from a signal handler to unwind a live trace."""
