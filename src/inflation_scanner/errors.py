"""Exception types raised inside a scan."""

from __future__ import annotations


class ScanError(Exception):
    """Base class for errors raised while scanning a single URL."""

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage


class NavigationError(ScanError):
    """The top-level navigation failed or timed out; fatal to the scan."""


class FrameAccessError(ScanError):
    """A frame's element, geometry or style could not be read."""


__all__ = ["FrameAccessError", "NavigationError", "ScanError"]
