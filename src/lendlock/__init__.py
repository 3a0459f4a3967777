"""LendLock: peer-to-peer loan lifecycle service."""

__version__ = "1.0.0"
