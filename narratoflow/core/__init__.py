"""
Core modules for NarratoFlow.

This package contains usage accounting, admission control, retry policy,
error classification and story prompt construction.
"""
