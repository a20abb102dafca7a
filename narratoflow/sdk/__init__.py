"""
SDK for NarratoFlow.

Provides programmatic access to governed story generation.
"""

from .story_client import StoryGenerator, StoryResult

__all__ = ["StoryGenerator", "StoryResult"]
