"""
PELens Shared Module
====================

Configuration, logging, and console utilities shared across the PELens
toolkit.
"""

from shared.config import LensConfig, get_config

__all__ = ["LensConfig", "get_config"]
