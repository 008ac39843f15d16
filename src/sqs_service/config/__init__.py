"""
Module: config
Description: Package initialization for configuration.

Exposes the environment-driven settings used as defaults by the
SQS wrapper and its consumer.
"""

from .settings import Settings, settings

__all__ = ["Settings", "settings"]
