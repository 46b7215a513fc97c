"""Configuration loading utilities for RaySplat."""

from .schema import (
    ScenarioConfig,
    load_config,
)

__all__ = ["ScenarioConfig", "load_config"]
