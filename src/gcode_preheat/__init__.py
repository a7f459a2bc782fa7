"""Toolchange preheat scheduling for multi-extruder 3D printer G-code."""

from .config import ConfigError, PreheatConfig, load_config
from .models import Extruder, Instruction, ThermalCosts
from .runner import PreheatSummary, preheat_file
from .scheduler import PreheatScheduler

__all__ = [
    "PreheatScheduler",
    "PreheatConfig",
    "PreheatSummary",
    "ConfigError",
    "Extruder",
    "Instruction",
    "ThermalCosts",
    "load_config",
    "preheat_file",
]
