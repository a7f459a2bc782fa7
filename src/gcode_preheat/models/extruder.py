"""Extruder and thermal cost models for preheat scheduling."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Extruder:
    """A tool head with its thermal profile and scheduling bookkeeping.

    The profile fields come from configuration. The scheduling fields are
    mutated by the scheduler during a run and are ``None`` while unset.

    Attributes:
        name: Extruder name as configured (e.g., "T0"). Matched case-insensitively
            against G-code op codes to detect toolchanges.
        heat_up: Time in seconds the extruder needs to reach temperature
        active_gcode: G-code emitted to start heating this extruder
        deactivate_gcode: Optional G-code emitted to power this extruder down
        preheated_at: Print time at which the last preheat took effect
        preheated_until: Print time of the toolchange the last preheat was for
        deactivated_at: Print time of the last emitted deactivation
    """

    name: str
    heat_up: float
    active_gcode: str
    deactivate_gcode: Optional[str] = None

    preheated_at: Optional[float] = field(default=None, compare=False)
    preheated_until: Optional[float] = field(default=None, compare=False)
    deactivated_at: Optional[float] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        """Validate the thermal profile."""
        if not self.name or not self.name.strip():
            raise ValueError("extruder name cannot be empty")
        if not self.active_gcode or not self.active_gcode.strip():
            raise ValueError(f"extruder {self.name} active gcode cannot be empty")
        if self.heat_up <= 0:
            raise ValueError(
                f"extruder {self.name} heat up time must be positive, got {self.heat_up}"
            )

    @property
    def key(self) -> str:
        """Normalized name used to match op codes."""
        return self.name.strip().upper()

    def reset(self) -> None:
        """Clear all scheduling bookkeeping."""
        self.preheated_at = None
        self.preheated_until = None
        self.deactivated_at = None

    def is_hot(self) -> bool:
        """Check if the extruder was preheated and not deactivated since."""
        if self.preheated_at is None:
            return False
        return self.deactivated_at is None or self.deactivated_at < self.preheated_at

    def is_preheated_across(self, print_time: float) -> bool:
        """Check if the last preheat window strictly contains ``print_time``."""
        if self.preheated_at is None or self.preheated_until is None:
            return False
        return self.preheated_at < print_time < self.preheated_until


@dataclass(frozen=True)
class ThermalCosts:
    """Fixed durations for ops whose time cannot be derived from motion.

    Attributes:
        toolchange: Seconds spent on a toolchange
        retraction: Seconds spent on a firmware retraction (G10/G11)
    """

    toolchange: float = 0.0
    retraction: float = 0.0

    def __post_init__(self) -> None:
        """Validate that costs are non-negative."""
        if self.toolchange < 0:
            raise ValueError(f"toolchange cost must be non-negative, got {self.toolchange}")
        if self.retraction < 0:
            raise ValueError(f"retraction cost must be non-negative, got {self.retraction}")
