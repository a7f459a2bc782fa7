"""Preheat configuration loading and validation."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Mapping, Optional, Union

import yaml

from gcode_preheat.estimator import DEFAULT_SPEED_CHANGE_RATIO
from gcode_preheat.models.extruder import Extruder, ThermalCosts

EXTRUDER_KEYS = ("name", "heat_up", "active_gcode", "deactivate_gcode")
COST_KEYS = ("toolchange", "retraction")
CONFIG_KEYS = ("extruders", "costs", "speed_change_ratio", "filter_temperature")


class ConfigError(ValueError):
    """Raised when a configuration file is missing, malformed or invalid."""


@dataclass
class PreheatConfig:
    """Validated preheat configuration.

    Attributes:
        extruders: Extruders in configuration order (at least one)
        costs: Optional fixed durations for toolchanges and retractions
        speed_change_ratio: Fraction of move time added for acceleration
        filter_temperature: Drop M104/M109 commands from the output
    """

    extruders: List[Extruder] = field(default_factory=list)
    costs: Optional[ThermalCosts] = None
    speed_change_ratio: float = DEFAULT_SPEED_CHANGE_RATIO
    filter_temperature: bool = True

    def __post_init__(self) -> None:
        """Validate the configuration as a whole."""
        if not self.extruders:
            raise ConfigError("no extruders defined")
        keys = [extruder.key for extruder in self.extruders]
        for key in keys:
            if keys.count(key) > 1:
                raise ConfigError(f"duplicate extruder name: {key}")
        if self.speed_change_ratio < 0:
            raise ConfigError(
                f"speed_change_ratio must be non-negative, got {self.speed_change_ratio}"
            )


def parse_config(data: Any) -> PreheatConfig:
    """
    Build a PreheatConfig from decoded YAML data.

    Args:
        data: Mapping with an ``extruders`` list and optional ``costs``,
            ``speed_change_ratio`` and ``filter_temperature`` entries

    Returns:
        Validated PreheatConfig

    Raises:
        ConfigError: With a message naming the violated rule
    """
    if not isinstance(data, Mapping):
        raise ConfigError("config must be a mapping")
    _check_keys(data, CONFIG_KEYS, "config")

    raw_extruders = data.get("extruders") or []
    if not isinstance(raw_extruders, list):
        raise ConfigError("extruders must be a list")

    extruders = []
    for index, entry in enumerate(raw_extruders):
        if not isinstance(entry, Mapping):
            raise ConfigError(f"extruders[{index}] must be a mapping")
        _check_keys(entry, EXTRUDER_KEYS, f"extruders[{index}]")
        try:
            extruders.append(
                Extruder(
                    name=_text(entry.get("name")),
                    heat_up=_number(entry.get("heat_up", 0), "heat_up"),
                    active_gcode=_text(entry.get("active_gcode")),
                    deactivate_gcode=_text(entry.get("deactivate_gcode")) or None,
                )
            )
        except ValueError as err:
            raise ConfigError(f"extruders[{index}]: {err}") from err

    costs = None
    raw_costs = data.get("costs")
    if raw_costs is not None:
        if not isinstance(raw_costs, Mapping):
            raise ConfigError("costs must be a mapping")
        _check_keys(raw_costs, COST_KEYS, "costs")
        try:
            costs = ThermalCosts(
                toolchange=_number(raw_costs.get("toolchange", 0.0), "toolchange"),
                retraction=_number(raw_costs.get("retraction", 0.0), "retraction"),
            )
        except ValueError as err:
            raise ConfigError(f"costs: {err}") from err

    ratio = data.get("speed_change_ratio")
    try:
        ratio = DEFAULT_SPEED_CHANGE_RATIO if ratio is None else _number(ratio, "speed_change_ratio")
    except ValueError as err:
        raise ConfigError(str(err)) from err

    filter_temperature = data.get("filter_temperature", True)
    if not isinstance(filter_temperature, bool):
        raise ConfigError("filter_temperature must be true or false")

    return PreheatConfig(
        extruders=extruders,
        costs=costs,
        speed_change_ratio=ratio,
        filter_temperature=filter_temperature,
    )


def load_config(path: Union[str, Path]) -> PreheatConfig:
    """
    Load and validate a YAML preheat configuration file.

    Args:
        path: Path to the YAML file

    Returns:
        Validated PreheatConfig

    Raises:
        ConfigError: If the file cannot be read, decoded or validated
    """
    return parse_config(read_yaml(path))


def read_yaml(path: Union[str, Path]) -> Any:
    """Read a YAML document, wrapping read and decode errors in ConfigError."""
    try:
        with open(path, encoding="utf-8") as fp:
            return yaml.safe_load(fp)
    except OSError as err:
        raise ConfigError(f"failed to open config file: {err}") from err
    except yaml.YAMLError as err:
        raise ConfigError(f"failed to decode config file: {err}") from err


def _check_keys(data: Mapping, allowed: tuple, where: str) -> None:
    unknown = sorted(str(key) for key in data if key not in allowed)
    if unknown:
        raise ConfigError(f"{where}: unknown keys: {', '.join(unknown)}")


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _number(value: Any, name: str) -> float:
    # bool is an int subclass but never a valid duration
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number, got {value!r}")
    return float(value)
