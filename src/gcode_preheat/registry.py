"""Extruder registry keyed by normalized op code."""

from typing import Dict, Iterable, Iterator, List

from gcode_preheat.models.extruder import Extruder


class ExtruderRegistry:
    """
    The single owned table of extruder records for a run.

    Instructions refer to extruders by key; every lookup returns the same
    record, so scheduling timestamps written during one toolchange are seen
    by all later ones.
    """

    def __init__(self, extruders: Iterable[Extruder]) -> None:
        """
        Initialize the registry.

        Args:
            extruders: Configured extruders

        Raises:
            ValueError: If no extruders are given or two names collide
                case-insensitively
        """
        self._extruders: Dict[str, Extruder] = {}
        for extruder in extruders:
            if extruder.key in self._extruders:
                raise ValueError(f"duplicate extruder name: {extruder.name}")
            self._extruders[extruder.key] = extruder

        if not self._extruders:
            raise ValueError("no extruders defined")

        self._max_heat_up = max(e.heat_up for e in self._extruders.values())

    @property
    def max_heat_up(self) -> float:
        """Longest heat-up time over all extruders, in seconds."""
        return self._max_heat_up

    def reset(self) -> None:
        """Clear scheduling bookkeeping on every extruder."""
        for extruder in self._extruders.values():
            extruder.reset()

    def get(self, op: str) -> Extruder:
        """Look up the extruder selected by ``op`` (case-insensitive)."""
        return self._extruders[op.strip().upper()]

    def keys(self) -> List[str]:
        return list(self._extruders)

    def __getitem__(self, key: str) -> Extruder:
        return self.get(key)

    def __contains__(self, op: object) -> bool:
        return isinstance(op, str) and op.strip().upper() in self._extruders

    def __iter__(self) -> Iterator[Extruder]:
        return iter(self._extruders.values())

    def __len__(self) -> int:
        return len(self._extruders)
