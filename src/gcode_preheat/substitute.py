"""Regex and template driven line substitution for G-code files.

Each substitution pairs a regular expression with a ``str.format`` template.
Templates see a ``matches`` list holding, for every substitution in order,
``[whole_match, group1, group2, ...]`` or an empty list if it did not match
the current line. A literal ``\\n`` in the rendered text becomes a line break.
Only templates whose own pattern matched the line are rendered. The rendered
text is inserted as is: ``\\1`` or ``$1`` group references are not expanded,
use ``{matches[i][n]}`` instead.

Example config:

    substitutions:
      - from: '^M600$'
        to: 'M400\\nM600'
      - from: '^T(\\d+)$'
        to: 'TOOL_CHANGE T={matches[1][1]}'
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, List, Mapping, Sequence, TextIO, Union

from gcode_preheat.config import ConfigError, read_yaml
from gcode_preheat.fileio import rewrite_file

logger = logging.getLogger(__name__)

PROCESSED_SUFFIX = ".processed"


@dataclass
class Substitution:
    """
    One pattern and its replacement template.

    Attributes:
        pattern: Regular expression searched in every line
        template: ``str.format`` template rendered with ``matches``
    """

    pattern: str
    template: str
    regex: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Compile the pattern."""
        try:
            self.regex = re.compile(self.pattern)
        except re.error as err:
            raise ConfigError(f"invalid pattern {self.pattern!r}: {err}") from err

    def render(self, matches: List[List[str]]) -> str:
        """
        Render the template.

        Raises:
            ValueError: If the template references a match or group that
                does not exist, or is malformed
        """
        try:
            text = self.template.format(matches=matches)
        except (IndexError, KeyError, ValueError) as err:
            raise ValueError(f"failed to render template {self.template!r}: {err}") from err
        return text.replace("\\n", "\n")


def parse_substitutions(data: Any) -> List[Substitution]:
    """
    Build substitutions from decoded YAML data.

    Args:
        data: Mapping with a ``substitutions`` list of ``{from, to}`` entries

    Raises:
        ConfigError: If the structure is wrong or a pattern does not compile
    """
    if not isinstance(data, Mapping):
        raise ConfigError("config must be a mapping")
    entries = data.get("substitutions") or []
    if not isinstance(entries, list):
        raise ConfigError("substitutions must be a list")

    substitutions = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping) or "from" not in entry:
            raise ConfigError(f"substitutions[{index}] must be a mapping with a 'from' key")
        to = entry.get("to")
        substitutions.append(Substitution(str(entry["from"]), "" if to is None else str(to)))
    return substitutions


def load_substitutions(path: Union[str, Path]) -> List[Substitution]:
    """Load substitutions from a YAML file."""
    return parse_substitutions(read_yaml(path))


def substitute_line(line: str, substitutions: Sequence[Substitution]) -> str:
    """
    Apply all substitutions to one line.

    Returns:
        The line unchanged if no pattern matches, otherwise the line with
        every matching pattern replaced by its rendered template
    """
    found = [s.regex.search(line) for s in substitutions]
    if not any(found):
        return line

    matches = [[m.group(0), *m.groups(default="")] if m else [] for m in found]
    for substitution, match in zip(substitutions, found):
        # Templates of patterns absent from this line are not rendered
        if match is None:
            continue
        rendered = substitution.render(matches)
        line = substitution.regex.sub(lambda _: rendered, line)
    return line


def substitute_file(
    path: Union[str, Path], substitutions: Sequence[Substitution], rename: bool = True
) -> Path:
    """
    Apply substitutions to every line of a G-code file in place.

    Args:
        path: G-code file to process
        substitutions: Substitutions to apply, in order
        rename: Replace the original with the result (default: True)

    Returns:
        Path of the file holding the result

    Raises:
        OSError: If the file cannot be read, written or renamed
        ValueError: If a template fails to render
    """
    logger.debug("gcode path: %s", path)
    for key, value in sorted(os.environ.items()):
        logger.debug("env: %s=%s", key, value)

    def process(lines: Iterator[str], output: TextIO) -> None:
        for line in lines:
            output.write(substitute_line(line, substitutions) + "\n")

    return rewrite_file(path, PROCESSED_SUFFIX, process, rename=rename)
