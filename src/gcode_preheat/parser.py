"""G-code line parsing."""

import logging
import math
from enum import Enum
from typing import Optional

from gcode_preheat.models.instruction import PARAMETER_FIELDS, Instruction

logger = logging.getLogger(__name__)

# Feedrates are written in mm/min, the scheduler works in seconds
SECONDS_PER_MINUTE = 60.0

COMMENT_PREFIX = ";"


class _TokenState(Enum):
    AWAITING_PREFIX = "awaiting_prefix"
    AWAITING_VALUE = "awaiting_value"  # A lone letter was seen, its value follows


def parse_instruction(line: str, line_no: int) -> Instruction:
    """Parse one G-code line into an Instruction.

    The line is split at the first ';' into code and comment, the code part is
    tokenized on whitespace, and the first token becomes the upper-cased op
    code. Every other token is a parameter letter followed by a number. A
    letter separated from its value by whitespace ("X 10") is accepted.

    Args:
        line: Raw line text without the trailing newline
        line_no: 1-based line number

    Returns:
        Instruction with ``parsed=True`` on success. Blank lines, comment-only
        lines and lines with unknown letters or malformed numbers come back
        with ``parsed=False`` and must be written through unchanged.

    Examples:
        >>> g = parse_instruction("G1 X10 F1200 ; perimeter", 1)
        >>> g.op, g.x, g.f, g.comment
        ('G1', 10.0, 20.0, ' perimeter')

        >>> parse_instruction("M117 Hello", 2).parsed
        False
    """
    instruction = Instruction(line=line, line_no=line_no)

    code, separator, comment = line.partition(COMMENT_PREFIX)
    if separator:
        instruction.comment = comment

    tokens = code.split()
    if not tokens:
        return instruction

    instruction.op = tokens[0].upper()

    state = _TokenState.AWAITING_PREFIX
    prefix = ""
    for token in tokens[1:]:
        if state == _TokenState.AWAITING_PREFIX:
            if len(token) == 1:
                prefix = token
                state = _TokenState.AWAITING_VALUE
                continue
            prefix, token = token[0], token[1:]

        value = _parse_number(token)
        if value is None:
            logger.debug("line %d: failed to parse number %r", line_no, token)
            return instruction

        field = prefix.lower()
        if field not in PARAMETER_FIELDS:
            logger.debug("line %d: unknown prefix %r in %r", line_no, prefix, line)
            return instruction

        if field == "f":
            value /= SECONDS_PER_MINUTE
        setattr(instruction, field, value)
        state = _TokenState.AWAITING_PREFIX

    instruction.parsed = True
    return instruction


def _parse_number(text: str) -> Optional[float]:
    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value
