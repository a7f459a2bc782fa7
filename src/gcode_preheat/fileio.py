"""In-place rewriting of G-code files through a temporary sibling file."""

import logging
import os
from pathlib import Path
from typing import Callable, Iterator, TextIO, Union

logger = logging.getLogger(__name__)

# Undecodable bytes in comments survive the round trip unchanged
ENCODING = "utf-8"
ERRORS = "surrogateescape"


def read_lines(fp: TextIO) -> Iterator[str]:
    """Yield lines from ``fp`` without their line terminators."""
    for line in fp:
        yield line.rstrip("\r\n")


def rewrite_file(
    path: Union[str, Path],
    suffix: str,
    process: Callable[[Iterator[str], TextIO], None],
    rename: bool = True,
) -> Path:
    """
    Stream ``path`` through ``process`` into ``path + suffix``.

    Both files are closed before the temporary file is moved over the
    original, including when ``process`` raises.

    Args:
        path: G-code file to rewrite
        suffix: Suffix of the temporary output file (e.g., ".preheat")
        process: Callable receiving the input lines and the output stream
        rename: Replace the original with the output (default: True). When
            False the output is left next to the original for inspection.

    Returns:
        Path of the file holding the result

    Raises:
        OSError: If the input cannot be opened, the output cannot be created
            or the rename fails. A failed rename leaves the output at its
            temporary path.
    """
    source = Path(path)
    target = source.with_name(source.name + suffix)

    with open(source, encoding=ENCODING, errors=ERRORS) as input_fp:
        with open(target, "w", encoding=ENCODING, errors=ERRORS, newline="\n") as output_fp:
            process(read_lines(input_fp), output_fp)

    if not rename:
        logger.info("output left at %s", target)
        return target

    os.replace(target, source)
    logger.debug("renamed %s -> %s", target, source)
    return source
