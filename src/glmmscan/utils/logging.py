"""Logging for glmmscan scans.

The stdout console sink is installed when glmmscan is imported. A scan can
also keep its own JSON-lines log with scan_log(): every record emitted inside
the block is serialised with the scan's bound fields, and log_checkpoint()
marks the start and end of each scan phase with the resident memory and the
variant counts at that point.
"""

import sys
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = "{time:HH:mm:ss} | <level>{level: <8}</level> | {message}"


def configure_console(verbose: bool = False) -> None:
    """Replace every sink with the stdout console sink.

    Args:
        verbose: If True, log at DEBUG instead of INFO.
    """
    logger.remove()
    logger.add(
        sys.stdout,
        level="DEBUG" if verbose else "INFO",
        format=CONSOLE_FORMAT,
        colorize=True,
    )


@contextmanager
def scan_log(log_file: Path | str | None, **fields: str) -> Generator[None, None, None]:
    """Serialise the records of one scan to a JSON-lines file.

    The file sink exists only for the duration of the block, so consecutive
    scans can write separate logs.

    Args:
        log_file: Destination file. None leaves logging untouched.
        **fields: Context attached to every record logged from the calling
            thread inside the block, e.g. scan="plink", trait="binary".
    """
    if log_file is None:
        yield
        return

    sink_id = logger.add(log_file, serialize=True, level="DEBUG")
    try:
        with logger.contextualize(**fields):
            yield
    finally:
        logger.remove(sink_id)


def log_checkpoint(phase: str, checkpoint: str, **counts: int) -> float:
    """Log resident memory at a scan checkpoint.

    phase, checkpoint and counts are bound to the record, so a scan log can
    be filtered on them.

    Args:
        phase: Scan phase ("align", "scan").
        checkpoint: Point within the phase ("start", "end").
        **counts: Variant counters at this point, e.g. n_tested=1200.

    Returns:
        Current RSS in GB.

    Example:
        >>> log_checkpoint("scan", "end", n_tested=1200)
        INFO     | RSS memory: 1.23GB (phase=scan, checkpoint=end, n_tested=1200)
    """
    import psutil

    rss_gb = psutil.Process().memory_info().rss / 1e9
    detail = "".join(f", {name}={value}" for name, value in counts.items())
    logger.bind(phase=phase, checkpoint=checkpoint, rss_gb=rss_gb, **counts).info(
        f"RSS memory: {rss_gb:.2f}GB (phase={phase}, checkpoint={checkpoint}{detail})"
    )
    return rss_gb
