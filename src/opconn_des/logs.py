from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: Union[int, str] = logging.INFO, logfile: Optional[Path] = None) -> None:
    """Configure root logging for command-line runs.

    Library modules only create their own loggers; handlers are installed
    here, by scripts. With `logfile` the records go to the file (appended)
    instead of stderr.
    """
    if isinstance(level, str):
        name = level.upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {name}")

    kwargs = {"level": level, "format": LOG_FORMAT, "force": True}
    if logfile is not None:
        Path(logfile).parent.mkdir(parents=True, exist_ok=True)
        kwargs.update(filename=str(logfile), filemode="a")
    logging.basicConfig(**kwargs)
