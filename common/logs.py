from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, Union

FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"
DATEFMT = "%H:%M:%S"


def setup_logging(log_level: str = "INFO", log_file: Optional[Union[str, Path]] = None) -> logging.Logger:
    """Configure the root logger with a stdout handler and an optional file."""
    lvl = getattr(logging, str(log_level).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(lvl)
    root.handlers[:] = []

    fmt = logging.Formatter(FORMAT, DATEFMT)

    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(lvl)
    ch.setFormatter(fmt)
    root.addHandler(ch)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(lvl)
        fh.setFormatter(fmt)
        root.addHandler(fh)

    # fsspec and urllib3 are chatty at DEBUG
    logging.getLogger("fsspec").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    return root
