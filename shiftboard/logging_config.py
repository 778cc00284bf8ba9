import logging
import sys


def setup_logging(level: str = "INFO") -> None:
    """Install one stdout handler on the root logger."""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
