"""
Configuration du logging, appelée une fois au démarrage de la CLI.

    from pricestats.log_setup import setup_logging
    setup_logging()                       # niveau via PRICESTATS_LOG_LEVEL
    setup_logging("pricestats.log")       # + fichier
"""
from __future__ import annotations

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)-5s] %(name)-25s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level(level: int | str | None = None) -> int:
    if level is None:
        level = os.getenv("PRICESTATS_LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ValueError(f"niveau de log inconnu: {level!r}")
    return value


def setup_logging(log_file: str | None = None, level: int | str | None = None) -> None:
    """
    Args:
        log_file: fichier de log optionnel (en plus de la sortie standard)
        level:    niveau (défaut: PRICESTATS_LOG_LEVEL ou INFO)
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=resolve_level(level),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    for noisy in ("urllib3", "requests"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
