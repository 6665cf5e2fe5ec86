from __future__ import annotations

import logging
import os

from rich.logging import RichHandler


def get_logger(name: str = "parlay_amm", level: int = logging.INFO) -> logging.Logger:
	logger = logging.getLogger(name)
	if logger.handlers:
		return logger
	level_name = os.getenv("PARLAY_LOG_LEVEL")
	if level_name:
		level = logging.getLevelName(level_name.upper())
	logger.setLevel(level)
	handler: logging.Handler
	if os.getenv("NO_RICH") != "1":
		handler = RichHandler(rich_tracebacks=True, show_path=False)
	else:
		handler = logging.StreamHandler()
	formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
	handler.setFormatter(formatter)
	logger.addHandler(handler)
	return logger
