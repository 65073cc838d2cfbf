from __future__ import annotations

import logging
import sys


class _ThirdPartyNoiseFilter(logging.Filter):
  """
  Keep maintrack logs at the configured level; let other libraries through only at WARNING+.
  """

  def filter(self, record: logging.LogRecord) -> bool:
    if record.name == "maintrack" or record.name.startswith("maintrack."):
      return True
    return record.levelno >= logging.WARNING


_configured = False


def setup_logging(level: str | int = "INFO") -> None:
  """
  Configure the root logger with a single stderr handler.

  Safe to call more than once; only the first call installs the handler.
  """
  global _configured
  if isinstance(level, str):
    level = logging.getLevelName(level.strip().upper() or "INFO")
    if not isinstance(level, int):
      level = logging.INFO

  root = logging.getLogger()
  root.setLevel(level)
  if _configured:
    return

  fmt = logging.Formatter(
    fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
  )
  ch = logging.StreamHandler(sys.stderr)
  ch.setFormatter(fmt)
  ch.addFilter(_ThirdPartyNoiseFilter())
  root.addHandler(ch)

  logging.captureWarnings(True)
  _configured = True
