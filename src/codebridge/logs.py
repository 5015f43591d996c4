# CodeBridge™ — Interactive Program Execution Bridge
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Logging helpers.

Library modules log through ``logging.getLogger(__name__)`` and never
install handlers. Engine-internal failures are additionally appended to
``<data_root>/codebridge/logs/crash.log`` with a traceback.
"""

from __future__ import annotations

import logging
import os
import traceback
from datetime import datetime
from pathlib import Path

from . import config as cfg_module

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Configure root logging for the CLI (WARNING, or DEBUG if requested)."""
    level = logging.DEBUG if os.getenv("CODEBRIDGE_DEBUG") == "1" else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def crash_log_path() -> Path:
    """<data_root>/codebridge/logs/crash.log"""
    return cfg_module.get_data_root() / "codebridge" / "logs" / "crash.log"


def write_crash_log(
    error: BaseException,
    session_id: str = "",
    context: str = "",
    pid: int | None = None,
) -> None:
    """Append one entry for an engine-internal failure to crash.log.

    Used for reader/watcher thread crashes and for REPL commands that blew
    up. Never raises.
    """
    fields = [datetime.now().isoformat()]
    if session_id:
        fields.append(f"session={session_id}")
    if context:
        fields.append(f"context={context}")
    if pid is not None:
        fields.append(f"pid={pid}")
    fields.append(f"error={type(error).__name__}: {error}")
    fields.append("traceback:")
    fields.append(
        "".join(traceback.format_exception(type(error), error, error.__traceback__))
    )
    fields.append("----")

    try:
        path = crash_log_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            f.write("\n".join(fields) + "\n")
    except Exception:
        logger.debug("could not write crash log", exc_info=True)
