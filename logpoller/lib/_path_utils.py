"""Internal helpers for locating the state (sincedb) file.

The default file name is derived from the configured log groups, so two
pollers configured with different groups never share a state file.
"""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

from logpoller.lib.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = ["default_sincedb_path", "sincedb_file_name"]

PLUGIN_STATE_SUBDIR = Path("plugins") / "inputs" / "cloudwatch_logs"


def sincedb_file_name(log_groups: Sequence[str]) -> str:
    digest = hashlib.md5(",".join(log_groups).encode("utf-8")).hexdigest()
    return f".sincedb_{digest}"


def default_sincedb_path(
    log_groups: Sequence[str],
    *,
    data_dir: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Path:
    """Return the state file path used when none is configured.

    With a data directory the file lives (and the directory is created)
    under ``<data_dir>/plugins/inputs/cloudwatch_logs``. Otherwise it is
    placed in ``$SINCEDB_DIR``, falling back to ``$HOME``.
    """
    environ = os.environ if environ is None else environ
    file_name = sincedb_file_name(log_groups)

    if data_dir:
        state_dir = Path(data_dir) / PLUGIN_STATE_SUBDIR
        state_dir.mkdir(parents=True, exist_ok=True)
        return state_dir / file_name

    sincedb_dir = environ.get("SINCEDB_DIR") or environ.get("HOME")
    if not sincedb_dir:
        raise ConfigurationError(
            "No SINCEDB_DIR or HOME environment variable set, cannot decide "
            "where to keep the state file",
            field="sincedb_path",
            suggestion="Set sincedb_path or data_dir in the configuration, "
            "or export SINCEDB_DIR.",
        )

    path = Path(sincedb_dir) / file_name
    logger.info(
        "No sincedb_path set, generated %s from log groups %s",
        path,
        ",".join(log_groups),
    )
    return path
