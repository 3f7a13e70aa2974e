"""File-backed store for the network-rate state carried between cycles.

The file holds one JSON object. It is replaced atomically on save; a missing
or unreadable file is a cold start, not an error. Concurrent cycles can read
stale state and derive one wrong rate, which is accepted.
"""

import os
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ..models import NetworkState
from ..utils.logging import get_logger

logger = get_logger("collectors.network_state")


class NetworkStateStore:
    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[NetworkState]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("network_state_unreadable", path=str(self._path), error=str(e))
            return None

        try:
            return NetworkState.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("network_state_unreadable", path=str(self._path), error=str(e))
            return None

    def save(self, state: NetworkState) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, prefix=".netstate-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(state.model_dump_json())
            os.replace(tmp_path, self._path)
        except OSError:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
