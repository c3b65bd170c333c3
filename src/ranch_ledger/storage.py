"""Atomic JSON document persistence shared by the stores."""

import contextlib
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

import structlog

from ranch_ledger.errors import ConsistencyError

logger = structlog.get_logger(__name__)


class JsonDocument:
    """A JSON file that is read once and rewritten atomically on every save.

    ``save`` writes to a temporary file in the same directory, fsyncs it and
    renames it over the target, so a crash mid-write leaves the previous
    document intact. Callers see their write on disk when ``save`` returns.
    """

    def __init__(self, path: Path | str, default: dict[str, Any]):
        self.path = Path(path)
        self._default = default
        self._lock = threading.Lock()

    def load(self) -> dict[str, Any]:
        """Read the document, returning a copy of the default when absent."""
        if not self.path.exists():
            return json.loads(json.dumps(self._default))

        raw = self.path.read_text(encoding="utf-8")
        if not raw.strip():
            return json.loads(json.dumps(self._default))

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConsistencyError(
                f"{self.path.name} is not valid JSON; refusing to overwrite it",
                details={"path": str(self.path), "error": str(exc)},
            ) from exc

        if not isinstance(data, dict):
            raise ConsistencyError(f"{self.path.name} must contain a JSON object")
        return data

    def save(self, data: dict[str, Any]) -> None:
        """Persist ``data`` atomically."""
        payload = json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True)

        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, self.path)
            except BaseException:
                with contextlib.suppress(FileNotFoundError):
                    os.unlink(tmp_name)
                raise

        logger.debug("document_saved", path=str(self.path), bytes=len(payload))
