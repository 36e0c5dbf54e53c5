"""
Export of generated SQL into script files for desktop SQL tools
"""
import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .exceptions import ExportError

logger = logging.getLogger(__name__)

UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_\-]+")


@dataclass
class ExportResult:
    file_action: str  # "created" or "appended"
    script_path: str

    def to_dict(self) -> Dict[str, Any]:
        return {"file_action": self.file_action, "script_path": self.script_path}


def sanitize_script_name(name: str) -> str:
    """Reduce a script name to a safe file stem"""
    stem = name[:-4] if name.lower().endswith(".sql") else name
    stem = UNSAFE_NAME_CHARS.sub("_", stem).strip("_")
    if not stem:
        raise ExportError(f"Invalid script name: {name!r}")
    return stem


class ScriptExporter:
    """Writes SQL to <scripts_dir>/<name>.sql, appending on later exports"""

    def __init__(self, scripts_dir: Union[str, Path], default_script_name: str = "querygate_queries"):
        self.scripts_dir = Path(scripts_dir)
        self.default_script_name = default_script_name

    async def export(self, sql: str, script_name: Optional[str] = None) -> ExportResult:
        if not sql or not sql.strip():
            raise ExportError("Nothing to export: SQL is empty")

        path = self.scripts_dir / f"{sanitize_script_name(script_name or self.default_script_name)}.sql"

        try:
            action = await asyncio.to_thread(self._write, path, sql.strip())
        except OSError as e:
            logger.error(f"Failed to export SQL to {path}: {e}")
            raise ExportError(f"Failed to write script {path}: {e}") from e

        logger.info(f"Exported SQL script ({action}): {path}")
        return ExportResult(file_action=action, script_path=str(path))

    @staticmethod
    def _write(path: Path, sql: str) -> str:
        path.parent.mkdir(parents=True, exist_ok=True)
        statement = sql if sql.endswith(";") else f"{sql};"
        block = f"-- Exported {datetime.now().isoformat(timespec='seconds')}\n{statement}\n"

        if path.exists():
            with path.open("a") as f:
                f.write(f"\n{block}")
            return "appended"

        with path.open("w") as f:
            f.write(block)
        return "created"
