"""
FakeForge Database

Optional JSON-file persistence for generated entities.

Each entity gets one ``<name>.json`` file holding a list of rows. Inserts,
seeds and flushes publish ``database:inserted`` and ``database:flushed``
events.
"""

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .events.bus import DATABASE_FLUSHED, DATABASE_INSERTED

logger = logging.getLogger("fakeforge.database")

DEFAULT_DATABASE_DIR = ".fakeforge/db"

# Written into every directory FakeForge creates; only such directories are removed
MARKER_FILE = ".fakeforge-db"

SEED_STRATEGIES: Tuple[str, ...] = ("reset", "once", "merge")
MERGE_LIMIT = 1000


class JsonTable:
    """
    Rows of one entity, stored as a JSON list.

    Example:
        table = JsonTable(Path('.fakeforge/db'), 'user')
        table.insert([{'id': 1, 'name': 'Ada'}])
        rows = table.read()
    """

    def __init__(self, directory: Path, name: str, bus=None):
        self.directory = Path(directory)
        self.name = name
        self.path = self.directory / f"{name}.json"
        self.bus = bus

    def read(self) -> List[Any]:
        """Return every stored row (empty if nothing was inserted yet)."""
        if not self.path.exists():
            return []
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                rows = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt table {self.path}: {e}; treating as empty")
            return []
        return rows if isinstance(rows, list) else []

    def insert(self, items: Any) -> int:
        """
        Append rows.

        Args:
            items: A row or a list of rows

        Returns:
            Number of rows stored after the insert
        """
        new_rows = items if isinstance(items, list) else [items]
        rows = self.read() + new_rows
        self._write(rows)
        logger.debug(f"Inserted {len(new_rows)} row(s) into '{self.name}'")
        self._publish(DATABASE_INSERTED, len(new_rows))
        return len(rows)

    def seed(self, items: Any, strategy: str = "reset") -> int:
        """
        Write rows according to a seeding strategy.

        ``reset`` replaces every row, ``once`` only writes into an empty
        table, and ``merge`` replaces rows sharing an ``id`` and appends the
        rest. A merged table keeps its newest MERGE_LIMIT rows.

        Args:
            items: A row or a list of rows
            strategy: One of SEED_STRATEGIES

        Returns:
            Number of rows written (0 when ``once`` found existing rows)

        Raises:
            ValueError: If the strategy is unknown
        """
        if strategy not in SEED_STRATEGIES:
            raise ValueError(f"Unknown seed strategy '{strategy}' (expected one of {', '.join(SEED_STRATEGIES)})")

        new_rows = items if isinstance(items, list) else [items]
        existing = self.read()

        if strategy == "once" and existing:
            logger.debug(f"Table '{self.name}' already seeded; skipping")
            return 0

        if strategy == "merge":
            rows = list(existing)
            positions = {
                row['id']: index for index, row in enumerate(rows)
                if isinstance(row, dict) and 'id' in row
            }
            for row in new_rows:
                key = row.get('id') if isinstance(row, dict) else None
                if key is not None and key in positions:
                    rows[positions[key]] = row
                else:
                    if key is not None:
                        positions[key] = len(rows)
                    rows.append(row)
            rows = rows[-MERGE_LIMIT:]
        else:
            rows = new_rows

        self._write(rows)
        logger.debug(f"Seeded {len(new_rows)} row(s) into '{self.name}' ({strategy})")
        self._publish(DATABASE_INSERTED, len(new_rows))
        return len(new_rows)

    def flush(self) -> int:
        """
        Remove every row.

        Returns:
            Number of rows removed
        """
        removed = len(self.read())
        self._write([])
        logger.debug(f"Flushed {removed} row(s) from '{self.name}'")
        self._publish(DATABASE_FLUSHED, removed)
        return removed

    def _write(self, rows: List[Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{self.name}.", suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(rows, f, indent=2, default=str)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def _publish(self, event: str, count: int) -> None:
        if self.bus is not None:
            self.bus.publish(event, {'name': self.name, 'count': count})


class JsonDatabase:
    """
    Directory of JsonTables.

    When disabled, ``prepare()`` removes the directory if FakeForge created
    it (it carries MARKER_FILE, or it is the default location) and no table
    handles are handed out. Any other directory is left untouched.
    """

    def __init__(self, directory: str, enabled: bool = False, bus=None, base_dir: Optional[Path] = None):
        """
        Initialize database.

        Args:
            directory: Database directory (relative paths resolve against base_dir)
            enabled: Whether persistence is on
            bus: Optional EventBus for insert/flush events
            base_dir: Base for relative directories (defaults to the working directory)
        """
        self.base_dir = base_dir or Path.cwd()
        path = Path(directory)
        if not path.is_absolute():
            path = self.base_dir / path
        self.directory = path
        self.enabled = enabled
        self.bus = bus
        self._tables: Dict[str, JsonTable] = {}

    @property
    def is_default_location(self) -> bool:
        return self.directory.resolve() == (self.base_dir / DEFAULT_DATABASE_DIR).resolve()

    def prepare(self) -> None:
        if self.enabled:
            self.directory.mkdir(parents=True, exist_ok=True)
            (self.directory / MARKER_FILE).touch()
            logger.info(f"Database: {self.directory}")
            return

        if not self.directory.is_dir():
            return
        if (self.directory / MARKER_FILE).exists() or self.is_default_location:
            shutil.rmtree(self.directory)
            logger.debug(f"Removed disabled database directory {self.directory}")
        else:
            logger.warning(
                f"Database disabled; keeping {self.directory} (not created by fakeforge)"
            )

    def table(self, name: str) -> Optional[JsonTable]:
        """Table handle for an entity, or None when persistence is disabled."""
        if not self.enabled:
            return None
        if name not in self._tables:
            self._tables[name] = JsonTable(self.directory, name, bus=self.bus)
        return self._tables[name]
