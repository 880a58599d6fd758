"""JSON snapshot storage for the stock cache."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Mapping

from cached_inventory.exceptions import PersistenceError

_logger = logging.getLogger(__name__)


def _parse_snapshot(raw: object, path: str) -> dict[int, int]:
    if not isinstance(raw, dict):
        raise PersistenceError(f"Snapshot {path} is not a JSON object", path=path)

    stock: dict[int, int] = {}
    for key, value in raw.items():
        # bool is an int subclass; a snapshot never legitimately contains one.
        if isinstance(value, bool) or not isinstance(value, int):
            raise PersistenceError(
                f"Snapshot {path} has a non-integer quantity for {key!r}", path=path
            )
        try:
            product_id = int(key)
        except ValueError as exc:
            raise PersistenceError(
                f"Snapshot {path} has a non-integer product id {key!r}", path=path
            ) from exc
        stock[product_id] = value
    return stock


class SnapshotStore:
    """
    Durable, wholesale snapshot of the product -> quantity mapping.

    The snapshot is a JSON object keyed by product id. Writes go to a
    temporary file in the destination directory which then atomically
    replaces the previous snapshot, so an interrupted save never leaves a
    half-written file behind.

    The store itself raises PersistenceError; deciding whether a failure
    is fatal is left to the caller.
    """

    def __init__(self, path: str | os.PathLike) -> None:
        self.path = Path(path)

    def load(self) -> dict[int, int]:
        """
        Reads the snapshot from disk.

        Returns:
            dict: Product id to quantity. Empty if no snapshot exists yet.

        Raises:
            PersistenceError: The file exists but cannot be read or parsed.
        """
        if not self.path.exists():
            _logger.info("No snapshot at %s, starting cold", self.path)
            return {}

        try:
            text = self.path.read_text(encoding="utf-8")
            raw = json.loads(text)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise PersistenceError(
                f"Error loading snapshot from {self.path}: {exc}", path=str(self.path)
            ) from exc

        stock = _parse_snapshot(raw, str(self.path))
        _logger.info("Loaded %d products from %s", len(stock), self.path)
        return stock

    def save(self, stock: Mapping[int, int]) -> None:
        """
        Overwrites the snapshot with the given mapping.

        Raises:
            PersistenceError: The snapshot could not be written.
        """
        payload = json.dumps({str(k): v for k, v in stock.items()}, separators=(",", ":"))
        directory = self.path.parent
        tmp_name = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                dir=directory,
                delete=False,
            ) as f:
                tmp_name = f.name
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as exc:
            raise PersistenceError(
                f"Error saving snapshot to {self.path}: {exc}", path=str(self.path)
            ) from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    _logger.debug("Could not remove temporary snapshot %s", tmp_name)

        _logger.debug("Saved %d products to %s", len(stock), self.path)
