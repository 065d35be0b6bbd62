"""PricingConfigStore: JSON file storage for collection pricing configs.

One file per collection (``<store_dir>/<collection_id>.json``). Configs are
validated on load and on save, so an invalid config is rejected before it can
be used for pricing.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path

from .PricingConfig import CollectionPricingConfig, InvalidConfigError

logger = logging.getLogger(__name__)

_COLLECTION_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class PricingConfigStore:
    """Loads and saves collection pricing configs as JSON files.

    :ivar store_dir: Directory holding one JSON file per collection.
    """

    def __init__(self, store_dir: str | Path) -> None:
        self.store_dir = Path(store_dir)

    def _path(self, collection_id: str) -> Path:
        if not _COLLECTION_ID_RE.match(collection_id) or collection_id.startswith("."):
            raise ValueError(f"Invalid collection id '{collection_id}'")
        return self.store_dir / f"{collection_id}.json"

    def load(self, collection_id: str) -> CollectionPricingConfig:
        """Load and validate the pricing config of a collection.

        :param collection_id: Collection identifier.
        :returns: Validated config.
        :raises KeyError: If no config is stored for the collection.
        :raises InvalidConfigError: If the stored config is invalid.
        """
        path = self._path(collection_id)
        if not path.is_file():
            raise KeyError(collection_id)

        with open(path, "r") as file:
            try:
                data = json.load(file)
            except json.JSONDecodeError as e:
                raise InvalidConfigError(f"{path.name}: invalid JSON: {e}") from e

        config = CollectionPricingConfig.from_dict(data)
        logger.debug(f"Loaded pricing config for {collection_id} from {path}")
        return config

    def save(self, collection_id: str, config: CollectionPricingConfig) -> Path:
        """Write the config of a collection, replacing any previous version.

        The file is written to a temporary path and renamed into place.

        :param collection_id: Collection identifier.
        :param config: Config to store.
        :returns: Path of the written file.
        """
        path = self._path(collection_id)
        self.store_dir.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=self.store_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as file:
                json.dump(config.to_dict(), file, indent=2, sort_keys=True)
            os.replace(tmp_path, path)
        except BaseException:
            os.unlink(tmp_path)
            raise

        logger.info(f"Saved pricing config for {collection_id} to {path}")
        return path

    def list_collections(self) -> list[str]:
        """Return the ids of all stored collections, sorted."""
        if not self.store_dir.is_dir():
            return []
        return sorted(p.stem for p in self.store_dir.glob("*.json"))
