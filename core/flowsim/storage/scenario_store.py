"""
Scenario Store - Reads and writes scenario libraries as JSON files.

Writes go through ``atomic_write`` so an interrupted save never leaves a
truncated file behind.
"""

import logging
from pathlib import Path

from flowsim.schemas.scenario import ScenarioLibrary
from flowsim.utils.io import atomic_write

logger = logging.getLogger(__name__)


class ScenarioStore:
    """
    File-backed scenario library.

    Example:
        store = ScenarioStore(Path("scenarios.json"))
        library = store.load()
        library.save("Refund", {"webhookPayload": {"event": "refund"}})
        store.save(library)
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> ScenarioLibrary:
        """
        Load the library, or a fresh one holding the default scenario.

        Raises:
            ValueError: If the file exists but is not a valid library
        """
        if not self.path.exists():
            logger.debug(f"No scenario file at {self.path}, using defaults")
            return ScenarioLibrary()
        return ScenarioLibrary.import_json(self.path.read_text(encoding="utf-8"))

    def save(self, library: ScenarioLibrary) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with atomic_write(self.path) as f:
            f.write(library.export_json())
        logger.debug(f"Saved {len(library.scenarios)} scenarios to {self.path}")
