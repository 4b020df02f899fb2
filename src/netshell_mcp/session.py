"""Snapshot session — load, rebuild and reload the model as a whole."""

from __future__ import annotations

import logging
from typing import Optional

from .model import ConfigsInput, build_model, empty_model, merge_configs
from .models import ClusteredGraphModel, NetworkGraphConfigs, NetworkSnapshot
from .sources import SnapshotSource, demo_source

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "failed to load graph data"


class SnapshotSession:
    """Holds the latest snapshot and the model derived from it.

    Each ``load()`` awaits the source once and rebuilds the model from
    scratch; there is no partial update path.  A failed fetch is captured
    as a single message in ``error`` and leaves the empty model in place.

    ``loading`` is True from construction until the first load settles,
    and afterwards whenever a fetch is in flight.  Loads may overlap (a
    reload while a fetch is pending); only the most recently started load
    may publish its snapshot or error.
    """

    def __init__(
        self,
        source: Optional[SnapshotSource] = None,
        configs: ConfigsInput = None,
    ):
        self.source: SnapshotSource = source or demo_source
        self.configs: NetworkGraphConfigs = merge_configs(configs)
        self.loading = True
        self.error: Optional[str] = None
        self.snapshot: Optional[NetworkSnapshot] = None
        self.model: ClusteredGraphModel = empty_model()
        self.load_count = 0
        self._generation = 0
        self._in_flight = 0

    async def load(self) -> ClusteredGraphModel:
        self._generation += 1
        generation = self._generation
        self._in_flight += 1
        self.loading = True
        self.error = None
        try:
            snapshot = await self.source()
        except Exception as e:
            if generation == self._generation:
                logger.error(f"Snapshot load failed: {e}")
                self.snapshot = None
                self.model = empty_model()
                self.error = str(e) or DEFAULT_ERROR_MESSAGE
            else:
                logger.debug(f"Ignoring failure of superseded load #{generation}: {e}")
            return self.model
        finally:
            self._in_flight -= 1
            self.loading = self._in_flight > 0

        if generation != self._generation:
            logger.debug(f"Discarding snapshot of superseded load #{generation}")
            return self.model

        self.snapshot = snapshot
        self.model = build_model(snapshot, self.configs)
        self.load_count += 1
        logger.info(
            f"Loaded snapshot #{self.load_count}: "
            f"{len(self.model.nodes)} nodes, {len(self.model.edges)} edges"
        )
        return self.model

    async def reload(self) -> ClusteredGraphModel:
        """Fetch a fresh snapshot and replace the model."""
        return await self.load()

    def set_configs(self, configs: ConfigsInput) -> ClusteredGraphModel:
        """Swap the rule tables and rebuild from the current snapshot."""
        self.configs = merge_configs(configs)
        if self.snapshot is not None:
            self.model = build_model(self.snapshot, self.configs)
        return self.model
