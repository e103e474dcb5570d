"""
In-memory region list.

The repository owns the regions created during a session. Persisting them
is left to whoever owns the repository; ``replace_all`` loads a saved list
back in.
"""

import secrets
import string
import time
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Any

from thoughtlands.models.region import ProcessingInfo, Region, RegionMode, RegionSource
from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits
IMMUTABLE_FIELDS = frozenset({"id", "created_at"})


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def generate_region_id() -> str:
    """``region_<epoch ms>_<9 random base-36 chars>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"region_{int(time.time() * 1000)}_{suffix}"


class RegionRepository:
    """Owns the session's regions."""

    def __init__(self, regions: Iterable[Region] = ()):
        self._regions: list[Region] = list(regions)

    def __len__(self) -> int:
        return len(self._regions)

    def assemble(
        self,
        name: str,
        color: str,
        mode: RegionMode,
        source: RegionSource,
        note_ids: Sequence[str],
        processing_info: ProcessingInfo | None = None,
    ) -> Region:
        """Create a region from a note set, dropping duplicate note ids."""
        notes = list(dict.fromkeys(note_ids))
        if len(notes) < len(note_ids):
            logger.debug(f"Removed {len(note_ids) - len(notes)} duplicate notes from region '{name}'")

        timestamp = _now_iso()
        region = Region(
            id=generate_region_id(),
            name=name,
            color=color,
            mode=mode,
            source=source,
            notes=notes,
            created_at=timestamp,
            updated_at=timestamp,
            processing_info=processing_info,
        )
        self._regions.append(region)
        logger.info(f"Region created: '{name}' ({mode}, {len(notes)} notes)")
        return region

    def get(self, region_id: str) -> Region | None:
        return next((r for r in self._regions if r.id == region_id), None)

    def list(self) -> list[Region]:
        return list(self._regions)

    def update(self, region_id: str, **fields: Any) -> Region | None:
        """Apply field updates and refresh ``updated_at``; None if unknown."""
        for index, region in enumerate(self._regions):
            if region.id != region_id:
                continue

            changes = {k: v for k, v in fields.items() if k not in IMMUTABLE_FIELDS}
            if "notes" in changes:
                changes["notes"] = list(dict.fromkeys(changes["notes"]))
            changes["updated_at"] = _now_iso()

            updated = Region.model_validate({**region.model_dump(), **changes})
            self._regions[index] = updated
            return updated

        logger.debug(f"Update of unknown region {region_id} ignored")
        return None

    def rename(self, region_id: str, name: str) -> Region | None:
        return self.update(region_id, name=name)

    def delete(self, region_id: str) -> bool:
        for index, region in enumerate(self._regions):
            if region.id == region_id:
                del self._regions[index]
                logger.info(f"Region deleted: '{region.name}'")
                return True
        return False

    def replace_all(self, regions: Iterable[Region]) -> None:
        """Replace the whole list, e.g. with regions loaded from storage."""
        self._regions = list(regions)
