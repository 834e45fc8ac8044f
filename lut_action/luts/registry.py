"""LUT registry: content-addressed storage and a JSON catalog of descriptors."""

import hashlib
import json
import logging
import os
import threading
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from lut_action.config import settings
from lut_action.errors import LUTValidationError, NotFoundError
from lut_action.luts import cube
from lut_action.luts.base import (
    LUTCreateRequest,
    LUTDescriptor,
    LUTValidationResult,
    ParsedLUT,
)

logger = logging.getLogger(__name__)

CATALOG_FILENAME = "registry.json"


class LUTRegistry:
    """Stores LUT files and serves their descriptors.

    - Files live in ``storage_dir`` as ``<id>.cube``
    - The catalog is ``storage_dir/registry.json``, rewritten on every change
    - Byte-identical uploads resolve to the same descriptor (SHA-256)
    """

    def __init__(self, storage_dir: str):
        self._storage_dir = storage_dir
        self._luts: Dict[str, LUTDescriptor] = {}
        self._lock = threading.Lock()
        self._loaded = False

    @property
    def storage_dir(self) -> str:
        return self._storage_dir

    def load(self) -> None:
        """Create the storage directory and read the catalog if present."""
        os.makedirs(self._storage_dir, exist_ok=True)
        path = os.path.join(self._storage_dir, CATALOG_FILENAME)
        self._luts.clear()
        if os.path.exists(path):
            try:
                with open(path, encoding="utf-8") as f:
                    entries = json.load(f)
            except (OSError, json.JSONDecodeError) as exc:
                logger.error("Failed to read LUT catalog %s: %s", path, exc)
                entries = []
            for entry in entries:
                try:
                    lut = LUTDescriptor.model_validate(entry)
                except ValueError as exc:
                    logger.error("Skipping invalid catalog entry %r: %s", entry.get("id"), exc)
                    continue
                self._luts[lut.id] = lut
        self._loaded = True
        logger.info("LUT registry loaded: %d entries from %s", len(self._luts), self._storage_dir)

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    # Validation and parsing

    @staticmethod
    def validate(data: bytes) -> LUTValidationResult:
        return cube.validate(data)

    @staticmethod
    def parse(text: str) -> ParsedLUT:
        return cube.parse(text)

    # Catalog operations

    def create(self, data: bytes, request: Optional[LUTCreateRequest] = None) -> LUTDescriptor:
        """Validate, store and catalog a LUT file.

        Returns the existing descriptor when a non-deleted entry already
        holds byte-identical content.
        """
        request = request or LUTCreateRequest()
        result = self.validate(data)
        if not result.valid:
            raise LUTValidationError(result.errors, result.warnings)
        parsed = cube.parse_bytes(data)
        digest = hashlib.sha256(data).hexdigest()

        with self._lock:
            self._ensure_loaded()
            existing = self._find_by_hash(digest)
            if existing is not None:
                logger.info("LUT with hash %s already exists as %s", digest[:12], existing.id)
                return existing.model_copy(deep=True)

            lut = LUTDescriptor(
                name=request.name or parsed.title or "Unnamed LUT",
                type=parsed.type,
                colorspace=request.colorspace or parsed.colorspace,
                size=parsed.size,
                hash=digest,
                storage_uri="",
                file_size=len(data),
                metadata={
                    **request.metadata,
                    "title": parsed.title,
                    "domain_min": list(parsed.domain_min),
                    "domain_max": list(parsed.domain_max),
                    "warnings": result.warnings,
                },
            )
            lut.storage_uri = os.path.join(self._storage_dir, f"{lut.id}.cube")
            with open(lut.storage_uri, "wb") as f:
                f.write(data)

            self._luts[lut.id] = lut
            self._save()

        logger.info("Created LUT %s (%s, %s %s)", lut.id, lut.name, lut.type.value, lut.lattice)
        return lut.model_copy(deep=True)

    def get(self, lut_id: str, include_deleted: bool = False) -> Optional[LUTDescriptor]:
        with self._lock:
            self._ensure_loaded()
            lut = self._luts.get(lut_id)
        if lut is None or (lut.is_deleted and not include_deleted):
            return None
        return lut.model_copy(deep=True)

    def list(self, include_deleted: bool = False) -> List[LUTDescriptor]:
        """List LUTs, oldest first."""
        with self._lock:
            self._ensure_loaded()
            luts = list(self._luts.values())
        if not include_deleted:
            luts = [lut for lut in luts if not lut.is_deleted]
        luts.sort(key=lambda lut: lut.created_at)
        return [lut.model_copy(deep=True) for lut in luts]

    def delete(self, lut_id: str, hard: bool = False) -> None:
        """Soft delete by default; hard delete also removes the stored file."""
        with self._lock:
            self._ensure_loaded()
            lut = self._luts.get(lut_id)
            if lut is None:
                raise NotFoundError(f"LUT not found: {lut_id}", code="LUT_NOT_FOUND")

            if hard:
                if os.path.exists(lut.storage_uri):
                    os.remove(lut.storage_uri)
                del self._luts[lut_id]
            else:
                now = datetime.utcnow()
                self._luts[lut_id] = lut.model_copy(update={"deleted_at": now, "updated_at": now})
            self._save()

        logger.info("%s deleted LUT %s", "Hard" if hard else "Soft", lut_id)

    def file_path(self, lut_id: str) -> str:
        """Path of a live LUT's file. Raises NotFoundError if either is missing."""
        lut = self.get(lut_id)
        if lut is None:
            raise NotFoundError(f"LUT not found: {lut_id}", code="LUT_NOT_FOUND")
        if not os.path.exists(lut.storage_uri):
            raise NotFoundError(f"LUT file not found: {lut.storage_uri}", code="LUT_FILE_MISSING")
        return lut.storage_uri

    def import_directory(self, directory: str) -> Tuple[List[LUTDescriptor], Dict[str, str]]:
        """Import every .cube file in a directory.

        Returns (descriptors, failures) where failures maps filename to reason.
        """
        imported: List[LUTDescriptor] = []
        failures: Dict[str, str] = {}
        for filename in sorted(os.listdir(directory)):
            if not filename.lower().endswith(".cube"):
                continue
            path = os.path.join(directory, filename)
            try:
                with open(path, "rb") as f:
                    data = f.read()
                name = os.path.splitext(filename)[0]
                imported.append(self.create(data, LUTCreateRequest(name=name)))
            except (OSError, LUTValidationError) as exc:
                logger.warning("Skipping %s: %s", filename, exc)
                failures[filename] = str(exc)
        return imported, failures

    # Internals (caller holds the lock)

    def _find_by_hash(self, digest: str) -> Optional[LUTDescriptor]:
        for lut in self._luts.values():
            if lut.hash == digest and not lut.is_deleted:
                return lut
        return None

    def _save(self) -> None:
        path = os.path.join(self._storage_dir, CATALOG_FILENAME)
        tmp_path = f"{path}.tmp"
        entries = [lut.model_dump(mode="json") for lut in self._luts.values()]
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(entries, f, indent=2)
        os.replace(tmp_path, path)


# Global registry instance
registry = LUTRegistry(storage_dir=settings.lut_storage_dir)
