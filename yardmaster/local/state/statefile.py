import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from yardmaster.errors import DuplicateNameError, NotFoundError, StoreError
from yardmaster.local.state.store import ComponentRecord, StateStore

log = logging.getLogger(__name__)

PATCHABLE_FIELDS = {"name", "spec", "state", "initialized", "disposed"}
# Timestamps that may be set once and never changed afterwards.
WRITE_ONCE_FIELDS = {"initialized", "disposed"}


class JSONStateStore(StateStore):
    """
    A state store kept as a single JSON document on disk.

    The document is loaded once and then mirrored in memory. Every mutation
    is applied to a copy of the image, written to disk atomically, and only
    then swapped in, so a failed write leaves both disk and memory unchanged.
    """

    def __init__(self, path: Path) -> None:
        """
        :param path: Location of the JSON document. A missing file is an empty store.
        """
        self.path = Path(path)
        self.lock = threading.RLock()
        self._components: Optional[Dict[str, ComponentRecord]] = None

    #* --- Persistence ---
    def _load(self) -> Dict[str, ComponentRecord]:
        """Returns the in-memory image, reading the file on first use."""
        if self._components is not None:
            return self._components

        if not self.path.exists():
            self._components = {}
            return self._components

        try:
            with self.path.open("r") as f:
                document = json.load(f)
            records = [ComponentRecord.from_dict(item) for item in document.get("components", [])]
        except (json.JSONDecodeError, OSError, KeyError, TypeError, AttributeError) as e:
            raise StoreError(f"reading state file '{self.path}': {e}") from e

        self._components = {record.id: record for record in records}
        log.debug(f"Loaded {len(records)} component records from '{self.path}'.")
        return self._components

    def _commit(self, components: Dict[str, ComponentRecord]) -> None:
        """Atomically writes the given image to disk and makes it current."""
        document = {"components": [record.to_dict() for record in components.values()]}
        temp_path = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with temp_path.open("w") as f:
                json.dump(document, f, indent=2)
            temp_path.replace(self.path)
        except OSError as e:
            raise StoreError(f"writing state file '{self.path}': {e}") from e
        finally:
            temp_path.unlink(missing_ok=True)
        self._components = components

    @staticmethod
    def _name_taken(components: Dict[str, ComponentRecord], project_id: str, name: str, exclude_id: str = "") -> bool:
        return any(
            record.project_id == project_id and record.name == name and record.is_live and record.id != exclude_id
            for record in components.values()
        )

    #* --- StateStore interface ---
    def describe_components(
        self,
        project_id: str,
        names: Optional[Iterable[str]] = None,
        ids: Optional[Iterable[str]] = None,
    ) -> List[ComponentRecord]:
        name_filter = set(names) if names is not None else None
        id_filter = set(ids) if ids is not None else None
        with self.lock:
            return [
                record for record in self._load().values()
                if record.project_id == project_id
                and (name_filter is None or record.name in name_filter)
                and (id_filter is None or record.id in id_filter)
            ]

    def add_component(
        self,
        project_id: str,
        id: str,
        name: str,
        type: str,
        spec: str,
        created: str,
    ) -> ComponentRecord:
        with self.lock:
            components = dict(self._load())
            if id in components:
                raise StoreError(f"component id {id!r} already exists")
            if self._name_taken(components, project_id, name):
                raise DuplicateNameError(f"component name {name!r} is already in use")

            record = ComponentRecord(
                id=id, project_id=project_id, name=name, type=type, spec=spec, created=created,
            )
            components[id] = record
            self._commit(components)
            return record

    def patch_component(self, id: str, **fields: Any) -> ComponentRecord:
        unknown = set(fields) - PATCHABLE_FIELDS
        if unknown:
            raise StoreError(f"cannot patch fields: {', '.join(sorted(unknown))}")

        with self.lock:
            components = dict(self._load())
            record = components.get(id)
            if record is None:
                raise NotFoundError(f"no component with id {id!r}")

            for key in WRITE_ONCE_FIELDS & set(fields):
                current = getattr(record, key)
                if current is not None and fields[key] != current:
                    raise StoreError(f"component {id!r} is already {key} at {current}")

            new_name = fields.get("name")
            if new_name is not None and new_name != record.name:
                if self._name_taken(components, record.project_id, new_name, exclude_id=id):
                    raise DuplicateNameError(f"component name {new_name!r} is already in use")

            patched = record.patched(**fields)
            components[id] = patched
            self._commit(components)
            return patched

    def remove_component(self, id: str) -> None:
        with self.lock:
            components = dict(self._load())
            if components.pop(id, None) is None:
                raise NotFoundError(f"no component with id {id!r}")
            self._commit(components)
