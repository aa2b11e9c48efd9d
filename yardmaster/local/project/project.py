import json
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from yardmaster.errors import (
    BulkOperationError,
    InvalidInputError,
    NotFoundError,
    StoreError,
    YardmasterError,
)
from yardmaster.local.components import LifecycleFactory, resolve_lifecycle
from yardmaster.local.components.base import Lifecycle
from yardmaster.local.components.invalid import InvalidLifecycle
from yardmaster.local.project.identity import gensym, is_valid_name, now_string
from yardmaster.local.project.locks import KeyedLock
from yardmaster.local.project.reaper import Reaper
from yardmaster.local.runtime import ProjectConfig
from yardmaster.local.state import ComponentRecord, StateStore

log = logging.getLogger(__name__)

Spec = Union[str, Mapping[str, Any]]


def encode_spec(spec: Spec) -> str:
    """Specs may be given as JSON text or as a mapping; the store keeps text."""
    if isinstance(spec, str):
        return spec
    return json.dumps(spec, sort_keys=True)


def same_spec(a: str, b: str) -> bool:
    """Compares two serialized specs, ignoring key order and whitespace."""
    try:
        return json.loads(a) == json.loads(b)
    except (json.JSONDecodeError, TypeError):
        return a == b


class Project:
    """
    The control plane for one project's components.

    Every operation that touches an existing component runs under that
    component's lock, so two lifecycle side effects never race on the same
    record. Operations on different components proceed in parallel. Describe
    takes no lock.
    """

    def __init__(
        self,
        id: str,
        store: StateStore,
        config: ProjectConfig,
        clock: Callable[[], str] = now_string,
        lifecycles: Optional[Dict[str, LifecycleFactory]] = None,
        reaper_interval: float = 2,
    ) -> None:
        """
        :param id: The project id that scopes every store call.
        :param store: Where component records live.
        :param config: Directories and tunables passed to lifecycle variants.
        :param clock: Returns the timestamps written to records.
        :param lifecycles: Type table for resolving variants; defaults to the built-in one.
        :param reaper_interval: Seconds between background reaper passes.
        """
        self.id = id
        self.store = store
        self.config = config
        self.clock = clock
        self.lifecycles = lifecycles
        self.locks = KeyedLock()
        self.reaper = Reaper(self.reap, reaper_interval)

    #* --- Helpers ---
    def _resolve(self, type: str) -> Lifecycle:
        return resolve_lifecycle(type, self.config, self.lifecycles)

    @contextmanager
    def _store_op(self, doing: str) -> Iterator[None]:
        """Adds the operation's context to persistence failures."""
        try:
            yield
        except StoreError as e:
            raise StoreError(f"{doing}: {e}") from e

    def _describe(self, names: Optional[Iterable[str]] = None, ids: Optional[Iterable[str]] = None) -> List[ComponentRecord]:
        with self._store_op("describing components"):
            return self.store.describe_components(self.id, names=names, ids=ids)

    def _reload(self, id: str) -> Optional[ComponentRecord]:
        records = self._describe(ids=[id])
        return records[0] if records else None

    def _live_record(self, name: str) -> ComponentRecord:
        for record in self._describe(names=[name]):
            if record.is_live:
                return record
        raise NotFoundError(f"no component named {name!r}")

    def _reload_live(self, record: ComponentRecord) -> ComponentRecord:
        """Re-reads a record after its lock was taken; it may have changed while waiting."""
        current = self._reload(record.id)
        if current is None or not current.is_live:
            raise NotFoundError(f"no component named {record.name!r}")
        return current

    @staticmethod
    def _require_initialized(record: ComponentRecord, lifecycle: Lifecycle) -> None:
        """
        Refuses to move an orphan of a failed create; its only way out is delete.

        Unsupported types are let through so their own error is the one reported.
        """
        if record.initialized is None and not isinstance(lifecycle, InvalidLifecycle):
            raise InvalidInputError(f"component {record.name!r} was never initialized; delete it")

    @staticmethod
    def _validate_name(name: str) -> None:
        if not is_valid_name(name):
            raise InvalidInputError(f"invalid component name: {name!r}")

    #* --- Single component operations ---
    def create_component(self, name: str, type: str, spec: Spec) -> str:
        """
        Creates a component and initializes it.

        If initialization fails the record stays behind in the Created state
        (no `initialized` timestamp) and the error is raised; delete it to
        clean up.

        :return: The new component's id.
        """
        self._validate_name(name)
        spec = encode_spec(spec)
        id = gensym()

        with self.locks.hold(id):
            with self._store_op(f"creating component {name}"):
                self.store.add_component(self.id, id, name, type, spec, self.clock())
            log.debug(f"Added component {name} ({id}) of type {type!r}.")

            state = self._resolve(type).initialize(id, spec)

            with self._store_op(f"creating component {name}"):
                self.store.patch_component(id, state=state, initialized=self.clock())

        log.info(f"Created component {name} ({id}).")
        return id

    def update_component(self, name: str, spec: Spec) -> None:
        """Moves a live component to a new spec."""
        spec = encode_spec(spec)
        record = self._live_record(name)
        with self.locks.hold(record.id):
            record = self._reload_live(record)
            lifecycle = self._resolve(record.type)
            self._require_initialized(record, lifecycle)
            state = lifecycle.update(record.id, record.state, spec)
            with self._store_op(f"updating component {name}"):
                self.store.patch_component(record.id, spec=spec, state=state)
        log.info(f"Updated component {name} ({record.id}).")

    def refresh_component(self, name: str) -> None:
        """Re-derives a component's state from the resource it manages."""
        record = self._live_record(name)
        with self.locks.hold(record.id):
            record = self._reload_live(record)
            lifecycle = self._resolve(record.type)
            self._require_initialized(record, lifecycle)
            state = lifecycle.refresh(record.id, record.state)
            with self._store_op(f"refreshing component {name}"):
                self.store.patch_component(record.id, state=state)
        log.debug(f"Refreshed component {name} ({record.id}).")

    def rename_component(self, name: str, new_name: str) -> None:
        self._validate_name(new_name)
        record = self._live_record(name)
        with self.locks.hold(record.id):
            record = self._reload_live(record)
            with self._store_op(f"renaming component {name}"):
                self.store.patch_component(record.id, name=new_name)
        log.info(f"Renamed component {name} to {new_name} ({record.id}).")

    def _dispose_record(self, record: ComponentRecord) -> None:
        """Runs the dispose side effect, then marks the record disposed. Caller holds the lock."""
        lifecycle = self._resolve(record.type)
        # An orphan of an unsupported type holds nothing to release.
        if record.state or not isinstance(lifecycle, InvalidLifecycle):
            lifecycle.dispose(record.id, record.state)
        with self._store_op(f"disposing component {record.name}"):
            self.store.patch_component(record.id, disposed=self.clock())

    def _remove_record(self, record: ComponentRecord) -> None:
        try:
            with self._store_op(f"removing component {record.name}"):
                self.store.remove_component(record.id)
        except NotFoundError:
            log.debug(f"Component {record.name} ({record.id}) was already removed.")

    def dispose_component(self, name: str) -> None:
        """
        Disposes a component and leaves the record to the reaper.

        Returns once the side effect has completed; the record stays listed,
        with `disposed` set, until the next reaper pass removes it.
        """
        record = self._live_record(name)
        with self.locks.hold(record.id):
            record = self._reload_live(record)
            self._dispose_record(record)
        log.info(f"Disposed component {name} ({record.id}).")
        self.reaper.wake()

    def delete_component(self, name: str) -> None:
        """
        Disposes a component and removes its record before returning.

        A component that is already disposed but not yet reaped is just removed.
        If the dispose side effect fails the record is left live and untouched.
        """
        records = self._describe(names=[name])
        live = [record for record in records if record.is_live]
        if live:
            self._delete_record(live[0])
        elif records:
            for record in records:
                self._delete_record(record)
        else:
            raise NotFoundError(f"no component named {name!r}")
        log.info(f"Deleted component {name}.")

    def _delete_record(self, record: ComponentRecord) -> None:
        with self.locks.hold(record.id):
            current = self._reload(record.id)
            if current is None:
                return
            if current.is_live:
                self._dispose_record(current)
            self._remove_record(current)

    def describe_components(self, names: Optional[Iterable[str]] = None) -> List[ComponentRecord]:
        """Lists the project's components in creation order, disposed ones included."""
        return self._describe(names=names)

    #* --- Whole project operations ---
    def delete(self) -> None:
        """
        Deletes every component, one at a time, in creation order.

        Stops at the first failure: earlier components are gone, the failing
        one and everything after it are untouched.

        :raises BulkOperationError: Naming the component that failed.
        """
        for record in self._describe():
            try:
                self._delete_record(record)
            except YardmasterError as e:
                log.error(f"Deleting project {self.id} stopped at component {record.name}: {e}")
                raise BulkOperationError("deleting", [(record.name, e)]) from e
        log.info(f"Deleted all components of project {self.id}.")

    def refresh(self) -> None:
        """
        Refreshes every live component, stopping at the first failure.

        Orphans of a failed create are skipped; they have nothing to reconcile.
        """
        for record in self._describe():
            if not record.is_live or record.initialized is None:
                continue
            try:
                self.refresh_component(record.name)
            except YardmasterError as e:
                raise BulkOperationError("refreshing", [(record.name, e)]) from e

    def apply(self, manifest: Mapping[str, Mapping[str, Any]]) -> Dict[str, List[str]]:
        """
        Reconciles the project with a manifest of `name -> {"type": ..., "spec": ...}`.

        Live components missing from the manifest are deleted first. Then,
        in manifest order, each entry is created if absent, updated in place
        (keeping its id) if only its spec changed, replaced if its type changed
        or it never finished initializing, and refreshed otherwise. Stops at
        the first failure; running apply again continues from there.

        :return: Component names by what was done to them.
        :raises InvalidInputError: If the manifest is malformed. Nothing is touched.
        :raises BulkOperationError: Naming the component that failed.
        """
        entries = self._validate_manifest(manifest)
        summary: Dict[str, List[str]] = {"deleted": [], "created": [], "updated": [], "replaced": [], "refreshed": []}
        live = {record.name: record for record in self._describe() if record.is_live}

        name = ""
        try:
            for name, record in live.items():
                if name not in entries:
                    self._delete_record(record)
                    summary["deleted"].append(name)

            for name, (type, spec) in entries.items():
                record = live.get(name)
                if record is None:
                    self.create_component(name, type, spec)
                    summary["created"].append(name)
                elif record.type != type or record.initialized is None:
                    self._delete_record(record)
                    self.create_component(name, type, spec)
                    summary["replaced"].append(name)
                elif same_spec(record.spec, spec):
                    self.refresh_component(name)
                    summary["refreshed"].append(name)
                else:
                    self.update_component(name, spec)
                    summary["updated"].append(name)
        except YardmasterError as e:
            log.error(f"Applying manifest to project {self.id} stopped at component {name}: {e}")
            raise BulkOperationError("applying", [(name, e)]) from e

        log.info(f"Applied manifest to project {self.id}: " + ", ".join(f"{len(v)} {k}" for k, v in summary.items()))
        return summary

    def _validate_manifest(self, manifest: Mapping[str, Mapping[str, Any]]) -> Dict[str, tuple]:
        if not isinstance(manifest, Mapping):
            raise InvalidInputError("manifest must be an object mapping component names to definitions")
        entries = {}
        for name, entry in manifest.items():
            self._validate_name(name)
            if not isinstance(entry, Mapping) or not isinstance(entry.get("type"), str) or "spec" not in entry:
                raise InvalidInputError(f"manifest entry {name!r} needs a string 'type' and a 'spec'")
            entries[name] = (entry["type"], encode_spec(entry["spec"]))
        return entries

    #* --- Reaping ---
    def reap(self) -> int:
        """
        Removes every disposed record of the project.

        :return: The number of records removed by this call.
        """
        removed = 0
        for record in self._describe():
            if record.is_live:
                continue
            try:
                with self._store_op(f"reaping component {record.name}"):
                    self.store.remove_component(record.id)
                removed += 1
            except NotFoundError:
                continue
        return removed

    def start_reaper(self) -> None:
        self.reaper.start()

    def stop_reaper(self) -> None:
        self.reaper.stop()
