import logging
from dataclasses import dataclass, asdict, replace
from typing import Any, Dict, Iterable, List, Optional

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComponentRecord:
    """
    One component as persisted by a state store.

    `spec` and `state` are serialized payloads owned by the component's
    lifecycle variant; the store never looks inside them.
    """
    id: str
    project_id: str
    name: str
    type: str
    spec: str
    state: str = ""
    created: str = ""
    initialized: Optional[str] = None
    disposed: Optional[str] = None

    @property
    def is_live(self) -> bool:
        return self.disposed is None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ComponentRecord":
        return cls(
            id=data["id"],
            project_id=data["project_id"],
            name=data["name"],
            type=data["type"],
            spec=data.get("spec", ""),
            state=data.get("state", ""),
            created=data.get("created", ""),
            initialized=data.get("initialized"),
            disposed=data.get("disposed"),
        )

    def patched(self, **fields: Any) -> "ComponentRecord":
        return replace(self, **fields)


class StateStore:
    """
    Durable keyed storage of component records, scoped by project.

    Subclasses must make every method atomic with respect to the others: a
    describe running concurrently with a patch or remove sees the record
    either entirely before or entirely after the mutation.
    """

    def describe_components(
        self,
        project_id: str,
        names: Optional[Iterable[str]] = None,
        ids: Optional[Iterable[str]] = None,
    ) -> List[ComponentRecord]:
        """
        Returns the project's records in creation order.

        :param project_id: The owning project.
        :param names: If given, only records with one of these names.
        :param ids: If given, only records with one of these ids.
        """
        raise NotImplementedError

    def add_component(
        self,
        project_id: str,
        id: str,
        name: str,
        type: str,
        spec: str,
        created: str,
    ) -> ComponentRecord:
        """
        Adds a record in the Created state.

        :raises DuplicateNameError: If a live component of the project uses `name`.
        """
        raise NotImplementedError

    def patch_component(self, id: str, **fields: Any) -> ComponentRecord:
        """
        Updates some fields of a record.

        Accepted fields are `name`, `spec`, `state`, `initialized` and `disposed`.

        :raises NotFoundError: If there is no record with this id.
        """
        raise NotImplementedError

    def remove_component(self, id: str) -> None:
        """
        Deletes a record.

        :raises NotFoundError: If there is no record with this id.
        """
        raise NotImplementedError
