import json
import logging
from dataclasses import asdict, fields
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Type, TypeVar

from yardmaster.errors import InvalidInputError, LifecycleError, YardmasterError
from yardmaster.local.runtime import ProjectConfig

log = logging.getLogger(__name__)

P = TypeVar("P", bound="Payload")


class Payload:
    """
    Mixin for the dataclasses a lifecycle variant uses as its spec and state.

    The store only ever sees the JSON text produced by `to_json`.
    """

    @classmethod
    def from_dict(cls: Type[P], data: Any, error: Type[YardmasterError] = InvalidInputError) -> P:
        if not isinstance(data, dict):
            raise error(f"{cls.__name__} must be a JSON object, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise error(f"{cls.__name__} has no field(s): {', '.join(sorted(unknown))}")
        try:
            return cls(**data)
        except TypeError as e:
            raise error(f"{cls.__name__}: {e}") from e

    @classmethod
    def from_json(cls: Type[P], text: str, error: Type[YardmasterError] = InvalidInputError) -> P:
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, TypeError) as e:
            raise error(f"{cls.__name__} is not valid JSON: {e}") from e
        return cls.from_dict(data, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)


class Lifecycle:
    """
    Performs the side effects that realize a component's spec.

    The public methods speak the serialized form the store holds; subclasses
    implement the underscored hooks over typed payloads. A state of `None`
    reaches the hooks when the component was never initialized.
    """
    type_name: str = ""
    spec_class: Type[Payload] = Payload
    state_class: Type[Payload] = Payload

    def __init__(self, config: ProjectConfig) -> None:
        self.config = config

    #* --- Serialization ---
    def decode_spec(self, spec: str) -> Payload:
        return self.spec_class.from_json(spec, error=InvalidInputError)

    def decode_state(self, state: str) -> Optional[Payload]:
        if not state:
            return None
        return self.state_class.from_json(state, error=LifecycleError)

    @staticmethod
    def encode_state(state: Payload) -> str:
        return state.to_json()

    #* --- Lifecycle events ---
    def initialize(self, id: str, spec: str) -> str:
        """Realizes `spec` and returns the resulting state."""
        typed_spec = self.decode_spec(spec)
        with self._side_effect("initializing", id):
            return self.encode_state(self._initialize(id, typed_spec))

    def update(self, id: str, old_state: str, new_spec: str) -> str:
        """Moves the component from `old_state` to `new_spec` and returns the new state."""
        typed_spec = self.decode_spec(new_spec)
        typed_state = self.decode_state(old_state)
        with self._side_effect("updating", id):
            return self.encode_state(self._update(id, typed_state, typed_spec))

    def refresh(self, id: str, state: str) -> str:
        """Re-derives the state from the real resource."""
        typed_state = self.decode_state(state)
        with self._side_effect("refreshing", id):
            return self.encode_state(self._refresh(id, typed_state))

    def dispose(self, id: str, state: str) -> None:
        """Releases whatever the component holds."""
        typed_state = self.decode_state(state)
        with self._side_effect("disposing", id):
            self._dispose(id, typed_state)

    @contextmanager
    def _side_effect(self, doing: str, id: str) -> Iterator[None]:
        """Turns stray exceptions from a side effect into LifecycleError."""
        description = f"{doing} {self.type_name} component {id}"
        log.debug(f"{description}...")
        try:
            yield
        except YardmasterError:
            raise
        except Exception as e:
            raise LifecycleError(f"{description}: {e}") from e

    #* --- Hooks ---
    def _initialize(self, id: str, spec: Any) -> Payload:
        raise NotImplementedError

    def _update(self, id: str, state: Optional[Any], spec: Any) -> Payload:
        raise NotImplementedError

    def _refresh(self, id: str, state: Optional[Any]) -> Payload:
        raise NotImplementedError

    def _dispose(self, id: str, state: Optional[Any]) -> None:
        raise NotImplementedError

