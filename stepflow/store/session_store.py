from dataclasses import asdict, fields as dc_fields
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Set

from stepflow.core.errors import ValidationError
from stepflow.core.phases import Role, RoleConfig
from stepflow.observability.logging import log


def _json_safe(obj):
    if isinstance(obj, (set, tuple)):
        return [_json_safe(v) for v in obj]
    if isinstance(obj, dict):
        return {k: _json_safe(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_json_safe(v) for v in obj]
    return obj


def _type_error(default, value):
    """Return an error message if `value` does not fit the field's default type."""
    if default is None:
        return None if value is None or isinstance(value, str) else "must be a string or null"
    if isinstance(default, bool):
        return None if isinstance(value, bool) else "must be a boolean"
    if isinstance(default, (int, float)):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return "must be a number"
        if isinstance(default, int) and not isinstance(value, int):
            return "must be an integer"
        return None
    if isinstance(default, list):
        if not isinstance(value, list) or not all(isinstance(x, str) for x in value):
            return "must be a list of strings"
        return None
    if isinstance(default, str):
        return None if isinstance(value, str) else "must be a string"
    return None


class SessionStore:
    """
    Mutable accumulated data for one workflow instance.

    Two write paths:
    - edit(): user input from the current phase view. Validated, may not touch
      adapter-owned fields, and cascades invalidations to dependent fields.
    - apply(): results written by adapter operations. Only known fields.
    """

    def __init__(self, config: RoleConfig, data=None):
        self.config = config
        self._data = data if data is not None else config.session_factory()
        self._field_names = {f.name for f in dc_fields(self._data)}
        # Called with the dependent fields an edit invalidated, whether or not they held a value
        self._invalidation_listeners: List[Callable[[Set[str]], None]] = []

    @property
    def data(self):
        return self._data

    def get(self, name: str) -> Any:
        return getattr(self._data, name)

    def view(self) -> Mapping[str, Any]:
        """Read-only snapshot; nested values are copies."""
        return MappingProxyType(_json_safe(asdict(self._data)))

    def _default(self, name: str):
        return getattr(self.config.session_factory(), name)

    def _check_role_rules(self, name: str, value, errors: Dict[str, str]) -> None:
        role = self.config.role
        if name == "selectedProperty":
            if value is not None and not value.strip():
                errors[name] = "must not be empty"
            elif role == Role.BUYER and self._data.paymentCompleted and value != self._data.selectedProperty:
                errors[name] = "selection is locked after payment"
            elif role == Role.AGENT and value is not None:
                known = {p.id for p in self._data.assignedProperties}
                if value not in known:
                    errors[name] = "not one of the assigned properties"
        elif name == "paymentAmountCents" and value < 0:
            errors[name] = "must not be negative"
        elif name == "price" and value < 0:
            errors[name] = "must not be negative"

    def edit(self, changes: Dict[str, Any], current_phase: int) -> List[str]:
        """Apply user input. Returns the names of fields that changed (including reset dependents)."""
        errors: Dict[str, str] = {}
        for name, value in changes.items():
            if name not in self._field_names:
                errors[name] = "unknown field"
            elif name in self.config.owned_fields:
                errors[name] = "field is managed by the workflow"
            elif name in self.config.transient_fields and current_phase != 1:
                errors[name] = "can only be edited during registration"
            else:
                msg = _type_error(self._default(name), value)
                if msg:
                    errors[name] = msg
                else:
                    self._check_role_rules(name, value, errors)
        if errors:
            raise ValidationError(errors)

        changed: List[str] = []
        invalidated: Set[str] = set()
        for name, value in changes.items():
            if getattr(self._data, name) == value:
                continue
            setattr(self._data, name, list(value) if isinstance(value, list) else value)
            changed.append(name)
            for dep in self.config.invalidations.get(name, ()):
                invalidated.add(dep)
                default = self._default(dep)
                if getattr(self._data, dep) != default:
                    setattr(self._data, dep, default)
                    changed.append(dep)

        if changed:
            log(event="session_edited", role=self.config.role.value, fields=changed)
        if invalidated:
            for listener in list(self._invalidation_listeners):
                listener(invalidated)
        return changed

    def on_invalidate(self, listener: Callable[[Set[str]], None]) -> None:
        self._invalidation_listeners.append(listener)

    def apply(self, **values) -> None:
        unknown = [k for k in values if k not in self._field_names]
        if unknown:
            raise KeyError(f"unknown session fields: {unknown}")
        for name, value in values.items():
            setattr(self._data, name, value)

    def clear_credentials(self) -> bool:
        cleared = False
        for name in self.config.transient_fields:
            if getattr(self._data, name):
                setattr(self._data, name, "")
                cleared = True
        return cleared
