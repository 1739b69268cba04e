"""Minimal change detection between prior and desired attributes.

A field is changed when its desired value differs from the last known value
after both sides are brought to the same form: coerced scalars compare
directly, integer sets compare as sets, structured text compares by
canonical JSON so formatting never shows up as drift.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from .canonical import is_equivalent
from .models import FieldSpec, FieldType, TypeDescriptor


@dataclass(frozen=True)
class FieldChangeSet:
    """Changed field names in declaration order."""

    names: tuple[str, ...] = ()

    def has_any(self, *keys: str) -> bool:
        """Check whether any of the given fields changed."""
        return any(key in self.names for key in keys)

    @property
    def is_empty(self) -> bool:
        return not self.names

    def __contains__(self, name: object) -> bool:
        return name in self.names

    def __iter__(self) -> Iterator[str]:
        return iter(self.names)

    def __len__(self) -> int:
        return len(self.names)


def field_changed(spec: FieldSpec, prior: Any, desired: Any) -> bool:
    """Compare one field's prior and desired values."""
    if spec.type is FieldType.STRUCTURED:
        return not is_equivalent(prior, desired)
    if spec.type is FieldType.INTEGER_SET:
        return set(prior or ()) != set(desired or ())
    return prior != desired


def diff(
    prior: Mapping[str, Any],
    desired: Mapping[str, Any],
    descriptor: TypeDescriptor,
) -> FieldChangeSet:
    """Compute the fields whose desired value differs from the prior value.

    Only attributes present in ``desired`` are managed: leaving an optional
    attribute out keeps whatever the server holds. Computed-only fields are
    never reported.

    Args:
        prior: Last known attributes (from the most recent read).
        desired: Validated desired attributes.
        descriptor: Type descriptor defining field order and types.
    """
    changed: list[str] = []
    for spec in descriptor.fields:
        if not spec.settable or spec.name not in desired:
            continue
        if desired[spec.name] is None:
            continue
        if field_changed(spec, prior.get(spec.name), desired[spec.name]):
            changed.append(spec.name)
    return FieldChangeSet(tuple(changed))


def force_new_fields(change_set: FieldChangeSet, descriptor: TypeDescriptor) -> list[str]:
    """Changed fields that cannot be updated in place."""
    return [name for name in change_set if descriptor.get_field(name).force_new]
