from __future__ import annotations

from dataclasses import FrozenInstanceError, dataclass
from dataclasses import fields as dataclass_fields


@dataclass
class FrozenAfterInitDataclass:
    """A mixin for dataclasses that disallows changing fields after init.

    Fields can be set once and not again. Unlike `@dataclass(frozen=True)`,
    only dataclass-managed fields are frozen. Python before 3.13 can't create
    a frozen slots dataclass from a subscripted generic alias, because the
    alias sets `__orig_class__` on the new instance.
    """

    def __delattr__(self, name: str) -> None:
        if name in (f.name for f in dataclass_fields(self)):
            raise FrozenInstanceError(f"cannot delete field {name}")
        super(FrozenAfterInitDataclass, self).__delattr__(name)

    def __setattr__(self, name: str, value: object) -> None:
        if name in (f.name for f in dataclass_fields(self)):
            if hasattr(self, name):
                raise FrozenInstanceError(f"cannot set {name!r}")
        super(FrozenAfterInitDataclass, self).__setattr__(name, value)
