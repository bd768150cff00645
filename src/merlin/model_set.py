"""Ordered collections of model instances."""

from __future__ import annotations

import copy
import json
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, SupportsIndex

if TYPE_CHECKING:
    from merlin.model import Model
    from merlin.static_model import StaticModel


class ModelSet(list):
    """A list of instances of one model, in result order.

    Plain records added to the set are converted into instances (records
    carrying an id are treated as persisted). In raw mode records are kept
    as they are.
    """

    def __init__(
        self,
        model: StaticModel,
        records: Iterable[Any] = (),
        raw_mode: bool = False,
    ):
        super().__init__()
        self.model = model
        self.raw_mode = raw_mode
        self.extend(records)

    def _wrap(self, record: Any) -> Any:
        if self.raw_mode or isinstance(record, self.model.model_class):
            return record
        return self.model.model_class(record, new_model=self.model.id_key not in record)

    def append(self, record: Any) -> None:
        super().append(self._wrap(record))

    def push(self, *records: Any) -> int:
        """Append records and return the new length."""
        for record in records:
            self.append(record)
        return len(self)

    def extend(self, records: Iterable[Any]) -> None:
        super().extend(self._wrap(record) for record in records)

    def insert(self, index: SupportsIndex, record: Any) -> None:
        super().insert(index, self._wrap(record))

    def __setitem__(self, index: Any, value: Any) -> None:
        if isinstance(index, slice):
            super().__setitem__(index, [self._wrap(record) for record in value])
        else:
            super().__setitem__(index, self._wrap(value))

    def __iadd__(self, records: Iterable[Any]) -> ModelSet:
        self.extend(records)
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> ModelSet:
        # The model itself is shared, only members are copied
        return ModelSet(
            self.model,
            [copy.deepcopy(item, memo) for item in self],
            raw_mode=self.raw_mode,
        )

    def records(self, include_sub_records: bool = False) -> list[dict[str, Any]]:
        """Plain records of every member (deep copies)."""
        if self.raw_mode:
            return copy.deepcopy(list(self))
        return [item.record(include_sub_records=include_sub_records) for item in self]

    def to_json(self) -> str:
        return json.dumps(self.records(include_sub_records=True), default=str)

    async def create(self, record: dict[str, Any]) -> Model | dict[str, Any] | None:
        """Insert ``record`` through the model and append the result."""
        created = await self.model.create(record, raw_mode=self.raw_mode)
        if created is not None:
            self.append(created)
        return created

    async def save_all(self) -> None:
        """Cascade-save every member in order; stops at the first failure."""
        for item in self:
            await item.save_all()

    async def remove_all(self) -> None:
        """Cascade-remove every persisted member in order."""
        for item in self:
            if not item.new_model:
                await item.remove_all()
