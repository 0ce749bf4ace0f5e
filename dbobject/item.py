"""
Free-form row objects, the default members of an :class:`~dbobject.item_set.ItemSet`.
"""

from typing import Any, Dict, List


class Item:
    """
    A bag of field values with no table behind it. Any field may be set;
    fields never set read as None.
    """

    def __init__(self, data: Dict[str, Any] = None):
        self._data: Dict[str, Any] = dict(data or {})

    def __repr__(self) -> str:
        return f"Item({self._data!r})"

    def __len__(self) -> int:
        return len(self._data)

    def get(self, field: str) -> Any:
        return self._data.get(field)

    def set(self, field: str, value: Any) -> "Item":
        self._data[field] = value
        return self

    def is_set(self, field: str) -> bool:
        return self._data.get(field) is not None

    def keys(self) -> List[str]:
        """Fields assigned in this item, in assignment order."""
        return list(self._data)

    def get_data(self) -> Dict[str, Any]:
        return dict(self._data)

    def clear(self) -> "Item":
        self._data = {}
        return self

    def count(self) -> int:
        return len(self._data)
