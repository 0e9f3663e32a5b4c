import uuid
from typing import Any, Optional
from datetime import datetime, timezone
from collections.abc import Iterator, Mapping, MutableMapping
import jsonpickle


class TabStorage(MutableMapping[str, Any]):
    """Tab-scoped, less-sensitive storage (the ``sessionStorage`` of a client).

    Holds UI hints such as the "a key is installed" marker. It survives a
    reload through ``dumps()``/``loads()``; whatever lives only in process
    memory (the session key) does not. Only JSON primitives are accepted,
    so a key object can never end up here.
    """

    def __init__(
        self,
        data: Optional[Mapping[str, Any]] = None,
        id: Optional[str] = None
    ) -> None:
        self._data: dict[str, Any] = {}
        self._changed = False
        self._id_ = id or uuid.uuid4().hex
        self._created = datetime.now(timezone.utc)
        if data is not None:
            for key, value in data.items():
                self._set_value(key, value)
            self._changed = False

    def __repr__(self) -> str:
        return f'<TabStorage [{self._id_}] keys={list(self._data.keys())}>'

    # --- Serialization helpers ---

    def _is_serializable(self, value: Any) -> bool:
        """Check if a value is a plain JSON primitive (recursively)."""
        if value is None or isinstance(value, (bool, int, float, str)):
            return True
        if isinstance(value, dict):
            return all(
                isinstance(k, str) and self._is_serializable(v)
                for k, v in value.items()
            )
        if isinstance(value, (list, tuple)):
            return all(self._is_serializable(v) for v in value)
        return False

    def _set_value(self, key: str, value: Any) -> None:
        if not isinstance(key, str):
            raise TypeError("TabStorage keys must be strings")
        if not self._is_serializable(value):
            raise TypeError(
                f"{type(value).__name__} cannot be stored in tab storage"
            )
        self._data[key] = value
        self._changed = True

    # --- Properties ---

    @property
    def storage_id(self) -> str:
        return self._id_

    @property
    def created(self) -> datetime:
        return self._created

    @property
    def empty(self) -> bool:
        return not bool(self._data)

    @property
    def is_changed(self) -> bool:
        return self._changed

    @is_changed.setter
    def is_changed(self, value: bool) -> None:
        self._changed = value

    def invalidate(self) -> None:
        """Clear all stored hints."""
        self._changed = True
        self._data = {}

    # --- Magic Methods ---

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._set_value(key, value)

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self._changed = True

    # --- Persistence ---

    def dumps(self) -> str:
        """dumps.

            Encode the stored hints using jsonpickle.

        Raises:
            RuntimeError: Error converting data to json.

        Returns:
            str: json version of the data
        """
        try:
            payload = jsonpickle.encode(
                {'id': self._id_, 'data': self._data}
            )
        except Exception as err:
            raise RuntimeError(err) from err
        self._changed = False
        return payload

    @classmethod
    def loads(cls, payload: str) -> "TabStorage":
        """loads.

            Restore a TabStorage from ``dumps()`` output (jsonpickle safe mode).

        Raises:
            RuntimeError: Error converting data from json.

        Returns:
            TabStorage: the restored storage.
        """
        try:
            restored = jsonpickle.decode(payload, safe=True)
        except Exception as err:
            raise RuntimeError(err) from err
        if not isinstance(restored, dict) or not isinstance(restored.get('data'), dict):
            raise RuntimeError("Invalid tab storage payload")
        return cls(data=restored['data'], id=restored.get('id'))
