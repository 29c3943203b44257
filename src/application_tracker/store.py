"""Record store contract used by the reconciler, plus a dict-backed store."""

import copy
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

OPERATORS = ("==", ">=", "<=", "in")

OrderBy = Tuple[str, str]  # (field, "asc" | "desc")


class DocumentNotFound(KeyError):
    pass


@dataclass(frozen=True)
class Filter:
    field: str  # dotted path, e.g. "applicantInfo.email"
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported filter operator {self.op!r}")


@dataclass
class Document:
    id: str
    data: Dict[str, Any]


_MISSING = object()


def get_path(data: Dict[str, Any], path: str) -> Any:
    cur: Any = data
    for key in path.split("."):
        if not isinstance(cur, dict) or key not in cur:
            return _MISSING
        cur = cur[key]
    return cur


def matches(data: Dict[str, Any], flt: Filter) -> bool:
    value = get_path(data, flt.field)
    if value is _MISSING:
        return False
    try:
        if flt.op == "==":
            return value == flt.value
        if flt.op == ">=":
            return value >= flt.value
        if flt.op == "<=":
            return value <= flt.value
        return value in flt.value
    except TypeError:
        # mismatched types never satisfy a range filter
        return False


def apply_query(docs: Sequence[Document], filters: Sequence[Filter],
                order_by: Optional[OrderBy] = None) -> List[Document]:
    result = [d for d in docs if all(matches(d.data, f) for f in filters)]
    if order_by:
        field, direction = order_by
        # documents without the ordering field are dropped, like an ordered Firestore query
        result = [d for d in result if get_path(d.data, field) is not _MISSING]
        result.sort(key=lambda d: get_path(d.data, field), reverse=direction == "desc")
    return result


def merge(data: Dict[str, Any], partial: Dict[str, Any]) -> Dict[str, Any]:
    """Deep-merge partial into a copy of data; lists are replaced, not merged."""
    merged = copy.deepcopy(data)
    for key, value in partial.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class ApplicationStore(ABC):
    @abstractmethod
    def query(self, filters: Sequence[Filter], order_by: Optional[OrderBy] = None) -> List[Document]:
        ...

    @abstractmethod
    def get(self, doc_id: str) -> Optional[Document]:
        ...

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> str:
        ...

    @abstractmethod
    def update_merge(self, doc_id: str, partial: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def batch_update(self, updates: Sequence[Tuple[str, Dict[str, Any]]]) -> None:
        """Apply every (id, partial) update, or none of them."""


class MemoryStore(ApplicationStore):
    def __init__(self, docs: Optional[Dict[str, Dict[str, Any]]] = None):
        self._docs: Dict[str, Dict[str, Any]] = copy.deepcopy(docs or {})

    def __len__(self) -> int:
        return len(self._docs)

    def all(self) -> List[Document]:
        return [Document(k, copy.deepcopy(v)) for k, v in self._docs.items()]

    def query(self, filters, order_by=None):
        return apply_query(self.all(), filters, order_by)

    def get(self, doc_id):
        if doc_id not in self._docs:
            return None
        return Document(doc_id, copy.deepcopy(self._docs[doc_id]))

    def create(self, data):
        doc_id = uuid.uuid4().hex
        self._docs[doc_id] = copy.deepcopy(data)
        return doc_id

    def update_merge(self, doc_id, partial):
        if doc_id not in self._docs:
            raise DocumentNotFound(doc_id)
        self._docs[doc_id] = merge(self._docs[doc_id], partial)

    def batch_update(self, updates):
        missing = [doc_id for doc_id, _ in updates if doc_id not in self._docs]
        if missing:
            raise DocumentNotFound(", ".join(missing))
        staged = dict(self._docs)
        for doc_id, partial in updates:
            staged[doc_id] = merge(staged[doc_id], partial)
        self._docs = staged
