"""In-memory search client for tests, dry runs and local experiments.

Mimics the subset of Typesense behaviour the lifecycle engine relies on:
collections, aliases (resolved for document and schema calls), JSONL
imports with per-line results, and delete-by-filter over a small
``filter_by`` dialect (``field:=value``, ``field:!=value``, ``field:[a, b]``,
numeric comparisons, ``&&``, ``||`` and parentheses).
"""

from __future__ import annotations

import copy
import re
import threading
from collections import defaultdict
from typing import Any, Callable, Mapping

import orjson

from search_lifecycle.core.errors import ApiError, ValidationError


class InMemorySearchClient:
    """Thread-safe fake of the search service."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._schemas: dict[str, dict[str, Any]] = {}
        self._documents: dict[str, dict[str, dict[str, Any]]] = {}
        self._aliases: dict[str, str] = {}
        self._failures: dict[str, list[BaseException]] = defaultdict(list)
        self.calls: list[tuple[str, str]] = []

    # Test helpers ------------------------------------------------------

    def fail_next(self, method: str, *errors: BaseException) -> None:
        """Raise ``errors`` (in order) from the next calls to ``method``."""
        with self._lock:
            self._failures[method].extend(errors)

    def documents(self, name: str) -> dict[str, dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._documents.get(self._resolve(name), {}))

    def calls_to(self, method: str) -> list[str]:
        with self._lock:
            return [target for called, target in self.calls if called == method]

    # Collections -------------------------------------------------------

    def create_collection(self, schema: Mapping[str, Any]) -> dict[str, Any]:
        name = str(schema["name"])
        with self._lock:
            self._record("create_collection", name)
            if name in self._schemas:
                raise ApiError(f"collection {name!r} already exists", status=409)
            self._schemas[name] = copy.deepcopy(dict(schema))
            self._documents[name] = {}
            return copy.deepcopy(self._schemas[name])

    def delete_collection(self, name: str) -> bool:
        with self._lock:
            self._record("delete_collection", name)
            if name not in self._schemas:
                return False
            del self._schemas[name]
            self._documents.pop(name, None)
            return True

    def list_collections(self) -> list[dict[str, Any]]:
        with self._lock:
            self._record("list_collections", "")
            return [
                {"name": name, "num_documents": len(self._documents.get(name, {}))}
                for name in sorted(self._schemas)
            ]

    def retrieve_schema(self, name: str) -> dict[str, Any] | None:
        with self._lock:
            self._record("retrieve_schema", name)
            schema = self._schemas.get(self._resolve(name))
            return copy.deepcopy(schema) if schema is not None else None

    # Aliases -----------------------------------------------------------

    def resolve_alias(self, logical: str) -> str | None:
        with self._lock:
            self._record("resolve_alias", logical)
            return self._aliases.get(logical)

    def upsert_alias(self, logical: str, physical: str) -> None:
        with self._lock:
            self._record("upsert_alias", logical)
            if physical not in self._schemas:
                raise ApiError(f"alias target {physical!r} does not exist", status=404)
            self._aliases[logical] = physical

    def delete_alias(self, logical: str) -> bool:
        with self._lock:
            self._record("delete_alias", logical)
            return self._aliases.pop(logical, None) is not None

    # Documents ---------------------------------------------------------

    def import_documents(self, name: str, payload: bytes, action: str) -> str:
        with self._lock:
            self._record("import_documents", name)
            target = self._resolve(name)
            if target not in self._schemas:
                raise ApiError(f"collection {name!r} not found", status=404)
            store = self._documents[target]
            results = [self._import_line(store, line, action) for line in payload.splitlines() if line.strip()]
            return "\n".join(orjson.dumps(item).decode("utf-8") for item in results)

    def delete_by_filter(self, name: str, filter_by: str, timeout_ms: int | None = None) -> int:
        with self._lock:
            self._record("delete_by_filter", name)
            target = self._resolve(name)
            store = self._documents.get(target)
            if not store:
                return 0
            predicate = compile_filter(filter_by)
            doomed = [doc_id for doc_id, doc in store.items() if predicate(doc)]
            for doc_id in doomed:
                del store[doc_id]
            return len(doomed)

    # Internal helpers -------------------------------------------------

    def _record(self, method: str, target: str) -> None:
        self.calls.append((method, target))
        pending = self._failures.get(method)
        if pending:
            raise pending.pop(0)

    def _resolve(self, name: str) -> str:
        return self._aliases.get(name, name)

    @staticmethod
    def _import_line(store: dict[str, dict[str, Any]], line: bytes, action: str) -> dict[str, Any]:
        try:
            doc = orjson.loads(line)
        except orjson.JSONDecodeError:
            return {"success": False, "error": "Bad JSON."}
        doc_id = str(doc.get("id", ""))
        if not doc_id:
            return {"success": False, "error": "Document is missing id."}
        exists = doc_id in store
        if action == "create" and exists:
            return {"success": False, "error": f"A document with id {doc_id} already exists."}
        if action == "update" and not exists:
            return {"success": False, "error": f"Could not find a document with id: {doc_id}"}
        if action in ("update", "emplace") and exists:
            store[doc_id].update(doc)
        else:
            store[doc_id] = doc
        return {"success": True}


_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<lp>\()|(?P<rp>\))|(?P<and>&&)|(?P<or>\|\|)|
        (?P<clause>[A-Za-z0-9_.]+\s*:\s*(?:!=|<=|>=|=|<|>)?\s*
            (?:\[[^\]]*\]|"(?:[^"\\]|\\.)*"|[^\s()&|\[]+))
    )""",
    re.VERBOSE,
)
_CLAUSE_RE = re.compile(r"^(?P<field>[A-Za-z0-9_.]+)\s*:\s*(?P<op>!=|<=|>=|=|<|>)?\s*(?P<value>.+)$", re.S)
_LIST_ITEM_RE = re.compile(r'"(?:[^"\\]|\\.)*"|[^,\s]+')

Predicate = Callable[[Mapping[str, Any]], bool]


def compile_filter(expression: str) -> Predicate:
    """Compile a ``filter_by`` expression into a document predicate."""
    tokens = _tokenize(expression)
    predicate, pos = _parse_or(tokens, 0)
    if pos != len(tokens):
        raise ValidationError(f"unexpected token in filter: {expression!r}")
    return predicate


def _tokenize(expression: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    text = expression.strip()
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if not match or match.end() == pos:
            raise ValidationError(f"cannot parse filter near: {text[pos:pos + 20]!r}")
        kind = match.lastgroup or ""
        tokens.append((kind, match.group(kind)))
        pos = match.end()
        while pos < len(text) and text[pos].isspace():
            pos += 1
    return tokens


def _parse_or(tokens: list[tuple[str, str]], pos: int) -> tuple[Predicate, int]:
    left, pos = _parse_and(tokens, pos)
    parts = [left]
    while pos < len(tokens) and tokens[pos][0] == "or":
        right, pos = _parse_and(tokens, pos + 1)
        parts.append(right)
    if len(parts) == 1:
        return left, pos
    return (lambda doc: any(part(doc) for part in parts)), pos


def _parse_and(tokens: list[tuple[str, str]], pos: int) -> tuple[Predicate, int]:
    left, pos = _parse_term(tokens, pos)
    parts = [left]
    while pos < len(tokens) and tokens[pos][0] == "and":
        right, pos = _parse_term(tokens, pos + 1)
        parts.append(right)
    if len(parts) == 1:
        return left, pos
    return (lambda doc: all(part(doc) for part in parts)), pos


def _parse_term(tokens: list[tuple[str, str]], pos: int) -> tuple[Predicate, int]:
    if pos >= len(tokens):
        raise ValidationError("filter ended unexpectedly")
    kind, value = tokens[pos]
    if kind == "lp":
        inner, pos = _parse_or(tokens, pos + 1)
        if pos >= len(tokens) or tokens[pos][0] != "rp":
            raise ValidationError("unbalanced parentheses in filter")
        return inner, pos + 1
    if kind == "clause":
        return _clause_predicate(value), pos + 1
    raise ValidationError(f"unexpected {value!r} in filter")


def _clause_predicate(clause: str) -> Predicate:
    match = _CLAUSE_RE.match(clause.strip())
    if not match:
        raise ValidationError(f"invalid filter clause: {clause!r}")
    field_name = match.group("field")
    op = match.group("op") or "="
    raw_value = match.group("value").strip()
    if raw_value.startswith("["):
        wanted = [_parse_scalar(item) for item in _LIST_ITEM_RE.findall(raw_value[1:-1])]
    else:
        wanted = [_parse_scalar(raw_value)]

    def predicate(doc: Mapping[str, Any]) -> bool:
        actual = doc.get(field_name)
        values = actual if isinstance(actual, list) else [actual]
        if op == "=":
            return any(_loose_equal(item, target) for item in values for target in wanted)
        if op == "!=":
            return not any(_loose_equal(item, target) for item in values for target in wanted)
        return any(_compare(item, op, target) for item in values for target in wanted)

    return predicate


def _parse_scalar(raw: str) -> Any:
    if raw.startswith('"') and raw.endswith('"') and len(raw) >= 2:
        return raw[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    lowered = raw.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered == "null":
        return None
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        return raw


def _loose_equal(actual: Any, wanted: Any) -> bool:
    if isinstance(actual, bool) or isinstance(wanted, bool):
        return actual is wanted
    if isinstance(actual, (int, float)) and isinstance(wanted, (int, float)):
        return actual == wanted
    return str(actual) == str(wanted)


def _compare(actual: Any, op: str, wanted: Any) -> bool:
    if not isinstance(actual, (int, float)) or not isinstance(wanted, (int, float)):
        return False
    if op == "<":
        return actual < wanted
    if op == "<=":
        return actual <= wanted
    if op == ">":
        return actual > wanted
    return actual >= wanted


__all__ = ["InMemorySearchClient", "compile_filter"]
