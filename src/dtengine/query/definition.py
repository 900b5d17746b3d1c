"""Saved query definitions and the stores they are loaded from."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import dacite
import yaml

from ..cache.store import data_dir_or_default, validate_query_id
from ..errors import ResolutionError
from ..values import split_field

log = logging.getLogger("query/definition")

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")

# Keys of the stored documents that do not follow the camelCase -> snake_case rule
_KEY_ALIASES = {
    "transformerCode": "transformer",
    "transformer_code": "transformer",
}


@dataclass(frozen=True, kw_only=True)
class QueryDefinition:
    """
    A saved, parameterized remote query.

    Attributes:
        id: the query identifier (queryId)
        body: the query text sent to the endpoint
        variables: JSON text with the variables template
        transformer: optional name of a registered transformer
        month: whether results are partitioned by calendar month
        index: optional cheap probe query returning a freshness value
        month_index: optional probe returning a date naming the current month
        client_save: whether results are cached and filtered locally
        search_fields: top-level key -> nested paths searched locally
        sort_fields: top-level key -> nested paths sortable locally
        url_key: selects the endpoint; the default endpoint is used when empty
    """

    id: str
    body: str
    variables: str = ""
    transformer: str | None = None
    month: bool = False
    index: str | None = None
    month_index: str | None = None
    client_save: bool = False
    search_fields: dict[str, list[str]] = field(default_factory=dict)
    sort_fields: dict[str, list[str]] = field(default_factory=dict)
    url_key: str | None = None

    def __post_init__(self):
        validate_query_id(self.id)

    def has_index(self) -> bool:
        """Return whether the definition declares an index probe."""
        return bool(self.index and self.index.strip())

    def has_month_index(self) -> bool:
        """Return whether the definition declares a month-index probe."""
        return bool(self.month_index and self.month_index.strip())

    def probes_freshness(self) -> bool:
        """Return whether the cache check applies (cached locally with an index probe)."""
        return self.client_save and self.has_index()

    def allows_sort(self, sort_field: str) -> bool:
        """
        Return whether `sort_field` is listed in `sort_fields`.

        A top-level key mapped to an empty list allows sorting by the key
        itself; otherwise the nested path must be listed (`""` stands for
        the key itself).
        """
        top_key, nested_path = split_field(sort_field)
        if top_key not in self.sort_fields:
            return False
        allowed = self.sort_fields[top_key]
        if not allowed:
            return nested_path == ""
        return nested_path in allowed

    def template_variables(self) -> dict[str, Any]:
        """Return the parsed variables template."""
        return parse_variables(self.variables)


def _snake_case(key: str) -> str:
    if key in _KEY_ALIASES:
        return _KEY_ALIASES[key]
    return _CAMEL_RE.sub("_", key).lower()


def load_definition(data: Mapping[str, Any]) -> QueryDefinition:
    """
    Build a QueryDefinition from a stored document.

    Both camelCase (`clientSave`, `urlKey`) and snake_case keys are
    accepted. Unknown keys are ignored. A variables mapping is stored
    back as JSON text.
    """
    converted = {_snake_case(str(key)): value for key, value in data.items()}
    variables = converted.get("variables")
    if isinstance(variables, Mapping):
        converted["variables"] = json.dumps(variables)
    elif variables is None:
        converted.pop("variables", None)
    for key in ("search_fields", "sort_fields"):
        if converted.get(key) is None:
            converted.pop(key, None)
    try:
        return dacite.from_dict(QueryDefinition, converted, config=dacite.Config(check_types=True))
    except (dacite.DaciteError, ValueError) as exc:
        raise ResolutionError(f"Invalid query definition: {exc}") from exc


_LINE_COMMENT_RE = re.compile(r'("(?:\\.|[^"\\])*")|//[^\n]*|/\*.*?\*/', re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r'("(?:\\.|[^"\\])*")|,(\s*[}\]])')


def parse_variables(text: str | None) -> dict[str, Any]:
    """
    Parse a variables template.

    The template is JSON that may contain `//` and `/* */` comments and
    trailing commas. Unparseable or non-object templates yield an empty
    mapping.
    """
    if not text or not text.strip():
        return {}
    stripped = _LINE_COMMENT_RE.sub(lambda m: m.group(1) or "", text)
    stripped = _TRAILING_COMMA_RE.sub(lambda m: m.group(1) or m.group(2), stripped)
    try:
        parsed = json.loads(stripped)
    except ValueError as exc:
        log.warning("cannot parse query variables: %s", exc)
        return {}
    return parsed if isinstance(parsed, dict) else {}


class QueryDefinitionStore(Protocol):
    """
    Read-only source of query definitions.

    Methods:
        load: return the definition with the given id or None.
        list: return all the known definitions.
    """

    def load(self, query_id: str) -> QueryDefinition | None: ...

    def list(self) -> list[QueryDefinition]: ...


class MappingDefinitionStore:
    """Definition store backed by an in-memory mapping."""

    def __init__(self, definitions: Mapping[str, QueryDefinition] | None = None):
        self.definitions = dict(definitions or {})

    def load(self, query_id: str) -> QueryDefinition | None:
        return self.definitions.get(query_id)

    def list(self) -> list[QueryDefinition]:
        return list(self.definitions.values())


class DirectoryDefinitionStore:
    """
    Definition store reading YAML or JSON documents from a directory.

    Each `<query_id>.yaml`, `<query_id>.yml` or `<query_id>.json` file under
    `<data_dir>/queries/` holds one definition. The `id` key defaults
    to the file stem.
    """

    SUFFIXES = (".yaml", ".yml", ".json")

    def __init__(self, data_dir: str | Path | None = None, *, queries_dir: Path | None = None):
        self.queries_dir = queries_dir or data_dir_or_default(data_dir) / "queries"

    def load(self, query_id: str) -> QueryDefinition | None:
        validate_query_id(query_id)
        for suffix in self.SUFFIXES:
            path = self.queries_dir / f"{query_id}{suffix}"
            if path.exists():
                return self._load_file(path)
        return None

    def list(self) -> list[QueryDefinition]:
        if not self.queries_dir.is_dir():
            return []
        definitions = []
        for path in sorted(self.queries_dir.iterdir()):
            if path.suffix not in self.SUFFIXES:
                continue
            try:
                definitions.append(self._load_file(path))
            except ResolutionError as exc:
                log.warning("loading %s... failure: %s", path.name, exc)
        return definitions

    def _load_file(self, path: Path) -> QueryDefinition:
        try:
            content = path.read_text()
            data = json.loads(content) if path.suffix == ".json" else yaml.safe_load(content)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            raise ResolutionError(f"Cannot read query definition {path.name}: {exc}") from exc
        if not isinstance(data, dict):
            raise ResolutionError(f"Query definition {path.name} must be a mapping.")
        data.setdefault("id", path.stem)
        return load_definition(data)
