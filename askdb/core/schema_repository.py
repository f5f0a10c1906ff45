"""Detailed schema index and business-logic graph, loaded once at startup"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from askdb.smart_logger import SmartLogger


class SchemaAssetError(Exception):
    """A static schema asset is missing or malformed"""


class SchemaRepositoryNotLoadedError(Exception):
    """The repository was queried before load() completed"""


class ColumnInfo(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    type: str
    nullable: bool = True
    key_role: Optional[Literal["primary", "foreign", "unique"]] = Field(
        default=None, alias="keyRole"
    )


class SchemaEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    schema_name: str = Field(alias="schema")
    table: str
    columns: tuple[ColumnInfo, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema": self.schema_name,
            "table": self.table,
            "columns": [
                {
                    "name": c.name,
                    "type": c.type,
                    "nullable": c.nullable,
                    "key_role": c.key_role,
                }
                for c in self.columns
            ],
        }


_SCHEMA_ASSET = TypeAdapter(List[SchemaEntry])


def _read_json(path: Path, label: str) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise SchemaAssetError(f"{label} asset not found: {path}")
    except OSError as exc:
        raise SchemaAssetError(f"{label} asset unreadable: {path}: {exc}")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise SchemaAssetError(f"{label} asset is not valid JSON: {path}: {exc}")


class SchemaRepository:
    """
    Read-only lookup over the detailed schema asset.

    The index is keyed by lower-cased table name and never changes after
    ``load()``, so concurrent readers need no locking.
    """

    def __init__(self, worldview_path: str | Path, detailed_schema_path: str | Path):
        self.worldview_path = Path(worldview_path)
        self.detailed_schema_path = Path(detailed_schema_path)
        self._worldview: Optional[Dict[str, Any]] = None
        self._index: Optional[Dict[str, SchemaEntry]] = None

    @property
    def is_loaded(self) -> bool:
        return self._index is not None and self._worldview is not None

    def load(self) -> None:
        worldview = _read_json(self.worldview_path, "Worldview map")
        if not isinstance(worldview, dict):
            raise SchemaAssetError(
                f"Worldview map must be a JSON object: {self.worldview_path}"
            )

        raw_entries = _read_json(self.detailed_schema_path, "Detailed schema")
        try:
            entries = _SCHEMA_ASSET.validate_python(raw_entries)
        except ValidationError as exc:
            raise SchemaAssetError(
                f"Detailed schema is malformed: {self.detailed_schema_path}: {exc}"
            )

        index: Dict[str, SchemaEntry] = {}
        for entry in entries:
            key = entry.table.strip().lower()
            if key in index:
                raise SchemaAssetError(
                    f"Duplicate table name in detailed schema: {entry.table!r} "
                    f"({index[key].schema_name} and {entry.schema_name})"
                )
            index[key] = entry

        self._worldview = worldview
        self._index = index
        SmartLogger.log(
            "INFO",
            "schema.repository.loaded",
            category="schema.repository",
            params={"tables": len(index), "worldview": str(self.worldview_path)},
        )

    def _require_index(self) -> Dict[str, SchemaEntry]:
        if self._index is None:
            raise SchemaRepositoryNotLoadedError("Schema repository has not been loaded")
        return self._index

    def get_worldview(self) -> Dict[str, Any]:
        if self._worldview is None:
            raise SchemaRepositoryNotLoadedError("Schema repository has not been loaded")
        return self._worldview

    def get_detailed_schema(self, table_names: Iterable[str]) -> List[SchemaEntry]:
        """Exact case-insensitive match per name; unknown names are skipped."""
        index = self._require_index()
        found: List[SchemaEntry] = []
        seen: set[str] = set()
        for name in table_names:
            key = str(name or "").strip().lower()
            if not key or key in seen:
                continue
            seen.add(key)
            entry = index.get(key)
            if entry is not None:
                found.append(entry)
        return found

    def table_names(self) -> List[str]:
        return [entry.table for entry in self._require_index().values()]
