"""
Turns a content record into embeddable text plus flat metadata.

Pure functions only: the same record and schema always give the same
output apart from `indexed_at`.
"""

import json
import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from .errors import FormatError
from .schema import IndexableTypeSchema
from ..util.logging import logger

# Keys tried, in order, when a relation has no declared formatter
NAME_KEYS = ("name", "title", "label", "postName", "firstName", "slug")

_TEMPLATE_FIELD = re.compile(r"\{([^{}]+)\}")

Scalar = (str, int, float, bool)


def _is_rich_text(value: Any) -> bool:
    """Block-structured rich text: a list of nodes carrying `type`/`children`/`text`."""
    if isinstance(value, dict):
        return "children" in value or ("text" in value and isinstance(value.get("text"), str))
    if isinstance(value, list) and value:
        return all(isinstance(node, dict) and ("children" in node or "text" in node) for node in value)
    return False


def flatten_rich_text(value: Any) -> str:
    """Join every leaf text node of a rich text structure with single spaces."""
    leaves: List[str] = []

    def walk(node):
        if isinstance(node, list):
            for child in node:
                walk(child)
        elif isinstance(node, dict):
            text = node.get("text")
            if isinstance(text, str) and text.strip():
                leaves.append(text.strip())
            if "children" in node:
                walk(node["children"])

    walk(value)
    return " ".join(leaves)


def _render_text(field_name: str, value: Any) -> Optional[str]:
    """Render a searchable field, None when absent or empty."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if _is_rich_text(value):
        return flatten_rich_text(value) or None
    if isinstance(value, list):
        if not value:
            return None
        if all(isinstance(v, Scalar) for v in value):
            return ", ".join(str(v) for v in value)
        names = [_relation_name(v) for v in value if isinstance(v, dict)]
        if len(names) == len(value) and all(names):
            return ", ".join(names)
    if isinstance(value, dict):
        name = _relation_name(value)
        if name:
            return name

    raise FormatError(field_name, f"cannot render {type(value).__name__} as text")


def _resolve_path(obj: Dict[str, Any], path: str) -> Any:
    current: Any = obj
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def _apply_template(template: str, obj: Dict[str, Any]) -> Optional[str]:
    """Fill a "{coding.name} ({level})" style template; None if a placeholder is missing."""
    missing = False

    def substitute(match):
        nonlocal missing
        value = _resolve_path(obj, match.group(1).strip())
        if value is None or value == "":
            missing = True
            return ""
        return str(value)

    rendered = _TEMPLATE_FIELD.sub(substitute, template)
    return None if missing else rendered.strip()


def _relation_name(obj: Dict[str, Any], template: Optional[str] = None) -> Optional[str]:
    if template:
        rendered = _apply_template(template, obj)
        if rendered:
            return rendered
    for key in NAME_KEYS:
        value = obj.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _metadata_value(field_name: str, value: Any, schema: IndexableTypeSchema) -> Dict[str, Any]:
    """Flatten one metadata field into zero or more scalar entries."""
    template = schema.relation_formats.get(field_name)

    if value is None:
        return {}
    if isinstance(value, Scalar):
        return {field_name: value}
    if isinstance(value, (datetime, date)):
        return {field_name: value.isoformat()}

    if isinstance(value, list):
        if not value:
            return {}
        if all(isinstance(v, Scalar) for v in value):
            return {field_name: ", ".join(str(v) for v in value)}
        if all(isinstance(v, dict) for v in value):
            ids = [str(v["id"]) for v in value if v.get("id") is not None]
            names = [n for n in (_relation_name(v, template) for v in value) if n]
            entries = {}
            if ids:
                entries[f"{field_name}_ids"] = ",".join(ids)
            if names:
                entries[f"{field_name}_names"] = ", ".join(names)
            return entries

    if isinstance(value, dict):
        entries = {}
        if value.get("id") is not None:
            entries[f"{field_name}_id"] = value["id"] if isinstance(value["id"], (int, str)) else str(value["id"])
        name = _relation_name(value, template)
        if name:
            entries[f"{field_name}_name"] = name
        if entries:
            return entries

    # Last chance: anything JSON can carry goes in as a string
    try:
        return {field_name: json.dumps(value, sort_keys=True)}
    except (TypeError, ValueError):
        logger.warning(f"Dropping unserializable metadata field '{field_name}' ({type(value).__name__})")
        return {}


def format_record(record: Dict[str, Any], schema: IndexableTypeSchema, content_type: str) -> Tuple[str, Dict[str, Any]]:
    """
    Build the indexed text and metadata for a content record.

    Args:
        record: Content record with relations resolved
        schema: Indexable type schema for the record's type
        content_type: Type tag stored as `source_type`

    Returns:
        (text, metadata). Text is empty when no declared field has content;
        callers treat that as nothing to index.

    Raises:
        FormatError: if the record has no id or a searchable field cannot be rendered
    """
    if record.get("id") is None:
        raise FormatError("id", "record has no id")

    lines = []
    for field_name in schema.fields:
        rendered = _render_text(field_name, record.get(field_name))
        if rendered:
            lines.append(f"{field_name}: {rendered}")
    text = "\n".join(lines)

    metadata: Dict[str, Any] = {}
    for field_name in schema.metadata_fields:
        metadata.update(_metadata_value(field_name, record.get(field_name), schema))

    updated_at = record.get("updatedAt")
    if updated_at is not None:
        metadata["source_updated_at"] = updated_at.isoformat() if isinstance(updated_at, (datetime, date)) else str(updated_at)

    # Reserved keys always win over same-named content fields
    metadata["source_id"] = str(record["id"])
    metadata["source_type"] = content_type
    metadata["indexed_at"] = datetime.now().isoformat()

    return text, metadata


def document_id_for(content_type: str, record_id: Any) -> str:
    return f"{content_type}:{record_id}"
