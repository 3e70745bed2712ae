# src/couchbase_connector/base/query.py

"""
Translation of ORM ``where`` filters into parameterised N1QL.

Only the subset needed to count documents of a model is supported. Field
values are always bound as named parameters.
"""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .keys import key_prefix

log = logging.getLogger(__name__)

_FIELD_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")
_BUCKET_PATTERN = re.compile(r"^[A-Za-z0-9_.%-]+$")

_COMPARISON_OPS = {
    "eq": "=",
    "neq": "!=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "like": "LIKE",
}


class _Params:
    """Hands out unique named parameter names for one statement."""

    def __init__(self) -> None:
        self.values: Dict[str, Any] = {}

    def bind(self, value: Any) -> str:
        name = f"p{len(self.values)}"
        self.values[name] = value
        return f"${name}"


def quote_bucket(bucket: str) -> str:
    if not _BUCKET_PATTERN.match(bucket or ""):
        raise ValueError(f"Invalid bucket name: {bucket!r}")
    return f"`{bucket}`"


def _field_expr(field: str) -> str:
    if not _FIELD_PATTERN.match(field):
        raise ValueError(f"Invalid field name in where filter: {field!r}")
    return "d." + ".".join(f"`{part}`" for part in field.split("."))


def _translate_condition(field: str, value: Any, params: _Params) -> str:
    expr = _field_expr(field)
    if not isinstance(value, Mapping):
        if value is None:
            return f"{expr} IS NULL"
        return f"{expr} = {params.bind(value)}"

    parts: List[str] = []
    for op, operand in value.items():
        if op in _COMPARISON_OPS:
            parts.append(f"{expr} {_COMPARISON_OPS[op]} {params.bind(operand)}")
        elif op in ("inq", "nin"):
            if not isinstance(operand, (list, tuple, set)):
                raise TypeError(f"Value for '{op}' on {field!r} must be a list.")
            keyword = "IN" if op == "inq" else "NOT IN"
            parts.append(f"{expr} {keyword} {params.bind(list(operand))}")
        elif op == "exists":
            parts.append(f"{expr} IS VALUED" if operand else f"{expr} IS NOT VALUED")
        else:
            raise ValueError(f"Unsupported where operator {op!r} on {field!r}")
    if not parts:
        raise ValueError(f"Empty operator object for field {field!r}")
    return " AND ".join(parts)


def _translate_recursive(where: Mapping[str, Any], params: _Params) -> str:
    clauses: List[str] = []
    for key, value in where.items():
        if key in ("and", "or"):
            if not isinstance(value, (list, tuple)):
                raise TypeError(f"'{key}' expects a list of where filters.")
            nested = [_translate_recursive(cond, params) for cond in value if cond]
            nested = [clause for clause in nested if clause]
            if not nested:
                continue
            joiner = " AND " if key == "and" else " OR "
            clauses.append("(" + joiner.join(nested) + ")")
        else:
            clauses.append(_translate_condition(key, value, params))
    return " AND ".join(clauses)


def translate_where(
    bucket: str, model: str, where: Optional[Mapping[str, Any]] = None
) -> Tuple[str, Dict[str, Any]]:
    """
    Build ``FROM ... WHERE ...`` for the documents of one model.

    Returns:
        A tuple of (statement fragment, named parameters). The fragment
        starts with ``FROM`` and aliases the bucket as ``d``.
    """
    params = _Params()
    prefix_param = params.bind(key_prefix(model))
    clause = f"POSITION(META(d).id, {prefix_param}) = 0"
    if where:
        extra = _translate_recursive(where, params)
        if extra:
            clause = f"{clause} AND {extra}"
    fragment = f"FROM {quote_bucket(bucket)} AS d WHERE {clause}"
    log.debug(f"Translated where {where!r} -> {fragment} {params.values}")
    return fragment, params.values
