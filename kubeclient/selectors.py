"""Label and field selector parsing and matching."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional


class Operator(str, Enum):
    EQUALS = "="
    NOT_EQUALS = "!="
    IN = "in"
    NOT_IN = "notin"
    EXISTS = "exists"
    DOES_NOT_EXIST = "!"


_KEY = r"[A-Za-z0-9]([-A-Za-z0-9_./]*[A-Za-z0-9])?"
_SET_RE = re.compile(rf"^\s*(?P<key>{_KEY})\s+(?P<op>in|notin)\s*\((?P<values>[^)]*)\)\s*$")
_CMP_RE = re.compile(rf"^\s*(?P<key>{_KEY})\s*(?P<op>==|!=|=)\s*(?P<value>[-A-Za-z0-9_.]*)\s*$")
_EXISTS_RE = re.compile(rf"^\s*(?P<neg>!?)\s*(?P<key>{_KEY})\s*$")


@dataclass(frozen=True)
class Requirement:
    """One comma-separated term of a selector."""

    key: str
    operator: Operator
    values: tuple[str, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        present = self.key in labels
        value = labels.get(self.key)
        if self.operator == Operator.EXISTS:
            return present
        if self.operator == Operator.DOES_NOT_EXIST:
            return not present
        if self.operator == Operator.EQUALS:
            return present and value == self.values[0]
        if self.operator == Operator.NOT_EQUALS:
            return not present or value != self.values[0]
        if self.operator == Operator.IN:
            return present and value in self.values
        return not present or value not in self.values


def _split_terms(selector: str) -> list[str]:
    """Split on commas that are not inside a value set."""
    terms, depth, current = [], 0, []
    for ch in selector:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise ValueError(f"unbalanced parenthesis in selector {selector!r}")
        if ch == "," and depth == 0:
            terms.append("".join(current))
            current = []
        else:
            current.append(ch)
    if depth != 0:
        raise ValueError(f"unbalanced parenthesis in selector {selector!r}")
    terms.append("".join(current))
    return terms


def parse_label_selector(selector: Optional[str]) -> list[Requirement]:
    """Parse ``a=b,c!=d,e in (f,g),!h`` into requirements. Empty matches all."""
    if not selector or not selector.strip():
        return []
    requirements = []
    for term in _split_terms(selector):
        if not term.strip():
            raise ValueError(f"empty term in selector {selector!r}")
        match = _SET_RE.match(term)
        if match:
            values = tuple(v.strip() for v in match["values"].split(",") if v.strip())
            op = Operator.IN if match["op"] == "in" else Operator.NOT_IN
            requirements.append(Requirement(match["key"], op, values))
            continue
        match = _CMP_RE.match(term)
        if match:
            op = Operator.NOT_EQUALS if match["op"] == "!=" else Operator.EQUALS
            requirements.append(Requirement(match["key"], op, (match["value"],)))
            continue
        match = _EXISTS_RE.match(term)
        if match:
            op = Operator.DOES_NOT_EXIST if match["neg"] else Operator.EXISTS
            requirements.append(Requirement(match["key"], op))
            continue
        raise ValueError(f"invalid selector term {term!r}")
    return requirements


def parse_field_selector(selector: Optional[str]) -> list[Requirement]:
    """Field selectors only support ``=``, ``==`` and ``!=``."""
    requirements = []
    for requirement in parse_label_selector(selector):
        if requirement.operator not in (Operator.EQUALS, Operator.NOT_EQUALS):
            raise ValueError(f"unsupported field selector operator {requirement.operator.value!r}")
        requirements.append(requirement)
    return requirements


def field_values(obj: Mapping[str, Any], requirements: list[Requirement]) -> dict[str, str]:
    """Resolve the dotted field paths named by ``requirements`` against ``obj``."""
    values = {}
    for requirement in requirements:
        current: Any = obj
        for part in requirement.key.split("."):
            current = current.get(part) if isinstance(current, Mapping) else None
        values[requirement.key] = "" if current is None else str(current)
    return values


def matches(
    obj: Mapping[str, Any],
    label_selector: Optional[str] = None,
    field_selector: Optional[str] = None,
) -> bool:
    """Whether a wire-format object satisfies both selectors."""
    labels = (obj.get("metadata") or {}).get("labels") or {}
    if not all(r.matches(labels) for r in parse_label_selector(label_selector)):
        return False
    fields = parse_field_selector(field_selector)
    values = field_values(obj, fields)
    return all(r.matches(values) for r in fields)
