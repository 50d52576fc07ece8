"""In-memory ``project.pbxproj`` object graph and its serializer.

The synthesizer decides *what* a project contains by adding objects to a
:class:`ProjectGraph`; :meth:`ProjectGraph.serialize` decides *how* the
OpenStep-style plist is written. Every cross-reference is a :class:`Ref`,
so :meth:`ProjectGraph.validate` can reject dangling ids before anything is
written. :func:`parse_references` reads the declared objects back out of
the text form.
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Set

from buildpipe.core.errors import DescriptorIntegrityError

ARCHIVE_VERSION = 1
OBJECT_VERSION = 56

_BARE_STRING_RE = re.compile(r"^[A-Za-z0-9_./]+$")
_OBJECT_ID_RE = re.compile(r"\b[0-9A-F]{24}\b")


@dataclass(frozen=True)
class Ref:
    id: str
    comment: Optional[str] = None


@dataclass
class PbxObject:
    id: str
    isa: str
    fields: Dict[str, Any]
    comment: Optional[str] = None
    inline: bool = False


def random_object_id() -> str:
    return secrets.token_hex(12).upper()


def _walk_refs(value: Any) -> Iterator[Ref]:
    if isinstance(value, Ref):
        yield value
    elif isinstance(value, dict):
        for v in value.values():
            yield from _walk_refs(v)
    elif isinstance(value, (list, tuple)):
        for v in value:
            yield from _walk_refs(v)


def quote(value: str) -> str:
    if value and _BARE_STRING_RE.match(value):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n").replace("\t", "\\t")
    return f'"{escaped}"'


def _comment(text: Optional[str]) -> str:
    return f" /* {text} */" if text else ""


class ProjectGraph:
    def __init__(self, id_factory: Optional[Callable[[], str]] = None) -> None:
        self._id_factory = id_factory or random_object_id
        self.objects: Dict[str, PbxObject] = {}
        self.root: Optional[Ref] = None

    def new_id(self) -> str:
        while True:
            object_id = self._id_factory()
            if object_id not in self.objects:
                return object_id

    def add(
        self,
        isa: str,
        fields: Dict[str, Any],
        *,
        comment: Optional[str] = None,
        inline: bool = False,
        object_id: Optional[str] = None,
    ) -> Ref:
        object_id = object_id or self.new_id()
        self.objects[object_id] = PbxObject(id=object_id, isa=isa, fields=fields, comment=comment, inline=inline)
        return Ref(object_id, comment)

    def reserve(self, comment: Optional[str] = None) -> Ref:
        """Hand out an id before its object exists (for cyclic references)."""
        return Ref(self.new_id(), comment)

    def of_isa(self, isa: str) -> List[PbxObject]:
        return [o for o in self.objects.values() if o.isa == isa]

    # ------------------------------------------------------------------
    # validation
    # ------------------------------------------------------------------

    def dangling_refs(self) -> Set[str]:
        missing: Set[str] = set()
        for obj in self.objects.values():
            for ref in _walk_refs(obj.fields):
                if ref.id not in self.objects:
                    missing.add(ref.id)
        if self.root is not None and self.root.id not in self.objects:
            missing.add(self.root.id)
        return missing

    def validate(self) -> None:
        if self.root is None:
            raise DescriptorIntegrityError("project graph has no root object")
        missing = self.dangling_refs()
        if missing:
            raise DescriptorIntegrityError(
                "project graph references undeclared objects: " + ", ".join(sorted(missing))
            )

    # ------------------------------------------------------------------
    # serialization
    # ------------------------------------------------------------------

    def _value(self, value: Any, depth: int) -> str:
        if isinstance(value, Ref):
            return value.id + _comment(value.comment)
        if isinstance(value, bool):
            return "YES" if value else "NO"
        if isinstance(value, int):
            return str(value)
        if isinstance(value, str):
            return quote(value)
        indent = "\t" * (depth + 1)
        closing = "\t" * depth
        if isinstance(value, (list, tuple)):
            items = "".join(f"{indent}{self._value(v, depth + 1)},\n" for v in value)
            return f"(\n{items}{closing})"
        if isinstance(value, dict):
            items = "".join(f"{indent}{quote(k)} = {self._value(v, depth + 1)};\n" for k, v in value.items())
            return f"{{\n{items}{closing}}}"
        raise TypeError(f"unsupported pbxproj value: {value!r}")

    def _inline_value(self, value: Any) -> str:
        if isinstance(value, dict):
            return "{" + "".join(f"{quote(k)} = {self._inline_value(v)}; " for k, v in value.items()) + "}"
        if isinstance(value, (list, tuple)):
            return "(" + "".join(f"{self._inline_value(v)}, " for v in value) + ")"
        return self._value(value, 0)

    def _object(self, obj: PbxObject) -> str:
        head = f"\t\t{obj.id}{_comment(obj.comment)} = "
        body = {"isa": obj.isa, **obj.fields}
        if obj.inline:
            return head + self._inline_value(body) + ";\n"
        lines = "".join(f"\t\t\t{quote(k)} = {self._value(v, 3)};\n" for k, v in body.items())
        return head + "{\n" + lines + "\t\t};\n"

    def serialize(self) -> str:
        self.validate()
        out = ["// !$*UTF8*$!\n{\n"]
        out.append(f"\tarchiveVersion = {ARCHIVE_VERSION};\n\tclasses = {{\n\t}};\n")
        out.append(f"\tobjectVersion = {OBJECT_VERSION};\n\tobjects = {{\n")
        for isa in sorted({o.isa for o in self.objects.values()}):
            out.append(f"\n/* Begin {isa} section */\n")
            for obj in self.of_isa(isa):
                out.append(self._object(obj))
            out.append(f"/* End {isa} section */\n")
        assert self.root is not None
        out.append(f"\t}};\n\trootObject = {self.root.id}{_comment(self.root.comment)};\n}}\n")
        return "".join(out)


# ---------------------------------------------------------------------------
# reading a descriptor back
# ---------------------------------------------------------------------------

_DECLARATION_RE = re.compile(r"^\t\t([0-9A-F]{24})(?: /\* .*? \*/)? = \{", re.MULTILINE)
# single-line objects close on their own line; multi-line ones at "\n\t\t}"
_OBJECT_BODY_RE = re.compile(
    r"^\t\t([0-9A-F]{24})(?: /\* [^\n]*? \*/)? = (\{[^\n]*\}|\{\n.*?\n\t\t\});$", re.MULTILINE | re.DOTALL
)
_ISA_RE = re.compile(r"\bisa = (\w+);")
_PATH_RE = re.compile(r'\bpath = ("(?:[^"\\]|\\.)*"|[^;\s]+);')
_NAME_RE = re.compile(r'\bname = ("(?:[^"\\]|\\.)*"|[^;\s]+);')
_SOURCE_TREE_RE = re.compile(r'\bsourceTree = ("(?:[^"\\]|\\.)*"|[^;\s]+);')
_ROOT_RE = re.compile(r"\brootObject = ([0-9A-F]{24})")


def _unquote(token: str) -> str:
    if len(token) >= 2 and token[0] == token[-1] == '"':
        body = token[1:-1]
        return re.sub(r"\\(.)", lambda m: {"n": "\n", "t": "\t"}.get(m.group(1), m.group(1)), body)
    return token


@dataclass
class ParsedDescriptor:
    declared_ids: Set[str] = field(default_factory=set)
    referenced_ids: Set[str] = field(default_factory=set)
    isa_by_id: Dict[str, str] = field(default_factory=dict)
    file_paths: List[str] = field(default_factory=list)
    product_paths: List[str] = field(default_factory=list)
    target_names: List[str] = field(default_factory=list)
    root_id: Optional[str] = None

    @property
    def dangling_ids(self) -> Set[str]:
        return self.referenced_ids - self.declared_ids


def parse_references(text: str) -> ParsedDescriptor:
    parsed = ParsedDescriptor()
    parsed.declared_ids = set(_DECLARATION_RE.findall(text))
    parsed.referenced_ids = set(_OBJECT_ID_RE.findall(text))
    root = _ROOT_RE.search(text)
    parsed.root_id = root.group(1) if root else None

    for object_id, body in _OBJECT_BODY_RE.findall(text):
        isa = _ISA_RE.search(body)
        if not isa:
            continue
        parsed.isa_by_id[object_id] = isa.group(1)
        if isa.group(1) == "PBXFileReference":
            path = _PATH_RE.search(body)
            tree = _SOURCE_TREE_RE.search(body)
            if not path:
                continue
            if tree and _unquote(tree.group(1)) == "BUILT_PRODUCTS_DIR":
                parsed.product_paths.append(_unquote(path.group(1)))
            else:
                parsed.file_paths.append(_unquote(path.group(1)))
        elif isa.group(1) == "PBXNativeTarget":
            name = _NAME_RE.search(body)
            if name:
                parsed.target_names.append(_unquote(name.group(1)))
    return parsed
