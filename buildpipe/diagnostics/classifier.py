"""Compiler diagnostic classification.

Raw ``xcodebuild`` error lines are normalized (file/line prefix stripped)
and mapped onto :class:`ErrorCategory` by an ordered rule table. The first
category with any matching pattern wins, so the table order is part of the
contract.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from buildpipe.core.matching import PatternRule, first_match, rule
from buildpipe.domain.models import ErrorCategory

_I = re.IGNORECASE

_LOCATION_PREFIX_RE = re.compile(r"\S+\.swift:\d+(:\d+)*:\s*(error|warning):\s*")

# symbol-keyed categories reuse these for extraction
_MISSING_IMPORT_PATTERNS = (
    r"cannot find type '(\w+)' in scope",
    r"cannot find '(\w+)' in scope",
    r"use of undeclared type '(\w+)'",
    r"no such module '(\w+)'",
    r"use of unresolved identifier '(\w+)'",
)
_MEMBER_SYMBOL_RE = re.compile(r"has no member '(\w+)'", _I)

CATEGORY_RULES: List[PatternRule[ErrorCategory]] = [
    rule(ErrorCategory.MISSING_IMPORT, *_MISSING_IMPORT_PATTERNS, flags=_I),
    rule(
        ErrorCategory.TYPE_MISMATCH,
        r"cannot convert value of type",
        r"produces result of type .+, but context expects",
        r"requires the types .+ be equivalent",
        r"cannot assign value of type",
        flags=_I,
    ),
    rule(ErrorCategory.TRAILING_CLOSURE, r"extra trailing closure", r"contextual closure type", flags=_I),
    rule(ErrorCategory.MISSING_CONFORMANCE, r"does not conform to protocol", r"type .+ does not conform", flags=_I),
    rule(
        ErrorCategory.MEMBER_NOT_FOUND,
        r"has no member",
        r"value of type .+ has no member",
        r"instance member .+ cannot be used on type",
        flags=_I,
    ),
    rule(ErrorCategory.MISSING_RETURN, r"missing return in", r"non-void function should return", flags=_I),
    rule(ErrorCategory.AMBIGUOUS_REFERENCE, r"ambiguous use of", r"ambiguous reference to", flags=_I),
    rule(
        ErrorCategory.ARGUMENT_MISMATCH,
        r"missing argument",
        r"extra argument",
        r"incorrect argument label",
        r"cannot invoke .+ with an argument list",
        flags=_I,
    ),
    rule(
        ErrorCategory.DEPRECATED_API,
        r"NavigationView",
        r"\.foregroundColor\b",
        r"\.navigationBarTitle\b",
        r"\.navigationBarItems\b",
        r"\.accentColor\b",
        flags=_I,
    ),
    rule(
        ErrorCategory.BINDING_ERROR,
        r"cannot find type 'Binding' in scope",
        r"cannot convert value .+ to expected argument type 'Binding",
        r"use of unresolved identifier '\$\w+'",
        r"\$\w+.*binding",
        flags=_I,
    ),
]

FRAMEWORK_BY_SYMBOL: Dict[str, str] = {
    "BarMark": "Charts",
    "LineMark": "Charts",
    "PointMark": "Charts",
    "AreaMark": "Charts",
    "SectorMark": "Charts",
    "RuleMark": "Charts",
    "RectangleMark": "Charts",
    "Chart": "Charts",
    "MapKit": "MapKit",
    "Map": "MapKit",
    "MKMapView": "MapKit",
    "ARView": "RealityKit",
    "Entity": "RealityKit",
    "AVCaptureSession": "AVFoundation",
    "AVPlayer": "AVFoundation",
    "CLLocationManager": "CoreLocation",
    "PHPickerViewController": "PhotosUI",
    "SFSafariViewController": "SafariServices",
    "WKWebView": "WebKit",
    "SKScene": "SpriteKit",
    "SKSpriteNode": "SpriteKit",
    "UIViewRepresentable": "SwiftUI",
    "UIViewControllerRepresentable": "SwiftUI",
    "Binding": "SwiftUI",
    "EnvironmentObject": "SwiftUI",
    "CoreData": "CoreData",
    "NSManagedObject": "CoreData",
}

DEPRECATED_REPLACEMENTS: Dict[str, str] = {
    "NavigationView": "NavigationStack",
    ".foregroundColor": ".foregroundStyle",
    ".navigationBarTitle": ".navigationTitle",
    ".navigationBarItems": ".toolbar",
    ".accentColor": ".tint",
}

_FIXED_SUGGESTIONS: Dict[ErrorCategory, str] = {
    ErrorCategory.TYPE_MISMATCH: "Add type conversion guidance to the generation prompt",
    ErrorCategory.TRAILING_CLOSURE: "Strengthen the trailing closure anti-pattern in the generation prompt",
    ErrorCategory.MISSING_CONFORMANCE: "Add a protocol conformance checklist to the generation prompt",
    ErrorCategory.MISSING_RETURN: "Add return-type checking guidance to the generation prompt",
    ErrorCategory.AMBIGUOUS_REFERENCE: "Add explicit disambiguation patterns to the generation prompt",
    ErrorCategory.ARGUMENT_MISMATCH: "Add argument-label validation to the source fixer",
    ErrorCategory.BINDING_ERROR: "Add @Binding / $ prefix guidance to the generation prompt",
}
_FALLBACK_SUGGESTION = "Review error and add a handling rule"


@dataclass(frozen=True)
class ClassifiedDiagnostic:
    raw: str
    message: str
    category: ErrorCategory
    symbol: Optional[str] = None
    suggestion: str = ""


def normalize(raw: str) -> str:
    """Strip the ``path:line[:col]: error|warning:`` prefix and trim."""
    return _LOCATION_PREFIX_RE.sub("", raw or "", count=1).strip()


def classify(raw: str) -> ErrorCategory:
    if not isinstance(raw, str):
        return ErrorCategory.OTHER
    hit = first_match(CATEGORY_RULES, normalize(raw))
    return hit.effect if hit else ErrorCategory.OTHER


def extract_symbol(category: ErrorCategory, message: str) -> Optional[str]:
    if category == ErrorCategory.MISSING_IMPORT:
        m = CATEGORY_RULES[0].search(message)
        return m.group(1) if m and m.groups() else None
    if category == ErrorCategory.MEMBER_NOT_FOUND:
        m = _MEMBER_SYMBOL_RE.search(message)
        return m.group(1) if m else None
    return None


def _deprecated_hit(message: str) -> Optional[Tuple[str, str]]:
    hits = [(old, new) for old, new in DEPRECATED_REPLACEMENTS.items() if old in message]
    if not hits:
        return None
    return max(hits, key=lambda pair: len(pair[0]))


def suggestion(category: ErrorCategory, message: str) -> str:
    message = normalize(message)
    if category == ErrorCategory.MISSING_IMPORT:
        symbol = extract_symbol(category, message)
        if not symbol:
            return "Add a missing-import rule to the source fixer"
        framework = FRAMEWORK_BY_SYMBOL.get(symbol)
        if framework:
            return f"Add auto-import for {framework} to the source fixer"
        return f"Add auto-import rule for '{symbol}' to the source fixer"
    if category == ErrorCategory.MEMBER_NOT_FOUND:
        member = extract_symbol(category, message) or "unknown"
        return f"Add valid member reference for '{member}' to the source fixer"
    if category == ErrorCategory.DEPRECATED_API:
        hit = _deprecated_hit(message)
        if hit:
            return f"Add migration from {hit[0]} to {hit[1]} to the source fixer"
        return "Add a deprecated-API migration rule to the source fixer"
    return _FIXED_SUGGESTIONS.get(category, _FALLBACK_SUGGESTION)


def classify_all(lines: Iterable[str]) -> List[ClassifiedDiagnostic]:
    out: List[ClassifiedDiagnostic] = []
    for raw in lines:
        message = normalize(raw)
        if not message:
            continue
        category = classify(message)
        out.append(
            ClassifiedDiagnostic(
                raw=raw,
                message=message,
                category=category,
                symbol=extract_symbol(category, message),
                suggestion=suggestion(category, message),
            )
        )
    return out
