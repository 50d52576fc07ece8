from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence

from pydantic import Field

from buildpipe.diagnostics.classifier import ClassifiedDiagnostic, classify_all
from buildpipe.domain.models import ErrorCategory, WireModel


class CategoryCount(WireModel):
    category: ErrorCategory
    count: int
    share: float = 0.0


class MessageCount(WireModel):
    message: str
    category: ErrorCategory
    count: int
    suggestion: str


class DiagnosticReport(WireModel):
    total_runs: int = 0
    total_errors: int = 0
    unique_messages: int = 0
    category_filter: Optional[ErrorCategory] = None
    by_category: List[CategoryCount] = Field(default_factory=list)
    top_messages: List[MessageCount] = Field(default_factory=list)


def aggregate(
    diagnostics: Sequence[ClassifiedDiagnostic],
    *,
    total_runs: int = 1,
    category: Optional[ErrorCategory] = None,
    top: Optional[int] = None,
) -> DiagnosticReport:
    """Count diagnostics by category and by exact normalized message.

    Totals are computed before the category filter is applied. Ranked
    lists are descending with ties in first-seen order.
    """
    by_category: Dict[ErrorCategory, int] = {}
    by_message: Dict[str, MessageCount] = {}
    for d in diagnostics:
        by_category[d.category] = by_category.get(d.category, 0) + 1
        entry = by_message.get(d.message)
        if entry is None:
            by_message[d.message] = MessageCount(
                message=d.message, category=d.category, count=1, suggestion=d.suggestion
            )
        else:
            entry.count += 1

    total = len(diagnostics)
    categories = [
        CategoryCount(category=c, count=n, share=round(n / total, 4) if total else 0.0)
        for c, n in sorted(by_category.items(), key=lambda kv: kv[1], reverse=True)
        if category is None or c == category
    ]
    messages = [
        m
        for m in sorted(by_message.values(), key=lambda m: m.count, reverse=True)
        if category is None or m.category == category
    ]
    if top is not None:
        messages = messages[:top]

    return DiagnosticReport(
        total_runs=total_runs,
        total_errors=total,
        unique_messages=len(by_message),
        category_filter=category,
        by_category=categories,
        top_messages=messages,
    )


def aggregate_runs(
    runs: Iterable[Sequence[str]],
    *,
    category: Optional[ErrorCategory] = None,
    top: Optional[int] = None,
) -> DiagnosticReport:
    """Longitudinal report over the ``compiler_errors`` of many runs."""
    diagnostics: List[ClassifiedDiagnostic] = []
    count = 0
    for lines in runs:
        count += 1
        diagnostics.extend(classify_all(lines))
    return aggregate(diagnostics, total_runs=count, category=category, top=top)
