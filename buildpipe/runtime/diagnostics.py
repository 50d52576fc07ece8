from __future__ import annotations

import re
from typing import Iterable, List

# <path>.swift:<line>[:<col>]: error: <message>
COMPILER_ERROR_RE = re.compile(r"\S+\.swift:\d+(?::\d+)?: error: \S.*")


def extract_compiler_errors(lines: Iterable[str], limit: int = 50) -> List[str]:
    """Diagnostic lines from combined build output, deduplicated, in order."""
    seen: List[str] = []
    for line in lines:
        m = COMPILER_ERROR_RE.search(line)
        if not m:
            continue
        text = m.group(0).strip()
        if text in seen:
            continue
        seen.append(text)
        if len(seen) >= limit:
            break
    return seen
