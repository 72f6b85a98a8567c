"""
Human-readable quote numbers: PREFIX-YEAR-NNNN, per owner and session scope.

The sequence is best effort. Two concurrent creates can compute the same
next number; the unique index rejects one and the caller retries with a
fresh lookup.
"""

import re

_SEQUENCE_RE = re.compile(r"-(\d+)$")


def quote_number_prefix(prefix: str, year: int, scope: str | None = None,
                        demo_prefix: str = "DEMO") -> str:
    """
    Prefix up to and including the trailing dash.

    Demo sessions get DEMO-{scope[:6]}-YEAR- so their numbers never collide
    with the owner's permanent sequence.
    """
    if scope:
        return f"{demo_prefix}-{scope[:6]}-{year}-"
    return f"{prefix}-{year}-"


def next_quote_number(prefix: str, highest: str | None) -> str:
    """
    Number following the highest existing one under prefix.

    >>> next_quote_number("QC-2026-", "QC-2026-0004")
    'QC-2026-0005'
    """
    sequence = 1
    if highest is not None:
        match = _SEQUENCE_RE.search(highest)
        if match:
            sequence = int(match.group(1)) + 1
    return f"{prefix}{sequence:04d}"
