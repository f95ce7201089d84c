"""
One-line rule syntax:

    rule ::= pattern ":" staticPrereqs ["," lazyProviderRef] ["action:" commandTemplate]

e.g.  %.o: %.c %.d, %.d action: cc -c {{ source }} -o {{ target }}
"""

from __future__ import annotations

import re

from pydantic import ValidationError

from lazymake.buildfile.schema import RuleModel
from lazymake.deps.parse import RULE_SEP_RE
from lazymake.errors import BuildfileError

ACTION_RE = re.compile(r"(?:^|\s)action:(?=\s|$)")


def parse_rule(line: str) -> RuleModel:
    text = line.strip()
    if not text:
        raise BuildfileError("Empty rule")

    action = None
    m = ACTION_RE.search(text)
    if m:
        action = text[m.end():].strip() or None
        text = text[:m.start()].strip()

    parts = RULE_SEP_RE.split(text, maxsplit=1)
    if len(parts) != 2:
        raise BuildfileError(f"Rule '{line.strip()}': missing ':' after the target pattern")

    pattern = parts[0].strip()
    if not pattern or len(pattern.split()) != 1:
        raise BuildfileError(f"Rule '{line.strip()}': expected exactly one target pattern")

    chunks = parts[1].split(",")
    if len(chunks) > 2:
        raise BuildfileError(f"Rule '{line.strip()}': at most one lazy dependency record")

    depfile = None
    if len(chunks) == 2:
        words = chunks[1].split()
        if len(words) != 1:
            raise BuildfileError(
                f"Rule '{line.strip()}': lazy dependency record must be a single name"
            )
        depfile = words[0]

    try:
        return RuleModel(
            target=pattern,
            prereqs=chunks[0].split(),
            depfile=depfile,
            action=action,
        )
    except ValidationError as e:
        raise BuildfileError(f"Rule '{line.strip()}': {e}") from e
