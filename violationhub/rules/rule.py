import re
from dataclasses import dataclass, field
from typing import Dict


@dataclass(frozen=True)
class ReplaceRule:
    source: str
    pattern: re.Pattern
    target: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Rule:
    """
    One entry of `processing_rules` or `merging_rules`.

    All regexes are compiled once, when the configuration is loaded, and must
    match the whole field value.
    """
    match: Dict[str, re.Pattern]
    replace: ReplaceRule
    description: str = ""

    @classmethod
    def compile(
        cls,
        match: Dict[str, str],
        source: str,
        pattern: str,
        target: Dict[str, str],
        description: str = "",
    ) -> "Rule":
        return cls(
            match={key: re.compile(rx) for key, rx in match.items()},
            replace=ReplaceRule(
                source=source,
                pattern=re.compile(pattern),
                target=dict(target),
            ),
            description=description,
        )
