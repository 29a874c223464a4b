import logging
import re
from typing import Dict, List, Optional

from violationhub.models.violation import Violation
from violationhub.rules.rule import Rule

OBJECT_IDENTITY_PREFIX = "object_identity."


class RuleEngine:
    """
    Applies an ordered list of rules to the fields of a violation.

    Rules are not independent: each rule sees the rewrites of the rules
    before it. A rule that does not apply is skipped silently.
    """

    def __init__(self, rules: Optional[List[Rule]] = None):
        self.rules = list(rules or [])
        self.logger = logging.getLogger("violationhub.rules")
        # matches $0, $1, $2, ... in target templates
        self._placeholder_rx = re.compile(r"\$(\d+)")

    def __len__(self) -> int:
        return len(self.rules)

    def apply(self, data: Dict[str, str]) -> None:
        """Mutates `data` in place."""
        for rule in self.rules:
            self._execute(rule, data)

    def apply_to_violation(self, v: Violation) -> None:
        data = {
            "kind": v.kind,
            "name": v.name,
            "namespace": v.namespace,
            "message": v.message,
        }
        for key, value in v.object_identity.items():
            data[OBJECT_IDENTITY_PREFIX + key] = value

        self.apply(data)

        v.kind = data["kind"]
        v.name = data["name"]
        v.namespace = data["namespace"]
        v.message = data["message"]
        # only keys the violation already carries are written back
        for key in list(v.object_identity):
            v.object_identity[key] = data[OBJECT_IDENTITY_PREFIX + key]

    def _execute(self, rule: Rule, data: Dict[str, str]) -> None:
        # --- 1. can we consider applying this rule? ---
        for field_name, rx in rule.match.items():
            value = data.get(field_name)
            if value is None or rx.fullmatch(value) is None:
                return

        # --- 2. can we perform a replacement? ---
        source_value = data.get(rule.replace.source)
        if source_value is None:
            return
        match = rule.replace.pattern.fullmatch(source_value)
        if match is None:
            return

        # --- 3. the rule applies: perform every requested replacement ---
        if rule.description:
            self.logger.debug(f"applying rule {rule.description!r} to {source_value!r}")
        for field_name, template in rule.replace.target.items():
            data[field_name] = self._expand(template, match)

    def _expand(self, template: str, match: re.Match) -> str:
        group_count = len(match.groups())

        def substitute(placeholder: re.Match) -> str:
            idx = int(placeholder.group(1))
            if idx > group_count:
                return placeholder.group(0)
            return match.group(idx) or ""

        return self._placeholder_rx.sub(substitute, template)
