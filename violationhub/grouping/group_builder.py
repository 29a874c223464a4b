from typing import Optional

from violationhub.models.report import Report, ReportForConstraint
from violationhub.models.violation import ViolationGroup
from violationhub.rules.engine import RuleEngine


class AlreadyGroupedError(RuntimeError):
    """
    Raised when grouping runs twice on the same constraint.
    This is a wiring bug in the pipeline and is never caught.
    """


class GroupBuilder:
    """
    Folds the raw violations of each constraint into ViolationGroups.

    Processing rules rewrite the violation itself. Merging rules only shape
    the group pattern, they are never written back onto instances.
    """

    def __init__(
        self,
        processing_rules: Optional[RuleEngine] = None,
        merging_rules: Optional[RuleEngine] = None,
    ):
        self.processing_rules = processing_rules or RuleEngine()
        self.merging_rules = merging_rules or RuleEngine()

    def process_report(self, report: Report) -> None:
        for _, rc in report.iter_constraints():
            self.process_constraint(rc)

    def process_constraint(self, rc: ReportForConstraint) -> None:
        if rc.violation_groups:
            raise AlreadyGroupedError(
                f"constraint {rc.name!r} has already been grouped"
            )

        for v in rc.violations:
            self.processing_rules.apply_to_violation(v)
            pattern = v.cloned()
            self.merging_rules.apply_to_violation(pattern)

            for group in rc.violation_groups:
                if group.pattern.is_equal_to(pattern):
                    group.instances.append(v.difference_to(pattern))
                    break
            else:
                rc.violation_groups.append(
                    ViolationGroup(pattern=pattern, instances=[v.difference_to(pattern)])
                )

        rc.violations = []
