"""
Requirement evaluation for a deal snapshot against a stage's requirements.

Decides, per declared requirement, whether the deal already meets it:
- document: an approved document of the matching type exists
- participant: someone holds the required role
- approval / condition: caller-reported stage progress reaches the stage's
  share of the workflow ((index + 1) / total * 100)

The evaluator never raises and never mutates the deal.
"""

from ..models.deal import Deal
from ..models.enums import DealStage, DocumentStatus, RequirementType
from ..models.validation import ProgressSignal, RequirementEvaluation, StageRequirement
from ..registry import DealTypeRegistry, default_registry


class RequirementEvaluator:
    """Evaluates stage requirements for deals using a DealTypeRegistry."""

    def __init__(self, registry: DealTypeRegistry | None = None):
        self.registry = registry or default_registry

    def evaluate(
        self,
        deal: Deal,
        target_stage: DealStage,
        progress: ProgressSignal | None = None,
    ) -> RequirementEvaluation:
        """
        Split the target stage's requirements into satisfied and missing.

        Args:
            deal: Deal snapshot
            target_stage: Stage whose requirements are checked
            progress: Caller-supplied progress; absent means 0% everywhere

        Returns:
            RequirementEvaluation (empty for stages without requirements)
        """
        progress = progress or ProgressSignal()
        satisfied = []
        missing = []
        for requirement in self.registry.get_stage_requirements(deal.type, target_stage):
            if self.is_satisfied(deal, requirement, target_stage, progress):
                satisfied.append(requirement)
            else:
                missing.append(requirement)
        return RequirementEvaluation(
            stage=target_stage,
            satisfied=tuple(satisfied),
            missing=tuple(missing),
        )

    def is_satisfied(
        self,
        deal: Deal,
        requirement: StageRequirement,
        stage: DealStage,
        progress: ProgressSignal,
    ) -> bool:
        if requirement.type == RequirementType.DOCUMENT:
            return any(
                doc.document_type == requirement.matches_document_type
                and doc.status == DocumentStatus.APPROVED
                for doc in deal.documents
            )

        if requirement.type == RequirementType.PARTICIPANT:
            if requirement.role is None:
                return bool(deal.participants)
            return deal.has_role(requirement.role)

        # Approval and condition requirements are judged by reported progress
        return progress.progress_for(stage) >= self.progress_threshold(deal, stage)

    def progress_threshold(self, deal: Deal, stage: DealStage) -> float:
        """Percentage of stage work needed to satisfy approvals and conditions."""
        stages = self.registry.stages(deal.type)
        index = self.registry.stage_index(deal.type, stage)
        if index is None:
            return 100.0
        return (index + 1) / len(stages) * 100
