"""
Requirement and validation result models.

StageRequirement is declarative configuration living in the registry; the
evaluator and validator turn a deal snapshot plus caller-supplied progress
into the result types below. None of these are stored on a deal.
"""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import DealStage, ParticipantRole, RequirementPolicy, RequirementType


class StageRequirement(BaseModel):
    """
    A declared condition for entering a stage of a deal type.

    For document requirements, document_type defaults to description. For
    participant requirements, role names the role that must be present.
    """

    model_config = ConfigDict(frozen=True)

    type: RequirementType
    description: str
    role: ParticipantRole | None = None
    document_type: str | None = None
    policy: RequirementPolicy = RequirementPolicy.ADVISORY

    @property
    def matches_document_type(self) -> str:
        return self.document_type or self.description

    @property
    def is_blocking(self) -> bool:
        return self.policy == RequirementPolicy.BLOCKING


class ProgressSignal(BaseModel):
    """
    Caller-supplied progress data for validation.

    stage_progress holds the percentage (0-100) of stage-specific work done;
    it satisfies approval and condition requirements. field_values overrides
    deal field paths (e.g. 'terms.price') when running custom validators.
    """

    stage_progress: dict[DealStage, float] = Field(default_factory=dict)
    field_values: dict[str, Any] = Field(default_factory=dict)

    def progress_for(self, stage: DealStage) -> float:
        return self.stage_progress.get(stage, 0.0)


@dataclass(frozen=True)
class RequirementEvaluation:
    """Which of a stage's requirements are met by a deal snapshot."""

    stage: DealStage
    satisfied: tuple[StageRequirement, ...] = ()
    missing: tuple[StageRequirement, ...] = ()

    @property
    def total(self) -> int:
        return len(self.satisfied) + len(self.missing)

    @property
    def all_satisfied(self) -> bool:
        return not self.missing


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of validating a proposed stage transition.

    Blocking problems land in validation_errors and force can_progress to
    False; advisory problems land in warnings. Both are always returned so a
    UI can render them side by side.
    """

    target_stage: DealStage
    can_progress: bool
    requirements: tuple[StageRequirement, ...] = ()
    missing_requirements: tuple[StageRequirement, ...] = ()
    warnings: tuple[str, ...] = ()
    validation_errors: tuple[str, ...] = ()
    field_errors: dict[str, str] = field(default_factory=dict)
    adjacency_error: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'target_stage': self.target_stage.value,
            'can_progress': self.can_progress,
            'requirements': [r.model_dump(mode='json') for r in self.requirements],
            'missing_requirements': [r.description for r in self.missing_requirements],
            'warnings': list(self.warnings),
            'validation_errors': list(self.validation_errors),
            'field_errors': dict(self.field_errors),
        }
