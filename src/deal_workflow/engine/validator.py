"""
Transition validation: can this deal move to that stage right now?

Three checks run in order and all of them always run, so one result carries
every problem at once:
1. Adjacency within the deal type's ordered stage list
2. Stage requirements (advisory -> warnings, blocking -> errors)
3. Custom field validators bound to the target stage

Validation is pure. Status is not consulted here; the executor gates on it.
"""

from ..models.deal import Deal
from ..models.enums import DealStage
from ..models.validation import ProgressSignal, ValidationResult
from ..registry import DealTypeRegistry, default_registry
from ..utils import resolve_field_path
from .evaluator import RequirementEvaluator


class TransitionValidator:
    """Validates proposed stage transitions against the registry."""

    def __init__(
        self,
        registry: DealTypeRegistry | None = None,
        evaluator: RequirementEvaluator | None = None,
    ):
        self.registry = registry or default_registry
        self.evaluator = evaluator or RequirementEvaluator(self.registry)

    def validate(
        self,
        deal: Deal,
        target_stage: DealStage,
        progress: ProgressSignal | None = None,
    ) -> ValidationResult:
        """
        Validate moving deal to target_stage.

        Args:
            deal: Deal snapshot
            target_stage: Proposed stage
            progress: Caller-supplied progress and field overrides

        Returns:
            ValidationResult; can_progress is False when any blocking error exists
        """
        progress = progress or ProgressSignal()
        errors: list[str] = []
        warnings: list[str] = []

        adjacency_error = self.check_adjacency(deal, target_stage)
        if adjacency_error:
            errors.append(adjacency_error)

        evaluation = self.evaluator.evaluate(deal, target_stage, progress)
        for requirement in evaluation.missing:
            if requirement.is_blocking:
                errors.append(requirement.description)
            else:
                warnings.append(requirement.description)

        field_errors = self.check_fields(deal, target_stage, progress)
        for path in field_errors:
            errors.append(f"{path.rsplit('.', 1)[-1]} requirement not met")

        return ValidationResult(
            target_stage=target_stage,
            can_progress=not errors,
            requirements=evaluation.satisfied + evaluation.missing,
            missing_requirements=evaluation.missing,
            warnings=tuple(warnings),
            validation_errors=tuple(errors),
            field_errors=field_errors,
            adjacency_error=adjacency_error is not None,
        )

    def check_adjacency(self, deal: Deal, target_stage: DealStage) -> str | None:
        """Return an error message unless target_stage neighbours the current stage."""
        current = self.registry.stage_index(deal.type, deal.stage)
        target = self.registry.stage_index(deal.type, target_stage)
        if current is None:
            return f'{deal.stage.value} is not a stage of {deal.type.value} deals'
        if target is None:
            return f'{target_stage.value} is not a stage of {deal.type.value} deals'
        if abs(target - current) != 1:
            return (
                f'Cannot move from {deal.stage.value} to {target_stage.value}: '
                'stages must be adjacent'
            )
        return None

    def check_fields(
        self,
        deal: Deal,
        target_stage: DealStage,
        progress: ProgressSignal,
    ) -> dict[str, str]:
        """
        Run the field validators guarding entry into target_stage.

        Values come from progress.field_values when the path is present there,
        otherwise from the deal's terms and logistics.

        Returns:
            Field path -> validator message, only for failing fields
        """
        data = deal.field_data()
        failures = {}
        for path, validator in self.registry.get_stage_validators(deal.type, target_stage).items():
            if path in progress.field_values:
                value = progress.field_values[path]
            else:
                value = resolve_field_path(data, path)
            message = validator(value)
            if message:
                failures[path] = message
        return failures

