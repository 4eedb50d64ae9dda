"""
Deal Type Registry: static per-type workflow configuration.

Each DealType maps to one DealTypeConfig holding its ordered stage list,
participant and document expectations, field validators and per-stage
requirement tables. Variation between deal types is data, not subclassing:
the evaluator, validator and executor read this table and stay uniform.

Key design decisions:
- Stage adjacency is defined on each type's own ordered list. Lease moves
  Evaluation (condition report) after Documentation; Partnership, Breeding
  and Training skip stages entirely.
- Field validators return an error message or None. stage_validations binds
  field paths to the stage whose entry they guard.
- Every shipped requirement is ADVISORY: missing documents, participants,
  approvals and conditions surface as warnings and never block a transition
  on their own. Only field validators (and requirements explicitly marked
  BLOCKING) stop a transition.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .models.enums import DealStage, DealType, ParticipantRole, RequirementType
from .models.validation import StageRequirement
from .utils import resolve_field_path

FieldValidator = Callable[[Any], str | None]


@dataclass(frozen=True)
class DealTypeConfig:
    """Workflow configuration for a single deal type."""

    deal_type: DealType
    title: str
    description: str
    stages: tuple[DealStage, ...]
    required_roles: tuple[ParticipantRole, ...] = ()
    recommended_roles: tuple[ParticipantRole, ...] = ()
    required_documents: tuple[str, ...] = ()
    recommended_documents: tuple[str, ...] = ()
    required_fields: tuple[str, ...] = ()
    validators: Mapping[str, FieldValidator] = field(default_factory=dict)
    stage_validations: Mapping[DealStage, tuple[str, ...]] = field(default_factory=dict)
    stage_requirements: Mapping[DealStage, tuple[StageRequirement, ...]] = field(
        default_factory=dict
    )
    processing_steps: tuple[str, ...] = ()

    def __post_init__(self):
        unknown = [s for s in self.stage_requirements if s not in self.stages]
        if unknown:
            raise ValueError(
                f'{self.deal_type.value}: requirements declared for stages outside '
                f'the workflow: {[s.value for s in unknown]}'
            )
        for stage, paths in self.stage_validations.items():
            missing = [p for p in paths if p not in self.validators]
            if missing:
                raise ValueError(
                    f'{self.deal_type.value}: no validator for {missing} ({stage.value})'
                )


# =============================================================================
# Field Validators
# =============================================================================


def positive_number(message: str) -> FieldValidator:
    def check(value: Any) -> str | None:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            return message
        return None

    return check


def non_empty_list(message: str) -> FieldValidator:
    def check(value: Any) -> str | None:
        if not isinstance(value, (list, tuple)) or len(value) == 0:
            return message
        return None

    return check


def present(message: str) -> FieldValidator:
    def check(value: Any) -> str | None:
        if value is None or value == '':
            return message
        return None

    return check


def has_key(key: str, message: str) -> FieldValidator:
    def check(value: Any) -> str | None:
        if not isinstance(value, Mapping) or not value.get(key):
            return message
        return None

    return check


# =============================================================================
# Requirement Builders
# =============================================================================


def _document(description: str) -> StageRequirement:
    return StageRequirement(type=RequirementType.DOCUMENT, description=description)


def _participant(description: str, role: ParticipantRole) -> StageRequirement:
    return StageRequirement(type=RequirementType.PARTICIPANT, description=description, role=role)


def _approval(description: str) -> StageRequirement:
    return StageRequirement(type=RequirementType.APPROVAL, description=description)


def _condition(description: str) -> StageRequirement:
    return StageRequirement(type=RequirementType.CONDITION, description=description)


S = DealStage
R = ParticipantRole


# =============================================================================
# Deal Type Configurations
# =============================================================================


FULL_SALE = DealTypeConfig(
    deal_type=DealType.FULL_SALE,
    title='Full Sale',
    description='Complete transfer of horse ownership',
    stages=(S.INITIATION, S.DISCUSSION, S.EVALUATION, S.DOCUMENTATION, S.CLOSING, S.COMPLETE),
    required_roles=(R.SELLER, R.BUYER),
    recommended_roles=(R.VETERINARIAN, R.INSPECTOR, R.TRANSPORTER),
    required_documents=(
        'Bill of sale',
        'Transfer of ownership',
        'Veterinary examination report',
        'Insurance certificate',
    ),
    recommended_documents=(
        'Medical history',
        'Performance records',
        'Registration papers',
        'Competition history',
    ),
    required_fields=(
        'terms.price',
        'terms.conditions',
        'logistics.transportation',
        'logistics.insurance',
    ),
    validators={
        'terms.price': positive_number('Price must be a positive number'),
        'logistics.insurance': has_key('provider', 'Insurance provider is required'),
    },
    stage_validations={
        S.DISCUSSION: ('terms.price',),
        S.DOCUMENTATION: ('logistics.insurance',),
    },
    stage_requirements={
        S.INITIATION: (
            _participant('Seller must be assigned', R.SELLER),
            _participant('Buyer must be assigned', R.BUYER),
            _document('Intent to purchase'),
        ),
        S.DISCUSSION: (
            _condition('Sale price must be agreed'),
            _condition('Payment terms must be defined'),
            _document('Initial sales agreement'),
        ),
        S.EVALUATION: (
            _participant('Veterinarian must be assigned', R.VETERINARIAN),
            _document('Veterinary examination report'),
            _document('Pre-purchase examination report'),
            _approval('Buyer approval of examination results'),
        ),
        S.DOCUMENTATION: (
            _document('Bill of sale'),
            _document('Transfer of ownership'),
            _document('Insurance certificate'),
            _approval('Legal review completion'),
        ),
        S.CLOSING: (
            _document('Signed bill of sale'),
            _document('Payment confirmation'),
            _approval('Seller final approval'),
            _approval('Buyer final approval'),
        ),
        S.COMPLETE: (
            _document('Completed transfer documentation'),
            _document('Final payment confirmation'),
            _approval('Registration transfer confirmation'),
        ),
    },
    processing_steps=(
        'Initial agreement on price and terms',
        'Veterinary inspection',
        'Insurance arrangement',
        'Document preparation',
        'Payment processing',
        'Ownership transfer',
    ),
)

LEASE = DealTypeConfig(
    deal_type=DealType.LEASE,
    title='Lease Agreement',
    description='Temporary use arrangement',
    stages=(S.INITIATION, S.DISCUSSION, S.DOCUMENTATION, S.EVALUATION, S.CLOSING, S.COMPLETE),
    required_roles=(R.SELLER, R.BUYER),
    recommended_roles=(R.VETERINARIAN, R.TRAINER),
    required_documents=('Final lease agreement', 'Insurance certificates', 'Current condition report'),
    recommended_documents=('Training schedule', 'Maintenance requirements', 'Usage guidelines'),
    required_fields=('terms.duration', 'terms.start_date', 'terms.end_date', 'terms.conditions'),
    validators={
        'terms.duration': positive_number('Duration must be specified'),
        'terms.start_date': present('Start date is required'),
    },
    stage_validations={
        S.DISCUSSION: ('terms.duration', 'terms.start_date'),
    },
    stage_requirements={
        S.INITIATION: (
            _participant('Lessor must be assigned', R.SELLER),
            _participant('Lessee must be assigned', R.BUYER),
            _document('Initial lease terms'),
        ),
        S.DISCUSSION: (
            _condition('Lease duration must be specified'),
            _condition('Monthly payment terms agreed'),
            _document('Draft lease agreement'),
        ),
        S.DOCUMENTATION: (
            _document('Final lease agreement'),
            _document('Insurance certificates'),
            _document('Payment schedule'),
        ),
        S.EVALUATION: (
            _document('Current condition report'),
            _document('Insurance requirements'),
            _approval('Facility inspection report'),
        ),
        S.CLOSING: (
            _document('Signed lease agreement'),
            _document('First payment confirmation'),
            _approval('Both parties final approval'),
        ),
        S.COMPLETE: (
            _document('Handover documentation'),
            _approval('Property condition confirmation'),
        ),
    },
    processing_steps=(
        'Agreement on lease terms',
        'Insurance verification',
        'Condition documentation',
        'Schedule arrangement',
        'Document signing',
    ),
)

PARTNERSHIP = DealTypeConfig(
    deal_type=DealType.PARTNERSHIP,
    title='Partnership Agreement',
    description='Shared ownership arrangement',
    stages=(S.INITIATION, S.DISCUSSION, S.DOCUMENTATION, S.CLOSING, S.COMPLETE),
    required_roles=(R.SELLER, R.BUYER),
    recommended_roles=(R.TRAINER, R.VETERINARIAN),
    required_documents=('Partnership agreement', 'Insurance documentation', 'Management plan'),
    recommended_documents=('Cost sharing agreement', 'Exit strategy'),
    required_fields=('terms.conditions', 'terms.financial_terms', 'logistics.management'),
    validators={
        'terms.conditions': non_empty_list('Partnership terms must be specified'),
    },
    stage_validations={
        S.DISCUSSION: ('terms.conditions',),
    },
    stage_requirements={
        S.INITIATION: (
            _participant('All partners assigned', R.BUYER),
            _document('Partnership proposal'),
            _condition('Initial share distribution'),
        ),
        S.DISCUSSION: (
            _condition('Partnership terms agreed'),
            _condition('Financial responsibilities defined'),
            _document('Draft partnership agreement'),
        ),
        S.DOCUMENTATION: (
            _document('Partnership agreement'),
            _document('Insurance documentation'),
            _document('Management plan'),
        ),
        S.CLOSING: (
            _document('Signed partnership agreement'),
            _document('Initial payment confirmations'),
            _approval('All partners final approval'),
        ),
        S.COMPLETE: (
            _document('Partnership registration'),
            _document('Bank account setup'),
            _approval('Operating procedures confirmation'),
        ),
    },
    processing_steps=(
        'Terms negotiation',
        'Financial planning',
        'Management structure',
        'Document preparation',
        'Partnership execution',
    ),
)

BREEDING = DealTypeConfig(
    deal_type=DealType.BREEDING,
    title='Breeding Contract',
    description='Breeding rights agreement',
    stages=(S.INITIATION, S.EVALUATION, S.DOCUMENTATION, S.CLOSING, S.COMPLETE),
    required_roles=(R.SELLER, R.BUYER, R.VETERINARIAN),
    recommended_roles=(R.INSPECTOR,),
    required_documents=('Final breeding contract', 'Health certificates', 'Registration papers'),
    recommended_documents=('Genetic testing results', 'Performance records', 'Breeding history'),
    required_fields=('terms.conditions', 'terms.start_date', 'logistics.location'),
    validators={
        'terms.conditions': non_empty_list('Breeding conditions must be specified'),
    },
    stage_validations={
        S.DOCUMENTATION: ('terms.conditions',),
    },
    stage_requirements={
        S.INITIATION: (
            _participant('Stallion owner assigned', R.SELLER),
            _participant('Mare owner assigned', R.BUYER),
            _document('Initial breeding request'),
        ),
        S.EVALUATION: (
            _participant('Veterinarian assigned', R.VETERINARIAN),
            _document('Mare health certificate'),
            _document('Stallion breeding soundness'),
        ),
        S.DOCUMENTATION: (
            _document('Final breeding contract'),
            _document('Health certificates'),
            _document('Insurance documentation'),
        ),
        S.CLOSING: (
            _document('Signed breeding contract'),
            _document('Payment confirmation'),
            _approval('Final veterinary clearance'),
        ),
        S.COMPLETE: (
            _document('Breeding confirmation'),
            _document('Live foal guarantee terms'),
        ),
    },
    processing_steps=(
        'Health verification',
        'Breeding terms agreement',
        'Schedule coordination',
        'Document preparation',
        'Contract signing',
    ),
)

TRAINING = DealTypeConfig(
    deal_type=DealType.TRAINING,
    title='Training Agreement',
    description='Professional training arrangement',
    stages=(S.INITIATION, S.DISCUSSION, S.DOCUMENTATION, S.COMPLETE),
    required_roles=(R.SELLER, R.TRAINER),
    recommended_roles=(R.VETERINARIAN,),
    required_documents=('Training agreement', 'Liability release', 'Payment schedule'),
    recommended_documents=('Training schedule', 'Progress metrics', 'Health requirements'),
    required_fields=('terms.duration', 'terms.start_date', 'terms.goals'),
    validators={
        'terms.duration': positive_number('Training duration must be specified'),
        'terms.goals': non_empty_list('Training goals must be specified'),
    },
    stage_validations={
        S.DISCUSSION: ('terms.duration', 'terms.goals'),
    },
    stage_requirements={
        S.INITIATION: (
            _participant('Owner assigned', R.SELLER),
            _participant('Trainer assigned', R.TRAINER),
            _document('Training request form'),
        ),
        S.DISCUSSION: (
            _condition('Training goals defined'),
            _condition('Training duration agreed'),
            _document('Training program outline'),
        ),
        S.DOCUMENTATION: (
            _document('Training agreement'),
            _document('Liability release'),
            _document('Payment schedule'),
        ),
        S.COMPLETE: (
            _document('Training completion report'),
            _document('Progress evaluation'),
            _approval('Owner satisfaction confirmation'),
        ),
    },
    processing_steps=(
        'Goals definition',
        'Schedule planning',
        'Terms agreement',
        'Program initiation',
    ),
)


# =============================================================================
# Registry
# =============================================================================


class DealTypeRegistry:
    """
    Read-only lookup over DealTypeConfig entries.

    get_config() is total over the registered types; asking for a type that
    was never registered is a programming error and raises KeyError.
    """

    def __init__(self, configs: Mapping[DealType, DealTypeConfig]):
        self._configs = MappingProxyType(dict(configs))

    def __contains__(self, deal_type: DealType) -> bool:
        return deal_type in self._configs

    def deal_types(self) -> list[DealType]:
        return list(self._configs)

    def get_config(self, deal_type: DealType) -> DealTypeConfig:
        return self._configs[deal_type]

    def stages(self, deal_type: DealType) -> tuple[DealStage, ...]:
        return self.get_config(deal_type).stages

    def stage_index(self, deal_type: DealType, stage: DealStage) -> int | None:
        """Position of stage in the type's ordered list, or None if absent."""
        stages = self.stages(deal_type)
        return stages.index(stage) if stage in stages else None

    def has_stage(self, deal_type: DealType, stage: DealStage) -> bool:
        return stage in self.stages(deal_type)

    def require_stage_index(self, deal_type: DealType, stage: DealStage) -> int:
        """
        Position of stage in the type's ordered list.

        Raises:
            ValueError: stage is not part of the type's workflow
        """
        index = self.stage_index(deal_type, stage)
        if index is None:
            raise ValueError(
                f'{stage.value} is not a stage of {self.get_config(deal_type).title} deals'
            )
        return index

    def previous_stage(self, deal_type: DealType, stage: DealStage) -> DealStage | None:
        """Stage before stage, None at the first stage. ValueError if stage is foreign."""
        index = self.require_stage_index(deal_type, stage)
        if index == 0:
            return None
        return self.stages(deal_type)[index - 1]

    def next_stage(self, deal_type: DealType, stage: DealStage) -> DealStage | None:
        """Stage after stage, None at the last stage. ValueError if stage is foreign."""
        stages = self.stages(deal_type)
        index = self.require_stage_index(deal_type, stage)
        if index + 1 >= len(stages):
            return None
        return stages[index + 1]

    def get_stage_requirements(
        self, deal_type: DealType, stage: DealStage
    ) -> tuple[StageRequirement, ...]:
        return self.get_config(deal_type).stage_requirements.get(stage, ())

    def get_stage_validators(
        self, deal_type: DealType, stage: DealStage
    ) -> dict[str, FieldValidator]:
        """Field path -> validator for the checks guarding entry into stage."""
        config = self.get_config(deal_type)
        return {
            path: config.validators[path]
            for path in config.stage_validations.get(stage, ())
        }

    def get_participant_requirements(self, deal_type: DealType) -> dict[str, list[ParticipantRole]]:
        config = self.get_config(deal_type)
        return {
            'required': list(config.required_roles),
            'recommended': list(config.recommended_roles),
        }

    def get_required_documents(self, deal_type: DealType) -> list[str]:
        return list(self.get_config(deal_type).required_documents)

    def validate_deal_type(self, deal_type: DealType, data: Mapping[str, Any]) -> list[str]:
        """
        Check a deal's field data against its type's required fields and validators.

        Args:
            deal_type: Deal type whose configuration applies
            data: Mapping with 'terms' and 'logistics' keys (see Deal.field_data)

        Returns:
            List of human-readable problems, empty when the data is complete
        """
        config = self.get_config(deal_type)
        errors = []
        for path in config.required_fields:
            value = resolve_field_path(data, path)
            if value is None or value == '':
                errors.append(f'{path} is required for {config.title}')
        for path, validator in config.validators.items():
            error = validator(resolve_field_path(data, path))
            if error:
                errors.append(error)
        return errors

    def get_next_steps(self, deal_type: DealType, stage: DealStage) -> list[str]:
        config = self.get_config(deal_type)
        index = self.stage_index(deal_type, stage)
        if index is None or index == len(config.stages) - 1:
            return []
        next_stage = config.stages[index + 1]
        return [
            f'Complete current {stage.value} stage requirements',
            f'Prepare for {next_stage.value} stage',
            *config.processing_steps[index + 1:index + 3],
        ]


DEAL_TYPE_CONFIGS: Mapping[DealType, DealTypeConfig] = MappingProxyType({
    config.deal_type: config
    for config in (FULL_SALE, LEASE, PARTNERSHIP, BREEDING, TRAINING)
})

# Singleton registry instance
default_registry = DealTypeRegistry(DEAL_TYPE_CONFIGS)
