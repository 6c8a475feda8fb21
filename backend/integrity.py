"""
Referential integrity rules for PodPlanner reference data and projects.

These checks run before writes: they keep role/skill names unique, refuse
deletes that would orphan resources, keep engineer names and emails unique
regardless of case, and stop planned projects from starting in the past.
"""

from datetime import date
import logging

from sqlalchemy import func

from errors import ValidationError, ConflictError, DuplicateError, DependencyError

logger = logging.getLogger(__name__)


def get_models():
    """Import models - call this inside guard functions"""
    from models import Role, Skill, Resource, ResourceSkill
    return Role, Skill, Resource, ResourceSkill


def ensure_role_name_available(name, current_id=None):
    """Raise DuplicateError if another role already uses exactly this name"""
    Role, Skill, Resource, ResourceSkill = get_models()
    existing = Role.get_by_name(name)
    if existing and existing.id != current_id:
        raise DuplicateError("A role with this name already exists")


def ensure_skill_name_available(name, current_id=None):
    """Raise DuplicateError if another skill already uses exactly this name"""
    Role, Skill, Resource, ResourceSkill = get_models()
    existing = Skill.get_by_name(name)
    if existing and existing.id != current_id:
        raise DuplicateError("A skill with this name already exists")


def count_role_dependents(role):
    """Number of resources holding the role name"""
    Role, Skill, Resource, ResourceSkill = get_models()
    return Resource.query.filter(Resource.role == role.name).count()


def count_skill_dependents(skill):
    """Number of resource/skill join records pointing at the skill"""
    Role, Skill, Resource, ResourceSkill = get_models()
    return ResourceSkill.query.filter(ResourceSkill.skill_id == skill.id).count()


def ensure_role_deletable(role):
    """Raise DependencyError while any resource references the role by name"""
    count = count_role_dependents(role)
    if count > 0:
        logger.info(f"Delete of role '{role.name}' blocked by {count} resource(s)")
        raise DependencyError(
            f'Cannot delete role "{role.name}" because it is assigned to {count} engineer(s). '
            f'Please reassign them first.',
            count
        )


def ensure_skill_deletable(skill):
    """Raise DependencyError while any resource carries the skill"""
    count = count_skill_dependents(skill)
    if count > 0:
        logger.info(f"Delete of skill '{skill.name}' blocked by {count} resource(s)")
        raise DependencyError(
            f'Cannot delete skill "{skill.name}" because it is assigned to {count} engineer(s). '
            f'Please remove it from their profiles first.',
            count
        )


def ensure_resource_unique(name=None, email=None, current_id=None):
    """
    Enforce case-insensitive uniqueness of resource name and email.

    Args:
        name: Candidate name, skipped when None
        email: Candidate email, skipped when None or blank
        current_id: Id of the resource being updated, excluded from the check
    """
    Role, Skill, Resource, ResourceSkill = get_models()

    if name is not None and name.strip():
        query = Resource.query.filter(func.lower(Resource.name) == name.strip().lower())
        if current_id is not None:
            query = query.filter(Resource.id != current_id)
        if query.first():
            raise ConflictError("A resource with this name already exists")

    if email is not None and email.strip():
        query = Resource.query.filter(func.lower(Resource.email) == email.strip().lower())
        if current_id is not None:
            query = query.filter(Resource.id != current_id)
        if query.first():
            raise ConflictError("A resource with this email already exists")


def validate_planned_start_date(status, start_date, today=None):
    """
    A planned project cannot start before today.

    Args:
        status: Effective project status
        start_date: Effective start date (date or None)
        today: Reference day, defaults to the server's local date
    """
    if status != 'planned' or start_date is None:
        return

    today = today or date.today()
    if start_date < today:
        raise ValidationError("Planned projects cannot have a start date in the past", 'start_date')


def validate_project_schedule(changes, stored_status=None, stored_start_date=None, today=None):
    """
    Apply the planned start date rule to a create or partial update.

    The rule is evaluated on the effective values: the payload value when the
    field is part of the write, the stored value otherwise. Updates that touch
    neither status nor start_date are not re-validated.

    Args:
        changes: Dict of fields being written; start_date already parsed
        stored_status: Current status (None on create)
        stored_start_date: Current start date (None on create)
        today: Reference day for tests
    """
    if 'status' not in changes and 'start_date' not in changes:
        return

    effective_status = changes['status'] if 'status' in changes else stored_status
    effective_start = changes['start_date'] if 'start_date' in changes else stored_start_date
    validate_planned_start_date(effective_status, effective_start, today)
