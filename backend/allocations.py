from collections import defaultdict
import logging

from sqlalchemy.orm import joinedload

from errors import (
    ValidationError, NotFoundError, ConflictError,
    coerce_percentage, coerce_month, coerce_year, coerce_int, safe_db_operation
)

logger = logging.getLogger(__name__)

MONTHS = list(range(1, 13))

# Marks a keyword argument that was not supplied to a partial update
UNSET = object()


def get_models_and_db():
    """Import models and db - call this inside allocation functions"""
    from db import db
    from models import ProjectAllocation, Resource, Project
    return db, ProjectAllocation, Resource, Project


def _enriched_query():
    db, ProjectAllocation, Resource, Project = get_models_and_db()
    return ProjectAllocation.query.options(
        joinedload(ProjectAllocation.resource),
        joinedload(ProjectAllocation.project)
    )


def _require_id(value, field_name, label):
    if value is None or (isinstance(value, str) and value.strip() == ''):
        raise ValidationError("Resource ID and Project ID are required", field_name)
    return coerce_int(value, field_name, 1, message=f"{label} ID must be a valid id")


def _normalize_notes(notes):
    return notes if notes else None


def find_allocation(resource_id, project_id, month, year):
    """Get the allocation for one resource/project/month/year, if any"""
    db, ProjectAllocation, Resource, Project = get_models_and_db()
    return ProjectAllocation.query.filter_by(
        resource_id=resource_id, project_id=project_id, month=month, year=year
    ).first()


def list_allocations(year=None):
    """
    Get all allocations ordered by year then month.

    Args:
        year: Optional year filter, numeric-like values are accepted

    Returns:
        list: ProjectAllocation objects with resource and project loaded
    """
    db, ProjectAllocation, Resource, Project = get_models_and_db()

    query = _enriched_query()
    if year is not None and year != '':
        query = query.filter(ProjectAllocation.year == coerce_year(year))

    return query.order_by(ProjectAllocation.year, ProjectAllocation.month, ProjectAllocation.id).all()


def get_allocation(allocation_id):
    """Get an allocation by id or raise NotFoundError"""
    db, ProjectAllocation, Resource, Project = get_models_and_db()

    allocation = db.session.get(ProjectAllocation, allocation_id)
    if not allocation:
        raise NotFoundError("Allocation", allocation_id)
    return allocation


def validate_allocation_input(resource_id, project_id, percentage, month, year):
    """
    Coerce and validate the fields of a new allocation.

    Returns:
        tuple: (resource_id, project_id, percentage, month, year) as numbers
    """
    resource_id = _require_id(resource_id, 'resource_id', 'Resource')
    project_id = _require_id(project_id, 'project_id', 'Project')
    percentage = 0.0 if percentage is None else coerce_percentage(percentage)
    month = coerce_month(month)
    if year is None or year == '':
        raise ValidationError("Year is required", 'year')
    year = coerce_year(year)
    return resource_id, project_id, percentage, month, year


def create_allocation(resource_id, project_id, percentage=None, month=None, year=None, notes=None):
    """
    Create one allocation row.

    Raises:
        ValidationError: missing ids, percentage outside [0, 100] or not a
            number, month outside [1, 12], missing year
        NotFoundError: resource or project does not exist
        ConflictError: the resource already has a row for this project/month/year
    """
    db, ProjectAllocation, Resource, Project = get_models_and_db()

    resource_id, project_id, percentage, month, year = validate_allocation_input(
        resource_id, project_id, percentage, month, year
    )

    if not db.session.get(Resource, resource_id):
        raise NotFoundError("Resource", resource_id)
    if not db.session.get(Project, project_id):
        raise NotFoundError("Project", project_id)

    if find_allocation(resource_id, project_id, month, year):
        raise ConflictError(f"An allocation already exists for this resource and project in {month}/{year}")

    allocation = ProjectAllocation(
        resource_id=resource_id,
        project_id=project_id,
        percentage=percentage,
        month=month,
        year=year,
        notes=_normalize_notes(notes)
    )

    safe_db_operation(lambda: (db.session.add(allocation), db.session.commit())[1], "Failed to create allocation")

    logger.info(f"Allocation created: resource {resource_id} on project {project_id} "
                f"for {month}/{year} at {percentage}%")
    return allocation


def update_allocation(allocation_id, percentage=UNSET, notes=UNSET):
    """
    Partially update an allocation. Only supplied fields change.

    Raises:
        NotFoundError: unknown id
        ValidationError: percentage outside [0, 100] or not a number
    """
    db, ProjectAllocation, Resource, Project = get_models_and_db()

    allocation = get_allocation(allocation_id)

    if percentage is not UNSET:
        allocation.percentage = coerce_percentage(percentage)
    if notes is not UNSET:
        allocation.notes = _normalize_notes(notes)

    safe_db_operation(db.session.commit, "Failed to update allocation")
    return allocation


def delete_allocation(allocation_id):
    """Delete an allocation. Allocations have no dependents, so no guard applies."""
    db, ProjectAllocation, Resource, Project = get_models_and_db()

    allocation = get_allocation(allocation_id)
    safe_db_operation(lambda: (db.session.delete(allocation), db.session.commit())[1], "Failed to delete allocation")


def expand_to_full_year(resource_id, project_id, year):
    """
    Pre-populate the editing grid when a resource joins a project.

    Creates a 0% row for every month of the year that has no row yet for
    the pair. Existing rows are left untouched.

    Returns:
        list: The newly created ProjectAllocation objects
    """
    db, ProjectAllocation, Resource, Project = get_models_and_db()

    resource_id, project_id, _, _, year = validate_allocation_input(resource_id, project_id, 0, 1, year)

    if not db.session.get(Resource, resource_id):
        raise NotFoundError("Resource", resource_id)
    if not db.session.get(Project, project_id):
        raise NotFoundError("Project", project_id)

    existing_months = {
        allocation.month for allocation in ProjectAllocation.query.filter_by(
            resource_id=resource_id, project_id=project_id, year=year
        )
    }

    created = [
        ProjectAllocation(resource_id=resource_id, project_id=project_id, month=month, year=year, percentage=0.0)
        for month in MONTHS if month not in existing_months
    ]

    def add_all():
        db.session.add_all(created)
        db.session.commit()

    safe_db_operation(add_all, "Failed to expand allocations to the full year")

    logger.info(f"Expanded resource {resource_id} on project {project_id} for {year}: "
                f"{len(created)} month(s) created")
    return created


def remove_from_year(resource_id, project_id, year):
    """
    Detach a resource from a project for one year.

    Deletes the pair's allocations for that year only; other years are kept.

    Returns:
        int: Number of allocations deleted
    """
    db, ProjectAllocation, Resource, Project = get_models_and_db()

    resource_id, project_id, _, _, year = validate_allocation_input(resource_id, project_id, 0, 1, year)

    allocations = ProjectAllocation.query.filter_by(
        resource_id=resource_id, project_id=project_id, year=year
    ).all()

    def delete_all():
        for allocation in allocations:
            db.session.delete(allocation)
        db.session.commit()

    safe_db_operation(delete_all, "Failed to remove allocations")

    logger.info(f"Removed resource {resource_id} from project {project_id} for {year}: "
                f"{len(allocations)} allocation(s) deleted")
    return len(allocations)


def _placeholder(sample, month, year):
    return {
        'id': None,
        'resource_id': sample.resource_id,
        'resource_name': sample.resource.name,
        'resource_role': sample.resource.role,
        'resource_seniority': sample.resource.seniority,
        'project_id': sample.project_id,
        'project_name': sample.project.name,
        'percentage': 0.0,
        'month': month,
        'year': year,
        'notes': None
    }


def build_year_grid(year):
    """
    Build the twelve-month editing grid for a year.

    Every resource/project pair that has an allocation in any year gets a row
    for the requested year. Months without a stored allocation are filled
    with a 0% placeholder whose id is None.

    Returns:
        list: Rows ordered by resource name then project name, each with
        twelve cells
    """
    year = coerce_year(year)

    samples = {}
    stored = {}
    for allocation in list_allocations():
        pair = (allocation.resource_id, allocation.project_id)
        samples.setdefault(pair, allocation)
        if allocation.year == year:
            stored[pair + (allocation.month,)] = allocation

    rows = []
    for pair, sample in samples.items():
        cells = []
        for month in MONTHS:
            allocation = stored.get(pair + (month,))
            cells.append(allocation.to_dict() if allocation else _placeholder(sample, month, year))
        rows.append({
            'resource_id': sample.resource_id,
            'resource_name': sample.resource.name,
            'project_id': sample.project_id,
            'project_name': sample.project.name,
            'year': year,
            'cells': cells
        })

    rows.sort(key=lambda row: (row['resource_name'].lower(), row['project_name'].lower()))
    return rows


def monthly_totals(year, by='resource'):
    """
    Sum allocation percentages per month for one year.

    Args:
        year: Year to aggregate
        by: 'resource' to total each engineer across projects, 'project' to
            total each project across engineers

    Returns:
        list: One row per resource (or project) with twelve monthly totals.
        A month is over-allocated when its total exceeds 100%.
    """
    db, ProjectAllocation, Resource, Project = get_models_and_db()

    if by not in ('resource', 'project'):
        raise ValidationError("by must be one of: resource, project", 'by')

    year = coerce_year(year)
    totals = defaultdict(lambda: defaultdict(float))
    breakdown = defaultdict(lambda: defaultdict(dict))

    for allocation in list_allocations(year):
        if by == 'resource':
            key, other = allocation.resource_id, allocation.project.name
        else:
            key, other = allocation.project_id, allocation.resource.name
        totals[key][allocation.month] += allocation.percentage
        breakdown[key][allocation.month][other] = allocation.percentage

    model = Resource if by == 'resource' else Project
    ids = set(totals.keys())
    entities = model.query.filter(
        (model.status == 'active') | (model.id.in_(ids))
    ).order_by(model.name).all()

    rows = []
    for entity in entities:
        months = []
        for month in MONTHS:
            total = totals[entity.id][month]
            months.append({
                'month': month,
                'total': total,
                'over_allocated': total > 100,
                'breakdown': breakdown[entity.id][month]
            })
        rows.append({
            f'{by}_id': entity.id,
            'name': entity.name,
            'months': months
        })
    return rows
