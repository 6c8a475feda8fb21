from flask import Blueprint, request, jsonify, current_app
from datetime import date

from errors import PodPlannerError, ValidationError, coerce_year, coerce_month, coerce_int, coerce_percentage
import allocations as allocation_engine
import database
import engine
from grid import GridCell, GridEditSession, EngineWriter

api = Blueprint('api', __name__)


def get_models():
    """Import models and db - call this inside route functions"""
    from db import db
    from models import ProjectAllocation
    return db, ProjectAllocation


# Error handling decorator
def handle_errors(f):
    """Decorator to handle common errors and return JSON responses"""
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except PodPlannerError:
            # These are already handled by the global error handler
            raise
        except Exception as e:
            current_app.logger.error(f"Unexpected error in {f.__name__}: {str(e)}")
            raise  # Let the global error handler deal with it
    wrapper.__name__ = f.__name__
    return wrapper


def get_json_body():
    """Request body as a dict; a missing or malformed body is an empty payload"""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def year_arg(default_current=False):
    year = request.args.get('year')
    if year in (None, ''):
        return date.today().year if default_current else None
    return coerce_year(year)


# ALLOCATION ENDPOINTS

@api.route('/allocations', methods=['GET'])
@handle_errors
def get_allocations():
    """Get all allocations, optionally for one year"""
    records = allocation_engine.list_allocations(year_arg())
    return jsonify([allocation.to_dict() for allocation in records])


@api.route('/allocations', methods=['POST'])
@handle_errors
def create_allocation():
    """Create a monthly allocation"""
    data = get_json_body()

    allocation = allocation_engine.create_allocation(
        data.get('resource_id'),
        data.get('project_id'),
        percentage=data.get('percentage'),
        month=data.get('month'),
        year=data.get('year'),
        notes=data.get('notes')
    )

    return jsonify(allocation.to_dict()), 201


@api.route('/allocations/<int:allocation_id>', methods=['GET'])
@handle_errors
def get_allocation(allocation_id):
    """Get a specific allocation by ID"""
    return jsonify(allocation_engine.get_allocation(allocation_id).to_dict())


@api.route('/allocations/<int:allocation_id>', methods=['PATCH'])
@handle_errors
def update_allocation(allocation_id):
    """Update the percentage and/or notes of an allocation"""
    data = get_json_body()

    changes = {field: data[field] for field in ('percentage', 'notes') if field in data}
    allocation = allocation_engine.update_allocation(allocation_id, **changes)

    return jsonify(allocation.to_dict())


@api.route('/allocations/<int:allocation_id>', methods=['DELETE'])
@handle_errors
def delete_allocation(allocation_id):
    """Delete an allocation"""
    allocation_engine.delete_allocation(allocation_id)
    return jsonify({'message': 'Allocation deleted successfully'})


@api.route('/allocations/expand', methods=['POST'])
@handle_errors
def expand_allocations():
    """Add a resource to a project for every month of a year"""
    data = get_json_body()

    created = allocation_engine.expand_to_full_year(data.get('resource_id'), data.get('project_id'), data.get('year'))

    return jsonify({
        'created': [allocation.to_dict() for allocation in created],
        'count': len(created)
    }), 201


@api.route('/allocations/remove', methods=['POST'])
@handle_errors
def remove_allocations():
    """Remove a resource from a project for one year"""
    data = get_json_body()

    deleted = allocation_engine.remove_from_year(data.get('resource_id'), data.get('project_id'), data.get('year'))

    return jsonify({'message': f'{deleted} allocation(s) removed', 'count': deleted})


@api.route('/allocations/grid', methods=['GET'])
@handle_errors
def get_allocation_grid():
    """Get the twelve-month grid for a year, with placeholders for empty months"""
    year = year_arg(default_current=True)
    return jsonify({'year': year, 'rows': allocation_engine.build_year_grid(year)})


@api.route('/allocations/totals', methods=['GET'])
@handle_errors
def get_allocation_totals():
    """Get monthly allocation totals per resource or per project"""
    year = year_arg(default_current=True)
    by = request.args.get('by', 'resource')
    return jsonify({'year': year, 'by': by, 'rows': allocation_engine.monthly_totals(year, by)})


@api.route('/allocations/grid/reconcile', methods=['POST'])
@handle_errors
def reconcile_allocation_grid():
    """
    Save an edited grid row.

    Body: {"parent_key": ..., "cells": [{"item_name", "month", "resource_id",
    "project_id", "year", "allocation_id", "value"}]}. The persisted
    percentage of each existing allocation is read from the database, so
    only cells whose value really changed are written.
    """
    db, ProjectAllocation = get_models()
    data = get_json_body()

    cells = data.get('cells')
    if not isinstance(cells, list):
        raise ValidationError("cells must be a list", 'cells')

    # Every cell is checked before the first write
    snapshot = []
    values = []
    for entry in cells:
        if not isinstance(entry, dict) or 'item_name' not in entry or 'month' not in entry:
            raise ValidationError("Each cell needs an item_name and a month", 'cells')

        month = coerce_month(entry['month'])
        allocation_id = entry.get('allocation_id')
        if allocation_id is not None:
            allocation_id = coerce_int(allocation_id, 'allocation_id', 1, message="allocation_id must be a valid id")

        persisted = entry.get('percentage')
        persisted = 0.0 if persisted is None else coerce_percentage(persisted)
        if allocation_id is not None:
            stored = db.session.get(ProjectAllocation, allocation_id)
            if stored:
                persisted = stored.percentage

        cell = GridCell(
            item_name=entry['item_name'],
            month=month,
            resource_id=entry.get('resource_id'),
            project_id=entry.get('project_id'),
            year=entry.get('year'),
            allocation_id=allocation_id,
            percentage=persisted
        )
        snapshot.append(cell)
        values.append((cell.item_name, cell.month, entry.get('value', cell.value)))

    # Release the request session before worker threads write
    db.session.commit()

    session = GridEditSession(
        EngineWriter(current_app._get_current_object()),
        max_workers=current_app.config.get('GRID_MAX_WORKERS', 4)
    )
    session.enter(data.get('parent_key'), snapshot)
    for item_name, month, value in values:
        session.update_value(item_name, month, value)
    outcomes = session.exit()

    db.session.expire_all()

    return jsonify({
        'outcomes': [outcome.to_dict() for outcome in outcomes],
        'created': sum(1 for outcome in outcomes if outcome.action == 'created'),
        'updated': sum(1 for outcome in outcomes if outcome.action == 'updated'),
        'failed': sum(1 for outcome in outcomes if not outcome.ok)
    })


# BUDGET AND DASHBOARD ENDPOINTS

@api.route('/budget', methods=['GET'])
@handle_errors
def get_budget():
    """Get the budget report of every project, most severe first"""
    return jsonify(engine.budget_report())


@api.route('/budget/summary', methods=['GET'])
@handle_errors
def get_budget_summary():
    """Get the budget report together with its summary counts"""
    reports = engine.budget_report()
    return jsonify({'summary': engine.budget_summary(reports), 'projects': reports})


@api.route('/stats', methods=['GET'])
@handle_errors
def get_stats():
    """Get dashboard statistics"""
    return jsonify(engine.allocation_stats())


# PROJECT ENDPOINTS

@api.route('/projects', methods=['GET'])
@handle_errors
def get_projects():
    """Get all projects with their pods and allocations"""
    return jsonify([project.to_dict() for project in database.get_all_projects()])


@api.route('/projects', methods=['POST'])
@handle_errors
def create_project():
    """Create a new project"""
    project = database.create_project(get_json_body())
    return jsonify(project.to_dict()), 201


@api.route('/projects/<int:project_id>', methods=['GET'])
@handle_errors
def get_project_by_id(project_id):
    """Get a specific project by ID"""
    return jsonify(database.get_project(project_id).to_dict())


@api.route('/projects/<int:project_id>', methods=['PATCH'])
@handle_errors
def update_project(project_id):
    """Update a project; pods and allocations, when given, replace the current ones"""
    project = database.update_project(project_id, get_json_body())
    return jsonify(project.to_dict())


@api.route('/projects/<int:project_id>', methods=['DELETE'])
@handle_errors
def delete_project(project_id):
    """Delete a project and its allocations"""
    database.delete_project(project_id)
    return jsonify({'message': 'Project deleted successfully'})


# ROLE ENDPOINTS

@api.route('/roles', methods=['GET'])
@handle_errors
def get_roles():
    """Get all roles"""
    return jsonify([role.to_dict() for role in database.get_all_roles()])


@api.route('/roles', methods=['POST'])
@handle_errors
def create_role():
    """Create a new role"""
    role = database.create_role(get_json_body())
    return jsonify(role.to_dict()), 201


@api.route('/roles/<int:role_id>', methods=['PATCH'])
@handle_errors
def update_role(role_id):
    """Update a role"""
    role = database.update_role(role_id, get_json_body())
    return jsonify(role.to_dict())


@api.route('/roles/<int:role_id>', methods=['DELETE'])
@handle_errors
def delete_role(role_id):
    """Delete a role that is not assigned to any engineer"""
    database.delete_role(role_id)
    return jsonify({'message': 'Role deleted successfully'})


# SKILL ENDPOINTS

@api.route('/skills', methods=['GET'])
@handle_errors
def get_skills():
    """Get all skills"""
    return jsonify([skill.to_dict() for skill in database.get_all_skills()])


@api.route('/skills', methods=['POST'])
@handle_errors
def create_skill():
    """Create a new skill"""
    skill = database.create_skill(get_json_body())
    return jsonify(skill.to_dict()), 201


@api.route('/skills/<int:skill_id>', methods=['PATCH'])
@handle_errors
def update_skill(skill_id):
    """Update a skill"""
    skill = database.update_skill(skill_id, get_json_body())
    return jsonify(skill.to_dict())


@api.route('/skills/<int:skill_id>', methods=['DELETE'])
@handle_errors
def delete_skill(skill_id):
    """Delete a skill that no engineer carries"""
    database.delete_skill(skill_id)
    return jsonify({'message': 'Skill deleted successfully'})


# POD ENDPOINTS

@api.route('/pods', methods=['GET'])
@handle_errors
def get_pods():
    """Get all pods with their members"""
    return jsonify([pod.to_dict() for pod in database.get_all_pods()])


@api.route('/pods', methods=['POST'])
@handle_errors
def create_pod():
    """Create a new pod"""
    pod = database.create_pod(get_json_body())
    return jsonify(pod.to_dict()), 201


@api.route('/pods/<int:pod_id>', methods=['GET'])
@handle_errors
def get_pod_by_id(pod_id):
    """Get a specific pod by ID"""
    return jsonify(database.get_pod(pod_id).to_dict())


@api.route('/pods/<int:pod_id>', methods=['PATCH'])
@handle_errors
def update_pod(pod_id):
    """Update a pod"""
    pod = database.update_pod(pod_id, get_json_body())
    return jsonify(pod.to_dict())


@api.route('/pods/<int:pod_id>', methods=['DELETE'])
@handle_errors
def delete_pod(pod_id):
    """Delete a pod, unassigning its members"""
    database.delete_pod(pod_id)
    return jsonify({'message': 'Pod deleted successfully'})


# RESOURCE ENDPOINTS

@api.route('/resources', methods=['GET'])
@handle_errors
def get_resources():
    """Get all resources with their pods and skills"""
    return jsonify([resource.to_dict() for resource in database.get_all_resources()])


@api.route('/resources/search', methods=['GET'])
@handle_errors
def search_resources():
    """Search resources by name"""
    limit = request.args.get('limit') or current_app.config.get('DEFAULT_SEARCH_LIMIT', 10)
    resources = database.search_resources(
        query=request.args.get('q', ''),
        limit=limit,
        status=request.args.get('status') or 'active'
    )
    return jsonify([resource.to_dict(include_pods=False) for resource in resources])


@api.route('/resources', methods=['POST'])
@handle_errors
def create_resource():
    """Create a new resource"""
    resource = database.create_resource(get_json_body())
    return jsonify(resource.to_dict()), 201


@api.route('/resources/<int:resource_id>', methods=['GET'])
@handle_errors
def get_resource_by_id(resource_id):
    """Get a specific resource by ID, including its allocations"""
    return jsonify(database.get_resource(resource_id).to_dict(include_allocations=True))


@api.route('/resources/<int:resource_id>', methods=['PATCH'])
@handle_errors
def update_resource(resource_id):
    """Update a resource"""
    resource = database.update_resource(resource_id, get_json_body())
    return jsonify(resource.to_dict())


@api.route('/resources/<int:resource_id>', methods=['DELETE'])
@handle_errors
def delete_resource(resource_id):
    """Delete a resource and its allocations"""
    database.delete_resource(resource_id)
    return jsonify({'message': 'Resource deleted successfully'})
