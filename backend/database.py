from datetime import date
import logging

from errors import (
    ValidationError, NotFoundError, ConflictError,
    validate_required, validate_date_range, validate_non_negative_number, validate_enum,
    coerce_percentage, coerce_month, coerce_year, coerce_int, safe_db_operation, parse_iso_date
)
from integrity import (
    ensure_role_name_available, ensure_skill_name_available, ensure_role_deletable,
    ensure_skill_deletable, ensure_resource_unique, validate_project_schedule
)

logger = logging.getLogger(__name__)


def get_models():
    """Import models and db - call this inside CRUD functions"""
    from db import db
    from models import Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation
    return db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation


def init_db():
    """Initialize the database and create all tables"""
    from db import db
    import models  # noqa: F401 - registers the tables
    db.create_all()
    print("Database initialized successfully")


def seed_database():
    """Seed the database with sample data for development"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()

    # Check if data already exists
    if Resource.query.first():
        print("Database already seeded")
        return

    roles_data = [
        ('Developer', 'Software developer responsible for writing and maintaining code'),
        ('Senior Developer', 'Experienced developer with advanced technical skills and mentorship responsibilities'),
        ('Team Lead', 'Technical leader managing a development team'),
        ('Tech Lead', 'Technical architect and principal engineer for a project or area'),
        ('Engineering Manager', 'Manager responsible for team performance and people management'),
        ('Architect', 'Senior technical leader defining system architecture and technical strategy'),
        ('Principal Engineer', 'Distinguished technical expert providing technical leadership across the organization')
    ]
    for name, description in roles_data:
        db.session.add(Role(name=name, description=description))

    skills_data = [
        ('JavaScript', 'Programming Language'),
        ('TypeScript', 'Programming Language'),
        ('Python', 'Programming Language'),
        ('Java', 'Programming Language'),
        ('Go', 'Programming Language'),
        ('React', 'Framework'),
        ('Node.js', 'Framework'),
        ('Django', 'Framework'),
        ('Spring Boot', 'Framework'),
        ('PostgreSQL', 'Database'),
        ('MongoDB', 'Database'),
        ('AWS', 'Cloud Platform'),
        ('Docker', 'Tool'),
        ('Kubernetes', 'Tool')
    ]
    skills = {}
    for name, category in skills_data:
        skill = Skill(name=name, category=category)
        db.session.add(skill)
        skills[name] = skill

    pods = {
        'frontend': Pod(name='Team 01 - Frontend', description='Frontend development team'),
        'backend': Pod(name='Team 02 - Backend', description='Backend API development team'),
        'platform': Pod(name='Team 03 - Platform', description='Platform and infrastructure team')
    }
    for pod in pods.values():
        db.session.add(pod)

    db.session.flush()  # Flush to get the skill IDs

    resource_data = [
        ('Alice Johnson', 'Senior Developer', 'Senior', 'frontend', ['JavaScript', 'TypeScript', 'React']),
        ('Bob Smith', 'Team Lead', 'Staff', 'frontend', ['JavaScript', 'TypeScript', 'React', 'Node.js']),
        ('Carol Davis', 'Developer', 'Mid-Level', 'frontend', ['JavaScript', 'React']),
        ('David Wilson', 'Tech Lead', 'Principal', 'backend', ['Python', 'Django', 'PostgreSQL', 'AWS']),
        ('Emma Martinez', 'Senior Developer', 'Senior', 'backend', ['Java', 'Spring Boot', 'PostgreSQL']),
        ('Frank Brown', 'Developer', 'Junior', 'backend', ['Python', 'PostgreSQL']),
        ('Grace Lee', 'Engineering Manager', 'Principal', 'platform', ['Go', 'AWS', 'Docker', 'Kubernetes']),
        ('Henry Taylor', 'Senior Developer', 'Senior', 'platform', ['Go', 'Docker', 'Kubernetes'])
    ]
    resources = {}
    for name, role, seniority, pod_key, skill_names in resource_data:
        email = name.lower().replace(' ', '.') + '@company.com'
        resource = Resource(name=name, role=role, seniority=seniority, email=email)
        resource.pods = [pods[pod_key]]
        resource.set_skill_ids([skills[skill_name].id for skill_name in skill_names])
        db.session.add(resource)
        resources[name] = resource

    project_data = [
        {
            'name': 'E-Commerce Platform Redesign',
            'description': 'Complete redesign of the customer-facing e-commerce platform',
            'owner': 'Sarah Chen',
            'start_date': date(2025, 11, 1),
            'end_date': date(2026, 6, 30),
            'budget_man_days': 500.0,
            'consumed_man_days': 320.0,
            'pods': ['frontend', 'backend']
        },
        {
            'name': 'Mobile App Development',
            'description': 'New mobile application for iOS and Android',
            'owner': 'Michael Zhang',
            'start_date': date(2026, 1, 1),
            'end_date': date(2026, 12, 31),
            'budget_man_days': 300.0,
            'consumed_man_days': 120.0,
            'pods': ['frontend']
        },
        {
            'name': 'Infrastructure Migration',
            'description': 'Migrate services to cloud infrastructure',
            'owner': 'Grace Lee',
            'start_date': date(2025, 12, 1),
            'end_date': date(2026, 3, 31),
            'budget_man_days': 120.0,
            'consumed_man_days': 126.0,
            'pods': ['platform']
        }
    ]
    projects = []
    for data in project_data:
        pod_keys = data.pop('pods')
        project = Project(status='active', **data)
        project.pods = [pods[key] for key in pod_keys]
        db.session.add(project)
        projects.append(project)

    db.session.flush()  # Flush to get resource and project IDs

    # (resource, project index, percentage, months, notes)
    allocation_data = [
        ('Alice Johnson', 0, 75, range(1, 7), 'Frontend development lead'),
        ('Bob Smith', 0, 50, range(1, 7), 'Technical oversight and architecture'),
        ('Carol Davis', 0, 100, range(1, 7), None),
        ('David Wilson', 0, 60, range(1, 7), 'Backend API development'),
        ('Emma Martinez', 0, 80, range(1, 7), None),
        ('Alice Johnson', 1, 25, range(1, 13), 'Mobile UI consulting'),
        ('Bob Smith', 1, 50, range(1, 13), 'Project technical lead'),
        ('Grace Lee', 2, 100, range(1, 4), 'Project manager and technical lead'),
        ('Henry Taylor', 2, 100, range(1, 4), 'Infrastructure migration execution')
    ]
    count = 0
    for resource_name, project_index, percentage, months, notes in allocation_data:
        for month in months:
            db.session.add(ProjectAllocation(
                resource_id=resources[resource_name].id,
                project_id=projects[project_index].id,
                month=month,
                year=2026,
                percentage=float(percentage),
                notes=notes
            ))
            count += 1

    db.session.commit()
    print(f"Database seeded with {len(roles_data)} roles, {len(skills_data)} skills, {len(pods)} pods, "
          f"{len(resources)} engineers, {len(projects)} projects and {count} monthly allocations")


# Shared helpers

def _clean_text(value):
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _coerce_id_list(values, field_name):
    if values is None:
        return []
    if not isinstance(values, (list, tuple)):
        raise ValidationError(f"{field_name} must be a list of ids", field_name)
    return list(dict.fromkeys(
        coerce_int(value, field_name, 1, message=f"{field_name} must contain valid ids") for value in values
    ))


def _load_all(model, ids, label):
    """Load records by id in the given order, raising NotFoundError for the first missing id"""
    db = get_models()[0]
    records = []
    for record_id in ids:
        record = db.session.get(model, record_id)
        if not record:
            raise NotFoundError(label, record_id)
        records.append(record)
    return records


# Role CRUD helper functions

def get_all_roles():
    """Get all roles ordered by name"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()
    return Role.query.order_by(Role.name).all()


def get_role(role_id):
    """Get role by ID or raise NotFoundError"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()
    role = db.session.get(Role, role_id)
    if not role:
        raise NotFoundError("Role", role_id)
    return role


def create_role(data):
    """Create a new role with a unique name"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()

    validate_required(data, ['name'])
    name = data['name'].strip()
    ensure_role_name_available(name)

    role = Role(name=name, description=_clean_text(data.get('description')))
    safe_db_operation(lambda: (db.session.add(role), db.session.commit())[1], "Failed to create role")
    return role


def update_role(role_id, data):
    """
    Rename or re-describe a role.

    Resources keep the role name they were created with; a rename does not
    cascade to them.
    """
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()

    role = get_role(role_id)

    if 'name' in data:
        name = (data['name'] or '').strip()
        if not name:
            raise ValidationError("Name cannot be empty", 'name')
        if name != role.name:
            ensure_role_name_available(name, role.id)
        role.name = name
    if 'description' in data:
        role.description = _clean_text(data['description'])

    safe_db_operation(db.session.commit, "Failed to update role")
    return role


def delete_role(role_id):
    """Delete a role that no resource references"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()

    role = get_role(role_id)
    ensure_role_deletable(role)
    safe_db_operation(lambda: (db.session.delete(role), db.session.commit())[1], "Failed to delete role")


# Skill CRUD helper functions

def get_all_skills():
    """Get all skills ordered by name"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()
    return Skill.query.order_by(Skill.name).all()


def get_skill(skill_id):
    """Get skill by ID or raise NotFoundError"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()
    skill = db.session.get(Skill, skill_id)
    if not skill:
        raise NotFoundError("Skill", skill_id)
    return skill


def create_skill(data):
    """Create a new skill with a unique name"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()

    validate_required(data, ['name'])
    name = data['name'].strip()
    category = data.get('category') or 'Other'
    validate_enum(category, Skill.CATEGORIES, 'category')
    ensure_skill_name_available(name)

    skill = Skill(name=name, category=category)
    safe_db_operation(lambda: (db.session.add(skill), db.session.commit())[1], "Failed to create skill")
    return skill


def update_skill(skill_id, data):
    """Rename or re-categorize a skill"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()

    skill = get_skill(skill_id)

    if 'name' in data:
        name = (data['name'] or '').strip()
        if not name:
            raise ValidationError("Name cannot be empty", 'name')
        if name != skill.name:
            ensure_skill_name_available(name, skill.id)
        skill.name = name
    if 'category' in data:
        category = data['category'] or 'Other'
        validate_enum(category, Skill.CATEGORIES, 'category')
        skill.category = category

    safe_db_operation(db.session.commit, "Failed to update skill")
    return skill


def delete_skill(skill_id):
    """Delete a skill that no resource carries"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()

    skill = get_skill(skill_id)
    ensure_skill_deletable(skill)
    safe_db_operation(lambda: (db.session.delete(skill), db.session.commit())[1], "Failed to delete skill")


# Pod CRUD helper functions

def get_all_pods():
    """Get all pods ordered by name"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()
    return Pod.query.order_by(Pod.name).all()


def get_pod(pod_id):
    """Get pod by ID or raise NotFoundError"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()
    pod = db.session.get(Pod, pod_id)
    if not pod:
        raise NotFoundError("Pod", pod_id)
    return pod


def create_pod(data):
    """Create a new pod"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()

    validate_required(data, ['name'])
    status = data.get('status') or 'active'
    validate_enum(status, Pod.STATUSES, 'status')

    pod = Pod(name=data['name'].strip(), description=_clean_text(data.get('description')), status=status)
    safe_db_operation(lambda: (db.session.add(pod), db.session.commit())[1], "Failed to create pod")
    return pod


def update_pod(pod_id, data):
    """Update pod name, description or status"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()

    pod = get_pod(pod_id)

    if 'name' in data:
        name = (data['name'] or '').strip()
        if not name:
            raise ValidationError("Name cannot be empty", 'name')
        pod.name = name
    if 'description' in data:
        pod.description = _clean_text(data['description'])
    if 'status' in data:
        validate_enum(data['status'], Pod.STATUSES, 'status')
        pod.status = data['status']

    safe_db_operation(db.session.commit, "Failed to update pod")
    return pod


def delete_pod(pod_id):
    """Delete a pod; its members and projects are unassigned, not deleted"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()

    pod = get_pod(pod_id)
    member_count = len(pod.members)

    def delete():
        pod.members = []
        pod.projects = []
        db.session.delete(pod)
        db.session.commit()

    safe_db_operation(delete, "Failed to delete pod")
    logger.info(f"Pod {pod_id} deleted, {member_count} member(s) unassigned")


# Resource CRUD helper functions

def get_all_resources():
    """Get all resources ordered by name"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()
    return Resource.query.order_by(Resource.name).all()


def get_resource(resource_id):
    """Get resource by ID or raise NotFoundError"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()
    resource = db.session.get(Resource, resource_id)
    if not resource:
        raise NotFoundError("Resource", resource_id)
    return resource


def validate_resource_data(data, current_id=None):
    """Validate resource enums and uniqueness; name is checked only when present"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()

    if data.get('seniority'):
        validate_enum(data['seniority'], Resource.SENIORITIES, 'seniority')
    if 'status' in data and data['status'] is not None:
        validate_enum(data['status'], Resource.STATUSES, 'status')

    ensure_resource_unique(
        name=data.get('name'),
        email=_clean_text(data.get('email')),
        current_id=current_id
    )


def create_resource(data):
    """
    Create a new resource (engineer).

    Args:
        data: Dict with name (required), email, role, seniority, status,
            pod_ids and skill_ids

    Raises:
        ValidationError: blank name or invalid enum value
        ConflictError: name or email already used, ignoring case
        NotFoundError: unknown pod or skill id
    """
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()

    if not isinstance(data.get('name'), str) or not data['name'].strip():
        raise ValidationError("Name is required", 'name')

    validate_resource_data(data)
    pods = _load_all(Pod, _coerce_id_list(data.get('pod_ids'), 'pod_ids'), "Pod")
    skill_ids = _coerce_id_list(data.get('skill_ids'), 'skill_ids')
    _load_all(Skill, skill_ids, "Skill")

    resource = Resource(
        name=data['name'].strip(),
        email=_clean_text(data.get('email')),
        role=_clean_text(data.get('role')),
        seniority=data.get('seniority') or None,
        status=data.get('status') or 'active'
    )
    resource.pods = pods
    resource.set_skill_ids(skill_ids)

    safe_db_operation(lambda: (db.session.add(resource), db.session.commit())[1], "Failed to create resource")
    logger.info(f"Resource created: {resource.name}")
    return resource


def update_resource(resource_id, data):
    """Partially update a resource; pod_ids and skill_ids replace the current sets"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()

    resource = get_resource(resource_id)

    if 'name' in data and (not isinstance(data['name'], str) or not data['name'].strip()):
        raise ValidationError("Name cannot be empty", 'name')

    validate_resource_data(data, current_id=resource.id)

    pods = None
    if 'pod_ids' in data:
        pods = _load_all(Pod, _coerce_id_list(data['pod_ids'], 'pod_ids'), "Pod")
    skill_ids = None
    if 'skill_ids' in data:
        skill_ids = _coerce_id_list(data['skill_ids'], 'skill_ids')
        _load_all(Skill, skill_ids, "Skill")

    if 'name' in data:
        resource.name = data['name'].strip()
    if 'email' in data:
        resource.email = _clean_text(data['email'])
    if 'role' in data:
        resource.role = _clean_text(data['role'])
    if 'seniority' in data:
        resource.seniority = data['seniority'] or None
    if 'status' in data and data['status'] is not None:
        resource.status = data['status']
    if pods is not None:
        resource.pods = pods
    if skill_ids is not None:
        resource.set_skill_ids(skill_ids)

    safe_db_operation(db.session.commit, "Failed to update resource")
    return resource


def delete_resource(resource_id):
    """Delete a resource together with its allocations and skill links"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()

    resource = get_resource(resource_id)
    allocation_count = len(resource.allocations)

    def delete():
        resource.pods = []
        db.session.delete(resource)
        db.session.commit()

    safe_db_operation(delete, "Failed to delete resource")
    logger.info(f"Resource {resource_id} deleted with {allocation_count} allocation(s)")


def search_resources(query='', limit=None, status='active'):
    """
    Search resources by name.

    Args:
        query: Case-insensitive substring of the name; empty matches all
        limit: Maximum number of results (defaults to 10)
        status: Only resources with this status

    Returns:
        list: Matching resources ordered by name
    """
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()

    limit = 10 if limit is None or limit == '' else coerce_int(
        limit, 'limit', 1, message="limit must be a positive whole number"
    )

    search = Resource.query.filter(Resource.status == (status or 'active'))
    if query:
        search = search.filter(Resource.name.ilike(f"%{query}%"))

    return search.order_by(Resource.name).limit(limit).all()


# Project CRUD helper functions

def get_all_projects():
    """Get all projects ordered by name"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()
    return Project.query.order_by(Project.name).all()


def get_project(project_id):
    """Get project by ID or raise NotFoundError"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()
    project = db.session.get(Project, project_id)
    if not project:
        raise NotFoundError("Project", project_id)
    return project


def _prepare_allocations(entries):
    """Validate nested project allocations and return constructor kwargs"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()

    if not isinstance(entries, (list, tuple)):
        raise ValidationError("allocations must be a list", 'allocations')

    prepared = []
    seen = set()
    for entry in entries:
        if not isinstance(entry, dict) or entry.get('resource_id') in (None, ''):
            raise ValidationError("Resource ID is required for each allocation", 'allocations')
        resource_id = coerce_int(entry['resource_id'], 'resource_id', 1, message="Resource ID must be a valid id")
        if not db.session.get(Resource, resource_id):
            raise NotFoundError("Resource", resource_id)

        percentage = entry.get('percentage')
        month = coerce_month(entry.get('month'))
        year = coerce_year(entry.get('year'))
        key = (resource_id, month, year)
        if key in seen:
            raise ConflictError(f"Duplicate allocation for resource {resource_id} in {month}/{year}")
        seen.add(key)

        prepared.append({
            'resource_id': resource_id,
            'percentage': 0.0 if percentage is None else coerce_percentage(percentage),
            'month': month,
            'year': year,
            'notes': entry.get('notes') or None
        })
    return prepared


def _parse_project_fields(data):
    """Validate and convert the scalar project fields present in data"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()

    fields = {}
    if 'name' in data:
        if not isinstance(data['name'], str) or not data['name'].strip():
            raise ValidationError("Name cannot be empty", 'name')
        fields['name'] = data['name'].strip()
    if 'description' in data:
        fields['description'] = _clean_text(data['description'])
    if 'owner' in data:
        fields['owner'] = _clean_text(data['owner'])
    if 'status' in data:
        validate_enum(data['status'], Project.STATUSES, 'status')
        fields['status'] = data['status']
    if 'start_date' in data:
        fields['start_date'] = parse_iso_date(data['start_date'], 'start_date')
    if 'end_date' in data:
        fields['end_date'] = parse_iso_date(data['end_date'], 'end_date')
    for field in ('budget_man_days', 'consumed_man_days'):
        if field in data:
            value = data[field]
            fields[field] = 0.0 if value is None or value == '' else validate_non_negative_number(value, field)
    return fields


def create_project(data, today=None):
    """
    Create a project with its pods and allocations in one commit.

    Args:
        data: Dict with name (required), description, owner, status,
            start_date, end_date, budget_man_days, consumed_man_days,
            pods (list of pod ids) and allocations (list of dicts)
        today: Reference day for the planned start date rule
    """
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()

    validate_required(data, ['name'])
    fields = _parse_project_fields(data)
    fields.setdefault('status', 'active')
    validate_date_range(fields.get('start_date'), fields.get('end_date'))
    validate_project_schedule(fields, today=today)

    pods = _load_all(Pod, _coerce_id_list(data.get('pods'), 'pods'), "Pod")
    allocations = _prepare_allocations(data.get('allocations') or [])

    project = Project(**fields)
    project.pods = pods
    project.allocations = [ProjectAllocation(project_id=None, **entry) for entry in allocations]

    safe_db_operation(lambda: (db.session.add(project), db.session.commit())[1], "Failed to create project")
    logger.info(f"Project created: {project.name} with {len(allocations)} allocation(s)")
    return project


def update_project(project_id, data, today=None):
    """
    Partially update a project.

    When pods or allocations are present they replace the current sets. All
    input is validated before anything is written and the whole update is
    committed at once, so a failure leaves the stored project unchanged.
    """
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()

    project = get_project(project_id)

    fields = _parse_project_fields(data)
    validate_date_range(
        fields.get('start_date', project.start_date),
        fields.get('end_date', project.end_date)
    )
    validate_project_schedule(fields, project.status, project.start_date, today=today)

    pods = None
    if 'pods' in data:
        pods = _load_all(Pod, _coerce_id_list(data['pods'], 'pods'), "Pod")
    allocations = None
    if 'allocations' in data:
        allocations = _prepare_allocations(data['allocations'] or [])

    def apply():
        for field, value in fields.items():
            setattr(project, field, value)
        if pods is not None:
            project.pods = pods
        if allocations is not None:
            project.allocations = []
            db.session.flush()  # Remove old rows before the unique key is reused
            project.allocations = [ProjectAllocation(project_id=project.id, **entry) for entry in allocations]
        db.session.commit()

    safe_db_operation(apply, "Failed to update project")
    return project


def delete_project(project_id):
    """Delete a project together with its allocations and pod links"""
    db, Role, Skill, Pod, Resource, ResourceSkill, Project, ProjectAllocation = get_models()

    project = get_project(project_id)

    def delete():
        project.pods = []
        db.session.delete(project)
        db.session.commit()

    safe_db_operation(delete, "Failed to delete project")
