from datetime import datetime, timezone
from db import db


def utc_now():
    """Return current UTC time (timezone-aware)"""
    return datetime.now(timezone.utc)


def isoformat_or_none(value):
    return value.isoformat() if value else None


# Association tables
resource_pods = db.Table(
    'resource_pods',
    db.Column('resource_id', db.Integer, db.ForeignKey('resources.id'), primary_key=True),
    db.Column('pod_id', db.Integer, db.ForeignKey('pods.id'), primary_key=True)
)

project_pods = db.Table(
    'project_pods',
    db.Column('project_id', db.Integer, db.ForeignKey('projects.id'), primary_key=True),
    db.Column('pod_id', db.Integer, db.ForeignKey('pods.id'), primary_key=True)
)


class Role(db.Model):
    """Role/position title offered when creating engineers.

    Resources store the role name by value, so renaming a role leaves
    existing resources on the old name.
    """
    __tablename__ = 'roles'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    def __init__(self, name, description=None):
        self.name = name
        self.description = description

    def to_dict(self):
        """Convert role to dictionary"""
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'created_at': isoformat_or_none(self.created_at),
            'updated_at': isoformat_or_none(self.updated_at)
        }

    @staticmethod
    def get_by_name(name):
        """Get role by exact name"""
        return Role.query.filter_by(name=name).first()


class Skill(db.Model):
    """Skill or technology an engineer can be tagged with"""
    __tablename__ = 'skills'

    CATEGORIES = [
        'Programming Language',
        'Framework',
        'Database',
        'Tool',
        'Cloud Platform',
        'Other'
    ]

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    category = db.Column(db.String(50), nullable=False, default='Other')
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    resource_links = db.relationship('ResourceSkill', back_populates='skill', lazy=True)

    def __init__(self, name, category='Other'):
        self.name = name
        self.category = category or 'Other'

    def to_dict(self):
        """Convert skill to dictionary"""
        return {
            'id': self.id,
            'name': self.name,
            'category': self.category,
            'created_at': isoformat_or_none(self.created_at),
            'updated_at': isoformat_or_none(self.updated_at)
        }

    @staticmethod
    def get_by_name(name):
        """Get skill by exact name"""
        return Skill.query.filter_by(name=name).first()


class Pod(db.Model):
    """Team grouping of engineers"""
    __tablename__ = 'pods'

    STATUSES = ['active', 'inactive']

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='active')
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    members = db.relationship('Resource', secondary=resource_pods, back_populates='pods', lazy=True,
                              order_by='Resource.name')
    projects = db.relationship('Project', secondary=project_pods, back_populates='pods', lazy=True)

    def __init__(self, name, description=None, status='active'):
        self.name = name
        self.description = description
        self.status = status or 'active'

    def to_dict(self, include_members=True):
        """Convert pod to dictionary"""
        data = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'status': self.status,
            'member_count': len(self.members),
            'created_at': isoformat_or_none(self.created_at),
            'updated_at': isoformat_or_none(self.updated_at)
        }
        if include_members:
            data['members'] = [member.to_dict(include_pods=False) for member in self.members]
        return data


class Resource(db.Model):
    """Engineer that can be allocated to projects"""
    __tablename__ = 'resources'

    SENIORITIES = ['Junior', 'Mid-Level', 'Senior', 'Staff', 'Principal']
    STATUSES = ['active', 'on-leave', 'inactive']

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), nullable=True)
    role = db.Column(db.String(100), nullable=True)  # Role.name by value, not a foreign key
    seniority = db.Column(db.String(20), nullable=True)
    status = db.Column(db.String(20), nullable=False, default='active')
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    pods = db.relationship('Pod', secondary=resource_pods, back_populates='members', lazy=True)
    skill_links = db.relationship('ResourceSkill', back_populates='resource', lazy=True,
                                  cascade='all, delete-orphan')
    allocations = db.relationship('ProjectAllocation', back_populates='resource', lazy=True,
                                  cascade='all, delete-orphan')

    def __init__(self, name, role=None, seniority=None, email=None, status='active'):
        self.name = name
        self.role = role
        self.seniority = seniority
        self.email = email
        self.status = status or 'active'

    @property
    def skills(self):
        """Skills attached through the join records"""
        return [link.skill for link in self.skill_links if link.skill is not None]

    def set_skill_ids(self, skill_ids):
        """Replace the skill join records with links to the given skill ids"""
        wanted = list(dict.fromkeys(skill_ids))
        kept = [link for link in self.skill_links if link.skill_id in wanted]
        kept_ids = {link.skill_id for link in kept}
        self.skill_links = kept + [ResourceSkill(skill_id=skill_id) for skill_id in wanted if skill_id not in kept_ids]

    def to_dict(self, include_pods=True, include_allocations=False):
        """Convert resource to dictionary"""
        data = {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
            'seniority': self.seniority,
            'status': self.status,
            'skills': [skill.to_dict() for skill in self.skills],
            'created_at': isoformat_or_none(self.created_at),
            'updated_at': isoformat_or_none(self.updated_at)
        }
        if include_pods:
            data['pods'] = [pod.to_dict(include_members=False) for pod in self.pods]
            data['pod_ids'] = [pod.id for pod in self.pods]
        if include_allocations:
            data['allocations'] = [
                allocation.to_dict() for allocation in
                sorted(self.allocations, key=lambda a: (a.year, a.month, a.id))
            ]
        return data


class ResourceSkill(db.Model):
    """Join record attaching a skill to a resource"""
    __tablename__ = 'resource_skills'
    __table_args__ = (
        db.UniqueConstraint('resource_id', 'skill_id', name='unique_resource_skill'),
    )

    id = db.Column(db.Integer, primary_key=True)
    resource_id = db.Column(db.Integer, db.ForeignKey('resources.id'), nullable=False)
    skill_id = db.Column(db.Integer, db.ForeignKey('skills.id'), nullable=False)

    resource = db.relationship('Resource', back_populates='skill_links')
    skill = db.relationship('Skill', back_populates='resource_links')

    def __init__(self, skill_id, resource_id=None):
        self.skill_id = skill_id
        self.resource_id = resource_id


class Project(db.Model):
    """Project with a man-day budget"""
    __tablename__ = 'projects'

    STATUSES = ['planned', 'active', 'on-hold', 'completed']

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    owner = db.Column(db.String(100), nullable=True)
    status = db.Column(db.String(20), nullable=False, default='active')
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    budget_man_days = db.Column(db.Float, nullable=False, default=0.0)
    consumed_man_days = db.Column(db.Float, nullable=False, default=0.0)  # Entered by hand, never derived
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    pods = db.relationship('Pod', secondary=project_pods, back_populates='projects', lazy=True)
    allocations = db.relationship('ProjectAllocation', back_populates='project', lazy=True,
                                  cascade='all, delete-orphan')

    def __init__(self, name, owner=None, status='active', description=None, start_date=None, end_date=None,
                 budget_man_days=0.0, consumed_man_days=0.0):
        self.name = name
        self.owner = owner
        self.status = status
        self.description = description
        self.start_date = start_date
        self.end_date = end_date
        self.budget_man_days = budget_man_days or 0.0
        self.consumed_man_days = consumed_man_days or 0.0

    def to_dict(self, include_allocations=True):
        """Convert project to dictionary"""
        data = {
            'id': self.id,
            'name': self.name,
            'description': self.description or '',
            'owner': self.owner,
            'status': self.status,
            'start_date': isoformat_or_none(self.start_date),
            'end_date': isoformat_or_none(self.end_date),
            'budget_man_days': self.budget_man_days or 0.0,
            'consumed_man_days': self.consumed_man_days or 0.0,
            'pods': [pod.id for pod in self.pods],
            'created_at': isoformat_or_none(self.created_at),
            'updated_at': isoformat_or_none(self.updated_at)
        }
        if include_allocations:
            data['allocations'] = [
                allocation.to_dict() for allocation in
                sorted(self.allocations, key=lambda a: (a.year, a.month, a.id))
            ]
        return data


class ProjectAllocation(db.Model):
    """Share (0-100%) of one resource on one project for one month of one year"""
    __tablename__ = 'project_allocations'
    __table_args__ = (
        db.UniqueConstraint('resource_id', 'project_id', 'month', 'year', name='unique_resource_project_month'),
        db.CheckConstraint('month >= 1 AND month <= 12', name='ck_project_allocations_month'),
        db.CheckConstraint('percentage >= 0 AND percentage <= 100', name='ck_project_allocations_percentage'),
    )

    id = db.Column(db.Integer, primary_key=True)
    resource_id = db.Column(db.Integer, db.ForeignKey('resources.id'), nullable=False)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), nullable=False)
    percentage = db.Column(db.Float, nullable=False, default=0.0)
    month = db.Column(db.Integer, nullable=False)  # 1-12
    year = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    resource = db.relationship('Resource', back_populates='allocations')
    project = db.relationship('Project', back_populates='allocations')

    def __init__(self, resource_id, project_id, month, year, percentage=0.0, notes=None):
        self.resource_id = resource_id
        self.project_id = project_id
        self.month = month
        self.year = year
        self.percentage = percentage
        self.notes = notes

    def to_dict(self):
        """Convert allocation to dictionary, denormalizing resource and project labels"""
        return {
            'id': self.id,
            'resource_id': self.resource_id,
            'resource_name': self.resource.name if self.resource else None,
            'resource_role': self.resource.role if self.resource else None,
            'resource_seniority': self.resource.seniority if self.resource else None,
            'project_id': self.project_id,
            'project_name': self.project.name if self.project else None,
            'percentage': self.percentage,
            'month': self.month,
            'year': self.year,
            'notes': self.notes
        }
