from datetime import date, timedelta
from dateutil.relativedelta import relativedelta
import logging
import math

from errors import coerce_month, coerce_year

logger = logging.getLogger(__name__)

# Budget health thresholds on consumed / budget, in percent
AT_RISK_THRESHOLD = 80.0
OVER_BUDGET_THRESHOLD = 100.0

STATUS_ON_TRACK = 'on-track'
STATUS_AT_RISK = 'at-risk'
STATUS_OVER_BUDGET = 'over-budget'

# Sort order of the budget report, most severe first
STATUS_PRIORITY = {
    STATUS_OVER_BUDGET: 0,
    STATUS_AT_RISK: 1,
    STATUS_ON_TRACK: 2
}


def get_models_and_db():
    """Import models and db - call this inside engine functions"""
    from db import db
    from models import Project, ProjectAllocation, Resource, Pod
    return db, Project, ProjectAllocation, Resource, Pod


def round_one_decimal(value):
    """Round half up to one decimal place for display"""
    return math.floor(value * 10 + 0.5) / 10


def working_days_in_month(month, year):
    """
    Count the days of a calendar month that are not Saturday or Sunday.

    There is no holiday calendar: only weekends are excluded.

    Args:
        month: Month number (1-12), numeric-like values are accepted
        year: Four digit year

    Returns:
        int: Number of working days
    """
    month = coerce_month(month)
    year = coerce_year(year)

    first_day = date(year, month, 1)
    days_in_month = ((first_day + relativedelta(months=1)) - first_day).days

    return sum(
        1 for offset in range(days_in_month)
        if (first_day + timedelta(days=offset)).weekday() < 5
    )


def man_days(percentage, month, year):
    """
    Convert an allocation percentage for one month into man-days.

    No rounding is applied here; rounding happens when a report is formatted.
    """
    return (float(percentage) / 100) * working_days_in_month(month, year)


def classify_budget_status(percentage_used):
    """
    Classify budget health from the consumed percentage.

    Returns:
        str: 'over-budget' above 100%, 'at-risk' from 80% up to and
        including 100%, 'on-track' otherwise
    """
    if percentage_used > OVER_BUDGET_THRESHOLD:
        return STATUS_OVER_BUDGET
    if percentage_used >= AT_RISK_THRESHOLD:
        return STATUS_AT_RISK
    return STATUS_ON_TRACK


def project_budget_status(project):
    """
    Build the budget report for a single project.

    allocated_man_days is derived from every allocation of the project,
    across all years. consumed_man_days and budget_man_days come straight
    from the project record.

    Args:
        project: Project model instance

    Returns:
        dict: Budget report with numeric values rounded to one decimal
    """
    budget = project.budget_man_days or 0.0
    consumed = project.consumed_man_days or 0.0

    allocated = sum(
        man_days(allocation.percentage, allocation.month, allocation.year)
        for allocation in project.allocations
    )

    remaining = budget - consumed
    percentage_used = (consumed / budget) * 100 if budget > 0 else 0.0

    return {
        'project_id': project.id,
        'project_name': project.name,
        'project_status': project.status,
        'owner': project.owner,
        'budget_man_days': round_one_decimal(budget),
        'allocated_man_days': round_one_decimal(allocated),
        'consumed_man_days': round_one_decimal(consumed),
        'remaining_man_days': round_one_decimal(remaining),
        'percentage_used': round_one_decimal(percentage_used),
        'status': classify_budget_status(percentage_used),
        'start_date': project.start_date.isoformat() if project.start_date else None,
        'end_date': project.end_date.isoformat() if project.end_date else None,
        'allocation_count': len(project.allocations)
    }


def sort_budget_reports(reports):
    """Order reports over-budget first, then at-risk, then on-track (stable)"""
    return sorted(reports, key=lambda report: STATUS_PRIORITY[report['status']])


def budget_report():
    """
    Calculate the budget report for every project.

    Returns:
        list: One report per project, sorted by severity
    """
    db, Project, ProjectAllocation, Resource, Pod = get_models_and_db()

    projects = Project.query.order_by(Project.id).all()
    reports = [project_budget_status(project) for project in projects]

    logger.debug(f"Calculated budget report for {len(reports)} project(s)")
    return sort_budget_reports(reports)


def budget_summary(reports):
    """
    Summarize a budget report for the budget overview cards.

    Args:
        reports: Output of budget_report()

    Returns:
        dict: Counts per status and man-day totals
    """
    return {
        'total': len(reports),
        'on_track': sum(1 for r in reports if r['status'] == STATUS_ON_TRACK),
        'at_risk': sum(1 for r in reports if r['status'] == STATUS_AT_RISK),
        'over_budget': sum(1 for r in reports if r['status'] == STATUS_OVER_BUDGET),
        'total_budget_man_days': round_one_decimal(sum(r['budget_man_days'] for r in reports)),
        'total_consumed_man_days': round_one_decimal(sum(r['consumed_man_days'] for r in reports)),
        'total_allocated_man_days': round_one_decimal(sum(r['allocated_man_days'] for r in reports))
    }


def allocation_stats():
    """
    Headline numbers for the dashboard.

    Returns:
        dict: Resource, project and pod counts and the average allocation
        percentage over every allocation record
    """
    db, Project, ProjectAllocation, Resource, Pod = get_models_and_db()

    percentages = [allocation.percentage for allocation in ProjectAllocation.query.all()]
    average = sum(percentages) / len(percentages) if percentages else 0.0

    return {
        'total_resources': Resource.query.count(),
        'active_resources': Resource.query.filter_by(status='active').count(),
        'total_projects': Project.query.count(),
        'active_projects': Project.query.filter_by(status='active').count(),
        'total_pods': Pod.query.count(),
        'active_pods': Pod.query.filter_by(status='active').count(),
        'average_allocation': int(math.floor(average + 0.5))
    }
