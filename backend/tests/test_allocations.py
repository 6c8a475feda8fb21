"""
Unit tests for the PodPlanner allocation engine
"""

import pytest
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app
from models import db, Resource, Project, ProjectAllocation
from errors import ValidationError, NotFoundError, ConflictError
from allocations import (
    list_allocations, create_allocation, update_allocation, delete_allocation,
    expand_to_full_year, remove_from_year, build_year_grid, monthly_totals
)


@pytest.fixture
def app():
    """Create and configure a test app instance."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def people(app):
    """Two engineers and two projects."""
    alice = Resource(name="Alice", role="Developer", seniority="Senior")
    bob = Resource(name="Bob", role="Team Lead")
    redesign = Project(name="Redesign", owner="Sarah")
    mobile = Project(name="Mobile App", owner="Michael")
    db.session.add_all([alice, bob, redesign, mobile])
    db.session.commit()
    return {'alice': alice, 'bob': bob, 'redesign': redesign, 'mobile': mobile}


class TestCreateAllocation:
    """Test cases for allocation creation"""

    @pytest.mark.parametrize('percentage', [0, 100, 50.5, '75'])
    def test_valid_percentages(self, people, percentage):
        allocation = create_allocation(people['alice'].id, people['redesign'].id, percentage, 3, 2026)
        assert allocation.id is not None
        assert allocation.percentage == float(percentage)

    @pytest.mark.parametrize('percentage', [-1, 101, float('nan'), 'abc', '', True, False])
    def test_invalid_percentages(self, people, percentage):
        with pytest.raises(ValidationError) as exc_info:
            create_allocation(people['alice'].id, people['redesign'].id, percentage, 3, 2026)
        assert exc_info.value.message == "Percentage must be between 0 and 100"
        assert ProjectAllocation.query.count() == 0

    @pytest.mark.parametrize('month', [1, 12, '6'])
    def test_valid_months(self, people, month):
        allocation = create_allocation(people['alice'].id, people['redesign'].id, 10, month, 2026)
        assert allocation.month == int(month)

    @pytest.mark.parametrize('month', [0, 13, 'March', None, 2.5])
    def test_invalid_months(self, people, month):
        with pytest.raises(ValidationError) as exc_info:
            create_allocation(people['alice'].id, people['redesign'].id, 10, month, 2026)
        assert exc_info.value.message == "Month must be between 1 and 12"

    def test_invalid_year(self, people):
        with pytest.raises(ValidationError):
            create_allocation(people['alice'].id, people['redesign'].id, 10, 3, 'next year')

    def test_missing_ids(self, people):
        with pytest.raises(ValidationError) as exc_info:
            create_allocation(None, people['redesign'].id, 10, 3, 2026)
        assert exc_info.value.message == "Resource ID and Project ID are required"
        with pytest.raises(ValidationError):
            create_allocation(people['alice'].id, '', 10, 3, 2026)

    def test_unknown_resource(self, people):
        with pytest.raises(NotFoundError):
            create_allocation(9999, people['redesign'].id, 10, 3, 2026)

    def test_defaults(self, people):
        allocation = create_allocation(people['alice'].id, people['redesign'].id, month=3, year=2026, notes='')
        assert allocation.percentage == 0.0
        assert allocation.notes is None

    def test_duplicate_key_conflicts(self, people):
        create_allocation(people['alice'].id, people['redesign'].id, 10, 3, 2026)
        with pytest.raises(ConflictError):
            create_allocation(people['alice'].id, people['redesign'].id, 20, 3, 2026)
        # Same month of another year is a different key
        assert create_allocation(people['alice'].id, people['redesign'].id, 20, 3, 2027).id is not None


class TestUpdateAndDelete:
    """Test cases for allocation update and delete"""

    def test_update_is_idempotent(self, people):
        allocation = create_allocation(people['alice'].id, people['redesign'].id, 10, 3, 2026, notes="kick-off")

        first = update_allocation(allocation.id, percentage=50).to_dict()
        second = update_allocation(allocation.id, percentage=50).to_dict()

        assert first == second
        assert second['percentage'] == 50
        assert second['notes'] == "kick-off"

    def test_partial_update_keeps_percentage(self, people):
        allocation = create_allocation(people['alice'].id, people['redesign'].id, 40, 3, 2026)
        update_allocation(allocation.id, notes="Shifted to QA")
        assert allocation.percentage == 40
        assert allocation.notes == "Shifted to QA"

    @pytest.mark.parametrize('percentage', [-1, 101, float('nan'), 'abc'])
    def test_update_rejects_invalid_percentage(self, people, percentage):
        allocation = create_allocation(people['alice'].id, people['redesign'].id, 40, 3, 2026)
        with pytest.raises(ValidationError):
            update_allocation(allocation.id, percentage=percentage)
        assert db.session.get(ProjectAllocation, allocation.id).percentage == 40

    def test_update_boundaries(self, people):
        allocation = create_allocation(people['alice'].id, people['redesign'].id, 40, 3, 2026)
        assert update_allocation(allocation.id, percentage=0).percentage == 0
        assert update_allocation(allocation.id, percentage=100).percentage == 100

    def test_update_unknown_id(self, app):
        with pytest.raises(NotFoundError):
            update_allocation(4242, percentage=10)

    def test_delete(self, people):
        allocation = create_allocation(people['alice'].id, people['redesign'].id, 40, 3, 2026)
        delete_allocation(allocation.id)
        assert ProjectAllocation.query.count() == 0
        with pytest.raises(NotFoundError):
            delete_allocation(allocation.id)


class TestListAllocations:
    """Test cases for listing allocations"""

    def test_ordered_by_year_then_month(self, people):
        create_allocation(people['alice'].id, people['redesign'].id, 10, 2, 2026)
        create_allocation(people['bob'].id, people['redesign'].id, 10, 11, 2025)
        create_allocation(people['alice'].id, people['mobile'].id, 10, 1, 2026)

        periods = [(a.year, a.month) for a in list_allocations()]
        assert periods == [(2025, 11), (2026, 1), (2026, 2)]

    def test_year_filter(self, people):
        create_allocation(people['alice'].id, people['redesign'].id, 10, 2, 2026)
        create_allocation(people['bob'].id, people['redesign'].id, 10, 11, 2025)

        assert [a.year for a in list_allocations(2025)] == [2025]
        assert [a.year for a in list_allocations('2026')] == [2026]


class TestExpandAndRemove:
    """Test cases for full-year expansion and year-scoped removal"""

    def test_expand_creates_missing_months_only(self, people):
        create_allocation(people['alice'].id, people['redesign'].id, 75, 3, 2026)

        created = expand_to_full_year(people['alice'].id, people['redesign'].id, 2026)

        assert len(created) == 11
        assert sorted(a.month for a in created) == [m for m in range(1, 13) if m != 3]
        assert all(a.percentage == 0 for a in created)
        march = ProjectAllocation.query.filter_by(month=3, year=2026).one()
        assert march.percentage == 75

    def test_expand_twice_creates_nothing(self, people):
        expand_to_full_year(people['alice'].id, people['redesign'].id, 2026)
        assert expand_to_full_year(people['alice'].id, people['redesign'].id, 2026) == []
        assert ProjectAllocation.query.count() == 12

    def test_remove_from_year_keeps_other_years(self, people):
        expand_to_full_year(people['alice'].id, people['redesign'].id, 2026)
        create_allocation(people['alice'].id, people['redesign'].id, 30, 12, 2025)
        create_allocation(people['alice'].id, people['mobile'].id, 30, 1, 2026)

        assert remove_from_year(people['alice'].id, people['redesign'].id, 2026) == 12

        remaining = [(a.project.name, a.year) for a in list_allocations()]
        assert remaining == [("Redesign", 2025), ("Mobile App", 2026)]


class TestYearGrid:
    """Test cases for the year grid"""

    def test_placeholders_for_pairs_seen_in_any_year(self, people):
        create_allocation(people['alice'].id, people['redesign'].id, 75, 3, 2026)
        create_allocation(people['bob'].id, people['mobile'].id, 50, 6, 2025)

        rows = build_year_grid(2026)

        assert [(r['resource_name'], r['project_name']) for r in rows] == [("Alice", "Redesign"), ("Bob", "Mobile App")]
        alice_row, bob_row = rows
        assert [c['month'] for c in alice_row['cells']] == list(range(1, 13))
        march = alice_row['cells'][2]
        assert march['id'] is not None and march['percentage'] == 75
        assert alice_row['cells'][0]['id'] is None
        assert alice_row['cells'][0]['percentage'] == 0
        assert alice_row['cells'][0]['year'] == 2026
        assert all(cell['id'] is None for cell in bob_row['cells'])

    def test_empty_grid(self, app):
        assert build_year_grid(2026) == []


class TestMonthlyTotals:
    """Test cases for monthly totals"""

    def test_resource_totals_flag_over_allocation(self, people):
        create_allocation(people['alice'].id, people['redesign'].id, 75, 3, 2026)
        create_allocation(people['alice'].id, people['mobile'].id, 50, 3, 2026)
        create_allocation(people['alice'].id, people['mobile'].id, 25, 4, 2026)
        create_allocation(people['alice'].id, people['mobile'].id, 90, 3, 2025)

        rows = {row['name']: row for row in monthly_totals(2026, 'resource')}

        march = rows["Alice"]['months'][2]
        assert march['total'] == 125
        assert march['over_allocated'] is True
        assert march['breakdown'] == {"Redesign": 75, "Mobile App": 50}
        april = rows["Alice"]['months'][3]
        assert april['total'] == 25 and april['over_allocated'] is False
        # Active engineers without allocations still get a row
        assert all(month['total'] == 0 for month in rows["Bob"]['months'])

    def test_project_totals(self, people):
        create_allocation(people['alice'].id, people['redesign'].id, 60, 1, 2026)
        create_allocation(people['bob'].id, people['redesign'].id, 70, 1, 2026)

        rows = {row['name']: row for row in monthly_totals(2026, 'project')}
        assert rows["Redesign"]['months'][0]['total'] == 130
        assert rows["Redesign"]['project_id'] == people['redesign'].id

    def test_invalid_grouping(self, app):
        with pytest.raises(ValidationError):
            monthly_totals(2026, 'pod')
