"""
Unit tests for PodPlanner grid reconciliation
"""

import pytest
import threading
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app
from models import db, Resource, Project, ProjectAllocation
from errors import ValidationError, ConflictError, NotFoundError
from grid import GridCell, GridEditSession, EngineWriter, format_percentage, parse_cell_value


class RecordingWriter:
    """Fake allocation writer that records every call"""

    def __init__(self, fail_months=()):
        self.calls = []
        self.fail_months = set(fail_months)
        self.next_id = 100
        self.lock = threading.Lock()

    def create_allocation(self, resource_id, project_id, percentage, month, year):
        with self.lock:
            self.calls.append(('create', resource_id, project_id, percentage, month, year))
            if month in self.fail_months:
                raise ValidationError("Percentage must be between 0 and 100", 'percentage')
            self.next_id += 1
            return {'id': self.next_id, 'percentage': percentage}

    def update_allocation(self, allocation_id, percentage):
        with self.lock:
            self.calls.append(('update', allocation_id, percentage))
            if allocation_id == 666:
                raise RuntimeError("connection reset")
            return {'id': allocation_id, 'percentage': float(percentage)}


def row_cells(allocations=None, item_name="Alice", year=2026):
    """Twelve cells of one row; allocations maps month -> (allocation_id, percentage)"""
    allocations = allocations or {}
    cells = []
    for month in range(1, 13):
        allocation_id, percentage = allocations.get(month, (None, 0))
        cells.append(GridCell(item_name, month, resource_id=1, project_id=2, year=year,
                              allocation_id=allocation_id, percentage=percentage))
    return cells


@pytest.fixture
def writer():
    return RecordingWriter()


@pytest.fixture
def session(writer):
    session = GridEditSession(writer, max_workers=4)
    session.enter('project-2', row_cells({1: (10, 50), 2: (11, 12.5)}))
    return session


class TestCellValues:
    """Test cases for cell text helpers"""

    def test_format_percentage(self):
        assert format_percentage(50.0) == '50'
        assert format_percentage(12.5) == '12.5'
        assert format_percentage(0) == '0'

    def test_parse_cell_value(self):
        assert parse_cell_value('25') == 25
        assert parse_cell_value(' 7.5 ') == 7.5
        assert parse_cell_value('abc') is None
        assert parse_cell_value('') is None
        assert parse_cell_value('nan') is None


class TestCommitCell:
    """Test cases for single cell reconciliation"""

    def test_zero_on_empty_cell_issues_no_write(self, session, writer):
        session.update_value("Alice", 3, "0")
        assert session.commit_cell("Alice", 3) is None
        assert writer.calls == []

    def test_positive_value_on_empty_cell_creates_once(self, session, writer):
        session.update_value("Alice", 3, "25")
        outcome = session.commit_cell("Alice", 3)

        assert writer.calls == [('create', 1, 2, 25.0, 3, 2026)]
        assert outcome.action == 'created'
        assert outcome.allocation_id == 101

        # The new id is remembered, so leaving the cell again writes nothing
        assert session.commit_cell("Alice", 3) is None
        assert len(writer.calls) == 1

    def test_non_numeric_on_empty_cell_issues_no_write(self, session, writer):
        session.update_value("Alice", 4, "abc")
        assert session.commit_cell("Alice", 4) is None
        assert writer.calls == []

    def test_unchanged_existing_cell_issues_no_write(self, session, writer):
        assert session.commit_cell("Alice", 1) is None
        assert session.commit_cell("Alice", 2) is None
        assert writer.calls == []

    def test_changed_existing_cell_updates(self, session, writer):
        session.update_value("Alice", 1, "75")
        outcome = session.commit_cell("Alice", 1)

        assert writer.calls == [('update', 10, '75')]
        assert outcome.action == 'updated'
        assert outcome.percentage == 75
        assert session.commit_cell("Alice", 1) is None

    def test_existing_cell_set_to_zero_updates(self, session, writer):
        session.update_value("Alice", 1, "0")
        session.commit_cell("Alice", 1)
        assert writer.calls == [('update', 10, '0')]

    def test_failed_write_is_reported(self, session, writer):
        writer.fail_months.add(5)
        session.update_value("Alice", 5, "40")
        outcome = session.commit_cell("Alice", 5)

        assert outcome.action == 'failed'
        assert not outcome.ok
        assert outcome.error['type'] == 'ValidationError'
        assert outcome.to_dict()['error']['message'] == "Percentage must be between 0 and 100"

    def test_editing_requires_an_active_row(self, writer):
        session = GridEditSession(writer)
        with pytest.raises(ConflictError):
            session.update_value("Alice", 1, "10")

    def test_unknown_cell(self, session):
        with pytest.raises(NotFoundError):
            session.update_value("Nobody", 1, "10")


class TestNavigate:
    """Test cases for keyboard navigation"""

    items = ["Alice", "Bob", "Carol"]

    @pytest.fixture
    def grid(self, writer):
        session = GridEditSession(writer)
        cells = row_cells(item_name="Alice") + row_cells(item_name="Bob") + row_cells(item_name="Carol")
        session.enter('project-2', cells)
        return session

    @pytest.mark.parametrize('item,month,key,expected', [
        ("Alice", 1, 'ArrowLeft', ("Alice", 12)),
        ("Alice", 5, 'ArrowLeft', ("Alice", 4)),
        ("Alice", 12, 'ArrowRight', ("Alice", 1)),
        ("Alice", 12, 'Tab', ("Alice", 1)),
        ("Bob", 3, 'ArrowUp', ("Alice", 3)),
        ("Alice", 3, 'ArrowUp', ("Alice", 3)),
        ("Bob", 3, 'ArrowDown', ("Carol", 3)),
        ("Bob", 3, 'Enter', ("Carol", 3)),
        ("Carol", 3, 'ArrowDown', ("Carol", 3)),
        ("Bob", 3, 'a', ("Bob", 3))
    ])
    def test_focus_moves(self, grid, item, month, key, expected):
        focus, outcomes = grid.navigate(item, month, key, self.items)
        assert focus == expected
        assert outcomes == []
        assert grid.editing

    def test_leaving_cell_commits_it(self, grid, writer):
        grid.update_value("Bob", 6, "30")
        focus, outcomes = grid.navigate("Bob", 6, 'Tab', self.items)

        assert focus == ("Bob", 7)
        assert [o.action for o in outcomes] == ['created']
        assert writer.calls == [('create', 1, 2, 30.0, 6, 2026)]

    def test_escape_exits(self, grid, writer):
        grid.update_value("Carol", 1, "10")
        focus, outcomes = grid.navigate("Carol", 1, 'Escape', self.items)

        assert focus is None
        assert [o.action for o in outcomes] == ['created']
        assert not grid.editing


class TestExit:
    """Test cases for row exit"""

    def test_exit_writes_only_changed_cells(self, session, writer):
        session.update_value("Alice", 1, "60")     # update
        session.update_value("Alice", 2, "12.5")   # unchanged
        session.update_value("Alice", 3, "0")      # no write
        session.update_value("Alice", 4, "20")     # create
        session.update_value("Alice", 5, "35")     # create

        outcomes = session.exit()

        assert [(o.month, o.action) for o in outcomes] == [(1, 'updated'), (4, 'created'), (5, 'created')]
        assert sorted(call[0] for call in writer.calls) == ['create', 'create', 'update']
        assert session.state == 'idle'
        assert session.cells == {}

    def test_failures_do_not_stop_other_writes(self, writer):
        writer.fail_months.add(4)
        session = GridEditSession(writer, max_workers=4)
        session.enter('project-2', row_cells({1: (666, 50)}))
        session.update_value("Alice", 1, "55")
        session.update_value("Alice", 4, "20")
        session.update_value("Alice", 5, "35")

        outcomes = {o.month: o for o in session.exit()}

        assert outcomes[1].action == 'failed'
        assert outcomes[1].error['type'] == 'UnexpectedError'
        assert outcomes[4].action == 'failed'
        assert outcomes[4].error['type'] == 'ValidationError'
        assert outcomes[5].action == 'created'
        assert not session.editing

    def test_exit_when_idle(self, writer):
        assert GridEditSession(writer).exit() == []

    def test_entering_another_row_exits_current(self, session, writer):
        session.update_value("Alice", 6, "40")
        outcomes = session.enter('project-3', row_cells(item_name="Bob"))

        assert [(o.item_name, o.month) for o in outcomes] == [("Alice", 6)]
        assert session.parent_key == 'project-3'
        assert ("Bob", 1) in session.cells

    def test_reentering_same_row_keeps_pending_values(self, session, writer):
        session.update_value("Alice", 6, "40")
        assert session.enter('project-2', row_cells()) == []
        assert session.value("Alice", 6) == "40"
        assert writer.calls == []

    def test_cells_from_dicts(self, writer):
        session = GridEditSession(writer)
        session.enter('resource-1', [{'item_name': 'Redesign', 'month': 3, 'resource_id': 1, 'project_id': 2,
                                      'year': 2026, 'allocation_id': 9, 'percentage': 50.0}])
        assert session.value('Redesign', 3) == '50'


class TestEngineWriter:
    """Test cases for the database-backed writer"""

    @pytest.fixture
    def app(self):
        app = create_app('testing')
        with app.app_context():
            db.create_all()
            yield app
            db.session.remove()
            db.drop_all()

    def test_session_round_trip(self, app):
        alice = Resource(name="Alice")
        redesign = Project(name="Redesign")
        db.session.add_all([alice, redesign])
        db.session.commit()
        existing = ProjectAllocation(resource_id=alice.id, project_id=redesign.id, month=1, year=2026, percentage=50)
        db.session.add(existing)
        db.session.commit()

        cells = [GridCell("Alice", month, alice.id, redesign.id, 2026) for month in range(2, 13)]
        cells.insert(0, GridCell("Alice", 1, alice.id, redesign.id, 2026, existing.id, 50))

        session = GridEditSession(EngineWriter(app), max_workers=1)
        session.enter(redesign.id, cells)
        session.update_value("Alice", 1, "80")
        session.update_value("Alice", 2, "0")
        session.update_value("Alice", 3, "25")
        session.update_value("Alice", 4, "150")
        outcomes = {o.month: o for o in session.exit()}

        assert set(outcomes) == {1, 3, 4}
        assert outcomes[1].action == 'updated'
        assert outcomes[3].action == 'created'
        assert outcomes[4].action == 'failed'
        assert outcomes[4].error['message'] == "Percentage must be between 0 and 100"

        db.session.expire_all()
        stored = {a.month: a.percentage for a in ProjectAllocation.query.all()}
        assert stored == {1: 80, 3: 25}
