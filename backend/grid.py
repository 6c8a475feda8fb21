"""
Grid reconciliation for the twelve-month allocation editor.

A GridEditSession holds the in-memory snapshot of one row being edited
(one project with its engineers, or one engineer with their projects) and
turns the typed values into the minimal set of allocation writes. Sessions
belong to a single user; nothing here is process global.

Writes go through a writer object exposing create_allocation() and
update_allocation(). EngineWriter binds the allocation engine to a Flask
application so that each worker thread gets its own application context.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
import logging
import math

from errors import PodPlannerError, ConflictError, NotFoundError

logger = logging.getLogger(__name__)

STATE_IDLE = 'idle'
STATE_EDITING = 'editing'

ACTION_CREATED = 'created'
ACTION_UPDATED = 'updated'
ACTION_FAILED = 'failed'

NAVIGATION_KEYS = ('ArrowLeft', 'ArrowRight', 'Tab', 'ArrowUp', 'ArrowDown', 'Enter', 'Escape')


def format_percentage(value):
    """Render a stored percentage the way the editor displays it (50.0 -> '50')"""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return str(value)


def parse_cell_value(text):
    """Parse typed cell text as a number, returning None when it is not one"""
    try:
        value = float(str(text).strip())
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


class GridCell:
    """Snapshot of one month cell of the row being edited"""

    def __init__(self, item_name, month, resource_id, project_id, year, allocation_id=None, percentage=0.0):
        self.item_name = item_name
        self.month = month
        self.resource_id = resource_id
        self.project_id = project_id
        self.year = year
        self.allocation_id = allocation_id
        self.persisted = float(percentage or 0.0)
        self.value = format_percentage(self.persisted)

    @property
    def key(self):
        return (self.item_name, self.month)

    @classmethod
    def from_dict(cls, data):
        return cls(
            item_name=data['item_name'],
            month=data['month'],
            resource_id=data.get('resource_id'),
            project_id=data.get('project_id'),
            year=data.get('year'),
            allocation_id=data.get('allocation_id'),
            percentage=data.get('percentage', 0.0)
        )

    def pending_write(self):
        """
        Decide which write, if any, this cell needs.

        Returns:
            str: 'update', 'create' or None
        """
        text = str(self.value).strip()
        if self.allocation_id is not None:
            return 'update' if text != format_percentage(self.persisted) else None
        parsed = parse_cell_value(text)
        if parsed is not None and parsed > 0 and self.resource_id and self.project_id:
            return 'create'
        return None


class CellOutcome:
    """Result of reconciling one cell"""

    def __init__(self, item_name, month, action, allocation_id=None, percentage=None, error=None):
        self.item_name = item_name
        self.month = month
        self.action = action
        self.allocation_id = allocation_id
        self.percentage = percentage
        self.error = error

    @property
    def ok(self):
        return self.action != ACTION_FAILED

    def to_dict(self):
        data = {
            'item_name': self.item_name,
            'month': self.month,
            'action': self.action,
            'allocation_id': self.allocation_id,
            'percentage': self.percentage
        }
        if self.error:
            data['error'] = self.error
        return data


class EngineWriter:
    """Allocation writer backed by the allocation engine of a Flask app"""

    def __init__(self, app):
        self.app = app

    def create_allocation(self, resource_id, project_id, percentage, month, year):
        from allocations import create_allocation
        with self.app.app_context():
            return create_allocation(resource_id, project_id, percentage, month, year).to_dict()

    def update_allocation(self, allocation_id, percentage):
        from allocations import update_allocation
        with self.app.app_context():
            return update_allocation(allocation_id, percentage=percentage).to_dict()


def _write_cell(writer, cell, action, text):
    """Run one write; returns the stored allocation as a dict"""
    if action == 'update':
        return writer.update_allocation(cell.allocation_id, text)
    return writer.create_allocation(cell.resource_id, cell.project_id, parse_cell_value(text), cell.month, cell.year)


def _error_details(error):
    if isinstance(error, PodPlannerError):
        return error.to_dict()
    return {'type': 'UnexpectedError', 'message': 'An unexpected error occurred while saving the allocation'}


class GridEditSession:
    """Edit state of one user's allocation grid"""

    def __init__(self, writer, max_workers=4):
        self.writer = writer
        self.max_workers = max(1, int(max_workers or 1))
        self.state = STATE_IDLE
        self.parent_key = None
        self.cells = {}

    @property
    def editing(self):
        return self.state == STATE_EDITING

    def enter(self, parent_key, cells):
        """
        Start editing a row.

        Entering a different row while one is being edited exits the current
        row first; re-entering the same row keeps the pending values.

        Args:
            parent_key: Identifier of the row (project or resource id)
            cells: GridCell objects or dicts accepted by GridCell.from_dict

        Returns:
            list: Outcomes of exiting the previously edited row
        """
        if self.editing and self.parent_key == parent_key:
            return []

        outcomes = self.exit() if self.editing else []

        self.cells = {}
        for cell in cells:
            if isinstance(cell, dict):
                cell = GridCell.from_dict(cell)
            self.cells[cell.key] = cell
        self.parent_key = parent_key
        self.state = STATE_EDITING
        return outcomes

    def _cell(self, item_name, month):
        if not self.editing:
            raise ConflictError("No grid row is being edited")
        cell = self.cells.get((item_name, month))
        if cell is None:
            raise NotFoundError("Grid cell", f"{item_name}/{month}")
        return cell

    def update_value(self, item_name, month, text):
        """Record typed text for a cell; nothing is written"""
        self._cell(item_name, month).value = '' if text is None else str(text)

    def value(self, item_name, month):
        return self._cell(item_name, month).value

    def _apply(self, cell, action, stored):
        cell.allocation_id = stored.get('id', cell.allocation_id)
        cell.persisted = float(stored.get('percentage', cell.persisted))
        return CellOutcome(
            cell.item_name, cell.month,
            ACTION_CREATED if action == 'create' else ACTION_UPDATED,
            cell.allocation_id, cell.persisted
        )

    def _failed(self, cell, error):
        if not isinstance(error, PodPlannerError):
            logger.error(f"Grid write failed for {cell.item_name} month {cell.month}: {str(error)}")
        return CellOutcome(cell.item_name, cell.month, ACTION_FAILED, cell.allocation_id, error=_error_details(error))

    def commit_cell(self, item_name, month):
        """
        Reconcile a single cell as focus leaves it.

        Returns:
            CellOutcome or None when the cell needs no write
        """
        cell = self._cell(item_name, month)
        action = cell.pending_write()
        if action is None:
            return None

        text = str(cell.value).strip()
        try:
            stored = _write_cell(self.writer, cell, action, text)
        except Exception as e:
            return self._failed(cell, e)
        return self._apply(cell, action, stored)

    def navigate(self, item_name, month, key, items):
        """
        Move focus with the keyboard.

        The cell being left is committed before focus moves. Months wrap
        around; moving up or down stops at the first and last item. Escape
        exits the row.

        Args:
            item_name: Item of the focused cell
            month: Month of the focused cell
            key: Key name as reported by the browser
            items: Item names of the row in display order

        Returns:
            tuple: (new focus as (item_name, month) or None after Escape,
            list of outcomes)
        """
        self._cell(item_name, month)

        if key == 'Escape':
            return None, self.exit()
        if key not in NAVIGATION_KEYS:
            return (item_name, month), []

        new_item, new_month = item_name, month
        index = items.index(item_name) if item_name in items else 0
        if key == 'ArrowLeft':
            new_month = month - 1 if month > 1 else 12
        elif key in ('ArrowRight', 'Tab'):
            new_month = month + 1 if month < 12 else 1
        elif key == 'ArrowUp':
            if index > 0:
                new_item = items[index - 1]
        elif index < len(items) - 1:
            new_item = items[index + 1]

        outcome = self.commit_cell(item_name, month)
        return (new_item, new_month), [outcome] if outcome else []

    def exit(self):
        """
        Reconcile every cell of the row and return to idle.

        Writes run concurrently and independently: a failed write does not
        stop the others. The session becomes idle only after every write
        has settled.

        Returns:
            list: CellOutcome for each cell that was written or failed,
            ordered by item then month
        """
        if not self.editing:
            return []

        pending = []
        for cell in self.cells.values():
            action = cell.pending_write()
            if action is not None:
                pending.append((cell, action, str(cell.value).strip()))

        outcomes = []
        if pending:
            workers = min(self.max_workers, len(pending))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                future_to_cell = {
                    executor.submit(_write_cell, self.writer, cell, action, text): (cell, action)
                    for cell, action, text in pending
                }

                for future in as_completed(future_to_cell):
                    cell, action = future_to_cell[future]
                    try:
                        outcomes.append(self._apply(cell, action, future.result()))
                    except Exception as e:
                        outcomes.append(self._failed(cell, e))

        failed = sum(1 for outcome in outcomes if not outcome.ok)
        if outcomes:
            logger.info(f"Grid row {self.parent_key} reconciled: {len(outcomes) - failed} write(s), {failed} failure(s)")

        self.state = STATE_IDLE
        self.parent_key = None
        self.cells = {}

        outcomes.sort(key=lambda outcome: (str(outcome.item_name), outcome.month))
        return outcomes
