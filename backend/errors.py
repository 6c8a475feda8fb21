"""
Custom error classes and error handling utilities for PodPlanner API
"""

from flask import jsonify
from datetime import date, datetime
import logging
import math

# Set up logger
logger = logging.getLogger(__name__)


class PodPlannerError(Exception):
    """Base exception class for PodPlanner application"""

    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        """Structured failure result: kind, message and optional details"""
        data = {
            'type': self.__class__.__name__,
            'message': self.message
        }
        if self.payload:
            data['details'] = self.payload
        return data


class ValidationError(PodPlannerError):
    """Raised when input validation fails"""

    def __init__(self, message, field=None):
        super().__init__(message, 400, {'field': field} if field else None)
        self.field = field


class NotFoundError(PodPlannerError):
    """Raised when a requested resource is not found"""

    def __init__(self, resource_type, resource_id=None):
        message = f"{resource_type} not found"
        if resource_id is not None:
            message += f" with id {resource_id}"
        super().__init__(message, 404)


class ConflictError(PodPlannerError):
    """Raised when an operation would result in a conflict"""

    def __init__(self, message, status_code=409):
        super().__init__(message, status_code)


class DuplicateError(ConflictError):
    """Raised when a role or skill name is already taken"""

    def __init__(self, message):
        super().__init__(message, 400)


class DependencyError(PodPlannerError):
    """Raised when a delete is blocked by records that still reference the target"""

    def __init__(self, message, count):
        super().__init__(message, 400, {'count': count})
        self.count = count


class PersistenceError(PodPlannerError):
    """Raised when the database cannot complete an operation"""

    def __init__(self, message="Database operation failed"):
        super().__init__(message, 500)


def register_error_handlers(app):
    """Register error handlers with the Flask app"""

    @app.errorhandler(PodPlannerError)
    def handle_pod_planner_error(error):
        """Handle custom PodPlanner errors"""
        logger.warning(f"PodPlanner Error: {error.message}", extra={
            'status_code': error.status_code,
            'payload': error.payload
        })

        return jsonify({'error': error.to_dict()}), error.status_code

    @app.errorhandler(400)
    def handle_bad_request(error):
        """Handle 400 Bad Request errors"""
        logger.warning(f"Bad Request: {error.description}")
        return jsonify({
            'error': {
                'type': 'BadRequest',
                'message': error.description or 'Bad request'
            }
        }), 400

    @app.errorhandler(404)
    def handle_not_found(error):
        """Handle 404 Not Found errors"""
        logger.info(f"Not Found: {error.description}")
        return jsonify({
            'error': {
                'type': 'NotFound',
                'message': error.description or 'Resource not found'
            }
        }), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        """Handle 405 Method Not Allowed errors"""
        logger.warning(f"Method Not Allowed: {error.description}")
        return jsonify({
            'error': {
                'type': 'MethodNotAllowed',
                'message': 'Method not allowed for this endpoint'
            }
        }), 405

    @app.errorhandler(422)
    def handle_unprocessable_entity(error):
        """Handle 422 Unprocessable Entity errors"""
        logger.warning(f"Unprocessable Entity: {error.description}")
        return jsonify({
            'error': {
                'type': 'UnprocessableEntity',
                'message': error.description or 'Unprocessable entity'
            }
        }), 422

    @app.errorhandler(429)
    def handle_rate_limited(error):
        """Handle 429 Too Many Requests errors"""
        logger.warning(f"Rate limit exceeded: {error.description}")
        return jsonify({
            'error': {
                'type': 'TooManyRequests',
                'message': 'Rate limit exceeded. Please slow down.'
            }
        }), 429

    @app.errorhandler(500)
    def handle_internal_server_error(error):
        """Handle 500 Internal Server Error"""
        logger.error(f"Internal Server Error: {error.description}", exc_info=True)
        return jsonify({
            'error': {
                'type': 'InternalServerError',
                'message': 'An unexpected error occurred. Please try again later.'
            }
        }), 500

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        """Handle unexpected errors"""
        logger.error(f"Unexpected Error: {str(error)}", exc_info=True)
        return jsonify({
            'error': {
                'type': 'UnexpectedError',
                'message': 'An unexpected error occurred. Please contact support if this persists.'
            }
        }), 500


def validate_required(data, fields):
    """Validate that required fields are present in data"""
    missing = []
    for field in fields:
        if field not in data or data[field] is None or (isinstance(data[field], str) and data[field].strip() == ''):
            missing.append(field)

    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def validate_date_range(start_date, end_date, start_field="start_date", end_field="end_date"):
    """Validate date range logic"""
    if start_date and end_date:
        if start_date > end_date:
            raise ValidationError(f"{end_field} must not be before {start_field}", end_field)


def validate_non_negative_number(value, field_name):
    """Validate that a value is a number >= 0 and return it as a float"""
    try:
        num = float(value)
    except (ValueError, TypeError):
        raise ValidationError(f"{field_name} must be a valid number", field_name)
    if math.isnan(num) or math.isinf(num) or num < 0:
        raise ValidationError(f"{field_name} must be a non-negative number", field_name)
    return num


def validate_enum(value, allowed_values, field_name):
    """Validate that a value is in an allowed set"""
    if value not in allowed_values:
        raise ValidationError(f"{field_name} must be one of: {', '.join(allowed_values)}", field_name)


def coerce_percentage(value, field_name='percentage'):
    """Coerce a numeric-like value to a percentage in [0, 100]"""
    if isinstance(value, bool):
        raise ValidationError("Percentage must be between 0 and 100", field_name)
    try:
        num = float(value)
    except (ValueError, TypeError):
        num = math.nan
    if math.isnan(num) or num < 0 or num > 100:
        raise ValidationError("Percentage must be between 0 and 100", field_name)
    return num


def coerce_int(value, field_name, minimum=None, maximum=None, message=None):
    """Coerce a numeric-like value to an int, optionally bounded"""
    message = message or f"{field_name} must be a whole number"
    if isinstance(value, bool):
        raise ValidationError(message, field_name)
    try:
        num = float(value)
    except (ValueError, TypeError):
        raise ValidationError(message, field_name)
    if math.isnan(num) or math.isinf(num) or num != int(num):
        raise ValidationError(message, field_name)
    num = int(num)
    if (minimum is not None and num < minimum) or (maximum is not None and num > maximum):
        raise ValidationError(message, field_name)
    return num


def coerce_month(value):
    """Coerce a numeric-like value to a month number in [1, 12]"""
    return coerce_int(value, 'month', 1, 12, "Month must be between 1 and 12")


def coerce_year(value):
    """Coerce a numeric-like value to a year"""
    return coerce_int(value, 'year', 1, 9999, "Year must be a valid year")


def safe_db_operation(operation_func, error_message="Database operation failed"):
    """Safely execute database operations with error handling"""
    from db import db
    try:
        return operation_func()
    except PodPlannerError:
        db.session.rollback()
        raise
    except Exception as e:
        db.session.rollback()
        logger.error(f"Database operation failed: {str(e)}")
        raise PersistenceError(error_message) from e


def parse_iso_date(value, field_name):
    """Parse an ISO date or datetime string into a local calendar date"""
    if value is None or (isinstance(value, str) and value.strip() == ''):
        return None
    if isinstance(value, datetime):
        return value.astimezone().date() if value.tzinfo else value.date()
    if isinstance(value, date):
        return value
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError(f"Invalid date format for {field_name}", field_name)
    # Timezone-aware timestamps are compared in the server's local time zone
    return parsed.astimezone().date() if parsed.tzinfo else parsed.date()
