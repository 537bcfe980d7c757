"""Analytics Service HTTP Handler - zone analytics API.

Thin adapter over AnalyticsPipeline. Year-scoped endpoints require
academic_year (query string or JSON body) and answer 400 without it.

Endpoints:
- GET /health - Health check
- GET /ready - Readiness check
- GET /analytics/overview - College-wide zone counts
- GET /analytics/campus/<campus> - Campus detail
- GET /analytics/campus/<campus>/grade/<grade> - Grade detail
- GET /analytics/class/<class_id> - Class detail with students
- GET /analytics/subject/<subject> - Subject detail
- GET /analytics/subjects - Subjects with analytics
- GET /analytics/students - Filtered student search
- GET /analytics/student/<id> - Student analytics document
- GET /analytics/student/<id>/matrix - Performance matrix
- GET /analytics/student/<id>/graph - Graph data
- POST /analytics/calculate/student/<id> - Recalculate one student
- POST /analytics/calculate/all - Recalculate every admitted student
- POST /analytics/refresh/statistics - Regenerate statistics
- POST /analytics/refresh/all - Validate, recalculate and regenerate
- GET /analytics/class-assignment/statistics - Assignment coverage
- POST /analytics/class-assignment/assign-all - Assign unassigned students
- POST /analytics/class-assignment/assign-selected - Assign given students
- GET /analytics/data-quality/report - Data quality report
- POST /analytics/data-quality/validate-student/<id> - Validate and fix
- GET /analytics/export/student/<id> - Student export
- GET /analytics/export/class/<id> - Class export
- GET /analytics/export/statistics - Statistics export
"""
import logging
import os
from typing import Any, Optional

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from zonetrack.shared.database import NotFoundError, connection_manager_from_env
from zonetrack.shared.models import CalculationTrigger
from .analytics_repository import student_analytics_to_json
from .config import AnalyticsConfig
from .pipeline import AnalyticsPipeline

logger = logging.getLogger(__name__)

app = Flask(__name__)


class MissingParameterError(ValueError):
    """A required request parameter is absent."""


# Global handler instance
_handler: Optional[AnalyticsPipeline] = None


def get_handler() -> AnalyticsPipeline:
    """Get or create the global pipeline.

    Uses PostgreSQL when DB_SECRET_ARN or DB_HOST is set, in-memory
    storage otherwise.
    """
    global _handler
    if _handler is None:
        connection_manager = connection_manager_from_env(AnalyticsConfig.from_env().batch_size)
        _handler = AnalyticsPipeline.from_env(connection_manager)
    return _handler


def set_handler(handler: Optional[AnalyticsPipeline]) -> None:
    """Set the global pipeline (for testing)."""
    global _handler
    _handler = handler


def _param(name: str, default: Any = None) -> Any:
    value = request.args.get(name)
    if value is None:
        body = request.get_json(silent=True) or {}
        value = body.get(name, default)
    return value


def _academic_year() -> str:
    academic_year = _param("academic_year")
    if not academic_year:
        raise MissingParameterError("academic_year is required")
    return academic_year


@app.errorhandler(NotFoundError)
def handle_not_found(error: NotFoundError):
    return jsonify({"error": str(error), "code": error.code}), 404


@app.errorhandler(ValueError)
def handle_bad_request(error: ValueError):
    return jsonify({
        "error": str(error),
        "code": getattr(error, "code", "bad_request"),
    }), 400


@app.errorhandler(Exception)
def handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return error
    logger.error(
        "ANALYTICS_REQUEST_FAILED",
        extra={"path": request.path, "error": str(error)}
    )
    return jsonify({"error": "Internal server error"}), 500


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({"status": "healthy", "service": "analytics-service"})


@app.route("/ready", methods=["GET"])
def ready():
    """Readiness check endpoint."""
    pipeline = get_handler()
    if pipeline.analytics.uses_memory:
        return jsonify({"status": "ready", "service": "analytics-service", "storage": "memory"})

    database = pipeline.analytics.connection_manager.health_check()
    if not database["healthy"]:
        return jsonify({"status": "not_ready", "database": database}), 503
    return jsonify({"status": "ready", "service": "analytics-service", "storage": "postgresql"})


# Statistics

@app.route("/analytics/overview", methods=["GET"])
def overview():
    return jsonify(get_handler().query.get_college_overview(_academic_year()))


@app.route("/analytics/campus/<campus>", methods=["GET"])
def campus_detail(campus: str):
    return jsonify(get_handler().query.get_campus_statistics(campus, _academic_year()))


@app.route("/analytics/campus/<campus>/grade/<grade>", methods=["GET"])
def grade_detail(campus: str, grade: str):
    return jsonify(
        get_handler().query.get_grade_statistics(campus, grade, _academic_year())
    )


@app.route("/analytics/class/<class_id>", methods=["GET"])
def class_detail(class_id: str):
    return jsonify(get_handler().query.get_class_statistics(class_id, _academic_year()))


@app.route("/analytics/subject/<subject>", methods=["GET"])
def subject_detail(subject: str):
    return jsonify(get_handler().query.get_subject_statistics(subject, _academic_year()))


@app.route("/analytics/subjects", methods=["GET"])
def subjects():
    academic_year = _academic_year()
    return jsonify({
        "academic_year": academic_year,
        "subjects": get_handler().query.get_available_subjects(academic_year),
    })


# Students

@app.route("/analytics/students", methods=["GET"])
def students():
    """Filtered student search.

    Query params:
        academic_year: Required
        campus, grade, class_id, zone, subject: Optional filters
    """
    matches = get_handler().query.get_filtered_students(
        _academic_year(),
        campus=request.args.get("campus"),
        grade=request.args.get("grade"),
        class_id=request.args.get("class_id"),
        zone=request.args.get("zone"),
        subject=request.args.get("subject"),
    )
    return jsonify({"count": len(matches), "students": matches})


@app.route("/analytics/student/<student_id>", methods=["GET"])
def student_analytics(student_id: str):
    return jsonify(get_handler().query.get_student_analytics(student_id, _academic_year()))


@app.route("/analytics/student/<student_id>/matrix", methods=["GET"])
def student_matrix(student_id: str):
    return jsonify(get_handler().query.get_performance_matrix(student_id, _academic_year()))


@app.route("/analytics/student/<student_id>/graph", methods=["GET"])
def student_graph(student_id: str):
    return jsonify(get_handler().query.get_graph_data(student_id, _academic_year()))


# Recalculation

@app.route("/analytics/calculate/student/<student_id>", methods=["POST"])
def calculate_student(student_id: str):
    """Recalculate one student.

    Body / query params:
        academic_year: Required
        trigger: Optional (manual, automatic, new_result, batch_update)
    """
    academic_year = _academic_year()
    trigger = CalculationTrigger(_param("trigger", CalculationTrigger.MANUAL.value))
    analytics = get_handler().builder.calculate_for_student(
        student_id, academic_year, trigger
    )
    return jsonify(student_analytics_to_json(analytics))


@app.route("/analytics/calculate/all", methods=["POST"])
def calculate_all():
    result = get_handler().builder.calculate_all_student_analytics(_academic_year())
    return jsonify(result.to_dict())


@app.route("/analytics/refresh/statistics", methods=["POST"])
def refresh_statistics():
    result = get_handler().aggregation.refresh_all_statistics(_academic_year())
    return jsonify(result.to_dict())


@app.route("/analytics/refresh/all", methods=["POST"])
def refresh_all():
    return jsonify(get_handler().force_refresh_analytics(_academic_year()))


# Class assignment

@app.route("/analytics/class-assignment/statistics", methods=["GET"])
def assignment_statistics():
    return jsonify(get_handler().assignment.get_assignment_statistics())


@app.route("/analytics/class-assignment/assign-all", methods=["POST"])
def assign_all():
    return jsonify(get_handler().assignment.assign_all_unassigned_students().to_dict())


@app.route("/analytics/class-assignment/assign-selected", methods=["POST"])
def assign_selected():
    """Assign the given students.

    Body:
        student_ids: List of student ids
    """
    data = request.get_json(silent=True) or {}
    student_ids = data.get("student_ids")
    if not isinstance(student_ids, list) or not student_ids:
        return jsonify({"error": "student_ids must be a non-empty list"}), 400
    return jsonify(get_handler().assignment.assign_selected_students(student_ids).to_dict())


# Data quality

@app.route("/analytics/data-quality/report", methods=["GET"])
def data_quality_report():
    return jsonify(get_handler().validator.get_data_quality_report())


@app.route("/analytics/data-quality/validate-student/<student_id>", methods=["POST"])
def validate_student(student_id: str):
    return jsonify(get_handler().validator.validate_and_fix(student_id).to_dict())


# Exports

@app.route("/analytics/export/student/<student_id>", methods=["GET"])
def export_student(student_id: str):
    return jsonify(get_handler().exporter.export_student_analytics(
        student_id,
        _academic_year(),
        request.args.get("format", "json"),
    ))


@app.route("/analytics/export/class/<class_id>", methods=["GET"])
def export_class(class_id: str):
    return jsonify(get_handler().exporter.export_class_analytics(
        class_id,
        _academic_year(),
        request.args.get("format", "json"),
    ))


@app.route("/analytics/export/statistics", methods=["GET"])
def export_statistics():
    """Export zone statistics.

    Query params:
        academic_year: Required
        type: overall (default) or subject
        subject: Subject name for subject statistics
        format: json (default) or csv
    """
    return jsonify(get_handler().exporter.export_zone_statistics(
        _academic_year(),
        statistic_type=request.args.get("type", "overall"),
        subject_name=request.args.get("subject"),
        fmt=request.args.get("format", "json"),
    ))


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    port = int(os.getenv("PORT", "8080"))
    app.run(host="0.0.0.0", port=port)
