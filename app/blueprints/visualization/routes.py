"""
Routes for the visualization blueprint.

Charts and diagrams are rendered to standalone HTML files under
``VISUALIZATION_FOLDER``; ``kind`` in URLs is ``chart`` or ``diagram``.
"""

from flask import request, send_file
from flask_login import login_required

from app.blueprints.visualization import bp
from app.responses import get_json_body, success
from app.services import visualization_service


@bp.route("/chart", methods=["POST"])
@login_required
def create_chart():
    """Render a Chart.js chart from ``data`` and ``options``."""
    payload = get_json_body()
    result = visualization_service.generate_chart(payload.get("data"), payload.get("options"))
    return success({"chart": result}, message="Chart generated successfully", status_code=201)


@bp.route("/diagram", methods=["POST"])
@login_required
def create_diagram():
    """Render a Graphviz diagram from ``data.nodes`` and ``data.edges``."""
    payload = get_json_body()
    result = visualization_service.generate_diagram(payload.get("data"), payload.get("options"))
    return success(
        {"diagram": result}, message="Diagram generated successfully", status_code=201
    )


@bp.route("/list")
@login_required
def list_visualizations():
    return success(visualization_service.list_visualizations(request.args.get("type") or None))


@bp.route("/export/<kind>/<filename>")
@login_required
def export(kind, filename):
    path = visualization_service.get_visualization_path(kind, filename)
    return send_file(path, mimetype="text/html", as_attachment=True, download_name=filename)


@bp.route("/<kind>/<filename>", methods=["DELETE"])
@login_required
def delete(kind, filename):
    visualization_service.delete_visualization(kind, filename)
    return success(message="Visualization deleted successfully")


@bp.route("/stats")
@login_required
def stats():
    return success(visualization_service.get_statistics())


@bp.route("/chart-types")
@login_required
def chart_types():
    return success({"types": list(visualization_service.CHART_TYPES)})


@bp.route("/diagram-types")
@login_required
def diagram_types():
    return success({"types": list(visualization_service.DIAGRAM_TYPES)})
