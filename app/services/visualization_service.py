"""
Visualization service — render Chart.js charts and Graphviz diagrams as
standalone HTML files.

Files are written under ``VISUALIZATION_FOLDER`` in one sub-folder per
kind (``charts/``, ``diagrams/``).  HTML comes from the Jinja templates
in ``app/templates/visualization/``, so callers need an application
context.  Like the other analysis services this module must not import
``app.extensions``.
"""

import logging
import os
import time
import uuid

from flask import current_app, render_template
from werkzeug.utils import secure_filename

from app.errors import NotFoundError

logger = logging.getLogger(__name__)

CHART_TYPES = (
    "bar",
    "line",
    "pie",
    "scatter",
    "bubble",
    "radar",
    "area",
    "histogram",
    "doughnut",
    "polarArea",
)
DIAGRAM_TYPES = ("flowchart", "orgchart", "timeline", "process", "tree")

# kind -> sub-folder
KINDS = {"chart": "charts", "diagram": "diagrams"}

_BASE_COLORS = (
    (54, 162, 235),
    (255, 99, 132),
    (255, 206, 86),
    (75, 192, 192),
    (153, 102, 255),
    (255, 159, 64),
    (199, 199, 199),
    (83, 102, 255),
    (255, 99, 255),
    (99, 255, 132),
)

# Diagram types that read left-to-right rather than top-down
_HORIZONTAL_DIAGRAMS = ("timeline", "process")


def generate_colors(count: int, alpha: float = 1) -> list[str]:
    """Cycle the base palette as ``rgba()`` strings."""
    return [
        "rgba({}, {}, {}, {})".format(*_BASE_COLORS[i % len(_BASE_COLORS)], alpha)
        for i in range(count)
    ]


def _kind_folder(kind: str) -> str:
    if kind not in KINDS:
        raise ValueError(f"Unknown visualization kind: {kind}")
    folder = os.path.join(current_app.config["VISUALIZATION_FOLDER"], KINDS[kind])
    os.makedirs(folder, exist_ok=True)
    return folder


def _write(kind: str, sub_type: str, html: str) -> tuple[str, str]:
    filename = f"{kind}_{sub_type}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}.html"
    path = os.path.join(_kind_folder(kind), filename)
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(html)
    return filename, path


# =====================================================================
# Charts
# =====================================================================


def build_chart_config(data: list[dict], chart_type: str, options: dict) -> dict:
    """
    Build a Chart.js configuration from rows.

    ``x_field`` supplies the labels and ``y_field`` the values.  Scatter
    and bubble charts get ``{x, y}`` points (bubbles add ``r`` from
    ``r_field``, default radius 5).  ``area`` is a filled line chart and
    ``histogram`` a bar chart with touching bars.
    """
    x_field = options.get("x_field", "x")
    y_field = options.get("y_field", "y")
    title = options.get("title")

    if chart_type in ("scatter", "bubble"):
        r_field = options.get("r_field", "r")
        points = []
        for row in data:
            point = {"x": row.get(x_field), "y": row.get(y_field)}
            if chart_type == "bubble":
                point["r"] = row.get(r_field, 5)
            points.append(point)
        chart_data = {"datasets": [{"label": options.get("label", "Data"), "data": points}]}
    else:
        chart_data = {
            "labels": [row.get(x_field) for row in data],
            "datasets": [{"label": options.get("label", "Data"),
                          "data": [row.get(y_field) for row in data]}],
        }

    dataset = chart_data["datasets"][0]
    dataset["backgroundColor"] = generate_colors(len(data), 0.6)
    dataset["borderColor"] = generate_colors(len(data), 1)
    dataset["borderWidth"] = 2

    js_type = chart_type
    if chart_type == "area":
        js_type = "line"
        dataset["fill"] = True
    elif chart_type == "histogram":
        js_type = "bar"
        dataset["barPercentage"] = 1.0
        dataset["categoryPercentage"] = 1.0

    return {
        "type": js_type,
        "data": chart_data,
        "options": {
            "responsive": True,
            "maintainAspectRatio": False,
            "plugins": {
                "legend": {"display": options.get("show_legend", True) is not False},
                "title": {"display": bool(title), "text": title},
            },
        },
    }


def analysis_insights(analysis: dict | None) -> list[str]:
    """
    One-line findings from earlier analysis results.

    ``analysis`` may hold ``analysis`` (a table analysis),
    ``columnAnalysis`` and ``rowAnalysis``; missing parts are skipped.
    """
    if not analysis:
        return []
    lines = []
    table = analysis.get("analysis") or {}
    for column, stats in (table.get("statistics") or {}).items():
        lines.append(
            f"{column}: mean {stats['mean']:.2f}, range {stats['min']:g} to {stats['max']:g}"
        )
    lines.extend(pattern["description"] for pattern in table.get("patterns") or [])
    if table.get("anomalies"):
        lines.append(f"{len(table['anomalies'])} outliers detected")

    column = analysis.get("columnAnalysis")
    if column:
        meta = column["metadata"]
        lines.append(
            f"Column {column['columnName']}: {meta['type']}, "
            f"{meta.get('completeness', '0.00%')} complete"
        )
    row = analysis.get("rowAnalysis")
    if row:
        similar = row["results"].get("similarity", {}).get("totalSimilar")
        line = f"Row {row['rowIndex']}: {row['metadata']['completeness']} complete"
        if similar is not None:
            line += f", {similar} similar rows"
        lines.append(line)
    return lines


def generate_chart(data, options: dict | None = None, analysis: dict | None = None) -> dict:
    """
    Render a chart to an HTML file.

    Args:
        data:     Non-empty list of row dicts.
        options:  ``type``, ``title``, ``x_field``, ``y_field``, ``label``,
                  ``width``, ``height``, ``show_legend``, ``interactive``.
        analysis: Earlier results summarized on the page, see
                  :func:`analysis_insights`.

    Returns:
        Dict with ``filename``, ``config`` and ``metadata``.

    Raises:
        ValueError: On missing data or an unsupported chart type.
    """
    options = options or {}
    if not isinstance(data, list) or not data or not all(isinstance(r, dict) for r in data):
        raise ValueError("Data is required for chart generation")
    chart_type = options.get("type", "bar")
    if chart_type not in CHART_TYPES:
        raise ValueError(f"Unsupported chart type: {chart_type}")

    title = options.get("title") or "Data Visualization"
    width = int(options.get("width", 800))
    height = int(options.get("height", 600))
    interactive = options.get("interactive", True) is not False

    config = build_chart_config(data, chart_type, options)
    insights = analysis_insights(analysis)
    html = render_template(
        "visualization/chart.html",
        title=title,
        config=config,
        width=width,
        height=height,
        interactive=interactive,
        insights=insights,
    )
    filename, _ = _write("chart", chart_type, html)
    logger.info("Generated %s chart %s (%d points)", chart_type, filename, len(data))

    return {
        "type": "chart",
        "chartType": chart_type,
        "filename": filename,
        "config": config,
        "metadata": {
            "title": title,
            "dimensions": f"{width}x{height}",
            "interactive": interactive,
            "dataPoints": len(data),
            "insights": insights,
        },
    }


# =====================================================================
# Diagrams
# =====================================================================


def _dot_quote(value) -> str:
    return '"' + str(value).replace("\\", "\\\\").replace('"', '\\"') + '"'


def build_dot(nodes: list[dict], edges: list[dict], rankdir: str) -> str:
    """Graphviz DOT source for the nodes and edges."""
    lines = [
        "digraph {",
        f"  rankdir={rankdir};",
        '  node [shape=box, style="rounded,filled", fillcolor="#e1f5fe"];',
    ]
    for node in nodes:
        label = node.get("label", node["id"])
        lines.append(f"  {_dot_quote(node['id'])} [label={_dot_quote(label)}];")
    for edge in edges:
        attrs = f" [label={_dot_quote(edge['label'])}]" if edge.get("label") else ""
        lines.append(f"  {_dot_quote(edge['from'])} -> {_dot_quote(edge['to'])}{attrs};")
    lines.append("}")
    return "\n".join(lines)


def generate_diagram(data, options: dict | None = None, analysis: dict | None = None) -> dict:
    """
    Render a node/edge diagram to an HTML file.

    ``data`` holds ``nodes`` (each with an ``id`` and optional ``label``)
    and ``edges`` (each with ``from`` and ``to``).  ``analysis`` is
    summarized on the page as for charts.

    Raises:
        ValueError: On malformed data or an unsupported diagram type.
    """
    options = options or {}
    if not isinstance(data, dict):
        raise ValueError("Data is required for diagram generation")
    diagram_type = options.get("type", "flowchart")
    if diagram_type not in DIAGRAM_TYPES:
        raise ValueError(f"Unsupported diagram type: {diagram_type}")

    nodes = data.get("nodes") or []
    edges = data.get("edges") or []
    if not isinstance(nodes, list) or not all(isinstance(n, dict) and "id" in n for n in nodes):
        raise ValueError("Diagram nodes must be objects with an id")
    if not isinstance(edges, list) or not all(
        isinstance(e, dict) and "from" in e and "to" in e for e in edges
    ):
        raise ValueError("Diagram edges must be objects with from and to")

    default_layout = "horizontal" if diagram_type in _HORIZONTAL_DIAGRAMS else "vertical"
    layout = options.get("layout", default_layout)
    title = options.get("title") or "Process Diagram"
    config = {
        "type": diagram_type,
        "layout": layout,
        "data": {"nodes": nodes, "edges": edges},
        "dot": build_dot(nodes, edges, "LR" if layout == "horizontal" else "TB"),
        "options": {
            "showLabels": options.get("show_labels", True) is not False,
            "showArrows": options.get("show_arrows", True) is not False,
        },
    }
    insights = analysis_insights(analysis)
    html = render_template(
        "visualization/diagram.html", title=title, config=config, insights=insights
    )
    filename, _ = _write("diagram", diagram_type, html)
    logger.info("Generated %s diagram %s (%d nodes)", diagram_type, filename, len(nodes))

    return {
        "type": "diagram",
        "diagramType": diagram_type,
        "filename": filename,
        "config": config,
        "metadata": {
            "title": title,
            "layout": layout,
            "nodes": len(nodes),
            "edges": len(edges),
            "insights": insights,
        },
    }


# =====================================================================
# Stored files
# =====================================================================


def list_visualizations(kind: str | None = None) -> dict:
    """Stored files per kind, newest first."""
    kinds = [kind] if kind else list(KINDS)
    results = {}
    for name in kinds:
        folder = _kind_folder(name)
        entries = [e for e in os.scandir(folder) if e.is_file()]
        entries.sort(key=lambda e: e.stat().st_mtime, reverse=True)
        results[KINDS[name]] = [
            {"filename": e.name, "type": name, "size": e.stat().st_size} for e in entries
        ]
    return {"items": results, "total": sum(len(files) for files in results.values())}


def get_visualization_path(kind: str, filename: str) -> str:
    """
    Resolve a stored file.

    Raises:
        NotFoundError: If no such file exists.
    """
    safe = secure_filename(filename or "")
    path = os.path.join(_kind_folder(kind), safe)
    if not safe or not os.path.isfile(path):
        raise NotFoundError("Visualization not found")
    return path


def delete_visualization(kind: str, filename: str) -> None:
    path = get_visualization_path(kind, filename)
    os.remove(path)
    logger.info("Deleted %s %s", kind, os.path.basename(path))


def get_statistics() -> dict:
    listing = list_visualizations()
    by_type = {folder: len(files) for folder, files in listing["items"].items()}
    usage = sum(f["size"] for files in listing["items"].values() for f in files)
    return {"total": listing["total"], "byType": by_type, "storageUsage": usage}
