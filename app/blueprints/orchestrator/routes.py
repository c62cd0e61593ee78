"""
Routes for the analysis orchestrator.

Workflows run asynchronously: ``/execute`` answers 202 with a task id
that clients poll through ``/task/<task_id>``.
"""

from flask import jsonify, request
from flask_login import login_required

from app.blueprints.orchestrator import bp
from app.errors import NotFoundError
from app.extensions import orchestrator
from app.responses import get_json_body, require_fields, success


@bp.route("/execute", methods=["POST"])
@login_required
def execute():
    """Queue ``workflow`` over ``data`` with optional ``options``."""
    payload = get_json_body()
    require_fields(payload, "workflow", "data")
    task_id = orchestrator.execute_workflow(
        payload["workflow"], payload["data"], payload.get("options")
    )
    return success(
        {"taskId": task_id, "workflow": payload["workflow"], "status": "queued"},
        message="Workflow queued successfully",
        status_code=202,
    )


@bp.route("/batch", methods=["POST"])
@bp.route("/batch-execute", methods=["POST"])
@login_required
def batch_execute():
    payload = get_json_body()
    outcomes = orchestrator.execute_batch(payload.get("workflows"))
    queued = sum(1 for outcome in outcomes if outcome["success"])
    return success(
        {"results": outcomes, "queued": queued, "failed": len(outcomes) - queued},
        status_code=202,
    )


@bp.route("/agent/<agent>/<action>", methods=["POST"])
@login_required
def run_agent(agent, action):
    """Run one agent action synchronously and return the step record."""
    payload = get_json_body()
    require_fields(payload, "data")
    step = orchestrator.run_agent(agent, action, payload["data"], payload.get("options"))
    if step["status"] == "failed":
        body = {"status": "fail", "message": "Agent action failed", "data": {"step": step}}
        return jsonify(body), 422
    return success({"step": step})


@bp.route("/task/<task_id>")
@login_required
def get_task(task_id):
    task = orchestrator.get_task_status(task_id)
    if task is None:
        raise NotFoundError("Task not found")
    return success({"task": task})


@bp.route("/tasks")
@login_required
def list_tasks():
    limit = min(max(request.args.get("limit", 50, type=int) or 50, 1), 200)
    offset = max(request.args.get("offset", 0, type=int) or 0, 0)
    return success(
        orchestrator.get_all_tasks(
            status=request.args.get("status") or None, limit=limit, offset=offset
        )
    )


@bp.route("/task/<task_id>", methods=["DELETE"])
@login_required
def cancel_task(task_id):
    """Cancel a task that is still queued."""
    if not orchestrator.cancel_task(task_id):
        raise NotFoundError("Task not found or cannot be cancelled")
    return success(message="Task cancelled successfully")


@bp.route("/agents")
@login_required
def agents():
    return success({"agents": orchestrator.get_agent_status()})


@bp.route("/workflows")
@login_required
def workflows():
    return success({"workflows": orchestrator.get_available_workflows()})


@bp.route("/performance")
@login_required
def performance():
    return success({"performance": orchestrator.get_performance()})


@bp.route("/stats")
@login_required
def stats():
    return success(orchestrator.get_stats())


@bp.route("/health")
def health():
    return success(orchestrator.health_check())


@bp.route("/cleanup", methods=["POST"])
@login_required
def cleanup():
    return success({"cleared": orchestrator.cleanup()}, message="Cleanup completed")
