"""
Analysis orchestrator — queue multi-step analysis workflows over the
table, column, row and visualization agents.

A workflow is an ordered list of ``(agent, action, required)`` steps.
``execute_workflow`` enqueues a task and returns its id immediately; a
background worker drains the FIFO queue one task at a time inside an
application context.  With ``ORCHESTRATOR_AUTO_PROCESS`` off (tests),
call :meth:`AnalysisOrchestrator.process_queue` to run queued tasks
synchronously.

The single instance lives in ``app.extensions`` and is bound with
``init_app``, so this module must not import ``app.extensions`` itself.
"""

import copy
import logging
import secrets
import string
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

from app.services import column_service, row_service, table_service, visualization_service

logger = logging.getLogger(__name__)

AGENT_CAPABILITIES = {
    "tableData": (
        "parse_table",
        "analyze_table",
        "matrix_operations",
        "correlation_analysis",
        "data_validation",
        "format_conversion",
    ),
    "column": (
        "column_analysis",
        "statistical_analysis",
        "pattern_detection",
        "anomaly_detection",
        "distribution_analysis",
        "quality_assessment",
    ),
    "row": (
        "row_analysis",
        "similarity_detection",
        "profiling",
        "comparison_analysis",
        "anomaly_detection",
        "pattern_recognition",
    ),
    "visualization": ("chart_generation", "diagram_creation"),
}

WORKFLOWS = {
    "comprehensive_analysis": {
        "name": "Comprehensive Data Analysis",
        "description": "Complete analysis of tabular data with visualizations",
        "steps": [
            ("tableData", "parse_table", True),
            ("tableData", "analyze_table", True),
            ("column", "column_analysis", True),
            ("row", "row_analysis", True),
            ("visualization", "chart_generation", False),
            ("visualization", "diagram_creation", False),
        ],
    },
    "quick_analysis": {
        "name": "Quick Data Analysis",
        "description": "Fast analysis with basic insights",
        "steps": [
            ("tableData", "parse_table", True),
            ("tableData", "analyze_table", True),
            ("visualization", "chart_generation", False),
        ],
    },
    "deep_dive": {
        "name": "Deep Dive Analysis",
        "description": "In-depth analysis with pattern detection",
        "steps": [
            ("tableData", "parse_table", True),
            ("tableData", "analyze_table", True),
            ("column", "column_analysis", True),
            ("column", "pattern_detection", True),
            ("row", "row_analysis", True),
            ("row", "similarity_detection", True),
            ("visualization", "chart_generation", False),
            ("visualization", "diagram_creation", False),
        ],
    },
    "visualization_only": {
        "name": "Visualization Only",
        "description": "Generate visualizations from existing data",
        "steps": [
            ("visualization", "chart_generation", True),
            ("visualization", "diagram_creation", False),
        ],
    },
}

# Estimated milliseconds per step, by agent
STEP_COST_MS = {"tableData": 2000, "column": 1500, "row": 1500, "visualization": 3000}
DEFAULT_STEP_COST_MS = 1000

# column/row action -> analysis type passed to the agent
_COLUMN_ACTIONS = {
    "statistical_analysis": "statistics",
    "pattern_detection": "patterns",
    "anomaly_detection": "anomalies",
    "distribution_analysis": "distribution",
    "quality_assessment": "quality",
}
_ROW_ACTIONS = {
    "similarity_detection": "similarity",
    "profiling": "profile",
    "comparison_analysis": "comparison",
    "anomaly_detection": "anomalies",
    "pattern_recognition": "comprehensive",
}

_ID_ALPHABET = string.digits + string.ascii_lowercase


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_task_id() -> str:
    """``task_<epoch-ms>_<9 base36 chars>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"task_{int(time.time() * 1000)}_{suffix}"


class AnalysisOrchestrator:
    """Task queue and step runner for the analysis agents."""

    def __init__(self) -> None:
        self.app = None
        self.auto_process = True
        self.max_workers = 1
        self.agents = {
            name: {"capabilities": list(caps), "status": "ready", "last_used": None}
            for name, caps in AGENT_CAPABILITIES.items()
        }
        self._queue: deque = deque()
        self._results: dict = {}
        self._lock = threading.Lock()
        self._processing = False
        self._executor: ThreadPoolExecutor | None = None
        self.performance = {
            "totalTasks": 0,
            "completedTasks": 0,
            "failedTasks": 0,
            "averageProcessingTime": 0.0,
        }

    def init_app(self, app) -> None:
        """Bind to an application and read the worker settings."""
        self.app = app
        self.auto_process = app.config.get("ORCHESTRATOR_AUTO_PROCESS", True)
        self.max_workers = max(1, int(app.config.get("ORCHESTRATOR_MAX_WORKERS", 1)))
        app.extensions["orchestrator"] = self

    # =================================================================
    # Queueing
    # =================================================================

    def execute_workflow(self, workflow_name: str, data, options: dict | None = None) -> str:
        """
        Enqueue a workflow run.

        Returns:
            The new task id.

        Raises:
            ValueError: If the workflow does not exist.
        """
        if workflow_name not in WORKFLOWS:
            raise ValueError(f"Workflow '{workflow_name}' not found")

        task = {
            "id": generate_task_id(),
            "workflow": workflow_name,
            "data": data,
            "options": dict(options or {}),
            "status": "pending",
            "startTime": _now_iso(),
            "steps": [],
            "results": {},
        }
        with self._lock:
            self._queue.append(task)
        logger.info("Queued task %s (%s)", task["id"], workflow_name)

        if self.auto_process:
            self._schedule()
        return task["id"]

    def execute_batch(self, requests: list) -> list[dict]:
        """Enqueue several workflows; each entry reports its task id or error."""
        if not isinstance(requests, list) or not requests:
            raise ValueError("Workflows must be a non-empty array")
        outcomes = []
        for index, request in enumerate(requests):
            if not isinstance(request, dict):
                outcomes.append({"index": index, "success": False,
                                 "error": "Each workflow must be an object"})
                continue
            try:
                task_id = self.execute_workflow(
                    request.get("workflow"), request.get("data"), request.get("options")
                )
            except ValueError as exc:
                outcomes.append({"index": index, "success": False, "error": str(exc)})
            else:
                outcomes.append({"index": index, "success": True, "taskId": task_id})
        return outcomes

    def _schedule(self) -> None:
        with self._lock:
            if self._processing:
                return
            self._processing = True
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix="orchestrator"
                )
        self._executor.submit(self._drain_in_context)

    def _drain_in_context(self) -> None:
        try:
            with self.app.app_context():
                self._drain()
        except Exception:  # pylint: disable=broad-except
            logger.exception("Orchestrator worker crashed")
            with self._lock:
                self._processing = False

    def _drain(self) -> int:
        processed = 0
        while True:
            with self._lock:
                if not self._queue:
                    self._processing = False
                    return processed
                task = self._queue.popleft()
                self._results[task["id"]] = task
            self._run_task(task)
            processed += 1

    def process_queue(self) -> int:
        """Run every queued task in the calling thread; return the count."""
        with self._lock:
            if self._processing:
                return 0
            self._processing = True
        return self._drain()

    # =================================================================
    # Execution
    # =================================================================

    def _run_task(self, task: dict) -> None:
        started = time.monotonic()
        task["status"] = "running"
        logger.info("Running task %s", task["id"])

        for agent, action, required in WORKFLOWS[task["workflow"]]["steps"]:
            step = self.run_step(task, agent, action)
            task["steps"].append(step)
            task["results"].setdefault(agent, {})[action] = step.get("data")
            if step["status"] == "failed" and required:
                task["status"] = "failed"
                task["error"] = f"Required step {agent}.{action} failed: {step['error']}"
                break

        if task["status"] != "failed":
            task["status"] = "completed"
        task["endTime"] = _now_iso()
        task["duration"] = int((time.monotonic() - started) * 1000)
        self._update_performance(task)

        if task["status"] == "failed":
            logger.warning("Task %s failed: %s", task["id"], task["error"])
        else:
            logger.info("Task %s completed in %d ms", task["id"], task["duration"])

    def run_step(self, task: dict, agent: str, action: str) -> dict:
        """Run one step against the task's data and record the outcome."""
        started = time.monotonic()
        record = {"agent": agent, "action": action}
        try:
            if agent not in self.agents:
                raise ValueError(f"Agent '{agent}' not found")
            if action not in self.agents[agent]["capabilities"]:
                raise ValueError(f"Agent '{agent}' cannot perform action '{action}'")
            self.agents[agent]["status"] = "busy"
            record["data"] = self._dispatch(task, agent, action)
            record["status"] = "success"
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Step %s.%s failed: %s", agent, action, exc)
            record["error"] = str(exc)
            record["status"] = "failed"
        finally:
            if agent in self.agents:
                self.agents[agent]["status"] = "ready"
                self.agents[agent]["last_used"] = _now_iso()
        record["duration"] = int((time.monotonic() - started) * 1000)
        return record

    def run_agent(self, agent: str, action: str, data, options: dict | None = None) -> dict:
        """Run a single agent action synchronously, outside any workflow."""
        task = {"workflow": None, "data": data, "options": dict(options or {}), "results": {}}
        return self.run_step(task, agent, action)

    @staticmethod
    def _rows(task: dict):
        parsed = task["results"].get("tableData", {}).get("parse_table")
        if parsed:
            return parsed["data"]
        return task["data"]

    def _dispatch(self, task: dict, agent: str, action: str):
        options = task["options"]
        if agent == "tableData":
            return self._table_step(task, action, options)
        if agent == "column":
            rows = self._rows(task)
            table_service.validate_table_structure(rows)
            column = options.get("column_name") or next(iter(rows[0]), None)
            analysis_type = _COLUMN_ACTIONS.get(
                action, options.get("column_analysis_type", "comprehensive")
            )
            return column_service.analyze_column(rows, column, analysis_type)
        if agent == "row":
            rows = self._rows(task)
            analysis_type = _ROW_ACTIONS.get(
                action, options.get("row_analysis_type", "comprehensive")
            )
            return row_service.analyze_row(rows, options.get("row_index", 0), analysis_type)
        return self._visualization_step(task, action, options)

    def _table_step(self, task: dict, action: str, options: dict):
        if action == "parse_table":
            return table_service.parse_table_data(task["data"], options.get("format", "auto"))
        if action == "analyze_table":
            return table_service.analyze_table(
                self._rows(task), options.get("analysis_type", "comprehensive")
            )
        if action == "matrix_operations":
            data = task["data"] if isinstance(task["data"], dict) else {}
            return table_service.matrix_multiply(data.get("matrix_a"), data.get("matrix_b"))
        if action == "correlation_analysis":
            return table_service.correlation_matrix(self._rows(task))
        if action == "data_validation":
            return table_service.validate_table(self._rows(task))
        return table_service.table_to_matrix(
            self._rows(task), bool(options.get("include_headers"))
        )

    def _visualization_step(self, task: dict, action: str, options: dict):
        rows = self._rows(task)
        analysis = self._analysis_context(task)
        if action == "chart_generation":
            table_service.validate_table_structure(rows)
            chart_options = {**self._default_axes(rows, analysis), **options}
            chart_options["type"] = options.get("chart_type", "bar")
            chart_options.setdefault("title", "Data Visualization")
            return visualization_service.generate_chart(rows, chart_options, analysis)

        diagram = options.get("diagram_data") or self._workflow_diagram(task)
        return visualization_service.generate_diagram(
            diagram,
            {
                "type": options.get("diagram_type", "process"),
                "title": options.get("title") or "Process Diagram",
            },
            analysis,
        )

    @staticmethod
    def _analysis_context(task: dict) -> dict:
        """Earlier table, column and row results handed to visualizations."""
        results = task["results"]
        return {
            "analysis": results.get("tableData", {}).get("analyze_table"),
            "columnAnalysis": results.get("column", {}).get("column_analysis"),
            "rowAnalysis": results.get("row", {}).get("row_analysis"),
        }

    @staticmethod
    def _default_axes(rows: list[dict], analysis: dict) -> dict:
        """
        First column as labels; values from the analyzed column when it
        is numeric, else the first numeric column.
        """
        columns = list(rows[0].keys())
        numeric = [
            c for c in columns
            if any(isinstance(r.get(c), (int, float)) and not isinstance(r.get(c), bool)
                   for r in rows)
        ]
        x_field = columns[0] if columns else "x"
        analyzed = (analysis.get("columnAnalysis") or {}).get("columnName")
        if analyzed in numeric and analyzed != x_field:
            return {"x_field": x_field, "y_field": analyzed}
        y_candidates = [c for c in numeric if c != x_field] or numeric
        return {"x_field": x_field, "y_field": y_candidates[0] if y_candidates else x_field}

    @staticmethod
    def _workflow_diagram(task: dict) -> dict:
        """A process diagram of the workflow's steps and their outcomes so far."""
        steps = WORKFLOWS[task["workflow"]]["steps"] if task.get("workflow") else []
        outcomes = {(s["agent"], s["action"]): s["status"] for s in task.get("steps", [])}
        nodes = [
            {
                "id": f"step_{i}",
                "label": f"{agent}: {action} ({outcomes.get((agent, action), 'pending')})",
            }
            for i, (agent, action, _) in enumerate(steps)
        ]
        edges = [
            {"from": f"step_{i}", "to": f"step_{i + 1}"} for i in range(len(nodes) - 1)
        ]
        return {"nodes": nodes, "edges": edges}

    def _update_performance(self, task: dict) -> None:
        with self._lock:
            perf = self.performance
            perf["totalTasks"] += 1
            if task["status"] == "completed":
                perf["completedTasks"] += 1
                done = perf["completedTasks"]
                perf["averageProcessingTime"] = (
                    perf["averageProcessingTime"] * (done - 1) + task["duration"]
                ) / done
            else:
                perf["failedTasks"] += 1

    # =================================================================
    # Inspection
    # =================================================================

    def get_task_status(self, task_id: str):
        """The task, ``{"status": "queued", "task"}`` when waiting, or None."""
        with self._lock:
            task = self._results.get(task_id)
            if task is not None:
                return copy.copy(task)
            for queued in self._queue:
                if queued["id"] == task_id:
                    return {"status": "queued", "task": copy.copy(queued)}
        return None

    def get_all_tasks(self, status: str | None = None, limit: int = 50, offset: int = 0) -> dict:
        """Queued tasks first, then started ones in start order."""
        with self._lock:
            tasks = [{**task, "status": "queued"} for task in self._queue]
            tasks += [copy.copy(task) for task in self._results.values()]
        if status:
            tasks = [task for task in tasks if task["status"] == status]
        return {
            "tasks": tasks[offset: offset + limit],
            "total": len(tasks),
            "limit": limit,
            "offset": offset,
        }

    def cancel_task(self, task_id: str) -> bool:
        """Remove a still-queued task; running or finished tasks stay."""
        with self._lock:
            for queued in self._queue:
                if queued["id"] == task_id:
                    self._queue.remove(queued)
                    queued["status"] = "cancelled"
                    logger.info("Cancelled task %s", task_id)
                    return True
        return False

    def get_agent_status(self) -> dict:
        return {
            name: {
                "capabilities": agent["capabilities"],
                "status": agent["status"],
                "lastUsed": agent["last_used"],
            }
            for name, agent in self.agents.items()
        }

    @staticmethod
    def estimate_workflow_time(workflow: dict) -> int:
        return sum(STEP_COST_MS.get(agent, DEFAULT_STEP_COST_MS) for agent, _, _ in workflow["steps"])

    def get_available_workflows(self) -> dict:
        return {
            key: {
                "name": workflow["name"],
                "description": workflow["description"],
                "steps": [
                    {"agent": agent, "action": action, "required": required}
                    for agent, action, required in workflow["steps"]
                ],
                "estimatedTime": self.estimate_workflow_time(workflow),
            }
            for key, workflow in WORKFLOWS.items()
        }

    def get_performance(self) -> dict:
        with self._lock:
            return dict(self.performance)

    def get_stats(self) -> dict:
        with self._lock:
            queued = len(self._queue)
            by_status: dict = {}
            for task in self._results.values():
                by_status[task["status"]] = by_status.get(task["status"], 0) + 1
        return {
            "performance": self.get_performance(),
            "queueLength": queued,
            "storedResults": sum(by_status.values()),
            "tasksByStatus": by_status,
            "agents": self.get_agent_status(),
        }

    def health_check(self) -> dict:
        with self._lock:
            queued = len(self._queue)
        return {
            "status": "healthy",
            "agents": {name: "healthy" for name in self.agents},
            "workflows": len(WORKFLOWS),
            "queue": queued,
            "autoProcess": self.auto_process,
            "performance": self.get_performance(),
        }

    def cleanup(self) -> dict:
        """Drop queued tasks and stored results."""
        with self._lock:
            cleared = {"queued": len(self._queue), "results": len(self._results)}
            self._queue.clear()
            self._results.clear()
        logger.info(
            "Orchestrator cleanup removed %d queued tasks and %d results",
            cleared["queued"],
            cleared["results"],
        )
        return cleared
