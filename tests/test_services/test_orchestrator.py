"""
Tests for the analysis orchestrator.

The testing config turns ``ORCHESTRATOR_AUTO_PROCESS`` off, so queued
tasks only run when a test calls ``process_queue()``.  Performance
counters live on the shared instance, so assertions on them compare
before/after values.
"""

import re

import pytest

from app.extensions import orchestrator as _orchestrator
from app.services.orchestrator import generate_task_id


SALES = [
    {"region": "North", "units": 10, "revenue": 100.0},
    {"region": "South", "units": 20, "revenue": 200.0},
    {"region": "East", "units": 30, "revenue": 300.0},
]


@pytest.fixture
def orchestrator(app):
    """The app's orchestrator with an empty queue and result store."""
    with app.app_context():
        _orchestrator.cleanup()
        yield _orchestrator
        _orchestrator.cleanup()


class TestQueueing:
    def test_task_id_format(self):
        assert re.fullmatch(r"task_\d+_[0-9a-z]{9}", generate_task_id())

    def test_unknown_workflow(self, orchestrator):
        with pytest.raises(ValueError, match="Workflow 'nope' not found"):
            orchestrator.execute_workflow("nope", SALES)

    def test_task_is_queued_until_processed(self, orchestrator):
        task_id = orchestrator.execute_workflow("quick_analysis", SALES)
        status = orchestrator.get_task_status(task_id)
        assert status["status"] == "queued"
        assert status["task"]["id"] == task_id

        assert orchestrator.process_queue() == 1
        assert orchestrator.get_task_status(task_id)["status"] == "completed"

    def test_unknown_task(self, orchestrator):
        assert orchestrator.get_task_status("task_0_missing00") is None

    def test_cancel_queued_task(self, orchestrator):
        task_id = orchestrator.execute_workflow("quick_analysis", SALES)
        assert orchestrator.cancel_task(task_id) is True
        assert orchestrator.get_task_status(task_id) is None
        assert orchestrator.cancel_task(task_id) is False

    def test_finished_task_cannot_be_cancelled(self, orchestrator):
        task_id = orchestrator.execute_workflow("quick_analysis", SALES)
        orchestrator.process_queue()
        assert orchestrator.cancel_task(task_id) is False

    def test_batch_reports_each_entry(self, orchestrator):
        outcomes = orchestrator.execute_batch(
            [{"workflow": "quick_analysis", "data": SALES}, {"workflow": "nope"}, "x"]
        )
        assert outcomes[0]["success"] is True
        assert outcomes[0]["taskId"].startswith("task_")
        assert outcomes[1] == {
            "index": 1,
            "success": False,
            "error": "Workflow 'nope' not found",
        }
        assert outcomes[2]["error"] == "Each workflow must be an object"

    def test_batch_requires_entries(self, orchestrator):
        with pytest.raises(ValueError):
            orchestrator.execute_batch([])

    def test_list_tasks(self, orchestrator):
        orchestrator.execute_workflow("quick_analysis", SALES)
        orchestrator.execute_workflow("quick_analysis", SALES)
        orchestrator.process_queue()
        orchestrator.execute_workflow("quick_analysis", SALES)

        listing = orchestrator.get_all_tasks()
        assert listing["total"] == 3
        assert listing["tasks"][0]["status"] == "queued"
        assert orchestrator.get_all_tasks(status="completed")["total"] == 2
        assert len(orchestrator.get_all_tasks(limit=1, offset=1)["tasks"]) == 1

    def test_cleanup_reports_counts(self, orchestrator):
        orchestrator.execute_workflow("quick_analysis", SALES)
        orchestrator.process_queue()
        orchestrator.execute_workflow("quick_analysis", SALES)
        assert orchestrator.cleanup() == {"queued": 1, "results": 1}


class TestWorkflowExecution:
    def test_quick_analysis(self, orchestrator):
        task_id = orchestrator.execute_workflow("quick_analysis", SALES)
        orchestrator.process_queue()
        task = orchestrator.get_task_status(task_id)

        assert task["status"] == "completed"
        assert [s["status"] for s in task["steps"]] == ["success"] * 3
        assert task["results"]["tableData"]["parse_table"]["format"] == "json"
        chart = task["results"]["visualization"]["chart_generation"]
        assert chart["config"]["data"]["labels"] == ["North", "South", "East"]
        assert task["duration"] >= 0
        assert "endTime" in task

    def test_comprehensive_with_column_and_row_options(self, orchestrator):
        task_id = orchestrator.execute_workflow(
            "comprehensive_analysis", SALES, {"column_name": "units", "row_index": 1}
        )
        orchestrator.process_queue()
        task = orchestrator.get_task_status(task_id)

        assert task["status"] == "completed"
        assert task["results"]["column"]["column_analysis"]["columnName"] == "units"
        assert task["results"]["row"]["row_analysis"]["rowIndex"] == 1
        diagram = task["results"]["visualization"]["diagram_creation"]
        assert diagram["metadata"]["nodes"] == 6

    def test_visualizations_use_earlier_results(self, orchestrator):
        task_id = orchestrator.execute_workflow(
            "comprehensive_analysis", SALES, {"column_name": "revenue", "row_index": 0}
        )
        orchestrator.process_queue()
        results = orchestrator.get_task_status(task_id)["results"]["visualization"]

        chart = results["chart_generation"]
        assert chart["config"]["data"]["datasets"][0]["data"] == [100.0, 200.0, 300.0]
        assert "units: mean 20.00, range 10 to 30" in chart["metadata"]["insights"]
        assert "Column revenue: number, 100.00% complete" in chart["metadata"]["insights"]

        diagram = results["diagram_creation"]
        labels = [node["label"] for node in diagram["config"]["data"]["nodes"]]
        assert labels[0] == "tableData: parse_table (success)"
        assert labels[3] == "row: row_analysis (success)"
        assert labels[-1] == "visualization: diagram_creation (pending)"
        assert diagram["metadata"]["insights"] == chart["metadata"]["insights"]

    def test_required_step_failure_stops_task(self, orchestrator):
        task_id = orchestrator.execute_workflow("quick_analysis", "just some words")
        orchestrator.process_queue()
        task = orchestrator.get_task_status(task_id)

        assert task["status"] == "failed"
        assert task["error"].startswith("Required step tableData.parse_table failed:")
        assert len(task["steps"]) == 1

    def test_optional_step_failure_is_tolerated(self, orchestrator):
        task_id = orchestrator.execute_workflow(
            "quick_analysis", SALES, {"chart_type": "hologram"}
        )
        orchestrator.process_queue()
        task = orchestrator.get_task_status(task_id)

        assert task["status"] == "completed"
        assert task["steps"][-1]["status"] == "failed"
        assert "Unsupported chart type" in task["steps"][-1]["error"]

    def test_performance_counters(self, orchestrator):
        before = orchestrator.get_performance()
        orchestrator.execute_workflow("quick_analysis", SALES)
        orchestrator.execute_workflow("quick_analysis", "just some words")
        orchestrator.process_queue()
        after = orchestrator.get_performance()

        assert after["totalTasks"] == before["totalTasks"] + 2
        assert after["completedTasks"] == before["completedTasks"] + 1
        assert after["failedTasks"] == before["failedTasks"] + 1

    def test_stats_group_by_status(self, orchestrator):
        orchestrator.execute_workflow("quick_analysis", SALES)
        orchestrator.process_queue()
        stats = orchestrator.get_stats()
        assert stats["queueLength"] == 0
        assert stats["tasksByStatus"] == {"completed": 1}
        assert set(stats["agents"]) == {"tableData", "column", "row", "visualization"}


class TestAgents:
    def test_column_action_maps_to_analysis_type(self, orchestrator):
        step = orchestrator.run_agent(
            "column", "statistical_analysis", SALES, {"column_name": "units"}
        )
        assert step["status"] == "success"
        assert step["data"]["analysisType"] == "statistics"
        assert step["data"]["results"]["statistics"]["mean"] == pytest.approx(20.0)

    def test_row_out_of_range(self, orchestrator):
        step = orchestrator.run_agent("row", "profiling", SALES, {"row_index": 5})
        assert step["status"] == "failed"
        assert step["error"] == "Invalid row index or data"

    def test_unknown_agent(self, orchestrator):
        step = orchestrator.run_agent("ghost", "haunt", SALES)
        assert step["status"] == "failed"
        assert step["error"] == "Agent 'ghost' not found"

    def test_unsupported_action(self, orchestrator):
        step = orchestrator.run_agent("row", "chart_generation", SALES)
        assert "cannot perform action" in step["error"]

    def test_matrix_operations(self, orchestrator):
        step = orchestrator.run_agent(
            "tableData",
            "matrix_operations",
            {"matrix_a": [[1, 2], [3, 4]], "matrix_b": [[5, 6], [7, 8]]},
        )
        assert step["data"] == [[19.0, 22.0], [43.0, 50.0]]

    def test_agents_return_to_ready(self, orchestrator):
        orchestrator.run_agent("tableData", "data_validation", SALES)
        status = orchestrator.get_agent_status()["tableData"]
        assert status["status"] == "ready"
        assert status["lastUsed"] is not None


class TestCatalogAndHealth:
    def test_estimated_times(self, orchestrator):
        workflows = orchestrator.get_available_workflows()
        assert set(workflows) == {
            "comprehensive_analysis",
            "quick_analysis",
            "deep_dive",
            "visualization_only",
        }
        assert workflows["quick_analysis"]["estimatedTime"] == 7000
        assert workflows["comprehensive_analysis"]["estimatedTime"] == 13000
        assert workflows["visualization_only"]["steps"][0] == {
            "agent": "visualization",
            "action": "chart_generation",
            "required": True,
        }

    def test_health_check(self, orchestrator):
        health = orchestrator.health_check()
        assert health["status"] == "healthy"
        assert health["workflows"] == 4
        assert health["autoProcess"] is False
