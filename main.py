"""MCP server exposing Speck-It Autopilot workflow tools."""

from __future__ import annotations

from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from speckit_autopilot.config import load_settings
from speckit_autopilot.speckit_logging import setup_logging
from speckit_autopilot.workflow import WorkflowManager

mcp = FastMCP("speckit-autopilot")


def _manager() -> WorkflowManager:
    return WorkflowManager(load_settings())


@mcp.tool()
def speckit_start(feature_dir: str, feature_description: str = "") -> Dict[str, Any]:
    """STEP 1: Start (or restart) workflow tracking for a feature directory.
    Any previously stored progress for the directory is discarded."""

    return _manager().start_feature(feature_dir, feature_description)


@mcp.tool()
def speckit_record_step(
    feature_dir: str,
    step: str,
    data: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Record that a pipeline step (specify, clarify, plan, tasks, implement, review) finished.
    The supplied data is merged into what was previously stored for that step."""

    return _manager().record_step(feature_dir, step, data)


@mcp.tool()
def speckit_tasks(feature_dir: str) -> Dict[str, Any]:
    """STEP 4: Prepare tasks.md for the feature and report task and phase counts.
    Prerequisites: spec.md and plan.md exist in the feature directory."""

    return _manager().generate_tasks(feature_dir)


@mcp.tool()
def speckit_list_tasks(feature_dir: str) -> Dict[str, Any]:
    """List every task in tasks.md with its phase, parallel flag and story."""

    return _manager().list_tasks(feature_dir)


@mcp.tool()
def speckit_implement(feature_dir: str) -> Dict[str, Any]:
    """STEP 5: Report the tasks still to implement. Execute all of them without
    interruptions, calling speckit_complete_task after each one."""

    return _manager().implement_status(feature_dir)


@mcp.tool()
def speckit_complete_task(feature_dir: str, task_id: str) -> Dict[str, Any]:
    """Mark a task complete in tasks.md and record implementation progress.
    The response says whether the task was found and whether the file changed."""

    return _manager().complete_task(feature_dir, task_id)


@mcp.tool()
def speckit_status(feature_dir: str) -> Dict[str, Any]:
    """Show stored workflow progress and the step to resume from."""

    return _manager().workflow_status(feature_dir)


@mcp.tool()
def speckit_finalize(feature_dir: str) -> Dict[str, Any]:
    """STEP 6+: Mark the workflow complete once every task is done and review has run."""

    return _manager().finalize_feature(feature_dir)


def main() -> None:
    settings = load_settings()
    setup_logging(settings.log_level, settings.log_file)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
