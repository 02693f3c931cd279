"""
CLI entry point for FlowChord.

`flowchord serve` starts the HTTP API; `flowchord run` executes a workflow
file locally and prints its events.
"""

import asyncio
import json
import sys
from pathlib import Path

import click

from flowchord.config import get_settings
from flowchord.core.types import Workflow
from flowchord.errors.exceptions import FlowChordError
from flowchord.logging import disable_logging
from flowchord.logging_config import setup_logging
from flowchord.services.execution_service import ExecutionService


@click.group()
@click.version_option(version=get_settings().app_version)
def cli():
    """FlowChord - run node/edge workflows of agents, tools and approvals."""
    pass


@cli.command()
@click.option("--host", default=None, help="Bind address (default from settings)")
@click.option("--port", default=None, type=int, help="Port (default from settings)")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host, port, reload):
    """Start the HTTP API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "flowchord.api.app:create_app",
        factory=True,
        host=host or settings.server_host,
        port=port or settings.server_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@cli.command()
@click.argument("workflow_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--input", "input_json", default="{}", help="Workflow input as a JSON object")
@click.option("--mock", default=None, help="Canned agent response (enables the mock LLM)")
@click.option("--quiet", "-q", is_flag=True, help="Only output result JSON")
@click.option("--verbose", "-v", is_flag=True, help="Show engine logging")
def run(workflow_file, input_json, mock, quiet, verbose):
    """Execute WORKFLOW_FILE and print its events as they happen."""
    settings = get_settings()
    if mock is not None:
        settings = settings.model_copy(update={"mock_agent_response": mock})
    if verbose:
        setup_logging("DEBUG", settings.log_format)
    if quiet:
        disable_logging()

    try:
        payload = json.loads(input_json)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not JSON: {e.msg}", param_hint="--input") from e
    if not isinstance(payload, dict):
        raise click.BadParameter("must be a JSON object", param_hint="--input")

    workflow = Workflow.model_validate_json(workflow_file.read_text(encoding="utf-8"))

    async def _run():
        service = ExecutionService.from_settings(settings)
        await service.save_workflow(workflow)
        execution_id, stream = await service.execute_stream(workflow.id, payload)
        async for event in stream.iter_events():
            if not quiet:
                click.echo(f"[{event.seq}] {event.type.value} {event.node_id or ''}".rstrip())
        return await service.wait(execution_id)

    try:
        execution = asyncio.run(_run())
    except FlowChordError as e:
        click.echo(json.dumps({"success": False, "error": e.message}, indent=2))
        sys.exit(1)

    output_data = {
        "success": execution.status.value == "completed",
        "executionId": execution.id,
        "status": execution.status.value,
        "output": execution.output,
    }
    if execution.error:
        output_data["error"] = execution.error
    if execution.pending_auth:
        output_data["pendingAuth"] = execution.pending_auth.to_dict()

    click.echo(json.dumps(output_data, indent=2, default=str))
    sys.exit(0 if execution.status.value in ("completed", "waiting-auth") else 1)


if __name__ == "__main__":
    cli()
