"""Transform node: user Python run in an isolated interpreter process.

The script never runs inside the engine process. A child interpreter is
started in isolated mode (``-I``) with an empty environment, a throwaway
working directory and CPU/memory limits, and the data travels as JSON
over stdin and stdout.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import tempfile
from typing import Any

from flowchord.core.types import Node, NodeOutcome, NodeType
from flowchord.errors.exceptions import NodeExecutionError
from flowchord.nodes.base import BaseNodeHandler, NodeContext

logger = logging.getLogger(__name__)

MEMORY_LIMIT_BYTES = 512 * 1024 * 1024

_RUNNER = r"""
import json, sys
payload = json.loads(sys.stdin.read())
reply = sys.stdout
sys.stdout = sys.stderr
namespace = {
    "input": payload["input"],
    "lastOutput": payload["lastOutput"],
    "state": payload["state"],
    "json": json,
}
try:
    exec(compile(payload["script"], "<transform>", "exec"), namespace)
    if callable(namespace.get("transform")):
        result = namespace["transform"](payload["input"], payload["lastOutput"], payload["state"])
    else:
        result = namespace.get("result")
    out = {"ok": True, "result": result}
except Exception as exc:
    out = {"ok": False, "error": f"{type(exc).__name__}: {exc}"}
reply.write(json.dumps(out, default=str))
"""


def _limit_resources(cpu_seconds: int) -> None:
    """Runs in the child between fork and exec."""
    import resource

    resource.setrlimit(resource.RLIMIT_CPU, (cpu_seconds, cpu_seconds))
    resource.setrlimit(resource.RLIMIT_AS, (MEMORY_LIMIT_BYTES, MEMORY_LIMIT_BYTES))


class TransformNodeHandler(BaseNodeHandler):
    node_type = NodeType.TRANSFORM

    async def execute(self, node: Node, ctx: NodeContext) -> NodeOutcome:
        script = node.data.get("transformScript") or ""
        if not script.strip():
            return NodeOutcome(output=ctx.scope.last_output)
        if len(script) > ctx.config.transform_max_script_chars:
            raise NodeExecutionError(
                f"Transform script exceeds {ctx.config.transform_max_script_chars} characters",
                node_id=node.id,
            )

        payload = json.dumps(
            {
                "script": script,
                "input": ctx.scope.input,
                "lastOutput": ctx.scope.last_output,
                "state": ctx.scope.state,
            },
            default=str,
        ).encode()
        result = await self._run(node, payload, ctx)
        return NodeOutcome(output=result)

    async def _run(self, node: Node, payload: bytes, ctx: NodeContext) -> Any:
        timeout = ctx.config.transform_timeout
        extra: dict[str, Any] = {}
        if os.name == "posix":
            cpu = max(1, int(timeout) + 1)
            extra["preexec_fn"] = lambda: _limit_resources(cpu)

        with tempfile.TemporaryDirectory(prefix="flowchord-transform-") as workdir:
            proc = await asyncio.create_subprocess_exec(
                sys.executable,
                "-I",
                "-c",
                _RUNNER,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=workdir,
                env={},
                **extra,
            )
            try:
                stdout, stderr = await asyncio.wait_for(proc.communicate(payload), timeout=timeout)
            except asyncio.TimeoutError:
                proc.kill()
                await proc.wait()
                raise NodeExecutionError(
                    f"Transform script timed out after {timeout}s", node_id=node.id
                ) from None

        if len(stdout) > ctx.config.transform_max_output_bytes:
            raise NodeExecutionError(
                f"Transform output exceeds {ctx.config.transform_max_output_bytes} bytes",
                node_id=node.id,
            )
        if proc.returncode != 0 or not stdout:
            detail = stderr.decode(errors="replace").strip().splitlines()
            logger.warning("Transform process for %s exited with %s", node.id, proc.returncode)
            raise NodeExecutionError(
                f"Transform script failed: {detail[-1] if detail else f'exit code {proc.returncode}'}",
                node_id=node.id,
            )

        try:
            reply = json.loads(stdout)
        except json.JSONDecodeError:
            reply = None
        if not isinstance(reply, dict):
            raise NodeExecutionError("Transform runner returned malformed output", node_id=node.id)
        if not reply.get("ok"):
            raise NodeExecutionError(reply.get("error") or "Transform script failed", node_id=node.id)
        return reply.get("result")
