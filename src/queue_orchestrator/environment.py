"""Preparing a provisioned environment for agent stages."""

from __future__ import annotations

import logging
import re
import shlex

from queue_orchestrator.errors import ExecutionFault
from queue_orchestrator.executor.base import EnvironmentHandle, Executor

logger = logging.getLogger(__name__)

GIT_USER_NAME = "Queue Orchestrator Agent"
GIT_USER_EMAIL = "agent@queue-orchestrator.invalid"

_LOOPBACK_URL_RE = re.compile(r"^https?://(?:localhost|127\.0\.0\.1):(\d+)(?P<rest>[/?#].*)?$")


async def verify_tools(executor: Executor, handle: EnvironmentHandle, agent_command: str) -> None:
    result = await executor.run(handle, f"command -v {shlex.quote(agent_command)} && command -v git")
    if not result.ok:
        raise ExecutionFault(f"Environment is missing required tools: {result.output.strip()}")


async def clone_repository(
    executor: Executor, handle: EnvironmentHandle, repo: str, repo_dir: str
) -> None:
    result = await executor.run(handle, f"git clone {shlex.quote(repo)} {shlex.quote(repo_dir)}")
    if not result.ok:
        raise ExecutionFault(f"Failed to clone {repo}: {result.output.strip()}")


async def configure_git(executor: Executor, handle: EnvironmentHandle, github_token: str) -> None:
    await executor.run(handle, f"git config --global user.email {shlex.quote(GIT_USER_EMAIL)}")
    await executor.run(handle, f"git config --global user.name {shlex.quote(GIT_USER_NAME)}")
    if not github_token:
        logger.warning("environment event=no_github_token action=skip_credential_helper")
        return
    # gh as credential helper lets the agent push and open pull requests.
    result = await executor.run(handle, "gh auth setup-git", env={"GITHUB_TOKEN": github_token})
    if not result.ok:
        logger.warning("environment event=gh_setup_failed output=%s", result.output.strip()[:400])


async def checkout_branch(
    executor: Executor, handle: EnvironmentHandle, repo_dir: str, branch: str
) -> None:
    quoted = shlex.quote(branch)
    result = await executor.run(
        handle,
        f"git fetch origin && (git checkout {quoted} 2>/dev/null || git checkout -b {quoted})",
        working_dir=repo_dir,
    )
    if not result.ok:
        raise ExecutionFault(f"Failed to set up branch {branch}: {result.output.strip()}")


async def publish_preview_urls(
    executor: Executor, handle: EnvironmentHandle, ports: list[int], ttl_s: int
) -> dict[int, str]:
    published: dict[int, str] = {}
    for port in ports:
        try:
            published[port] = await executor.publish(handle, port, ttl_s)
        except Exception as exc:  # noqa: BLE001
            logger.warning("environment event=publish_failed port=%s error=%s", port, exc)
    return published


async def prepare_environment(
    executor: Executor,
    handle: EnvironmentHandle,
    *,
    repo: str,
    repo_dir: str,
    branch: str,
    agent_command: str,
    github_token: str,
    preview_ports: list[int],
    preview_ttl_s: int,
    label: str,
) -> dict[int, str]:
    """Clone, configure and branch; return the published preview address per port."""
    await verify_tools(executor, handle, agent_command)
    await clone_repository(executor, handle, repo, repo_dir)
    logger.info("environment event=cloned label=%s repo=%s", label, repo)
    await configure_git(executor, handle, github_token)
    await checkout_branch(executor, handle, repo_dir, branch)
    logger.info("environment event=branch_ready label=%s branch=%s", label, branch)
    published = await publish_preview_urls(executor, handle, preview_ports, preview_ttl_s)
    logger.info(
        "environment event=preview_published label=%s ports=%s",
        label,
        ",".join(str(port) for port in sorted(published)),
    )
    return published


def resolve_preview_url(url: str, published: dict[int, str]) -> str:
    """Swap a loopback origin for the externally published one on the same port.

    Path, query and fragment are carried over unchanged.
    """
    match = _LOOPBACK_URL_RE.match(url.strip())
    if match is None:
        return url
    port = int(match.group(1))
    external = published.get(port)
    if external is None:
        return url
    logger.info("environment event=preview_corrected port=%s", port)
    return external.rstrip("/") + (match.group("rest") or "")
