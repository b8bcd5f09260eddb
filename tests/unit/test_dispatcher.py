import asyncio

from queue_orchestrator.storage.memory import InMemoryTaskStore
from queue_orchestrator.workflow.status import TaskStatus


def _load(store: InMemoryTaskStore):
    return asyncio.run(store.load_all())


def _only_task(store: InMemoryTaskStore):
    tasks = _load(store)
    assert len(tasks) == 1
    return tasks[0]


def _add_task(store: InMemoryTaskStore, status: TaskStatus, **extra) -> None:
    store.add(
        "task.md",
        id="AGI-1",
        title="Add login page",
        description="Users need to sign in.",
        repo="https://github.com/acme/web.git",
        status=status,
        **extra,
    )


def test_single_stage_advances_and_records_audit_fields(
    store, executor, make_dispatcher, result_block
) -> None:
    _add_task(store, TaskStatus.NEEDS_RESEARCH)
    executor.replies = [
        result_block(
            success="true",
            stage_completed="research",
            next_status='"Needs Specification"',
            branch_name="agent/AGI-1",
            commit_hash="4f2a9c1",
        ),
        result_block(success="true", next_status="Needs Human Review"),
    ]
    task = _only_task(store)

    asyncio.run(make_dispatcher().dispatch(task, [task]))

    history = [status for _, status in store.status_history]
    assert history[:2] == [TaskStatus.RESEARCH_IN_PROGRESS, TaskStatus.NEEDS_SPECIFICATION]
    reloaded = _only_task(store)
    assert reloaded.branch_name == "agent/AGI-1"
    assert reloaded.commit_hash == "4f2a9c1"


def test_reported_failure_blocks_and_keeps_earlier_artifacts(
    store, executor, make_dispatcher, result_block
) -> None:
    _add_task(store, TaskStatus.NEEDS_RESEARCH)
    executor.replies = [
        result_block(
            success="true",
            stage_completed="research",
            artifact_path="agent-docs/AGI-1/research/notes.md",
            next_status="Needs Specification",
        ),
        result_block(success="false", stage_completed="specification", error="missing config"),
    ]
    task = _only_task(store)

    outcome = asyncio.run(make_dispatcher().dispatch(task, [task]))

    reloaded = _only_task(store)
    assert outcome == "reported_failure"
    assert reloaded.status == TaskStatus.BLOCKED
    assert reloaded.last_error == "missing config"
    assert reloaded.artifacts == {"research": "agent-docs/AGI-1/research/notes.md"}
    assert len(executor.sessions) == 2


def test_missing_completion_block_blocks_without_touching_other_fields(
    store, executor, make_dispatcher
) -> None:
    _add_task(store, TaskStatus.NEEDS_PLAN, commit_hash="0ld")
    executor.replies = ["I could not finish, sorry."]
    before = dict(store.documents["task.md"])
    task = _only_task(store)

    outcome = asyncio.run(make_dispatcher().dispatch(task, [task]))

    after = dict(store.documents["task.md"])
    assert outcome == "parse_failure"
    assert after.pop("status") == TaskStatus.BLOCKED.value
    before.pop("status")
    assert after == before


def test_stage_cap_blocks_a_looping_task(store, executor, make_dispatcher, result_block) -> None:
    _add_task(store, TaskStatus.NEEDS_RESEARCH)
    executor.replies = [
        result_block(success="true", next_status="Needs Research") for _ in range(12)
    ]
    task = _only_task(store)

    outcome = asyncio.run(make_dispatcher().dispatch(task, [task]))

    assert outcome == "iteration_exhausted"
    assert len(executor.sessions) == 10
    assert _only_task(store).status == TaskStatus.BLOCKED


def test_stage_cap_is_configurable(store, executor, make_dispatcher, result_block) -> None:
    _add_task(store, TaskStatus.NEEDS_RESEARCH)
    executor.replies = [result_block(success="true", next_status="Needs Research")] * 5
    task = _only_task(store)

    asyncio.run(make_dispatcher(max_stages=3).dispatch(task, [task]))

    assert len(executor.sessions) == 3
    assert _only_task(store).status == TaskStatus.BLOCKED


def test_loopback_preview_address_is_replaced_and_environment_kept(
    store, executor, make_dispatcher, result_block
) -> None:
    _add_task(store, TaskStatus.NEEDS_RESEARCH)
    executor.replies = [
        result_block(
            success="true",
            preview_url="http://localhost:3000/login",
            next_status="Needs Human Review",
        )
    ]
    task = _only_task(store)

    asyncio.run(make_dispatcher().dispatch(task, [task]))

    assert _only_task(store).preview_url == "https://3000-abc.example/login"
    assert executor.torn_down == []


def test_unknown_preview_port_is_left_alone(store, executor, make_dispatcher, result_block) -> None:
    _add_task(store, TaskStatus.NEEDS_RESEARCH)
    executor.replies = [
        result_block(success="true", preview_url="http://127.0.0.1:4000", next_status="Done")
    ]
    task = _only_task(store)

    asyncio.run(make_dispatcher().dispatch(task, [task]))

    assert _only_task(store).preview_url == "http://127.0.0.1:4000"


def test_environment_is_torn_down_without_preview(
    store, executor, make_dispatcher, result_block
) -> None:
    _add_task(store, TaskStatus.NEEDS_RESEARCH)
    executor.replies = [result_block(success="true", next_status="Done")]
    task = _only_task(store)

    asyncio.run(make_dispatcher().dispatch(task, [task]))

    assert executor.torn_down == ["env-1"]
    assert len(executor.provisioned) == 1


def test_success_without_next_status_is_blocked_with_reason(
    store, executor, make_dispatcher, result_block
) -> None:
    _add_task(store, TaskStatus.NEEDS_PLAN)
    executor.replies = [result_block(success="true", summary="Wrote the plan.")]
    task = _only_task(store)

    outcome = asyncio.run(make_dispatcher().dispatch(task, [task]))

    reloaded = _only_task(store)
    assert outcome == "malformed_report"
    assert reloaded.status == TaskStatus.BLOCKED
    assert reloaded.last_summary == "Wrote the plan."
    assert "next_status" in (reloaded.last_error or "")


def test_unknown_status_token_is_dropped_and_other_fields_applied(
    store, executor, make_dispatcher, result_block
) -> None:
    _add_task(store, TaskStatus.NEEDS_PLAN)
    executor.replies = [
        result_block(success="false", next_status="Ready For Launch", commit_hash="77aa")
    ]
    task = _only_task(store)

    asyncio.run(make_dispatcher().dispatch(task, [task]))

    reloaded = _only_task(store)
    assert reloaded.status == TaskStatus.BLOCKED
    assert reloaded.commit_hash == "77aa"


def test_terminal_code_stage_triggers_merge_followup(
    store, executor, make_dispatcher, result_block
) -> None:
    _add_task(store, TaskStatus.NEEDS_VALIDATE)
    executor.replies = [
        result_block(success="true", stage_completed="validate", next_status="Done"),
        result_block(
            success="true",
            merge_status="pr_created",
            pr_url="https://github.com/acme/web/pull/7",
            next_status="Awaiting Merge",
        ),
    ]
    task = _only_task(store)

    asyncio.run(make_dispatcher().dispatch(task, [task]))

    reloaded = _only_task(store)
    assert len(executor.sessions) == 2
    assert "Delivery: pull request" in executor.sent[1]
    assert reloaded.merge_status == "pr_created"
    assert reloaded.pr_url == "https://github.com/acme/web/pull/7"
    assert reloaded.status == TaskStatus.AWAITING_MERGE


def test_merge_followup_without_result_keeps_stage_outcome(
    store, executor, make_dispatcher, result_block
) -> None:
    _add_task(store, TaskStatus.BACKLOG)
    executor.replies = [
        result_block(success="true", stage_completed="oneshot", next_status="Done"),
        "Pushed, but I forgot the block.",
    ]
    task = _only_task(store)

    asyncio.run(make_dispatcher().dispatch(task, [task]))

    reloaded = _only_task(store)
    assert reloaded.status == TaskStatus.DONE
    assert reloaded.merge_status is None


def test_no_merge_followup_when_another_task_waits_on_it(
    store, executor, make_dispatcher, result_block
) -> None:
    _add_task(store, TaskStatus.NEEDS_IMPLEMENT)
    store.add("next.md", id="AGI-2", status=TaskStatus.NEEDS_PLAN, depends_on=["AGI-1"])
    executor.replies = [result_block(success="true", next_status="Needs Human Review")]
    all_tasks = _load(store)
    task = next(t for t in all_tasks if t.task_id == "AGI-1")

    asyncio.run(make_dispatcher().dispatch(task, all_tasks))

    assert len(executor.sessions) == 1
    assert "Delivery:" not in executor.sent[0]


def test_stage_prompt_carries_task_context_and_merge_instructions(
    store, executor, make_dispatcher, result_block
) -> None:
    _add_task(store, TaskStatus.NEEDS_IMPLEMENT, artifacts={"plan": "agent-docs/AGI-1/plan/p.md"})
    executor.replies = [
        result_block(success="true", merge_status="merged", next_status="Done"),
    ]
    task = _only_task(store)

    asyncio.run(make_dispatcher(merge_mode="direct").dispatch(task, [task]))

    prompt = executor.sent[0]
    assert "**Task ID**: AGI-1" in prompt
    assert "**Branch**: agent/AGI-1" in prompt
    assert "plan: agent-docs/AGI-1/plan/p.md" in prompt
    assert "Delivery: direct merge" in prompt
    assert len(executor.sessions) == 1


def test_environment_setup_failure_blocks_only_with_error(store, executor, make_dispatcher) -> None:
    _add_task(store, TaskStatus.NEEDS_RESEARCH)
    executor.fail_on = "git clone"
    task = _only_task(store)

    outcome = asyncio.run(make_dispatcher().dispatch(task, [task]))

    reloaded = _only_task(store)
    assert outcome == "execution_fault"
    assert reloaded.status == TaskStatus.BLOCKED
    assert "Failed to clone" in (reloaded.last_error or "")
    assert executor.sessions == []
    assert executor.torn_down == ["env-1"]


def test_agent_fault_mid_stage_blocks_task(store, executor, make_dispatcher) -> None:
    _add_task(store, TaskStatus.NEEDS_RESEARCH)
    executor.replies = []
    task = _only_task(store)

    asyncio.run(make_dispatcher().dispatch(task, [task]))

    reloaded = _only_task(store)
    assert reloaded.status == TaskStatus.BLOCKED
    assert "No scripted agent reply left" in (reloaded.last_error or "")


def test_stage_transcript_log_is_written(
    store, executor, make_dispatcher, result_block, settings
) -> None:
    _add_task(store, TaskStatus.NEEDS_RESEARCH)
    executor.replies = [result_block(success="true", next_status="Done")]
    task = _only_task(store)

    asyncio.run(make_dispatcher().dispatch(task, [task]))

    log_text = (settings.logs_dir / "AGI-1" / "stage-needs-research.log").read_text()
    assert "PROMPT SENT TO AGENT" in log_text
    assert "WORK_RESULT:" in log_text
    assert "Stage finished" in log_text


def test_merge_followup_fault_keeps_stage_record(
    store, executor, make_dispatcher, result_block
) -> None:
    _add_task(store, TaskStatus.NEEDS_VALIDATE)
    executor.replies = [
        result_block(
            success="true",
            stage_completed="validate",
            commit_hash="abc123",
            summary="validated",
            next_status="Done",
        ),
    ]
    task = _only_task(store)

    outcome = asyncio.run(make_dispatcher().dispatch(task, [task]))

    reloaded = _only_task(store)
    assert len(executor.sessions) == 2
    assert outcome == "rested"
    assert reloaded.status == TaskStatus.DONE
    assert reloaded.commit_hash == "abc123"
    assert reloaded.last_summary == "validated"
    assert reloaded.last_error is None


def test_merge_conflict_waits_for_human_decision(
    store, executor, make_dispatcher, result_block
) -> None:
    _add_task(store, TaskStatus.NEEDS_IMPLEMENT)
    executor.replies = [
        result_block(success="true", stage_completed="implement", next_status="Done"),
        result_block(
            success="false",
            merge_status="conflict",
            error="Conflict in src/login.tsx",
        ),
    ]
    task = _only_task(store)

    asyncio.run(make_dispatcher(merge_mode="direct").dispatch(task, [task]))

    reloaded = _only_task(store)
    assert "Delivery: direct merge" in executor.sent[1]
    assert reloaded.merge_status == "conflict"
    assert reloaded.status == TaskStatus.NEEDS_HUMAN_DECISION
    assert reloaded.last_error == "Conflict in src/login.tsx"


def test_in_progress_token_from_agent_is_not_applied(
    store, executor, make_dispatcher, result_block
) -> None:
    _add_task(store, TaskStatus.NEEDS_PLAN)
    executor.replies = [result_block(success="false", next_status="Plan In Progress")]
    task = _only_task(store)

    outcome = asyncio.run(make_dispatcher().dispatch(task, [task]))

    assert outcome == "reported_failure"
    assert _only_task(store).status == TaskStatus.BLOCKED
