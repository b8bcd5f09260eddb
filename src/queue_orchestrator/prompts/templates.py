"""Built-in prompt templates, used when no override directory provides a file."""

from __future__ import annotations

_RESULT_CONTRACT = """
When you are finished, end your final message with a completion block exactly
in this shape (two-space indentation, one field per line):

WORK_RESULT:
  success: true
  stage_completed: {{STAGE}}
  branch_name: {{BRANCH}}
  commit_hash: <full commit hash you pushed>
  artifact_path: <path of the document you wrote, if any>
  preview_url: <externally reachable URL, if you started a server>
  next_status: "{{NEXT_STATUS}}"
  summary: |
    <what you did, several lines allowed>

On failure set `success: false`, add `error: <reason>`, and pick one of
"Blocked", "Needs Human Review" or "Needs Human Decision" as next_status.
"""

_STAGE_BODY = {
    "oneshot": (
        "Implement the task end to end in a single pass: investigate, change the "
        "code, run the tests, commit and push to the task branch."
    ),
    "research": (
        "Research the codebase for this task. Write your findings to "
        "`{{ARTIFACT_DIR}}/research/` and commit them. Do not change product code."
    ),
    "specification": (
        "Turn the research into a specification of the required behaviour. Write "
        "it to `{{ARTIFACT_DIR}}/specification/` and commit it."
    ),
    "plan": (
        "Write a phased implementation plan based on the specification. Save it "
        "to `{{ARTIFACT_DIR}}/plan/` and commit it."
    ),
    "implement": (
        "Implement the plan. Keep commits focused, run the test-suite, and push "
        "the task branch."
    ),
    "validate": (
        "Validate the implementation against the specification and plan. Run the "
        "full test-suite, fix what is broken, and record the results in "
        "`{{ARTIFACT_DIR}}/validation/`."
    ),
}

_NEXT_STATUS = {
    "oneshot": "Done",
    "research": "Needs Specification",
    "specification": "Needs Plan",
    "plan": "Needs Implement",
    "implement": "Needs Validate",
    "validate": "Done",
}

DEFAULT_TEMPLATES: dict[str, str] = {
    f"worker-{stage}": (
        f"# Stage: {stage}\n\n{body}\n\n"
        "Preview URLs available in this environment:\n{{PREVIEW_URLS}}\n\n"
        "{{MERGE_INSTRUCTIONS}}\n"
        + _RESULT_CONTRACT.replace("{{NEXT_STATUS}}", _NEXT_STATUS[stage])
    )
    for stage, body in _STAGE_BODY.items()
}

DEFAULT_TEMPLATES["merge-pr"] = """## Delivery: pull request

Push `{{BRANCH}}` and open a pull request against the default branch with
`gh pr create`. Include the preview URL ({{PREVIEW_URL}}) in the description.
Report `merge_status: pr_created` and `pr_url: <url>` in your WORK_RESULT
block and set next_status to "Awaiting Merge".
"""

DEFAULT_TEMPLATES["merge-direct"] = """## Delivery: direct merge

Rebase `{{BRANCH}}` onto the default branch, merge it, and push. Report
`merge_status: merged` in your WORK_RESULT block and set next_status to "Done".
If the merge conflicts, report `merge_status: conflict`, `success: false` and
the conflicting files in `error`; the task then waits for a human decision.
"""

DEFAULT_TEMPLATES["merge-only"] = """# Stage: delivery

The code for `{{BRANCH}}` is committed. Do not change product code.

{{MERGE_INSTRUCTIONS}}

End with:

WORK_RESULT:
  success: true
  stage_completed: merge
  merge_status: <pr_created | merged | conflict>
  pr_url: <url, when a pull request was opened>
"""
