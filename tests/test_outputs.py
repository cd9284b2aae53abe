import pytest

from repo_agents.config_loader import AgentDefinition, OutputConstraint
from repo_agents.github import GitHubError
from repo_agents.models import OutputArtifact
from repo_agents.outputs import Capability
from repo_agents.outputs.branches import CreateBranchHandler
from repo_agents.outputs.comments import AddCommentHandler, attribution_footer
from repo_agents.outputs.files import UpdateFileHandler, path_allowed
from repo_agents.outputs.issues import CloseIssueHandler, ConvertToDiscussionHandler
from repo_agents.outputs.labels import AddLabelHandler, RemoveLabelHandler
from repo_agents.outputs.pulls import CreatePRHandler, MergePRHandler
from repo_agents.outputs.reactions import AddReactionHandler
from repo_agents.outputs.registry import HANDLERS, CapabilityRegistry, UnknownCapabilityError


def artifact(capability, payload, tmp_path):
    return OutputArtifact(capability=capability, path=tmp_path / f"{capability}.json", payload=payload)


def test_every_capability_has_a_handler():
    assert set(HANDLERS) == set(Capability)
    assert len(Capability) == 15


def test_schema_errors_are_readable(github, tmp_path):
    handler = AddReactionHandler(github)
    _, problems = handler.parse(artifact("add-reaction", {"issue_number": "abc", "reaction": "eyes"}, tmp_path))
    assert problems == ["issue_number must be a number"]

    _, problems = handler.parse(artifact("add-reaction", {"issue_number": 3}, tmp_path))
    assert problems == ["reaction is required"]


def test_reaction_needs_exactly_one_target(github, tmp_path):
    handler = AddReactionHandler(github)
    _, problems = handler.parse(artifact("add-reaction", {"reaction": "eyes"}, tmp_path))
    assert problems == ["Either issue_number or comment_id must be specified"]

    _, problems = handler.parse(
        artifact("add-reaction", {"reaction": "eyes", "issue_number": 1, "comment_id": 2}, tmp_path)
    )
    assert problems == ["Cannot specify both issue_number and comment_id"]


def test_comment_rules(github, run_ctx, tmp_path):
    handler = AddCommentHandler(github)
    payload, _ = handler.parse(artifact("add-comment", {"body": "   "}, tmp_path))
    assert handler.check(payload, run_ctx) == ["Comment body is empty or missing"]

    payload, _ = handler.parse(artifact("add-comment", {"body": "x" * 65537}, tmp_path))
    assert handler.check(payload, run_ctx) == ["Comment body exceeds 65536 characters"]

    no_subject = run_ctx.model_copy(update={"subject_number": None})
    payload, _ = handler.parse(artifact("add-comment", {"body": "hi"}, tmp_path))
    assert handler.check(payload, no_subject) == ["No issue or PR number available"]


def test_comment_carries_attribution(github, run_ctx, tmp_path):
    handler = AddCommentHandler(github)
    payload, _ = handler.parse(artifact("add-comment", {"body": "Thanks!"}, tmp_path))
    handler.commit(payload, run_ctx)

    number, body = github.called("add_comment")[0]
    assert number == 7
    assert body.startswith("Thanks!")
    assert body.endswith(attribution_footer(run_ctx))
    assert "https://github.com/octo/repo/actions/runs/42" in body


def test_comment_length_includes_footer(github, run_ctx, tmp_path):
    handler = AddCommentHandler(github)
    fits_alone = "x" * (65536 - len(attribution_footer(run_ctx)) + 1)
    payload, _ = handler.parse(artifact("add-comment", {"body": fits_alone}, tmp_path))
    assert handler.check(payload, run_ctx) == ["Comment body exceeds 65536 characters"]

    payload, _ = handler.parse(artifact("add-comment", {"body": fits_alone[1:]}, tmp_path))
    assert handler.check(payload, run_ctx) == []


def test_comment_keeps_leading_indentation(github, run_ctx, tmp_path):
    body = "    indented code block\n\nsummary\n"
    handler = AddCommentHandler(github)
    payload, _ = handler.parse(artifact("add-comment", {"body": body}, tmp_path))
    handler.commit(payload, run_ctx)

    assert github.called("add_comment")[0][1] == body + attribution_footer(run_ctx)


def test_add_label_does_not_undo_a_concurrent_removal(github, run_ctx, tmp_path):
    github.subject_labels[7] = ["bug", "stale"]
    add = AddLabelHandler(github)
    remove = RemoveLabelHandler(github)
    add_payload, _ = add.parse(artifact("add-label", {"labels": ["question"]}, tmp_path))
    remove_payload, _ = remove.parse(artifact("remove-label", {"label": "stale"}, tmp_path))

    assert add.check(add_payload, run_ctx) == []
    # the remove-label batch commits between add-label's check and commit
    remove.commit(remove_payload, run_ctx)
    add.commit(add_payload, run_ctx)

    assert github.subject_labels[7] == ["bug", "question"]
    assert github.called("add_labels") == [(7, ["question"])]


def test_create_branch(github, run_ctx, tmp_path):
    handler = CreateBranchHandler(github)
    payload, _ = handler.parse(artifact("create-branch", {"branch": "main"}, tmp_path))
    assert handler.check(payload, run_ctx) == ["Branch 'main' already exists"]

    payload, _ = handler.parse(artifact("create-branch", {"branch": "-bad name"}, tmp_path))
    assert handler.check(payload, run_ctx) == ["Invalid branch name '-bad name'"]

    payload, _ = handler.parse(artifact("create-branch", {"branch": "feature/x"}, tmp_path))
    assert handler.check(payload, run_ctx) == []
    handler.commit(payload, run_ctx)
    assert github.called("create_ref") == [("feature/x", "a" * 40)]


def test_create_branch_unknown_ref_fails_commit(github, run_ctx, tmp_path):
    handler = CreateBranchHandler(github)
    payload, _ = handler.parse(artifact("create-branch", {"branch": "feature/y", "from_ref": "nope"}, tmp_path))
    with pytest.raises(GitHubError):
        handler.commit(payload, run_ctx)


def test_create_pr_requires_existing_head(github, run_ctx, tmp_path):
    handler = CreatePRHandler(github)
    payload, _ = handler.parse(
        artifact("create-pr", {"title": "Fix", "body": "Fixes #7", "head": "fix/crash"}, tmp_path)
    )
    assert handler.check(payload, run_ctx) == ["Head branch 'fix/crash' does not exist"]

    github.branches["fix/crash"] = "b" * 40
    assert handler.check(payload, run_ctx) == []


def test_merge_deletes_head_branch(github, run_ctx, tmp_path):
    github.pulls[9] = {"number": 9, "state": "open", "head": {"ref": "feature/done"}}
    github.branches["feature/done"] = "c" * 40
    handler = MergePRHandler(github)
    payload, _ = handler.parse(artifact("merge-pr", {"pr_number": 9, "merge_method": "squash"}, tmp_path))

    assert handler.check(payload, run_ctx) == []
    handler.commit(payload, run_ctx)

    assert github.called("merge_pull") == [(9, "squash", None, None)]
    assert github.called("delete_ref") == [("feature/done",)]


def test_close_issue_defaults_to_subject(github, run_ctx, tmp_path):
    handler = CloseIssueHandler(github)
    payload, _ = handler.parse(artifact("close-issue", {"comment": "Duplicate"}, tmp_path))
    handler.commit(payload, run_ctx)
    assert github.called("add_comment") == [(7, "Duplicate")]
    assert github.called("set_issue_state") == [(7, "closed", "completed")]


def test_convert_to_discussion_checks_category(github, run_ctx, tmp_path):
    handler = ConvertToDiscussionHandler(github)
    payload, _ = handler.parse(artifact("convert-to-discussion", {"issue_number": 7, "category": "Chat"}, tmp_path))
    assert handler.check(payload, run_ctx) == ["Category 'Chat' not found in repository"]

    payload, _ = handler.parse(artifact("convert-to-discussion", {"issue_number": 7, "category": "Q&A"}, tmp_path))
    assert handler.check(payload, run_ctx) == []
    handler.commit(payload, run_ctx)
    assert github.called("convert_to_discussion") == [(7, "DIC_1")]


def test_path_globs():
    globs = ["docs/**", "src/*.py", "README.md"]
    assert path_allowed("docs/guide/intro.md", globs)
    assert path_allowed("src/app.py", globs)
    assert path_allowed("./README.md", globs)
    assert not path_allowed("src/pkg/app.py", globs)
    assert not path_allowed(".github/workflows/ci.yml", globs)


def test_update_file_without_allowed_paths_rejects_everything(github):
    handler = UpdateFileHandler(github)
    assert handler.disallowed(["a.txt"]) == ["a.txt"]
    assert UpdateFileHandler(github, allowed_paths=["*.txt"]).disallowed(["a.txt", "b.md"]) == ["b.md"]


def test_update_file_has_nothing_to_commit(github, run_ctx):
    handler = UpdateFileHandler(github, allowed_paths=["docs/**"])
    assert not handler.artifact_driven
    with pytest.raises(NotImplementedError):
        handler.commit(None, run_ctx)


def test_registry_rejects_unknown_outputs(github):
    agent = AgentDefinition(name="x", outputs={"add-comment": True, "send-email": True})
    with pytest.raises(UnknownCapabilityError):
        CapabilityRegistry(github).load(agent)

    handlers = CapabilityRegistry(github, skip_unknown=True).load(agent)
    assert [h.name for h, _ in handlers] == [Capability.ADD_COMMENT]


def test_registry_keeps_declaration_order(github):
    agent = AgentDefinition(
        name="x",
        outputs={"update-file": True, "add-label": {"max": 2}, "add-comment": None},
        allowed_paths=["docs/**"],
    )
    handlers = CapabilityRegistry(github).load(agent)

    assert [h.name.value for h, _ in handlers] == ["update-file", "add-label", "add-comment"]
    assert handlers[0][0].allowed_paths == ["docs/**"]
    assert handlers[1][1] == OutputConstraint(max=2)
