"""Unit tests for the command-line interface."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from anvil_workflows.engine.main import main
from anvil_workflows.engine.workflow.runner import WorkflowRunner


@pytest.fixture(autouse=True)
def _env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("LOG_LEVEL", "ANVIL_WORKSPACE", "ANVIL_WORKFLOWS_DIR", "ANVIL_SHELL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def _definition(tmp_path: Path) -> Path:
    path = tmp_path / "release.json"
    path.write_text(
        json.dumps(
            {
                "id": "release",
                "name": "Release",
                "steps": [
                    {"id": "s1", "title": "Tag", "command": "git tag {{version}}"},
                    {
                        "id": "s2",
                        "title": "Push",
                        "command": "git push --tags",
                        "requires_approval": False,
                        "working_dir": "repo",
                    },
                ],
            }
        ),
        encoding="utf-8",
    )
    return path


def test_save_list_show_delete(tmp_path: Path, workspace: str) -> None:
    out = io.StringIO()
    assert main(["--workspace", workspace, "save", str(_definition(tmp_path))], stdout=out) == 0
    assert "Saved workflow release" in out.getvalue()

    out = io.StringIO()
    assert main(["--workspace", workspace, "list"], stdout=out) == 0
    assert "release\tRelease\t2 steps" in out.getvalue()

    out = io.StringIO()
    assert main(["--workspace", workspace, "show", "release"], stdout=out) == 0
    assert json.loads(out.getvalue())["version"] == 1

    assert main(["--workspace", workspace, "delete", "release"], stdout=io.StringIO()) == 0
    assert main(["--workspace", workspace, "delete", "release"], stdout=io.StringIO()) == 1


def test_save_rejects_invalid_definition(tmp_path: Path, workspace: str) -> None:
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"id": "bad", "name": "", "steps": []}), encoding="utf-8")

    assert main(["--workspace", workspace, "save", str(path)], stdout=io.StringIO()) == 1


def test_preview_renders_placeholders(tmp_path: Path, workspace: str) -> None:
    main(["--workspace", workspace, "save", str(_definition(tmp_path))], stdout=io.StringIO())
    out = io.StringIO()

    assert main(["--workspace", workspace, "preview", "release"], stdout=out) == 0

    text = out.getvalue()
    assert "[approval] Tag" in text
    assert "$ git tag <version>" in text
    assert f'$ cd "{Path(workspace).resolve()}/repo" && git push --tags' in text


def test_run_prompts_for_params_and_approvals(tmp_path: Path, workspace: str, channel) -> None:
    main(["--workspace", workspace, "save", str(_definition(tmp_path))], stdout=io.StringIO())
    runner = WorkflowRunner(channel=channel)
    out = io.StringIO()

    code = main(
        ["--workspace", workspace, "run", "release"],
        stdin=io.StringIO("v1.2.0\ny\n"),
        stdout=out,
        runner=runner,
    )

    assert code == 0
    resolved = str(Path(workspace).resolve())
    assert channel.writes == ["git tag v1.2.0\n", f'cd "{resolved}/repo" && git push --tags\n']
    assert "completed" in out.getvalue()


def test_run_declined_returns_cancelled_code(tmp_path: Path, workspace: str, channel) -> None:
    main(["--workspace", workspace, "save", str(_definition(tmp_path))], stdout=io.StringIO())
    runner = WorkflowRunner(channel=channel)

    code = main(
        ["--workspace", workspace, "run", "release", "--param", "version=v2"],
        stdin=io.StringIO("n\n"),
        stdout=io.StringIO(),
        runner=runner,
    )

    assert code == 3
    assert channel.writes == []


def test_run_unknown_workflow(workspace: str) -> None:
    assert main(["--workspace", workspace, "run", "ghost"], stdout=io.StringIO()) == 1


def test_bad_param_syntax(tmp_path: Path, workspace: str) -> None:
    main(["--workspace", workspace, "save", str(_definition(tmp_path))], stdout=io.StringIO())

    code = main(
        ["--workspace", workspace, "preview", "release", "--param", "oops"],
        stdout=io.StringIO(),
    )

    assert code == 1
