from pathlib import Path

import pytest
from pydantic import ValidationError

from agent_engine.context import (
    ContextBundleConfig,
    ContextConfig,
    ContextPacker,
    ContextTemplateConfig,
    matches_pattern,
)


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_pack_uses_default_text_files_and_excludes(tmp_path: Path) -> None:
    _write(tmp_path / "README.md", "# Project")
    _write(tmp_path / "src" / "app.py", "print('hi')")
    _write(tmp_path / "logo.png", "not really an image")
    _write(tmp_path / "node_modules" / "lib" / "index.js", "module.exports = {}")
    _write(tmp_path / ".git" / "config", "[core]")

    context = ContextPacker().pack(ContextConfig(base_dir=str(tmp_path)))

    assert [item.path for item in context.files] == ["README.md", "src/app.py"]
    assert context.total_bytes == len("# Project") + len("print('hi')")
    assert context.text == (
        "// File: README.md\n# Project\n// End of README.md\n\n"
        "// File: src/app.py\nprint('hi')\n// End of src/app.py"
    )


def test_pack_respects_include_and_exclude(tmp_path: Path) -> None:
    _write(tmp_path / "docs" / "guide.md", "guide")
    _write(tmp_path / "docs" / "draft.md", "draft")
    _write(tmp_path / "notes.txt", "notes")

    context = ContextPacker().pack(
        ContextConfig(base_dir=str(tmp_path), include=["**/*.md"], exclude=["**/draft.md"])
    )

    assert [item.path for item in context.files] == ["docs/guide.md"]


def test_byte_budget_skips_oversized_files(tmp_path: Path) -> None:
    _write(tmp_path / "a.md", "a" * 40)
    _write(tmp_path / "b.md", "b" * 80)
    _write(tmp_path / "c.md", "c" * 50)

    context = ContextPacker().pack(ContextConfig(base_dir=str(tmp_path), max_bytes=100))

    assert [item.path for item in context.files] == ["a.md", "c.md"]
    assert context.total_bytes == 90
    assert context.total_bytes <= 100


def test_file_limit(tmp_path: Path) -> None:
    for name in ("a", "b", "c"):
        _write(tmp_path / f"{name}.md", name)

    context = ContextPacker().pack(ContextConfig(base_dir=str(tmp_path), max_files=2))

    assert len(context.files) == 2
    assert context.summary() == {"total_bytes": 2, "file_count": 2}


def test_zero_budget_packs_nothing(tmp_path: Path) -> None:
    _write(tmp_path / "a.md", "a")

    context = ContextPacker().pack(ContextConfig(base_dir=str(tmp_path), max_bytes=0))

    assert context.files == ()
    assert context.text == ""


def test_bundle_and_template_resources(tmp_path: Path) -> None:
    _write(tmp_path / "spec" / "api.md", "GET /items")
    _write(tmp_path / "prompts" / "brief.j2", "Team: {{ team }}\nGoal: {{ goal }}\n")

    context = ContextPacker().pack(
        ContextConfig(
            base_dir=str(tmp_path),
            include=["nothing"],
            variables={"team": "platform", "goal": "ship"},
            resources=[
                ContextBundleConfig(
                    id="api",
                    name="API notes",
                    base_dir=str(tmp_path / "spec"),
                    include=["*.md"],
                    virtual_path="reference/",
                ),
                ContextTemplateConfig(id="brief", template="prompts/brief.j2", variables={"goal": "review"}),
            ],
        )
    )

    bundle, template = context.resources
    assert bundle.files[0].path == "reference/api.md"
    assert bundle.metadata == {"virtual_path": "reference/"}
    assert template.text == "Team: platform\nGoal: review"
    assert context.total_bytes == len("GET /items") + len(template.text)
    assert context.text.startswith("// Resource: API notes\n// File: reference/api.md")
    assert context.text.endswith("Goal: review\n// End Resource: brief")


def test_config_rejects_negative_budget() -> None:
    with pytest.raises(ValidationError):
        ContextConfig(max_bytes=-1)


def test_matches_pattern_root_globstar() -> None:
    assert matches_pattern("README.md", "**/*.md")
    assert matches_pattern("docs/a/b.md", "**/*.md")
    assert not matches_pattern("README.txt", "**/*.md")
