"""Unit tests for stage construction from build requests."""

from __future__ import annotations

from pathlib import Path

import pytest

from bookpress.config import PublishConfig
from bookpress.errors import PipelineStageError
from bookpress.models.datatypes import BuildRequest
from bookpress.stages.commands import (
    SEARCH_INDEX_SCRIPT,
    StageFactory,
    merged_site_config,
    output_filename,
    site_config_files,
    site_switches,
)


def test_site_config_files_follow_override_order() -> None:
    """Config string should list base, format, user, then math configs."""

    request = BuildRequest(
        work="novel",
        output_format="print-pdf",
        configs=("_config.local.yml", "_config.proof.yml"),
        mathjax=True,
    )

    assert site_config_files(request) == [
        "_config.yml",
        "_configs/_config.print-pdf.yml",
        "_configs/_config.local.yml",
        "_configs/_config.proof.yml",
        "_configs/_config.mathjax-enabled.yml",
    ]


def test_site_config_files_disable_math_for_word_export() -> None:
    """Word export should end with the math-disabled config and no format config."""

    request = BuildRequest(work="novel", output_format="word", command="export")

    assert site_config_files(request) == ["_config.yml", "_configs/_config.math-disabled.yml"]


def test_site_switches_prefix_each_switch() -> None:
    """User switches should gain leading dashes after the incremental switch."""

    request = BuildRequest(
        work="novel", output_format="web", incremental=True, switches=("verbose", "trace")
    )

    assert site_switches(request) == ["--incremental", "--verbose", "--trace"]


def test_generate_site_stage_builds_full_argument_vector(publish_config: PublishConfig) -> None:
    """Site generator stage should run `bundle exec jekyll` from the project root."""

    request = BuildRequest(work="novel", output_format="epub", baseurl="/books")

    stage = StageFactory(publish_config).generate_site(request)

    assert stage.command == "bundle"
    assert stage.args == (
        "exec",
        "jekyll",
        "build",
        "--config",
        "_config.yml,_configs/_config.epub.yml",
        "--baseurl",
        "/books",
    )
    assert stage.cwd == publish_config.project_root


def test_generate_site_rejects_unknown_mode(publish_config: PublishConfig) -> None:
    """Only build and serve modes are supported."""

    with pytest.raises(ValueError, match="Unsupported site generator mode"):
        StageFactory(publish_config).generate_site(
            BuildRequest(work="novel", output_format="web"), mode="watch"
        )


def test_task_stage_scopes_book_and_language(publish_config: PublishConfig) -> None:
    """Task-runner stages should pass `--book` and `--language` when set."""

    request = BuildRequest(work="novel", output_format="epub", language="fr")

    stage = StageFactory(publish_config).task(
        "rewrite-links-for-xhtml", "epub:xhtmlLinks", request
    )

    assert stage.command == "gulp"
    assert stage.args == ("epub:xhtmlLinks", "--book", "novel", "--language", "fr")


def test_process_images_stage_runs_default_task_for_book(publish_config: PublishConfig) -> None:
    """Image processing should run the task runner's default task scoped to the book."""

    request = BuildRequest(work="novel", output_format="web", language="fr", command="images")

    stage = StageFactory(publish_config).process_images(request)

    assert stage.name == "process-images"
    assert stage.command == "gulp"
    assert stage.args == ("--book", "novel", "--language", "fr")
    assert stage.cwd == publish_config.project_root


def test_build_index_stage_calls_builder_module_with_format(
    publish_config: PublishConfig,
) -> None:
    """Index stages should load the builder module and pass the output format."""

    publish_config.executables["node"] = "/opt/node/bin/node"

    stage = StageFactory(publish_config).build_index(
        "build-search-index", SEARCH_INDEX_SCRIPT, "web"
    )

    assert stage.name == "build-search-index"
    assert stage.command == "/opt/node/bin/node"
    assert stage.args[0] == "-e"
    assert "require(" in stage.args[1]
    assert stage.args[2:] == ("_tools/run/helpers/reindex/build-search-index.js", "web")
    assert stage.cwd == publish_config.project_root


def test_render_pdf_stage_adds_license_and_timeout(publish_config: PublishConfig) -> None:
    """PDF stage should include an existing license file and the configured time limit."""

    license_path = publish_config.project_root / "prince-license.dat"
    license_path.write_text("license", encoding="utf-8")
    publish_config.pdf_license = Path("prince-license.dat")
    publish_config.pdf_timeout_seconds = 42.0
    inputs = [Path("_site/novel/01.html"), Path("_site/novel/02.html")]

    stage = StageFactory(publish_config).render_pdf(inputs, Path("_output/novel-print-pdf.pdf"))

    assert stage.args == (
        "--javascript",
        "--verbose",
        f"--license-file={license_path}",
        "-o",
        str(Path("_output/novel-print-pdf.pdf")),
        str(inputs[0]),
        str(inputs[1]),
    )
    assert stage.timeout_seconds == 42.0


def test_render_pdf_stage_skips_missing_license(publish_config: PublishConfig) -> None:
    """A configured but missing license file should be left out."""

    publish_config.pdf_license = Path("missing.dat")

    stage = StageFactory(publish_config).render_pdf([Path("a.html")], Path("out.pdf"))

    assert not any(arg.startswith("--license-file") for arg in stage.args)


def test_convert_to_docx_stage_uses_source_folder_as_resource_path(
    publish_config: PublishConfig,
) -> None:
    """Converter should resolve images relative to the rendered HTML file."""

    source = publish_config.site_dir / "novel" / "01.html"

    stage = StageFactory(publish_config).convert_to_docx(source, Path("out/01.docx"))

    assert stage.name == "convert-word:01"
    assert stage.args[0] == f"--resource-path={source.parent}"
    assert stage.args[-2:] == (str(Path("out/01.docx")), str(source))


def test_package_app_stage_runs_inside_app_folder(publish_config: PublishConfig) -> None:
    """Mobile packaging stages should run in `_site/app`."""

    stage = StageFactory(publish_config).package_app("package-app", ["build", "ios", "--release"])

    assert stage.command == "cordova"
    assert stage.args == ("build", "ios", "--release")
    assert stage.cwd == publish_config.site_dir / "app"


def test_executable_overrides_apply_to_stages(project_root: Path) -> None:
    """Configured executable overrides should replace default tool names."""

    config = PublishConfig(project_root=project_root, executables={"epubcheck": "/opt/epubcheck"})

    stage = StageFactory(config).validate_epub(Path("novel.epub"), Path("report.json"))

    assert stage.command == "/opt/epubcheck"
    assert stage.args == ("novel.epub", "--json", "report.json")


def test_output_filename_includes_language_when_present() -> None:
    """PDF names should be `<work>[-<lang>]-<format>.pdf`."""

    assert output_filename(BuildRequest(work="novel", output_format="print-pdf"), ".pdf") == (
        "novel-print-pdf.pdf"
    )
    assert output_filename(
        BuildRequest(work="novel", output_format="screen-pdf", language="fr"), ".pdf"
    ) == "novel-fr-screen-pdf.pdf"


def test_merged_site_config_applies_later_files_last(project_root: Path) -> None:
    """Later config files should override earlier keys; missing files are skipped."""

    configs_dir = project_root / "_configs"
    configs_dir.mkdir()
    (project_root / "_config.yml").write_text(
        "title: Novel\nmathjax-enabled: false\n", encoding="utf-8"
    )
    (configs_dir / "_config.print-pdf.yml").write_text("mathjax-enabled: true\n", encoding="utf-8")
    request = BuildRequest(work="novel", output_format="print-pdf", configs=("missing.yml",))

    merged = merged_site_config(project_root, request)

    assert merged == {"title": "Novel", "mathjax-enabled": True}


def test_merged_site_config_reports_invalid_yaml(project_root: Path) -> None:
    """Invalid site configs should fail at the config stage."""

    (project_root / "_config.yml").write_text("title: [broken\n", encoding="utf-8")

    with pytest.raises(PipelineStageError) as exc_info:
        merged_site_config(project_root, BuildRequest(work="novel", output_format="web"))

    assert exc_info.value.stage == "config"
