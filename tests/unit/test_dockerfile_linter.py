from devbox.BUILDERS.dockerfile_linter import DockerfileLinter, Severity
from devbox.BUILDERS.dockerfile_renderer import DockerfileRenderer
from devbox.BUILDERS.stages import standard_plan
from devbox.MODELS.provision_config import ProvisionConfig
from devbox.PARSERS.dockerfile_parser import DockerfileParser


def lint(content):
    return DockerfileLinter().lint(DockerfileParser().parse_from_string(content))


GOOD = """\
FROM rust:1.60
RUN apt-get update
ARG UID
ARG GID
RUN useradd vscode -u $UID -g $GID -m
USER vscode
WORKDIR /home/vscode/workspace
RUN cargo install cargo-edit
CMD ["sleep", "infinity"]
"""


def test_rendered_plan_is_clean():
    content = DockerfileRenderer().render(standard_plan(ProvisionConfig()))
    report = lint(content)
    assert report.ok
    assert report.findings == []


def test_handwritten_good_file():
    assert lint(GOOD).ok


def test_tool_installed_before_user_switch():
    content = GOOD.replace(
        "USER vscode\nWORKDIR /home/vscode/workspace\nRUN cargo install cargo-edit\n",
        "RUN cargo install cargo-edit\nUSER vscode\nWORKDIR /home/vscode/workspace\n",
    )
    report = lint(content)
    assert not report.ok
    finding = next(f for f in report.errors if f.rule == "tool-installed-as-root")
    assert finding.line == 6
    assert "cargo install cargo-edit" in finding.message


def test_switching_back_to_root_is_flagged():
    content = GOOD.replace("RUN cargo install", "USER root\nRUN cargo install")
    assert {"tool-installed-as-root", "runs-as-root"} <= lint(content).rules()


def test_numeric_root_user():
    content = GOOD.replace("USER vscode", "USER 0:0")
    assert "tool-installed-as-root" in lint(content).rules()


def test_arg_used_before_declaration():
    content = GOOD.replace("ARG UID\nARG GID\n", "").replace(
        "USER vscode", "USER vscode\nARG UID\nARG GID")
    report = lint(content)
    assert "arg-before-declare" in report.rules()


def test_unpinned_base_image():
    report = lint(GOOD.replace("rust:1.60", "rust"))
    assert "unpinned-base-image" in report.rules()


def test_missing_user_and_command():
    report = lint("FROM rust:1.60\nRUN apt-get update\n")
    assert {"no-user-switch", "no-default-command"} <= report.rules()


def test_missing_from():
    report = lint("USER vscode\nCMD [\"sleep\", \"infinity\"]\n")
    assert {"no-from", "instruction-before-from"} <= report.rules()


def test_relative_workdir_is_only_a_warning():
    report = lint(GOOD.replace("WORKDIR /home/vscode/workspace", "WORKDIR workspace"))
    assert report.ok
    assert [f.severity for f in report.findings] == [Severity.WARNING]


def test_other_toolchains_are_detected():
    for command in ("pip install --user black", "npm install -g yarn", "go install golang.org/x/tools/gopls@latest"):
        content = f"FROM python:3.12\nRUN {command}\nUSER dev\nCMD [\"sleep\", \"infinity\"]\n"
        assert "tool-installed-as-root" in lint(content).rules(), command


def test_custom_patterns():
    linter = DockerfileLinter(tool_install_patterns=[r"\bmytool\s+setup\b"])
    instructions = DockerfileParser().parse_from_string(
        "FROM rust:1.60\nRUN mytool setup\nRUN cargo install x\nUSER dev\nCMD [\"sleep\"]\n")
    findings = [f for f in linter.lint(instructions).findings if f.rule == "tool-installed-as-root"]
    assert len(findings) == 1
    assert "mytool" in findings[0].message


def test_finding_str():
    report = lint(GOOD.replace("rust:1.60", "rust:latest"))
    text = str(report.errors[0])
    assert text.startswith("error: line 1:")
    assert text.endswith("[unpinned-base-image]")


def test_from_flags_and_stage_name_are_not_the_image():
    report = lint(GOOD.replace("FROM rust:1.60", "FROM --platform=linux/amd64 rust:1.60 AS dev"))
    assert report.ok
    assert report.findings == []


def test_unpinned_image_behind_flags_is_still_flagged():
    report = lint(GOOD.replace("FROM rust:1.60", "FROM --platform=linux/amd64 rust AS dev"))
    assert report.rules() == {"unpinned-base-image"}


def test_arg_declared_before_from_is_out_of_scope():
    content = GOOD.replace("ARG UID\nARG GID\n", "").replace("FROM rust:1.60\n", "ARG UID\nARG GID\nFROM rust:1.60\n")
    report = lint(content)
    assert "arg-before-declare" in report.rules()
    assert {f.line for f in report.findings if f.rule == "arg-before-declare"} == {5}


def test_args_do_not_carry_into_the_next_stage():
    content = GOOD.replace("CMD", "FROM rust:1.60\nRUN useradd other -u $UID -m\nUSER other\nCMD")
    assert "arg-before-declare" in lint(content).rules()
