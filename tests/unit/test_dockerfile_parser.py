import pytest

from dfbuild.exceptions import ParseError
from dfbuild.MODELS.dockerfile_ast import (
    DockerfileDocument,
    FromInstruction,
    LiteralString,
    MiscInstruction,
    Stage,
    VariableReference,
)
from dfbuild.PARSERS.dockerfile_parser import DockerfileAnalyzer


@pytest.fixture
def analyzer():
    return DockerfileAnalyzer()


def port_of(analyzer, content):
    return analyzer.extract_exposed_port(analyzer.parse(content))


def test_parse_stages(analyzer, multistage_dockerfile):
    doc = analyzer.parse(multistage_dockerfile)

    assert [s.index for s in doc.stages] == [0, 1]
    assert [s.name for s in doc.stages] == ["builder1", "builder2"]
    assert doc.global_args[0].name == "BASE"
    assert doc.global_args[0].default == "alpine:3.19"

    second = doc.stages[1]
    assert [i.kind for i in second.instructions] == ["from", "run", "misc", "entrypoint"]
    assert second.instructions[1].flags == ["--mount=type=bind,from=builder1,target=mnt"]
    assert second.instructions[1].command == ["cp mnt/bollard.txt buildkit-bollard.txt"]


def test_parse_from_string():
    content = """
    FROM python:3.9-slim
    WORKDIR /app
    COPY . .
    RUN pip install -r requirements.txt \\
        && echo "done"
    ENV PORT=8080
    CMD ["python", "app.py"]
    """
    doc = DockerfileAnalyzer().parse(content)
    stage = doc.stages[0]

    names = [getattr(i, "name", i.kind.upper()) for i in stage.instructions]
    assert names == ["FROM", "WORKDIR", "COPY", "RUN", "ENV", "CMD"]

    # Exec form
    cmd = stage.instructions[-1]
    assert cmd.exec_form
    assert cmd.command == ["python", "app.py"]

    # Line continuation
    run = stage.instructions[3]
    assert '&& echo "done"' in run.command[0]

    copy = stage.instructions[2]
    assert copy.sources == ["."]
    assert copy.destination == "."


def test_keywords_are_case_insensitive(analyzer):
    doc = analyzer.parse("from alpine\nexpose 80\n")
    assert doc.stages[0].instructions[1].name == "EXPOSE"
    assert analyzer.extract_exposed_port(doc) == 80


def test_stage_parent_refers_to_earlier_alias(analyzer):
    doc = analyzer.parse("FROM alpine AS base\nRUN true\nFROM base\nRUN false\n")
    assert doc.stages[0].parent is None
    assert doc.stages[0].root
    assert doc.stages[1].parent == 0
    assert not doc.stages[1].root


def test_comments_inside_continuation(analyzer):
    doc = analyzer.parse("FROM alpine\nRUN echo a \\\n# note\n    b\n")
    assert doc.stages[0].instructions[1].command == ["echo a b"]


def test_escape_directive(analyzer):
    doc = analyzer.parse("# escape=`\nFROM alpine\nRUN echo a `\n  b\n")
    assert doc.stages[0].instructions[1].command == ["echo a b"]


def test_misc_arguments_are_components(analyzer):
    doc = analyzer.parse("FROM alpine\nEXPOSE $PORT 9000\n")
    args = doc.stages[0].instructions[1].arguments
    assert isinstance(args[0], VariableReference)
    assert args[0].name == "PORT"
    assert args[1] == LiteralString(content="9000")


def test_empty_document(analyzer):
    doc = analyzer.parse("")
    assert doc.stages == []
    assert analyzer.extract_exposed_port(doc) is None


@pytest.mark.parametrize("content", [
    "FROM alpine\n123 foo\n",
    "FROM\n",
    "RUN echo hi\nFROM alpine\n",
    "FROM alpine AS\n",
    "FROM alpine\nCOPY onlyone\n",
    "ARG 1bad=x\nFROM alpine\n",
])
def test_malformed_syntax_raises(analyzer, content):
    with pytest.raises(ParseError):
        analyzer.parse(content)


def test_parse_error_has_line_number(analyzer):
    with pytest.raises(ParseError) as exc:
        analyzer.parse("FROM alpine\n\nRUN\n")
    assert exc.value.line == 3
    assert "line 3" in str(exc.value)


@pytest.mark.parametrize("port", [1, 80, 3000, 8080, 65535])
def test_single_expose(analyzer, port):
    assert port_of(analyzer, f"FROM alpine\nEXPOSE {port}\n") == port


def test_no_expose(analyzer):
    assert port_of(analyzer, "FROM alpine\nRUN true\n") is None


def test_expose_zero_is_not_found(analyzer):
    assert port_of(analyzer, "FROM alpine\nEXPOSE 0\n") is None


def test_first_expose_wins_across_stages(analyzer):
    content = "FROM alpine\nEXPOSE 8080\nFROM alpine\nEXPOSE 9090\n"
    assert port_of(analyzer, content) == 8080


def test_expose_later_in_multistage(analyzer, multistage_dockerfile):
    assert port_of(analyzer, multistage_dockerfile) == 3000


def test_variable_expose_is_skipped(analyzer):
    assert port_of(analyzer, "FROM alpine\nEXPOSE $PORT\nEXPOSE 7000\n") == 7000
    assert port_of(analyzer, "FROM alpine\nEXPOSE ${PORT}\n") is None


def test_expose_with_protocol(analyzer):
    assert port_of(analyzer, "FROM alpine\nEXPOSE 53/udp\n") == 53


@pytest.mark.parametrize("value", ["http", "70000", "80-90"])
def test_invalid_expose_literal_raises(analyzer, value):
    with pytest.raises(ParseError):
        port_of(analyzer, f"FROM alpine\nEXPOSE {value}\n")


def test_base_images(analyzer, multistage_dockerfile):
    doc = analyzer.parse(multistage_dockerfile)
    assert analyzer.base_images(doc) == ["alpine:3.19", "alpine"]


def test_base_images_skip_stages_and_scratch(analyzer):
    doc = analyzer.parse(
        "FROM golang:1.22 AS build\nRUN go build\n"
        "FROM scratch\nCOPY --from=build /app /app\n"
        "FROM build\nFROM $UNSET\n"
    )
    assert analyzer.base_images(doc) == ["golang:1.22"]


def test_parse_file(tmp_path, analyzer):
    path = tmp_path / "Dockerfile"
    path.write_text("FROM alpine\nEXPOSE 5000\n")
    assert analyzer.extract_exposed_port(analyzer.parse_file(str(path))) == 5000


def test_heredoc_body_belongs_to_instruction(analyzer):
    doc = analyzer.parse(
        "FROM alpine\n"
        "RUN <<EOF\n"
        "apt-get update\n"
        "# not a comment here\n"
        "EOF\n"
        "EXPOSE 8080\n"
    )
    run = doc.stages[0].instructions[1]
    assert run.kind == "run"
    assert "apt-get update" in run.command[0]
    assert "# not a comment here" in run.command[0]
    assert analyzer.extract_exposed_port(doc) == 8080


def test_quoted_and_tab_stripped_heredocs(analyzer):
    doc = analyzer.parse(
        "FROM alpine\n"
        "COPY <<-\"CONF\" /etc/app.conf\n"
        "\tkey=value\n"
        "\tCONF\n"
        "RUN true\n"
    )
    assert [i.kind for i in doc.stages[0].instructions] == ["from", "copy", "run"]
    assert doc.stages[0].instructions[1].destination == "/etc/app.conf"


def test_expose_without_arguments_is_skipped(analyzer):
    doc = DockerfileDocument(stages=[Stage(
        index=0,
        base_image="alpine",
        instructions=[
            FromInstruction(image="alpine"),
            MiscInstruction(name="EXPOSE"),
            MiscInstruction(name="EXPOSE", arguments=[LiteralString(content="9000")]),
        ],
    )])
    assert analyzer.extract_exposed_port(doc) == 9000
