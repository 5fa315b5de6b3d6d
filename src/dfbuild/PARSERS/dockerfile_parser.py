# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.


"""
Parser and analyzer for Dockerfiles.

Turns raw Dockerfile text into a staged document and answers the few
questions the build needs from it: the exposed port and the external
base images.
"""
import json
import logging
import re
from typing import Dict, List, Optional, Tuple

from ..exceptions import ParseError
from ..MODELS.dockerfile_ast import (
    ArgInstruction,
    CmdInstruction,
    CopyInstruction,
    DockerfileDocument,
    EntrypointInstruction,
    FromInstruction,
    LiteralString,
    MiscInstruction,
    RunInstruction,
    Stage,
    VariableReference,
)

logger = logging.getLogger(__name__)

DIRECTIVE_RE = re.compile(r'^#\s*([a-zA-Z]+)\s*=\s*(\S+)\s*$')
INSTRUCTION_RE = re.compile(r'^([A-Za-z]+)(?:\s+(.*))?$', re.DOTALL)
HEREDOC_RE = re.compile(r'<<-?\s*(["\']?)([A-Za-z_][A-Za-z0-9_]*)\1')
VARIABLE_RE = re.compile(r'\$(?:\{([A-Za-z_][A-Za-z0-9_]*)[^}]*\}|([A-Za-z_][A-Za-z0-9_]*))')
ARG_NAME_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')
PORT_RE = re.compile(r'^(\d+)(?:/(?:tcp|udp|sctp))?$', re.IGNORECASE)

MAX_PORT = 65535


class DockerfileAnalyzer:
    """
    Parser for Dockerfile instructions.
    """

    def parse_file(self, dockerfile_path: str) -> DockerfileDocument:
        """
        Parses a Dockerfile from a file path.

        Args:
            dockerfile_path (str): Path to the Dockerfile.

        Returns:
            DockerfileDocument: The parsed document.
        """
        with open(dockerfile_path, 'r', encoding='utf-8') as f:
            content = f.read()
        return self.parse(content)

    def parse(self, content: str) -> DockerfileDocument:
        """
        Parses a Dockerfile from a string content.

        Args:
            content (str): Content of the Dockerfile.

        Returns:
            DockerfileDocument: Stages in document order.

        Raises:
            ParseError: On a line that is not an instruction, an instruction
                without arguments, or a non-ARG instruction before FROM.
        """
        doc = DockerfileDocument()
        current: Optional[Stage] = None

        for line_no, text in self._logical_lines(content):
            match = INSTRUCTION_RE.match(text)
            if not match:
                raise ParseError(f"expected an instruction, found {text[:40]!r}", line=line_no)

            keyword = match.group(1).upper()
            args = (match.group(2) or "").strip()
            if not args:
                raise ParseError(f"{keyword} requires at least one argument", line=line_no)

            instruction = self._build_instruction(keyword, args, line_no)

            if keyword == "FROM":
                current = Stage(
                    index=len(doc.stages),
                    name=instruction.alias,
                    base_image=instruction.image,
                    parent=self._find_parent(doc.stages, instruction.image),
                    instructions=[instruction],
                )
                doc.stages.append(current)
            elif current is None:
                if keyword != "ARG":
                    raise ParseError(f"{keyword} is not allowed before the first FROM", line=line_no)
                doc.global_args.append(instruction)
            else:
                current.instructions.append(instruction)

        logger.debug("Parsed Dockerfile with %d stage(s)", len(doc.stages))
        return doc

    def extract_exposed_port(self, doc: DockerfileDocument) -> Optional[int]:
        """
        Returns the port of the first EXPOSE instruction in the document.

        Stages are scanned in order, then instructions within each stage. An
        EXPOSE whose first argument needs variable substitution is skipped.
        The first literal wins; a port of 0 counts as not found.

        Raises:
            ParseError: If the literal is not a port number.
        """
        for stage in doc.stages:
            for ins in stage.instructions:
                if ins.kind != "misc" or ins.name != "EXPOSE":
                    continue

                if not ins.arguments:
                    continue
                first = ins.arguments[0]
                if first.kind == "literal":
                    port = self._parse_port(first.content)
                    logger.debug("EXPOSE %d found in stage #%d", port, stage.index)
                    return port or None
                elif first.kind == "variable":
                    logger.debug("Skipping EXPOSE %s in stage #%d: substitution is not supported",
                                 first.raw, stage.index)
                else:
                    logger.debug("Skipping EXPOSE with unhandled argument kind %s", first.kind)
        return None

    def base_images(self, doc: DockerfileDocument) -> List[str]:
        """
        Lists the external images the stages build on, in document order.

        Stage aliases and ``scratch`` are left out. Global ARG defaults are
        substituted; images that still need a variable are skipped.
        """
        defaults = {a.name: a.default for a in doc.global_args if a.default is not None}
        images: List[str] = []
        for stage in doc.stages:
            if not stage.root:
                continue
            image = self._expand(stage.base_image, defaults)
            if "$" in image:
                logger.debug("Cannot resolve base image %s of stage #%d", stage.base_image, stage.index)
                continue
            if image.lower() == "scratch" or image in images:
                continue
            images.append(image)
        return images

    def _logical_lines(self, content: str) -> List[Tuple[int, str]]:
        """Joins continuation lines and drops comments, keeping the starting line number."""
        lines = content.splitlines()
        escape = "\\"

        # Parser directives are only honoured at the very top of the file
        for line in lines:
            directive = DIRECTIVE_RE.match(line.strip())
            if not directive:
                break
            if directive.group(1).lower() == "escape" and directive.group(2) in ("\\", "`"):
                escape = directive.group(2)

        logical: List[Tuple[int, str]] = []
        parts: List[str] = []
        start = 0
        i = 0
        while i < len(lines):
            line_no, stripped = i + 1, lines[i].strip()
            i += 1
            if not stripped or stripped.startswith("#"):
                # Blank and comment lines inside a continuation are skipped too
                continue
            if not parts:
                start = line_no
            if stripped.endswith(escape):
                parts.append(stripped[:-1].strip())
                continue
            parts.append(stripped)
            text = " ".join(p for p in parts if p)
            parts = []

            # Heredoc bodies (RUN <<EOF ... EOF) belong to the instruction
            for heredoc in HEREDOC_RE.finditer(text):
                terminator = heredoc.group(2)
                body = []
                while i < len(lines) and lines[i].strip() != terminator:
                    body.append(lines[i])
                    i += 1
                i += 1
                text += "\n" + "\n".join(body)
            logical.append((start, text))

        if parts:
            logical.append((start, " ".join(p for p in parts if p)))
        return logical

    def _build_instruction(self, keyword: str, args: str, line_no: int):
        if keyword == "FROM":
            flags, rest = self._split_flags(args.split())
            if len(rest) == 1:
                return FromInstruction(image=rest[0], flags=flags)
            if len(rest) == 3 and rest[1].upper() == "AS":
                return FromInstruction(image=rest[0], alias=rest[2], flags=flags)
            raise ParseError(f"malformed FROM: {args!r}", line=line_no)

        if keyword == "ARG":
            name, sep, default = args.partition("=")
            name = name.strip()
            if not ARG_NAME_RE.match(name):
                raise ParseError(f"invalid ARG name {name!r}", line=line_no)
            return ArgInstruction(name=name, default=self._unquote(default.strip()) if sep else None)

        if keyword == "RUN":
            flags, rest = self._split_flags(args.split(" "))
            command, exec_form = self._command(" ".join(rest))
            return RunInstruction(command=command, exec_form=exec_form, flags=flags)

        if keyword == "COPY":
            # Paths come from the first line; any heredoc body follows it
            flags, rest = self._split_flags(args.split("\n", 1)[0].split())
            paths = self._json_list(" ".join(rest)) or rest
            if len(paths) < 2:
                raise ParseError("COPY requires at least one source and a destination", line=line_no)
            return CopyInstruction(sources=paths[:-1], destination=paths[-1], flags=flags)

        if keyword == "CMD":
            command, exec_form = self._command(args)
            return CmdInstruction(command=command, exec_form=exec_form)

        if keyword == "ENTRYPOINT":
            command, exec_form = self._command(args)
            return EntrypointInstruction(command=command, exec_form=exec_form)

        return MiscInstruction(name=keyword, arguments=[self._component(tok) for tok in args.split()])

    @staticmethod
    def _split_flags(tokens: List[str]) -> Tuple[List[str], List[str]]:
        tokens = [t for t in tokens if t]
        i = 0
        while i < len(tokens) and tokens[i].startswith("--"):
            i += 1
        return tokens[:i], tokens[i:]

    @staticmethod
    def _json_list(args: str) -> Optional[List[str]]:
        # Exec form: ["executable", "param1"]; anything else is shell form
        if not (args.startswith('[') and args.endswith(']')):
            return None
        try:
            value = json.loads(args)
        except json.JSONDecodeError:
            return None
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return value
        return None

    def _command(self, args: str) -> Tuple[List[str], bool]:
        exec_args = self._json_list(args)
        if exec_args is not None:
            return exec_args, True
        return [args], False

    @staticmethod
    def _component(token: str):
        match = VARIABLE_RE.search(token)
        if match:
            return VariableReference(name=match.group(1) or match.group(2), raw=token)
        return LiteralString(content=token)

    @staticmethod
    def _unquote(value: str) -> str:
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            return value[1:-1]
        return value

    @staticmethod
    def _find_parent(stages: List[Stage], image: str) -> Optional[int]:
        for stage in reversed(stages):
            if stage.name and stage.name.lower() == image.lower():
                return stage.index
        return None

    @staticmethod
    def _expand(value: str, defaults: Dict[str, str]) -> str:
        def replace(match):
            name = match.group(1) or match.group(2)
            return defaults.get(name, match.group(0))
        return VARIABLE_RE.sub(replace, value)

    @staticmethod
    def _parse_port(content: str) -> int:
        match = PORT_RE.match(content.strip())
        if not match:
            raise ParseError(f"invalid EXPOSE port {content!r}")
        port = int(match.group(1))
        if port > MAX_PORT:
            raise ParseError(f"EXPOSE port {port} is out of range")
        return port
