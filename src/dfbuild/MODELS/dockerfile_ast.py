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
Models for the Dockerfile Abstract Syntax Tree.

A document is an ordered list of stages; each stage holds its instructions
in the order they were written. Instructions and argument components are
closed unions discriminated on ``kind``.
"""
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, Field, computed_field


class LiteralString(BaseModel):
    """A plain argument token."""
    kind: Literal["literal"] = "literal"
    content: str


class VariableReference(BaseModel):
    """An argument token that depends on ``$VAR`` or ``${VAR}`` substitution."""
    kind: Literal["variable"] = "variable"
    name: str
    raw: str


ArgumentComponent = Annotated[
    Union[LiteralString, VariableReference], Field(discriminator="kind")
]


class FromInstruction(BaseModel):
    kind: Literal["from"] = "from"
    image: str
    alias: Optional[str] = None
    flags: List[str] = []


class ArgInstruction(BaseModel):
    kind: Literal["arg"] = "arg"
    name: str
    default: Optional[str] = None


class RunInstruction(BaseModel):
    kind: Literal["run"] = "run"
    command: List[str]
    exec_form: bool = False
    flags: List[str] = []


class CopyInstruction(BaseModel):
    kind: Literal["copy"] = "copy"
    sources: List[str]
    destination: str
    flags: List[str] = []


class CmdInstruction(BaseModel):
    kind: Literal["cmd"] = "cmd"
    command: List[str]
    exec_form: bool = False


class EntrypointInstruction(BaseModel):
    kind: Literal["entrypoint"] = "entrypoint"
    command: List[str]
    exec_form: bool = False


class MiscInstruction(BaseModel):
    """
    Any instruction without a dedicated model (EXPOSE, ENV, LABEL, WORKDIR, ...).
    """
    kind: Literal["misc"] = "misc"
    name: str
    arguments: List[ArgumentComponent] = []


Instruction = Annotated[
    Union[
        FromInstruction,
        ArgInstruction,
        RunInstruction,
        CopyInstruction,
        CmdInstruction,
        EntrypointInstruction,
        MiscInstruction,
    ],
    Field(discriminator="kind"),
]


class Stage(BaseModel):
    """
    A build stage, from its FROM line up to the next one.

    ``parent`` is the index of the earlier stage this one builds on, or None
    when it starts from an external image.
    """
    index: int
    name: Optional[str] = None
    base_image: str
    parent: Optional[int] = None
    instructions: List[Instruction] = []

    @computed_field
    @property
    def root(self) -> bool:
        return self.parent is None


class DockerfileDocument(BaseModel):
    """
    Represents a complete parsed Dockerfile.
    """
    global_args: List[ArgInstruction] = []
    stages: List[Stage] = []
