"""
Models for the Dockerfile Abstract Syntax Tree.
"""
import json
from typing import List, Optional
from pydantic import BaseModel

class Instruction(BaseModel):
    """
    Represents a single instruction in a Dockerfile.

    ``exec_form`` is True for JSON array arguments (``CMD ["sleep", "infinity"]``).
    """
    instruction: str
    arguments: List[str]
    raw: str = ""
    exec_form: bool = False
    line: Optional[int] = None

    @classmethod
    def shell(cls, instruction: str, *arguments: str) -> "Instruction":
        return cls(instruction=instruction, arguments=[" ".join(arguments)])

    @classmethod
    def exec(cls, instruction: str, arguments: List[str]) -> "Instruction":
        return cls(instruction=instruction, arguments=list(arguments), exec_form=True)

    @property
    def text(self) -> str:
        """Arguments joined the way a shell-form instruction would run them."""
        return " ".join(self.arguments)

    def render(self) -> str:
        if self.exec_form:
            return f"{self.instruction} {json.dumps(self.arguments)}"
        return f"{self.instruction} {self.text}"

class DockerfileAST(BaseModel):
    """
    Represents the complete Abstract Syntax Tree of a Dockerfile.
    """
    instructions: List[Instruction] = []

    def find(self, instruction: str) -> List[Instruction]:
        return [i for i in self.instructions if i.instruction == instruction]

    def last(self, instruction: str) -> Optional[Instruction]:
        found = self.find(instruction)
        return found[-1] if found else None
