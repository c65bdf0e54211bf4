"""
Parsers for Dockerfiles, extracting instructions and arguments.
"""
import json
import re
from typing import List, Optional, Tuple
from ..MODELS.dockerfile_ast import Instruction

_INSTRUCTION = re.compile(r'^([A-Za-z]+)(?:\s+(.*))?$')
_CONTINUATION = re.compile(r'\\\s*$')

class DockerfileParser:
    """
    Parser for Dockerfile instructions.
    """
    def parse(self, dockerfile_path: str) -> List[Instruction]:
        """
        Parses a Dockerfile from a file path.

        Args:
            dockerfile_path (str): Path to the Dockerfile.

        Returns:
            List[Instruction]: List of parsed instructions.
        """
        with open(dockerfile_path, 'r') as f:
            content = f.read()
        return self.parse_from_string(content)

    def parse_from_string(self, content: str) -> List[Instruction]:
        """
        Parses a Dockerfile from a string content.

        Comment lines are dropped, also inside continued instructions, and
        each instruction keeps the line number it starts on.

        Args:
            content (str): Content of the Dockerfile.

        Returns:
            List[Instruction]: List of parsed instructions.
        """
        instructions = []
        for line_no, logical in self._logical_lines(content):
            match = _INSTRUCTION.match(logical)
            if not match:
                continue
            inst = match.group(1).upper()
            args_str = (match.group(2) or '').strip()
            args, exec_form = self._split_arguments(inst, args_str)
            instructions.append(Instruction(
                instruction=inst,
                arguments=args,
                raw=logical,
                exec_form=exec_form,
                line=line_no,
            ))
        return instructions

    def _logical_lines(self, content: str) -> List[Tuple[int, str]]:
        """
        Joins lines ending in a backslash into one logical line.
        """
        result = []
        buffer: List[str] = []
        start: Optional[int] = None
        for number, line in enumerate(content.splitlines(), start=1):
            stripped = line.strip()
            if stripped.startswith('#'):
                continue
            if not stripped and not buffer:
                continue
            if start is None:
                start = number
            if _CONTINUATION.search(stripped):
                buffer.append(_CONTINUATION.sub('', stripped).strip())
                continue
            buffer.append(stripped)
            result.append((start, ' '.join(part for part in buffer if part)))
            buffer = []
            start = None
        if buffer:
            result.append((start, ' '.join(part for part in buffer if part)))
        return result

    def _split_arguments(self, inst: str, args_str: str) -> Tuple[List[str], bool]:
        # Exec form: a JSON array of strings
        if args_str.startswith('[') and args_str.endswith(']'):
            try:
                parsed = json.loads(args_str)
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, list) and all(isinstance(a, str) for a in parsed):
                return parsed, True

        if inst in ("ENV", "ARG", "LABEL"):
            # KEY=VALUE pairs, or the legacy single "KEY VALUE" form for ENV
            if '=' in args_str:
                return re.findall(r'(\S+=(?:"[^"]*"|\S*))', args_str), False
            if inst == "ENV":
                return args_str.split(None, 1), False
            return args_str.split(), False

        return ([args_str] if args_str else []), False
