from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List

from adapters.filesystem.json_utils import parse_json_text
from domain.ports.repositories import NetlistRepository

logger = logging.getLogger(__name__)


class FileSystemNetlistRepository(NetlistRepository):
    """Reads Yosys JSON netlists; ``//`` line comments are allowed."""

    def load(self, path: Path) -> dict[str, Any]:
        text = path.read_text(encoding="utf-8")
        logger.debug("Loaded netlist %s (%d bytes)", path, len(text))
        return parse_json_text(self.strip_comments(text), str(path))

    def strip_comments(self, content: str) -> str:
        result_lines: List[str] = []
        for line in content.splitlines():
            in_string = False
            escaped = False
            cleaned = []
            for idx, char in enumerate(line):
                if char == '"' and not escaped:
                    in_string = not in_string
                if not in_string and char == "/" and idx + 1 < len(line) and line[idx + 1] == "/":
                    break
                cleaned.append(char)
                escaped = char == "\\" and not escaped
            result_lines.append("".join(cleaned))
        return "\n".join(result_lines)
