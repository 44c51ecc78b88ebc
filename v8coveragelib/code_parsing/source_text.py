import re
from array import array
from bisect import bisect_right
from typing import Tuple

from v8coveragelib.models.coverage import Position

NEWLINE = re.compile(r"\n")


class SourceText:
    """
    Offset bookkeeping for one source file. Engine ranges are character
    offsets, tree-sitter reports byte offsets, and Istanbul wants 1-based
    lines with 0-based columns. This class converts between the three.
    """

    def __init__(self, text: str):
        self.text = text
        self.data = text.encode("utf-8")
        self.line_starts = [0] + [m.end() for m in NEWLINE.finditer(text)]
        self._byte_to_char = None
        if len(self.data) != len(text):
            mapping = array("l")
            for index, ch in enumerate(text):
                mapping.extend([index] * len(ch.encode("utf-8")))
            mapping.append(len(text))
            self._byte_to_char = mapping

    def __len__(self):
        return len(self.text)

    def char_offset(self, byte_offset: int) -> int:
        if self._byte_to_char is None:
            return byte_offset
        return self._byte_to_char[min(byte_offset, len(self._byte_to_char) - 1)]

    def line_column(self, char_offset: int) -> Tuple[int, int]:
        """0-based (line, column) of a character offset."""
        line = bisect_right(self.line_starts, char_offset) - 1
        return line, char_offset - self.line_starts[line]

    def position(self, char_offset: int) -> Position:
        line, column = self.line_column(char_offset)
        return Position(line=line + 1, column=column)

    def offset(self, line: int, column: int) -> int:
        """Character offset of a 0-based (line, column); clamps past-the-end values."""
        if line >= len(self.line_starts):
            return len(self.text)
        return min(self.line_starts[line] + column, len(self.text))
