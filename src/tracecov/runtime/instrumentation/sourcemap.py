"""Line correspondence between original and instrumented source."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_FRAME_LINE = re.compile(r'File "(?P<file>[^"]+)", line (?P<line>\d+)')


@dataclass(slots=True)
class SourceMap:
    """Maps instrumented line numbers back to original ones and vice versa.

    Every instrumented line maps to an original line: probe lines map to the
    line they precede. Only lines that carry original text map forwards.
    """

    instrumented_to_original: dict[int, int] = field(default_factory=dict)
    original_to_instrumented: dict[int, int] = field(default_factory=dict)

    def add(self, instrumented_line: int, original_line: int, *, carries_text: bool) -> None:
        self.instrumented_to_original[instrumented_line] = original_line
        if carries_text:
            self.original_to_instrumented.setdefault(original_line, instrumented_line)

    def original_line(self, instrumented_line: int) -> int | None:
        return self.instrumented_to_original.get(instrumented_line)

    def instrumented_line(self, original_line: int) -> int | None:
        return self.original_to_instrumented.get(original_line)

    def translate_traceback(self, text: str, filename: str) -> str:
        """Rewrite ``File "<filename>", line N`` entries to original lines.

        Only needed for code compiled straight from instrumented text; the
        import loader relocates line numbers before compiling.
        """

        def replace(match: re.Match[str]) -> str:
            if match.group("file") != filename:
                return match.group(0)
            original = self.original_line(int(match.group("line")))
            if original is None:
                return match.group(0)
            return f'File "{match.group("file")}", line {original}'

        return _FRAME_LINE.sub(replace, text)
