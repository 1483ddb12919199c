"""Token-aware Markdown chunker with heading and line tracking."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

from ragkit.chunking.base import BaseChunker, RawChunk
from ragkit.chunking.counters import ApproximateTokenCounter, TokenCounter
from ragkit.errors import ValidationError

DEFAULT_TARGET_CHUNK_SIZE = 512
DEFAULT_PADDING_FACTOR = 0.9
DEFAULT_MODEL_TOKEN_LIMIT = 8191

HEADING_SEPARATOR = " > "

# ATX headings (H1-H6), trailing closing hashes stripped.
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)(?:\s+#+)?\s*$")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")


@dataclass
class _Section:
    lines: list[str]
    first_line: int  # 1-based number of lines[0]
    heading_path: str | None = None
    heading_level: int | None = None


@dataclass
class _Paragraph:
    lines: list[tuple[int, str]]  # (line number, text)

    @property
    def text(self) -> str:
        return "\n".join(line for _, line in self.lines)

    @property
    def start_line(self) -> int:
        return self.lines[0][0]

    @property
    def end_line(self) -> int:
        return self.lines[-1][0]


def calculate_effective_target(target_chunk_size: int, padding_factor: float) -> int:
    """Token budget per chunk: ``floor(target * padding)``, at least 1."""
    return max(1, math.floor(target_chunk_size * padding_factor))


def split_sections(text: str) -> list[_Section]:
    """Split Markdown on heading lines, ignoring headings inside code fences.

    Content before the first heading becomes a section with no heading path.
    Each heading's path includes its ancestors, e.g. ``"Guide > Install"``.
    """
    lines = text.split("\n")
    headings: list[tuple[int, int, str]] = []  # (line index, level, title)
    in_fence = False
    for i, line in enumerate(lines):
        if _FENCE_RE.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        m = _HEADING_RE.match(line)
        if m:
            headings.append((i, len(m.group(1)), m.group(2).strip()))

    if not headings:
        return [_Section(lines=lines, first_line=1)]

    sections: list[_Section] = []
    if headings[0][0] > 0:
        sections.append(_Section(lines=lines[: headings[0][0]], first_line=1))

    stack: list[tuple[int, str]] = []
    for n, (index, level, title) in enumerate(headings):
        while stack and stack[-1][0] >= level:
            stack.pop()
        stack.append((level, title))
        end = headings[n + 1][0] if n + 1 < len(headings) else len(lines)
        sections.append(
            _Section(
                lines=lines[index:end],
                first_line=index + 1,
                heading_path=HEADING_SEPARATOR.join(t for _, t in stack),
                heading_level=level,
            )
        )
    return sections


def _paragraphs(numbered: list[tuple[int, str]]) -> list[_Paragraph]:
    """Group consecutive non-blank lines."""
    paragraphs: list[_Paragraph] = []
    current: list[tuple[int, str]] = []
    for number, line in numbered:
        if line.strip():
            current.append((number, line))
        elif current:
            paragraphs.append(_Paragraph(current))
            current = []
    if current:
        paragraphs.append(_Paragraph(current))
    return paragraphs


class TokenChunker(BaseChunker):
    """Split Markdown by headings, then pack paragraphs up to a token budget.

    Strategy:
    - Headings are primary boundaries; each section keeps its heading path.
    - A section that fits the effective target (``target_chunk_size *
      padding_factor``) is a single chunk.
    - Otherwise paragraphs are packed greedily; a paragraph over the target is
      split on line boundaries.
    - A paragraph over ``model_token_limit`` cannot be embedded at all and
      raises ValidationError.
    """

    def __init__(
        self,
        target_chunk_size: int = DEFAULT_TARGET_CHUNK_SIZE,
        padding_factor: float = DEFAULT_PADDING_FACTOR,
        model_token_limit: int = DEFAULT_MODEL_TOKEN_LIMIT,
        token_counter: TokenCounter | None = None,
    ) -> None:
        if target_chunk_size < 1:
            raise ValueError("target_chunk_size must be >= 1")
        if not 0.0 < padding_factor <= 1.0:
            raise ValueError("padding_factor must be in (0.0, 1.0]")
        if model_token_limit < 1:
            raise ValueError("model_token_limit must be >= 1")
        self.target_chunk_size = target_chunk_size
        self.padding_factor = padding_factor
        self.model_token_limit = model_token_limit
        self.token_counter = token_counter or ApproximateTokenCounter()

    @property
    def effective_target(self) -> int:
        return calculate_effective_target(self.target_chunk_size, self.padding_factor)

    def chunk(self, text: str) -> list[RawChunk]:
        text = text.replace("\r\n", "\n")
        if not text.strip():
            return []
        chunks: list[RawChunk] = []
        for section in split_sections(text):
            chunks.extend(self._chunk_section(section))
        return chunks

    def _chunk_section(self, section: _Section) -> list[RawChunk]:
        numbered = [(section.first_line + i, line) for i, line in enumerate(section.lines)]
        non_blank = [n for n, line in numbered if line.strip()]
        if not non_blank:
            return []

        whole = "\n".join(section.lines).strip()
        if self.token_counter.count(whole) <= self.effective_target:
            return [self._make(whole, non_blank[0], non_blank[-1], section)]

        chunks: list[RawChunk] = []
        pending: list[_Paragraph] = []
        pending_tokens = 0

        def flush() -> None:
            nonlocal pending, pending_tokens
            if pending:
                content = "\n\n".join(p.text for p in pending).strip()
                chunks.append(self._make(content, pending[0].start_line, pending[-1].end_line, section))
            pending = []
            pending_tokens = 0

        for paragraph in _paragraphs(numbered):
            tokens = self.token_counter.count(paragraph.text)
            if tokens > self.model_token_limit:
                raise ValidationError(
                    f"Paragraph at line {paragraph.start_line} exceeds model token limit "
                    f"({tokens} > {self.model_token_limit}). Split the content further."
                )
            if tokens > self.effective_target:
                flush()
                chunks.extend(self._split_lines(paragraph, section))
                continue
            if pending and pending_tokens + tokens > self.effective_target:
                flush()
            pending.append(paragraph)
            pending_tokens += tokens
        flush()
        return chunks

    def _split_lines(self, paragraph: _Paragraph, section: _Section) -> list[RawChunk]:
        """Split an oversized paragraph on line boundaries."""
        chunks: list[RawChunk] = []
        current: list[tuple[int, str]] = []
        current_tokens = 0
        for number, line in paragraph.lines:
            tokens = self.token_counter.count(line)
            if current and current_tokens + tokens > self.effective_target:
                chunks.append(self._make_from_lines(current, section))
                current = []
                current_tokens = 0
            current.append((number, line))
            current_tokens += tokens
        if current:
            chunks.append(self._make_from_lines(current, section))
        return chunks

    def _make_from_lines(self, lines: list[tuple[int, str]], section: _Section) -> RawChunk:
        content = "\n".join(line for _, line in lines).strip()
        return self._make(content, lines[0][0], lines[-1][0], section)

    @staticmethod
    def _make(content: str, start_line: int, end_line: int, section: _Section) -> RawChunk:
        return RawChunk(
            content=content,
            heading_path=section.heading_path,
            heading_level=section.heading_level,
            start_line=start_line,
            end_line=end_line,
        )
