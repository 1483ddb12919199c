"""WordPiece tokenizer for BERT-style embedding models.

Dependency-free reimplementation of the BERT "basic + wordpiece" pipeline:
lowercase, strip accents, split on whitespace and punctuation, then greedy
longest-match subword lookup against ``vocab.txt``.
"""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from pathlib import Path

# BERT defaults, used when the vocab does not contain the named token.
CLS_ID = 101
SEP_ID = 102
UNK_ID = 100
PAD_ID = 0

CONTINUATION_PREFIX = "##"
MAX_CHARS_PER_WORD = 100
DEFAULT_MAX_LENGTH = 256


@dataclass
class TokenizerOutput:
    """Token ids and attention mask for one text."""

    input_ids: list[int]
    attention_mask: list[int]


@dataclass
class BatchTokenizerOutput:
    """Right-padded token ids and masks for a batch.

    Attributes:
        input_ids: One row per text, all of length ``max_len``.
        attention_mask: 1 for real tokens, 0 for padding.
        max_len: Padded sequence length (0 for an empty batch).
    """

    input_ids: list[list[int]]
    attention_mask: list[list[int]]
    max_len: int


def parse_vocab(content: str) -> dict[str, int]:
    """Parse vocab.txt content: line number (0-based) is the token id.

    Empty lines are skipped but still consume an id.
    """
    vocab: dict[str, int] = {}
    for index, line in enumerate(content.split("\n")):
        token = line.rstrip("\r")
        if token:
            vocab[token] = index
    return vocab


def _is_punctuation(char: str) -> bool:
    cp = ord(char)
    # ASCII symbols like "$", "^", "`" are not category P but BERT splits them.
    if 33 <= cp <= 47 or 58 <= cp <= 64 or 91 <= cp <= 96 or 123 <= cp <= 126:
        return True
    return unicodedata.category(char).startswith("P")


def _is_control(char: str) -> bool:
    if char in ("\t", "\n", "\r"):
        return False
    return unicodedata.category(char) in ("Cc", "Cf")


def _is_cjk(char: str) -> bool:
    cp = ord(char)
    return (
        0x4E00 <= cp <= 0x9FFF
        or 0x3400 <= cp <= 0x4DBF
        or 0x20000 <= cp <= 0x2A6DF
        or 0x2A700 <= cp <= 0x2B73F
        or 0x2B740 <= cp <= 0x2B81F
        or 0x2B820 <= cp <= 0x2CEAF
        or 0xF900 <= cp <= 0xFAFF
        or 0x2F800 <= cp <= 0x2FA1F
    )


def strip_accents(text: str) -> str:
    """NFD-decompose *text* and drop combining marks (category Mn)."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(c for c in decomposed if unicodedata.category(c) != "Mn")


def split_on_punctuation(text: str) -> list[str]:
    """Split on whitespace; every punctuation or CJK character is its own token."""
    tokens: list[str] = []
    current: list[str] = []

    def flush() -> None:
        if current:
            tokens.append("".join(current))
            current.clear()

    for char in text:
        if char == "\x00" or char == "�" or _is_control(char):
            continue
        if char.isspace():
            flush()
        elif _is_punctuation(char) or _is_cjk(char):
            flush()
            tokens.append(char)
        else:
            current.append(char)
    flush()
    return tokens


class BertTokenizer:
    """WordPiece tokenizer over a fixed vocabulary.

    Args:
        vocab: Token string → id mapping (see ``parse_vocab``).
    """

    def __init__(self, vocab: dict[str, int]) -> None:
        self._vocab = vocab
        self.cls_id = vocab.get("[CLS]", CLS_ID)
        self.sep_id = vocab.get("[SEP]", SEP_ID)
        self.unk_id = vocab.get("[UNK]", UNK_ID)
        self.pad_id = vocab.get("[PAD]", PAD_ID)

    @classmethod
    def from_vocab_file(cls, vocab_path: Path | str) -> BertTokenizer:
        """Load a tokenizer from a vocab.txt file (one token per line)."""
        content = Path(vocab_path).read_text(encoding="utf-8")
        return cls(parse_vocab(content))

    @property
    def vocab_size(self) -> int:
        return len(self._vocab)

    def wordpiece(self, word: str) -> list[int]:
        """Greedy longest-prefix match of a single word.

        Returns exactly ``[unk_id]`` when the word cannot be fully decomposed;
        partial matches are discarded.
        """
        if len(word) > MAX_CHARS_PER_WORD:
            return [self.unk_id]

        ids: list[int] = []
        start = 0
        while start < len(word):
            end = len(word)
            found: int | None = None
            while start < end:
                piece = word[start:end]
                if start > 0:
                    piece = CONTINUATION_PREFIX + piece
                found = self._vocab.get(piece)
                if found is not None:
                    break
                end -= 1
            if found is None:
                return [self.unk_id]
            ids.append(found)
            start = end
        return ids

    def tokenize(self, text: str, max_length: int = DEFAULT_MAX_LENGTH) -> TokenizerOutput:
        """Tokenize *text* into ``[CLS] ... [SEP]``.

        Only the content region is truncated, so the result never exceeds
        *max_length* and always keeps both wrapper tokens.
        """
        if max_length < 2:
            raise ValueError(f"max_length must be >= 2, got {max_length}")

        words = split_on_punctuation(strip_accents(text.lower()))
        budget = max_length - 2

        content: list[int] = []
        for word in words:
            if len(content) >= budget:
                break
            content.extend(self.wordpiece(word)[: budget - len(content)])

        input_ids = [self.cls_id, *content, self.sep_id]
        return TokenizerOutput(input_ids=input_ids, attention_mask=[1] * len(input_ids))

    def tokenize_batch(
        self, texts: list[str], max_length: int = DEFAULT_MAX_LENGTH
    ) -> BatchTokenizerOutput:
        """Tokenize *texts* and right-pad to the longest sequence in the batch."""
        tokenized = [self.tokenize(t, max_length) for t in texts]
        max_len = max((len(t.input_ids) for t in tokenized), default=0)

        input_ids = [
            t.input_ids + [self.pad_id] * (max_len - len(t.input_ids)) for t in tokenized
        ]
        attention_mask = [
            t.attention_mask + [0] * (max_len - len(t.attention_mask)) for t in tokenized
        ]
        return BatchTokenizerOutput(
            input_ids=input_ids, attention_mask=attention_mask, max_len=max_len
        )
