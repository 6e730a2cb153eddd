"""Token counting and offset-aware tokenization for chunk budgets.

Every token budget in the chunking engine (``max_chunk_size``,
``min_chunk_size``, ``overlap_size``) is measured with one of these
tokenizers.  Both return :class:`Token` tuples carrying character offsets
into the input so the fixed-window strategy can slice exact spans.

Two implementations:

- :class:`SimpleTokenizer` -- regex word/punctuation tokens.  Deterministic,
  dependency-free at runtime, and the default.
- :class:`HuggingFaceTokenizer` -- sub-word tokens from a pretrained
  ``tokenizers`` model (``bert-base-uncased`` by default), for budgets that
  should track an embedding model's own tokenizer.

The choice is explicit (``Settings.tokenizer``); a HuggingFace tokenizer
that cannot be loaded is a configuration error, not a silent downgrade.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import NamedTuple

import structlog

from coursekb.config.settings import Settings
from coursekb.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

_SIMPLE_TOKEN_RE = re.compile(r"\w+|[^\w\s]", re.UNICODE)


class Token(NamedTuple):
    text: str
    start: int
    end: int


class Tokenizer(ABC):
    """Contract for the token counter used by chunking and scoring."""

    @abstractmethod
    def tokenize(self, text: str) -> list[Token]:
        """Return tokens of *text* in order, with character offsets into *text*."""

    def count(self, text: str) -> int:
        return len(self.tokenize(text))

    @abstractmethod
    def get_name(self) -> str:
        """Return an identifier recorded in chunk metadata."""


class SimpleTokenizer(Tokenizer):
    """Splits on runs of word characters and single punctuation marks.

    ``"Sentence one."`` -> ``["Sentence", "one", "."]``.
    """

    def tokenize(self, text: str) -> list[Token]:
        return [Token(m.group(), m.start(), m.end()) for m in _SIMPLE_TOKEN_RE.finditer(text)]

    def count(self, text: str) -> int:
        return sum(1 for _ in _SIMPLE_TOKEN_RE.finditer(text))

    def get_name(self) -> str:
        return "simple"


class HuggingFaceTokenizer(Tokenizer):
    """Sub-word tokenizer backed by the HuggingFace ``tokenizers`` library.

    The model is loaded on first use (the first load downloads the
    tokenizer JSON from the Hub and caches it locally).
    """

    def __init__(self, model_name: str = "bert-base-uncased") -> None:
        self._model_name = model_name
        self._tokenizer = None  # Lazy-loaded

    def _load(self):  # noqa: ANN202
        if self._tokenizer is not None:
            return self._tokenizer
        try:
            from tokenizers import Tokenizer as HFTokenizer

            self._tokenizer = HFTokenizer.from_pretrained(self._model_name)
        except Exception as exc:
            raise ConfigurationError(
                message=f"Failed to load tokenizer '{self._model_name}': {exc}",
                provider_name="tokenizers",
            ) from exc
        logger.info("tokenizer_loaded", model=self._model_name)
        return self._tokenizer

    def tokenize(self, text: str) -> list[Token]:
        if not text:
            return []
        encoding = self._load().encode(text, add_special_tokens=False)
        return [
            Token(tok, start, end)
            for tok, (start, end) in zip(encoding.tokens, encoding.offsets)
        ]

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self._load().encode(text, add_special_tokens=False).ids)

    def get_name(self) -> str:
        return f"hf:{self._model_name}"


def build_tokenizer(settings: Settings) -> Tokenizer:
    """Return the tokenizer selected by ``settings.tokenizer``."""
    if settings.tokenizer == "huggingface":
        return HuggingFaceTokenizer(settings.tokenizer_model)
    return SimpleTokenizer()
