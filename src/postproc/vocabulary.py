"""
Token vocabulary loading and LaTeX rendering.

The vocabulary is read from a tokenizer JSON document (``model.vocab``
maps token strings to ids). It is loaded once per process and shared
read-only by every decode call.
"""

import json
import threading
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from data.errors import VocabularyError
from util.logging import get_logger

logger = get_logger(__name__)

# Byte-level BPE marker for a leading space inside a token
SPACE_MARKER = 'Ġ'

# Keyed by resolved path and the reserved ids / space marker it was loaded with
_cache: Dict[Tuple[Path, int, int, int, str], 'Vocabulary'] = {}
_cache_lock = threading.Lock()


class Vocabulary:
    """Immutable id -> token mapping with the reserved control ids."""

    def __init__(
        self,
        id_to_token: Mapping[int, str],
        pad_id: int = 0,
        bos_id: int = 1,
        eos_id: int = 2,
        space_marker: str = SPACE_MARKER,
    ):
        self._id_to_token = MappingProxyType(dict(id_to_token))
        self.pad_id = pad_id
        self.bos_id = bos_id
        self.eos_id = eos_id
        self.space_marker = space_marker
        self.reserved_ids = frozenset((pad_id, bos_id, eos_id))

    @property
    def id_to_token(self) -> Mapping[int, str]:
        """Read-only view of the mapping."""
        return self._id_to_token

    def __len__(self) -> int:
        return len(self._id_to_token)

    def __contains__(self, token_id: int) -> bool:
        return token_id in self._id_to_token

    def get(self, token_id: int) -> Optional[str]:
        return self._id_to_token.get(token_id)

    def __repr__(self) -> str:
        return f"Vocabulary(size={len(self)}, bos={self.bos_id}, eos={self.eos_id})"


def _parse_document(document: Mapping[str, Any]) -> Dict[int, str]:
    model = document.get('model') if isinstance(document, Mapping) else None
    if not isinstance(model, Mapping):
        raise VocabularyError("Tokenizer document has no 'model' object")

    vocab = model.get('vocab')
    if not isinstance(vocab, Mapping):
        raise VocabularyError("Tokenizer document has no 'model.vocab' mapping")

    id_to_token: Dict[int, str] = {}

    def add(token: Any, token_id: Any):
        if not isinstance(token, str):
            raise VocabularyError(f"Token {token!r} is not a string")
        if isinstance(token_id, bool) or not isinstance(token_id, int):
            raise VocabularyError(f"Token {token!r} has non-integer id {token_id!r}")
        existing = id_to_token.get(token_id)
        if existing is not None and existing != token:
            raise VocabularyError(
                f"Id {token_id} is assigned to both {existing!r} and {token!r}"
            )
        id_to_token[token_id] = token

    for token, token_id in vocab.items():
        add(token, token_id)

    # Special tokens declared outside the BPE vocabulary
    for entry in document.get('added_tokens') or []:
        if not isinstance(entry, Mapping) or 'id' not in entry or 'content' not in entry:
            raise VocabularyError(f"Malformed added_tokens entry: {entry!r}")
        add(entry['content'], entry['id'])

    return id_to_token


def load_vocabulary(
    source: Union[str, Path, Mapping[str, Any]],
    pad_id: int = 0,
    bos_id: int = 1,
    eos_id: int = 2,
    space_marker: str = SPACE_MARKER,
) -> Vocabulary:
    """
    Load a vocabulary from a tokenizer JSON file or a parsed document.

    Raises:
        VocabularyError: If the source is missing, unreadable or malformed
    """
    if isinstance(source, Mapping):
        document = source
    else:
        path = Path(source)
        if not path.is_file():
            raise VocabularyError(f"Tokenizer file not found: {path}")
        try:
            with open(path, 'r', encoding='utf-8') as f:
                document = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise VocabularyError(f"Cannot read tokenizer file {path}: {e}") from e

    id_to_token = _parse_document(document)
    if not id_to_token:
        raise VocabularyError("Tokenizer vocabulary is empty")

    logger.info(f"Loaded vocabulary with {len(id_to_token)} tokens")
    return Vocabulary(id_to_token, pad_id, bos_id, eos_id, space_marker)


def get_vocabulary(
    path: Union[str, Path],
    pad_id: int = 0,
    bos_id: int = 1,
    eos_id: int = 2,
    space_marker: str = SPACE_MARKER,
) -> Vocabulary:
    """Return the process-wide vocabulary for a file, loading it on first use."""
    resolved = Path(path).expanduser().resolve()
    key = (resolved, pad_id, bos_id, eos_id, space_marker)

    with _cache_lock:
        vocabulary = _cache.get(key)
        if vocabulary is None:
            vocabulary = load_vocabulary(resolved, pad_id, bos_id, eos_id, space_marker)
            _cache[key] = vocabulary
        return vocabulary


def clear_vocabulary_cache():
    """Forget every cached vocabulary."""
    with _cache_lock:
        _cache.clear()


def render(tokens: Iterable[int], vocabulary: Vocabulary) -> str:
    """
    Render a token sequence as a LaTeX string.

    Reserved ids are dropped and unknown ids are skipped silently. The space
    marker becomes a literal space before the result is trimmed.
    """
    pieces = []
    for token_id in tokens:
        token_id = int(token_id)
        if token_id in vocabulary.reserved_ids:
            continue
        piece = vocabulary.get(token_id)
        if piece is not None:
            pieces.append(piece)

    return ''.join(pieces).replace(vocabulary.space_marker, ' ').strip()
