from __future__ import annotations

import re
from typing import Iterable, List, Tuple

from .types import MatchMode, TextAtom


def match_exact(text: str, term: str) -> bool:
    return text.lower().strip() == term.lower().strip()


def match_word_boundary(text: str, term: str) -> bool:
    # "suiker" matches "suiker" but not "suikervrij".
    pattern = re.compile(rf"\b{re.escape(term.lower())}\b", re.IGNORECASE)
    return pattern.search(text.lower()) is not None


def match_substring(text: str, term: str) -> bool:
    return term.lower() in text.lower()


def match_canonical_id(atom: TextAtom, canonical_id: str) -> bool:
    if atom.canonical_id:
        return atom.canonical_id == canonical_id
    return atom.text == canonical_id


def match_text_atom(atom: TextAtom, term: str, mode: MatchMode) -> bool:
    if mode == "exact":
        return match_exact(atom.text, term)
    if mode == "word_boundary":
        return match_word_boundary(atom.text, term)
    if mode == "substring":
        return match_substring(atom.text, term)
    if mode == "canonical_id":
        return match_canonical_id(atom, term)
    return False


def _matched_text(atom: TextAtom, term: str, mode: MatchMode) -> str:
    if mode == "canonical_id" and atom.canonical_id:
        return atom.canonical_id
    if mode == "word_boundary":
        index = atom.text.lower().find(term.lower())
        if index >= 0:
            return atom.text[index : index + len(term)]
    return term


def find_matches(
    atoms: Iterable[TextAtom],
    term: str,
    mode: MatchMode,
) -> List[Tuple[TextAtom, str]]:
    """Return every atom matching ``term`` together with the matched text."""
    return [
        (atom, _matched_text(atom, term, mode))
        for atom in atoms
        if match_text_atom(atom, term, mode)
    ]
