from __future__ import annotations

from typing import Any, List, Mapping, Optional

from .types import GuardrailsTargets, TextAtom


def _field(entry: Any, key: str) -> Any:
    if isinstance(entry, Mapping):
        return entry.get(key)
    return getattr(entry, key, None)


def _atom(value: Any, path: str, locale: Optional[str]) -> Optional[TextAtom]:
    if value is None:
        return None
    text = str(value).strip().lower()
    if not text:
        return None
    return TextAtom(text=text, path=path, locale=locale)


def map_draft_to_targets(draft: Mapping[str, Any], locale: Optional[str] = None) -> GuardrailsTargets:
    """Split a recipe draft into addressable text atoms.

    The draft content is read from ``draft["rewrite"]`` when present (the
    adaptation response shape) and from ``draft`` itself otherwise. Paths use
    the original list index, so a dropped empty entry never shifts the paths
    of the entries after it.
    """
    content = draft.get("rewrite") or draft

    ingredient_atoms: List[TextAtom] = []
    for index, ingredient in enumerate(content.get("ingredients") or []):
        name = _atom(_field(ingredient, "name"), f"ingredients[{index}].name", locale)
        if name:
            ingredient_atoms.append(name)
        note = _atom(_field(ingredient, "note"), f"ingredients[{index}].note", locale)
        if note:
            ingredient_atoms.append(note)

    step_atoms: List[TextAtom] = []
    for index, step in enumerate(content.get("steps") or []):
        text = step if isinstance(step, str) else _field(step, "text")
        atom = _atom(text, f"steps[{index}].text", locale)
        if atom:
            step_atoms.append(atom)

    metadata_atoms: List[TextAtom] = []
    title = _atom(content.get("title"), "metadata.title", locale)
    if title:
        metadata_atoms.append(title)

    return GuardrailsTargets(
        ingredient=ingredient_atoms,
        step=step_atoms,
        metadata=metadata_atoms,
    )
