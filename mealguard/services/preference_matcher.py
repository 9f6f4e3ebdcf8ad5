"""Match meals against free-text slot preferences such as "eiwit shake".

A preference matches when it appears verbatim in the meal name, when all of
its significant words appear somewhere in the name or tags, or when a row of
``CATEGORY_RULES`` recognises both the preference and the meal.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Sequence

MIN_WORD_LENGTH = 3


@dataclass(frozen=True)
class KeywordRequirement:
    """When the preference mentions any ``when`` keyword, the meal must contain one of ``any_of``."""

    when: tuple[str, ...]
    any_of: tuple[str, ...]


@dataclass(frozen=True)
class CategoryRule:
    category: str
    trigger_keywords: tuple[str, ...]
    name_keywords: tuple[str, ...]
    requirements: tuple[KeywordRequirement, ...] = ()


CATEGORY_RULES: tuple[CategoryRule, ...] = (
    CategoryRule(
        category="shake",
        trigger_keywords=("shake", "smoothie", "eiwitshake"),
        name_keywords=("shake", "smoothie"),
        requirements=(
            KeywordRequirement(
                when=("eiwit", "protein", "proteine"),
                any_of=(
                    "eiwit",
                    "protein",
                    "proteine",
                    "whey",
                    "kwark",
                    "skyr",
                    "griekse yoghurt",
                    "tofu",
                ),
            ),
            KeywordRequirement(
                when=("groen", "green"),
                any_of=(
                    "spinazie",
                    "boerenkool",
                    "kale",
                    "spinach",
                    "avocado",
                    "komkommer",
                    "selderij",
                    "broccoli",
                    "matcha",
                ),
            ),
        ),
    ),
    CategoryRule(
        category="salad",
        trigger_keywords=("salade", "salad", "bowl"),
        name_keywords=("salade", "salad", "bowl"),
    ),
)


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def _significant_words(preference: str) -> List[str]:
    return [word for word in preference.split() if len(word) >= MIN_WORD_LENGTH]


def _matches_category(
    rule: CategoryRule,
    preference: str,
    name: str,
    searchable: str,
) -> bool:
    if not _contains_any(preference, rule.trigger_keywords):
        return False
    if not _contains_any(name, rule.name_keywords):
        return False
    for requirement in rule.requirements:
        if _contains_any(preference, requirement.when) and not _contains_any(
            searchable, requirement.any_of
        ):
            return False
    return True


def _matches_preference(
    preference: str,
    name: str,
    searchable: str,
    category_rules: Sequence[CategoryRule],
) -> bool:
    if preference in name:
        return True
    words = _significant_words(preference)
    if words and all(word in searchable for word in words):
        return True
    return any(_matches_category(rule, preference, name, searchable) for rule in category_rules)


def matches(
    item_text: str | None,
    item_tags: Iterable[str] | None,
    preferences: Iterable[str] | None,
    *,
    category_rules: Sequence[CategoryRule] = CATEGORY_RULES,
) -> bool:
    """True when the item satisfies any preference; no preferences means no constraint."""
    normalized = [str(pref).strip().lower() for pref in (preferences or []) if pref]
    normalized = [pref for pref in normalized if pref]
    if not normalized:
        return True

    name = (item_text or "").strip().lower()
    tags = [str(tag).strip().lower() for tag in (item_tags or []) if tag]
    searchable = " ".join([name, *tags])
    return any(
        _matches_preference(pref, name, searchable, category_rules) for pref in normalized
    )


def _meal_tags(meal: Mapping[str, Any]) -> List[str]:
    tags: List[str] = [str(tag) for tag in (meal.get("tags") or []) if tag]
    for ingredient in meal.get("ingredients") or meal.get("ingredientRefs") or []:
        if isinstance(ingredient, str):
            tags.append(ingredient)
            continue
        if not isinstance(ingredient, Mapping):
            continue
        for key in ("name", "displayName"):
            if ingredient.get(key):
                tags.append(str(ingredient[key]))
        tags.extend(str(tag) for tag in (ingredient.get("tags") or []) if tag)
    return tags


def meal_matches_preferences(
    meal: Mapping[str, Any],
    preferences: Iterable[str] | None,
) -> bool:
    """Apply ``matches`` to a stored meal's name, tags and ingredient names."""
    return matches(meal.get("name"), _meal_tags(meal), preferences)
