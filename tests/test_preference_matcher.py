from __future__ import annotations

from mealguard.services.preference_matcher import (
    CategoryRule,
    matches,
    meal_matches_preferences,
)


def test_no_preferences_means_no_constraint():
    assert matches("Omelet", [], [])
    assert matches("Omelet", None, None)
    assert matches("Omelet", [], ["", "   "])


def test_preference_contained_in_name_matches():
    assert matches("Pasta pesto", [], ["pasta"])
    assert matches("PASTA PESTO", [], ["  Pasta "])


def test_all_significant_words_must_appear_in_name_or_tags():
    assert matches("Salade met kip", [], ["kip salade"])
    assert matches("Warme bowl", ["kip", "salade"], ["kip salade"])
    assert not matches("Wrap met tofu", [], ["kip salade"])


def test_short_words_are_ignored_for_word_matching():
    # "de" is too short to count as a significant word.
    assert matches("Soep met tomaat", [], ["de tomaat soep"])


def test_protein_shake_requires_protein_ingredient():
    assert matches("Banana Smoothie", ["whey"], ["eiwit shake"])
    assert matches("Aardbeien shake", ["Griekse yoghurt"], ["protein shake"])
    assert not matches("Banana Smoothie", ["banaan"], ["eiwit shake"])


def test_green_shake_requires_green_ingredient():
    assert matches("Tropical shake", ["spinazie", "mango"], ["groene shake"])
    assert not matches("Tropical shake", ["mango"], ["groene shake"])


def test_salad_category_matches_bowls_and_salads():
    assert matches("Quinoa salad", [], ["bowl"])
    assert matches("Poke bowl", [], ["salade"])


def test_unrelated_preferences_do_not_match():
    assert not matches("Omelet", ["ei"], ["soep"])
    assert not matches("Omelet", [], ["shake"])


def test_any_matching_preference_is_enough():
    assert matches("Pasta pesto", [], ["soep", "pasta"])


def test_custom_category_rules_replace_the_defaults():
    rules = (CategoryRule(category="soup", trigger_keywords=("soep",), name_keywords=("bouillon",)),)
    assert matches("Kippen bouillon", [], ["soep"], category_rules=rules)
    assert not matches("Quinoa salad", [], ["bowl"], category_rules=rules)


def test_meal_matches_preferences_uses_ingredient_names():
    meal = {
        "name": "Groene smoothie",
        "tags": ["ontbijt"],
        "ingredients": [{"name": "Spinazie"}, {"name": "Banaan", "tags": ["fruit"]}],
    }
    assert meal_matches_preferences(meal, ["green shake"])
    assert meal_matches_preferences(meal, ["ontbijt"])
    assert not meal_matches_preferences(meal, ["lunch"])
    assert meal_matches_preferences(meal, ["fruit smoothie"])


def test_plain_bread_does_not_satisfy_a_shake_preference():
    assert matches("Eiwit Shake met spinazie", ["ontbijt"], ["eiwit shake"])
    assert not matches("Gewone boterham", [], ["eiwit shake"])
