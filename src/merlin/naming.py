"""Name derivation for collections and relation paths.

Covers the regular English plural forms used by model names
(Category -> categories, Box -> boxes, Post -> posts). Irregular
nouns should be named explicitly through relation options.
"""

import re

_ES_SUFFIXES = ("s", "x", "z", "ch", "sh")
_VOWELS = "aeiou"


def lower_camel(name: str) -> str:
    """Lower the first character: RelatedModel -> relatedModel."""
    if not name:
        return name
    return name[0].lower() + name[1:]


def pluralize(word: str) -> str:
    if not word:
        return word
    lower = word.lower()
    if lower.endswith("y") and len(word) > 1 and lower[-2] not in _VOWELS:
        return word[:-1] + "ies"
    if lower.endswith(_ES_SUFFIXES):
        return word + "es"
    return word + "s"


def singularize(word: str) -> str:
    if not word:
        return word
    lower = word.lower()
    if lower.endswith("ies") and len(word) > 3:
        return word[:-3] + "y"
    if re.search(r"(ss|x|z|ch|sh)es$", lower):
        return word[:-2]
    if lower.endswith("s") and not lower.endswith("ss"):
        return word[:-1]
    return word


def collection_name(model_name: str) -> str:
    """Default collection for a model: BlogPost -> blogPosts."""
    return pluralize(lower_camel(model_name))
