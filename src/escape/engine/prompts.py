"""Prompt catalogue helpers: variant selection and text formatting."""

import random

from .errors import ContentError

VOWELS = "aeiou"


def fmt(template: str, *args) -> str:
    """Fill each %s placeholder in turn with the next argument."""
    parts = template.split("%s")
    out = [parts[0]]
    for i, part in enumerate(parts[1:]):
        out.append(str(args[i]) if i < len(args) else "")
        out.append(part)
    return "".join(out)


def oxford_list(options, conjunction: str = "and") -> str:
    """Join options as 'a', 'a and b' or 'a, b, and c'."""
    options = list(options)
    if len(options) <= 1:
        return "".join(options)
    if len(options) == 2:
        return f"{options[0]} {conjunction} {options[1]}"
    return ", ".join(options[:-1]) + f", {conjunction} {options[-1]}"


def with_article(item: str) -> str:
    article = "an" if item[:1].lower() in VOWELS else "a"
    return f"{article} {item}"


def pick_variant(
    variants: tuple[str, ...],
    last: str | None = None,
    rng: random.Random | None = None,
) -> str:
    """Pick a random variant, avoiding `last` unless it is the only one."""
    rng = rng or random
    available = [v for v in variants if v != last] or list(variants)
    return rng.choice(available)


def pick_prompt(
    prompts: dict[str, tuple[str, ...]],
    name: str,
    last_prompts: dict[str, str],
    rng: random.Random | None = None,
) -> str:
    """Pick a variant of a named prompt and remember it for the session."""
    try:
        variants = prompts[name]
    except KeyError:
        raise ContentError(f"unknown prompt {name!r}") from None
    choice = pick_variant(variants, last_prompts.get(name), rng)
    last_prompts[name] = choice
    return choice
