import re

# A placeholder is `{{name}}` with no braces inside and no brace directly
# around it, so `{{{x}}}` and `{{a{{b}}}}` stay literal.
PLACEHOLDER_PATTERN = r"(?<!\{)(?P<open>\{\{)(?P<name>[^{}]+)(?P<close>\}\})(?!\})"
PLACEHOLDER_REGEX = re.compile(PLACEHOLDER_PATTERN)


def find_placeholders(value: str) -> list[str]:
    """Return placeholder names in order of appearance, duplicates included."""
    return [match.group("name") for match in PLACEHOLDER_REGEX.finditer(value)]


def has_placeholders(value: str) -> bool:
    return PLACEHOLDER_REGEX.search(value) is not None
