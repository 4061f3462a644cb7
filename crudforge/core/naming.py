"""
Naming utilities for safe code generation.

Handles name sanitization, case conversions, singular/plural forms and
Java keyword conflicts for the names derived from table and column names.
"""

import re
from typing import Set, Dict
from enum import Enum


class NamingCase(Enum):
    """Different naming case styles."""
    SNAKE_CASE = "snake"      # user_name
    CAMEL_CASE = "camel"      # userName
    PASCAL_CASE = "pascal"    # UserName
    KEBAB_CASE = "kebab"      # user-name
    SCREAMING_SNAKE = "screaming_snake"  # USER_NAME


JAVA_RESERVED_WORDS = {
    'abstract', 'assert', 'boolean', 'break', 'byte', 'case', 'catch', 'char',
    'class', 'const', 'continue', 'default', 'do', 'double', 'else', 'enum',
    'extends', 'final', 'finally', 'float', 'for', 'goto', 'if', 'implements',
    'import', 'instanceof', 'int', 'interface', 'long', 'native', 'new',
    'package', 'private', 'protected', 'public', 'return', 'short', 'static',
    'strictfp', 'super', 'switch', 'synchronized', 'this', 'throw', 'throws',
    'transient', 'try', 'void', 'volatile', 'while', 'true', 'false', 'null',
    'var', 'record', 'yield', 'sealed', 'permits',
}

# Class names that would shadow java.lang or the generated support classes
JAVA_BUILTIN_TYPES = {
    'object', 'string', 'class', 'integer', 'long', 'boolean', 'character',
    'byte', 'short', 'float', 'double', 'number', 'void', 'record', 'enum',
    'system', 'thread', 'exception', 'error', 'override', 'auditableentity',
    'softdeletable',
}

_IRREGULAR_PLURALS = {
    "person": "people",
    "child": "children",
    "man": "men",
    "woman": "women",
}
_IRREGULAR_SINGULARS = {plural: single for single, plural in _IRREGULAR_PLURALS.items()}
_UNCOUNTABLE = {"data", "metadata", "information", "equipment", "news", "series", "media"}


class NameSanitizer:
    """Handles name sanitization and case conversion."""

    def __init__(self, reserved_words: Set[str] = None, builtin_types: Set[str] = None):
        """
        Initialize name sanitizer.

        Args:
            reserved_words: Set of language reserved words
            builtin_types: Set of builtin type names that might conflict
        """
        self.reserved_words = reserved_words or set()
        self.builtin_types = builtin_types or set()
        self._name_cache: Dict[str, str] = {}
        self._used_names: Set[str] = set()

    def sanitize_name(self, name: str, target_case: NamingCase = NamingCase.SNAKE_CASE,
                      suffix_on_conflict: str = "_") -> str:
        """
        Sanitize a name for safe use in generated Java code.

        The same input always maps to the same output for one sanitizer;
        distinct inputs that collapse to the same name get a numeric suffix.

        Args:
            name: Original name to sanitize
            target_case: Desired case style
            suffix_on_conflict: Suffix to add for conflicts

        Returns:
            Sanitized name safe for use
        """
        cache_key = f"{name}_{target_case.value}_{suffix_on_conflict}"
        if cache_key in self._name_cache:
            return self._name_cache[cache_key]

        cleaned = self._clean_basic(name)
        converted = convert_case(cleaned, target_case)
        final_name = self._resolve_conflicts(converted, suffix_on_conflict)

        self._name_cache[cache_key] = final_name
        self._used_names.add(final_name)

        return final_name

    def _clean_basic(self, name: str) -> str:
        """Basic name cleanup - remove invalid characters."""
        cleaned = re.sub(r'[^a-zA-Z0-9_-]', '_', name)
        cleaned = cleaned.strip('_-')

        if cleaned and cleaned[0].isdigit():
            cleaned = f"n{cleaned}"

        if not cleaned:
            cleaned = "field"

        return cleaned

    def _resolve_conflicts(self, name: str, suffix: str) -> str:
        """Resolve naming conflicts with reserved words and existing names."""
        if name.lower() in self.reserved_words or name.lower() in self.builtin_types:
            name = f"{name}{suffix}"

        original_name = name
        counter = 1
        while name in self._used_names:
            name = f"{original_name}{counter}"
            counter += 1

        return name

    def reset_used_names(self):
        """Reset the tracking of used names."""
        self._used_names.clear()
        self._name_cache.clear()


def create_java_sanitizer() -> NameSanitizer:
    """Create a name sanitizer configured for Java identifiers."""
    return NameSanitizer(JAVA_RESERVED_WORDS, JAVA_BUILTIN_TYPES)


def convert_case(name: str, target_case: NamingCase) -> str:
    """Convert name to target case style."""
    if target_case == NamingCase.SNAKE_CASE:
        return to_snake_case(name)
    elif target_case == NamingCase.CAMEL_CASE:
        return to_camel_case(name)
    elif target_case == NamingCase.PASCAL_CASE:
        return to_pascal_case(name)
    elif target_case == NamingCase.KEBAB_CASE:
        return to_snake_case(name).replace('_', '-')
    elif target_case == NamingCase.SCREAMING_SNAKE:
        return to_snake_case(name).upper()
    return name


def to_snake_case(name: str) -> str:
    """Convert to snake_case."""
    name = re.sub(r'[-\s]+', '_', str(name))
    name = re.sub(r'([A-Z]+)([A-Z][a-z])', r'\1_\2', name)
    name = re.sub(r'([a-z0-9])([A-Z])', r'\1_\2', name)
    name = name.lower()
    name = re.sub(r'_+', '_', name)
    return name.strip('_')


def to_camel_case(name: str) -> str:
    """Convert to camelCase."""
    parts = to_snake_case(name).split('_')
    if not parts or not parts[0]:
        return name
    return parts[0] + ''.join(part.capitalize() for part in parts[1:])


def to_pascal_case(name: str) -> str:
    """Convert to PascalCase."""
    return ''.join(part.capitalize() for part in to_snake_case(name).split('_') if part)


def to_kebab_case(name: str) -> str:
    return to_snake_case(name).replace('_', '-')


def singularize(word: str) -> str:
    """Singular form of an English noun (last underscore segment only)."""
    head, sep, tail = str(word).rpartition('_')
    lower = tail.lower()

    if not lower or lower in _UNCOUNTABLE:
        singular = tail
    elif lower in _IRREGULAR_SINGULARS:
        singular = _match_case(tail, _IRREGULAR_SINGULARS[lower])
    elif lower.endswith('ies') and len(lower) > 3:
        singular = tail[:-3] + _match_case(tail[-3:], 'y')
    elif lower.endswith(('sses', 'xes', 'ches', 'shes')):
        singular = tail[:-2]
    elif lower.endswith('uses') and len(lower) > 4 and lower[-5] not in 'aeiou':
        singular = tail[:-2]
    elif lower.endswith(('ss', 'us', 'is')):
        singular = tail
    elif lower.endswith('s') and len(lower) > 1:
        singular = tail[:-1]
    else:
        singular = tail

    return f"{head}{sep}{singular}"


def pluralize(word: str) -> str:
    """Plural form of an English noun (last underscore segment only)."""
    head, sep, tail = str(word).rpartition('_')
    lower = tail.lower()

    if not lower or lower in _UNCOUNTABLE:
        plural = tail
    elif lower in _IRREGULAR_PLURALS:
        plural = _match_case(tail, _IRREGULAR_PLURALS[lower])
    elif lower.endswith('y') and len(lower) > 1 and lower[-2] not in 'aeiou':
        plural = tail[:-1] + _match_case(tail[-1], 'ies')
    elif lower.endswith(('s', 'x', 'z', 'ch', 'sh')):
        plural = tail + _match_case(tail[-1], 'es')
    else:
        plural = tail + _match_case(tail[-1], 's')

    return f"{head}{sep}{plural}"


def _match_case(sample: str, text: str) -> str:
    return text.upper() if sample.isupper() else text


def package_to_path(package: str) -> str:
    """Convert a dotted Java package into a slash separated directory path."""
    return "/".join(part for part in package.split(".") if part)


def is_valid_package(package: str) -> bool:
    """Check a dotted Java package name (lowercase identifiers, no keywords)."""
    if not package:
        return False
    for part in package.split("."):
        if not re.fullmatch(r"[a-z_][a-z0-9_]*", part) or part in JAVA_RESERVED_WORDS:
            return False
    return True
