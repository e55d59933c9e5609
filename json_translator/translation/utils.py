"""
Translation utility functions for flatten/rebuild, chunking, and JSON extraction.

A document is a JSON object. Its leaves are every non-object value reached by
walking nested objects; arrays are leaves too and are never walked into.
"""

import copy
import json
import re
from typing import List, Dict, Any, Tuple, Optional, Iterable, Sequence

Leaf = Tuple[str, str]


def is_json_object(value: Any) -> bool:
    """The one predicate deciding recursion vs. leaf."""
    return isinstance(value, dict)


def stringify_value(value: Any) -> str:
    """Text form of a leaf value: strings unchanged, everything else as JSON."""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def flatten_json(obj: Dict[str, Any], path: str = "", pairs: List[Leaf] = None) -> List[Leaf]:
    """
    Flatten a nested JSON object into (dotted path, text) leaves.

    Depth-first, keys in insertion order. Non-string leaves are stringified.

    Example:
        >>> flatten_json({"home": {"title": "Hello", "count": 3}})
        [('home.title', 'Hello'), ('home.count', '3')]
    """
    if pairs is None:
        pairs = []

    for key, value in obj.items():
        new_path = f"{path}.{key}" if path else str(key)
        if is_json_object(value):
            flatten_json(value, new_path, pairs)
        else:
            pairs.append((new_path, stringify_value(value)))

    return pairs


def set_path(root: Dict[str, Any], path: str, value: Any) -> None:
    """Set value at a dotted path, creating (or replacing non-object) parents."""
    keys = path.split('.')
    node = root
    for key in keys[:-1]:
        if not is_json_object(node.get(key)):
            node[key] = {}
        node = node[key]
    node[keys[-1]] = value


def build_json_from_pairs(pairs: Iterable[Tuple[str, Any]]) -> Dict[str, Any]:
    """
    Rebuild nested JSON from (dotted path, value) pairs.

    Example:
        >>> build_json_from_pairs([("home.title", "Hello")])
        {'home': {'title': 'Hello'}}
    """
    result: Dict[str, Any] = {}
    for path, value in pairs:
        set_path(result, path, value)
    return result


def merge_into_document(document: Dict[str, Any], pairs: Iterable[Tuple[str, Any]]) -> Dict[str, Any]:
    """Copy of document with the given paths overwritten; other keys keep their values."""
    merged = copy.deepcopy(document)
    for path, value in pairs:
        set_path(merged, path, value)
    return merged


def select_leaves(document: Dict[str, Any], selected_keys: Sequence[str]) -> List[Leaf]:
    """
    Leaves for the selected paths only, in selection order.

    Paths that are not leaves of the document are skipped, as are repeats.
    """
    leaf_map = dict(flatten_json(document))
    selected: List[Leaf] = []
    seen = set()
    for key in selected_keys:
        if key in leaf_map and key not in seen:
            seen.add(key)
            selected.append((key, leaf_map[key]))
    return selected


def chunk_entries(entries: List[Leaf], chunk_size: int = 25) -> List[List[Leaf]]:
    """
    Split leaves into contiguous fixed-size chunks preserving order.

    The last chunk may be smaller; no leaves means no chunks.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    return [entries[i:i + chunk_size] for i in range(0, len(entries), chunk_size)]


def replace_variables_with_placeholders(
    text: str,
    variable_patterns: List[str],
    preserve_variables: bool = True,
) -> Tuple[str, Dict[str, str]]:
    """
    Replace template variables in text with __VAR_n__ placeholders.

    Patterns are applied longest first so `{{name}}` wins over `{name}`.

    Returns:
        Tuple of (text_with_placeholders, placeholder_map)
        where placeholder_map is {"__VAR_0__": "{original_var}", ...}
    """
    if not preserve_variables or not variable_patterns:
        return text, {}

    protected_text = text
    placeholder_map: Dict[str, str] = {}
    placeholder_index = 0

    for pattern in sorted(variable_patterns, key=len, reverse=True):
        matches = list(re.finditer(pattern, protected_text))
        # Replace from end to start to preserve positions
        for match in reversed(matches):
            var = match.group(0)
            if re.fullmatch(r"__VAR_\d+__", var):
                continue
            placeholder = f"__VAR_{placeholder_index}__"
            placeholder_map[placeholder] = var
            start, end = match.span()
            protected_text = protected_text[:start] + placeholder + protected_text[end:]
            placeholder_index += 1

    return protected_text, placeholder_map


def restore_variables_from_placeholders(text: str, placeholder_map: Dict[str, str]) -> str:
    """Put the original variables back in place of their placeholders."""
    # Highest index first so __VAR_1__ never clobbers part of __VAR_10__
    for placeholder in sorted(placeholder_map, key=lambda p: int(p[6:-2]), reverse=True):
        text = text.replace(placeholder, placeholder_map[placeholder])
    return text


def match_json_object(text: str) -> Optional[str]:
    """
    Extract the first balanced JSON object from mixed text.

    Braces inside string literals are ignored.
    """
    if not text:
        return None

    depth = 0
    start = -1
    in_string = False
    escape_next = False

    for i, char in enumerate(text):
        if escape_next:
            escape_next = False
            continue
        if char == '\\':
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue

        if char == '{':
            if depth == 0:
                start = i
            depth += 1
        elif char == '}' and depth:
            depth -= 1
            if depth == 0 and start >= 0:
                return text[start:i + 1]

    return None


def _strip_code_fence(text: str) -> str:
    lines = text.split('\n')
    if lines and lines[0].startswith('```'):
        lines = lines[1:]
    if lines and lines[-1].strip() == '```':
        lines = lines[:-1]
    return '\n'.join(lines).strip()


def safe_parse_json_object(text: str) -> Optional[Dict]:
    """
    Safely parse a JSON object from potentially malformed text.

    Tries a direct parse, then with markdown code fences removed, then the
    first balanced {...} found in the text.
    """
    if not text:
        return None

    text = text.strip()
    candidates = [text]
    if text.startswith('```'):
        candidates.append(_strip_code_fence(text))
    extracted = match_json_object(text)
    if extracted:
        candidates.append(extracted)

    for candidate in candidates:
        try:
            result = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(result, dict):
            return result

    return None


def parse_translations_response(text: str) -> Optional[List[Tuple[str, str]]]:
    """
    Parse a translator response into (key, translated) pairs.

    Accepts {"translations": [{"key": ..., "translated": ...}]} and, as a
    fallback, a flat {"key": "translated"} object.

    Returns:
        List of pairs or None when nothing usable was found
    """
    obj = safe_parse_json_object(text)
    if obj is None:
        return None

    translations = obj.get('translations')
    if isinstance(translations, list):
        pairs = []
        for item in translations:
            if not isinstance(item, dict) or 'key' not in item:
                continue
            translated = item.get('translated', item.get('text'))
            if isinstance(translated, str):
                pairs.append((str(item['key']), translated))
        return pairs

    if obj and all(isinstance(value, str) for value in obj.values()):
        return [(str(key), value) for key, value in obj.items()]

    return None
