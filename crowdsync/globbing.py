import re
from typing import Pattern


def normalize_pattern(pattern: str) -> str:
    """
    Normalize a source/ignore pattern to a relative, slash-separated form.

    Args:
        pattern (str): Pattern as written in the configuration file.

    Returns:
        str: The pattern without leading separators or ``./``.
    """
    normalized = re.sub(r'[\\/]+', '/', pattern.strip())
    while normalized.startswith('./'):
        normalized = normalized[2:]
    return normalized.lstrip('/')


def _segment_to_regex(segment: str) -> str:
    parts = []
    i = 0
    while i < len(segment):
        char = segment[i]
        if char == '*':
            # '**' inside a segment behaves like '*'
            while i + 1 < len(segment) and segment[i + 1] == '*':
                i += 1
            parts.append('[^/]*')
        elif char == '?':
            parts.append('[^/]')
        elif char == '[':
            end = segment.find(']', i + 1)
            if end == -1:
                parts.append(re.escape(char))
            else:
                body = segment[i + 1:end]
                if body.startswith('!'):
                    body = '^' + body[1:]
                parts.append('[' + body.replace('\\', '\\\\') + ']')
                i = end
        else:
            parts.append(re.escape(char))
        i += 1
    return ''.join(parts)


def glob_to_regex(pattern: str, capture_double_star: bool = False) -> Pattern:
    """
    Compile a glob pattern into a regex over relative ``/``-separated paths.

    ``*``, ``?`` and ``[...]`` never cross a separator; a ``**`` segment matches
    zero or more whole directories. With ``capture_double_star`` the first
    ``**`` segment becomes group 1, holding the matched directories with a
    trailing separator (or an empty string).

    Args:
        pattern (str): The glob pattern.
        capture_double_star (bool): Capture the first ``**`` match.

    Returns:
        Pattern: The compiled, fully anchored regex.
    """
    segments = normalize_pattern(pattern).split('/')
    last = len(segments) - 1
    parts = []
    captured = False
    for i, segment in enumerate(segments):
        if segment == '**':
            opening = '(' if capture_double_star and not captured else '(?:'
            captured = captured or capture_double_star
            if i == last:
                parts.append(opening + '.*)')
            else:
                parts.append(opening + '(?:[^/]+/)*)')
            continue
        parts.append(_segment_to_regex(segment) + ('/' if i < last else ''))
    return re.compile('^' + ''.join(parts) + '$')
