"""
kinerja_integrity/parser.py - Cascading Raw Payload Parser

Turns an untrusted upload into a tentative record list by trying
increasingly permissive strategies, stopping at the first success:

1. Direct parse      - strict JSON, NaN/Infinity rejected
2. Syntax repair     - quote bare keys, drop trailing commas, normalize
                       quotes, null out undefined/NaN, strip comments
3. Regex fallback    - field-level extraction of employee names and
                       competency name/score pairs, independent of overall
                       structural validity

Every failed attempt keeps its reason so the report can show why the
cascade escalated. When all attempts fail nothing is synthesized.

Author: Kinerja Dashboard Project
License: MIT
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from .models import ParseStrategy

logger = logging.getLogger(__name__)


@dataclass
class ParseOutcome:
    """Result of running the parse cascade over one payload."""
    ok: bool
    payload: Any = None
    strategy: Optional[ParseStrategy] = None
    errors_per_attempt: List[str] = field(default_factory=list)
    attempts: int = 0
    truncated_records: List[int] = field(default_factory=list)

    @property
    def records(self) -> Optional[List[Any]]:
        """The parsed payload when it is already a sequence."""
        if self.ok and isinstance(self.payload, list):
            return self.payload
        return None


# =============================================================================
# STRATEGY 1: DIRECT PARSE
# =============================================================================

def _reject_constant(token: str) -> Any:
    raise ValueError(f"Non-standard JSON token {token!r}")


def direct_parse(raw_text: str) -> Any:
    """Strict JSON decode; any violation raises ValueError."""
    return json.loads(raw_text, parse_constant=_reject_constant)


# =============================================================================
# STRATEGY 2: SYNTAX REPAIR
# =============================================================================

_DOUBLE_QUOTED = re.compile(r'("(?:[^"\\\n]|\\.)*")')
# Leftmost opener wins, so a curly quote inside a single-quoted value
# (or an apostrophe inside a curly-quoted one) stays part of the value
_NON_JSON_QUOTED = re.compile(
    r"'(?P<single>(?:[^'\\\n]|\\.)*)'"
    r'|[\u201c\u201e\u00ab](?P<curly_double>[^"\u201c\u201d\u201e\u00ab\u00bb\n]*)[\u201d\u201c\u00bb]'
    r"|[\u2018\u201a](?P<curly_single>[^'\u2018\u2019\u201a\n]*)\u2019"
)
_BLOCK_COMMENT = re.compile(r'/\*.*?\*/', re.DOTALL)
_LINE_COMMENT = re.compile(r'//[^\n]*')
_BARE_KEY = re.compile(r'([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)(\s*:)')
_INVALID_LITERAL = re.compile(r'(?<![\w"])-?(?:undefined|NaN|Infinity)(?![\w"])')
_PYTHON_LITERALS = {'True': 'true', 'False': 'false', 'None': 'null'}
_PYTHON_LITERAL = re.compile(r'(?<![\w"])(True|False|None)(?![\w"])')
_TRAILING_COMMA = re.compile(r',(\s*[}\]])')


def _map_outside_strings(text: str, transform: Callable[[str], str]) -> str:
    """Apply ``transform`` only to the text between double-quoted literals."""
    parts = _DOUBLE_QUOTED.split(text)
    for i in range(0, len(parts), 2):
        parts[i] = transform(parts[i])
    return ''.join(parts)


def _requote_literal(match) -> str:
    if match.group('single') is not None:
        return json.dumps(match.group('single').replace("\\'", "'"))
    if match.group('curly_double') is not None:
        return json.dumps(match.group('curly_double'))
    return json.dumps(match.group('curly_single'))


def _requote(segment: str) -> str:
    """Rewrite single- and curly-quoted literals as JSON strings."""
    return _NON_JSON_QUOTED.sub(_requote_literal, segment)


def _repair_segment(segment: str) -> str:
    segment = _BLOCK_COMMENT.sub('', segment)
    segment = _LINE_COMMENT.sub('', segment)
    segment = _BARE_KEY.sub(r'\1"\2"\3', segment)
    segment = _INVALID_LITERAL.sub('null', segment)
    segment = _PYTHON_LITERAL.sub(lambda m: _PYTHON_LITERALS[m.group(1)], segment)
    segment = _TRAILING_COMMA.sub(r'\1', segment)
    return segment


def repair_syntax(raw_text: str) -> str:
    """
    Apply the fixed set of textual repairs.

    String contents are never touched: repairs run only on the text
    between JSON string literals. Curly quotes are rewritten only where
    they delimit a value, never inside an existing double-quoted string.
    """
    text = raw_text.lstrip('\ufeff')
    text = _map_outside_strings(text, _requote)
    return _map_outside_strings(text, _repair_segment)


def syntax_repair_parse(raw_text: str) -> Any:
    return direct_parse(repair_syntax(raw_text))


# =============================================================================
# STRATEGY 3: REGEX FALLBACK
# =============================================================================

_FALLBACK_TOKEN = re.compile(
    r'"(?P<key>name|competency|score)"\s*:\s*'
    r'(?:"(?P<text>(?:[^"\\]|\\.)*)"|(?P<number>-?\d+(?:\.\d+)?))'
    r'|"(?:[^"\\]|\\.)*"'
    r'|(?P<bracket>[\[\]{}])'
)


@dataclass
class _Fragment:
    name: Optional[str] = None
    competencies: List[str] = field(default_factory=list)
    scores: List[float] = field(default_factory=list)


def _unescape(text: str) -> str:
    try:
        return json.loads(f'"{text}"')
    except ValueError:
        return text


def _finish_fragment(fragment: Optional[_Fragment], records: List[Dict[str, Any]]) -> None:
    if fragment is None or not fragment.name:
        return
    # Positional pairing; unpaired names or scores are not invented
    performance = [
        {'name': comp, 'score': score}
        for comp, score in zip(fragment.competencies, fragment.scores)
    ]
    if len(fragment.competencies) != len(fragment.scores):
        logger.debug(
            f"Fallback record '{fragment.name}': {len(fragment.competencies)} "
            f"competency names vs {len(fragment.scores)} scores, kept {len(performance)} pairs"
        )
    records.append({'name': fragment.name, 'performance': performance})


def regex_fallback_extract(raw_text: str) -> Tuple[List[Dict[str, Any]], List[int]]:
    """
    Reconstruct employee records from field patterns alone.

    The nesting depth of the first ``"name": "..."`` pair marks the
    employee level; name/score pairs two levels deeper (inside the
    performance array) become competency entries of the enclosing record.

    Returns:
        (records, truncated) where ``truncated`` lists the positions of
        records whose closing brace was never seen
    """
    text = repair_syntax(raw_text)
    end_of_input = len(text.rstrip())
    records: List[Dict[str, Any]] = []
    truncated: List[int] = []
    depth = 0
    record_depth: Optional[int] = None
    current: Optional[_Fragment] = None
    last_number_end = -1

    def finish_unclosed(fragment: Optional[_Fragment]) -> None:
        if fragment is None or not fragment.name:
            return
        truncated.append(len(records))
        _finish_fragment(fragment, records)

    for match in _FALLBACK_TOKEN.finditer(text):
        bracket = match.group('bracket')
        if bracket:
            if bracket in '[{':
                depth += 1
                if bracket == '{' and depth == record_depth:
                    finish_unclosed(current)
                    current = _Fragment()
            else:
                if bracket == '}' and depth == record_depth:
                    _finish_fragment(current, records)
                    current = None
                depth = max(0, depth - 1)
            continue

        key = match.group('key')
        if key is None:
            continue
        value_text = match.group('text')
        value_number = match.group('number')

        if record_depth is None:
            if key != 'name' or value_text is None:
                continue
            record_depth = depth
            current = _Fragment()
        if current is None:
            continue

        if depth == record_depth:
            if key == 'name' and value_text is not None and current.name is None:
                current.name = _unescape(value_text).strip() or None
        elif depth == record_depth + 2:
            if key in ('name', 'competency') and value_text is not None:
                current.competencies.append(_unescape(value_text))
            elif key == 'score':
                raw_score = value_number if value_number is not None else value_text
                try:
                    current.scores.append(float(raw_score))
                except (TypeError, ValueError):
                    continue
                if value_number is not None:
                    last_number_end = match.end()

    if current is not None:
        # A digit run that reaches end of input may have lost its tail
        if current.scores and last_number_end >= end_of_input:
            dropped = current.scores.pop()
            logger.debug(f"Discarded cut-off score {dropped:g} of trailing record")
        finish_unclosed(current)

    if not records:
        raise ValueError("No recognizable employee fields found")
    logger.debug(
        f"Fallback extraction rebuilt {len(records)} records, {len(truncated)} truncated"
    )
    return records, truncated


def regex_fallback_parse(raw_text: str) -> List[Dict[str, Any]]:
    """Records rebuilt by the regex fallback, without truncation details."""
    return regex_fallback_extract(raw_text)[0]


# =============================================================================
# CASCADE
# =============================================================================

def _complete(parse_fn: Callable[[str], Any]) -> Callable[[str], Tuple[Any, List[int]]]:
    """Adapt a whole-document parser to the cascade's (payload, truncated) shape."""
    def attempt(raw_text: str) -> Tuple[Any, List[int]]:
        return parse_fn(raw_text), []
    return attempt


PARSE_STRATEGIES: Tuple[Tuple[ParseStrategy, Callable[[str], Tuple[Any, List[int]]]], ...] = (
    (ParseStrategy.DIRECT, _complete(direct_parse)),
    (ParseStrategy.SYNTAX_REPAIR, _complete(syntax_repair_parse)),
    (ParseStrategy.REGEX_FALLBACK, regex_fallback_extract),
)


def parse(raw_text: Any, max_attempts: int = 3,
          max_bytes: Optional[int] = None) -> ParseOutcome:
    """
    Run the parse cascade.

    Args:
        raw_text: Uploaded payload text
        max_attempts: Number of strategies to try, in order (1-3)
        max_bytes: Reject payloads larger than this many UTF-8 bytes

    Returns:
        ParseOutcome; ``ok`` is False when every attempt failed
    """
    if not isinstance(raw_text, str):
        return ParseOutcome(
            ok=False,
            errors_per_attempt=[f"Payload is {type(raw_text).__name__}, expected text"],
        )
    if not raw_text.strip():
        return ParseOutcome(ok=False, errors_per_attempt=["Payload is empty"])

    if max_bytes is not None:
        size = len(raw_text.encode('utf-8', errors='replace'))
        if size > max_bytes:
            logger.warning(f"Rejected payload of {size} bytes (limit {max_bytes})")
            return ParseOutcome(
                ok=False,
                errors_per_attempt=[f"Payload of {size} bytes exceeds limit of {max_bytes} bytes"],
            )

    errors: List[str] = []
    attempts = 0
    for strategy, attempt in PARSE_STRATEGIES[:max(1, max_attempts)]:
        attempts += 1
        try:
            payload, truncated = attempt(raw_text)
        except (ValueError, RecursionError) as exc:
            errors.append(f"Attempt {attempts} ({strategy.value}): {exc}")
            logger.debug(f"Parse attempt {attempts} ({strategy.value}) failed: {exc}")
            continue

        logger.info(f"Payload parsed on attempt {attempts} ({strategy.value})")
        return ParseOutcome(
            ok=True,
            payload=payload,
            strategy=strategy,
            errors_per_attempt=errors,
            attempts=attempts,
            truncated_records=truncated,
        )

    logger.warning(f"All {attempts} parse attempts failed")
    return ParseOutcome(ok=False, errors_per_attempt=errors, attempts=attempts)
