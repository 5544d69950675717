"""YAML-driven content checks applied to free text before it reaches the tree."""
from __future__ import annotations

import os
import re
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import yaml

from config.settings import settings

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

DEFAULT_CONFIG = {
    "version": 1,
    "precedence": ["markup", "control", "noise"],
    "normalizers": ["strip_whitespace"],
    "max_payload_chars": 60000,
    "noise": {"min_length": 40, "max_special_ratio": 0.3, "characters": "<>'\";&|`$(){}[]\\"},
    "categories": {
        "markup": {
            "severity": "block",
            "patterns": [r"(?is)<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>"],
        },
        "control": {"severity": "block", "patterns": [r"\x1b\[[0-9;?]*[A-Za-z]"]},
    },
    "allow_lists": {},
}


@dataclass
class MatchHit:
    """Individual regex match metadata."""

    category: str
    pattern: str
    span: Tuple[int, int]
    excerpt: str


@dataclass
class ContentFinding:
    """Aggregate result returned from the content guard."""

    category: Optional[str]
    severity: str
    hits: List[MatchHit]
    allow_list_reason: Optional[str] = None

    @property
    def blocked(self) -> bool:
        return self.category is not None and self.severity == "block"


def _resolve(path: str) -> str:
    if os.path.isabs(path) or os.path.exists(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


def _load_yaml(path: str) -> dict:
    with open(path, "r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


class ContentGuard:
    """Compile and evaluate regex-based content categories from YAML."""

    def __init__(self, path: Optional[str] = None):
        self.path = _resolve(path or settings.CONTENT_GUARD_PATH)
        self._mtime = 0.0
        self._config: dict = {}
        self._compiled: Dict[str, List[re.Pattern[str]]] = {}
        self._severity: Dict[str, str] = {}
        self._precedence: List[str] = []
        self._allow_lists: Dict[str, List[str]] = {}
        self.reload_if_changed(force=True)

    # ------------------------------------------------------------------
    # Loading & compilation
    # ------------------------------------------------------------------
    def reload_if_changed(self, force: bool = False) -> None:
        """Reload YAML configuration when the file timestamp changes."""

        try:
            stat = os.stat(self.path)
            if not force and stat.st_mtime <= self._mtime:
                return
            cfg = _load_yaml(self.path)
            self._mtime = stat.st_mtime
        except FileNotFoundError:
            if not force:
                return
            cfg = DEFAULT_CONFIG
            self._mtime = time.time()

        self._config = cfg
        self._precedence = cfg.get("precedence", [])
        self._severity = {
            name: values.get("severity", "info")
            for name, values in cfg.get("categories", {}).items()
        }
        self._allow_lists = {
            tag: list(terms or []) for tag, terms in cfg.get("allow_lists", {}).items()
        }
        self._compiled = {
            name: [re.compile(pattern) for pattern in values.get("patterns", [])]
            for name, values in cfg.get("categories", {}).items()
        }

    @property
    def max_payload_chars(self) -> int:
        return int(self._config.get("max_payload_chars", DEFAULT_CONFIG["max_payload_chars"]))

    def _normalize(self, text: str) -> str:
        ops = self._config.get("normalizers", [])
        sample = text or ""
        if "strip_whitespace" in ops:
            sample = sample.strip()
        if "collapse_spaces" in ops:
            sample = re.sub(r"\s+", " ", sample)
        if "to_lower" in ops:
            sample = sample.lower()
        return sample

    def _allow_ok(self, token: str, context_tags: List[str]) -> bool:
        tags = set(context_tags or [])
        for tag, terms in self._allow_lists.items():
            if tag in tags and token in terms:
                return True
        return False

    def _noise_hit(self, sample: str) -> Optional[MatchHit]:
        noise = self._config.get("noise") or {}
        if not noise or len(sample) < int(noise.get("min_length", 0)):
            return None
        charset = set(noise.get("characters", ""))
        special = sum(1 for char in sample if char in charset)
        if special > len(sample) * float(noise.get("max_special_ratio", 1.0)):
            return MatchHit(
                category="noise",
                pattern="special-character ratio",
                span=(0, len(sample)),
                excerpt=sample[:40],
            )
        return None

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------
    def analyze(self, text: str, context_tags: Optional[List[str]] = None) -> ContentFinding:
        self.reload_if_changed()
        context_tags = context_tags or []
        sample = self._normalize(text or "")
        if len(sample) > self.max_payload_chars:
            hit = MatchHit(category="oversize", pattern="max_payload_chars", span=(0, len(sample)), excerpt=sample[:40])
            return ContentFinding(category="oversize", severity="block", hits=[hit])

        matches: List[MatchHit] = []
        for category, patterns in self._compiled.items():
            for pattern in patterns:
                for match in pattern.finditer(sample):
                    token = match.group(0)
                    if self._allow_ok(token, context_tags):
                        continue
                    start, end = match.span()
                    excerpt = sample[max(0, start - 20) : min(len(sample), end + 20)]
                    matches.append(MatchHit(category=category, pattern=pattern.pattern, span=(start, end), excerpt=excerpt))

        noise = self._noise_hit(sample)
        if noise is not None:
            matches.append(noise)

        if not matches:
            return ContentFinding(category=None, severity="info", hits=[])

        precedence_lookup = {name: index for index, name in enumerate(self._precedence)}
        winning_category = min(
            matches,
            key=lambda hit: precedence_lookup.get(hit.category, float("inf")),
        ).category
        severity = self._severity.get(winning_category, "block")
        top_hits = [hit for hit in matches if hit.category == winning_category]
        return ContentFinding(category=winning_category, severity=severity, hits=top_hits)


_guard: Optional[ContentGuard] = None


def content_guard() -> ContentGuard:
    global _guard
    if _guard is None:
        _guard = ContentGuard()
    return _guard


def match_categories(text: str, context_tags: Optional[List[str]] = None) -> ContentFinding:
    """Convenience wrapper returning the shared guard's analysis."""

    return content_guard().analyze(text, context_tags or [])


__all__ = [
    "ContentFinding",
    "ContentGuard",
    "MatchHit",
    "content_guard",
    "match_categories",
]
