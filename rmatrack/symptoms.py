"""
Detects replaced-part names that are really symptom text or bare part numbers.

Imported spreadsheets often carry the failure description ("prism chipped",
"DMD error") or a part number in the replaced part name column. For display
the defective part name is used instead.
"""

import re
from typing import Iterable, Optional, Sequence, Tuple

DEFAULT_SYMPTOM_PATTERNS = (
    "integrator rod chipped",
    "prism chipped",
    "segmen prism",
    "connection lost",
    "power cycle",
    "marriage failure",
    "imb marriage",
    "red dmd temperature sensor error",
    "temperature sensor error",
    "dmd error",
    "chipped",
    "marriage",
    "tpc touchpanel faulty",
    "tpc booting failure",
    "cyan horizontal lines",
    "cyan vertical lines",
    "green color missing",
    "horizontal lines",
    "vertical lines",
    "lines noticed",
    "booting failure",
    "touchpanel faulty",
    "faulty",
    "failure",
    "error",
    "missing",
    "noticed",
)

# Both words present means symptom text even if neither pattern above matched.
DEFAULT_COMPOUND_RULES = (
    ("error", "sensor"),
    ("chipped", "rod"),
    ("marriage", "failure"),
)

DEFAULT_PART_NUMBER_PATTERN = r"^\d{3}-\d{6}-\d{2}$"

PLACEHOLDERS = ("", "N/A")


class SymptomClassifier:
    def __init__(self, patterns: Iterable[str] = DEFAULT_SYMPTOM_PATTERNS,
                 compound_rules: Sequence[Tuple[str, ...]] = DEFAULT_COMPOUND_RULES,
                 part_number_pattern: str = DEFAULT_PART_NUMBER_PATTERN):
        self.patterns = tuple(p.lower() for p in patterns)
        self.compound_rules = tuple(tuple(w.lower() for w in rule) for rule in compound_rules)
        self.part_number_re = re.compile(part_number_pattern)

    def is_symptom_description(self, text: Optional[str]) -> bool:
        if text is None or text.strip() in PLACEHOLDERS:
            return True
        lowered = text.lower()
        if any(pattern in lowered for pattern in self.patterns):
            return True
        return any(all(word in lowered for word in rule) for rule in self.compound_rules)

    def is_part_number(self, text: Optional[str]) -> bool:
        return bool(text) and bool(self.part_number_re.match(text.strip()))

    def resolve_replaced_part_name(self, replaced: Optional[str], defective: Optional[str]) -> str:
        """Display name for the replacement part."""
        if self.is_symptom_description(replaced) or self.is_part_number(replaced):
            return defective or "N/A"
        return replaced.strip()


default_classifier = SymptomClassifier()
