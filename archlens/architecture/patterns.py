"""Pattern detection over component content."""

import re
from dataclasses import dataclass
from typing import List, Optional

from .models import Component, Pattern, PatternType
from ..config import PolicyConfig
from ..utils import line_number_at


@dataclass
class PatternDefinition:
    """Definition of a pattern to detect."""
    name: str
    pattern_type: PatternType
    description: str
    detector: 'PatternDetector'
    family: str = "design"


class PatternDetector:
    """Base class for pattern detectors."""

    def __init__(self, policy: Optional[PolicyConfig] = None):
        self.policy = policy or PolicyConfig()

    def detect(self, component: Component, content: str) -> List[Pattern]:
        """Detect patterns in one component.

        Args:
            component: Component being inspected
            content: Source text of the component

        Returns:
            List of detected patterns
        """
        raise NotImplementedError

    def _location(self, component: Component, content: str, offset: int) -> str:
        return f"{component.path}:{line_number_at(content, offset)}"


class RegexPatternDetector(PatternDetector):
    """Reports one pattern per file when a regex matches."""

    name = ""
    pattern_type = PatternType.CODE_SMELL
    regex: re.Pattern = None
    description = ""
    confidence = 80
    beneficial = False

    def detect(self, component: Component, content: str) -> List[Pattern]:
        match = self.regex.search(content)
        if not match:
            return []
        return [Pattern(
            pattern_type=self.pattern_type,
            name=self.name,
            description=self.description,
            locations=[self._location(component, content, match.start())],
            confidence=self.confidence,
            is_beneficial=self.beneficial,
        )]


class SingletonPatternDetector(PatternDetector):
    """Detector for Singleton design pattern."""

    regex = re.compile(r'class\s+(\w+)[\s\S]*?static\s+instance[\s\S]*?getInstance')

    def detect(self, component: Component, content: str) -> List[Pattern]:
        return [
            Pattern(
                pattern_type=PatternType.DESIGN_PATTERN,
                name=f"Singleton: {match.group(1)}",
                description="Singleton design pattern detected",
                locations=[self._location(component, content, match.start())],
                confidence=95,
                is_beneficial=True,
            )
            for match in self.regex.finditer(content)
        ]


class FactoryPatternDetector(PatternDetector):
    """Detector for Factory design pattern."""

    regex = re.compile(r'class\s+(\w*Factory\w*)|(create\w+)\s*\([^)]*\)\s*:\s*\w+')

    def detect(self, component: Component, content: str) -> List[Pattern]:
        return [
            Pattern(
                pattern_type=PatternType.DESIGN_PATTERN,
                name=f"Factory: {match.group(1) or match.group(2)}",
                description="Factory pattern detected",
                locations=[self._location(component, content, match.start())],
                confidence=85,
                is_beneficial=True,
            )
            for match in self.regex.finditer(content)
        ]


class ObserverPatternDetector(PatternDetector):
    """Detector for Observer / event-emitter usage."""

    regex = re.compile(r'(subscribe|addEventListener|on\w+|emit|dispatch|notify)')

    def detect(self, component: Component, content: str) -> List[Pattern]:
        matches = list(self.regex.finditer(content))
        if len(matches) <= self.policy.observer_min_matches:
            return []
        return [Pattern(
            pattern_type=PatternType.DESIGN_PATTERN,
            name="Observer Pattern",
            description="Observer/Event-driven pattern detected",
            locations=[self._location(component, content, matches[0].start())],
            confidence=75,
            is_beneficial=True,
        )]


class GodObjectDetector(PatternDetector):
    """Files that are both long and large."""

    def detect(self, component: Component, content: str) -> List[Pattern]:
        loc = component.metrics.get('lines_of_code', 0)
        if len(content) <= self.policy.god_object_min_chars or loc <= self.policy.god_object_min_loc:
            return []
        return [Pattern(
            pattern_type=PatternType.ANTI_PATTERN,
            name="God Object",
            description="Component has too many responsibilities",
            locations=[f"{component.path}:1"],
            confidence=80,
            is_beneficial=False,
        )]


class CallbackHellDetector(RegexPatternDetector):
    name = "Callback Hell"
    pattern_type = PatternType.ANTI_PATTERN
    regex = re.compile(r'\}\s*\)\s*\}\s*\)\s*\}\s*\)')
    description = "Deeply nested callbacks detected"
    confidence = 90


class LongParameterListDetector(RegexPatternDetector):
    name = "Long Parameter List"
    pattern_type = PatternType.CODE_SMELL
    regex = re.compile(r'function\s+\w+\s*\([^)]{100,}\)')
    description = "Functions with too many parameters"
    confidence = 85


class DuplicateCodeDetector(PatternDetector):
    """Blocks of lines repeated verbatim inside one file."""

    def detect(self, component: Component, content: str) -> List[Pattern]:
        size = self.policy.duplicate_block_lines
        lines = content.split('\n')
        seen = set()
        locations = []
        for i in range(len(lines) - size + 1):
            block = '\n'.join(lines[i:i + size])
            if block in seen and len(block.strip()) > self.policy.duplicate_block_min_chars:
                locations.append(f"{component.path}:{i + 1}")
            seen.add(block)
        if not locations:
            return []
        return [Pattern(
            pattern_type=PatternType.CODE_SMELL,
            name="Duplicate Code",
            description="Duplicate code blocks detected",
            locations=locations,
            occurrences=len(locations),
            confidence=75,
            is_beneficial=False,
        )]


class SqlInjectionRiskDetector(RegexPatternDetector):
    name = "SQL Injection Risk"
    pattern_type = PatternType.SECURITY_PATTERN
    regex = re.compile(r'query\s*\(\s*[\'"`].*\$\{.*\}.*[\'"`]')
    description = "Potential SQL injection vulnerability"
    confidence = 95


class HardcodedSecretsDetector(RegexPatternDetector):
    name = "Hardcoded Secrets"
    pattern_type = PatternType.SECURITY_PATTERN
    regex = re.compile(r'(api[_-]?key|secret|password|token)\s*[:=]\s*[\'"][^\'"]{10,}[\'"]', re.IGNORECASE)
    description = "Hardcoded secrets detected"
    confidence = 99


class NestedLoopsDetector(RegexPatternDetector):
    name = "Nested Loops"
    pattern_type = PatternType.PERFORMANCE_PATTERN
    regex = re.compile(r'for\s*\([^)]*\)[\s\S]*?for\s*\([^)]*\)')
    description = "Nested loops detected - potential O(n^2) complexity"
    confidence = 70


class RedundantIterationDetector(RegexPatternDetector):
    name = "Inefficient Array Operations"
    pattern_type = PatternType.PERFORMANCE_PATTERN
    regex = re.compile(r'\.forEach\([\s\S]*?\.map\(|\.filter\([\s\S]*?\.map\(')
    description = "Multiple array iterations that could be combined"
    confidence = 80


class PatternDetectorRegistry:
    """Registry of all pattern detectors."""

    def __init__(self, policy: Optional[PolicyConfig] = None):
        self.policy = policy or PolicyConfig()
        self.detectors: List[PatternDefinition] = []
        self._register_default_detectors()

    def _register_default_detectors(self):
        policy = self.policy
        for name, pattern_type, description, detector, family in [
            ("Singleton", PatternType.DESIGN_PATTERN, "Singleton design pattern",
             SingletonPatternDetector(policy), "design"),
            ("Factory", PatternType.DESIGN_PATTERN, "Factory design pattern",
             FactoryPatternDetector(policy), "design"),
            ("Observer", PatternType.DESIGN_PATTERN, "Observer design pattern",
             ObserverPatternDetector(policy), "design"),
            ("God Object", PatternType.ANTI_PATTERN, "Component with too many responsibilities",
             GodObjectDetector(policy), "design"),
            ("Callback Hell", PatternType.ANTI_PATTERN, "Deeply nested callbacks",
             CallbackHellDetector(policy), "design"),
            ("Long Parameter List", PatternType.CODE_SMELL, "Function with too many parameters",
             LongParameterListDetector(policy), "design"),
            ("Duplicate Code", PatternType.CODE_SMELL, "Similar code in multiple locations",
             DuplicateCodeDetector(policy), "design"),
            ("SQL Injection Risk", PatternType.SECURITY_PATTERN, "String-interpolated queries",
             SqlInjectionRiskDetector(policy), "security"),
            ("Hardcoded Secrets", PatternType.SECURITY_PATTERN, "Secret-shaped literals",
             HardcodedSecretsDetector(policy), "security"),
            ("Nested Loops", PatternType.PERFORMANCE_PATTERN, "Loops nested inside loops",
             NestedLoopsDetector(policy), "performance"),
            ("Inefficient Array Operations", PatternType.PERFORMANCE_PATTERN, "Chained iterations",
             RedundantIterationDetector(policy), "performance"),
        ]:
            self.register(PatternDefinition(
                name=name,
                pattern_type=pattern_type,
                description=description,
                detector=detector,
                family=family,
            ))

    def register(self, pattern_def: PatternDefinition):
        """Register a new pattern detector."""
        self.detectors.append(pattern_def)

    def select(self, families: Optional[List[str]] = None) -> List[PatternDefinition]:
        if families is None:
            return list(self.detectors)
        return [d for d in self.detectors if d.family in families]

    def detect_patterns(self, component: Component, content: str,
                        families: Optional[List[str]] = None) -> List[Pattern]:
        """Run every selected detector over one component."""
        patterns = []
        for pattern_def in self.select(families):
            patterns.extend(pattern_def.detector.detect(component, content))
        return patterns
