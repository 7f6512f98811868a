"""Security vulnerability scanning for code analysis."""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Iterable, Dict

from .models import Severity, CodeLocation, SEVERITY_ORDER
from ..utils import line_number_at


class VulnerabilityType(Enum):
    """Types of security vulnerabilities."""
    XSS = "xss"
    INJECTION = "injection"
    SECRETS = "secrets"
    CRYPTO = "crypto"


@dataclass
class VulnerabilityPattern:
    """Pattern for detecting vulnerabilities."""
    type: VulnerabilityType
    severity: Severity
    title: str
    description: str
    pattern: str
    fix_suggestion: str
    flags: int = 0
    # Only report when this also appears somewhere in the file
    context: Optional[str] = None
    auto_fixable: bool = False
    impact: int = 80
    confidence: int = 90
    references: List[str] = field(default_factory=list)


@dataclass
class Vulnerability:
    """A vulnerability found in one file."""
    type: VulnerabilityType
    severity: Severity
    title: str
    description: str
    location: CodeLocation
    fix_suggestion: str
    auto_fixable: bool = False
    impact: int = 80
    confidence: int = 90

    def to_dict(self) -> Dict[str, object]:
        return {
            'type': self.type.value,
            'severity': self.severity.value,
            'title': self.title,
            'description': self.description,
            'location': f"{self.location.file_path}:{self.location.line_start}",
            'suggestion': self.fix_suggestion,
            'auto_fixable': self.auto_fixable,
        }


SEVERITY_DEDUCTIONS = {
    Severity.LOW: 2,
    Severity.MEDIUM: 5,
    Severity.HIGH: 10,
    Severity.CRITICAL: 20,
}


class SecurityScanner:
    """Scanner for detecting security vulnerabilities in source text."""

    def __init__(self, patterns: Optional[List[VulnerabilityPattern]] = None):
        self.vulnerability_patterns = patterns or self._initialize_patterns()
        self._compiled = [
            (p, re.compile(p.pattern, p.flags), re.compile(p.context) if p.context else None)
            for p in self.vulnerability_patterns
        ]

    def _initialize_patterns(self) -> List[VulnerabilityPattern]:
        """Initialize vulnerability detection patterns."""
        return [
            VulnerabilityPattern(
                type=VulnerabilityType.XSS,
                severity=Severity.HIGH,
                title="Potential XSS Vulnerability",
                description="Potential XSS vulnerability through dynamic HTML injection",
                pattern=r'dangerouslySetInnerHTML|innerHTML\s*=',
                fix_suggestion="Sanitize user input and avoid direct HTML injection",
                impact=85,
                confidence=90,
                references=["CWE-79"],
            ),
            VulnerabilityPattern(
                type=VulnerabilityType.INJECTION,
                severity=Severity.CRITICAL,
                title="SQL Injection Risk",
                description="Potential SQL injection vulnerability",
                pattern=r'query\s*\(\s*[\'"`].*\$\{.*\}.*[\'"`]',
                fix_suggestion="Use parameterized queries or prepared statements",
                impact=90,
                confidence=95,
                references=["CWE-89"],
            ),
            VulnerabilityPattern(
                type=VulnerabilityType.SECRETS,
                severity=Severity.CRITICAL,
                title="Hardcoded Secrets",
                description="Hardcoded secrets detected",
                pattern=r'(api[_-]?key|secret|password|token)\s*[:=]\s*[\'"][^\'"]{10,}[\'"]',
                flags=re.IGNORECASE,
                fix_suggestion="Move secrets to environment variables",
                auto_fixable=True,
                impact=95,
                confidence=99,
                references=["CWE-798"],
            ),
            VulnerabilityPattern(
                type=VulnerabilityType.CRYPTO,
                severity=Severity.HIGH,
                title="Insecure Random Number Generation",
                description="Math.random() used for security-sensitive operations",
                pattern=r'Math\.random\(\)',
                context=r'token|password|secret',
                fix_suggestion="Use crypto.randomBytes() for cryptographically secure random numbers",
                auto_fixable=True,
                impact=95,
                confidence=95,
                references=["CWE-330"],
            ),
        ]

    def scan(self, content: str, file_path: str,
             types: Optional[Iterable[VulnerabilityType]] = None) -> List[Vulnerability]:
        """Report at most one vulnerability per pattern type for a file."""
        wanted = set(types) if types is not None else None
        found = []

        for pattern, regex, context in self._compiled:
            if wanted is not None and pattern.type not in wanted:
                continue
            match = regex.search(content)
            if not match:
                continue
            if context and not context.search(content):
                continue
            line = line_number_at(content, match.start())
            found.append(Vulnerability(
                type=pattern.type,
                severity=pattern.severity,
                title=pattern.title,
                description=pattern.description,
                location=CodeLocation(file_path=file_path, line_start=line, line_end=line),
                fix_suggestion=pattern.fix_suggestion,
                auto_fixable=pattern.auto_fixable,
                impact=pattern.impact,
                confidence=pattern.confidence,
            ))

        return found


def security_score(severities: Iterable[Severity]) -> int:
    """100 minus a fixed deduction per finding, floored at 0."""
    score = 100
    for severity in severities:
        score -= SEVERITY_DEDUCTIONS[severity]
    return max(score, 0)


def risk_level(severities: Iterable[Severity]) -> Severity:
    """The highest severity present, or low when there is none."""
    return max(severities, key=lambda s: SEVERITY_ORDER[s], default=Severity.LOW)
