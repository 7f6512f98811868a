"""Lexical complexity metrics calculation for code analysis."""

import math
import re
from typing import List

from .models import CodeMetrics, HalsteadMetrics


BRANCH_PATTERNS = [
    re.compile(r'\bif\b'),
    re.compile(r'\belse\s+if\b'),
    re.compile(r'\bwhile\b'),
    re.compile(r'\bfor\b'),
    re.compile(r'\bdo\b'),
    re.compile(r'\bcase\b'),
    re.compile(r'\bcatch\b'),
    re.compile(r'\bthrow\b'),
    re.compile(r'&&'),
    re.compile(r'\|\|'),
    re.compile(r'\?\s*[^:]*:'),
    re.compile(r'\bbreak\b'),
    re.compile(r'\bcontinue\b'),
    re.compile(r'\breturn\b'),
]

OPERATOR_REGEX = re.compile(r'[+\-*/%=<>!&|^~?:;,(){}\[\]]')
OPERAND_REGEX = re.compile(r'\b\w+\b')
FUNCTION_COUNT_REGEX = re.compile(r'function\s+\w+|=\s*\([^)]*\)\s*=>')
CLASS_COUNT_REGEX = re.compile(r'class\s+\w+')


class ComplexityCalculator:
    """Calculate complexity metrics from source text.

    All measures are lexical: they count tokens rather than walking a
    syntax tree, so strings and comments that contain keywords are
    counted too.
    """

    def __init__(self, duplicate_min_length: int = 10):
        self.duplicate_min_length = duplicate_min_length

    def calculate_cyclomatic_complexity(self, content: str) -> int:
        """1 + number of branch, loop and logical-operator tokens."""
        complexity = 1
        for pattern in BRANCH_PATTERNS:
            complexity += len(pattern.findall(content))
        return complexity

    def calculate_cognitive_complexity(self, content: str) -> int:
        """Complexity weighted by the brace nesting level of each line."""
        complexity = 0
        nesting = 0

        for raw in content.split('\n'):
            line = raw.strip()
            opens = line.count('{')
            closes = line.count('}')

            if 'if' in line or 'while' in line or 'for' in line:
                complexity += 1 + nesting
            if 'switch' in line or 'catch' in line:
                complexity += 1 + nesting
            if '&&' in line or '||' in line:
                complexity += 1

            nesting = max(0, nesting + opens - closes)

        return complexity

    def calculate_halstead_metrics(self, content: str) -> HalsteadMetrics:
        """Calculate Halstead complexity metrics."""
        operators = OPERATOR_REGEX.findall(content)
        operands = OPERAND_REGEX.findall(content)

        return HalsteadMetrics(
            n1=len(set(operators)),
            n2=len(set(operands)),
            N1=len(operators),
            N2=len(operands),
        )

    def calculate_maintainability_index(self, volume: float, complexity: float, loc: int) -> float:
        """Calculate Maintainability Index.

        MI = max(0, (171 - 5.2 * ln(V) - 0.23 * CC - 16.2 * ln(LOC)) * 100 / 171)

        Volume and LOC are clamped to 1 before taking the logarithm, and
        the result is capped at 100.
        """
        volume = max(volume, 1.0)
        loc = max(loc, 1)
        mi = (171 - 5.2 * math.log(volume) - 0.23 * complexity - 16.2 * math.log(loc)) * 100 / 171
        if not math.isfinite(mi):
            return 0
        return round(min(100, max(0, mi)))

    def calculate_nesting_depth(self, content: str) -> int:
        """Maximum brace depth."""
        max_depth = 0
        depth = 0
        for char in content:
            if char == '{':
                depth += 1
                max_depth = max(max_depth, depth)
            elif char == '}':
                depth = max(0, depth - 1)
        return max_depth

    def calculate_duplication_ratio(self, content: str) -> float:
        """Percentage of non-trivial trimmed lines repeated in the same file."""
        lines = self._significant_lines(content)
        if not lines:
            return 0.0
        ratio = (len(lines) - len(set(lines))) / len(lines) * 100
        return min(100.0, max(0.0, ratio))

    def _significant_lines(self, content: str) -> List[str]:
        lines = (line.strip() for line in content.split('\n'))
        return [line for line in lines if len(line) > self.duplicate_min_length]

    def calculate_metrics(self, content: str) -> CodeMetrics:
        """Compute the full metric set for one file's content."""
        lines = content.split('\n')
        stripped = [line.strip() for line in lines]
        loc = sum(1 for line in stripped if line and not line.startswith('//'))
        comments = sum(1 for line in stripped if line.startswith('//'))
        blanks = sum(1 for line in stripped if not line)

        cyclomatic = self.calculate_cyclomatic_complexity(content)
        halstead = self.calculate_halstead_metrics(content)

        return CodeMetrics(
            lines_of_code=loc,
            comment_lines=comments,
            blank_lines=blanks,
            cyclomatic_complexity=cyclomatic,
            cognitive_complexity=self.calculate_cognitive_complexity(content),
            nesting_depth=self.calculate_nesting_depth(content),
            halstead=halstead,
            maintainability_index=self.calculate_maintainability_index(
                halstead.volume, cyclomatic, loc
            ),
            function_count=len(FUNCTION_COUNT_REGEX.findall(content)),
            class_count=len(CLASS_COUNT_REGEX.findall(content)),
            duplication_ratio=self.calculate_duplication_ratio(content),
        )


# Global calculator instance
complexity_calculator = ComplexityCalculator()
