"""Per-file issue rules applied after parsing."""

import re
from typing import List

from .models import (
    CodeAnalysisResult,
    CodeIssue,
    CodeLocation,
    IssueCategory,
    Severity,
)
from ..config import PolicyConfig
from ..constants import VIEW_EXTENSIONS


INLINE_STYLE_REGEX = re.compile(r'style=\{\{[^}]+\}\}')


class IssueRules:
    """Independent detectors that each add zero or more issues to a file."""

    def __init__(self, policy: PolicyConfig):
        self.policy = policy

    def detect(self, result: CodeAnalysisResult) -> List[CodeIssue]:
        issues: List[CodeIssue] = []
        for rule in (
            self._complex_functions,
            self._long_parameter_lists,
            self._complex_components,
            self._large_file,
            self._missing_list_keys,
            self._inline_styles,
        ):
            issues.extend(rule(result))
        return issues

    def function_severity(self, complexity: int) -> Severity:
        if complexity > self.policy.function_complexity_critical:
            return Severity.CRITICAL
        if complexity > self.policy.function_complexity_high:
            return Severity.HIGH
        return Severity.MEDIUM

    def _location(self, result: CodeAnalysisResult, start: int, end: int = None) -> CodeLocation:
        return CodeLocation(file_path=result.path, line_start=start, line_end=end or start)

    def _complex_functions(self, result: CodeAnalysisResult) -> List[CodeIssue]:
        issues = []
        for func in result.functions:
            if func.complexity > self.policy.function_complexity_medium:
                issues.append(CodeIssue(
                    severity=self.function_severity(func.complexity),
                    category=IssueCategory.COMPLEXITY,
                    message=f"Function '{func.name}' has high cyclomatic complexity ({func.complexity})",
                    rule_id="CC001",
                    location=self._location(result, func.line_start, func.line_end),
                    suggestion="Consider breaking this function into smaller functions",
                    confidence=85,
                ))
        return issues

    def _long_parameter_lists(self, result: CodeAnalysisResult) -> List[CodeIssue]:
        issues = []
        for func in result.functions:
            if func.parameter_count > self.policy.max_parameters:
                issues.append(CodeIssue(
                    severity=Severity.MEDIUM,
                    category=IssueCategory.SMELL,
                    message=f"Function '{func.name}' has too many parameters ({func.parameter_count})",
                    rule_id="SM001",
                    location=self._location(result, func.line_start),
                    suggestion="Consider using an options object or breaking the function apart",
                    confidence=90,
                ))
        return issues

    def _complex_components(self, result: CodeAnalysisResult) -> List[CodeIssue]:
        issues = []
        for comp in result.components:
            if comp.complexity > self.policy.component_complexity_limit:
                issues.append(CodeIssue(
                    severity=Severity.MEDIUM,
                    category=IssueCategory.COMPLEXITY,
                    message=f"Component '{comp.name}' is too complex ({comp.complexity})",
                    rule_id="CC002",
                    location=self._location(result, comp.line_start, comp.line_end),
                    suggestion="Consider breaking this component into smaller components",
                    confidence=80,
                ))
        return issues

    def _large_file(self, result: CodeAnalysisResult) -> List[CodeIssue]:
        if result.file.size <= self.policy.large_file_bytes:
            return []
        return [CodeIssue(
            severity=Severity.MEDIUM,
            category=IssueCategory.COMPLEXITY,
            message=f"File is too large ({result.file.size // 1024}KB)",
            rule_id="CC003",
            location=self._location(result, 1),
            suggestion="Split the file into smaller modules",
            confidence=95,
        )]

    def _missing_list_keys(self, result: CodeAnalysisResult) -> List[CodeIssue]:
        content = result.file.content or ''
        if result.file.extension not in VIEW_EXTENSIONS:
            return []
        if '.map(' not in content or 'key=' in content:
            return []
        line = next(
            (i for i, text in enumerate(content.split('\n'), 1) if '.map(' in text), 1
        )
        return [CodeIssue(
            severity=Severity.MEDIUM,
            category=IssueCategory.PERFORMANCE,
            message="Missing key prop in list rendering",
            rule_id="PF001",
            location=self._location(result, line),
            suggestion="Add unique key prop to list items for better performance",
            auto_fixable=True,
            confidence=60,
        )]

    def _inline_styles(self, result: CodeAnalysisResult) -> List[CodeIssue]:
        count = len(INLINE_STYLE_REGEX.findall(result.file.content or ''))
        if count <= self.policy.inline_style_limit:
            return []
        return [CodeIssue(
            severity=Severity.LOW,
            category=IssueCategory.PERFORMANCE,
            message=f"Multiple inline styles detected ({count})",
            rule_id="PF002",
            location=self._location(result, 1),
            suggestion="Consider using CSS classes or styled-components for better performance",
            confidence=70,
        )]
