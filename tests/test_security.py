"""Tests for security scanning."""

import pytest

from archlens.code_analysis.models import Severity
from archlens.code_analysis.security import (
    SecurityScanner,
    VulnerabilityType,
    security_score,
    risk_level,
)


class TestSecurityScanner:
    """Test SecurityScanner."""

    @pytest.fixture
    def scanner(self):
        return SecurityScanner()

    def test_hardcoded_secret(self, scanner):
        content = "const a = 1;\nconst apiKey = \"abcdefghij1234567890\";\n"
        found = scanner.scan(content, 'src/config.js')
        assert len(found) == 1
        vuln = found[0]
        assert vuln.type == VulnerabilityType.SECRETS
        assert vuln.severity == Severity.CRITICAL
        assert vuln.auto_fixable
        assert vuln.location.line_start == 2

    def test_short_secret_ignored(self, scanner):
        assert scanner.scan("const password = 'short';", 'a.js') == []

    def test_xss(self, scanner):
        found = scanner.scan("el.innerHTML = html;", 'a.js')
        assert [v.type for v in found] == [VulnerabilityType.XSS]

    def test_sql_injection(self, scanner):
        found = scanner.scan("db.query(`SELECT * FROM users WHERE id = ${id}`);", 'a.js')
        assert [v.type for v in found] == [VulnerabilityType.INJECTION]

    def test_insecure_random_needs_context(self, scanner):
        assert scanner.scan("const n = Math.random();", 'a.js') == []
        found = scanner.scan("const token = Math.random().toString(36);", 'a.js')
        assert VulnerabilityType.CRYPTO in [v.type for v in found]

    def test_one_finding_per_pattern(self, scanner):
        content = "a.innerHTML = x;\nb.innerHTML = y;\n"
        assert len(scanner.scan(content, 'a.js')) == 1

    def test_type_filter(self, scanner):
        content = "a.innerHTML = x;\nconst secret = 'abcdefghijklmnop';\n"
        found = scanner.scan(content, 'a.js', types=[VulnerabilityType.SECRETS])
        assert [v.type for v in found] == [VulnerabilityType.SECRETS]

    def test_to_dict(self, scanner):
        vuln = scanner.scan("el.innerHTML = html;", 'src/view.js')[0]
        data = vuln.to_dict()
        assert data['type'] == 'xss'
        assert data['severity'] == 'high'
        assert data['location'] == 'src/view.js:1'


class TestSecurityScore:
    """Test the score and risk helpers."""

    def test_no_findings(self):
        assert security_score([]) == 100
        assert risk_level([]) == Severity.LOW

    def test_deductions(self):
        assert security_score([Severity.CRITICAL, Severity.HIGH, Severity.LOW]) == 68
        assert risk_level([Severity.LOW, Severity.HIGH]) == Severity.HIGH

    def test_floor(self):
        assert security_score([Severity.CRITICAL] * 10) == 0
