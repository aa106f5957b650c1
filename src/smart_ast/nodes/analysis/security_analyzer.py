"""Static security analysis of project source files.

Regex vulnerability patterns mapped onto OWASP Top 10 (2021) categories and
CWE ids, plus hardcoded-secret detection. Produces a 0-100 security score
(higher is better), a per-severity risk assessment and OWASP compliance.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

if TYPE_CHECKING:
    from smart_ast.entities.analysis import ProjectInfo, SourceFile

logger = logging.getLogger(__name__)


class RiskLevel(StrEnum):
    """Risk level classification."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    SAFE = "safe"


class VulnerabilityPattern(BaseModel):
    """A vulnerability detection pattern."""

    name: str
    owasp: str  # OWASP Top 10 id, e.g. A03:2021
    pattern: str
    risk_level: RiskLevel
    description: str
    mitigation: str
    cwe_id: str | None = None


class SecurityFinding(BaseModel):
    """A single pattern match in a file."""

    pattern_name: str
    owasp: str
    risk_level: RiskLevel
    description: str
    mitigation: str
    file: str
    line_number: int
    matched_text: str = ""
    cwe_id: str | None = None


OWASP_CATEGORIES: dict[str, str] = {
    "A01:2021": "Broken Access Control",
    "A02:2021": "Cryptographic Failures",
    "A03:2021": "Injection",
    "A04:2021": "Insecure Design",
    "A05:2021": "Security Misconfiguration",
    "A06:2021": "Vulnerable and Outdated Components",
    "A07:2021": "Identification and Authentication Failures",
    "A08:2021": "Software and Data Integrity Failures",
    "A09:2021": "Security Logging and Monitoring Failures",
    "A10:2021": "Server-Side Request Forgery",
}

VULNERABILITY_PATTERNS: list[VulnerabilityPattern] = [
    # Injection
    VulnerabilityPattern(
        name="eval_usage",
        owasp="A03:2021",
        pattern=r"\beval\s*\(",
        risk_level=RiskLevel.CRITICAL,
        description="Dynamic code evaluation",
        mitigation="Avoid eval(). Parse data with a safe parser instead",
        cwe_id="CWE-95",
    ),
    VulnerabilityPattern(
        name="sql_concatenation",
        owasp="A03:2021",
        pattern=r"""(?:query|sql|execute)\s*\(?\s*[=(]?\s*['"`](?:SELECT|INSERT|UPDATE|DELETE)\b[^'"`]*['"`]\s*(?:\+|%|\.format\()""",
        risk_level=RiskLevel.CRITICAL,
        description="SQL built by string concatenation",
        mitigation="Use parameterized queries or an ORM",
        cwe_id="CWE-89",
    ),
    VulnerabilityPattern(
        name="sql_fstring",
        owasp="A03:2021",
        pattern=r"""execute\s*\(\s*f['"](?:SELECT|INSERT|UPDATE|DELETE)\b""",
        risk_level=RiskLevel.CRITICAL,
        description="SQL built with an f-string",
        mitigation="Use parameterized queries or an ORM",
        cwe_id="CWE-89",
    ),
    VulnerabilityPattern(
        name="shell_injection",
        owasp="A03:2021",
        pattern=r"(?:exec|execSync|spawn|system|popen)\s*\([^)]*(?:\$\{|\+\s*\w)|shell\s*=\s*True",
        risk_level=RiskLevel.HIGH,
        description="Shell command with dynamic input",
        mitigation="Pass argument lists and never route user input through a shell",
        cwe_id="CWE-78",
    ),
    VulnerabilityPattern(
        name="xss_inner_html",
        owasp="A03:2021",
        pattern=r"innerHTML\s*=|dangerouslySetInnerHTML|document\.write\s*\(",
        risk_level=RiskLevel.MEDIUM,
        description="Unescaped HTML injection point",
        mitigation="Sanitize user input and prefer textContent",
        cwe_id="CWE-79",
    ),
    # Cryptographic failures
    VulnerabilityPattern(
        name="weak_hash",
        owasp="A02:2021",
        pattern=r"""createHash\s*\(\s*['"](?:md5|sha1)['"]|hashlib\.(?:md5|sha1)\s*\(""",
        risk_level=RiskLevel.MEDIUM,
        description="Weak hash algorithm",
        mitigation="Use SHA-256 or a password hashing function",
        cwe_id="CWE-328",
    ),
    VulnerabilityPattern(
        name="weak_random",
        owasp="A02:2021",
        pattern=r"Math\.random\s*\(\)|\brandom\.random\s*\(\)",
        risk_level=RiskLevel.LOW,
        description="Non-cryptographic random number generator",
        mitigation="Use crypto.randomBytes() or the secrets module for security tokens",
        cwe_id="CWE-338",
    ),
    VulnerabilityPattern(
        name="insecure_protocol",
        owasp="A02:2021",
        pattern=r"""['"]http://(?!localhost|127\.0\.0\.1|0\.0\.0\.0)""",
        risk_level=RiskLevel.MEDIUM,
        description="Plain HTTP URL",
        mitigation="Use HTTPS",
        cwe_id="CWE-319",
    ),
    # Misconfiguration
    VulnerabilityPattern(
        name="csrf_disabled",
        owasp="A05:2021",
        pattern=r"csrf\s*[:=]\s*false|csrf_exempt|disable.*csrf",
        risk_level=RiskLevel.HIGH,
        description="CSRF protection disabled",
        mitigation="Keep CSRF protection enabled for state-changing requests",
        cwe_id="CWE-352",
    ),
    VulnerabilityPattern(
        name="cors_wildcard",
        owasp="A05:2021",
        pattern=r"""(?:origin|allow_origins|Access-Control-Allow-Origin)['"]?\s*[:=,]\s*\[?\s*['"]\*['"]""",
        risk_level=RiskLevel.MEDIUM,
        description="CORS allows any origin",
        mitigation="Restrict allowed origins",
        cwe_id="CWE-942",
    ),
    VulnerabilityPattern(
        name="debug_enabled",
        owasp="A05:2021",
        pattern=r"\bDEBUG\s*=\s*True\b|debug\s*:\s*true",
        risk_level=RiskLevel.LOW,
        description="Debug mode enabled",
        mitigation="Disable debug mode outside development",
        cwe_id="CWE-489",
    ),
    # Integrity
    VulnerabilityPattern(
        name="unsafe_deserialization",
        owasp="A08:2021",
        pattern=r"pickle\.loads?\s*\(|yaml\.load\s*\((?![^)]*SafeLoader)|unserialize\s*\(",
        risk_level=RiskLevel.HIGH,
        description="Deserialization of untrusted data",
        mitigation="Use safe loaders and never deserialize untrusted input",
        cwe_id="CWE-502",
    ),
    # Authentication
    VulnerabilityPattern(
        name="jwt_no_verify",
        owasp="A07:2021",
        pattern=r"jwt\.decode\s*\([^)]*verify\s*=\s*False|algorithms\s*[:=]\s*\[\s*['\"]none['\"]",
        risk_level=RiskLevel.CRITICAL,
        description="JWT signature verification disabled",
        mitigation="Always verify token signatures with an explicit algorithm",
        cwe_id="CWE-347",
    ),
    # SSRF
    VulnerabilityPattern(
        name="dynamic_request_url",
        owasp="A10:2021",
        pattern=r"(?:fetch|axios\.\w+|requests\.\w+|httpx\.\w+)\s*\(\s*(?:req\.|request\.|f['\"]|`[^`]*\$\{)",
        risk_level=RiskLevel.MEDIUM,
        description="Outbound request with user-controlled URL",
        mitigation="Validate outbound URLs against an allow list",
        cwe_id="CWE-918",
    ),
    # Logging
    VulnerabilityPattern(
        name="sensitive_logging",
        owasp="A09:2021",
        pattern=r"(?:console\.log|logger\.\w+|print)\s*\([^)]*(?:password|secret|token)",
        risk_level=RiskLevel.MEDIUM,
        description="Sensitive value written to logs",
        mitigation="Redact secrets before logging",
        cwe_id="CWE-532",
    ),
]

SECRET_PATTERNS: list[tuple[str, str]] = [
    (r"""api[_-]?key\s*[:=]\s*['"][^'"]{8,}['"]""", "API Key"),
    (r"""secret[_-]?key\s*[:=]\s*['"][^'"]{10,}['"]""", "Secret Key"),
    (r"""password\s*[:=]\s*['"][^'"]{3,}['"]""", "Password"),
    (r"""token\s*[:=]\s*['"][^'"]{10,}['"]""", "Token"),
    (r"\b(?:sk|pk)_(?:live|test)_[a-zA-Z0-9]{16,}|\bsk-[a-zA-Z0-9]{20,}", "API Key"),
    (r"AKIA[0-9A-Z]{16}", "AWS Access Key"),
    (r"-----BEGIN (?:RSA |EC )?PRIVATE KEY-----", "Private Key"),
    (r"(?:mongodb|postgres|postgresql|mysql)://[^\s'\"]+:[^\s'\"]+@", "Database URL"),
]

AUTH_PATTERNS: dict[str, re.Pattern[str]] = {
    "JWT Authentication": re.compile(r"jwt|jsonwebtoken", re.IGNORECASE),
    "Session Authentication": re.compile(r"express-session|req\.session|flask_login"),
    "OAuth": re.compile(r"oauth", re.IGNORECASE),
    "Password Hashing": re.compile(r"bcrypt|argon2|scrypt|pbkdf2", re.IGNORECASE),
    "Rate Limiting": re.compile(r"rate[-_]?limit|slowapi|throttl", re.IGNORECASE),
    "CSRF Protection": re.compile(r"csurf|csrf_protect|CsrfViewMiddleware|csrfToken"),
}

_SECURITY_FILE = re.compile(r"auth|security|middleware|guard|login|jwt|token|password|crypto", re.IGNORECASE)

SEVERITY_PENALTY = {
    RiskLevel.CRITICAL: 25,
    RiskLevel.HIGH: 15,
    RiskLevel.MEDIUM: 10,
    RiskLevel.LOW: 2,
    RiskLevel.SAFE: 0,
}


class SecurityAnalyzer:
    """Scan file contents for vulnerable patterns and score the project.

    Usage:
        analyzer = SecurityAnalyzer()
        result = analyzer.analyze(auth_payload, files, project)
    """

    def __init__(self, patterns: list[VulnerabilityPattern] | None = None) -> None:
        self.patterns = list(patterns or VULNERABILITY_PATTERNS)
        self._compiled: list[tuple[VulnerabilityPattern, re.Pattern[str]]] = []
        for p in self.patterns:
            try:
                self._compiled.append((p, re.compile(p.pattern, re.IGNORECASE)))
            except re.error as e:
                logger.warning("Invalid regex pattern %s: %s", p.name, e)
        self._secrets = [(re.compile(p, re.IGNORECASE), kind) for p, kind in SECRET_PATTERNS]

    def scan_file(self, file: SourceFile) -> list[SecurityFinding]:
        findings: list[SecurityFinding] = []
        for line_number, line in enumerate(file.content.splitlines(), start=1):
            for pattern, regex in self._compiled:
                match = regex.search(line)
                if match:
                    findings.append(SecurityFinding(
                        pattern_name=pattern.name,
                        owasp=pattern.owasp,
                        risk_level=pattern.risk_level,
                        description=pattern.description,
                        mitigation=pattern.mitigation,
                        file=file.relative_path,
                        line_number=line_number,
                        matched_text=match.group(0)[:100],
                        cwe_id=pattern.cwe_id,
                    ))
        return findings

    def detect_secrets(self, file: SourceFile) -> list[dict[str, Any]]:
        secrets = []
        for line_number, line in enumerate(file.content.splitlines(), start=1):
            for regex, kind in self._secrets:
                if regex.search(line):
                    secrets.append({
                        "type": kind,
                        "file": file.relative_path,
                        "line": line_number,
                        "severity": RiskLevel.CRITICAL.value,
                        "description": f"Hardcoded {kind} detected",
                        "mitigation": "Move to environment variables or a secret store",
                    })
        return secrets

    def analyze(
        self,
        prior_result: dict[str, Any] | None,
        files: list[SourceFile],
        project: ProjectInfo,
    ) -> dict[str, Any]:
        """Merge static analysis into a prior auth/security task payload."""
        if not prior_result or prior_result.get("error"):
            return self._empty_result(project, (prior_result or {}).get("error"))

        findings: list[SecurityFinding] = []
        secrets: list[dict[str, Any]] = []
        auth_patterns: set[str] = set()
        for file in files:
            findings.extend(self.scan_file(file))
            secrets.extend(self.detect_secrets(file))
            auth_patterns.update(name for name, p in AUTH_PATTERNS.items() if p.search(file.content))

        auth_methods = (prior_result.get("authentication") or {}).get("methods") or []
        score = self.calculate_security_score(findings, secrets, auth_methods, auth_patterns)
        risk_level = self.determine_risk_level(findings, secrets)

        if findings or secrets:
            logger.info(
                "Security analysis: %d findings, %d secrets, score=%d, risk=%s",
                len(findings),
                len(secrets),
                score,
                risk_level,
            )

        security_files = sum(1 for f in files if _SECURITY_FILE.search(f.relative_path))
        return {
            **prior_result,
            "metadata": {
                "analysis_date": datetime.now(tz=UTC).isoformat(),
                "framework": project.framework,
                "total_files": len(files),
                "security_files": security_files,
                "coverage": round(security_files / len(files) * 100) if files else 0,
            },
            "static_analysis": {
                "findings": [f.model_dump(mode="json") for f in findings],
                "hardcoded_secrets": secrets,
                "auth_patterns": sorted(auth_patterns),
            },
            "security_score": score,
            "risk_level": risk_level.value,
            "risk_assessment": self.risk_assessment(findings, secrets),
            "owasp_compliance": self.assess_owasp_compliance(findings, secrets),
            "recommendations": self.recommendations(score, findings, secrets, auth_patterns),
        }

    def calculate_security_score(
        self,
        findings: list[SecurityFinding],
        secrets: list[dict[str, Any]],
        auth_methods: list[str],
        auth_patterns: set[str],
    ) -> int:
        """100 minus severity-weighted deductions, clamped to 0..100."""
        score = 100
        score -= sum(SEVERITY_PENALTY[f.risk_level] for f in findings)
        score -= SEVERITY_PENALTY[RiskLevel.CRITICAL] * len(secrets)
        if not auth_methods and not (auth_patterns - {"Rate Limiting", "CSRF Protection"}):
            score -= 20
        if "CSRF Protection" not in auth_patterns:
            score -= 15
        if "Rate Limiting" not in auth_patterns:
            score -= 10
        return max(0, min(100, score))

    def determine_risk_level(
        self, findings: list[SecurityFinding], secrets: list[dict[str, Any]]
    ) -> RiskLevel:
        if secrets or any(f.risk_level == RiskLevel.CRITICAL for f in findings):
            return RiskLevel.CRITICAL
        if any(f.risk_level == RiskLevel.HIGH for f in findings):
            return RiskLevel.HIGH
        if any(f.risk_level == RiskLevel.MEDIUM for f in findings):
            return RiskLevel.MEDIUM
        if findings:
            return RiskLevel.LOW
        return RiskLevel.SAFE

    def risk_assessment(
        self, findings: list[SecurityFinding], secrets: list[dict[str, Any]]
    ) -> dict[str, list[dict[str, Any]]]:
        risks: dict[str, list[dict[str, Any]]] = {
            level.value: [] for level in RiskLevel if level != RiskLevel.SAFE
        }
        for f in findings:
            risks[f.risk_level.value].append({
                "type": f.pattern_name,
                "file": f.file,
                "line": f.line_number,
                "mitigation": f.mitigation,
            })
        for s in secrets:
            risks[RiskLevel.CRITICAL.value].append({
                "type": "hardcoded_secret",
                "file": s["file"],
                "line": s["line"],
                "mitigation": s["mitigation"],
            })
        return risks

    def assess_owasp_compliance(
        self, findings: list[SecurityFinding], secrets: list[dict[str, Any]]
    ) -> dict[str, Any]:
        """Per-category score starting at 100, minus 30 per critical and 15 per other finding."""
        categories: dict[str, dict[str, Any]] = {}
        for owasp_id, title in OWASP_CATEGORIES.items():
            hits = [f for f in findings if f.owasp == owasp_id]
            if owasp_id == "A02:2021":
                critical = len(secrets)
            else:
                critical = 0
            critical += sum(1 for f in hits if f.risk_level == RiskLevel.CRITICAL)
            other = len(hits) - sum(1 for f in hits if f.risk_level == RiskLevel.CRITICAL)
            score = max(0, 100 - 30 * critical - 15 * other)
            categories[owasp_id] = {
                "title": title,
                "score": score,
                "issues": len(hits) + (len(secrets) if owasp_id == "A02:2021" else 0),
            }
        scores = [c["score"] for c in categories.values()]
        return {
            "score": round(sum(scores) / len(scores)),
            "categories": categories,
            "failing": [k for k, c in categories.items() if c["score"] < 70],
        }

    def recommendations(
        self,
        score: int,
        findings: list[SecurityFinding],
        secrets: list[dict[str, Any]],
        auth_patterns: set[str],
    ) -> list[dict[str, Any]]:
        recs: list[dict[str, Any]] = []
        if score < 50:
            recs.append({
                "priority": "critical",
                "category": "security",
                "title": "Critical Security Issues Detected",
                "description": f"Security score is {score}/100. Immediate action needed.",
            })
        if secrets:
            recs.append({
                "priority": "critical",
                "category": "secrets",
                "title": "Remove Hardcoded Secrets",
                "description": f"{len(secrets)} hardcoded secret(s) found in source files.",
            })
        by_pattern: dict[str, int] = {}
        for f in findings:
            if f.risk_level in (RiskLevel.CRITICAL, RiskLevel.HIGH):
                by_pattern[f.pattern_name] = by_pattern.get(f.pattern_name, 0) + 1
        for name, count in sorted(by_pattern.items(), key=lambda kv: -kv[1]):
            pattern = next(p for p in self.patterns if p.name == name)
            recs.append({
                "priority": "high",
                "category": OWASP_CATEGORIES[pattern.owasp],
                "title": pattern.description,
                "description": f"{count} occurrence(s). {pattern.mitigation}.",
            })
        if "Rate Limiting" not in auth_patterns:
            recs.append({
                "priority": "medium",
                "category": "hardening",
                "title": "Add Rate Limiting",
                "description": "No rate limiting detected on the analyzed code paths.",
            })
        return recs

    def _empty_result(self, project: ProjectInfo, error: str | None) -> dict[str, Any]:
        return {
            "static_analysis": {"findings": [], "hardcoded_secrets": [], "auth_patterns": []},
            "security_score": 0,
            "risk_level": RiskLevel.SAFE.value,
            "owasp_compliance": {"score": 0, "categories": {}, "failing": []},
            "metadata": {
                "analysis_date": datetime.now(tz=UTC).isoformat(),
                "framework": project.framework,
                "error": error,
            },
            "recommendations": [
                "No security analysis could be performed",
                "Check if your project has authentication/authorization code",
            ],
        }
