"""Pattern-heuristic analysis shared by every task type.

Line-oriented regexes pick out endpoints, components, websocket events,
auth mechanisms, database models and obvious security/performance smells.
No parsing is attempted; results are best-effort hints for the report.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from smart_ast.entities.analysis import SourceFile

logger = logging.getLogger(__name__)

ROUTE_PATTERNS = (
    # Express / Koa style: app.get('/path', ...)
    re.compile(r"(?<![@\w.])(?:app|router|server)\.(get|post|put|delete|patch|all)\s*\(\s*['\"`]([^'\"`]+)['\"`]"),
    # Nest decorators: @Get('/path')
    re.compile(r"@(Get|Post|Put|Delete|Patch)\s*\(\s*['\"`]([^'\"`]*)['\"`]\s*\)"),
    # FastAPI / Flask decorators: @app.get("/path"), @router.post("/path")
    re.compile(r"@\w+\.(get|post|put|delete|patch)\s*\(\s*['\"]([^'\"]+)['\"]"),
)
FLASK_ROUTE = re.compile(r"@\w+\.route\s*\(\s*['\"]([^'\"]+)['\"](?:.*methods\s*=\s*\[([^\]]+)\])?")
NEXT_HANDLER = re.compile(r"export\s+(?:async\s+)?(?:function|const)\s+(GET|POST|PUT|DELETE|PATCH)\b")

COMPONENT_PATTERNS = (
    re.compile(r"(?:export\s+)?(?:default\s+)?(?:function|const)\s+([A-Z][a-zA-Z0-9]*)\s*[=(:]"),
    re.compile(r"class\s+([A-Z][a-zA-Z0-9]*)\s+extends\s+(?:React\.)?(?:Pure)?Component"),
)
HOOK_PATTERN = re.compile(r"\buse[A-Z]\w*")

SOCKET_EVENT = re.compile(r"\b(?:socket|io|ws|client|server)\.(on|emit|once)\s*\(\s*['\"`]([^'\"`]+)['\"`]")
SOCKETIO_DECORATOR = re.compile(r"@\w+\.on\s*\(\s*['\"]([^'\"]+)['\"]")
SOCKET_LIBRARIES = {
    "socket.io": re.compile(r"socket\.io|flask_socketio|python-socketio"),
    "ws": re.compile(r"require\(['\"]ws['\"]\)|from\s+['\"]ws['\"]"),
    "websockets": re.compile(r"\bimport\s+websockets\b|WebSocket\s*\("),
}

AUTH_METHODS = {
    "jwt": re.compile(r"jsonwebtoken|\bjwt\.(sign|verify|encode|decode)|\bPyJWT\b", re.IGNORECASE),
    "session": re.compile(r"express-session|req\.session|flask_login|SessionMiddleware"),
    "oauth": re.compile(r"oauth|passport-google|passport-github", re.IGNORECASE),
    "basic": re.compile(r"\bBasic\s+['\"]|HTTPBasic", re.IGNORECASE),
    "api_key": re.compile(r"x-api-key|APIKeyHeader", re.IGNORECASE),
}
AUTH_PROVIDERS = {
    "passport": re.compile(r"\bpassport\b"),
    "auth0": re.compile(r"auth0", re.IGNORECASE),
    "firebase": re.compile(r"firebase/auth|firebase_admin\.auth"),
    "next-auth": re.compile(r"next-auth"),
    "django": re.compile(r"django\.contrib\.auth"),
}
PASSWORD_HASHING = re.compile(r"bcrypt|argon2|scrypt|pbkdf2", re.IGNORECASE)
ROLE_PATTERN = re.compile(r"\brole[s]?\s*[=:]{1,3}\s*['\"](\w+)['\"]", re.IGNORECASE)

MODEL_PATTERNS = (
    ("mongoose", re.compile(r"mongoose\.model\s*\(\s*['\"](\w+)['\"]")),
    ("sequelize", re.compile(r"sequelize\.define\s*\(\s*['\"](\w+)['\"]")),
    ("typeorm", re.compile(r"@Entity\s*\([^)]*\)\s*(?:export\s+)?class\s+(\w+)")),
    ("django", re.compile(r"class\s+(\w+)\s*\(\s*models\.Model\s*\)")),
    ("sqlalchemy", re.compile(r"class\s+(\w+)\s*\(\s*(?:Base|db\.Model|DeclarativeBase)\s*\)")),
    ("prisma", re.compile(r"^model\s+(\w+)\s*\{", re.MULTILINE)),
)
RAW_QUERY = re.compile(r"\b(SELECT|INSERT\s+INTO|UPDATE|DELETE\s+FROM)\b[^'\"`]*\b(FROM|SET|VALUES|WHERE)\b", re.IGNORECASE)

SECURITY_PATTERNS = (
    (re.compile(r"\beval\s*\("), "Dangerous eval() usage", "high"),
    (re.compile(r"innerHTML\s*="), "Potential XSS via innerHTML", "medium"),
    (re.compile(r"createHash\(['\"]md5['\"]|hashlib\.md5"), "Weak MD5 hashing", "medium"),
    (re.compile(r"disable.*csrf|csrf_exempt", re.IGNORECASE), "CSRF protection disabled", "high"),
    (re.compile(r"shell\s*=\s*True"), "Subprocess invoked through the shell", "high"),
)

PERFORMANCE_PATTERNS = (
    (
        re.compile(r"\.map\s*\([^)]+\)\s*\.map\s*\("),
        "Chained map operations",
        "Combine the transformations into a single pass",
    ),
    (
        re.compile(r"JSON\.parse\s*\(\s*JSON\.stringify"),
        "Inefficient deep cloning",
        "Use structuredClone or a dedicated deep clone helper",
    ),
    (
        re.compile(r"\bfor\s*\(\s*(?:const|let|var)\s+\w+\s+in\s+"),
        "for...in loop usage",
        "Prefer for...of or array methods",
    ),
    (
        re.compile(r"readFileSync|writeFileSync"),
        "Synchronous file I/O",
        "Use the asynchronous file APIs on request paths",
    ),
    (
        re.compile(r"\btime\.sleep\s*\("),
        "Blocking sleep",
        "Avoid blocking sleeps in request handlers and event loops",
    ),
)


def _line_of(content: str, index: int) -> int:
    return content.count("\n", 0, index) + 1


def _next_api_path(relative_path: str) -> str:
    parts = relative_path.replace("\\", "/").split("/")
    if "api" not in parts:
        return "/api/unknown"
    tail = []
    for part in parts[parts.index("api") + 1:]:
        part = re.sub(r"\.(js|ts|jsx|tsx)$", "", part)
        if part in ("index", "route", ""):
            continue
        tail.append(re.sub(r"\[([^\]]+)\]", r":\1", part))
    return "/api/" + "/".join(tail)


class BaseAnalyzer:
    """Runs every heuristic over a batch of files and merges the findings."""

    def analyze_files(self, files: list[SourceFile]) -> dict[str, Any]:
        results: dict[str, Any] = {
            "endpoints": [],
            "components": {},
            "websocket": {"libraries": [], "events": []},
            "auth": {"methods": [], "providers": [], "roles": [], "password_hashing": False},
            "database": {"orms": [], "models": [], "raw_queries": []},
            "security": {"issues": []},
            "performance": {"issues": []},
            "files_analyzed": len(files),
        }
        for file in files:
            self.analyze_file(file, results)
        logger.debug(
            "Base analysis of %d files: %d endpoints, %d components",
            len(files),
            len(results["endpoints"]),
            len(results["components"]),
        )

        for key in ("methods", "providers", "roles"):
            results["auth"][key] = sorted(set(results["auth"][key]))
        results["websocket"]["libraries"] = sorted(set(results["websocket"]["libraries"]))
        results["database"]["orms"] = sorted(set(results["database"]["orms"]))
        return results

    def analyze_file(self, file: SourceFile, results: dict[str, Any]) -> None:
        content = file.content
        path = file.relative_path
        lines = content.splitlines()

        self._detect_endpoints(content, lines, path, results)
        if file.extension in (".jsx", ".tsx", ".js", ".ts", ".vue"):
            self._detect_components(content, lines, path, results)
        self._detect_websocket(content, lines, path, results)
        self._detect_auth(content, results)
        self._detect_models(content, path, results)

        for index, line in enumerate(lines, start=1):
            for pattern, issue, severity in SECURITY_PATTERNS:
                if pattern.search(line):
                    results["security"]["issues"].append({
                        "issue": issue,
                        "severity": severity,
                        "file": path,
                        "line": index,
                        "code": line.strip()[:200],
                    })
            for pattern, issue, suggestion in PERFORMANCE_PATTERNS:
                if pattern.search(line):
                    results["performance"]["issues"].append({
                        "issue": issue,
                        "suggestion": suggestion,
                        "file": path,
                        "line": index,
                        "code": line.strip()[:200],
                    })

    def _detect_endpoints(
        self, content: str, lines: list[str], path: str, results: dict[str, Any]
    ) -> None:
        for index, line in enumerate(lines, start=1):
            for pattern in ROUTE_PATTERNS:
                for match in pattern.finditer(line):
                    results["endpoints"].append({
                        "method": match.group(1).upper(),
                        "path": match.group(2) or "/",
                        "file": path,
                        "line": index,
                    })
            flask = FLASK_ROUTE.search(line)
            if flask:
                methods = flask.group(2)
                names = re.findall(r"['\"](\w+)['\"]", methods) if methods else ["GET"]
                for method in names:
                    results["endpoints"].append({
                        "method": method.upper(),
                        "path": flask.group(1),
                        "file": path,
                        "line": index,
                    })

        if "/api/" in f"/{path}":
            for match in NEXT_HANDLER.finditer(content):
                results["endpoints"].append({
                    "method": match.group(1),
                    "path": _next_api_path(path),
                    "file": path,
                    "line": _line_of(content, match.start()),
                    "framework": "nextjs",
                })

    def _detect_components(
        self, content: str, lines: list[str], path: str, results: dict[str, Any]
    ) -> None:
        hooks = sorted(set(HOOK_PATTERN.findall(content)))
        for index, line in enumerate(lines, start=1):
            for pattern in COMPONENT_PATTERNS:
                for match in pattern.finditer(line):
                    name = match.group(1)
                    results["components"].setdefault(name, {
                        "file": path,
                        "line": index,
                        "type": "class" if line.lstrip().startswith(("class", "export class")) else "function",
                        "hooks": hooks,
                    })

    def _detect_websocket(
        self, content: str, lines: list[str], path: str, results: dict[str, Any]
    ) -> None:
        for library, pattern in SOCKET_LIBRARIES.items():
            if pattern.search(content):
                results["websocket"]["libraries"].append(library)
        for index, line in enumerate(lines, start=1):
            for match in SOCKET_EVENT.finditer(line):
                results["websocket"]["events"].append({
                    "event": match.group(2),
                    "direction": "inbound" if match.group(1) in ("on", "once") else "outbound",
                    "file": path,
                    "line": index,
                })
            decorated = SOCKETIO_DECORATOR.search(line)
            if decorated:
                results["websocket"]["events"].append({
                    "event": decorated.group(1),
                    "direction": "inbound",
                    "file": path,
                    "line": index,
                })

    def _detect_auth(self, content: str, results: dict[str, Any]) -> None:
        auth = results["auth"]
        auth["methods"].extend(name for name, p in AUTH_METHODS.items() if p.search(content))
        auth["providers"].extend(name for name, p in AUTH_PROVIDERS.items() if p.search(content))
        auth["roles"].extend(m.lower() for m in ROLE_PATTERN.findall(content))
        if PASSWORD_HASHING.search(content):
            auth["password_hashing"] = True

    def _detect_models(self, content: str, path: str, results: dict[str, Any]) -> None:
        database = results["database"]
        for orm, pattern in MODEL_PATTERNS:
            for match in pattern.finditer(content):
                database["orms"].append(orm)
                database["models"].append({
                    "name": match.group(1),
                    "orm": orm,
                    "file": path,
                    "line": _line_of(content, match.start()),
                })
        for match in RAW_QUERY.finditer(content):
            database["raw_queries"].append({
                "statement": match.group(1).split()[0].upper(),
                "file": path,
                "line": _line_of(content, match.start()),
            })
