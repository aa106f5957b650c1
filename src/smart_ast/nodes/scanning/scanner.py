"""Project scanner: detects the stack and categorizes files for analysis."""

from __future__ import annotations

import fnmatch
import hashlib
import json
import logging
import os
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any

from smart_ast.entities.analysis import FileRef, ProjectInfo
from smart_ast.nodes.scanning.git_signals import extract_repo_signals

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

logger = logging.getLogger(__name__)

IGNORED_DIRS = frozenset({
    "node_modules", ".git", "dist", "build", "coverage",
    ".next", ".nuxt", "vendor", "__pycache__", ".venv", "venv",
})
IGNORED_FILE_PATTERNS = ("*.min.js", "*.bundle.js")

CODE_EXTENSIONS = frozenset({
    ".js", ".jsx", ".ts", ".tsx", ".vue", ".py", ".java", ".go", ".rs", ".php",
})

LANGUAGE_BY_EXTENSION = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".py": "python",
    ".java": "java",
    ".go": "go",
    ".rs": "rust",
    ".php": "php",
    ".rb": "ruby",
}

PROJECT_TYPE_INDICATORS = (
    ("package.json", "node"),
    ("requirements.txt", "python"),
    ("pyproject.toml", "python"),
    ("pom.xml", "java"),
    ("build.gradle", "java"),
    ("go.mod", "go"),
    ("Cargo.toml", "rust"),
    ("composer.json", "php"),
    ("Gemfile", "ruby"),
)

FRAMEWORK_FILES = (
    (("next.config.js", "next.config.ts", "next.config.mjs"), "nextjs"),
    (("nuxt.config.js", "nuxt.config.ts"), "nuxtjs"),
    (("angular.json",), "angular"),
    (("svelte.config.js",), "svelte"),
    (("vite.config.js", "vite.config.ts"), "vite"),
)

# Checked in order; first dependency present wins
FRAMEWORK_DEPENDENCIES = (
    ("next", "nextjs"),
    ("nuxt", "nuxtjs"),
    ("express", "express"),
    ("@nestjs/core", "nestjs"),
    ("react", "react"),
    ("vue", "vue"),
    ("@angular/core", "angular"),
    ("svelte", "svelte"),
    ("fastify", "fastify"),
)

_JS = frozenset({".js", ".ts"})
_JSX = frozenset({".js", ".ts", ".jsx", ".tsx"})
_SERVER = frozenset({".js", ".ts", ".py"})


@dataclass(frozen=True)
class CategoryRule:
    """Files whose path has one of ``dirs`` (with a matching extension) or whose
    name matches one of ``names``."""

    dirs: frozenset[str] = frozenset()
    extensions: frozenset[str] = frozenset()
    names: tuple[str, ...] = field(default_factory=tuple)

    def matches(self, rel_path: PurePosixPath) -> bool:
        suffix = rel_path.suffix.lower()
        if self.dirs and suffix in self.extensions:
            if any(part.lower() in self.dirs for part in rel_path.parts[:-1]):
                return True
        return any(fnmatch.fnmatchcase(rel_path.name, pattern) for pattern in self.names)


CATEGORY_RULES: dict[str, CategoryRule] = {
    "apis": CategoryRule(
        dirs=frozenset({"api", "routes", "controllers", "endpoints", "graphql"}),
        extensions=_JSX | {".py"},
        names=(
            "*Controller.js", "*Controller.ts", "*Route.js", "*Route.ts",
            "*Api.js", "*Api.ts", "views.py", "urls.py", "routers.py",
        ),
    ),
    "components": CategoryRule(
        dirs=frozenset({"components", "pages"}),
        extensions=_JSX,
        names=("*.jsx", "*.tsx", "*.vue", "*.component.ts", "*.component.js"),
    ),
    "services": CategoryRule(
        dirs=frozenset({"services", "lib", "utils", "helpers", "business"}),
        extensions=_SERVER,
        names=("*Service.js", "*Service.ts", "*Utils.js", "*Utils.ts", "services.py"),
    ),
    "models": CategoryRule(
        dirs=frozenset({"models", "entities", "schemas", "db"}),
        extensions=_SERVER,
        names=(
            "*Model.js", "*Model.ts", "*Schema.js", "*Schema.ts",
            "*.model.js", "*.model.ts", "models.py",
        ),
    ),
    "websockets": CategoryRule(
        dirs=frozenset({"socket", "sockets", "ws", "realtime", "io"}),
        extensions=_SERVER,
        names=("*socket*.js", "*socket*.ts", "*Socket*.js", "*Socket*.ts", "*socket*.py"),
    ),
    "auth": CategoryRule(
        dirs=frozenset({"auth", "authentication", "guards"}),
        extensions=_SERVER,
        names=("*Auth*.js", "*Auth*.ts", "auth*.js", "auth*.ts", "auth*.py"),
    ),
    "configs": CategoryRule(
        dirs=frozenset({"config", "settings"}),
        extensions=_JS | {".json", ".py"},
        names=("*.config.js", "*.config.ts", ".env*", "settings.py"),
    ),
    "tests": CategoryRule(
        dirs=frozenset({"tests", "__tests__"}),
        extensions=_JSX | {".py"},
        names=(
            "*.test.js", "*.test.ts", "*.test.jsx", "*.test.tsx",
            "*.spec.js", "*.spec.ts", "*.spec.jsx", "*.spec.tsx", "test_*.py",
        ),
    ),
}

METRICS_LINE_SAMPLE = 100


def _matches_any(rel_posix: str, patterns: Iterable[str]) -> bool:
    for pattern in patterns:
        if fnmatch.fnmatch(rel_posix, pattern):
            return True
        # "**/x" should also match "x" at the root
        if pattern.startswith("**/") and fnmatch.fnmatch(rel_posix, pattern[3:]):
            return True
    return False


def hash_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


class ProjectScanner:
    """Walk a project directory and describe what is there.

    The walk prunes dependency/build directories and hidden directories,
    honours user include/exclude globs, and caps every category at
    ``max_files`` entries.
    """

    def __init__(
        self,
        path: Path | str,
        include: Iterable[str] | None = None,
        exclude: Iterable[str] | None = None,
        max_files: int = 500,
        collect_git: bool = True,
    ) -> None:
        self.base_path = Path(path).resolve()
        self.include = list(include or [])
        self.exclude = list(exclude or [])
        self.max_files = max_files
        self.collect_git = collect_git

    def scan(self) -> ProjectInfo:
        """Scan the project.

        Raises:
            FileNotFoundError: The project directory does not exist.
        """
        if not self.base_path.is_dir():
            raise FileNotFoundError(f"Directory does not exist: {self.base_path}")

        all_paths = list(self._walk())
        package_json = self._read_package_json()
        logger.info("Scanning %s (%d candidate files)", self.base_path, len(all_paths))

        info = ProjectInfo(
            path=str(self.base_path),
            project_type=self.detect_project_type(),
            framework=self.detect_framework(package_json),
            language=self.detect_language(all_paths),
            structure=self.analyze_structure(),
            dependencies=self.analyze_dependencies(package_json),
            files=self.categorize_files(all_paths),
            metrics=self.gather_metrics(all_paths),
            last_modified=datetime.fromtimestamp(self.base_path.stat().st_mtime, tz=UTC),
            git=extract_repo_signals(self.base_path) if self.collect_git else {},
        )
        logger.info(
            "Detected %s project (%s, %s) with %d files to analyze",
            info.framework,
            info.project_type,
            info.language,
            info.total_files,
        )
        return info

    # -- walking -----------------------------------------------------------

    def _walk(self) -> Iterator[PurePosixPath]:
        """Yield project-relative paths of every non-ignored file."""
        for root, dirs, files in os.walk(self.base_path):
            dirs[:] = sorted(d for d in dirs if d not in IGNORED_DIRS and not d.startswith("."))
            root_path = Path(root)
            for name in sorted(files):
                rel = PurePosixPath((root_path / name).relative_to(self.base_path).as_posix())
                if self._is_ignored(rel):
                    continue
                yield rel

    def _is_ignored(self, rel: PurePosixPath) -> bool:
        rel_posix = rel.as_posix()
        if any(fnmatch.fnmatch(rel.name, p) for p in IGNORED_FILE_PATTERNS):
            return True
        if self.exclude and _matches_any(rel_posix, self.exclude):
            return True
        return bool(self.include) and not _matches_any(rel_posix, self.include)

    # -- detection ---------------------------------------------------------

    def _exists(self, relative: str) -> bool:
        return (self.base_path / relative).exists()

    def _read_package_json(self) -> dict[str, Any] | None:
        path = self.base_path / "package.json"
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to read package.json: %s", e)
            return None
        return data if isinstance(data, dict) else None

    def detect_project_type(self) -> str:
        for indicator, project_type in PROJECT_TYPE_INDICATORS:
            if self._exists(indicator):
                return project_type
        return "unknown"

    def detect_framework(self, package_json: dict[str, Any] | None = None) -> str:
        for names, framework in FRAMEWORK_FILES:
            if any(self._exists(n) for n in names):
                return framework

        if package_json:
            deps = {
                **(package_json.get("dependencies") or {}),
                **(package_json.get("devDependencies") or {}),
            }
            for dep, framework in FRAMEWORK_DEPENDENCIES:
                if dep in deps:
                    return framework

        if self._exists("manage.py"):
            return "django"
        for entry in ("app.py", "main.py"):
            path = self.base_path / entry
            if not path.is_file():
                continue
            try:
                content = path.read_text(encoding="utf-8", errors="replace").lower()
            except OSError:
                continue
            if "fastapi" in content:
                return "fastapi"
            if "flask" in content:
                return "flask"
        return "unknown"

    def detect_language(self, paths: Iterable[PurePosixPath]) -> str:
        """Most common language by file extension, ``unknown`` if none."""
        counts = Counter(
            LANGUAGE_BY_EXTENSION[p.suffix.lower()]
            for p in paths
            if p.suffix.lower() in LANGUAGE_BY_EXTENSION
        )
        if not counts:
            return "unknown"
        return counts.most_common(1)[0][0]

    def analyze_structure(self) -> dict[str, int]:
        """File counts per top-level directory."""
        structure: dict[str, int] = {}
        try:
            entries = sorted(self.base_path.iterdir())
        except OSError as e:
            logger.warning("Failed to analyze structure: %s", e)
            return structure
        for entry in entries:
            if not entry.is_dir() or entry.name in IGNORED_DIRS or entry.name.startswith("."):
                continue
            structure[entry.name] = sum(len(files) for _, _, files in os.walk(entry))
        return structure

    def analyze_dependencies(self, package_json: dict[str, Any] | None = None) -> dict[str, list[str]]:
        deps: dict[str, list[str]] = {"dependencies": [], "dev_dependencies": []}
        if package_json:
            deps["dependencies"] = sorted(package_json.get("dependencies") or {})
            deps["dev_dependencies"] = sorted(package_json.get("devDependencies") or {})
            return deps

        requirements = self.base_path / "requirements.txt"
        if requirements.is_file():
            try:
                lines = requirements.read_text(encoding="utf-8").splitlines()
            except OSError as e:
                logger.warning("Failed to read requirements.txt: %s", e)
                return deps
            for line in lines:
                line = line.split("#", 1)[0].strip()
                if not line or line.startswith("-"):
                    continue
                name = line
                for sep in ("==", ">=", "<=", "~=", "!=", ">", "<", "[", ";", " "):
                    name = name.split(sep, 1)[0]
                deps["dependencies"].append(name.strip())
        return deps

    # -- categorization ----------------------------------------------------

    def categorize_files(self, paths: Iterable[PurePosixPath]) -> dict[str, list[FileRef]]:
        """Assign files to categories; a file may appear in several."""
        categories: dict[str, list[FileRef]] = {name: [] for name in CATEGORY_RULES}
        refs: dict[PurePosixPath, FileRef | None] = {}

        for rel in paths:
            for name, rule in CATEGORY_RULES.items():
                bucket = categories[name]
                if len(bucket) >= self.max_files or not rule.matches(rel):
                    continue
                if rel not in refs:
                    refs[rel] = self._file_ref(rel)
                ref = refs[rel]
                if ref is not None:
                    bucket.append(ref)
        return categories

    def _file_ref(self, rel: PurePosixPath) -> FileRef | None:
        path = self.base_path / rel
        try:
            size = path.stat().st_size
            content_hash = hash_file(path)
        except OSError as e:
            logger.debug("Skipping unreadable file %s: %s", rel, e)
            return None
        return FileRef(
            path=str(path),
            relative_path=rel.as_posix(),
            content_hash=content_hash,
            size=size,
        )

    # -- metrics -----------------------------------------------------------

    def gather_metrics(self, paths: list[PurePosixPath]) -> dict[str, Any]:
        code_files = [p for p in paths if p.suffix.lower() in CODE_EXTENSIONS]
        total_lines = 0
        for rel in code_files[:METRICS_LINE_SAMPLE]:
            try:
                with (self.base_path / rel).open(encoding="utf-8", errors="replace") as f:
                    total_lines += sum(1 for _ in f)
            except OSError:
                continue
        return {
            "total_files": len(paths),
            "code_files": len(code_files),
            "total_lines": total_lines,
        }
