"""Project scanning: file discovery, categorization and reading."""

from smart_ast.nodes.scanning.file_reader import FileReader
from smart_ast.nodes.scanning.scanner import ProjectScanner

__all__ = ["FileReader", "ProjectScanner"]
