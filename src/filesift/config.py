# src/filesift/config.py
from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Tuple

# Built-in defaults applied in automatic mode, before any .gitignore rules.
DEFAULT_IGNORE_PATTERNS = [
    # Version control
    ".git",
    ".svn",
    ".hg",
    # Dependencies
    "node_modules",
    "bower_components",
    "vendor",
    # Build output
    "dist",
    "build",
    "out",
    ".next",
    "target",
    "bin",
    "Debug",
    "Release",
    "x64",
    "x86",
    ".output",
    "*.min.js",
    "*.min.css",
    "*.bundle.js",
    "*.compiled.*",
    "*.generated.*",
    ".cache",
    ".parcel-cache",
    ".webpack",
    ".turbo",
    # Editors
    ".idea",
    ".vscode",
    ".vs",
    # System files
    ".DS_Store",
    "Thumbs.db",
    "desktop.ini",
    "*.asar",
    "release-builds",
]

# Static exclude list used in global mode. In automatic mode it only drives
# the excluded_by_default flag on file records.
EXCLUDED_PATTERNS = [
    # Node
    "package-lock.json",
    "yarn.lock",
    "npm-debug.log*",
    "yarn-debug.log*",
    "yarn-error.log*",
    "pnpm-lock.yaml",
    ".npmrc",
    ".yarnrc",
    ".nvmrc",
    "node_modules/**",
    # JavaScript / TypeScript
    ".eslintrc*",
    ".prettierrc*",
    "tsconfig*.json",
    "*.d.ts",
    "*.min.js",
    "*.map",
    # Python
    "__pycache__/**",
    "*.pyc",
    "*.pyo",
    "*.pyd",
    ".pytest_cache/**",
    ".coverage",
    ".python-version",
    "venv/**",
    ".venv/**",
    "*.egg-info/**",
    "pip-log.txt",
    "pip-delete-this-directory.txt",
    # Go
    "go.sum",
    "go.mod",
    "vendor/**",
    # Java
    "*.class",
    "*.jar",
    "target/**",
    ".gradle/**",
    # Ruby
    "Gemfile.lock",
    ".bundle/**",
    # PHP
    "composer.lock",
    # Rust
    "Cargo.lock",
    # .NET
    "bin/**",
    "obj/**",
    "*.suo",
    "*.user",
    # Archives
    "*.zip",
    "*.tar.gz",
    "*.tgz",
    "*.rar",
    # Editors
    ".idea/**",
    ".vscode/**",
    "*.swp",
    "*.swo",
    ".DS_Store",
    # Build output
    "dist/**",
    "build/**",
    "out/**",
    ".next/**",
    # Logs
    "logs/**",
    "*.log",
    # Databases
    "*.sqlite",
    "*.db",
    # Secrets
    ".env*",
    ".aws/**",
    "*.pem",
    "*.key",
    # Docker
    "docker-compose.override.yml",
    # VCS
    ".git/**",
]

# Extensions always treated as binary: listed, sized, never read.
BINARY_EXTENSIONS = frozenset({
    # Images
    ".svg", ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tiff", ".ico",
    ".icns", ".webp", ".psd", ".heic", ".heif",
    # Video
    ".mp4", ".avi", ".mov", ".mkv",
    # Audio
    ".mp3", ".wav", ".ogg", ".flac",
    # Documents
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    # Archives, executables, data, fonts
    ".zip", ".rar", ".tar", ".gz", ".7z", ".exe", ".dll", ".so", ".class",
    ".o", ".pyc", ".db", ".sqlite", ".sqlite3", ".bin", ".dat",
    ".ttf", ".otf", ".woff", ".woff2",
})

# Directories the .gitignore collector never descends into.
ALWAYS_SKIPPED_DIRS = frozenset({
    ".git", ".svn", ".hg",
    "node_modules", "bower_components",
    "__pycache__", ".venv", "venv",
    ".pytest_cache", ".mypy_cache", ".tox", ".gradle",
})

IGNORE_FILENAME = ".gitignore"

MAX_FILE_SIZE = 5 * 1024 * 1024
DIRECTORY_BATCH_SIZE = 4
FILE_CHUNK_SIZE = 20
SCAN_TIMEOUT_SECONDS = 300.0
MAX_DEPTH = 64
TOKEN_ENCODING = "o200k_base"


@dataclass(frozen=True)
class EngineConfig:
    """Static configuration supplied by the host application."""
    default_ignore_patterns: Tuple[str, ...] = tuple(DEFAULT_IGNORE_PATTERNS)
    excluded_patterns: Tuple[str, ...] = tuple(EXCLUDED_PATTERNS)
    binary_extensions: FrozenSet[str] = BINARY_EXTENSIONS
    always_skipped_dirs: FrozenSet[str] = ALWAYS_SKIPPED_DIRS
    ignore_filename: str = IGNORE_FILENAME
    max_file_size: int = MAX_FILE_SIZE
    directory_batch_size: int = DIRECTORY_BATCH_SIZE
    file_chunk_size: int = FILE_CHUNK_SIZE
    scan_timeout: float = SCAN_TIMEOUT_SECONDS
    max_depth: int = MAX_DEPTH
    token_encoding: Optional[str] = TOKEN_ENCODING
    case_insensitive: Optional[bool] = field(default=None)

    def __post_init__(self):
        if self.max_file_size <= 0:
            raise ValueError("max_file_size must be positive")
        if self.directory_batch_size < 1 or self.file_chunk_size < 1:
            raise ValueError("batch and chunk sizes must be at least 1")
        if self.scan_timeout <= 0:
            raise ValueError("scan_timeout must be positive")
        if self.max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        # Accept lists from callers but keep the instance hashable.
        object.__setattr__(self, "default_ignore_patterns", tuple(self.default_ignore_patterns))
        object.__setattr__(self, "excluded_patterns", tuple(self.excluded_patterns))
        object.__setattr__(
            self, "binary_extensions", frozenset(e.lower() for e in self.binary_extensions)
        )
        object.__setattr__(self, "always_skipped_dirs", frozenset(self.always_skipped_dirs))
