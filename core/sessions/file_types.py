"""
File Types

업로드 파일 모델, 지원 파일 유형 판별, 언어 감지, 크기 표기 유틸.
"""

import os
import time
import uuid

from pydantic import BaseModel, Field

SUPPORTED_EXTENSIONS = frozenset({
    # JavaScript/TypeScript
    ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs",
    # Python
    ".py", ".pyw", ".pyx",
    # JVM
    ".java", ".kt", ".scala",
    ".go", ".rs",
    # C/C++/Objective-C
    ".c", ".cpp", ".cc", ".cxx", ".h", ".hpp", ".hh", ".m", ".mm",
    ".cs", ".rb", ".php", ".swift", ".dart", ".lua", ".r", ".vim",
    # Web
    ".html", ".htm", ".css", ".scss", ".sass", ".less",
    # Data / config
    ".json", ".json5", ".xml", ".yaml", ".yml", ".toml",
    ".ini", ".conf", ".cfg", ".config", ".lock",
    # Docs
    ".md", ".markdown", ".mdx", ".mdown", ".txt", ".text",
    # Shell
    ".sh", ".bash", ".zsh", ".fish",
    ".sql", ".graphql", ".proto",
})

SUPPORTED_FILENAMES = frozenset({
    "dockerfile", "makefile", "cmakefile", "gemfile", "rakefile", "procfile",
    "readme", "license", "license.md", "changelog", "changelog.md",
    "contributing", "authors", "contributors", "code_of_conduct",
    "package.json", "package-lock.json", "yarn.lock", "pnpm-lock.yaml",
    "tsconfig.json", "jsconfig.json", "docker-compose.yml", "docker-compose.yaml",
    "alembic.ini",
})

LANGUAGE_BY_EXTENSION = {
    ".ts": "typescript", ".tsx": "tsx", ".js": "javascript", ".jsx": "jsx",
    ".mjs": "javascript", ".cjs": "javascript",
    ".py": "python", ".pyw": "python", ".pyx": "python",
    ".java": "java", ".kt": "kotlin", ".scala": "scala",
    ".go": "go", ".rs": "rust",
    ".c": "c", ".h": "c", ".cpp": "cpp", ".cc": "cpp", ".cxx": "cpp", ".hpp": "cpp", ".hh": "cpp",
    ".m": "objectivec", ".mm": "objectivecpp",
    ".cs": "csharp", ".rb": "ruby", ".php": "php", ".swift": "swift", ".dart": "dart",
    ".lua": "lua", ".r": "r", ".vim": "vim",
    ".html": "html", ".htm": "html", ".css": "css", ".scss": "scss", ".sass": "sass", ".less": "less",
    ".json": "json", ".json5": "json", ".xml": "xml", ".yaml": "yaml", ".yml": "yaml", ".toml": "toml",
    ".ini": "ini", ".conf": "conf",
    ".md": "markdown", ".markdown": "markdown", ".mdx": "markdown",
    ".sh": "bash", ".bash": "bash", ".zsh": "bash", ".fish": "bash",
    ".sql": "sql", ".graphql": "graphql", ".proto": "protobuf",
}

LANGUAGE_BY_FILENAME = {
    "dockerfile": "docker",
    "makefile": "makefile",
    ".eslintrc": "json",
    ".prettierrc": "json",
    ".babelrc": "json",
    "alembic.ini": "ini",
}


class StoredFile(BaseModel):
    """세션에 저장된 업로드 파일"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    path: str
    type: str = Field(..., description="확장자 (.ts, .py 등), 없으면 빈 문자열")
    size: int = Field(..., ge=0, description="바이트 크기")
    content: str
    uploadedAt: int = Field(default_factory=lambda: int(time.time() * 1000))
    language: str = "text"

    def metadata(self) -> dict[str, object]:
        """content를 제외한 메타데이터"""
        return self.model_dump(exclude={"content"})


def file_extension(file_name: str) -> str:
    return os.path.splitext(file_name)[1].lower()


def is_supported_file(file_name: str) -> bool:
    """
    지원 파일 유형인지 판별

    확장자, 확장자 없는 표준 파일명(Dockerfile, README 등),
    점으로 시작하는 설정 파일(.gitignore, .env 등)을 허용합니다.
    """
    name = os.path.basename(file_name).lower()
    if not name:
        return False
    if name in SUPPORTED_FILENAMES:
        return True
    if name.startswith(".") and len(name) > 1:
        return True
    return file_extension(name) in SUPPORTED_EXTENSIONS


def detect_language(file_name: str) -> str:
    """파일명으로 문법 강조용 언어 이름을 추정 (알 수 없으면 text)"""
    name = os.path.basename(file_name).lower()
    if name in LANGUAGE_BY_FILENAME:
        return LANGUAGE_BY_FILENAME[name]
    return LANGUAGE_BY_EXTENSION.get(file_extension(name), "text")


def format_file_size(size: int) -> str:
    """바이트 크기를 사람이 읽기 쉬운 문자열로 (예: 1.5 KB)"""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"
