from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any


class BaseAdapter(ABC):
    """How to materialize, build and start a program in one language.

    Adapters hold no per-run state: every method receives the workspace
    directory of the run, so one instance serves concurrent gradings.
    """

    LANGUAGE_NAME: str = ""
    DISPLAY_NAME: str = ""
    SOURCE_SUFFIX: str = ""
    COMMENT_MARKER: str = "//"
    # constructor argument -> config key
    CONFIG_KEYS: dict = {}

    def __init__(self):
        self.logger = logging.getLogger(f'judge.language.{self.LANGUAGE_NAME}')

    @property
    def compiled(self) -> bool:
        return False

    def source_filename(self, source: str) -> str:
        return f"main{self.SOURCE_SUFFIX}"

    def materialize(self, workdir: Path, source: str) -> Path:
        path = Path(workdir) / self.source_filename(source)
        path.write_text(source, encoding='utf-8')
        return path

    def compile_command(self, source_path: Path, workdir: Path) -> list[str] | None:
        return None

    @abstractmethod
    def run_command(self, source_path: Path, workdir: Path) -> list[str]:
        ...

    def encode_input(self, value: Any) -> bytes:
        if value is None:
            return b''
        if not isinstance(value, str):
            value = json.dumps(value, sort_keys=True, ensure_ascii=False)
        return value.encode('utf-8')

    def __repr__(self) -> str:
        return f'<{type(self).__name__} {self.LANGUAGE_NAME}>'


class InterpretedAdapter(BaseAdapter):
    """Runs the source file directly through an interpreter."""

    DEFAULT_INTERPRETER: str = ""

    def __init__(self, interpreter: str | None = None):
        super().__init__()
        self.interpreter = interpreter or self.DEFAULT_INTERPRETER

    def run_command(self, source_path, workdir):
        return [self.interpreter, str(source_path)]


class CompiledAdapter(BaseAdapter):
    """Builds an artifact inside the workspace before running it."""

    @property
    def compiled(self) -> bool:
        return True

    @abstractmethod
    def compile_command(self, source_path, workdir):
        ...
