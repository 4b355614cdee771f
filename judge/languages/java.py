import re

from . import register_language
from .base import CompiledAdapter

_PUBLIC_CLASS_RE = re.compile(r'\bpublic\s+(?:final\s+)?class\s+([A-Za-z_$][\w$]*)')


@register_language
class JavaAdapter(CompiledAdapter):
    """javac/java pair.

    javac insists that a public class lives in a file of the same name, so
    the source is written as ``<PublicClass>.java`` (``Main.java`` when the
    code declares no public class) and started by class name.
    """

    LANGUAGE_NAME = 'java'
    DISPLAY_NAME = 'Java'
    SOURCE_SUFFIX = '.java'
    COMMENT_MARKER = '//'
    CONFIG_KEYS = {'compiler': 'JUDGE_JAVAC_CMD', 'runtime': 'JUDGE_JAVA_CMD'}
    DEFAULT_CLASS = 'Main'

    def __init__(self, compiler: str = 'javac', runtime: str = 'java'):
        super().__init__()
        self.compiler = compiler
        self.runtime = runtime

    def main_class(self, source: str) -> str:
        m = _PUBLIC_CLASS_RE.search(source)
        return m.group(1) if m else self.DEFAULT_CLASS

    def source_filename(self, source):
        return f"{self.main_class(source)}{self.SOURCE_SUFFIX}"

    def compile_command(self, source_path, workdir):
        return [self.compiler, '-encoding', 'UTF-8', '-d', str(workdir), str(source_path)]

    def run_command(self, source_path, workdir):
        return [self.runtime, '-cp', str(workdir), source_path.stem]
