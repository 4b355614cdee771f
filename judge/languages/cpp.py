from pathlib import Path

from . import register_language
from .base import CompiledAdapter


@register_language
class CppAdapter(CompiledAdapter):
    LANGUAGE_NAME = 'cpp'
    DISPLAY_NAME = 'C++17 (g++)'
    SOURCE_SUFFIX = '.cpp'
    COMMENT_MARKER = '//'
    CONFIG_KEYS = {'compiler': 'JUDGE_GXX_CMD'}
    BINARY_NAME = 'main.out'

    def __init__(self, compiler: str = 'g++', flags=None):
        super().__init__()
        self.compiler = compiler
        self.flags = list(flags) if flags is not None else ['-O2', '-std=c++17']

    def compile_command(self, source_path, workdir):
        binary = Path(workdir) / self.BINARY_NAME
        return [self.compiler, *self.flags, str(source_path), '-o', str(binary)]

    def run_command(self, source_path, workdir):
        return [str(Path(workdir) / self.BINARY_NAME)]
