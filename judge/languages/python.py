from . import register_language
from .base import InterpretedAdapter


@register_language
class PythonAdapter(InterpretedAdapter):
    LANGUAGE_NAME = 'python'
    DISPLAY_NAME = 'Python 3'
    SOURCE_SUFFIX = '.py'
    COMMENT_MARKER = '#'
    DEFAULT_INTERPRETER = 'python3'
    CONFIG_KEYS = {'interpreter': 'JUDGE_PYTHON_CMD'}

    def run_command(self, source_path, workdir):
        # -I: ignore PYTHON* env vars and the user site directory
        return [self.interpreter, '-I', str(source_path)]
