from . import register_language
from .base import InterpretedAdapter


@register_language
class JavaScriptAdapter(InterpretedAdapter):
    LANGUAGE_NAME = 'javascript'
    DISPLAY_NAME = 'JavaScript (Node.js)'
    SOURCE_SUFFIX = '.js'
    COMMENT_MARKER = '//'
    DEFAULT_INTERPRETER = 'node'
    CONFIG_KEYS = {'interpreter': 'JUDGE_NODE_CMD'}
