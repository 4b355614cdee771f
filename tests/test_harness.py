"""Tests for combining user code with problem harnesses."""

import pytest

from judge.engine.errors import UnsupportedLanguage
from judge.engine.harness import compose, resolve_harness


class TestResolveHarness:
    def test_plain_string_applies_to_every_language(self):
        assert resolve_harness('print(solve())', 'python') == 'print(solve())'
        assert resolve_harness('print(solve())', 'java') == 'print(solve())'

    def test_mapping_lookup(self):
        harness = {'python': 'main()', 'cpp': 'int main() {}'}
        assert resolve_harness(harness, 'cpp') == 'int main() {}'

    def test_mapping_missing_language_is_empty(self):
        assert resolve_harness({'python': 'main()'}, 'javascript') == ''

    def test_none_is_empty(self):
        assert resolve_harness(None, 'python') == ''

    def test_result_is_trimmed(self):
        assert resolve_harness('\n\n  main()  \n', 'python') == 'main()'


class TestCompose:
    def test_empty_harness_returns_code_unchanged(self, make_problem):
        code = 'def solve():\n    return 1\n  \n'
        problem = make_problem([], harness='   \n\t')
        assert compose(code, 'python', problem) is code

    def test_python_markers(self, make_problem):
        problem = make_problem([], harness='print(solve())')
        out = compose('def solve():\n    return 1', 'python', problem)
        assert out == (
            'def solve():\n    return 1\n'
            '# --- HARNESS START ---\n'
            'print(solve())\n'
            '# --- HARNESS END ---'
        )

    @pytest.mark.parametrize('language', ['javascript', 'cpp', 'java'])
    def test_slash_comment_languages(self, language, make_problem):
        problem = make_problem([], harness={language: 'RUN'})
        out = compose('CODE', language, problem)
        assert out == 'CODE\n// --- HARNESS START ---\nRUN\n// --- HARNESS END ---'

    def test_per_language_harness_absent_keeps_code(self, make_problem):
        problem = make_problem([], harness={'python': 'main()'})
        assert compose('int x;', 'cpp', problem) == 'int x;'

    def test_unsupported_language_is_rejected(self, make_problem):
        problem = make_problem([], harness='')
        with pytest.raises(UnsupportedLanguage, match='Unsupported language: cobol'):
            compose('code', 'cobol', problem)

    def test_explicit_marker_overrides_registry(self, make_problem):
        problem = make_problem([], harness='main()')
        out = compose('x = 1', 'compiled-python', problem, comment_marker='#')
        assert out.endswith('# --- HARNESS END ---')
