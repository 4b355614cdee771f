#!/usr/bin/env python3
"""Grade a local source file against a problem described in JSON.

Usage:
    python scripts/grade_file.py solution.py problem.json
    python scripts/grade_file.py main.cpp problem.json --language cpp
    python scripts/grade_file.py Main.java problem.json --show-output

problem.json:
    {
      "id": "two-sum",
      "harness": "" | "..." | {"python": "...", "cpp": "..."},
      "time_limit_ms": 2000,
      "memory_limit_mb": 256,
      "points": 100,
      "test_cases": [{"input": "1 2", "expected_output": "3", "points": 40}, ...]
    }

No database is touched; grading runs through the same orchestrator the
service uses.
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from judge.config import config_map
from judge.engine.common import Problem, TestCase
from judge.engine.errors import JudgeError
from judge.engine.orchestrator import Orchestrator
from judge.languages import get_all_languages, load_adapters

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


def load_problem(path: str) -> Problem:
    with open(path, encoding='utf-8') as f:
        data = json.load(f)
    test_cases = tuple(
        TestCase(
            id=tc.get('id', idx),
            input=tc.get('input', ''),
            expected_output=tc.get('expected_output', ''),
            is_hidden=tc.get('is_hidden', False),
            points=tc.get('points', 1),
        )
        for idx, tc in enumerate(data.get('test_cases', []), 1)
    )
    return Problem(
        id=data.get('id', os.path.basename(path)),
        title=data.get('title', ''),
        test_cases=test_cases,
        harness=data.get('harness', ''),
        time_limit_ms=data.get('time_limit_ms'),
        memory_limit_mb=data.get('memory_limit_mb'),
        points=data.get('points', 100),
    )


def guess_language(source_path: str) -> str | None:
    suffix = os.path.splitext(source_path)[1]
    for name, cls in get_all_languages().items():
        if cls.SOURCE_SUFFIX == suffix:
            return name
    return None


def _config_dict(env: str) -> dict:
    cls = config_map.get(env, config_map['development'])
    return {key: getattr(cls, key) for key in dir(cls) if key.isupper()}


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Grade a source file against a problem JSON')
    parser.add_argument('source', help='Path to the submitted source file')
    parser.add_argument('problem', help='Path to the problem JSON file')
    parser.add_argument('--language', help='Language name (guessed from the file suffix by default)')
    parser.add_argument('--env', default=os.environ.get('FLASK_ENV', 'development'),
                        help='Configuration to read toolchain settings from')
    parser.add_argument('--show-output', action='store_true',
                        help='Print program output for every test case')
    args = parser.parse_args(argv)

    language = args.language or guess_language(args.source)
    if not language:
        logger.error("Cannot guess the language of %s, pass --language", args.source)
        return 2

    with open(args.source, encoding='utf-8') as f:
        code = f.read()
    problem = load_problem(args.problem)

    config = _config_dict(args.env)
    orchestrator = Orchestrator.from_config(config, load_adapters(config))
    try:
        outcome = orchestrator.grade_submission(code, language, problem)
    except JudgeError as e:
        logger.error("Grading rejected: %s", e)
        return 2

    for idx, result in enumerate(outcome.test_results, 1):
        mark = 'PASS' if result.passed else 'FAIL'
        print(f"  #{idx:<3} {mark}  {result.execution_time_ms:>6} ms")
        if result.error and not result.passed:
            print(f"        {result.error.strip()[:200]}")
        if args.show_output:
            print(f"        output: {result.output!r}")

    print(f"\nStatus: {outcome.status.value}  Score: {outcome.score}/{outcome.max_score}  "
          f"Time: {outcome.total_execution_time_ms} ms")
    return 0 if outcome.accepted else 1


if __name__ == '__main__':
    sys.exit(main())
