import os
import sys
import tempfile


def _env_flag(name, default):
    return os.environ.get(name, default).lower() in ('true', '1', 'yes')


class BaseConfig:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.environ.get('SECRET_KEY', 'fallback-secret-key-change-me')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Database
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'SQLALCHEMY_DATABASE_URI', 'sqlite:///dev.db'
    )

    # Sandbox workspace and limits
    JUDGE_WORKSPACE_DIR = os.environ.get(
        'JUDGE_WORKSPACE_DIR',
        os.path.join(tempfile.gettempdir(), 'contest-judge'),
    )
    JUDGE_DEFAULT_TIME_LIMIT_MS = int(os.environ.get('JUDGE_DEFAULT_TIME_LIMIT_MS', '5000'))
    JUDGE_COMPILE_TIMEOUT_MS = int(os.environ.get('JUDGE_COMPILE_TIMEOUT_MS', '15000'))
    # Upper bound for test_count * time_limit of a single submission
    JUDGE_MAX_GRADING_MS = int(os.environ.get('JUDGE_MAX_GRADING_MS', '300000'))
    JUDGE_MAX_WORKERS = int(os.environ.get('JUDGE_MAX_WORKERS', '4'))
    JUDGE_MEMORY_POLICY = os.environ.get('JUDGE_MEMORY_POLICY', 'estimate')
    # Bytes of stdout (and of stderr) kept per run; more kills the process
    JUDGE_MAX_OUTPUT_BYTES = int(os.environ.get('JUDGE_MAX_OUTPUT_BYTES', str(1024 * 1024)))

    # Contest results
    JUDGE_PERSIST_SUBMISSIONS = _env_flag('JUDGE_PERSIST_SUBMISSIONS', 'true')
    JUDGE_RESULT_RETRIES = int(os.environ.get('JUDGE_RESULT_RETRIES', '3'))

    # Toolchain executables
    JUDGE_PYTHON_CMD = os.environ.get('JUDGE_PYTHON_CMD', 'python3')
    JUDGE_NODE_CMD = os.environ.get('JUDGE_NODE_CMD', 'node')
    JUDGE_GXX_CMD = os.environ.get('JUDGE_GXX_CMD', 'g++')
    JUDGE_JAVAC_CMD = os.environ.get('JUDGE_JAVAC_CMD', 'javac')
    JUDGE_JAVA_CMD = os.environ.get('JUDGE_JAVA_CMD', 'java')

    # Logging
    LOG_FILE_MAX_BYTES = int(os.environ.get('LOG_FILE_MAX_BYTES', '0'))
    LOG_FILE_BACKUP_COUNT = int(os.environ.get('LOG_FILE_BACKUP_COUNT', '3'))

    # Scheduler
    SCHEDULER_ENABLED = _env_flag('SCHEDULER_ENABLED', 'false')


class DevelopmentConfig(BaseConfig):
    """Development environment configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'SQLALCHEMY_DATABASE_URI', 'sqlite:///dev.db'
    )
    SCHEDULER_ENABLED = False


class ProductionConfig(BaseConfig):
    """Production environment configuration."""

    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'SQLALCHEMY_DATABASE_URI', 'sqlite:///prod.db'
    )
    SCHEDULER_ENABLED = _env_flag('SCHEDULER_ENABLED', 'true')
    JUDGE_MEMORY_POLICY = os.environ.get('JUDGE_MEMORY_POLICY', 'prlimit')


class TestingConfig(BaseConfig):
    """Testing environment configuration."""

    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SECRET_KEY = 'test-secret-key'
    SCHEDULER_ENABLED = False
    JUDGE_MAX_WORKERS = 2
    # grade with the interpreter running the tests
    JUDGE_PYTHON_CMD = os.environ.get('JUDGE_PYTHON_CMD', sys.executable)
    JUDGE_WORKSPACE_DIR = os.path.join(tempfile.gettempdir(), 'contest-judge-test')


config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
}
