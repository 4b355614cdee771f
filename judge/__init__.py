import logging
import os

from logging.handlers import RotatingFileHandler

from dotenv import load_dotenv
from flask import Flask

from judge.config import config_map
from judge.extensions import db

__version__ = '0.3.0'


def create_app(config_name=None):
    """Application factory for creating the Flask app instance.

    Args:
        config_name: Configuration name ('development', 'production' or
                     'testing'). Defaults to FLASK_ENV or 'development'.

    Returns:
        Configured Flask application instance with the judging engine
        available under ``app.extensions['judge']``.
    """
    # Load environment variables from the appropriate .env file
    env = config_name or os.environ.get('FLASK_ENV', 'development')
    root_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    env_file = os.path.join(root_dir, f'.env.{env}')
    if os.path.exists(env_file):
        load_dotenv(env_file)

    # Also load a local .env if it exists (overrides the environment-specific one)
    dotenv_path = os.path.join(root_dir, '.env')
    if os.path.exists(dotenv_path):
        load_dotenv(dotenv_path, override=True)

    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    app = Flask(__name__)

    config_class = config_map.get(config_name, config_map['development'])
    app.config.from_object(config_class)

    _configure_logging(app)

    db.init_app(app)

    _init_judge(app)

    if app.config.get('SCHEDULER_ENABLED'):
        _init_scheduler(app)

    with app.app_context():
        db.create_all()
        _cleanup_stale_submissions(app)

    return app


def _configure_logging(app):
    """Set up RotatingFileHandler on the root logger."""
    max_bytes = app.config.get('LOG_FILE_MAX_BYTES', 0)
    if not max_bytes:
        return

    log_dir = os.path.join(app.instance_path, 'logs')
    os.makedirs(log_dir, exist_ok=True)

    log_file = os.path.join(log_dir, 'judge.log')
    handler = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=app.config.get('LOG_FILE_BACKUP_COUNT', 3),
    )
    handler.setFormatter(logging.Formatter(
        app.config.get('LOG_FORMAT', '%(asctime)s [%(levelname)s] %(name)s: %(message)s')
    ))
    handler.setLevel(logging.DEBUG)

    root = logging.getLogger()
    root.addHandler(handler)
    if root.level == logging.WARNING:
        root.setLevel(logging.DEBUG)


def _init_judge(app):
    """Resolve language adapters once and build the shared engine objects."""
    from judge.languages import load_adapters
    from judge.engine.orchestrator import GradingPool, Orchestrator

    adapters = load_adapters(app.config)
    orchestrator = Orchestrator.from_config(app.config, adapters)
    app.extensions['judge'] = {
        'adapters': adapters,
        'orchestrator': orchestrator,
        'pool': GradingPool(orchestrator, max_workers=app.config.get('JUDGE_MAX_WORKERS', 4)),
    }
    app.logger.info(f"Judge ready with languages: {', '.join(sorted(adapters))}")


def _cleanup_stale_submissions(app):
    """Close submissions left unfinished by a previous process."""
    from judge.services.stores import SubmissionStore
    try:
        count = SubmissionStore().fail_stale_running()
        if count:
            app.logger.info(f'Closed {count} stale submission(s)')
    except Exception:
        db.session.rollback()
        app.logger.exception('Failed to close stale submissions')


def _init_scheduler(app):
    """Initialize and start APScheduler for background tasks."""
    from judge.tasks.scheduler import init_scheduler
    init_scheduler(app)
