import os
import importlib
import pkgutil
import logging

from judge.engine.errors import UnsupportedLanguage

logger = logging.getLogger(__name__)

_registry = {}


def register_language(cls):
    """Decorator to register a language runtime adapter."""
    _registry[cls.LANGUAGE_NAME] = cls
    logger.info(f"Registered language: {cls.LANGUAGE_NAME} ({cls.DISPLAY_NAME})")
    return cls


def get_language_class(language: str):
    return _registry.get(language)


def get_all_languages():
    return dict(_registry)


def get_adapter(language: str, **kwargs):
    cls = _registry.get(language)
    if cls is None:
        raise UnsupportedLanguage(language)
    return cls(**kwargs)


def load_adapters(config=None) -> dict:
    """Build one adapter instance per registered language.

    Executables are taken from ``JUDGE_<NAME>_CMD``-style config keys declared
    by each adapter class in ``CONFIG_KEYS``.
    """
    config = config or {}
    adapters = {}
    for name, cls in _registry.items():
        kwargs = {
            arg: config[key]
            for arg, key in cls.CONFIG_KEYS.items()
            if config.get(key)
        }
        adapters[name] = cls(**kwargs)
    return adapters


def _auto_discover():
    package_dir = os.path.dirname(__file__)
    for _, module_name, _ in pkgutil.iter_modules([package_dir]):
        if module_name not in ('base', '__init__'):
            try:
                importlib.import_module(f'.{module_name}', package=__package__)
            except Exception as e:
                logger.error(f"Failed to load language module {module_name}: {e}")


_auto_discover()
