"""
Evaluation engine loading.

The watering decision is made by an engine that lives outside this service.
It is named by a ``module:Class`` path (``WATERME_ENGINE``) and instantiated
without arguments at startup.
"""

import importlib

import structlog

from waterme.core.domain.services import EvaluationEngine
from waterme.shared.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)


def load_engine(path: str) -> EvaluationEngine:
    """
    Import and instantiate the engine class named by ``path``.

    Args:
        path: ``package.module:ClassName`` (a dotted ``package.module.ClassName``
            is accepted too)

    Raises:
        ConfigurationError: If the path is empty, cannot be imported or does
            not name an EvaluationEngine
    """
    if not path or not path.strip():
        raise ConfigurationError("WATERME_ENGINE is not set; an evaluation engine is required")

    path = path.strip()
    if ":" in path:
        module_name, _, class_name = path.partition(":")
    else:
        module_name, _, class_name = path.rpartition(".")

    if not module_name or not class_name:
        raise ConfigurationError(f"Invalid engine path: {path}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import engine module {module_name}: {e}")

    engine_class = getattr(module, class_name, None)
    if not isinstance(engine_class, type) or not issubclass(engine_class, EvaluationEngine):
        raise ConfigurationError(f"{path} is not an EvaluationEngine subclass")

    engine = engine_class()
    logger.info("Evaluation engine loaded", engine=path, version=engine.version())
    return engine
