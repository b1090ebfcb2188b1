"""
Contract Programming implementation with preconditions and postconditions.

This module provides decorators and utilities for implementing Design by Contract
principles. Conditions name the parameters they inspect; only those arguments
are passed in, so the same condition works on plain functions, methods and
coroutines.
"""

import functools
import inspect
from typing import Any, Callable, Dict, TypeVar, Union

import structlog

from waterme.shared.exceptions import PreconditionError, PostconditionError

logger = structlog.get_logger(__name__)

F = TypeVar('F', bound=Callable[..., Any])


def _select_arguments(condition: Callable[..., bool], arguments: Dict[str, Any]) -> Dict[str, Any]:
    """Pick the bound arguments a condition asks for by name."""
    wanted = inspect.signature(condition).parameters
    return {name: arguments[name] for name in wanted if name in arguments}


def _bind(func: Callable, args: tuple, kwargs: dict) -> Dict[str, Any]:
    bound = inspect.signature(func).bind(*args, **kwargs)
    bound.apply_defaults()
    return dict(bound.arguments)


def _check_precondition(func: Callable, condition: Union[bool, Callable[..., bool]], message: str, args, kwargs) -> None:
    arguments = _bind(func, args, kwargs)

    if callable(condition):
        try:
            result = condition(**_select_arguments(condition, arguments))
        except Exception as e:
            logger.error(
                "Precondition evaluation failed",
                function=func.__name__,
                error=str(e)
            )
            raise PreconditionError(
                f"Precondition evaluation error in {func.__name__}: {str(e)}"
            )
    else:
        result = condition

    if not result:
        error_msg = message or f"Precondition failed in {func.__name__}"
        logger.warning(
            "Precondition violation",
            function=func.__name__,
            message=error_msg
        )
        raise PreconditionError(error_msg)


def _check_postcondition(func: Callable, condition: Union[bool, Callable[..., bool]], message: str, result: Any, args, kwargs) -> None:
    arguments = _bind(func, args, kwargs)

    if callable(condition):
        try:
            # The result is always the first positional argument
            params = list(inspect.signature(condition).parameters)
            selected = _select_arguments(condition, {k: v for k, v in arguments.items() if k != params[0]})
            condition_result = condition(result, **selected)
        except Exception as e:
            logger.error(
                "Postcondition evaluation failed",
                function=func.__name__,
                error=str(e)
            )
            raise PostconditionError(
                f"Postcondition evaluation error in {func.__name__}: {str(e)}"
            )
    else:
        condition_result = condition

    if not condition_result:
        error_msg = message or f"Postcondition failed in {func.__name__}"
        logger.warning(
            "Postcondition violation",
            function=func.__name__,
            message=error_msg
        )
        raise PostconditionError(error_msg)


def require(condition: Union[bool, Callable[..., bool]], message: str = "") -> Callable[[F], F]:
    """
    Precondition decorator - validates input parameters.

    Args:
        condition: Boolean expression or callable whose parameter names match
            the decorated function's parameters
        message: Custom error message for contract violation

    Returns:
        Decorated function with precondition checking

    Raises:
        PreconditionError: If precondition is not met
    """
    def decorator(func: F) -> F:

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                _check_precondition(func, condition, message, args, kwargs)
                return await func(*args, **kwargs)
            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            _check_precondition(func, condition, message, args, kwargs)
            return func(*args, **kwargs)

        return wrapper
    return decorator


def ensure(condition: Union[bool, Callable[..., bool]], message: str = "") -> Callable[[F], F]:
    """
    Postcondition decorator - validates return values.

    Args:
        condition: Boolean expression or callable taking the result first,
            followed by any of the decorated function's parameters by name
        message: Custom error message for contract violation

    Returns:
        Decorated function with postcondition checking

    Raises:
        PostconditionError: If postcondition is not met
    """
    def decorator(func: F) -> F:

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                result = await func(*args, **kwargs)
                _check_postcondition(func, condition, message, result, args, kwargs)
                return result
            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            result = func(*args, **kwargs)
            _check_postcondition(func, condition, message, result, args, kwargs)
            return result

        return wrapper
    return decorator


# Common contract conditions for the WaterMe domain

def non_empty_string(value: str) -> bool:
    """Check if string is non-empty after stripping whitespace."""
    return isinstance(value, str) and len(value.strip()) > 0
