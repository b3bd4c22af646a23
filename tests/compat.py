from __future__ import annotations

import functools
import re
import types
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any


# pytest's own parametrize doesn't work on unittest.TestCase methods, so the
# test classes use these two helpers instead: ``parametrize`` records the
# cases on the method and ``parametrize_class`` expands them into one
# method per case.
def parametrize(field_names: tuple[str] | list[str] | str, field_values: list[Any] | Any) -> Callable[..., Any]:
    if not isinstance(field_names, (tuple, list)):
        field_names = (field_names,)
        field_values = [(val,) for val in field_values]

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        func.__dict__["param_names"] = field_names
        func.__dict__["param_values"] = field_values
        return func

    return decorator


class ParametrizingMetaclass(type):
    IDENTIFIER_RE = re.compile("[^A-Za-z0-9]")

    @classmethod
    def case_name(klass, base: str, values: tuple[Any, ...]) -> str:
        parts = []
        for value in values:
            # Test cases loaded from YAML carry their own name.
            if isinstance(value, dict) and "name" in value:
                value = value["name"]
            parts.append(klass.IDENTIFIER_RE.sub("", repr(value)))
        return base + "__" + "_".join(parts)

    def __new__(klass, name: str, bases: tuple[type, ...], attrs: types.MappingProxyType[str, Any]) -> type:
        new_attrs = dict(attrs)
        for attr_name, attr in attrs.items():
            if not isinstance(attr, types.FunctionType):
                continue

            param_names = attr.__dict__.pop("param_names", None)
            param_values = attr.__dict__.pop("param_values", None)
            if param_names is None or param_values is None:
                continue

            for i, values in enumerate(param_values):
                assert len(param_names) == len(values)
                new_name = klass.case_name(attr.__name__, values)
                # Different values can clean up to the same identifier.
                if new_name in new_attrs:
                    new_name += "_%d" % i
                new_attrs[new_name] = klass.bind(attr, new_name, dict(zip(param_names, values)))

            del new_attrs[attr_name]

        return type.__new__(klass, name, bases, new_attrs)

    @staticmethod
    def bind(func: types.FunctionType, new_name: str, kwargs: dict[str, Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        def new_func(self: Any) -> Any:
            return func(self, **kwargs)

        new_func.__name__ = new_name
        return new_func


def parametrize_class(klass: type) -> ParametrizingMetaclass:
    return ParametrizingMetaclass(klass.__name__, klass.__bases__, dict(klass.__dict__))
