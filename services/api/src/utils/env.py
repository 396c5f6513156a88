"""Environment variable specs: declare once, validate at startup, parse on read."""

import os
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from pydantic import ValidationError, create_model

from . import log

logger = log.get_logger(__name__)


@dataclass(frozen=True)
class EnvVarSpec:
    id: str
    default: Optional[str] = None
    parse: Callable[[str], Any] = str
    is_optional: bool = False
    is_secret: bool = False
    type: Tuple[Any, Any] = (str, ...)


def raw(spec: EnvVarSpec) -> Optional[str]:
    value = os.environ.get(spec.id)
    if value is None or value == "":
        return spec.default
    return value


def parse(spec: EnvVarSpec) -> Any:
    value = raw(spec)
    if value is None:
        return None
    return spec.parse(value)


def _display(spec: EnvVarSpec, value: Any) -> str:
    if spec.is_secret and value is not None:
        return "***"
    return repr(value)


def validate(specs: List[EnvVarSpec]) -> bool:
    """Parse every spec and type-check the results. Logs each problem found."""
    ok = True
    values = {}
    fields = {}
    for spec in specs:
        value = raw(spec)
        if value is None:
            if not spec.is_optional:
                logger.error(f"Missing required environment variable {spec.id}")
                ok = False
            continue
        try:
            values[spec.id] = spec.parse(value)
        except (TypeError, ValueError) as e:
            logger.error(f"Cannot parse {spec.id}={_display(spec, value)}: {e}")
            ok = False
            continue
        fields[spec.id] = spec.type

    if fields:
        model = create_model("EnvVars", **fields)
        try:
            model(**values)
        except ValidationError as e:
            for error in e.errors():
                logger.error(f"Invalid environment variable {error['loc'][0]}: {error['msg']}")
            ok = False
    return ok
