"""Per-field results and the combinator that assembles them into reports."""

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Mapping, Optional, TypeVar

from .errors import WrtProbeError

# Prefix of an inline error placed in a report field. Consumers look for it
# to render the field as a failure.
ERROR_PREFIX = "Erro: "

K = TypeVar("K")


@dataclass(frozen=True)
class FieldResult:
    """
    Outcome of one field of a probe group.

    Either ``value`` holds the field text or ``error`` holds a message.
    ``placeholder`` marks a value that is a fallback notice rather than
    real command output.
    """

    value: str = ""
    error: Optional[str] = None
    placeholder: bool = False

    @classmethod
    def success(cls, value: str, placeholder: bool = False) -> "FieldResult":
        return cls(value=value, placeholder=placeholder)

    @classmethod
    def failure(cls, message: str) -> "FieldResult":
        return cls(error=message)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def parseable(self) -> bool:
        """True if the value is real command output that parsers may read."""
        return self.ok and not self.placeholder

    def render(self) -> str:
        if self.error is not None:
            return f"{ERROR_PREFIX}{self.error}"
        return self.value


def is_error_text(value: object) -> bool:
    """Return True if a rendered field holds an inline error."""
    return isinstance(value, str) and value.startswith(ERROR_PREFIX)


def capture(fn: Callable[[], FieldResult]) -> FieldResult:
    """Run one field producer, turning wrtprobe errors into a failed field."""
    try:
        return fn()
    except WrtProbeError as e:
        return FieldResult.failure(str(e))


def collect_fields(
    names: Iterable[K], produce: Callable[[K], FieldResult]
) -> Dict[K, FieldResult]:
    """
    Produce every named field, one after another.

    A failing field never stops the remaining ones.

    Args:
        names: Field keys, in order
        produce: Builds the FieldResult for one key

    Returns:
        Mapping with an entry for every key
    """
    return {name: capture(lambda name=name: produce(name)) for name in names}


def assemble(fields: Mapping[str, FieldResult]) -> Dict[str, str]:
    """Render a batch of field results into the fixed-shape text mapping."""
    return {name: result.render() for name, result in fields.items()}
