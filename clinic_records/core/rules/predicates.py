"""
Tagged predicates for conditional field rules.

Predicates form a closed set of declarative conditions over the
discriminator and raw draft values. They are data, not code: rule sets
loaded from YAML deserialize into these models, so nothing is evaluated
as a free-form expression. A predicate never looks at another rule's
outcome.
"""

from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as ModelValidationError


def _norm(value: Any) -> str:
    return "" if value is None else str(value).strip().lower()


class Always(BaseModel):
    kind: Literal["always"] = "always"

    def holds(self, discriminator: str | None, data: Mapping[str, Any]) -> bool:
        return True

    class Config:
        frozen = True


class Never(BaseModel):
    kind: Literal["never"] = "never"

    def holds(self, discriminator: str | None, data: Mapping[str, Any]) -> bool:
        return False

    class Config:
        frozen = True


class DiscriminatorIn(BaseModel):
    """Holds when the draft's discriminator is one of ``values``."""

    kind: Literal["discriminator_in"] = "discriminator_in"
    values: tuple[str, ...] = Field(..., min_length=1)

    def holds(self, discriminator: str | None, data: Mapping[str, Any]) -> bool:
        return discriminator is not None and discriminator in self.values

    class Config:
        frozen = True


class FieldEquals(BaseModel):
    """Holds when ``field`` equals ``value`` (trimmed, case-insensitive)."""

    kind: Literal["field_equals"] = "field_equals"
    field: str = Field(..., min_length=1)
    value: str

    def holds(self, discriminator: str | None, data: Mapping[str, Any]) -> bool:
        return _norm(data.get(self.field)) == _norm(self.value)

    class Config:
        frozen = True


class FieldPresent(BaseModel):
    """Holds when ``field`` has a non-blank value."""

    kind: Literal["field_present"] = "field_present"
    field: str = Field(..., min_length=1)

    def holds(self, discriminator: str | None, data: Mapping[str, Any]) -> bool:
        return _norm(data.get(self.field)) != ""

    class Config:
        frozen = True


class AllOf(BaseModel):
    kind: Literal["all_of"] = "all_of"
    predicates: tuple["Predicate", ...] = Field(..., min_length=1)

    def holds(self, discriminator: str | None, data: Mapping[str, Any]) -> bool:
        return all(p.holds(discriminator, data) for p in self.predicates)

    class Config:
        frozen = True


class AnyOf(BaseModel):
    kind: Literal["any_of"] = "any_of"
    predicates: tuple["Predicate", ...] = Field(..., min_length=1)

    def holds(self, discriminator: str | None, data: Mapping[str, Any]) -> bool:
        return any(p.holds(discriminator, data) for p in self.predicates)

    class Config:
        frozen = True


class Not(BaseModel):
    kind: Literal["not"] = "not"
    predicate: "Predicate"

    def holds(self, discriminator: str | None, data: Mapping[str, Any]) -> bool:
        return not self.predicate.holds(discriminator, data)

    class Config:
        frozen = True


Predicate = Annotated[
    Union[Always, Never, DiscriminatorIn, FieldEquals, FieldPresent, AllOf, AnyOf, Not],
    Field(discriminator="kind"),
]

AllOf.model_rebuild()
AnyOf.model_rebuild()
Not.model_rebuild()

_PREDICATE_ADAPTER = TypeAdapter(Predicate)


def parse_predicate(raw: Any) -> Any:
    """
    Build a predicate from its mapping form, e.g.
    ``{"kind": "discriminator_in", "values": ["poornanga"]}``.

    Raises:
        ValueError: If the mapping does not describe a known predicate
    """
    try:
        return _PREDICATE_ADAPTER.validate_python(raw)
    except ModelValidationError as e:
        raise ValueError(f"Invalid predicate {raw!r}: {e}") from e


# Shorthand constructors used by the builder and the catalog

def always() -> Always:
    return Always()


def never() -> Never:
    return Never()


def discriminator_in(*values: str) -> DiscriminatorIn:
    return DiscriminatorIn(values=tuple(values))


def field_equals(field: str, value: str) -> FieldEquals:
    return FieldEquals(field=field, value=value)


def field_present(field: str) -> FieldPresent:
    return FieldPresent(field=field)


def all_of(*predicates) -> AllOf:
    return AllOf(predicates=tuple(predicates))


def any_of(*predicates) -> AnyOf:
    return AnyOf(predicates=tuple(predicates))


def negate(predicate) -> Not:
    return Not(predicate=predicate)
