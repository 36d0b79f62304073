from typing import Any, Callable, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from servicegraph.domain.enums import Lifetime


class Binding(BaseModel):
    """Value object representing a registered binding.

    Attributes:
        abstract: The identifier being bound.
        concrete: Factory receiving the container (and optionally the parameter
            overrides) and returning an instance.
        lifetime: How long the instance should live.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    abstract: Any = Field(..., description="The abstract identifier being bound.")
    concrete: Callable[..., Any] = Field(..., description="The factory producing the instance.")
    lifetime: Lifetime = Field(default=Lifetime.TRANSIENT, description="The lifetime of the binding.")

    @property
    def shared(self) -> bool:
        """Whether resolved instances are cached."""
        return self.lifetime.shared


class ParameterRecipe(BaseModel):
    """Pre-computed reflection data for one parameter of a constructor or callable.

    Attributes:
        name: Parameter name.
        position: Zero-based position in the signature (``self`` excluded).
        declaring_class: Class (or callable) owning the signature.
        class_type: Resolvable class from the annotation, or None for primitives.
        has_type: Whether the parameter carries an annotation.
        has_default: Whether a default value is declared.
        default: The declared default value.
        is_variadic: ``*args`` style parameter.
        is_var_keyword: ``**kwargs`` style parameter.
        is_keyword_only: Parameter declared after ``*`` or ``*args``.
        is_optional: Whether the caller may omit the parameter.
        allows_null: Whether ``None`` satisfies the annotation.
        attributes: ``Annotated`` metadata attached to the annotation.
        contextual_attribute: First metadata entry that drives contextual resolution.
        annotation: Readable form of the annotation, used in error messages.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    position: int
    declaring_class: Any = None
    class_type: Optional[type] = None
    has_type: bool = False
    has_default: bool = False
    default: Any = None
    is_variadic: bool = False
    is_var_keyword: bool = False
    is_keyword_only: bool = False
    is_optional: bool = False
    allows_null: bool = False
    attributes: Tuple[Any, ...] = ()
    contextual_attribute: Optional[Any] = None
    annotation: str = ""

    def __str__(self) -> str:
        prefix = "*" if self.is_variadic else "**" if self.is_var_keyword else ""
        text = f"{prefix}{self.name}"
        if self.annotation:
            text += f": {self.annotation}"
        if self.has_default:
            text += f" = {self.default!r}"
        return text


class ClassRecipe(BaseModel):
    """Pre-computed reflection data for a concrete class.

    Attributes:
        type_name: Readable class name.
        target: The class object, or None when the class does not exist.
        exists: Whether the class could be located.
        instantiable: False for abstract classes, protocols and non-classes.
        has_constructor: Whether the class defines its own ``__init__``.
        is_self_building: Whether the class builds itself through ``new_instance``.
        attributes: Container attributes declared on the class.
        parameters: Constructor parameter recipes, ``self`` excluded.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    type_name: str
    target: Optional[type] = None
    exists: bool = True
    instantiable: bool = True
    has_constructor: bool = False
    is_self_building: bool = False
    attributes: Tuple[Any, ...] = ()
    parameters: Tuple[ParameterRecipe, ...] = ()
