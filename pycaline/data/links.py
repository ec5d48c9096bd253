"""Road network to line-source links.

A :class:`LinkSegmenter` binds each link attribute (traffic volume,
emission factor, width) to a constant, a named field, or an arithmetic
expression over named fields such as ``"AADT / 24"``. Expressions are
parsed and checked once at construction; segmenting a network then
evaluates them once per polyline and splits every polyline into straight
links that inherit the evaluated values.
"""

from __future__ import annotations

import ast
import logging
import math
import operator
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence, Union

from pycaline.core.models import ConfigurationError, Link, ValidationError

logger = logging.getLogger(__name__)

_BINARY_OPS: dict[type, Callable[[float, float], float]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Pow: operator.pow,
}

_UNARY_OPS: dict[type, Callable[[float], float]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


@dataclass(frozen=True)
class Polyline:
    """One road centreline with its attached attribute data.

    Attributes
    ----------
    coords : sequence of (x, y)
        Vertices (m) in a projected planar system.
    attributes : mapping
        Named values the link attribute bindings are evaluated against.
    """
    coords: Sequence[tuple[float, float]]
    attributes: Mapping[str, Any] = field(default_factory=dict)


class FieldBinding:
    """A numeric link attribute resolved from polyline attributes.

    Parameters
    ----------
    spec : float or str
        A number, a field name, or an arithmetic expression over field
        names using ``+ - * / **``, parentheses and numeric literals.
    name : str
        Attribute being bound (used in error messages).

    Raises
    ------
    ConfigurationError
        If *spec* is not a number and does not parse as a supported
        expression.
    """

    def __init__(self, spec: Union[float, int, str], name: str) -> None:
        self.name = name
        self.spec = spec
        if isinstance(spec, (int, float)) and not isinstance(spec, bool):
            self._tree = ast.Expression(body=ast.Constant(value=float(spec)))
        elif isinstance(spec, str):
            try:
                self._tree = ast.parse(spec.strip(), mode="eval")
            except SyntaxError as exc:
                raise ConfigurationError(
                    f"Cannot parse {name} expression '{spec}': {exc.msg}"
                ) from None
        else:
            raise ConfigurationError(
                f"{name} must be a number or an expression, got {type(spec).__name__}"
            )
        self.fields = frozenset(self._collect_fields(self._tree.body))

    def _collect_fields(self, node: ast.AST) -> set[str]:
        if isinstance(node, ast.Constant):
            if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
                raise ConfigurationError(
                    f"{self.name} expression '{self.spec}' contains a non-numeric literal"
                )
            return set()
        if isinstance(node, ast.Name):
            return {node.id}
        if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
            return self._collect_fields(node.left) | self._collect_fields(node.right)
        if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
            return self._collect_fields(node.operand)
        raise ConfigurationError(
            f"{self.name} expression '{self.spec}' uses unsupported syntax "
            f"({type(node).__name__})"
        )

    def evaluate(self, attributes: Mapping[str, Any], index: int) -> float:
        """Evaluate against one polyline's attributes.

        Raises
        ------
        ValidationError
            If a referenced field is missing or non-numeric, or the result
            is negative, non-finite or undefined.
        """
        missing = sorted(f for f in self.fields if f not in attributes)
        if missing:
            raise ValidationError(
                f"{self.name} references undefined field(s) {', '.join(missing)}",
                index=index, field=self.name,
            )
        try:
            value = self._eval(self._tree.body, attributes)
        except (TypeError, ValueError, ZeroDivisionError, OverflowError) as exc:
            raise ValidationError(
                f"Cannot evaluate {self.name} '{self.spec}': {exc}",
                index=index, field=self.name,
            ) from None
        if not math.isfinite(value) or value < 0.0:
            raise ValidationError(
                f"{self.name} must be finite and >= 0, got {value}",
                index=index, field=self.name,
            )
        return value

    def _eval(self, node: ast.AST, attributes: Mapping[str, Any]) -> float:
        if isinstance(node, ast.Constant):
            return float(node.value)
        if isinstance(node, ast.Name):
            return float(attributes[node.id])
        if isinstance(node, ast.BinOp):
            op = _BINARY_OPS[type(node.op)]
            return op(self._eval(node.left, attributes), self._eval(node.right, attributes))
        op = _UNARY_OPS[type(node.op)]
        return op(self._eval(node.operand, attributes))

    def __repr__(self) -> str:
        return f"FieldBinding({self.name}={self.spec!r})"


class LinkSegmenter:
    """Turns polylines into straight, uniform-attribute links.

    Parameters
    ----------
    volume : float or str
        Traffic volume (vehicles/hour) binding, e.g. ``"AADT / 24"``.
    emission_factor : float or str
        Emission factor (g per vehicle-mile) binding.
    width : float or str
        Roadway width (m) binding.
    name : str, optional
        Field copied into ``Link.name``; segments are suffixed ``#k``.
    """

    def __init__(
        self,
        volume: Union[float, str],
        emission_factor: Union[float, str],
        width: Union[float, str],
        name: str | None = None,
    ) -> None:
        self.volume = FieldBinding(volume, "volume")
        self.emission_factor = FieldBinding(emission_factor, "emission_factor")
        self.width = FieldBinding(width, "width")
        self.name_field = name

    def segment(self, polylines: Iterable[Polyline]) -> list[Link]:
        """Split every polyline into links.

        Returns
        -------
        list[Link]
            Polyline order, then segment order within each polyline.

        Raises
        ------
        ValidationError
            On undefined fields, invalid attribute values, polylines with
            fewer than two vertices, or zero-length segments.
        """
        links: list[Link] = []
        n_polylines = 0
        for i, poly in enumerate(polylines):
            n_polylines += 1
            attrs = poly.attributes
            volume = self.volume.evaluate(attrs, i)
            emission_factor = self.emission_factor.evaluate(attrs, i)
            width = self.width.evaluate(attrs, i)
            if width <= 0.0:
                raise ValidationError(
                    f"width must be > 0, got {width}", index=i, field="width",
                )
            base_name = None
            if self.name_field is not None:
                if self.name_field not in attrs:
                    raise ValidationError(
                        f"name references undefined field {self.name_field}",
                        index=i, field="name",
                    )
                base_name = str(attrs[self.name_field])

            coords = [(float(x), float(y)) for x, y in poly.coords]
            if len(coords) < 2:
                raise ValidationError(
                    f"polyline has {len(coords)} vertices, need at least 2",
                    index=i, field="coords",
                )
            for k, ((x1, y1), (x2, y2)) in enumerate(zip(coords[:-1], coords[1:])):
                if not all(math.isfinite(c) for c in (x1, y1, x2, y2)):
                    raise ValidationError(
                        f"segment {k} has a non-finite coordinate", index=i, field="coords",
                    )
                if math.hypot(x2 - x1, y2 - y1) == 0.0:
                    raise ValidationError(
                        f"segment {k} has zero length", index=i, field="coords",
                    )
                links.append(Link(
                    x1=x1, y1=y1, x2=x2, y2=y2,
                    width=width,
                    volume=volume,
                    emission_factor=emission_factor,
                    name=f"{base_name}#{k}" if base_name is not None else None,
                ))

        logger.debug("Segmented %d polylines into %d links", n_polylines, len(links))
        return links
