"""Dependency-tracked memoization for chart state.

Three node types make up the graph:

* ``Observable`` holds a root value. Setting it to a different value marks every
  dependent stale.
* ``Computed`` wraps a pure function. It remembers which nodes it read during its
  last evaluation and recomputes on the next read only if one of them was
  invalidated since.
* ``Reaction`` tracks an expression and runs a side effect when the value of that
  expression changes.

Invalidation is pushed along observer lists, evaluation is pulled on read. Setters
are batched with ``transaction()`` / ``@action`` so that reactions run once, after
the outermost batch finishes.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Generic, Iterator, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Any])

MAX_REACTION_ITERATIONS = 100

_SCALAR_TYPES = (str, int, float, bool, bytes)
_UNSET = object()


def default_equals(a: Any, b: Any) -> bool:
    """Reference equality, plus value equality for plain scalars."""
    if a is b:
        return True
    if type(a) is type(b) and isinstance(a, _SCALAR_TYPES):
        return a == b
    return False


def structural_equals(a: Any, b: Any) -> bool:
    if a is b:
        return True
    if type(a) is not type(b):
        return False
    return bool(a == b)


class _GraphState:
    def __init__(self) -> None:
        self.tracking: list[_Derivation] = []
        self.batch_depth = 0
        self.pending: list[Reaction] = []
        self.running_reactions = False


_state = _GraphState()


def _report_read(node: _Node) -> None:
    if _state.tracking:
        _state.tracking[-1]._collect(node)


class _Node:
    name: str

    def __init__(self, name: str) -> None:
        self.name = name
        self._observers: set[_Derivation] = set()

    def _add_observer(self, observer: _Derivation) -> None:
        self._observers.add(observer)

    def _remove_observer(self, observer: _Derivation) -> None:
        self._observers.discard(observer)

    def _invalidate_observers(self) -> None:
        for observer in list(self._observers):
            observer._mark_stale()

    @property
    def observer_count(self) -> int:
        return len(self._observers)


class _Derivation(_Node):
    def __init__(self, name: str) -> None:
        super().__init__(name)
        self._dependencies: set[_Node] = set()
        self._collected: set[_Node] | None = None

    def _collect(self, node: _Node) -> None:
        if self._collected is not None:
            self._collected.add(node)

    def _track(self, fn: Callable[[], T]) -> T:
        self._collected = set()
        _state.tracking.append(self)
        try:
            return fn()
        finally:
            _state.tracking.pop()
            collected = self._collected
            self._collected = None
            for dependency in self._dependencies - collected:
                dependency._remove_observer(self)
            for dependency in collected - self._dependencies:
                dependency._add_observer(self)
            self._dependencies = collected

    def _clear_dependencies(self) -> None:
        for dependency in self._dependencies:
            dependency._remove_observer(self)
        self._dependencies = set()

    def _mark_stale(self) -> None:
        raise NotImplementedError


class Observable(_Node, Generic[T]):
    def __init__(
        self,
        value: T,
        name: str = "observable",
        equals: Callable[[Any, Any], bool] | None = None,
    ) -> None:
        super().__init__(name)
        self._value = value
        self._equals = equals or default_equals

    def get(self) -> T:
        _report_read(self)
        return self._value

    def peek(self) -> T:
        """Read without registering a dependency."""
        return self._value

    def set(self, value: T) -> None:
        _ensure_mutable(self)
        if self._equals(self._value, value):
            return
        self._value = value
        self._notify()

    def touch(self) -> None:
        """Invalidate dependents after the held value was mutated in place."""
        _ensure_mutable(self)
        self._notify()

    def _notify(self) -> None:
        with transaction():
            self._invalidate_observers()


class Computed(_Derivation, Generic[T]):
    def __init__(
        self,
        fn: Callable[[], T],
        name: str = "computed",
        equals: Callable[[Any, Any], bool] | None = None,
    ) -> None:
        super().__init__(name)
        self._fn = fn
        self._equals = equals or default_equals
        self._value: Any = _UNSET
        self._stale = True
        self._computing = False
        self._error: Exception | None = None
        self.recompute_count = 0

    @property
    def is_stale(self) -> bool:
        return self._stale

    def get(self) -> T:
        _report_read(self)
        if self._stale:
            self._recompute()
        if self._error is not None:
            raise self._error
        return self._value

    def _recompute(self) -> None:
        if self._computing:
            raise RuntimeError(f"Cycle detected while computing {self.name}")
        self._computing = True
        try:
            value = self._track(self._fn)
        except Exception as exc:
            # A failed run counts as fresh so the next invalidation reaches observers.
            self._error = exc
            self._stale = False
            raise
        finally:
            self._computing = False
        self._error = None
        self.recompute_count += 1
        if self._value is _UNSET or not self._equals(self._value, value):
            self._value = value
        self._stale = False

    def _mark_stale(self) -> None:
        if self._stale:
            return
        self._stale = True
        self._invalidate_observers()


class Reaction(_Derivation):
    def __init__(
        self,
        expression: Callable[[], T],
        effect: Callable[[T, T | None], None],
        name: str = "reaction",
        fire_immediately: bool = False,
        equals: Callable[[Any, Any], bool] | None = None,
    ) -> None:
        super().__init__(name)
        self._expression = expression
        self._effect = effect
        self._fire_immediately = fire_immediately
        self._equals = equals or default_equals
        self._value: Any = _UNSET
        self._scheduled = False
        self.disposed = False
        self.run_count = 0

    def start(self) -> None:
        self._run()

    def dispose(self) -> None:
        self.disposed = True
        self._clear_dependencies()

    def _mark_stale(self) -> None:
        if self.disposed or self._scheduled:
            return
        self._scheduled = True
        _state.pending.append(self)

    def _run(self) -> None:
        self._scheduled = False
        if self.disposed:
            return
        value = self._track(self._expression)
        previous = self._value
        self._value = value
        if previous is _UNSET:
            if not self._fire_immediately:
                return
            previous = None
        elif self._equals(previous, value):
            return
        self.run_count += 1
        LOGGER.debug("Reaction %s fired (run %d)", self.name, self.run_count)
        with transaction():
            self._effect(value, previous)


def _ensure_mutable(node: Observable[Any]) -> None:
    if _state.tracking:
        raise RuntimeError(
            f"Cannot modify {node.name} while evaluating {_state.tracking[-1].name}; "
            "derived values must not change observable state"
        )


def _run_pending_reactions() -> None:
    if _state.running_reactions:
        return
    _state.running_reactions = True
    try:
        iterations = 0
        while _state.pending:
            iterations += 1
            if iterations > MAX_REACTION_ITERATIONS:
                for dropped in _state.pending:
                    dropped._scheduled = False
                _state.pending.clear()
                raise RuntimeError(
                    "Reactions did not settle after "
                    f"{MAX_REACTION_ITERATIONS} iterations; probably a cycle"
                )
            batch = list(_state.pending)
            _state.pending.clear()
            for index, pending in enumerate(batch):
                try:
                    pending._run()
                except Exception:
                    # Requeue the rest so they run on the next batch.
                    _state.pending.extend(batch[index + 1 :])
                    raise
    finally:
        _state.running_reactions = False


@contextmanager
def transaction() -> Iterator[None]:
    _state.batch_depth += 1
    try:
        yield
    finally:
        _state.batch_depth -= 1
        if _state.batch_depth == 0:
            _run_pending_reactions()


def action(fn: F) -> F:
    """Run ``fn`` as one batch: reactions fire after it returns."""

    @wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        with transaction():
            return fn(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


def reaction(
    expression: Callable[[], T],
    effect: Callable[[T, T | None], None],
    *,
    fire_immediately: bool = False,
    equals: Callable[[Any, Any], bool] | None = None,
    name: str = "reaction",
) -> Callable[[], None]:
    """Start a reaction and return its disposer."""
    node = Reaction(
        expression,
        effect,
        name=name,
        fire_immediately=fire_immediately,
        equals=equals,
    )
    with transaction():
        node.start()
    return node.dispose


class observable(Generic[T]):
    """Class attribute backed by a per-instance ``Observable``."""

    def __init__(
        self,
        default: T | None = None,
        *,
        default_factory: Callable[[], T] | None = None,
        equals: Callable[[Any, Any], bool] | None = None,
    ) -> None:
        self.default = default
        self.default_factory = default_factory
        self.equals = equals
        self.name = ""
        self.attr = ""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name
        self.attr = f"_observable_{name}"

    def box(self, instance: Any) -> Observable[T]:
        node = instance.__dict__.get(self.attr)
        if node is None:
            initial = self.default_factory() if self.default_factory else self.default
            node = Observable(
                initial,
                name=f"{type(instance).__name__}.{self.name}",
                equals=self.equals,
            )
            instance.__dict__[self.attr] = node
        return node

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        return self.box(instance).get()

    def __set__(self, instance: Any, value: T) -> None:
        self.box(instance).set(value)


class computed:
    """Memoized property: ``@computed`` or ``@computed(struct=True)``.

    With ``struct=True`` a recomputation that yields an equal value keeps the
    previous object, so reactions and ``is`` comparisons downstream see no change.
    """

    def __init__(self, fget: Callable[[Any], Any] | None = None, *, struct: bool = False) -> None:
        self.fget = fget
        self.fset: Callable[[Any, Any], None] | None = None
        self.struct = struct
        self.name = fget.__name__ if fget else ""
        self.attr = f"_computed_{self.name}"
        self.__doc__ = getattr(fget, "__doc__", None)

    def __call__(self, fget: Callable[[Any], Any]) -> computed:
        self.fget = fget
        self.name = fget.__name__
        self.attr = f"_computed_{self.name}"
        self.__doc__ = fget.__doc__
        return self

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name
        self.attr = f"_computed_{name}"

    def setter(self, fset: Callable[[Any, Any], None]) -> computed:
        self.fset = fset
        return self

    def node(self, instance: Any) -> Computed[Any]:
        node = instance.__dict__.get(self.attr)
        if node is None:
            fget = self.fget
            assert fget is not None
            node = Computed(
                lambda: fget(instance),
                name=f"{type(instance).__name__}.{self.name}",
                equals=structural_equals if self.struct else None,
            )
            instance.__dict__[self.attr] = node
        return node

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        return self.node(instance).get()

    def __set__(self, instance: Any, value: Any) -> None:
        if self.fset is None:
            raise AttributeError(f"computed value {self.name!r} is read-only")
        self.fset(instance, value)


def computed_node(instance: Any, name: str) -> Computed[Any]:
    """Return the ``Computed`` behind ``instance.<name>`` (for inspection and tests)."""
    descriptor = getattr(type(instance), name)
    if not isinstance(descriptor, computed):
        raise TypeError(f"{type(instance).__name__}.{name} is not a computed value")
    return descriptor.node(instance)


def observable_box(instance: Any, name: str) -> Observable[Any]:
    descriptor = getattr(type(instance), name)
    if not isinstance(descriptor, observable):
        raise TypeError(f"{type(instance).__name__}.{name} is not an observable value")
    return descriptor.box(instance)
