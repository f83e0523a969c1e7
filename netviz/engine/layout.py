"""Sequencing of mutations, layout engine runs and re-rendering.

The orchestrator is the only component that talks to the layout engine and
the renderer. Every public mutation runs inside ``mutation()``, which holds a
per-instance re-entrant lock, stops the engine, lets the caller change state
and then restarts the layout once the outermost block exits.
"""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import Any, Protocol

from netviz.engine.constraints import ConstraintSet
from netviz.engine.core import GraphRegistry, Link, Node
from netviz.engine.triplets import StoreError, TripletStore

logger = logging.getLogger("netviz.layout")

# Iteration counts for the first layout run.
INITIAL_ITERATIONS = (10, 15, 20)


class LayoutState(enum.Enum):
    IDLE = "idle"
    MUTATION_PENDING = "mutation_pending"
    ENGINE_RUNNING = "engine_running"
    SETTLED = "settled"


class LayoutEngine(Protocol):
    """Boundary of the external relaxation solver."""

    def stop(self) -> None: ...

    def start(self, unconstrained: int, user_constraint: int, all_constraints: int) -> None: ...

    def set_nodes(self, nodes: list[Node]) -> None: ...

    def set_links(self, links: list[Link]) -> None: ...

    def set_constraints(self, constraints: list[Any]) -> None: ...

    def set_groups(self, groups: list[dict[str, Any]]) -> None: ...

    def on_tick(self, callback: Callable[[], None]) -> None: ...

    def on_end(self, callback: Callable[[], None]) -> None: ...

    def prepare_edge_routing(self) -> None: ...

    def route_edge(self, link: Link) -> list[tuple[float, float]]: ...

    def handle_disconnected(self, flag: bool) -> None: ...


class Renderer(Protocol):
    """Boundary of the drawing layer."""

    def render(self, registry: GraphRegistry, links: list[Link], constraints: ConstraintSet) -> None: ...

    def show_guides(self, result: Any) -> None: ...

    def clear_guides(self) -> None: ...


class NullRenderer:
    """Renderer that draws nothing."""

    def render(self, registry: GraphRegistry, links: list[Link], constraints: ConstraintSet) -> None:
        pass

    def show_guides(self, result: Any) -> None:
        pass

    def clear_guides(self) -> None:
        pass


class StaticLayoutEngine:
    """In-process engine that keeps nodes where they are.

    Records what was pushed, fires tick/end callbacks on every start and
    routes edges as straight centre-to-centre segments. The solver settings
    are only recorded.
    """

    def __init__(
        self,
        link_length: float = 150,
        avoid_overlaps: bool = True,
        flow_axis: str | None = None,
    ) -> None:
        self.link_length = link_length
        self.avoid_overlaps = avoid_overlaps
        self.flow_axis = flow_axis
        self.nodes: list[Node] = []
        self.links: list[Link] = []
        self.constraints: list[Any] = []
        self.groups: list[dict[str, Any]] = []
        self.running = False
        self.disconnected = False
        self.starts: list[tuple[int, int, int]] = []
        self._tick: list[Callable[[], None]] = []
        self._end: list[Callable[[], None]] = []

    def stop(self) -> None:
        self.running = False

    def start(self, unconstrained: int, user_constraint: int, all_constraints: int) -> None:
        self.starts.append((unconstrained, user_constraint, all_constraints))
        self.running = True
        for callback in self._tick:
            callback()
        self.running = False
        for callback in self._end:
            callback()

    def set_nodes(self, nodes: list[Node]) -> None:
        self.nodes = nodes

    def set_links(self, links: list[Link]) -> None:
        self.links = links

    def set_constraints(self, constraints: list[Any]) -> None:
        self.constraints = constraints

    def set_groups(self, groups: list[dict[str, Any]]) -> None:
        self.groups = groups

    def on_tick(self, callback: Callable[[], None]) -> None:
        self._tick.append(callback)

    def on_end(self, callback: Callable[[], None]) -> None:
        self._end.append(callback)

    def prepare_edge_routing(self) -> None:
        pass

    def route_edge(self, link: Link) -> list[tuple[float, float]]:
        return [
            (link.source.x or 0.0, link.source.y or 0.0),
            (link.target.x or 0.0, link.target.y or 0.0),
        ]

    def handle_disconnected(self, flag: bool) -> None:
        self.disconnected = flag


class LayoutOrchestrator:
    """State machine driving the layout engine after every mutation.

    States: ``IDLE -> MUTATION_PENDING -> ENGINE_RUNNING -> SETTLED -> IDLE``.

    Args:
        registry: Node/group registry
        store: Triplet store links are derived from
        constraints: Constraint collection
        engine: Layout engine (defaults to ``StaticLayoutEngine``)
        renderer: Renderer (defaults to ``NullRenderer``)
        sizer: Optional content-driven sizing hook, called with each node
        iterations: Relaxation iterations per restart
        edge_routing: Whether to run the terminal edge-routing pass
    """

    def __init__(
        self,
        registry: GraphRegistry,
        store: TripletStore,
        constraints: ConstraintSet,
        *,
        engine: LayoutEngine | None = None,
        renderer: Renderer | None = None,
        sizer: Callable[[Node], None] | None = None,
        iterations: int = 1,
        edge_routing: bool = True,
    ) -> None:
        self._registry = registry
        self._store = store
        self._constraints = constraints
        self.engine: LayoutEngine = engine if engine is not None else StaticLayoutEngine()
        self.renderer: Renderer = renderer if renderer is not None else NullRenderer()
        self._sizer = sizer
        self.iterations = iterations
        self.edge_routing = edge_routing
        self.state = LayoutState.IDLE
        self.links: list[Link] = []
        self._lock = threading.RLock()
        self._depth = 0
        self._settled: list[Callable[[], None]] = []
        self.engine.on_end(self._on_engine_end)

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def on_settled(self, callback: Callable[[], None]) -> None:
        self._settled.append(callback)

    def publish_constraints(self, constraints: list[Any]) -> None:
        """Forward the engine-format constraint list. Used as the ConstraintSet callback."""
        try:
            self.engine.set_constraints(constraints)
        except Exception:
            logger.exception("Layout engine rejected constraint update")

    @contextmanager
    def mutation(self, prevent_layout: bool = False) -> Generator[None, None, None]:
        """Serialize a state change and restart the layout afterwards.

        Nested blocks share one restart, run when the outermost block exits
        without an exception.
        """
        with self._lock:
            self._depth += 1
            if self._depth == 1:
                self.state = LayoutState.MUTATION_PENDING
                self._stop_engine()
            try:
                yield
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    self.state = LayoutState.IDLE
                raise
            self._depth -= 1
            if self._depth == 0:
                if prevent_layout:
                    self.rebuild_links()
                    self.state = LayoutState.IDLE
                else:
                    self.restart()

    def _stop_engine(self) -> None:
        try:
            self.engine.stop()
        except Exception:
            logger.exception("Failed to stop layout engine")

    def rebuild_links(self) -> list[Link]:
        """Derive the link list from the triplet store. Never patched in place."""
        try:
            triplets = self._store.get({})
        except StoreError as exc:
            logger.error("Failed to read triplets, keeping previous links: %s", exc)
            return self.links
        links = []
        for t in triplets:
            source = self._registry.get_node(t.subject)
            target = self._registry.get_node(t.object)
            if source is None or target is None:
                logger.warning(
                    "Skipping link with missing endpoint: %s -> %s", t.subject, t.object
                )
                continue
            # keep the predicate cache pointing at the current link payloads
            self._registry.set_predicate(t.predicate)
            links.append(Link(source, target, t.predicate))
        self.links = links
        return links

    def render(self) -> None:
        """Redraw without running the layout engine."""
        with self._lock:
            try:
                self.renderer.render(self._registry, self.links, self._constraints)
            except Exception:
                logger.exception("Render failed")

    def restart(self, iterations: int | None = None) -> None:
        n = self.iterations if iterations is None else iterations
        self._run((n, n, n))

    def initial_layout(self) -> None:
        with self._lock:
            self._stop_engine()
            self._run(INITIAL_ITERATIONS)

    def handle_disconnects(self) -> None:
        """Run one restart with disconnected components packed apart."""
        with self._lock:
            self._stop_engine()
            try:
                self.engine.handle_disconnected(True)
            except Exception:
                logger.exception("Layout engine failed to enable disconnected packing")
            try:
                self.restart()
            finally:
                try:
                    self.engine.handle_disconnected(False)
                except Exception:
                    logger.exception("Layout engine failed to disable disconnected packing")

    def _run(self, iterations: tuple[int, int, int]) -> None:
        with self._lock:
            self.rebuild_links()
            if self._sizer is not None:
                for node in self._registry.nodes():
                    try:
                        self._sizer(node)
                    except Exception:
                        logger.exception("Sizing failed for node %s", node.hash)
            self.state = LayoutState.ENGINE_RUNNING
            try:
                self.engine.set_nodes(self._registry.nodes())
                self.engine.set_links(self.links)
                self.engine.set_groups(self._registry.engine_groups())
                self.engine.set_constraints(self._constraints.to_engine())
                self.engine.start(*iterations)
            except Exception:
                logger.exception("Layout engine run failed, keeping current positions")
                self._on_engine_end()

    def _on_engine_end(self) -> None:
        if self.state is not LayoutState.ENGINE_RUNNING:
            return
        if self.edge_routing:
            self.route_edges()
        self.render()
        self.state = LayoutState.SETTLED
        for callback in self._settled:
            callback()
        self.state = LayoutState.IDLE

    def route_edges(self) -> None:
        try:
            self.engine.prepare_edge_routing()
        except Exception:
            logger.exception("Edge routing preparation failed")
            return
        for link in self.links:
            try:
                link.route = self.engine.route_edge(link)
            except Exception:
                logger.exception(
                    "Edge routing failed for %s -> %s", link.source.hash, link.target.hash
                )
