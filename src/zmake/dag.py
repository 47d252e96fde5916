# dag.py
from __future__ import annotations

from typing import Dict, Iterable, List, Set, Tuple

from .errors import ConfigError, ResolutionError
from .model import Block, Config, OSBlock

WHITE, GRAY, BLACK = 0, 1, 2


def build_graph(blocks: Iterable[Block]) -> Tuple[Dict[str, Block], Dict[str, List[str]]]:
    """
    Build the invocation graph from Block objects.

    Edge a -> b means block `a` has a step invoking block `b`.

    Raises:
      ConfigError on duplicate block names.
      ResolutionError on a reference to a block that does not exist.
    """
    blocks = list(blocks)
    names = [b.name for b in blocks]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ConfigError(f"Duplicate block names found: {dupes}")

    by_name = {b.name: b for b in blocks}
    adj: Dict[str, List[str]] = {}

    for block in blocks:
        adj[block.name] = []
        for target in block.invoked():
            if target not in by_name:
                raise ResolutionError(
                    f"Block '{block.name}' invokes missing block '{target}'. "
                    f"Known blocks: {sorted(by_name)}"
                )
            adj[block.name].append(target)

    return by_name, adj


def find_cycle(adj: Dict[str, List[str]]) -> List[str] | None:
    """
    Depth-first search with three-color marking.

    Returns the first cycle found as a list of names (first == last),
    or None if the graph is acyclic.
    """
    color: Dict[str, int] = {n: WHITE for n in adj}
    parent: Dict[str, str] = {}

    for root in sorted(adj):
        if color[root] != WHITE:
            continue
        # iterative, so deep chains don't hit the recursion limit
        stack: List[Tuple[str, int]] = [(root, 0)]
        color[root] = GRAY
        while stack:
            node, idx = stack[-1]
            children = adj.get(node, [])
            if idx == len(children):
                color[node] = BLACK
                stack.pop()
                continue
            stack[-1] = (node, idx + 1)
            child = children[idx]
            if color[child] == GRAY:
                cycle = [child, node]
                cur = node
                while cur != child:
                    cur = parent[cur]
                    cycle.append(cur)
                cycle.reverse()
                return cycle
            if color[child] == WHITE:
                color[child] = GRAY
                parent[child] = node
                stack.append((child, 0))
    return None


class BlockRegistry:
    """
    Blocks indexed by name, with the invocation graph validated once.

    Construction fails before any step executes if a block is duplicated,
    a reference dangles or the graph has a cycle, so lookups never fail
    for names that appear in validated steps.
    """

    def __init__(self, blocks: Iterable[Block]):
        self._blocks, self._adj = build_graph(blocks)
        cycle = find_cycle(self._adj)
        if cycle:
            raise ResolutionError(f"Block invocation cycle detected: {' -> '.join(cycle)}")

    @classmethod
    def from_config(cls, config: Config) -> "BlockRegistry":
        """Builds the registry and checks that section steps only invoke known blocks."""
        registry = cls(config.blocks)
        for section in config.sections.values():
            for os_name, body in section.platforms.items():
                for target in body.invoked():
                    if target not in registry:
                        raise ResolutionError(
                            f"Section '{section.name}' ({os_name}) invokes missing block '{target}'. "
                            f"Known blocks: {sorted(registry.names())}"
                        )
        return registry

    def __contains__(self, name: str) -> bool:
        return name in self._blocks

    def names(self) -> Set[str]:
        return set(self._blocks)

    def get(self, name: str) -> Block:
        try:
            return self._blocks[name]
        except KeyError:
            raise ResolutionError(f"Unknown block '{name}'") from None

    def lookup(self, name: str, os_name: str) -> OSBlock | None:
        """Steps and local config of `name` for the given OS (None if the block skips that OS)."""
        return self.get(name).for_os(os_name)
