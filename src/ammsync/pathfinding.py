import enum
import time
from collections.abc import Iterable, Iterator

from eth_typing import ChecksumAddress
from networkx import MultiGraph

from ammsync.exceptions import AmmSyncValueError
from ammsync.functions import get_checksum_address
from ammsync.logging import logger
from ammsync.uniswap_v2.pool import UniswapV2Pool

type Path = list[UniswapV2Pool]
type TokenAdjacency = dict[ChecksumAddress, list[UniswapV2Pool]]


class Direction(enum.Enum):
    FORWARD = enum.auto()
    FORWARD_AND_REVERSE = enum.auto()


def build_token_graph(pools: Iterable[UniswapV2Pool]) -> MultiGraph:
    """
    Build an undirected graph with a node for each token and an edge for each pool, keyed by the
    pool address. Parallel pools for the same token pair are held as separate edges.
    """

    graph = MultiGraph()
    graph.add_edges_from((*pool.tokens, pool.address, {"pool": pool}) for pool in pools)
    return graph


def build_adjacency(pools: Iterable[UniswapV2Pool]) -> TokenAdjacency:
    """
    Index each pool under both of its tokens. The pools for each token are grouped by the token on
    the other side, in the order they were provided.
    """

    graph = build_token_graph(pools)
    return {
        token: [pool for _, _, pool in graph.edges(token, data="pool")] for token in graph.nodes
    }


def path_identifier(path: Path) -> str:
    """
    The identifier shared by all paths built from the same set of pools, regardless of order.
    """

    return ",".join(sorted(pool.address for pool in path))


def find_paths(
    start_token: str,
    adjacency: TokenAdjacency,
    max_length: int,
    min_length: int | None = None,
    direction: Direction = Direction.FORWARD,
) -> list[Path]:
    """
    Find cycles that begin and end at the start token, using a depth-first search strategy. Each
    path contains between `min_length` (if given) and `max_length` pools, and never uses the same
    pool twice.

    Paths built from the same set of pools are duplicates, and only the first discovered is kept.
    Since swap results depend on the order that pools are traversed, `Direction.FORWARD_AND_REVERSE`
    will also return the reversed traversal of each unique path, immediately after it.

    The search assumes this strategy:
        Beginning at the start token T_s, perform successive swaps through a sequence of pools.
        Each pool swaps the token received from the previous pool for its other token. The final
        swap yields T_s.

        POOL    TOKEN PAIR
        0       T_s  - T_f0
        1       T_f0 - T_f1
        2       T_f1 - T_s
    """

    if max_length < 1:
        raise AmmSyncValueError(message=f"Maximum path length must be at least 1, got {max_length}")
    if min_length is not None and min_length > max_length:
        raise AmmSyncValueError(
            message=f"Minimum path length {min_length} exceeds maximum path length {max_length}"
        )

    start_token = get_checksum_address(start_token)
    min_depth = max(1, min_length if min_length is not None else 0)
    graph = build_token_graph(
        {pool.address: pool for pools in adjacency.values() for pool in pools}.values()
    )

    def dfs(
        token: ChecksumAddress,
        working_path: Path,
        visited: set[str],
    ) -> Iterator[Path]:
        """
        Extend the working path through each unvisited pool (graph edge) holding the token. When
        the path has returned to the start token, yield it if it is long enough and backtrack.
        """

        if token not in graph:
            logger.debug(f"Token {token} is not held by any pool")
            return

        if token == start_token and working_path:
            if len(working_path) >= min_depth:
                yield list(working_path)
            return

        # Stop recursion if the working path has reached the maximum length
        if len(working_path) == max_length:
            return

        for neighbor_token, edges_dict in graph[token].items():
            for pool_address, attr in edges_dict.items():
                if pool_address in visited:
                    continue

                # Extend path
                working_path.append(attr["pool"])
                visited.add(pool_address)

                yield from dfs(
                    token=neighbor_token,
                    working_path=working_path,
                    visited=visited,
                )

                # Backtrack
                working_path.pop()
                visited.remove(pool_address)

    start = time.perf_counter()

    paths: list[Path] = []
    seen_identifiers: set[str] = set()
    for path in dfs(token=start_token, working_path=[], visited=set()):
        identifier = path_identifier(path)
        if identifier in seen_identifiers:
            continue
        seen_identifiers.add(identifier)

        paths.append(path)
        if direction == Direction.FORWARD_AND_REVERSE:
            paths.append(path[::-1])

    logger.debug(
        f"Found {len(paths)} paths from {start_token} (max length {max_length}) "
        f"in {time.perf_counter() - start:.2f}s"
    )
    return paths
