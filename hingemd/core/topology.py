# hingemd/core/topology.py
from __future__ import annotations

from typing import Dict, List, NamedTuple, Optional, Tuple

from .errors import ConfigurationError

__all__ = ["HingeKey", "ROOT", "Topology"]


class HingeKey(NamedTuple):
    """Address of a hinge: ``(branch, hinge)``.

    The shared root is ``HingeKey(None, 0)``. Hinges along branch ``b`` are
    numbered ``1..hinges_per_branch`` from the root outwards.
    """

    branch: Optional[int]
    hinge: int

    @property
    def is_root(self) -> bool:
        return self.branch is None


ROOT = HingeKey(None, 0)


class Topology:
    """Fixed connectivity of a hinge chain or of a tree of equal-length branches.

    Hinges are stored in topological order: the root first, then every branch
    in order, each from its first hinge to its tip. A parent therefore always
    precedes its children, which is what the root-to-leaf passes rely on.
    """

    KINDS = ("chain", "tree")

    def __init__(self, hinges_per_branch: int, n_branches: int = 1, kind: str = "chain") -> None:
        """Build the hinge index.

        Args:
            hinges_per_branch: Non-root hinges in each branch
            n_branches: Number of branches (receptors) sharing the root
            kind: ``"chain"`` (single branch) or ``"tree"``
        """
        if kind not in self.KINDS:
            raise ConfigurationError(f"Invalid topology kind: {kind}. Must be one of {self.KINDS}")
        if hinges_per_branch < 1:
            raise ConfigurationError("hinges_per_branch must be at least 1")
        if n_branches < 1:
            raise ConfigurationError("n_branches must be at least 1")
        if kind == "chain" and n_branches != 1:
            raise ConfigurationError(f"A chain has exactly one branch, got n_branches={n_branches}")

        self.kind = kind
        self.hinges_per_branch = int(hinges_per_branch)
        self.n_branches = int(n_branches)

        keys = [ROOT]
        for branch in range(self.n_branches):
            keys.extend(HingeKey(branch, h) for h in range(1, self.hinges_per_branch + 1))
        self.keys: Tuple[HingeKey, ...] = tuple(keys)
        self._index: Dict[HingeKey, int] = {key: i for i, key in enumerate(self.keys)}
        self._parents = [-1] + [self._index[self.parent(k)] for k in self.keys[1:]]

    @classmethod
    def chain(cls, n_hinges: int) -> "Topology":
        """Single linear chain with ``n_hinges`` hinges after the root."""
        return cls(n_hinges, 1, "chain")

    @classmethod
    def tree(cls, n_branches: int, hinges_per_branch: int) -> "Topology":
        """Root with ``n_branches`` independent linear branches."""
        return cls(hinges_per_branch, n_branches, "tree")

    def __repr__(self) -> str:
        return (
            f"Topology(kind={self.kind!r}, n_branches={self.n_branches}, "
            f"hinges_per_branch={self.hinges_per_branch})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Topology):
            return NotImplemented
        return (self.kind, self.n_branches, self.hinges_per_branch) == (
            other.kind,
            other.n_branches,
            other.hinges_per_branch,
        )

    def __hash__(self) -> int:
        return hash((self.kind, self.n_branches, self.hinges_per_branch))

    def __len__(self) -> int:
        return len(self.keys)

    @property
    def n_hinges(self) -> int:
        return len(self.keys)

    @property
    def n_coords(self) -> int:
        return 3 * len(self.keys)

    def index(self, key: HingeKey) -> int:
        try:
            return self._index[key]
        except KeyError:
            raise KeyError(f"No hinge {key} in {self!r}") from None

    def key(self, index: int) -> HingeKey:
        return self.keys[index]

    def parent(self, key: HingeKey) -> Optional[HingeKey]:
        self.index(key)
        if key.is_root:
            return None
        if key.hinge == 1:
            return ROOT
        return HingeKey(key.branch, key.hinge - 1)

    def children(self, key: HingeKey) -> List[HingeKey]:
        self.index(key)
        if key.is_root:
            return [HingeKey(b, 1) for b in range(self.n_branches)]
        if key.hinge == self.hinges_per_branch:
            return []
        return [HingeKey(key.branch, key.hinge + 1)]

    def is_terminal(self, key: HingeKey) -> bool:
        return not self.children(key)

    def branch_of(self, key: HingeKey) -> Optional[int]:
        """Branch that owns ``key``, ``None`` for the shared root."""
        self.index(key)
        return key.branch

    def parent_indices(self) -> List[int]:
        """Parent row for every hinge in topological order (-1 for the root)."""
        return list(self._parents)

    def path(self, key: HingeKey) -> List[HingeKey]:
        """Hinges from the root down to ``key`` (both inclusive)."""
        self.index(key)
        if key.is_root:
            return [ROOT]
        return [ROOT] + [HingeKey(key.branch, h) for h in range(1, key.hinge + 1)]

    def branch_keys(self, branch: int) -> List[HingeKey]:
        """Non-root hinges of ``branch`` from base to tip."""
        if not 0 <= branch < self.n_branches:
            raise KeyError(f"No branch {branch} in {self!r}")
        return [HingeKey(branch, h) for h in range(1, self.hinges_per_branch + 1)]

    def branch_indices(self, branch: int) -> List[int]:
        return [self._index[k] for k in self.branch_keys(branch)]

    def coord_slice(self, key: HingeKey) -> slice:
        """Slice of the flattened 3N vector belonging to ``key``."""
        i = self.index(key)
        return slice(3 * i, 3 * i + 3)

    def branch_topology(self) -> "Topology":
        """Chain made of the root plus one branch, used for per-branch minors."""
        return Topology(self.hinges_per_branch, 1, "chain")

    def minor_rows(self, branch: int) -> List[int]:
        """Hinge rows of the full topology covered by ``branch``'s minor, root first."""
        return [0] + self.branch_indices(branch)
